"""Named attribute access for domain objects.

Built once per entity: each attribute name maps to a getter/setter pair, so
mapping code never reaches for ``getattr`` on arbitrary names.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, MutableMapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Accessor:
    get: Callable[[Any], Any]
    set: Callable[[Any, Any], None]


def _object_accessor(name: str) -> Accessor:
    def _get(obj: Any) -> Any:
        return getattr(obj, name, None)

    def _set(obj: Any, value: Any) -> None:
        setattr(obj, name, value)

    return Accessor(_get, _set)


def _item_accessor(name: str) -> Accessor:
    def _get(obj: Any) -> Any:
        return obj.get(name)

    def _set(obj: Any, value: Any) -> None:
        obj[name] = value

    return Accessor(_get, _set)


class AttributeAccessors:
    """Getter/setter map for one entity's attributes.

    Instances that are mutable mappings (plain dicts) use item access;
    everything else uses attribute access.
    """

    def __init__(self, names: Iterable[str], *, item_access: bool = False) -> None:
        make = _item_accessor if item_access else _object_accessor
        self._item_access = item_access
        self._accessors: dict[str, Accessor] = {name: make(name) for name in names}

    @classmethod
    def for_instance(cls, names: Iterable[str], instance: Any) -> AttributeAccessors:
        return cls(names, item_access=isinstance(instance, MutableMapping))

    @property
    def item_access(self) -> bool:
        return self._item_access

    def __contains__(self, name: object) -> bool:
        return name in self._accessors

    def __iter__(self):
        return iter(self._accessors)

    def get(self, obj: Any, name: str) -> Any:
        return self._accessors[name].get(obj)

    def set(self, obj: Any, name: str, value: Any) -> None:
        self._accessors[name].set(obj, value)

    def read_all(self, obj: Any) -> dict[str, Any]:
        """Every known attribute of *obj* that is not None."""
        values = {name: accessor.get(obj) for name, accessor in self._accessors.items()}
        return {name: value for name, value in values.items() if value is not None}
