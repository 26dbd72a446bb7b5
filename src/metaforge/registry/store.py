"""MetadataRegistry — process-wide catalog of declared and derived metadata.

Items are indexed twice: by unique name and by type category. Both
indexes are updated together so type lookups always mirror the primary map.

Derived types recompute when one of their source types changes:

1. the deriving depth is raised so nested changes cannot re-trigger,
2. every previously derived item of the type is dropped,
3. ``derive(registry)`` runs and its items are registered,
4. the depth is lowered again.

INVARIANT: ``register`` never raises for malformed input. Registration runs
at import time of user modules and must not break unrelated code.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from metaforge.domain.descriptors import EntityDescriptor
from metaforge.domain.tables import TableDescriptor, table_for_entity
from metaforge.domain.types import BuiltinType, Layer, SubLayer
from metaforge.errors import RegistrationError

logger = logging.getLogger(__name__)

ChangeEvent = Literal["add", "update", "remove"]
DeriveFn = Callable[["MetadataRegistry"], Iterable[Any]]


@dataclass(frozen=True)
class RegistryEntry:
    """One registered item and its bookkeeping."""

    name: str
    type_name: str
    definition: Any
    comment: str | None
    registered_at: float


ChangeListener = Callable[[ChangeEvent, str, str, RegistryEntry | None], None]


@dataclass(frozen=True)
class TypeConfig:
    """A custom type category, optionally derived from other types.

    Attributes:
        type: Category name; must not collide with a :class:`BuiltinType`.
        derived_from: Source types whose changes trigger ``derive``.
        derive: Computes the full item list of this type from the registry.
    """

    type: str
    layer: Layer = Layer.CUSTOM
    sub_layer: SubLayer = SubLayer.CUSTOM
    label: str | None = None
    description: str | None = None
    derived_from: tuple[str, ...] = ()
    derive: DeriveFn | None = None


_BUILTIN_LAYERS: dict[str, tuple[Layer, SubLayer, str]] = {
    BuiltinType.ENTITY: (Layer.DOMAIN, SubLayer.MODEL, "Entity"),
    BuiltinType.VALUE_OBJECT: (Layer.DOMAIN, SubLayer.MODEL, "Value Object"),
    BuiltinType.ENUM: (Layer.DOMAIN, SubLayer.MODEL, "Enum"),
    BuiltinType.RULE: (Layer.DOMAIN, SubLayer.DOMAIN, "Rule"),
    BuiltinType.DOMAIN_LOGIC: (Layer.DOMAIN, SubLayer.DOMAIN, "Domain Logic"),
    BuiltinType.REPOSITORY: (Layer.DOMAIN, SubLayer.REPOSITORY, "Repository"),
    BuiltinType.SERVICE: (Layer.DOMAIN, SubLayer.SERVICE, "Service"),
    BuiltinType.DTO: (Layer.APPLICATION, SubLayer.DTO, "DTO"),
    BuiltinType.CONSTANT: (Layer.APPLICATION, SubLayer.DTO, "Constant"),
    BuiltinType.APP_SERVICE: (Layer.APPLICATION, SubLayer.APP_SERVICE, "App Service"),
    BuiltinType.PAGE: (Layer.PRESENTATION, SubLayer.VIEW, "Page"),
    BuiltinType.COMPONENT: (Layer.PRESENTATION, SubLayer.COMPONENT, "Component"),
    BuiltinType.EXTENSION: (Layer.INFRASTRUCTURE, SubLayer.EXTENSION, "Extension"),
    BuiltinType.TABLE: (Layer.INFRASTRUCTURE, SubLayer.SCHEMA, "Table"),
}

_ENTITY_TYPES = (BuiltinType.ENTITY.value, BuiltinType.VALUE_OBJECT.value)


def _item_name(item: Any) -> str | None:
    name = item.get("name") if isinstance(item, Mapping) else getattr(item, "name", None)
    return name if isinstance(name, str) and name else None


def _resolve_identity(item: Any) -> tuple[str, str, str | None] | None:
    """Extract ``(name, type, comment)`` from a descriptor or mapping."""
    if isinstance(item, Mapping):
        meta = item.get("meta")
        meta = meta if isinstance(meta, Mapping) else {}
        name = item.get("name") or meta.get("name")
        type_name = item.get("__type")
        comment = item.get("comment") or item.get("description") or meta.get("description")
    else:
        name = getattr(item, "name", None)
        type_name = getattr(item, "type_name", None) or getattr(item, "__type", None)
        comment = getattr(item, "comment", None) or getattr(item, "description", None)

    if not isinstance(name, str) or not name:
        return None
    if not isinstance(type_name, str) or not type_name:
        return None
    return name, type_name, comment if isinstance(comment, str) else None


class MetadataRegistry:
    """Catalog of named, typed metadata with change notification.

    Construct a fresh instance per test or per application; the module-level
    :data:`default_registry` is the process-wide one.
    """

    def __init__(self) -> None:
        self._by_name: dict[str, RegistryEntry] = {}
        self._by_type: dict[str, dict[str, RegistryEntry]] = {t.value: {} for t in BuiltinType}
        self._types: dict[str, TypeConfig] = {}
        self._derive_listeners: dict[str, Callable[[], None]] = {}
        self._listeners: list[ChangeListener] = []
        self._derive_depth = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, item: Any) -> RegistryEntry | None:
        """Insert or update one item, keyed by name.

        Returns the stored entry, or None when the item was dropped for
        lacking a resolvable name or type.
        """
        return self._register(item)

    def _register(self, item: Any, forced_type: str | None = None) -> RegistryEntry | None:
        identity = _resolve_identity(item)
        if identity is None and forced_type is not None:
            name = _item_name(item)
            if name is not None:
                identity = (name, forced_type, None)
        if identity is None:
            error = RegistrationError(f"Dropped item without a name or type: {item!r}")
            logger.warning("%s", error)
            return None

        name, type_name, comment = identity
        type_name = forced_type or type_name

        with self._lock:
            if type_name not in self._by_type:
                self._by_type[type_name] = {}
                logger.debug("Created type index: %s", type_name)

            previous = self._by_name.get(name)
            if previous is not None and previous.type_name != type_name:
                self._by_type[previous.type_name].pop(name, None)

            entry = RegistryEntry(
                name=name,
                type_name=type_name,
                definition=item,
                comment=comment,
                registered_at=time.time(),
            )
            self._by_name[name] = entry
            self._by_type[type_name][name] = entry

            event: ChangeEvent = "update" if previous is not None else "add"
            logger.debug("Registry %s: %s %s", event, type_name, name)
            self._notify(event, type_name, name, entry)
        return entry

    def update(self, name: str, **changes: Any) -> bool:
        """Merge *changes* into a stored definition without notifying listeners."""
        with self._lock:
            existing = self._by_name.get(name)
            if existing is None:
                logger.warning("Cannot update unknown registry item: %s", name)
                return False

            definition = existing.definition
            if isinstance(definition, BaseModel):
                definition = definition.model_copy(update=changes)
            elif isinstance(definition, Mapping):
                definition = {**definition, **changes}
            else:
                for key, value in changes.items():
                    setattr(definition, key, value)

            entry = replace(existing, definition=definition)
            self._by_name[name] = entry
            self._by_type[entry.type_name][name] = entry
        logger.debug("Registry merged %s into %s", sorted(changes), name)
        return True

    def remove(self, name: str) -> bool:
        """Delete *name* from both indexes. Returns False if it was absent."""
        with self._lock:
            entry = self._by_name.pop(name, None)
            if entry is None:
                return False
            self._by_type.get(entry.type_name, {}).pop(name, None)
            logger.debug("Registry remove: %s %s", entry.type_name, name)
            self._notify("remove", entry.type_name, name, None)
        return True

    def clear(self) -> None:
        """Drop every item. Type categories and listeners are kept."""
        with self._lock:
            self._by_name.clear()
            for bucket in self._by_type.values():
                bucket.clear()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, name: str) -> RegistryEntry | None:
        return self._by_name.get(name)

    def get_definition(self, name: str) -> Any | None:
        entry = self._by_name.get(name)
        return entry.definition if entry is not None else None

    def get_by_type(self, type_name: str) -> dict[str, RegistryEntry]:
        """Copy of the items registered under *type_name* (empty if unknown)."""
        return dict(self._by_type.get(type_name, {}))

    def get_all(self) -> dict[str, RegistryEntry]:
        return dict(self._by_name)

    def get_all_names(self) -> list[str]:
        return list(self._by_name)

    def has(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get_entity(self, name: str) -> EntityDescriptor | None:
        """Entity or value-object descriptor for *name*.

        Definitions loaded from a registry dump are stored as mappings and
        are parsed on access.
        """
        entry = self._by_name.get(name)
        if entry is None or entry.type_name not in _ENTITY_TYPES:
            return None
        definition = entry.definition
        if isinstance(definition, EntityDescriptor):
            return definition
        try:
            return EntityDescriptor.model_validate(definition, from_attributes=True)
        except ValidationError:
            logger.warning("Registry item %s is not a valid entity descriptor", name, exc_info=True)
            return None

    def get_table(self, name: str) -> TableDescriptor | None:
        entry = self._by_name.get(name)
        if entry is None or entry.type_name != BuiltinType.TABLE:
            return None
        definition = entry.definition
        if isinstance(definition, TableDescriptor):
            return definition
        try:
            return TableDescriptor.model_validate(definition, from_attributes=True)
        except ValidationError:
            logger.warning("Registry item %s is not a valid table descriptor", name, exc_info=True)
            return None

    def get_table_by_entity(self, entity_name: str) -> TableDescriptor | None:
        """Explicitly registered table for *entity_name*, if any."""
        for name in self.get_by_type(BuiltinType.TABLE):
            table = self.get_table(name)
            if table is not None and table.entity_name == entity_name:
                return table
        return None

    def table_for(self, entity_name: str) -> TableDescriptor | None:
        """Registered table for *entity_name*, else one derived from the entity."""
        table = self.get_table_by_entity(entity_name)
        if table is not None:
            return table
        entity = self.get_entity(entity_name)
        if entity is None or entity.kind != BuiltinType.ENTITY:
            return None
        return table_for_entity(entity, self.get_entity)

    def generate_tables(self) -> list[TableDescriptor]:
        """Register a derived table for every entity that lacks one."""
        tables: list[TableDescriptor] = []
        for name in self.get_by_type(BuiltinType.ENTITY):
            if self.get_table_by_entity(name) is not None:
                continue
            table = self.table_for(name)
            if table is not None:
                self.register(table)
                tables.append(table)
        return tables

    # ------------------------------------------------------------------
    # Type categories and derivation
    # ------------------------------------------------------------------

    def register_type(self, config: TypeConfig) -> bool:
        """Declare a custom type category. Built-in names are rejected."""
        if config.type in self._builtin_names():
            logger.warning("Type %r is built in and cannot be redefined", config.type)
            return False

        with self._lock:
            self._types[config.type] = config
            self._by_type.setdefault(config.type, {})

            unsubscribe = self._derive_listeners.pop(config.type, None)
            if unsubscribe is not None:
                unsubscribe()

            if config.derive is not None and config.derived_from:
                self._derive_listeners[config.type] = self.add_listener(
                    self._derivation_listener(config)
                )
                self._compute_derived(config)
        logger.debug("Registered custom type %s (%s)", config.type, config.layer)
        return True

    def _derivation_listener(self, config: TypeConfig) -> ChangeListener:
        def _on_change(
            event: ChangeEvent, type_name: str, name: str, entry: RegistryEntry | None
        ) -> None:
            if type_name in config.derived_from and not self.is_deriving:
                self._compute_derived(config)

        return _on_change

    @property
    def is_deriving(self) -> bool:
        return self._derive_depth > 0

    def _compute_derived(self, config: TypeConfig) -> None:
        if config.derive is None:
            return
        with self._lock:
            self._derive_depth += 1
            try:
                stale = self._by_type.setdefault(config.type, {})
                for name in list(stale):
                    self._by_name.pop(name, None)
                stale.clear()

                try:
                    items = list(config.derive(self))
                except Exception:
                    logger.warning("Derivation of %s failed", config.type, exc_info=True)
                    return

                derived = 0
                for item in items:
                    # derived items never take over a name owned by another type
                    owner = self._by_name.get(_item_name(item) or "")
                    if owner is not None and owner.type_name != config.type:
                        logger.warning(
                            "Skipped derived %s %s: name belongs to %s",
                            config.type,
                            owner.name,
                            owner.type_name,
                        )
                        continue
                    if self._register(item, forced_type=config.type) is not None:
                        derived += 1
                logger.debug("Derived %d %s item(s)", derived, config.type)
            finally:
                self._derive_depth -= 1

    def trigger_derive(self, type_name: str | None = None) -> None:
        """Recompute one derived type, or all of them."""
        if type_name is not None:
            config = self._types.get(type_name)
            if config is not None:
                self._compute_derived(config)
            return
        for config in list(self._types.values()):
            self._compute_derived(config)

    def has_type(self, type_name: str) -> bool:
        return type_name in self._builtin_names() or type_name in self._types

    def get_all_types(self) -> list[str]:
        return [*self._builtin_names(), *self._types]

    def get_type_config(self, type_name: str) -> TypeConfig | None:
        return self._types.get(type_name)

    def type_layer(self, type_name: str) -> Layer:
        if type_name in _BUILTIN_LAYERS:
            return _BUILTIN_LAYERS[type_name][0]
        config = self._types.get(type_name)
        return config.layer if config is not None else Layer.CUSTOM

    def type_sub_layer(self, type_name: str) -> SubLayer:
        if type_name in _BUILTIN_LAYERS:
            return _BUILTIN_LAYERS[type_name][1]
        config = self._types.get(type_name)
        return config.sub_layer if config is not None else SubLayer.CUSTOM

    def type_label(self, type_name: str) -> str:
        if type_name in _BUILTIN_LAYERS:
            return _BUILTIN_LAYERS[type_name][2]
        config = self._types.get(type_name)
        return (config.label if config is not None else None) or type_name

    @staticmethod
    def _builtin_names() -> list[str]:
        return [t.value for t in BuiltinType]

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Subscribe to changes. Returns a callable that unsubscribes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(
        self, event: ChangeEvent, type_name: str, name: str, entry: RegistryEntry | None
    ) -> None:
        """Deliver synchronously, in subscription order.

        INVARIANT: Listener failures are warnings, never errors.
        """
        for listener in list(self._listeners):
            try:
                listener(event, type_name, name, entry)
            except Exception:
                logger.warning("Registry listener failed on %s %s", event, name, exc_info=True)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_layered(self) -> dict[str, dict[str, dict[str, RegistryEntry]]]:
        """Group items by DDD layer and sub-layer."""
        layered: dict[str, dict[str, dict[str, RegistryEntry]]] = {}
        for type_name, bucket in self._by_type.items():
            if not bucket:
                continue
            layer = self.type_layer(type_name).value
            sub_layer = self.type_sub_layer(type_name).value
            layered.setdefault(layer, {}).setdefault(sub_layer, {}).update(bucket)
        return layered

    def get_stats(self) -> dict[str, int]:
        return {type_name: len(bucket) for type_name, bucket in self._by_type.items()}


default_registry = MetadataRegistry()
