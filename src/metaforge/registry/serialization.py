"""Registry persistence format.

One JSON object per item::

    {"name": "Order", "__type": "entity", "table": "orders",
     "fields": {"total": {"type": "decimal", "label": "Total",
                          "required": true, "primaryKey": false}}}

A dump is either a list of such objects or an object keyed by item name.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from metaforge.domain.descriptors import EntityDescriptor, FieldDescriptor
from metaforge.domain.tables import TableDescriptor
from metaforge.domain.types import BuiltinType
from metaforge.registry.store import MetadataRegistry, RegistryEntry

logger = logging.getLogger(__name__)

_ENTITY_TYPES = (BuiltinType.ENTITY.value, BuiltinType.VALUE_OBJECT.value)


def _dump_field(fld: FieldDescriptor) -> dict[str, Any]:
    record: dict[str, Any] = {
        "type": fld.semantic_type.value,
        "label": fld.label if fld.label is not None else fld.name,
        "required": fld.required,
        "primaryKey": fld.primary_key,
    }
    if fld.relation is not None:
        record["relation"] = fld.relation.value
    target = fld.target_name
    if target is not None:
        record["target"] = target
    if fld.embedded:
        record["embedded"] = True
    if fld.column:
        record["column"] = fld.column
    return record


def dump_item(entry: RegistryEntry) -> dict[str, Any]:
    """Serialize one registry entry to a JSON-safe dict."""
    definition = entry.definition
    record: dict[str, Any] = {"name": entry.name, "__type": entry.type_name}

    if isinstance(definition, EntityDescriptor):
        if definition.fields:
            record["fields"] = {f.name: _dump_field(f) for f in definition.fields}
        if definition.table_name:
            record["table"] = definition.table_name
        if definition.indexes:
            record["indexes"] = [list(ix) for ix in definition.indexes]
    elif isinstance(definition, BaseModel):
        dumped = definition.model_dump(mode="json", by_alias=True, exclude_none=True)
        record.update({k: v for k, v in dumped.items() if k not in record})
    elif isinstance(definition, Mapping):
        dumped = json.loads(json.dumps(dict(definition), default=str))
        record.update({k: v for k, v in dumped.items() if k not in record})

    if entry.comment and "comment" not in record:
        record["comment"] = entry.comment
    return record


def dump_registry(registry: MetadataRegistry) -> list[dict[str, Any]]:
    return [dump_item(entry) for entry in registry.get_all().values()]


def _parse_item(item: Mapping[str, Any]) -> Any:
    type_name = item.get("__type")
    try:
        if type_name in _ENTITY_TYPES:
            return EntityDescriptor.model_validate(item)
        if type_name == BuiltinType.TABLE:
            return TableDescriptor.model_validate(item)
    except ValidationError:
        logger.warning("Invalid %s item %r", type_name, item.get("name"), exc_info=True)
        return None
    return dict(item)


def load_registry(
    registry: MetadataRegistry,
    items: Iterable[Mapping[str, Any]] | Mapping[str, Mapping[str, Any]],
    *,
    overwrite: bool = False,
) -> tuple[int, int]:
    """Register items from a dump.

    Items without a name or ``__type`` and items failing validation are
    ignored. Unless *overwrite* is set, names already present are skipped.

    Returns:
        ``(registered, skipped)`` counts. Ignored items count as neither.
    """
    if isinstance(items, Mapping):
        items = [
            {"name": name, **item} if isinstance(item, Mapping) else item
            for name, item in items.items()
        ]

    registered = skipped = 0
    for item in items:
        if not isinstance(item, Mapping) or not item.get("__type") or not item.get("name"):
            logger.debug("Ignored malformed registry item: %r", item)
            continue
        if registry.has(item["name"]) and not overwrite:
            skipped += 1
            continue
        parsed = _parse_item(item)
        if parsed is None:
            continue
        if registry.register(parsed) is not None:
            registered += 1

    logger.info("Loaded registry: %d registered, %d skipped", registered, skipped)
    return registered, skipped


def read_registry_file(path: Path) -> list[dict[str, Any]]:
    """Read a dump file into a list of item dicts."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, Mapping):
        return [{"name": name, **item} for name, item in data.items() if isinstance(item, Mapping)]
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    msg = f"Registry file {path} must hold a JSON list or object"
    raise ValueError(msg)


def write_registry_file(path: Path, registry: MetadataRegistry) -> int:
    """Write *registry* as a JSON list. Returns the number of items written."""
    records = dump_registry(registry)
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(records, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return len(records)
