"""Value conversion between domain attributes and storage columns.

Decimals are stored as their canonical string so that a round-trip never
passes through a binary float. Datetimes are stored as naive UTC: an aware
value is shifted to UTC before its offset is dropped, so the stored instant
is the one the caller meant. Absent values stay absent in both directions.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from metaforge.domain.types import SemanticType
from metaforge.errors import ConversionError

# ---------------------------------------------------------------------------
# Storage -> domain
# ---------------------------------------------------------------------------


def _to_decimal(raw: Any) -> Decimal:
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        raise TypeError(type(raw).__name__)
    # str() of a float is its shortest repr, so 19.99 stays 19.99
    return Decimal(str(raw).strip())


def _to_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        if len(text) > 10:
            return datetime.fromisoformat(text).date()
        return date.fromisoformat(text)
    raise TypeError(type(raw).__name__)


def _to_datetime(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime.combine(raw, time())
    if isinstance(raw, str):
        return datetime.fromisoformat(raw.strip())
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(raw, tz=UTC).replace(tzinfo=None)
    raise TypeError(type(raw).__name__)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def to_domain_value(
    raw: Any,
    semantic_type: SemanticType,
    *,
    field_name: str | None = None,
    entity_name: str | None = None,
) -> Any:
    """Coerce a stored value to its domain representation.

    Raises:
        ConversionError: The value cannot represent *semantic_type*.
    """
    if raw is None:
        return None
    try:
        if semantic_type == SemanticType.DECIMAL:
            return _to_decimal(raw)
        if semantic_type == SemanticType.DATE:
            return _to_date(raw)
        if semantic_type == SemanticType.DATETIME:
            return _to_datetime(raw)
        if semantic_type == SemanticType.BOOLEAN and type(raw) is int and raw in (0, 1):
            return bool(raw)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ConversionError(field_name, entity_name, raw, semantic_type.value) from exc
    return raw


# ---------------------------------------------------------------------------
# Domain -> storage
# ---------------------------------------------------------------------------


def to_storage_value(
    value: Any,
    semantic_type: SemanticType,
    *,
    field_name: str | None = None,
    entity_name: str | None = None,
) -> Any:
    """Coerce a domain value to what its column stores.

    Raises:
        ConversionError: The value cannot represent *semantic_type*.
    """
    if value is None:
        return None
    try:
        if semantic_type == SemanticType.DECIMAL:
            return str(_to_decimal(value))
        if semantic_type == SemanticType.DATE:
            return _to_date(value)
        if semantic_type == SemanticType.DATETIME:
            return _naive_utc(_to_datetime(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ConversionError(field_name, entity_name, value, semantic_type.value) from exc
    if isinstance(value, Enum):
        return value.value
    return value
