"""Attribute/column naming transforms.

Columns use lower snake case; attributes use mixed case. The transform is
deterministic but only informally reversible: ``orderID`` becomes
``order_i_d`` and does not round-trip.
"""

from __future__ import annotations

import re

_UPPER = re.compile(r"[A-Z]")
_UNDERSCORE_LOWER = re.compile(r"_([a-z])")


def to_snake_case(name: str) -> str:
    """Convert a mixed-case attribute name to its column name.

    Examples:
        >>> to_snake_case("createdAt")
        'created_at'
        >>> to_snake_case("PurchaseOrder")
        'purchase_order'
        >>> to_snake_case("id")
        'id'
    """
    return _UPPER.sub(
        lambda m: m.group(0).lower() if m.start() == 0 else f"_{m.group(0).lower()}",
        name,
    )


def to_camel_case(name: str) -> str:
    """Convert a snake-case column name back to an attribute name.

    Examples:
        >>> to_camel_case("created_at")
        'createdAt'
    """
    return _UNDERSCORE_LOWER.sub(lambda m: m.group(1).upper(), name)


def default_table_name(entity_name: str) -> str:
    """Snake-case entity name plus ``s`` (``PurchaseOrder`` -> ``purchase_orders``)."""
    return f"{to_snake_case(entity_name).lstrip('_')}s"
