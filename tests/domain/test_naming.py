"""Tests for attribute/column naming transforms."""

import pytest

from metaforge.domain.naming import default_table_name, to_camel_case, to_snake_case


class TestToSnakeCase:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("id", "id"),
            ("createdAt", "created_at"),
            ("orderLineItem", "order_line_item"),
            ("PurchaseOrder", "purchase_order"),
            ("already_snake", "already_snake"),
        ],
    )
    def test_conversion(self, name: str, expected: str) -> None:
        assert to_snake_case(name) == expected

    def test_acronyms_split_per_letter(self) -> None:
        """Deterministic but not reversible."""
        assert to_snake_case("orderID") == "order_i_d"
        assert to_camel_case(to_snake_case("orderID")) != "orderID"


class TestToCamelCase:
    def test_conversion(self) -> None:
        assert to_camel_case("created_at") == "createdAt"
        assert to_camel_case("id") == "id"

    def test_round_trip_for_simple_names(self) -> None:
        for name in ("createdAt", "total", "shippingAddressLine"):
            assert to_camel_case(to_snake_case(name)) == name


class TestDefaultTableName:
    def test_pluralizes_snake_name(self) -> None:
        assert default_table_name("Order") == "orders"
        assert default_table_name("PurchaseOrder") == "purchase_orders"
