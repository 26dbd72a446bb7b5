"""Tests for FieldMapper — name mapping and row conversion."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest

from metaforge.domain.descriptors import EntityDescriptor, define_entity, field
from metaforge.domain.tables import ColumnDescriptor, TableDescriptor, table_for_entity
from metaforge.domain.types import RelationKind, SemanticType
from metaforge.errors import ConfigurationError, ConversionError
from metaforge.mapping.mapper import FieldMapper


@dataclass
class Invoice:
    id: str | None = None
    amount: Decimal | None = None
    issuedOn: date | None = None  # noqa: N815
    paid: bool | None = None


def _invoice() -> EntityDescriptor:
    return define_entity(
        "Invoice",
        [
            field("id", primary_key=True),
            field("amount", SemanticType.DECIMAL),
            field("issuedOn", SemanticType.DATE),
            field("paid", SemanticType.BOOLEAN),
            field("customer", relation=RelationKind.MANY_TO_ONE, target="Customer"),
        ],
        table="invoices",
    )


def _table(*columns: str, **overrides: Any) -> TableDescriptor:
    return TableDescriptor(
        name="invoices",
        entity_name="Invoice",
        columns=tuple(ColumnDescriptor(name=c, **overrides.get(c, {})) for c in columns),
    )


class TestBuild:
    def test_snake_case_matching(self) -> None:
        mapper = FieldMapper.build(_invoice(), _table("id", "amount", "issued_on", "paid"))
        assert mapper.attribute_to_column == {
            "id": "id",
            "amount": "amount",
            "issuedOn": "issued_on",
            "paid": "paid",
        }
        assert mapper.column_to_attribute["issued_on"] == "issuedOn"
        assert mapper.primary_key == "id"
        assert mapper.primary_key_column == "id"

    def test_relations_excluded(self) -> None:
        entity = _invoice()
        mapper = FieldMapper.build(entity, table_for_entity(entity))
        assert "customer" not in mapper.attribute_to_column
        assert mapper.attribute_for("customer_id") is None

    def test_unmatched_columns_ignored(self) -> None:
        mapper = FieldMapper.build(_invoice(), _table("id", "legacy_flag"))
        assert mapper.attribute_for("legacy_flag") is None
        assert mapper.column_for("amount") is None

    def test_source_field_override(self) -> None:
        table = _table("invoice_no", "amount", invoice_no={"source_field": "id"})
        mapper = FieldMapper.build(_invoice(), table)
        assert mapper.column_for("id") == "invoice_no"
        assert mapper.primary_key_column == "invoice_no"

    def test_explicit_column_on_field(self) -> None:
        entity = define_entity("Invoice", [field("id", primary_key=True, column="invoice_no")])
        mapper = FieldMapper.build(entity, _table("invoice_no"))
        assert mapper.column_for("id") == "invoice_no"

    def test_two_fields_one_column_is_an_error(self) -> None:
        entity = define_entity(
            "Invoice",
            [field("id", primary_key=True), field("issuedOn"), field("issued_on")],
        )
        with pytest.raises(ConfigurationError, match="claimed by several fields"):
            FieldMapper.build(entity, _table("id", "issued_on"))

    def test_one_field_two_columns_is_an_error(self) -> None:
        table = _table("id", "amount", "amt", amt={"source_field": "amount"})
        with pytest.raises(ConfigurationError, match="matches both"):
            FieldMapper.build(_invoice(), table)

    def test_unmapped_primary_key_is_an_error(self) -> None:
        with pytest.raises(ConfigurationError, match="Primary key"):
            FieldMapper.build(_invoice(), _table("amount"))

    def test_primary_key_from_table_when_undeclared(self) -> None:
        entity = define_entity("Log", [field("seq", SemanticType.INTEGER), field("line")])
        table = TableDescriptor(
            name="logs",
            entity_name="Log",
            columns=(ColumnDescriptor(name="seq", primary_key=True), ColumnDescriptor(name="line")),
        )
        assert FieldMapper.build(entity, table).primary_key == "seq"


class TestRows:
    def _mapper(self) -> FieldMapper:
        entity = _invoice()
        return FieldMapper.build(entity, table_for_entity(entity))

    def test_to_domain_populates_matched_columns(self) -> None:
        row = {
            "id": "inv-1",
            "amount": "10.50",
            "issued_on": date(2024, 1, 2),
            "paid": 1,
            "customer_id": "c-1",
            "extra": "ignored",
        }
        invoice = self._mapper().to_domain(row, Invoice)
        assert invoice == Invoice("inv-1", Decimal("10.50"), date(2024, 1, 2), True)
        assert not hasattr(invoice, "extra")

    def test_to_domain_null_is_none(self) -> None:
        invoice = self._mapper().to_domain({"id": "inv-1", "amount": None}, Invoice)
        assert invoice.amount is None

    def test_to_domain_dict_factory(self) -> None:
        result = self._mapper().to_domain({"id": "inv-1", "issued_on": "2024-01-02"}, dict)
        assert result == {"id": "inv-1", "issuedOn": date(2024, 1, 2)}

    def test_to_domain_conversion_error_names_field(self) -> None:
        with pytest.raises(ConversionError) as exc_info:
            self._mapper().to_domain({"id": "inv-1", "amount": "ten"}, Invoice)
        assert exc_info.value.field_name == "amount"
        assert exc_info.value.entity_name == "Invoice"

    def test_to_storage_mapping_writes_present_keys(self) -> None:
        row = self._mapper().to_storage({"amount": Decimal("1.00"), "paid": None, "junk": 1})
        assert row == {"amount": "1.00", "paid": None}

    def test_to_storage_object_skips_none(self) -> None:
        row = self._mapper().to_storage(Invoice(id="inv-1", amount=Decimal("2.5")))
        assert row == {"id": "inv-1", "amount": "2.5"}

    def test_round_trip_identity(self) -> None:
        mapper = self._mapper()
        original = Invoice("inv-9", Decimal("123456789.000001"), date(2020, 2, 29), False)
        assert mapper.to_domain(mapper.to_storage(original), Invoice) == original

    def test_dict_and_object_factories_on_one_mapper(self) -> None:
        mapper = self._mapper()
        row = {"id": "inv-1", "amount": "1.00"}
        assert mapper.to_domain(row, dict) == {"id": "inv-1", "amount": Decimal("1.00")}
        assert mapper.to_domain(row, Invoice) == Invoice("inv-1", Decimal("1.00"))
        assert mapper.to_domain(row, dict)["amount"] == Decimal("1.00")

    def test_object_after_dict_instance(self) -> None:
        mapper = self._mapper()
        mapper.to_domain({"id": "inv-1"}, dict)
        assert mapper.to_storage(Invoice(id="inv-2", paid=True)) == {"id": "inv-2", "paid": True}

    def test_criteria_accept_attribute_or_column(self) -> None:
        mapper = self._mapper()
        assert mapper.to_storage_criteria({"issuedOn": "2024-01-02"}) == {
            "issued_on": date(2024, 1, 2)
        }
        assert mapper.to_storage_criteria({"issued_on": date(2024, 1, 2)}) == {
            "issued_on": date(2024, 1, 2)
        }
        with pytest.raises(ConfigurationError):
            mapper.to_storage_criteria({"nope": 1})


class TestPassthrough:
    def test_identity_mapping(self) -> None:
        mapper = FieldMapper.passthrough("Legacy")
        assert mapper.is_passthrough
        assert mapper.primary_key_column == "id"
        assert mapper.resolve_column("anything") == "anything"
        assert mapper.to_domain({"id": 1, "name": "x"}, dict) == {"id": 1, "name": "x"}

    def test_object_rows(self) -> None:
        mapper = FieldMapper.passthrough("Legacy")
        assert mapper.to_storage(SimpleNamespace(id=1, name=None)) == {"id": 1}
        obj = mapper.to_domain({"id": 1}, SimpleNamespace)
        assert obj.id == 1
