"""Tests for assumption document parsing."""

from datetime import date

import pytest
from pydantic import ValidationError

from bizcase.engine.errors import DocumentError
from bizcase.models.document import (
    CostSavingsDocument,
    Driver,
    RecurringDocument,
    UnitSalesDocument,
    ValueWithRationale,
    load_document,
)
from bizcase.models.enums import BusinessModel


class TestLoadDocument:
    def test_variant_by_business_model(self, recurring_doc, unit_sales_doc, cost_savings_doc):
        assert isinstance(load_document(recurring_doc), RecurringDocument)
        assert isinstance(load_document(unit_sales_doc), UnitSalesDocument)
        assert isinstance(load_document(cost_savings_doc), CostSavingsDocument)

    def test_missing_business_model_defaults_to_unit_sales(self):
        doc = load_document({"meta": {}})
        assert doc.business_model is BusinessModel.UNIT_SALES

    def test_defaults(self):
        doc = load_document({"meta": {"business_model": "recurring"}})
        assert doc.currency == "EUR"
        assert doc.meta.start_date == date(2026, 1, 1)
        assert doc.assumptions.opex == []
        assert doc.drivers == []

    def test_loaded_document_passes_through(self, recurring_doc):
        doc = load_document(recurring_doc)
        assert load_document(doc) is doc

    def test_extra_fields_are_kept(self, recurring_doc):
        recurring_doc["meta"]["owner"] = "finance"
        doc = load_document(recurring_doc)
        assert doc.meta.model_extra["owner"] == "finance"

    def test_period_count(self, recurring_doc):
        doc = load_document(recurring_doc)
        assert doc.period_count(60, 120) == 24
        assert doc.period_count(60, 12) == 12

    def test_driver_paths(self, recurring_doc):
        doc = load_document(recurring_doc)
        assert "assumptions.pricing.avg_unit_price.value" in doc.driver_paths()

    def test_rejects_non_object(self):
        with pytest.raises(DocumentError, match="must be an object"):
            load_document("{}")

    def test_rejects_bad_field_type(self, scenario_doc):
        scenario_doc["meta"]["periods"] = "many"
        with pytest.raises(DocumentError):
            load_document(scenario_doc)


class TestLeaves:
    def test_bare_number_is_leaf(self):
        leaf = ValueWithRationale.model_validate(12)
        assert leaf.value == 12
        assert leaf.unit == ""

    def test_override_accepts_value_alias(self, recurring_doc):
        overrides = recurring_doc["assumptions"]["pricing"]["yearly_adjustments"]["price_overrides"]
        overrides[0] = {"period": 6, "value": 58}
        doc = load_document(recurring_doc)
        assert doc.assumptions.pricing.yearly_adjustments.price_overrides[0].price == 58

    def test_models_are_frozen(self, recurring_doc):
        doc = load_document(recurring_doc)
        with pytest.raises(ValidationError):
            doc.meta.title = "changed"


class TestDriver:
    def test_range_needs_five_points(self):
        with pytest.raises(ValueError):
            Driver(key="k", path="a.value", range=[1, 2, 3])

    def test_valid_driver(self):
        driver = Driver(key="k", path="a.value", range=[1, 2, 3, 4, 5], label="K")
        assert driver.range[2] == 3
