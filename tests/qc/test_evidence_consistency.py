"""Every evidence tree reproduces the engine's numbers."""

import pytest

from bizcase.engine.calculator import CalculationEngine
from bizcase.evidence import EvidenceContext, build_evidence_trail, verify_evidence_tree
from bizcase.evidence.registry import get_all_metrics
from bizcase.models.enums import EvidenceNodeType

MONTH_METRICS = [k for k, d in get_all_metrics().items() if d.per_period]
HORIZON_METRICS = [k for k, d in get_all_metrics().items() if d.horizon]
DOCS = ["recurring_doc", "unit_sales_doc", "cost_savings_doc"]


@pytest.mark.parametrize("doc_name", DOCS)
@pytest.mark.parametrize("metric_key", MONTH_METRICS)
def test_month_trees_verify(request, doc_name, metric_key):
    doc = request.getfixturevalue(doc_name)
    metrics = CalculationEngine().calculate(doc)
    for month in (1, 6, 13, len(metrics.monthly_data)):
        root = build_evidence_trail(doc, metrics, EvidenceContext(metric_key, month)).root
        assert root.type is not EvidenceNodeType.EXTERNAL
        assert verify_evidence_tree(root) == [], f"{metric_key} month {month}"


@pytest.mark.parametrize("doc_name", DOCS)
@pytest.mark.parametrize("metric_key", HORIZON_METRICS)
def test_horizon_trees_verify(request, doc_name, metric_key):
    doc = request.getfixturevalue(doc_name)
    metrics = CalculationEngine().calculate(doc)
    root = build_evidence_trail(doc, metrics, EvidenceContext(metric_key)).root
    assert verify_evidence_tree(root) == []


@pytest.mark.parametrize("doc_name", DOCS)
def test_month_roots_match_records(request, doc_name):
    doc = request.getfixturevalue(doc_name)
    metrics = CalculationEngine().calculate(doc)
    checks = {
        "revenue": "revenue",
        "cogs": "cogs",
        "ebitda": "ebitda",
        "totalOpex": "total_opex",
        "netCashFlow": "net_cash_flow",
    }
    for month, record in enumerate(metrics.monthly_data, start=1):
        for key, attr in checks.items():
            root = build_evidence_trail(doc, metrics, EvidenceContext(key, month)).root
            assert root.value == getattr(record, attr)


@pytest.mark.parametrize("doc_name", DOCS)
def test_scalar_roots_match_metrics(request, doc_name):
    doc = request.getfixturevalue(doc_name)
    metrics = CalculationEngine().calculate(doc)
    for key, attr in (
        ("npv", "npv"),
        ("irr", "irr"),
        ("paybackPeriod", "payback_period"),
        ("breakEvenMonth", "break_even_month"),
        ("totalInvestmentRequired", "total_investment_required"),
    ):
        root = build_evidence_trail(doc, metrics, EvidenceContext(key)).root
        assert root.value == pytest.approx(getattr(metrics, attr))


def test_assumption_leaves_point_into_document(recurring_doc):
    from bizcase.engine.paths import get_nested_value

    metrics = CalculationEngine().calculate(recurring_doc)
    root = build_evidence_trail(recurring_doc, metrics, EvidenceContext("netCashFlow", 13)).root
    leaves = [n for n in root.walk() if n.path is not None]
    assert leaves
    for node in leaves:
        assert get_nested_value(recurring_doc, node.path) == node.value
