"""Tests for profit summaries and per-product breakdowns."""

from __future__ import annotations

from decimal import Decimal

import pytest

from booth_ledger import reporting
from booth_ledger.constants import CostingMode
from booth_ledger.data_manager import CostLine, SaleRow


def _sale(sale_id, product_id, price, *, quantity=1, cost=None, name=None):
    snapshot = None
    if cost is not None:
        snapshot = (CostLine(product_id, "x", Decimal("1"), "u", Decimal(cost), Decimal(cost)),)
    return SaleRow(
        sale_id=sale_id,
        timestamp_iso="2024-05-01T10:00:00+00:00",
        product_id=product_id,
        product_name=name or product_id,
        selling_price=Decimal(price),
        quantity=quantity,
        payment_type="cash",
        cost_snapshot=snapshot,
    )


def test_per_unit_summary_rolls_up_snapshots():
    sales = [
        _sale("S1", "P1", "120", cost="15.60"),
        _sale("S2", "P1", "240", quantity=2, cost="31.20"),
    ]

    summary = reporting.summarize(sales, CostingMode.PER_UNIT)

    assert summary.total_revenue == Decimal("360")
    assert summary.total_cost == Decimal("46.80")
    assert summary.net_profit == Decimal("313.20")
    assert summary.items_sold == 3


def test_fixed_event_profit_ignores_ingredient_costs():
    """Only the sunk event cost is subtracted, whatever the snapshots say."""

    with_snapshots = [_sale("S1", "P1", "100", cost="40"), _sale("S2", "P2", "100", cost="90")]
    without = [_sale("S1", "P1", "100"), _sale("S2", "P2", "100")]

    first = reporting.summarize(with_snapshots, CostingMode.FIXED_EVENT, fixed_cost=Decimal("150"))
    second = reporting.summarize(without, CostingMode.FIXED_EVENT, fixed_cost=Decimal("150"))

    assert first.net_profit == second.net_profit == Decimal("50")
    assert first.total_cost == Decimal("150")


def test_fixed_event_profit_can_be_negative():
    summary = reporting.summarize([], CostingMode.FIXED_EVENT, fixed_cost=Decimal("500"))

    assert summary.total_revenue == Decimal("0")
    assert summary.net_profit == Decimal("-500")
    assert summary.items_sold == 0


def test_breakdown_groups_and_sorts_by_revenue():
    sales = [
        _sale("S1", "P1", "50", name="Tea"),
        _sale("S2", "P2", "240", quantity=2, name="Latte"),
        _sale("S3", "P1", "100", quantity=2, name="Tea"),
    ]

    rows = reporting.breakdown(sales)

    assert [(r.product_name, r.count, r.revenue) for r in rows] == [
        ("Latte", 2, Decimal("240")),
        ("Tea", 3, Decimal("150")),
    ]


def test_breakdown_of_no_sales_is_empty():
    assert reporting.breakdown([]) == []


@pytest.mark.parametrize(
    "amount, expected",
    [
        (Decimal("15.6"), "₱15.60"),
        (Decimal("1234.565"), "₱1,234.57"),
        (Decimal("-500"), "₱-500.00"),
    ],
)
def test_format_currency(amount, expected):
    assert reporting.format_currency(amount, "₱") == expected
