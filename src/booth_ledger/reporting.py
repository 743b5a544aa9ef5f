"""Accounting and reporting over a list of committed sales.

Two accounting models are supported and the caller always names the one in
force:

* ``CostingMode.PER_UNIT``: cost is the sum of the ingredient cost snapshots
  frozen on each sale.
* ``CostingMode.FIXED_EVENT``: cost is one sunk amount for the whole event.
  It is never spread per unit, so profit is simply revenue minus that amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List

from . import log
from .constants import CostingMode
from .costing import snapshot_total
from .data_manager import SaleRow


ZERO = Decimal("0")
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ProfitSummary:
    """Revenue, cost and profit of the sales in scope.

    ``total_cost`` holds the snapshot rollup in per-unit mode and the fixed
    event cost in fixed-event mode.
    """

    mode: CostingMode
    total_revenue: Decimal
    total_cost: Decimal
    net_profit: Decimal
    items_sold: int


@dataclass(frozen=True)
class ProductBreakdown:
    """Units sold and revenue of one product."""

    product_id: str
    product_name: str
    count: int
    revenue: Decimal


def total_revenue(sales: Iterable[SaleRow]) -> Decimal:
    """Sum of charged amounts; ``selling_price`` is already quantity-multiplied."""

    return sum((sale.selling_price for sale in sales), ZERO)


def items_sold(sales: Iterable[SaleRow]) -> int:
    """Total units sold across ``sales``."""

    return sum(sale.quantity or 1 for sale in sales)


def summarize(sales: Iterable[SaleRow], mode: CostingMode, *, fixed_cost: Decimal = ZERO) -> ProfitSummary:
    """Aggregate ``sales`` under the requested accounting model.

    Args:
        sales (Iterable[SaleRow]): Sales in scope.
        mode (CostingMode): Accounting model to apply.
        fixed_cost (Decimal): Sunk cost of the event; only used in
            fixed-event mode.

    Returns:
        ProfitSummary: Totals for the report.
    """

    sales = list(sales)
    revenue = total_revenue(sales)
    mode = CostingMode(mode)
    if mode is CostingMode.FIXED_EVENT:
        cost = fixed_cost
    else:
        cost = sum((snapshot_total(sale.cost_snapshot) for sale in sales), ZERO)
    summary = ProfitSummary(
        mode=mode,
        total_revenue=revenue,
        total_cost=cost,
        net_profit=revenue - cost,
        items_sold=items_sold(sales),
    )
    log.debug(
        "Calculated %s summary: revenue=%s cost=%s profit=%s items=%d",
        mode.value,
        summary.total_revenue,
        summary.total_cost,
        summary.net_profit,
        summary.items_sold,
    )
    return summary


def breakdown(sales: Iterable[SaleRow]) -> List[ProductBreakdown]:
    """Group sales by product, highest revenue first.

    ``count`` sums quantities, not transactions. The product name is taken
    from the first sale seen, so renames after the fact do not split a group.
    """

    names: Dict[str, str] = {}
    counts: Dict[str, int] = {}
    revenues: Dict[str, Decimal] = {}
    for sale in sales:
        names.setdefault(sale.product_id, sale.product_name)
        counts[sale.product_id] = counts.get(sale.product_id, 0) + (sale.quantity or 1)
        revenues[sale.product_id] = revenues.get(sale.product_id, ZERO) + sale.selling_price

    rows = [
        ProductBreakdown(
            product_id=product_id,
            product_name=names[product_id],
            count=counts[product_id],
            revenue=revenues[product_id],
        )
        for product_id in names
    ]
    rows.sort(key=lambda row: row.revenue, reverse=True)
    return rows


def format_currency(amount: Decimal, symbol: str) -> str:
    """Render ``amount`` in the booth's single display format."""

    return f"{symbol}{Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP):,}"
