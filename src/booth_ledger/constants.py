"""Enumerations shared across Booth Ledger modules.

Centralises domain constants so that the data access layer (DAL), business
logic layer (BLL), and the CLI rely on a single source of truth for sheet
names, accounting modes, and other identifiers.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_CURRENCY_SYMBOL = "₱"
DEFAULT_THEME = "light"


class PaymentType(str, Enum):
    """Enumerate supported payment mechanisms for sales."""

    CASH = "cash"
    CARD = "card"
    E_WALLET = "e-wallet"


class CostingMode(str, Enum):
    """Select how cost is attributed to the sales of an event.

    ``PER_UNIT`` rolls up the ingredient cost snapshot captured on each sale.
    ``FIXED_EVENT`` treats the whole event as one sunk cost paid up front.
    """

    PER_UNIT = "per_unit"
    FIXED_EVENT = "fixed_event"


class EventStatus(str, Enum):
    """Lifecycle states of a selling session."""

    ACTIVE = "active"
    CLOSED = "closed"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    INGREDIENTS = "Ingredients"
    PRODUCTS = "Products"
    SALES = "Sales"
    DEMO_SALES = "DemoSales"
    LAST_SALE = "LastSale"
    STOCK_SNAPSHOT = "StockSnapshot"
    EVENT_COSTS = "EventCosts"
    ACTIVE_EVENT = "ActiveEvent"
    EVENT_HISTORY = "EventHistory"
    SETTINGS = "Settings"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_CURRENCY_SYMBOL",
    "DEFAULT_THEME",
    "PaymentType",
    "CostingMode",
    "EventStatus",
    "SheetName",
]
