"""Data access layer for Booth Ledger.

This module provides low-level helpers that read from and write to the booth
ledger workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the Excel file.
3. Sheet operations: loading structured records and replacing, appending, or
   removing rows. Every sheet is an independently addressable record set, and
   single-value slots (last sale, active event, event costs) are sheets that
   hold at most one data row.

Nested values such as recipes and cost snapshots are stored as JSON text in a
single cell. Decimals are encoded as strings inside that JSON so they survive
the round trip exactly.
"""


from __future__ import annotations

import configparser
import json
import os
import tempfile
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_CURRENCY_SYMBOL,
    DEFAULT_THEME,
    CostingMode,
    EventStatus,
    PaymentType,
    SheetName,
)


CONFIG_FILE_NAME = "config.ini"
INGREDIENTS_SHEET = SheetName.INGREDIENTS.value
PRODUCTS_SHEET = SheetName.PRODUCTS.value
SALES_SHEET = SheetName.SALES.value
DEMO_SALES_SHEET = SheetName.DEMO_SALES.value
LAST_SALE_SHEET = SheetName.LAST_SALE.value
STOCK_SNAPSHOT_SHEET = SheetName.STOCK_SNAPSHOT.value
EVENT_COSTS_SHEET = SheetName.EVENT_COSTS.value
ACTIVE_EVENT_SHEET = SheetName.ACTIVE_EVENT.value
EVENT_HISTORY_SHEET = SheetName.EVENT_HISTORY.value
SETTINGS_SHEET = SheetName.SETTINGS.value

SALE_COLUMNS: Tuple[str, ...] = (
    "SaleID",
    "Timestamp",
    "ProductID",
    "ProductName",
    "SellingPrice",
    "Quantity",
    "PaymentType",
    "CostSnapshot",
    "Recipe",
    "EventID",
)

EVENT_COLUMNS: Tuple[str, ...] = (
    "EventID",
    "Name",
    "StartedAt",
    "FixedCost",
    "PlannedOutput",
    "StartingInventory",
    "Status",
    "EndedAt",
    "TotalRevenue",
    "TotalCost",
    "NetProfit",
    "ItemsSold",
)

# Column layout for every managed worksheet, in sheet order.
SHEET_COLUMNS: Mapping[str, Tuple[str, ...]] = {
    INGREDIENTS_SHEET: (
        "IngredientID",
        "Name",
        "Unit",
        "TotalCost",
        "TotalQuantity",
        "RemainingQuantity",
        "LowStockThreshold",
    ),
    PRODUCTS_SHEET: ("ProductID", "ProductName", "SellingPrice", "IsActive", "Recipe"),
    SALES_SHEET: SALE_COLUMNS,
    DEMO_SALES_SHEET: SALE_COLUMNS,
    LAST_SALE_SHEET: SALE_COLUMNS,
    STOCK_SNAPSHOT_SHEET: ("IngredientID", "Quantity"),
    EVENT_COSTS_SHEET: ("TotalFixedCost", "Notes"),
    ACTIVE_EVENT_SHEET: EVENT_COLUMNS,
    EVENT_HISTORY_SHEET: EVENT_COLUMNS,
    SETTINGS_SHEET: ("Key", "Value"),
}

THEME_KEY = "Theme"
DEMO_MODE_KEY = "DemoMode"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    booth_name: str
    schema_version: str
    costing_mode: CostingMode
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL


@dataclass(frozen=True)
class IngredientRow:
    """In-memory view of a row from the ``Ingredients`` sheet.

    ``total_cost`` and ``total_quantity`` describe the batch purchase;
    ``remaining_quantity`` is the stock on hand. A ``None`` cost marks a
    pure-quantity ingredient. Unit cost is deliberately absent: it is always
    derived from the batch fields by :mod:`booth_ledger.costing`.
    """

    ingredient_id: str
    name: str
    unit: str
    total_cost: Optional[Decimal]
    total_quantity: Decimal
    remaining_quantity: Decimal
    low_stock_threshold: Optional[Decimal] = None


@dataclass(frozen=True)
class RecipeItem:
    """One ``(ingredient, quantity-per-unit)`` pair of a product recipe."""

    ingredient_id: str
    quantity: Decimal


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    product_name: str
    selling_price: Decimal
    is_active: bool
    recipe: Tuple[RecipeItem, ...] = ()


@dataclass(frozen=True)
class CostLine:
    """Ingredient cost captured for one recipe line at the moment of sale."""

    ingredient_id: str
    ingredient_name: str
    quantity: Decimal
    unit: str
    unit_cost: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a row from the ``Sales`` (or ``DemoSales``) sheet."""

    sale_id: str
    timestamp_iso: str
    product_id: str
    product_name: str
    selling_price: Decimal
    quantity: int
    payment_type: str
    cost_snapshot: Optional[Tuple[CostLine, ...]] = None
    recipe: Tuple[RecipeItem, ...] = ()
    event_id: Optional[str] = None


@dataclass(frozen=True)
class EventRow:
    """In-memory view of an active or closed selling session."""

    event_id: str
    name: str
    started_at: str
    fixed_cost: Decimal
    planned_output: Optional[int]
    starting_inventory: Dict[str, Decimal] = field(default_factory=dict)
    status: str = EventStatus.ACTIVE.value
    ended_at: Optional[str] = None
    total_revenue: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    net_profit: Optional[Decimal] = None
    items_sold: Optional[int] = None


@dataclass(frozen=True)
class EventCosts:
    """Standing fixed cost used when no event overrides it."""

    total_fixed_cost: Decimal = Decimal("0")
    notes: str = ""


@dataclass(frozen=True)
class AppSettings:
    """Operator preferences stored alongside the ledger."""

    theme: str = DEFAULT_THEME
    demo_mode: bool = False


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. When no explicit path is given the function
    walks up from the current working directory toward the filesystem root
    looking for a file named ``CONFIG_FILE_NAME``. The first match wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Required options live under ``[System]`` (``DataFile``, ``BoothName``,
    ``SchemaVersion``) and ``[Accounting]`` (``CostingMode``). The optional
    ``CurrencySymbol`` falls back to the package default. Relative data file
    paths are anchored at ``base_path`` (or the current working directory).

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve a relative
            ``DataFile`` entry.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If ``CostingMode`` names an unknown accounting model.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        booth_name = parser.get("System", "BoothName")
        schema_version = parser.get("System", "SchemaVersion")
        costing_mode_raw = parser.get("Accounting", "CostingMode")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    currency_symbol = parser.get(
        "Accounting", "CurrencySymbol", fallback=DEFAULT_CURRENCY_SYMBOL)

    try:
        costing_mode = CostingMode(costing_mode_raw.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unknown costing mode: {costing_mode_raw}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        booth_name=booth_name,
        schema_version=schema_version,
        costing_mode=costing_mode,
        currency_symbol=currency_symbol,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the ledger workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the ledger workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at an explicitly provided destination.

    The workbook is written to a temporary file beside ``destination`` and
    moved into place only once the write has completed, so a failed save
    leaves the previous file intact. Parent directories are created on demand.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the serialized
            workbook.

    Raises:
        OSError: If the temporary file cannot be written or moved into place.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        dir=dest.parent, prefix=f".{dest.stem}-", suffix=".xlsx", delete=False
    ) as handle:
        tmp_path = Path(handle.name)
    try:
        if dest.exists():
            os.chmod(tmp_path, dest.stat().st_mode)
        workbook.save(tmp_path)
        os.replace(tmp_path, dest)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_raw_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    """Yield the data rows of ``sheet_name``, skipping header and empty rows."""

    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield raw


def _replace_rows(workbook: Workbook, sheet_name: str, rows: Iterable[Sequence[object]]) -> None:
    """Drop every data row of ``sheet_name`` and append ``rows`` in order."""

    sheet = workbook[sheet_name]
    if sheet.max_row > 1:
        sheet.delete_rows(2, sheet.max_row - 1)
    for row in rows:
        sheet.append(list(row))


def _read_single_row(workbook: Workbook, sheet_name: str) -> Optional[Sequence[object]]:
    """Return the only data row of a single-value slot sheet, if present."""

    for raw in _iter_raw_rows(workbook, sheet_name):
        return raw
    return None


def iter_ingredients(workbook: Workbook) -> Iterable[IngredientRow]:
    """Iterate over ingredient records stored on the ``Ingredients`` worksheet.

    Args:
        workbook (Workbook): Workbook containing the ``Ingredients`` sheet.

    Yields:
        IngredientRow: One structured row for each populated record.
    """

    for raw in _iter_raw_rows(workbook, INGREDIENTS_SHEET):
        yield deserialize_ingredient(raw)


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet.

    Recipes are decoded from the JSON text in the ``Recipe`` column.

    Args:
        workbook (Workbook): Workbook containing the ``Products`` sheet.

    Yields:
        ProductRow: One structured row for each populated record.
    """

    for raw in _iter_raw_rows(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_sales(workbook: Workbook, *, sheet_name: str = SALES_SHEET) -> Iterable[SaleRow]:
    """Stream sale records in the order they were committed.

    Args:
        workbook (Workbook): Workbook containing the sales sheets.
        sheet_name (str): ``Sales`` for the real log or ``DemoSales`` for the
            dry-run log.

    Yields:
        SaleRow: Normalized sale record for each populated row.
    """

    for raw in _iter_raw_rows(workbook, sheet_name):
        yield deserialize_sale(raw)


def iter_event_history(workbook: Workbook) -> Iterable[EventRow]:
    """Stream closed events from the append-only ``EventHistory`` sheet."""

    for raw in _iter_raw_rows(workbook, EVENT_HISTORY_SHEET):
        yield deserialize_event(raw)


def write_ingredients(workbook: Workbook, records: Iterable[IngredientRow]) -> None:
    """Replace the ``Ingredients`` sheet contents with ``records``."""

    _replace_rows(workbook, INGREDIENTS_SHEET, (serialize_ingredient(r) for r in records))


def write_products(workbook: Workbook, records: Iterable[ProductRow]) -> None:
    """Replace the ``Products`` sheet contents with ``records``."""

    _replace_rows(workbook, PRODUCTS_SHEET, (serialize_product(r) for r in records))


def write_sales(workbook: Workbook, records: Iterable[SaleRow], *, sheet_name: str = SALES_SHEET) -> None:
    """Replace a sales log wholesale; used by import and event resets."""

    _replace_rows(workbook, sheet_name, (serialize_sale(r) for r in records))


def append_sale(workbook: Workbook, record: SaleRow, *, sheet_name: str = SALES_SHEET) -> None:
    """Append a sale record to the end of a sales log.

    Args:
        workbook (Workbook): Workbook containing the sales log.
        record (SaleRow): Sale to persist.
        sheet_name (str): Target log, ``Sales`` unless recording a demo sale.
    """

    sheet = workbook[sheet_name]
    sheet.append(serialize_sale(record))


def delete_sale(workbook: Workbook, sale_id: str, *, sheet_name: str = SALES_SHEET) -> bool:
    """Remove the row whose ``SaleID`` matches ``sale_id``.

    Returns:
        bool: ``True`` when a row was removed, ``False`` when no row matched.
    """

    row_index = locate_row(workbook, sheet_name, "SaleID", sale_id)
    if row_index is None:
        return False
    workbook[sheet_name].delete_rows(row_index, 1)
    return True


def append_event_history(workbook: Workbook, record: EventRow) -> None:
    """Append a closed event to the ``EventHistory`` sheet."""

    workbook[EVENT_HISTORY_SHEET].append(serialize_event(record))


def read_last_sale(workbook: Workbook) -> Optional[SaleRow]:
    """Return the sale held in the ``LastSale`` slot, or ``None``."""

    raw = _read_single_row(workbook, LAST_SALE_SHEET)
    return deserialize_sale(raw) if raw is not None else None


def write_last_sale(workbook: Workbook, record: SaleRow) -> None:
    """Overwrite the ``LastSale`` slot with ``record``."""

    _replace_rows(workbook, LAST_SALE_SHEET, [serialize_sale(record)])


def clear_last_sale(workbook: Workbook) -> None:
    """Empty the ``LastSale`` slot."""

    _replace_rows(workbook, LAST_SALE_SHEET, [])


def read_active_event(workbook: Workbook) -> Optional[EventRow]:
    """Return the event held in the ``ActiveEvent`` slot, or ``None``."""

    raw = _read_single_row(workbook, ACTIVE_EVENT_SHEET)
    return deserialize_event(raw) if raw is not None else None


def write_active_event(workbook: Workbook, record: EventRow) -> None:
    """Overwrite the ``ActiveEvent`` slot with ``record``."""

    _replace_rows(workbook, ACTIVE_EVENT_SHEET, [serialize_event(record)])


def clear_active_event(workbook: Workbook) -> None:
    """Empty the ``ActiveEvent`` slot."""

    _replace_rows(workbook, ACTIVE_EVENT_SHEET, [])


def read_stock_snapshot(workbook: Workbook) -> Optional[Dict[str, Decimal]]:
    """Return the stored ``ingredient_id -> quantity`` snapshot.

    Returns:
        dict[str, Decimal] | None: ``None`` when no snapshot has been taken.
    """

    rows = list(_iter_raw_rows(workbook, STOCK_SNAPSHOT_SHEET))
    if not rows:
        return None
    return {str(raw[0]): _to_decimal(raw[1], Decimal("0")) for raw in rows}


def write_stock_snapshot(workbook: Workbook, snapshot: Mapping[str, Decimal]) -> None:
    """Replace the stored stock snapshot."""

    _replace_rows(
        workbook,
        STOCK_SNAPSHOT_SHEET,
        ([ingredient_id, quantity] for ingredient_id, quantity in snapshot.items()),
    )


def read_event_costs(workbook: Workbook) -> EventCosts:
    """Return the standing event costs, defaulting to zero."""

    raw = _read_single_row(workbook, EVENT_COSTS_SHEET)
    if raw is None:
        return EventCosts()
    total_raw, notes = (list(raw) + [None, None])[:2]
    return EventCosts(
        total_fixed_cost=_to_decimal(total_raw, Decimal("0")),
        notes=str(notes) if notes is not None else "",
    )


def write_event_costs(workbook: Workbook, costs: EventCosts) -> None:
    """Overwrite the standing event costs."""

    _replace_rows(workbook, EVENT_COSTS_SHEET, [[costs.total_fixed_cost, costs.notes]])


def read_settings(workbook: Workbook) -> AppSettings:
    """Return the operator settings stored as key/value rows."""

    values = {str(raw[0]): raw[1] for raw in _iter_raw_rows(workbook, SETTINGS_SHEET)}
    theme = values.get(THEME_KEY)
    return AppSettings(
        theme=str(theme) if theme else DEFAULT_THEME,
        demo_mode=_to_bool(values.get(DEMO_MODE_KEY)),
    )


def write_settings(workbook: Workbook, settings: AppSettings) -> None:
    """Overwrite the operator settings."""

    _replace_rows(
        workbook,
        SETTINGS_SHEET,
        [[THEME_KEY, settings.theme], [DEMO_MODE_KEY, settings.demo_mode]],
    )


def clear_sheet(workbook: Workbook, sheet_name: str) -> None:
    """Remove every data row from ``sheet_name`` while keeping its header."""

    _replace_rows(workbook, sheet_name, [])


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the column that stores the
            lookup key.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value == key_value:
            return row_idx

    return None


def _to_decimal(raw: object, default: Optional[Decimal] = None) -> Optional[Decimal]:
    if raw is None or raw == "":
        return default
    return Decimal(str(raw))


def _to_optional_str(raw: object) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return str(raw)


def _to_bool(raw: object) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return bool(raw)


def encode_recipe(recipe: Iterable[RecipeItem]) -> str:
    """Encode a recipe as the JSON text stored in a ``Recipe`` cell."""

    return json.dumps(
        [{"ingredientId": item.ingredient_id, "quantity": str(item.quantity)} for item in recipe]
    )


def decode_recipe(raw: object) -> Tuple[RecipeItem, ...]:
    """Decode the JSON text of a ``Recipe`` cell; blank cells mean no recipe."""

    if raw is None or raw == "":
        return ()
    entries: List[Dict[str, Any]] = json.loads(str(raw))
    return tuple(
        RecipeItem(ingredient_id=str(entry["ingredientId"]), quantity=Decimal(str(entry["quantity"])))
        for entry in entries
    )


def encode_cost_snapshot(snapshot: Optional[Iterable[CostLine]]) -> Optional[str]:
    """Encode a sale's cost snapshot; ``None`` stays an empty cell."""

    if snapshot is None:
        return None
    return json.dumps(
        [
            {
                "ingredientId": line.ingredient_id,
                "ingredientName": line.ingredient_name,
                "quantity": str(line.quantity),
                "unit": line.unit,
                "unitCost": str(line.unit_cost),
                "totalCost": str(line.total_cost),
            }
            for line in snapshot
        ]
    )


def decode_cost_snapshot(raw: object) -> Optional[Tuple[CostLine, ...]]:
    """Decode a ``CostSnapshot`` cell into immutable :class:`CostLine` tuples."""

    if raw is None or raw == "":
        return None
    entries: List[Dict[str, Any]] = json.loads(str(raw))
    return tuple(
        CostLine(
            ingredient_id=str(entry["ingredientId"]),
            ingredient_name=str(entry.get("ingredientName", "")),
            quantity=Decimal(str(entry["quantity"])),
            unit=str(entry.get("unit", "")),
            unit_cost=Decimal(str(entry["unitCost"])),
            total_cost=Decimal(str(entry["totalCost"])),
        )
        for entry in entries
    )


def serialize_ingredient(record: IngredientRow) -> list[object]:
    """Convert an ingredient dataclass into the worksheet column ordering.

    Returns:
        list[object]: ``[IngredientID, Name, Unit, TotalCost, TotalQuantity,
        RemainingQuantity, LowStockThreshold]``.
    """

    return [
        record.ingredient_id,
        record.name,
        record.unit,
        record.total_cost,
        record.total_quantity,
        record.remaining_quantity,
        record.low_stock_threshold,
    ]


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering.

    Returns:
        list[object]: ``[ProductID, ProductName, SellingPrice, IsActive,
        Recipe]`` with the recipe encoded as JSON text.
    """

    return [
        record.product_id,
        record.product_name,
        record.selling_price,
        record.is_active,
        encode_recipe(record.recipe),
    ]


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale dataclass into the sales log column order."""

    return [
        record.sale_id,
        record.timestamp_iso,
        record.product_id,
        record.product_name,
        record.selling_price,
        record.quantity,
        record.payment_type,
        encode_cost_snapshot(record.cost_snapshot),
        encode_recipe(record.recipe),
        record.event_id,
    ]


def serialize_event(record: EventRow) -> list[object]:
    """Convert an event dataclass into the event sheet column order."""

    return [
        record.event_id,
        record.name,
        record.started_at,
        record.fixed_cost,
        record.planned_output,
        json.dumps({key: str(value) for key, value in record.starting_inventory.items()}),
        record.status,
        record.ended_at,
        record.total_revenue,
        record.total_cost,
        record.net_profit,
        record.items_sold,
    ]


def deserialize_ingredient(raw_row: Sequence[object]) -> IngredientRow:
    """Convert a raw worksheet row into a strongly typed ingredient record.

    Numeric values become :class:`~decimal.Decimal` instances; a blank
    ``TotalCost`` keeps the ingredient in pure-quantity mode and a blank
    ``RemainingQuantity`` falls back to the batch quantity.
    """

    (
        ingredient_id,
        name,
        unit,
        total_cost_raw,
        total_quantity_raw,
        remaining_raw,
        threshold_raw,
    ) = (list(raw_row) + [None] * 7)[:7]

    total_quantity = _to_decimal(total_quantity_raw, Decimal("0"))
    return IngredientRow(
        ingredient_id=str(ingredient_id),
        name=str(name) if name is not None else "",
        unit=str(unit) if unit is not None else "",
        total_cost=_to_decimal(total_cost_raw),
        total_quantity=total_quantity,
        remaining_quantity=_to_decimal(remaining_raw, total_quantity),
        low_stock_threshold=_to_decimal(threshold_raw),
    )


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    The converter normalizes the price into a :class:`~decimal.Decimal`,
    coerces id/name fields to ``str`` to avoid surprises caused by Excel
    interpreting numbers, and decodes the recipe JSON.
    """

    product_id, product_name, price_raw, is_active, recipe_raw = (list(raw_row) + [None] * 5)[:5]

    return ProductRow(
        product_id=str(product_id),
        product_name=str(product_name),
        selling_price=_to_decimal(price_raw, Decimal("0.00")),
        is_active=_to_bool(is_active),
        recipe=decode_recipe(recipe_raw),
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    """Convert a raw worksheet row into a strongly typed sale record.

    A blank ``Quantity`` defaults to ``1`` and a blank ``PaymentType`` to cash
    so that rows written by older ledgers still load.
    """

    (
        sale_id,
        timestamp_iso,
        product_id,
        product_name,
        price_raw,
        quantity_raw,
        payment_type,
        snapshot_raw,
        recipe_raw,
        event_id,
    ) = (list(raw_row) + [None] * 10)[:10]

    return SaleRow(
        sale_id=str(sale_id),
        timestamp_iso=str(timestamp_iso) if timestamp_iso is not None else "",
        product_id=str(product_id),
        product_name=str(product_name) if product_name is not None else "",
        selling_price=_to_decimal(price_raw, Decimal("0.00")),
        quantity=int(quantity_raw) if quantity_raw not in (None, "") else 1,
        payment_type=str(payment_type) if payment_type else PaymentType.CASH.value,
        cost_snapshot=decode_cost_snapshot(snapshot_raw),
        recipe=decode_recipe(recipe_raw),
        event_id=_to_optional_str(event_id),
    )


def deserialize_event(raw_row: Sequence[object]) -> EventRow:
    """Convert a raw worksheet row into a strongly typed event record."""

    (
        event_id,
        name,
        started_at,
        fixed_cost_raw,
        planned_raw,
        inventory_raw,
        status,
        ended_at,
        revenue_raw,
        cost_raw,
        profit_raw,
        items_raw,
    ) = (list(raw_row) + [None] * 12)[:12]

    starting_inventory: Dict[str, Decimal] = {}
    if inventory_raw not in (None, ""):
        starting_inventory = {
            str(key): Decimal(str(value)) for key, value in json.loads(str(inventory_raw)).items()
        }

    return EventRow(
        event_id=str(event_id),
        name=str(name) if name is not None else "",
        started_at=str(started_at) if started_at is not None else "",
        fixed_cost=_to_decimal(fixed_cost_raw, Decimal("0")),
        planned_output=int(planned_raw) if planned_raw not in (None, "") else None,
        starting_inventory=starting_inventory,
        status=str(status) if status else EventStatus.ACTIVE.value,
        ended_at=_to_optional_str(ended_at),
        total_revenue=_to_decimal(revenue_raw),
        total_cost=_to_decimal(cost_raw),
        net_profit=_to_decimal(profit_raw),
        items_sold=int(items_raw) if items_raw not in (None, "") else None,
    )


def log_sheet_counts(workbook: Workbook) -> None:
    """Emit a DEBUG line with the number of data rows per managed sheet."""

    counts = {name: sum(1 for _ in _iter_raw_rows(workbook, name)) for name in SHEET_COLUMNS}
    log.debug("Workbook sheet row counts: %s", counts)
