"""Business logic layer for Booth Ledger.

This module orchestrates the ledger workbook: catalog maintenance, the
sale/undo state machine, event sessions, reporting, and export/import. It
consumes the Data Access Layer (DAL) for all I/O and delegates arithmetic to
the pure :mod:`costing`, :mod:`inventory` and :mod:`reporting` modules.

Mutations are staged in the in-memory workbook and only reach disk through
:func:`persist_context`, so a stock deduction and the sale that caused it are
always flushed together.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook

from . import costing, data_manager, inventory, log, reporting
from .constants import EXPECTED_SCHEMA_VERSION, CostingMode, EventStatus, PaymentType
from .data_manager import (
    AppSettings,
    CostLine,
    EventCosts,
    EventRow,
    IngredientRow,
    ProductRow,
    RecipeItem,
    SaleRow,
)
from .errors import (
    BusinessRuleViolation,
    DanglingReference,
    InsufficientStock,
    InvalidQuantity,
    MissingReferenceError,
    NoActiveEvent,
    NothingToUndo,
    PersistenceFailure,
)
from .inventory import StockChange


ZERO = Decimal("0")


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class ProductCosting:
    """Current cost and margin of one unit of a product."""

    product: ProductRow
    unit_cost: Decimal
    unit_margin: Decimal
    sellable: bool


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    Buckets hold row lists and lookup dictionaries loaded from the workbook.
    They never hold derived values such as unit costs, which are recomputed
    on every read.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state."""

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _sales_bucket_name(demo: bool) -> str:
    return "demo_sales" if demo else "sales"


def _sales_sheet(demo: bool) -> str:
    return data_manager.DEMO_SALES_SHEET if demo else data_manager.SALES_SHEET


def _ensure_ingredients_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the ingredient cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket containing ``all`` ingredients and a ``by_id``
            lookup dictionary.
    """

    bucket = _get_cache_bucket(context, "ingredients")
    if "all" not in bucket:
        all_ingredients = list(data_manager.iter_ingredients(context.workbook))
        bucket["all"] = all_ingredients
        bucket["by_id"] = inventory.index_by_id(all_ingredients)
        log.debug("Populated ingredients cache with %d entries", len(all_ingredients))
    return bucket


def _ensure_products_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the product cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket containing ``all`` products, ``active``
            products, and a ``by_id`` lookup dictionary.
    """

    bucket = _get_cache_bucket(context, "products")
    if "all" not in bucket:
        all_products = list(data_manager.iter_products(context.workbook))
        bucket["all"] = all_products
        bucket["active"] = [product for product in all_products if product.is_active]
        bucket["by_id"] = {product.product_id: product for product in all_products}
        log.debug(
            "Populated products cache with %d entries (%d active)",
            len(all_products),
            len(bucket["active"]),
        )
    return bucket


def _ensure_sales_cache(context: RuntimeContext, *, demo: bool = False) -> Dict[str, Any]:
    """Populate the real or demo sales cache bucket on demand."""

    bucket = _get_cache_bucket(context, _sales_bucket_name(demo))
    if "all" not in bucket:
        all_sales = list(data_manager.iter_sales(context.workbook, sheet_name=_sales_sheet(demo)))
        bucket["all"] = all_sales
        log.debug("Populated %s cache with %d entries", _sales_bucket_name(demo), len(all_sales))
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    data_manager.log_sheet_counts(workbook)
    log.info(
        "Loaded runtime context for workbook '%s' (costing mode %s)",
        settings.data_file,
        settings.costing_mode.value,
    )
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_ingredients(context: RuntimeContext) -> List[IngredientRow]:
    """Return the cached ingredient rows in sheet order."""
    return list(_ensure_ingredients_cache(context)["all"])


def get_ingredient(context: RuntimeContext, ingredient_id: str) -> IngredientRow:
    """Resolve an ingredient record by its identifier.

    Raises:
        MissingReferenceError: If ``ingredient_id`` is absent from the ledger.
    """
    cache = _ensure_ingredients_cache(context)
    try:
        return cache["by_id"][ingredient_id]
    except KeyError as exc:
        log.warning("Ingredient lookup failed for id '%s'", ingredient_id)
        raise MissingReferenceError(f"Unknown ingredient id: {ingredient_id}") from exc


def list_products(context: RuntimeContext, *, include_inactive: bool = False) -> List[ProductRow]:
    """Return cached product rows optionally filtered by active status.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        include_inactive (bool): When ``True`` the result includes inactive
            products. The default surfaces only products that can be sold.

    Returns:
        list[ProductRow]: Copy of the cached product dataset in sheet order.
    """
    cache = _ensure_products_cache(context)
    source = cache["all"] if include_inactive else cache["active"]
    return list(source)


def get_product(context: RuntimeContext, product_id: str) -> ProductRow:
    """Resolve a product record by its identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is absent from the ledger.
    """
    cache = _ensure_products_cache(context)
    try:
        return cache["by_id"][product_id]
    except KeyError as exc:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}") from exc


def list_sales(context: RuntimeContext, *, demo: bool = False) -> List[SaleRow]:
    """Return the current sales log (or the demo log) in commit order."""
    return list(_ensure_sales_cache(context, demo=demo)["all"])


def get_last_sale(context: RuntimeContext) -> Optional[SaleRow]:
    """Return the sale that a call to :func:`undo_last_sale` would reverse."""
    return data_manager.read_last_sale(context.workbook)


def get_active_event(context: RuntimeContext) -> Optional[EventRow]:
    """Return the currently active event, if any."""
    return data_manager.read_active_event(context.workbook)


def list_event_history(context: RuntimeContext) -> List[EventRow]:
    """Return closed events in the order they were closed."""
    return list(data_manager.iter_event_history(context.workbook))


def get_event_costs(context: RuntimeContext) -> EventCosts:
    return data_manager.read_event_costs(context.workbook)


def get_settings(context: RuntimeContext) -> AppSettings:
    return data_manager.read_settings(context.workbook)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def generate_id(*, prefix: str, when: Optional[datetime] = None) -> str:
    """Generate a sortable, collision-resistant record identifier.

    Args:
        prefix (str): Record designator, e.g. ``"S"`` for sales or ``"I"`` for
            ingredients.
        when (datetime | None): Timestamp used for the sortable part. When
            ``None`` the current UTC time is used.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}-{random}``.
    """
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}-{uuid.uuid4().hex[:6]}"


def require_sale_quantity(quantity: int) -> None:
    """Validate that a sale quantity is a whole number of at least one.

    Raises:
        InvalidQuantity: If ``quantity`` is below one or not an integer.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        log.error("Sale quantity validation failed: %s", quantity)
        raise InvalidQuantity("Sale quantity must be a whole number of at least 1")


def require_nonnegative_quantity(quantity: Optional[Decimal], *, label: str) -> None:
    """Validate that a stock quantity or threshold is zero or positive.

    Raises:
        InvalidQuantity: If ``quantity`` is negative.
    """
    if quantity is not None and quantity < ZERO:
        log.error("%s validation failed: %s", label, quantity)
        raise InvalidQuantity(f"{label} must be zero or positive")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def require_name(name: str, *, label: str) -> None:
    if not name or not name.strip():
        log.error("%s validation failed: empty name", label)
        raise ValueError(f"{label} must not be empty")


def validate_ingredient(record: IngredientRow) -> None:
    """Check the save-time invariants of an ingredient.

    A batch with a cost must have a positive quantity, otherwise its unit cost
    would be undefined.

    Raises:
        ValueError: If the name is empty or the cost is negative.
        InvalidQuantity: If any quantity or threshold is negative, or a costed
            batch has no quantity.
    """
    require_name(record.name, label="Ingredient name")
    require_nonnegative_quantity(record.total_quantity, label="Batch quantity")
    require_nonnegative_quantity(record.remaining_quantity, label="Remaining quantity")
    require_nonnegative_quantity(record.low_stock_threshold, label="Low-stock threshold")
    if record.total_cost is not None:
        require_nonnegative_money(record.total_cost)
        if record.total_quantity <= ZERO:
            log.error("Ingredient '%s' has a batch cost but no batch quantity", record.name)
            raise InvalidQuantity("Batch quantity must be greater than zero when a cost is given")


def validate_product(
    context: RuntimeContext,
    record: ProductRow,
    *,
    known_ingredients: Optional[Iterable[str]] = None,
) -> None:
    """Check the save-time invariants of a product.

    Recipe references are checked against ``known_ingredients`` when given,
    otherwise against the stored ingredients.

    Raises:
        ValueError: If the name is empty, the price negative, or the recipe
            empty.
        InvalidQuantity: If a recipe quantity is not positive.
        MissingReferenceError: If a recipe references an unknown ingredient.
    """
    require_name(record.product_name, label="Product name")
    require_nonnegative_money(record.selling_price)
    if not record.recipe:
        log.error("Product '%s' has an empty recipe", record.product_name)
        raise ValueError("Recipe must contain at least one ingredient")
    if known_ingredients is None:
        known = set(_ensure_ingredients_cache(context)["by_id"])
    else:
        known = set(known_ingredients)
    for item in record.recipe:
        if item.quantity <= ZERO:
            log.error("Recipe quantity validation failed: %s", item.quantity)
            raise InvalidQuantity("Recipe quantities must be greater than zero")
        if item.ingredient_id not in known:
            log.warning("Recipe references unknown ingredient '%s'", item.ingredient_id)
            raise MissingReferenceError(f"Unknown ingredient id: {item.ingredient_id}")


# ---------------------------------------------------------------------------
# Ingredients
# ---------------------------------------------------------------------------


def _write_ingredients(context: RuntimeContext, rows: Iterable[IngredientRow]) -> None:
    data_manager.write_ingredients(context.workbook, rows)
    _invalidate_cache(context, "ingredients")


def add_ingredient(
    context: RuntimeContext,
    *,
    name: str,
    unit: str,
    total_quantity: Decimal,
    total_cost: Optional[Decimal] = None,
    remaining_quantity: Optional[Decimal] = None,
    low_stock_threshold: Optional[Decimal] = None,
) -> IngredientRow:
    """Register a new ingredient batch.

    ``remaining_quantity`` defaults to the batch quantity, i.e. a freshly
    bought batch is fully on hand. Leaving ``total_cost`` as ``None`` tracks
    quantity only.

    Returns:
        IngredientRow: The stored ingredient with its generated id.
    """
    record = IngredientRow(
        ingredient_id=generate_id(prefix="I"),
        name=name.strip() if name else "",
        unit=unit,
        total_cost=total_cost,
        total_quantity=total_quantity,
        remaining_quantity=total_quantity if remaining_quantity is None else remaining_quantity,
        low_stock_threshold=low_stock_threshold,
    )
    validate_ingredient(record)
    _write_ingredients(context, [*list_ingredients(context), record])
    log.info("Added ingredient '%s' (%s)", record.name, record.ingredient_id)
    return record


INGREDIENT_FIELDS = frozenset(
    {"name", "unit", "total_cost", "total_quantity", "remaining_quantity", "low_stock_threshold"}
)


def update_ingredient(context: RuntimeContext, ingredient_id: str, **changes: Any) -> IngredientRow:
    """Apply field edits to an ingredient.

    Batch cost and batch quantity may be edited independently; costs derived
    from them change on the next read. Passing ``total_cost=None`` switches
    the ingredient to pure-quantity tracking.

    Raises:
        KeyError: If an unknown field is supplied.
        MissingReferenceError: If the ingredient does not exist.
    """
    unknown = set(changes) - INGREDIENT_FIELDS
    if unknown:
        raise KeyError(f"Unknown ingredient field: {', '.join(sorted(unknown))}")
    current = get_ingredient(context, ingredient_id)
    updated = replace(current, **changes)
    validate_ingredient(updated)
    _write_ingredients(
        context,
        [updated if row.ingredient_id == ingredient_id else row for row in list_ingredients(context)],
    )
    log.info("Updated ingredient '%s' (%s)", ingredient_id, ", ".join(sorted(changes)))
    return updated


def delete_ingredient(context: RuntimeContext, ingredient_id: str) -> IngredientRow:
    """Remove an ingredient that no product recipe uses.

    Raises:
        MissingReferenceError: If the ingredient does not exist.
        DanglingReference: If any product (active or not) still references it.
    """
    target = get_ingredient(context, ingredient_id)
    users = [
        product.product_name
        for product in list_products(context, include_inactive=True)
        if any(item.ingredient_id == ingredient_id for item in product.recipe)
    ]
    if users:
        log.warning("Refusing to delete ingredient '%s'; used by %s", ingredient_id, users)
        raise DanglingReference(f"Cannot delete '{target.name}'; used in: {', '.join(users)}")
    _write_ingredients(context, [row for row in list_ingredients(context) if row.ingredient_id != ingredient_id])
    log.info("Deleted ingredient '%s'", ingredient_id)
    return target


def list_low_stock(context: RuntimeContext) -> List[IngredientRow]:
    return inventory.low_stock(list_ingredients(context))


def take_stock_snapshot(context: RuntimeContext) -> Dict[str, Decimal]:
    """Record current remaining quantities as the comparison baseline."""
    snapshot = inventory.take_snapshot(list_ingredients(context))
    data_manager.write_stock_snapshot(context.workbook, snapshot)
    log.debug("Took stock snapshot of %d ingredients", len(snapshot))
    return snapshot


def get_stock_changes(context: RuntimeContext) -> Dict[str, StockChange]:
    """Per-ingredient change since the last stock snapshot."""
    snapshot = data_manager.read_stock_snapshot(context.workbook)
    return inventory.stock_changes(list_ingredients(context), snapshot)


def adjust_stock(context: RuntimeContext, ingredient_id: str, delta: Decimal) -> Decimal:
    """Add (positive ``delta``) or remove (negative) stock by hand.

    The stock snapshot is re-taken afterwards so later change reports start
    from the adjusted level.

    Returns:
        Decimal: The new remaining quantity.
    """
    current = get_ingredient(context, ingredient_id)
    adjusted = inventory.adjust_quantity(current, delta)
    _write_ingredients(
        context,
        [adjusted if row.ingredient_id == ingredient_id else row for row in list_ingredients(context)],
    )
    take_stock_snapshot(context)
    log.info(
        "Adjusted stock of '%s' by %s (now %s %s)",
        current.name,
        delta,
        adjusted.remaining_quantity,
        adjusted.unit,
    )
    return adjusted.remaining_quantity


def restock_low_stock(
    context: RuntimeContext,
    targets: Optional[Mapping[str, Decimal]] = None,
) -> List[IngredientRow]:
    """Refill every low-stock ingredient to its target or batch quantity.

    Returns:
        list[IngredientRow]: The ingredients that were refilled.
    """
    before = {row.ingredient_id: row for row in list_ingredients(context)}
    unknown = set(targets or {}) - set(before)
    if unknown:
        raise MissingReferenceError(f"Unknown ingredient id: {', '.join(sorted(unknown))}")
    refilled = inventory.restock_targets(list(before.values()), targets)
    changed = [row for row in refilled if row != before[row.ingredient_id]]
    if not changed:
        log.info("No low-stock ingredients needed restocking")
        return []
    _write_ingredients(context, refilled)
    take_stock_snapshot(context)
    log.info("Restocked %d low-stock ingredient(s)", len(changed))
    return changed


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def _write_products(context: RuntimeContext, rows: Iterable[ProductRow]) -> None:
    data_manager.write_products(context.workbook, rows)
    _invalidate_cache(context, "products")


def add_product(
    context: RuntimeContext,
    *,
    product_name: str,
    selling_price: Decimal,
    recipe: Sequence[RecipeItem],
    is_active: bool = True,
) -> ProductRow:
    """Register a new product. No cost is stored; it is derived on demand."""
    record = ProductRow(
        product_id=generate_id(prefix="P"),
        product_name=product_name.strip() if product_name else "",
        selling_price=selling_price,
        is_active=is_active,
        recipe=tuple(recipe),
    )
    validate_product(context, record)
    _write_products(context, [*list_products(context, include_inactive=True), record])
    log.info("Added product '%s' (%s)", record.product_name, record.product_id)
    return record


PRODUCT_FIELDS = frozenset({"product_name", "selling_price", "is_active", "recipe"})


def update_product(context: RuntimeContext, product_id: str, **changes: Any) -> ProductRow:
    """Apply field edits to a product.

    Recipe edits do not affect sales already recorded; each sale carries its
    own recipe snapshot.

    Raises:
        KeyError: If an unknown field is supplied.
        MissingReferenceError: If the product does not exist.
    """
    unknown = set(changes) - PRODUCT_FIELDS
    if unknown:
        raise KeyError(f"Unknown product field: {', '.join(sorted(unknown))}")
    if "recipe" in changes:
        changes["recipe"] = tuple(changes["recipe"])
    current = get_product(context, product_id)
    updated = replace(current, **changes)
    validate_product(context, updated)
    _write_products(
        context,
        [updated if row.product_id == product_id else row for row in list_products(context, include_inactive=True)],
    )
    log.info("Updated product '%s' (%s)", product_id, ", ".join(sorted(changes)))
    return updated


def delete_product(context: RuntimeContext, product_id: str) -> ProductRow:
    """Remove a product. Stock and recorded sales are untouched."""
    target = get_product(context, product_id)
    _write_products(
        context,
        [row for row in list_products(context, include_inactive=True) if row.product_id != product_id],
    )
    log.info("Deleted product '%s'", product_id)
    return target


def describe_product_costs(context: RuntimeContext, *, include_inactive: bool = True) -> List[ProductCosting]:
    """Current unit cost, margin and sellability of every product."""
    by_id = _ensure_ingredients_cache(context)["by_id"]
    return [
        ProductCosting(
            product=product,
            unit_cost=costing.product_cost(product.recipe, by_id),
            unit_margin=costing.unit_margin(product, by_id),
            sellable=inventory.can_sell(product, by_id),
        )
        for product in list_products(context, include_inactive=include_inactive)
    ]


# ---------------------------------------------------------------------------
# Sale / undo
# ---------------------------------------------------------------------------


def can_sell(context: RuntimeContext, product_id: str, quantity: int = 1) -> bool:
    """Report whether ``quantity`` units of ``product_id`` can be sold now."""
    product = _ensure_products_cache(context)["by_id"].get(product_id)
    return inventory.can_sell(product, _ensure_ingredients_cache(context)["by_id"], quantity)


def _validate_sale_request(
    context: RuntimeContext,
    product_id: str,
    quantity: int,
    mode: CostingMode,
) -> tuple[ProductRow, Optional[EventRow]]:
    """Run the checks shared by real and demo sales, in order.

    Raises:
        NoActiveEvent: In fixed-event mode without an active event.
        InvalidQuantity: If ``quantity`` is below one.
        MissingReferenceError: If the product is unknown.
        BusinessRuleViolation: If the product is inactive.
        InsufficientStock: If a recipe ingredient is short.
    """
    mode = CostingMode(mode)
    event = get_active_event(context)
    if mode is CostingMode.FIXED_EVENT and (event is None or event.status != EventStatus.ACTIVE.value):
        log.warning("Sale of '%s' rejected: no active event", product_id)
        raise NoActiveEvent("No active event; start an event before selling")
    require_sale_quantity(quantity)
    product = get_product(context, product_id)
    if not product.is_active:
        log.warning("Attempted sale on inactive product '%s'", product_id)
        raise BusinessRuleViolation(f"Product '{product.product_name}' is inactive")
    if not inventory.can_sell(product, _ensure_ingredients_cache(context)["by_id"], quantity):
        log.warning("Sale of %d x '%s' rejected: insufficient ingredients", quantity, product_id)
        raise InsufficientStock(f"Cannot sell {quantity} x '{product.product_name}': insufficient ingredients")
    return product, event


def build_sale(
    product: ProductRow,
    *,
    quantity: int,
    payment_type: PaymentType,
    timestamp: datetime,
    cost_snapshot: Optional[Sequence[CostLine]],
    event_id: Optional[str],
) -> SaleRow:
    """Materialize an immutable sale record from the product as sold.

    The product name, charged amount and recipe are copied so the record
    survives later renames, price changes and recipe edits.
    """
    return SaleRow(
        sale_id=generate_id(prefix="S", when=timestamp),
        timestamp_iso=timestamp.isoformat(),
        product_id=product.product_id,
        product_name=product.product_name,
        selling_price=product.selling_price * quantity,
        quantity=quantity,
        payment_type=PaymentType(payment_type).value,
        cost_snapshot=tuple(cost_snapshot) if cost_snapshot is not None else None,
        recipe=product.recipe,
        event_id=event_id,
    )


def _commit_sale(context: RuntimeContext, ingredients: List[IngredientRow], sale: SaleRow) -> None:
    """Write the deducted stock, the sale and the last-sale slot as one unit.

    On any failure the in-memory workbook is rolled back to its prior state.
    """
    workbook = context.workbook
    previous_ingredients = list_ingredients(context)
    previous_last_sale = data_manager.read_last_sale(workbook)
    try:
        data_manager.write_ingredients(workbook, ingredients)
        data_manager.append_sale(workbook, sale)
        data_manager.write_last_sale(workbook, sale)
    except Exception as exc:
        log.error("Sale '%s' could not be recorded; rolling back: %s", sale.sale_id, exc)
        data_manager.write_ingredients(workbook, previous_ingredients)
        data_manager.delete_sale(workbook, sale.sale_id)
        if previous_last_sale is None:
            data_manager.clear_last_sale(workbook)
        else:
            data_manager.write_last_sale(workbook, previous_last_sale)
        raise PersistenceFailure(f"Sale could not be recorded: {exc}") from exc
    finally:
        _invalidate_cache(context, "ingredients", "sales")


def process_sale(
    context: RuntimeContext,
    product_id: str,
    quantity: int = 1,
    *,
    mode: CostingMode,
    payment_type: PaymentType = PaymentType.CASH,
    timestamp: Optional[datetime] = None,
) -> SaleRow:
    """Validate, deduct stock for, and record one sale.

    In per-unit mode the ingredient cost snapshot is built from the stock as
    it stands before deduction. In fixed-event mode only revenue is recorded
    and an active event is mandatory. The sale becomes the last sale, the one
    :func:`undo_last_sale` would reverse.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        product_id (str): Product to sell.
        quantity (int): Units sold in this transaction.
        mode (CostingMode): Accounting model in force.
        payment_type (PaymentType): How the customer paid.
        timestamp (datetime | None): Commit time; defaults to now (UTC).

    Returns:
        SaleRow: The committed sale.

    Raises:
        NoActiveEvent, InvalidQuantity, MissingReferenceError,
        BusinessRuleViolation, InsufficientStock: See
            :func:`_validate_sale_request`.
        PersistenceFailure: If the sale could not be written.
    """
    mode = CostingMode(mode)
    product, event = _validate_sale_request(context, product_id, quantity, mode)
    ingredients = list_ingredients(context)
    by_id = inventory.index_by_id(ingredients)

    snapshot = None
    if mode is CostingMode.PER_UNIT:
        snapshot = costing.build_cost_snapshot(product.recipe, by_id, quantity)

    deducted = inventory.deduct(ingredients, product.recipe, quantity)
    sale = build_sale(
        product,
        quantity=quantity,
        payment_type=payment_type,
        timestamp=_resolve_timestamp(timestamp),
        cost_snapshot=snapshot,
        event_id=event.event_id if event is not None else None,
    )
    _commit_sale(context, deducted, sale)
    log.info(
        "Recorded sale '%s' of %d x '%s' (revenue=%s, cost=%s)",
        sale.sale_id,
        quantity,
        product.product_name,
        sale.selling_price,
        costing.snapshot_total(sale.cost_snapshot),
    )
    return sale


def undo_last_sale(context: RuntimeContext) -> SaleRow:
    """Reverse the most recent sale exactly once.

    Stock is restored from the recipe snapshot stored on the sale, so recipe
    edits made after the sale do not distort the restoration. Sales loaded
    without a snapshot fall back to the product's current recipe.

    Returns:
        SaleRow: The sale that was removed.

    Raises:
        NothingToUndo: If no last sale is recorded.
        PersistenceFailure: If the reversal could not be written.
    """
    last_sale = get_last_sale(context)
    if last_sale is None:
        log.warning("Undo requested with no last sale")
        raise NothingToUndo("No sale to undo")

    recipe = last_sale.recipe
    if not recipe:
        product = _ensure_products_cache(context)["by_id"].get(last_sale.product_id)
        if product is not None:
            log.warning(
                "Sale '%s' has no recipe snapshot; restoring from the current recipe of '%s'",
                last_sale.sale_id,
                product.product_name,
            )
            recipe = product.recipe
        else:
            log.warning("Sale '%s' has no recipe snapshot and its product is gone; stock not restored", last_sale.sale_id)

    ingredients = list_ingredients(context)
    previous_sales = list_sales(context)
    restored = inventory.restore(ingredients, recipe, last_sale.quantity)
    workbook = context.workbook
    try:
        data_manager.write_ingredients(workbook, restored)
        removed = data_manager.delete_sale(workbook, last_sale.sale_id)
        data_manager.clear_last_sale(workbook)
    except Exception as exc:
        log.error("Undo of sale '%s' failed; rolling back: %s", last_sale.sale_id, exc)
        data_manager.write_ingredients(workbook, ingredients)
        data_manager.write_sales(workbook, previous_sales)
        data_manager.write_last_sale(workbook, last_sale)
        raise PersistenceFailure(f"Undo could not be recorded: {exc}") from exc
    finally:
        _invalidate_cache(context, "ingredients", "sales")

    if not removed:
        log.warning("Last sale '%s' was not present in the sales log", last_sale.sale_id)
    log.info("Undid sale '%s' of %d x '%s'", last_sale.sale_id, last_sale.quantity, last_sale.product_name)
    return last_sale


def process_demo_sale(
    context: RuntimeContext,
    product_id: str,
    quantity: int = 1,
    *,
    mode: CostingMode,
    payment_type: PaymentType = PaymentType.CASH,
    timestamp: Optional[datetime] = None,
) -> SaleRow:
    """Record a dry-run sale without touching stock or the real sales log.

    The same validation as :func:`process_sale` runs, then the sale-like entry
    goes to the separate demo log. The last-sale slot is left alone.
    """
    mode = CostingMode(mode)
    product, event = _validate_sale_request(context, product_id, quantity, mode)
    snapshot = None
    if mode is CostingMode.PER_UNIT:
        snapshot = costing.build_cost_snapshot(
            product.recipe, _ensure_ingredients_cache(context)["by_id"], quantity
        )
    sale = build_sale(
        product,
        quantity=quantity,
        payment_type=payment_type,
        timestamp=_resolve_timestamp(timestamp),
        cost_snapshot=snapshot,
        event_id=event.event_id if event is not None else None,
    )
    data_manager.append_sale(context.workbook, sale, sheet_name=data_manager.DEMO_SALES_SHEET)
    _invalidate_cache(context, "demo_sales")
    log.info("Recorded demo sale '%s' of %d x '%s'", sale.sale_id, quantity, product.product_name)
    return sale


def clear_demo_sales(context: RuntimeContext) -> None:
    data_manager.clear_sheet(context.workbook, data_manager.DEMO_SALES_SHEET)
    _invalidate_cache(context, "demo_sales")
    log.info("Cleared demo sales")


# ---------------------------------------------------------------------------
# Events and reporting
# ---------------------------------------------------------------------------


def set_event_costs(context: RuntimeContext, *, total_fixed_cost: Decimal, notes: str = "") -> EventCosts:
    """Store the standing fixed cost paid up front for an event."""
    require_nonnegative_money(total_fixed_cost)
    costs = EventCosts(total_fixed_cost=total_fixed_cost, notes=notes or "")
    data_manager.write_event_costs(context.workbook, costs)
    log.info("Set event fixed cost to %s", total_fixed_cost)
    return costs


def resolve_fixed_cost(context: RuntimeContext) -> Decimal:
    """Fixed cost in force: the active event's, else the standing event cost."""
    event = get_active_event(context)
    if event is not None:
        return event.fixed_cost
    return get_event_costs(context).total_fixed_cost


def _clear_session_sales(context: RuntimeContext) -> None:
    data_manager.clear_sheet(context.workbook, data_manager.SALES_SHEET)
    data_manager.clear_last_sale(context.workbook)
    _invalidate_cache(context, "sales")


def start_event(
    context: RuntimeContext,
    name: str,
    *,
    fixed_cost: Optional[Decimal] = None,
    planned_output: Optional[int] = None,
    timestamp: Optional[datetime] = None,
) -> EventRow:
    """Open a new selling session.

    Current sales, demo sales and the last-sale slot are cleared and the
    starting inventory is captured. ``fixed_cost`` defaults to the standing
    event cost.

    Raises:
        BusinessRuleViolation: If another event is already active.
        ValueError: If the name is empty or the cost negative.
        InvalidQuantity: If ``planned_output`` is negative.
    """
    if get_active_event(context) is not None:
        log.warning("Cannot start event '%s'; another event is active", name)
        raise BusinessRuleViolation("An event is already active; end it first")
    require_name(name, label="Event name")
    if fixed_cost is None:
        fixed_cost = get_event_costs(context).total_fixed_cost
    require_nonnegative_money(fixed_cost)
    if planned_output is not None and planned_output < 0:
        raise InvalidQuantity("Planned output must be zero or positive")

    started = _resolve_timestamp(timestamp)
    _clear_session_sales(context)
    clear_demo_sales(context)
    snapshot = take_stock_snapshot(context)
    event = EventRow(
        event_id=generate_id(prefix="E", when=started),
        name=name.strip(),
        started_at=started.isoformat(),
        fixed_cost=fixed_cost,
        planned_output=planned_output,
        starting_inventory=dict(snapshot),
        status=EventStatus.ACTIVE.value,
    )
    data_manager.write_active_event(context.workbook, event)
    log.info("Started event '%s' (%s) with fixed cost %s", event.name, event.event_id, fixed_cost)
    return event


def end_event(context: RuntimeContext, *, mode: CostingMode, timestamp: Optional[datetime] = None) -> EventRow:
    """Close the active event and fold its sales into the event history.

    Returns:
        EventRow: The closed event with its totals.

    Raises:
        NoActiveEvent: If no event is active.
    """
    event = get_active_event(context)
    if event is None:
        log.warning("End of event requested with no active event")
        raise NoActiveEvent("No active event to end")

    summary = reporting.summarize(list_sales(context), CostingMode(mode), fixed_cost=event.fixed_cost)
    closed = replace(
        event,
        status=EventStatus.CLOSED.value,
        ended_at=_resolve_timestamp(timestamp).isoformat(),
        total_revenue=summary.total_revenue,
        total_cost=summary.total_cost,
        net_profit=summary.net_profit,
        items_sold=summary.items_sold,
    )
    data_manager.append_event_history(context.workbook, closed)
    data_manager.clear_active_event(context.workbook)
    _clear_session_sales(context)
    log.info(
        "Closed event '%s' (revenue=%s, cost=%s, profit=%s)",
        closed.event_id,
        closed.total_revenue,
        closed.total_cost,
        closed.net_profit,
    )
    return closed


def reset_event(context: RuntimeContext) -> None:
    """Clear all current sales and the last-sale slot; catalog stays."""
    _clear_session_sales(context)
    log.info("Reset event: sales cleared")


def calculate_profit_summary(context: RuntimeContext, mode: CostingMode, *, demo: bool = False) -> reporting.ProfitSummary:
    """Revenue, cost and profit of the current sales under ``mode``."""
    mode = CostingMode(mode)
    fixed_cost = resolve_fixed_cost(context) if mode is CostingMode.FIXED_EVENT else ZERO
    return reporting.summarize(list_sales(context, demo=demo), mode, fixed_cost=fixed_cost)


def calculate_sales_breakdown(context: RuntimeContext, *, demo: bool = False) -> List[reporting.ProductBreakdown]:
    return reporting.breakdown(list_sales(context, demo=demo))


# ---------------------------------------------------------------------------
# Settings, export/import, maintenance
# ---------------------------------------------------------------------------


def update_settings(
    context: RuntimeContext,
    *,
    theme: Optional[str] = None,
    demo_mode: Optional[bool] = None,
) -> AppSettings:
    current = get_settings(context)
    updated = AppSettings(
        theme=theme if theme is not None else current.theme,
        demo_mode=demo_mode if demo_mode is not None else current.demo_mode,
    )
    data_manager.write_settings(context.workbook, updated)
    log.info("Updated settings: theme=%s demo_mode=%s", updated.theme, updated.demo_mode)
    return updated


def _decimal_text(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _parse_decimal(value: Any, *, label: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except ArithmeticError as exc:
        raise ValueError(f"Invalid number for {label}: {value!r}") from exc


def _recipe_to_dict(recipe: Iterable[RecipeItem]) -> List[Dict[str, Any]]:
    return [{"ingredientId": item.ingredient_id, "quantity": str(item.quantity)} for item in recipe]


def _recipe_from_dict(entries: Any) -> tuple[RecipeItem, ...]:
    return tuple(
        RecipeItem(
            ingredient_id=str(entry["ingredientId"]),
            quantity=_parse_decimal(entry["quantity"], label="recipe quantity"),
        )
        for entry in entries or []
    )


def ingredient_to_dict(record: IngredientRow) -> Dict[str, Any]:
    return {
        "id": record.ingredient_id,
        "name": record.name,
        "unit": record.unit,
        "totalCost": _decimal_text(record.total_cost),
        "totalQuantity": str(record.total_quantity),
        "remainingQuantity": str(record.remaining_quantity),
        "lowStockThreshold": _decimal_text(record.low_stock_threshold),
    }


def ingredient_from_dict(payload: Mapping[str, Any]) -> IngredientRow:
    """Build an ingredient from export JSON.

    Older exports carry only ``totalQuantity``; it then doubles as the
    remaining stock.
    """
    total_quantity = _parse_decimal(payload.get("totalQuantity"), label="totalQuantity") or ZERO
    remaining = _parse_decimal(payload.get("remainingQuantity"), label="remainingQuantity")
    return IngredientRow(
        ingredient_id=str(payload["id"]),
        name=str(payload["name"]),
        unit=str(payload.get("unit") or ""),
        total_cost=_parse_decimal(payload.get("totalCost"), label="totalCost"),
        total_quantity=total_quantity,
        remaining_quantity=total_quantity if remaining is None else remaining,
        low_stock_threshold=_parse_decimal(payload.get("lowStockThreshold"), label="lowStockThreshold"),
    )


def product_to_dict(record: ProductRow) -> Dict[str, Any]:
    return {
        "id": record.product_id,
        "name": record.product_name,
        "sellingPrice": str(record.selling_price),
        "active": record.is_active,
        "recipe": _recipe_to_dict(record.recipe),
    }


def product_from_dict(payload: Mapping[str, Any]) -> ProductRow:
    return ProductRow(
        product_id=str(payload["id"]),
        product_name=str(payload["name"]),
        selling_price=_parse_decimal(payload.get("sellingPrice"), label="sellingPrice") or ZERO,
        is_active=bool(payload.get("active", True)),
        recipe=_recipe_from_dict(payload.get("recipe")),
    )


def sale_to_dict(record: SaleRow) -> Dict[str, Any]:
    costs = None
    if record.cost_snapshot is not None:
        costs = [
            {
                "ingredientId": line.ingredient_id,
                "ingredientName": line.ingredient_name,
                "quantity": str(line.quantity),
                "unit": line.unit,
                "unitCost": str(line.unit_cost),
                "totalCost": str(line.total_cost),
            }
            for line in record.cost_snapshot
        ]
    return {
        "id": record.sale_id,
        "timestamp": record.timestamp_iso,
        "productId": record.product_id,
        "productName": record.product_name,
        "sellingPrice": str(record.selling_price),
        "quantity": record.quantity,
        "paymentType": record.payment_type,
        "ingredientCosts": costs,
        "recipe": _recipe_to_dict(record.recipe),
        "eventId": record.event_id,
    }


def sale_from_dict(payload: Mapping[str, Any]) -> SaleRow:
    costs = payload.get("ingredientCosts")
    snapshot = None
    if costs is not None:
        snapshot = tuple(
            CostLine(
                ingredient_id=str(line["ingredientId"]),
                ingredient_name=str(line.get("ingredientName") or ""),
                quantity=_parse_decimal(line["quantity"], label="cost quantity"),
                unit=str(line.get("unit") or ""),
                unit_cost=_parse_decimal(line["unitCost"], label="unitCost"),
                total_cost=_parse_decimal(line["totalCost"], label="totalCost"),
            )
            for line in costs
        )
    return SaleRow(
        sale_id=str(payload["id"]),
        timestamp_iso=str(payload.get("timestamp") or ""),
        product_id=str(payload["productId"]),
        product_name=str(payload.get("productName") or ""),
        selling_price=_parse_decimal(payload.get("sellingPrice"), label="sellingPrice") or ZERO,
        quantity=int(payload.get("quantity") or 1),
        payment_type=str(payload.get("paymentType") or PaymentType.CASH.value),
        cost_snapshot=snapshot,
        recipe=_recipe_from_dict(payload.get("recipe")),
        event_id=payload.get("eventId"),
    )


def export_data(context: RuntimeContext, *, when: Optional[datetime] = None) -> Dict[str, Any]:
    """Full backup snapshot of ingredients, products and current sales."""
    payload = {
        "ingredients": [ingredient_to_dict(row) for row in list_ingredients(context)],
        "products": [product_to_dict(row) for row in list_products(context, include_inactive=True)],
        "sales": [sale_to_dict(row) for row in list_sales(context)],
        "exportDate": _resolve_timestamp(when).isoformat(),
    }
    log.info(
        "Exported %d ingredients, %d products, %d sales",
        len(payload["ingredients"]),
        len(payload["products"]),
        len(payload["sales"]),
    )
    return payload


def import_data(context: RuntimeContext, payload: Mapping[str, Any]) -> Dict[str, int]:
    """Overwrite ingredients, products and/or sales from an export payload.

    Each collection present in ``payload`` replaces the stored one wholesale;
    absent collections are left untouched. Replacing sales also clears the
    last-sale slot. Every collection is parsed and held to the same checks as
    a manual save before anything is written. Product recipes are checked
    against the ingredients that will be stored once the import completes.

    Returns:
        dict[str, int]: Number of records imported per collection.

    Raises:
        ValueError: If the payload or any record is malformed or breaks a
            catalog rule (``InvalidQuantity`` for negative stock, a costed
            batch without quantity, or a non-positive sale quantity).
        MissingReferenceError: If an imported or retained recipe references
            an ingredient that would not exist after the import.
    """
    if not isinstance(payload, Mapping):
        raise ValueError("Import payload must be a JSON object")

    parsers = {
        "ingredients": ingredient_from_dict,
        "products": product_from_dict,
        "sales": sale_from_dict,
    }
    parsed: Dict[str, List[Any]] = {}
    for key, parser in parsers.items():
        entries = payload.get(key)
        if entries is None:
            continue
        if not isinstance(entries, list):
            raise ValueError(f"'{key}' must be a list")
        try:
            parsed[key] = [parser(entry) for entry in entries]
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Malformed {key} entry: {exc}") from exc

    for ingredient in parsed.get("ingredients", ()):
        validate_ingredient(ingredient)
    if "ingredients" in parsed:
        known_ingredients = {row.ingredient_id for row in parsed["ingredients"]}
    else:
        known_ingredients = {row.ingredient_id for row in list_ingredients(context)}
    if "ingredients" in parsed and "products" not in parsed:
        products_in_force = list_products(context, include_inactive=True)
    else:
        products_in_force = parsed.get("products", [])
    for product in products_in_force:
        validate_product(context, product, known_ingredients=known_ingredients)
    for sale in parsed.get("sales", ()):
        require_sale_quantity(sale.quantity)

    if "ingredients" in parsed:
        _write_ingredients(context, parsed["ingredients"])
    if "products" in parsed:
        _write_products(context, parsed["products"])
    if "sales" in parsed:
        data_manager.write_sales(context.workbook, parsed["sales"])
        data_manager.clear_last_sale(context.workbook)
        _invalidate_cache(context, "sales")

    counts = {key: len(rows) for key, rows in parsed.items()}
    log.info("Imported %s", counts)
    return counts


def write_export_file(payload: Mapping[str, Any], destination: Path) -> Path:
    """Write an export payload as indented JSON."""
    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        dest.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        raise PersistenceFailure(f"Unable to write export file '{dest}': {exc}") from exc
    return dest


def read_import_file(source: Path) -> Dict[str, Any]:
    """Load an export payload from disk.

    Raises:
        FileNotFoundError: If ``source`` does not exist.
        ValueError: If the file is not valid JSON.
    """
    path = Path(source).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Import file is not valid JSON: {exc}") from exc


def clear_all_data(context: RuntimeContext) -> None:
    """Empty every record set in the ledger."""
    for sheet_name in data_manager.SHEET_COLUMNS:
        data_manager.clear_sheet(context.workbook, sheet_name)
    _invalidate_cache(context, "ingredients", "products", "sales", "demo_sales")
    log.warning("Cleared all ledger data")


def persist_context(context: RuntimeContext) -> None:
    """Persist in-memory workbook changes to the configured data file.

    Raises:
        PersistenceFailure: If the workbook cannot be written. The on-disk
            file keeps its previous contents.
    """
    try:
        data_manager.save_workbook(
            context.workbook,
            destination=context.settings.data_file,
        )
    except OSError as exc:
        log.error("Unable to persist workbook '%s': %s", context.settings.data_file, exc)
        raise PersistenceFailure(f"Unable to save ledger: {exc}") from exc
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context containing a newly opened workbook and
            an empty cache.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)
