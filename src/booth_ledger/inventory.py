"""Inventory ledger: remaining stock per ingredient.

All helpers are pure. They take the current ingredient rows and return new
rows, leaving persistence to the caller so that a deduction and the sale that
caused it can be written together.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from . import log
from .data_manager import IngredientRow, ProductRow, RecipeItem
from .errors import InsufficientStock, InvalidQuantity, MissingReferenceError


ZERO = Decimal("0")


@dataclass(frozen=True)
class StockChange:
    """Difference between a stock snapshot and the current quantity."""

    old: Decimal
    new: Decimal
    change: Decimal


def index_by_id(ingredients: Iterable[IngredientRow]) -> Dict[str, IngredientRow]:
    """Key ingredient rows by ``ingredient_id``."""

    return {ingredient.ingredient_id: ingredient for ingredient in ingredients}


def required_quantities(recipe: Iterable[RecipeItem], quantity: int) -> Dict[str, Decimal]:
    """Total quantity needed per ingredient to make ``quantity`` units.

    Repeated ingredient ids in one recipe are summed.
    """

    needed: Dict[str, Decimal] = {}
    for item in recipe:
        needed[item.ingredient_id] = needed.get(item.ingredient_id, ZERO) + item.quantity * quantity
    return needed


def can_sell(
    product: Optional[ProductRow],
    ingredients: Mapping[str, IngredientRow],
    quantity: int = 1,
) -> bool:
    """Report whether ``quantity`` units of ``product`` can be made right now.

    Args:
        product (ProductRow | None): Product to check; ``None`` when the id did
            not resolve.
        ingredients (Mapping[str, IngredientRow]): Current ingredients keyed by
            id.
        quantity (int): Units requested.

    Returns:
        bool: ``False`` when the product is missing or inactive, the quantity
            is below one, the recipe is empty, or any recipe ingredient is
            missing or short of stock.
    """

    if product is None or not product.is_active:
        return False
    if quantity < 1 or not product.recipe:
        return False
    for ingredient_id, needed in required_quantities(product.recipe, quantity).items():
        ingredient = ingredients.get(ingredient_id)
        if ingredient is None or ingredient.remaining_quantity < needed:
            return False
    return True


def low_stock(ingredients: Iterable[IngredientRow]) -> List[IngredientRow]:
    """Ingredients whose remaining quantity is at or below their threshold."""

    return [
        ingredient
        for ingredient in ingredients
        if ingredient.low_stock_threshold is not None
        and ingredient.remaining_quantity <= ingredient.low_stock_threshold
    ]


def deduct(ingredients: Sequence[IngredientRow], recipe: Iterable[RecipeItem], quantity: int) -> List[IngredientRow]:
    """Return new ingredient rows with the recipe consumed ``quantity`` times.

    A result that would go negative is rejected rather than clamped; callers
    run :func:`can_sell` first, so reaching it indicates a logic error.

    Raises:
        MissingReferenceError: If a recipe ingredient does not exist.
        InsufficientStock: If any ingredient would drop below zero.
    """

    needed = required_quantities(recipe, quantity)
    by_id = index_by_id(ingredients)
    for ingredient_id, amount in needed.items():
        ingredient = by_id.get(ingredient_id)
        if ingredient is None:
            log.error("Deduction references unknown ingredient '%s'", ingredient_id)
            raise MissingReferenceError(f"Unknown ingredient id: {ingredient_id}")
        if ingredient.remaining_quantity - amount < ZERO:
            log.error(
                "Deduction would overdraw '%s' (remaining=%s, needed=%s)",
                ingredient_id,
                ingredient.remaining_quantity,
                amount,
            )
            raise InsufficientStock(f"Insufficient stock of '{ingredient.name}'")

    return [
        replace(row, remaining_quantity=row.remaining_quantity - needed[row.ingredient_id])
        if row.ingredient_id in needed
        else row
        for row in ingredients
    ]


def restore(ingredients: Sequence[IngredientRow], recipe: Iterable[RecipeItem], quantity: int) -> List[IngredientRow]:
    """Inverse of :func:`deduct`: add the recipe back ``quantity`` times.

    Ingredients deleted since the sale are skipped.
    """

    needed = required_quantities(recipe, quantity)
    known = {row.ingredient_id for row in ingredients}
    for ingredient_id in needed:
        if ingredient_id not in known:
            log.warning("Cannot restore stock for deleted ingredient '%s'", ingredient_id)

    return [
        replace(row, remaining_quantity=row.remaining_quantity + needed[row.ingredient_id])
        if row.ingredient_id in needed
        else row
        for row in ingredients
    ]


def adjust_quantity(ingredient: IngredientRow, delta: Decimal) -> IngredientRow:
    """Apply a signed manual stock correction to one ingredient.

    Raises:
        InvalidQuantity: If ``delta`` is zero.
        InsufficientStock: If removing more than is on hand.
    """

    if delta == ZERO:
        raise InvalidQuantity("Stock adjustment must be non-zero")
    new_quantity = ingredient.remaining_quantity + delta
    if new_quantity < ZERO:
        raise InsufficientStock(
            f"Cannot remove {-delta} {ingredient.unit} of '{ingredient.name}'; "
            f"only {ingredient.remaining_quantity} on hand"
        )
    return replace(ingredient, remaining_quantity=new_quantity)


def restock_targets(
    ingredients: Sequence[IngredientRow],
    targets: Optional[Mapping[str, Decimal]] = None,
) -> List[IngredientRow]:
    """Refill every low-stock ingredient.

    Each low item goes to its explicit target when one is supplied, otherwise
    to its recorded batch quantity. Items already at or above their target are
    left alone. Targets naming an item that is not low are ignored with a
    warning.

    Returns:
        list[IngredientRow]: The full ingredient list with refilled rows.
    """

    targets = targets or {}
    low_ids = {ingredient.ingredient_id for ingredient in low_stock(ingredients)}
    for ingredient_id in sorted(set(targets) - low_ids):
        log.warning("Ignoring restock target for '%s'; it is not low on stock", ingredient_id)
    result = []
    for row in ingredients:
        if row.ingredient_id in low_ids:
            target = targets.get(row.ingredient_id, row.total_quantity)
            if target < ZERO:
                raise InvalidQuantity(f"Restock target for '{row.name}' must be zero or positive")
            if target > row.remaining_quantity:
                row = replace(row, remaining_quantity=target)
        result.append(row)
    return result


def take_snapshot(ingredients: Iterable[IngredientRow]) -> Dict[str, Decimal]:
    """Point-in-time ``ingredient_id -> remaining quantity`` mapping."""

    return {ingredient.ingredient_id: ingredient.remaining_quantity for ingredient in ingredients}


def stock_changes(
    ingredients: Iterable[IngredientRow],
    snapshot: Optional[Mapping[str, Decimal]],
) -> Dict[str, StockChange]:
    """Compare current stock to ``snapshot``; display-only.

    Ingredients absent from the snapshot or unchanged since it are omitted.
    """

    if not snapshot:
        return {}
    changes: Dict[str, StockChange] = {}
    for ingredient in ingredients:
        old = snapshot.get(ingredient.ingredient_id)
        if old is None or old == ingredient.remaining_quantity:
            continue
        changes[ingredient.ingredient_id] = StockChange(
            old=old,
            new=ingredient.remaining_quantity,
            change=ingredient.remaining_quantity - old,
        )
    return changes
