"""Costing engine: batch purchases to unit costs, recipes to product costs.

A batch is bought as ``total_cost`` for ``total_quantity`` units. Its unit
cost is always recomputed from those two fields on demand and is never stored,
so editing either field immediately changes every derived cost. A recipe line
that consumes ``q`` of a batch costing ``C`` for ``Q`` contributes exactly
``C * q / Q``; the whole batch cost is never charged to a single sale.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Mapping, Optional, Tuple

from . import log
from .data_manager import CostLine, IngredientRow, ProductRow, RecipeItem


ZERO = Decimal("0")


def unit_cost(ingredient: Optional[IngredientRow]) -> Decimal:
    """Return the current cost of one unit of ``ingredient``.

    Pure-quantity ingredients (no ``total_cost``) and batches with a zero or
    missing quantity cost ``0`` instead of raising, which keeps display paths
    total. Save-time validation is responsible for rejecting such batches
    when a cost is supplied.

    Args:
        ingredient (IngredientRow | None): Ingredient in batch-costing form.

    Returns:
        Decimal: ``total_cost / total_quantity`` or ``0``.
    """

    if ingredient is None or ingredient.total_cost is None:
        return ZERO
    if ingredient.total_quantity is None or ingredient.total_quantity <= ZERO:
        return ZERO
    return ingredient.total_cost / ingredient.total_quantity


def line_cost(ingredient: Optional[IngredientRow], quantity: Decimal) -> Decimal:
    """Cost of consuming ``quantity`` units of ``ingredient``."""

    return unit_cost(ingredient) * quantity


def product_cost(recipe: Iterable[RecipeItem], ingredients: Mapping[str, IngredientRow]) -> Decimal:
    """Sum the ingredient cost of one unit of a recipe.

    Unknown ingredient ids contribute nothing; callers that need strict
    referential checks validate the recipe separately.

    Args:
        recipe (Iterable[RecipeItem]): Recipe lines to price.
        ingredients (Mapping[str, IngredientRow]): Current ingredients keyed by
            id.

    Returns:
        Decimal: Total cost of the recipe at current batch prices.
    """

    total = ZERO
    for item in recipe:
        ingredient = ingredients.get(item.ingredient_id)
        if ingredient is None:
            log.debug("Skipping unknown ingredient '%s' while costing recipe", item.ingredient_id)
            continue
        total += line_cost(ingredient, item.quantity)
    return total


def unit_margin(product: ProductRow, ingredients: Mapping[str, IngredientRow]) -> Decimal:
    """Selling price minus ingredient cost for one unit of ``product``."""

    return product.selling_price - product_cost(product.recipe, ingredients)


def build_cost_snapshot(
    recipe: Iterable[RecipeItem],
    ingredients: Mapping[str, IngredientRow],
    quantity: int,
) -> Tuple[CostLine, ...]:
    """Freeze the per-ingredient cost of selling ``quantity`` units.

    Must be evaluated before stock is deducted so the snapshot reflects the
    ingredient state at the moment of sale.
    """

    lines = []
    for item in recipe:
        ingredient = ingredients.get(item.ingredient_id)
        if ingredient is None:
            continue
        consumed = item.quantity * quantity
        cost_per_unit = unit_cost(ingredient)
        lines.append(
            CostLine(
                ingredient_id=ingredient.ingredient_id,
                ingredient_name=ingredient.name,
                quantity=consumed,
                unit=ingredient.unit,
                unit_cost=cost_per_unit,
                total_cost=cost_per_unit * consumed,
            )
        )
    return tuple(lines)


def snapshot_total(snapshot: Optional[Iterable[CostLine]]) -> Decimal:
    """Total cost recorded in a sale's cost snapshot (``0`` when absent)."""

    if snapshot is None:
        return ZERO
    return sum((line.total_cost for line in snapshot), ZERO)
