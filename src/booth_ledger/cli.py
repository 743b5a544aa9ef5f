"""Command-line entry points for the Booth Ledger toolkit.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into business-layer calls, and printing results. Keeping
the CLI thin ensures the same parser configuration can be reused by tests,
scripts, or any alternative front-end that wants to expose the package
capabilities.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import core_logic, log
from .constants import CostingMode, PaymentType
from .costing import unit_cost
from .data_manager import RecipeItem
from .reporting import format_currency


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    read_only: bool = False


def decimal_arg(text: str) -> Decimal:
    """argparse ``type`` converting text into a :class:`Decimal`."""
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}") from exc


def pair_arg(text: str) -> Tuple[str, Decimal]:
    """argparse ``type`` for ``ID=QTY`` pairs used by recipes and restock targets."""
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected ID=QTY, got {text!r}")
    return key.strip(), decimal_arg(value.strip())


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="booth-cli",
        description="Command-line tools for the Booth Ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and catalog edits."""
    specs = {
        "add-ingredient": register_add_ingredient_command(subparsers),
        "edit-ingredient": register_edit_ingredient_command(subparsers),
        "delete-ingredient": register_delete_ingredient_command(subparsers),
        "adjust-stock": register_adjust_stock_command(subparsers),
        "restock-low": register_restock_low_command(subparsers),
        "snapshot": register_snapshot_command(subparsers),
        "add-product": register_add_product_command(subparsers),
        "edit-product": register_edit_product_command(subparsers),
        "delete-product": register_delete_product_command(subparsers),
        "sale": register_sale_command(subparsers),
        "undo": register_undo_command(subparsers),
        "clear-demo": register_clear_demo_command(subparsers),
        "set-event-cost": register_set_event_cost_command(subparsers),
        "start-event": register_start_event_command(subparsers),
        "end-event": register_end_event_command(subparsers),
        "reset-event": register_reset_event_command(subparsers),
        "import": register_import_command(subparsers),
        "settings": register_settings_command(subparsers),
        "clear-all": register_clear_all_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "ingredients": register_ingredients_command(subparsers),
        "low-stock": register_low_stock_command(subparsers),
        "stock-changes": register_stock_changes_command(subparsers),
        "products": register_products_command(subparsers),
        "sales": register_sales_command(subparsers),
        "summary": register_summary_command(subparsers),
        "breakdown": register_breakdown_command(subparsers),
        "events": register_events_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_mode_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--mode",
        choices=[member.value for member in CostingMode],
        default=None,
        help="Accounting model (defaults to [Accounting] CostingMode).",
    )


def _simple_command(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    *,
    read_only: bool = False,
    arguments: Optional[Callable[[argparse.ArgumentParser], None]] = None,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        if arguments is not None:
            arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, read_only=read_only)


def register_add_ingredient_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-ingredient``."""
    name = "add-ingredient"
    help_text = "Register an ingredient batch (cost for a quantity)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--unit", required=True)
        parser.add_argument("--total-quantity", type=decimal_arg, required=True, help="Batch quantity bought.")
        parser.add_argument("--total-cost", type=decimal_arg, default=None, help="Price paid for the batch.")
        parser.add_argument("--remaining", type=decimal_arg, default=None, help="Stock on hand (defaults to the batch).")
        parser.add_argument("--low-stock", type=decimal_arg, default=None, help="Low-stock warning threshold.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_ingredient)


def register_edit_ingredient_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-ingredient``."""
    name = "edit-ingredient"
    help_text = "Edit the fields of an existing ingredient."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--ingredient-id", required=True)
        parser.add_argument("--name", default=None)
        parser.add_argument("--unit", default=None)
        parser.add_argument("--total-quantity", type=decimal_arg, default=None)
        parser.add_argument("--total-cost", type=decimal_arg, default=None)
        parser.add_argument("--remaining", type=decimal_arg, default=None)
        parser.add_argument("--low-stock", type=decimal_arg, default=None)
        parser.add_argument("--no-cost", action="store_true", help="Track quantity only; drop the batch cost.")
        parser.add_argument("--no-threshold", action="store_true", help="Remove the low-stock threshold.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_ingredient)


def register_delete_ingredient_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-ingredient``."""
    return _simple_command(
        "delete-ingredient",
        "Delete an ingredient no recipe uses.",
        run_delete_ingredient,
        arguments=lambda parser: parser.add_argument("--ingredient-id", required=True),
    )


def register_adjust_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``adjust-stock``."""
    name = "adjust-stock"
    help_text = "Add or remove stock of one ingredient by hand."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--ingredient-id", required=True)
        parser.add_argument("--delta", type=decimal_arg, required=True, help="Signed quantity change.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_adjust_stock)


def register_restock_low_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``restock-low``."""
    return _simple_command(
        "restock-low",
        "Refill every low-stock ingredient to its batch quantity.",
        run_restock_low,
        arguments=lambda parser: parser.add_argument(
            "--target",
            dest="targets",
            type=pair_arg,
            action="append",
            default=[],
            metavar="ID=QTY",
            help="Explicit refill level for one low-stock ingredient (others are ignored); may be repeated.",
        ),
    )


def register_snapshot_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``snapshot``."""
    return _simple_command("snapshot", "Record current stock as the comparison baseline.", run_snapshot)


def _add_recipe_argument(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument(
        "--recipe",
        type=pair_arg,
        action="append",
        required=required,
        default=None,
        metavar="ID=QTY",
        help="Ingredient consumed per unit; repeat for each recipe line.",
    )


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product with its recipe."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-name", required=True)
        parser.add_argument("--selling-price", type=decimal_arg, required=True)
        _add_recipe_argument(parser, required=True)
        parser.add_argument("--inactive", action="store_true", help="Mark the product as inactive on creation.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_edit_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-product``."""
    name = "edit-product"
    help_text = "Edit an existing product; --recipe replaces the whole recipe."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--product-name", default=None)
        parser.add_argument("--selling-price", type=decimal_arg, default=None)
        _add_recipe_argument(parser, required=False)
        status = parser.add_mutually_exclusive_group()
        status.add_argument("--activate", dest="is_active", action="store_const", const=True, default=None)
        status.add_argument("--deactivate", dest="is_active", action="store_const", const=False)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_edit_product)


def register_delete_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-product``."""
    return _simple_command(
        "delete-product",
        "Delete a product; recorded sales are kept.",
        run_delete_product,
        arguments=lambda parser: parser.add_argument("--product-id", required=True),
    )


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale and deduct its ingredients."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", type=int, default=1)
        parser.add_argument(
            "--payment-type",
            choices=[member.value for member in PaymentType],
            default=PaymentType.CASH.value,
        )
        parser.add_argument("--demo", action="store_true", help="Dry run: log separately, leave stock alone.")
        _add_mode_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_undo_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``undo``."""
    return _simple_command("undo", "Reverse the most recent sale.", run_undo)


def register_clear_demo_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clear-demo``."""
    return _simple_command("clear-demo", "Discard all demo sales.", run_clear_demo)


def register_set_event_cost_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``set-event-cost``."""
    name = "set-event-cost"
    help_text = "Set the standing fixed cost paid up front for an event."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--notes", dest="notes", default="")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_set_event_cost)


def register_start_event_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``start-event``."""
    name = "start-event"
    help_text = "Open a selling session; clears current sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--fixed-cost", type=decimal_arg, default=None)
        parser.add_argument("--planned-output", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_start_event)


def register_end_event_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``end-event``."""
    return _simple_command(
        "end-event",
        "Close the active event and archive its totals.",
        run_end_event,
        arguments=_add_mode_argument,
    )


def register_reset_event_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``reset-event``."""
    return _simple_command("reset-event", "Clear all current sales; keep the catalog.", run_reset_event)


def register_import_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``import``."""
    return _simple_command(
        "import",
        "Replace ledger collections from an export file.",
        run_import,
        arguments=lambda parser: parser.add_argument("--file", type=Path, required=True),
    )


def register_settings_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``settings``."""
    name = "settings"
    help_text = "Show or change operator settings."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--theme", choices=["light", "dark"], default=None)
        parser.add_argument("--demo-mode", choices=["on", "off"], default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_settings)


def register_clear_all_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clear-all``."""
    return _simple_command(
        "clear-all",
        "Erase every record in the ledger.",
        run_clear_all,
        arguments=lambda parser: parser.add_argument("--yes", action="store_true", help="Confirm the wipe."),
    )


def register_ingredients_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``ingredients``."""
    return _simple_command(
        "ingredients", "Display ingredients with unit costs and stock.", run_ingredients_report, read_only=True
    )


def register_low_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``low-stock``."""
    return _simple_command(
        "low-stock", "Display ingredients at or below their threshold.", run_low_stock_report, read_only=True
    )


def register_stock_changes_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock-changes``."""
    return _simple_command(
        "stock-changes", "Display stock movement since the last snapshot.", run_stock_changes_report, read_only=True
    )


def register_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``products``."""
    return _simple_command(
        "products", "Display products with current cost and margin.", run_products_report, read_only=True
    )


def _add_demo_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--demo", action="store_true", help="Report on demo sales instead.")


def register_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""
    return _simple_command(
        "sales", "Display the current sales log.", run_sales_report, read_only=True, arguments=_add_demo_flag
    )


def register_summary_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``summary``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        _add_mode_argument(parser)
        _add_demo_flag(parser)

    return _simple_command(
        "summary", "Display revenue, cost, and profit.", run_summary_report, read_only=True, arguments=arguments
    )


def register_breakdown_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``breakdown``."""
    return _simple_command(
        "breakdown", "Display units and revenue per product.", run_breakdown_report, read_only=True,
        arguments=_add_demo_flag,
    )


def register_events_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``events``."""
    return _simple_command("events", "Display the active event and event history.", run_events_report, read_only=True)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    return _simple_command(
        "export",
        "Export ingredients, products and sales as JSON.",
        run_export,
        read_only=True,
        arguments=lambda parser: parser.add_argument(
            "--output", type=Path, default=None, help="Write to this file instead of stdout."
        ),
    )


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def resolve_mode(context: core_logic.RuntimeContext, args: argparse.Namespace) -> CostingMode:
    """Costing mode from ``--mode`` or, when absent, from ``config.ini``."""
    raw = getattr(args, "mode", None)
    return CostingMode(raw) if raw else context.settings.costing_mode


def translate_recipe(pairs: Optional[Sequence[Tuple[str, Decimal]]]) -> Optional[List[RecipeItem]]:
    """Translate ``--recipe`` pairs into recipe items."""
    if pairs is None:
        return None
    return [RecipeItem(ingredient_id=ingredient_id, quantity=quantity) for ingredient_id, quantity in pairs]


def translate_add_ingredient(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-ingredient request."""
    return {
        "name": args.name,
        "unit": args.unit,
        "total_quantity": args.total_quantity,
        "total_cost": args.total_cost,
        "remaining_quantity": args.remaining,
        "low_stock_threshold": args.low_stock,
    }


def translate_edit_ingredient(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into the fields an ingredient edit should change."""
    changes: Dict[str, Any] = {}
    for field_name, value in (
        ("name", args.name),
        ("unit", args.unit),
        ("total_quantity", args.total_quantity),
        ("total_cost", args.total_cost),
        ("remaining_quantity", args.remaining),
        ("low_stock_threshold", args.low_stock),
    ):
        if value is not None:
            changes[field_name] = value
    if getattr(args, "no_cost", False):
        changes["total_cost"] = None
    if getattr(args, "no_threshold", False):
        changes["low_stock_threshold"] = None
    return changes


def translate_add_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-product request."""
    return {
        "product_name": args.product_name,
        "selling_price": args.selling_price,
        "recipe": translate_recipe(args.recipe),
        "is_active": not getattr(args, "inactive", False),
    }


def translate_edit_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into the fields a product edit should change."""
    changes: Dict[str, Any] = {}
    if args.product_name is not None:
        changes["product_name"] = args.product_name
    if args.selling_price is not None:
        changes["selling_price"] = args.selling_price
    if args.recipe is not None:
        changes["recipe"] = translate_recipe(args.recipe)
    if args.is_active is not None:
        changes["is_active"] = args.is_active
    return changes


def _money(context: core_logic.RuntimeContext, amount: Decimal) -> str:
    return format_currency(amount, context.settings.currency_symbol)


def run_add_ingredient(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-ingredient workflow in the BLL."""
    record = core_logic.add_ingredient(context, **translate_add_ingredient(args))
    print(f"Added ingredient {record.ingredient_id}: {record.name}")
    return 0


def run_edit_ingredient(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the edit-ingredient workflow in the BLL."""
    changes = translate_edit_ingredient(args)
    if not changes:
        log.error("edit-ingredient called without any field to change")
        return 1
    record = core_logic.update_ingredient(context, args.ingredient_id, **changes)
    print(f"Updated ingredient {record.ingredient_id}: {record.name}")
    return 0


def run_delete_ingredient(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = core_logic.delete_ingredient(context, args.ingredient_id)
    print(f"Deleted ingredient {record.ingredient_id}: {record.name}")
    return 0


def run_adjust_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    remaining = core_logic.adjust_stock(context, args.ingredient_id, args.delta)
    print(f"Remaining: {remaining}")
    return 0


def run_restock_low(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the bulk restock workflow via the BLL."""
    refilled = core_logic.restock_low_stock(context, dict(args.targets) or None)
    for row in refilled:
        print(f"Restocked {row.name} to {row.remaining_quantity} {row.unit}")
    if not refilled:
        print("Nothing to restock.")
    return 0


def run_snapshot(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    snapshot = core_logic.take_stock_snapshot(context)
    print(f"Snapshot taken of {len(snapshot)} ingredient(s).")
    return 0


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    record = core_logic.add_product(context, **translate_add_product(args))
    print(f"Added product {record.product_id}: {record.product_name}")
    return 0


def run_edit_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the edit-product workflow in the BLL."""
    changes = translate_edit_product(args)
    if not changes:
        log.error("edit-product called without any field to change")
        return 1
    record = core_logic.update_product(context, args.product_id, **changes)
    print(f"Updated product {record.product_id}: {record.product_name}")
    return 0


def run_delete_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = core_logic.delete_product(context, args.product_id)
    print(f"Deleted product {record.product_id}: {record.product_name}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    demo = args.demo or core_logic.get_settings(context).demo_mode
    workflow = core_logic.process_demo_sale if demo else core_logic.process_sale
    sale = workflow(
        context,
        args.product_id,
        args.quantity,
        mode=resolve_mode(context, args),
        payment_type=PaymentType(args.payment_type),
    )
    prefix = "Demo sale" if demo else "Sale"
    print(f"{prefix} {sale.sale_id}: {sale.quantity} x {sale.product_name} = {_money(context, sale.selling_price)}")
    return 0


def run_undo(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the undo workflow via the BLL."""
    sale = core_logic.undo_last_sale(context)
    print(f"Undid sale {sale.sale_id}: {sale.quantity} x {sale.product_name}")
    return 0


def run_clear_demo(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.clear_demo_sales(context)
    return 0


def run_set_event_cost(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    costs = core_logic.set_event_costs(context, total_fixed_cost=args.amount, notes=args.notes)
    print(f"Event fixed cost: {_money(context, costs.total_fixed_cost)}")
    return 0


def run_start_event(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the start-event workflow via the BLL."""
    event = core_logic.start_event(
        context,
        args.name,
        fixed_cost=args.fixed_cost,
        planned_output=args.planned_output,
    )
    print(f"Started event {event.event_id}: {event.name} (fixed cost {_money(context, event.fixed_cost)})")
    return 0


def run_end_event(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the end-event workflow via the BLL."""
    event = core_logic.end_event(context, mode=resolve_mode(context, args))
    print(
        f"Closed event {event.event_id}: revenue {_money(context, event.total_revenue)}, "
        f"cost {_money(context, event.total_cost)}, profit {_money(context, event.net_profit)}"
    )
    return 0


def run_reset_event(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.reset_event(context)
    return 0


def run_import(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the import workflow via the BLL."""
    payload = core_logic.read_import_file(args.file)
    counts = core_logic.import_data(context, payload)
    for key, count in counts.items():
        print(f"Imported {count} {key}")
    return 0


def run_settings(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    demo_mode = None if args.demo_mode is None else args.demo_mode == "on"
    if args.theme is None and demo_mode is None:
        current = core_logic.get_settings(context)
    else:
        current = core_logic.update_settings(context, theme=args.theme, demo_mode=demo_mode)
    print(f"theme={current.theme} demo_mode={'on' if current.demo_mode else 'off'}")
    return 0


def run_clear_all(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the full wipe after explicit confirmation."""
    if not args.yes:
        log.error("Refusing to clear all data without --yes")
        return 1
    core_logic.clear_all_data(context)
    return 0


def run_ingredients_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the ingredient listing workflow."""
    for row in core_logic.list_ingredients(context):
        cost = "-" if row.total_cost is None else _money(context, unit_cost(row))
        print(f"{row.ingredient_id}\t{row.name}\t{row.remaining_quantity}/{row.total_quantity} {row.unit}\t{cost}/{row.unit}")
    return 0


def run_low_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for row in core_logic.list_low_stock(context):
        print(f"{row.ingredient_id}\t{row.name}\t{row.remaining_quantity} {row.unit} (threshold {row.low_stock_threshold})")
    return 0


def run_stock_changes_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for ingredient_id, change in core_logic.get_stock_changes(context).items():
        print(f"{ingredient_id}\t{change.old} -> {change.new} ({change.change:+})")
    return 0


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the product costing workflow."""
    for entry in core_logic.describe_product_costs(context):
        product = entry.product
        flags = "" if product.is_active else " [inactive]"
        if product.is_active and not entry.sellable:
            flags = " [out of stock]"
        print(
            f"{product.product_id}\t{product.product_name}{flags}\t"
            f"price {_money(context, product.selling_price)}\t"
            f"cost {_money(context, entry.unit_cost)}\t"
            f"margin {_money(context, entry.unit_margin)}"
        )
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for sale in core_logic.list_sales(context, demo=args.demo):
        print(
            f"{sale.sale_id}\t{sale.timestamp_iso}\t{sale.quantity} x {sale.product_name}\t"
            f"{_money(context, sale.selling_price)}\t{sale.payment_type}"
        )
    return 0


def run_summary_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the profit reporting workflow."""
    summary = core_logic.calculate_profit_summary(context, resolve_mode(context, args), demo=args.demo)
    print(f"Mode: {summary.mode.value}")
    print(f"Items sold: {summary.items_sold}")
    print(f"Revenue: {_money(context, summary.total_revenue)}")
    print(f"Cost: {_money(context, summary.total_cost)}")
    print(f"Net profit: {_money(context, summary.net_profit)}")
    return 0


def run_breakdown_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for row in core_logic.calculate_sales_breakdown(context, demo=args.demo):
        print(f"{row.product_name}\t{row.count}\t{_money(context, row.revenue)}")
    return 0


def run_events_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    active = core_logic.get_active_event(context)
    if active is not None:
        print(f"Active: {active.event_id}\t{active.name}\tstarted {active.started_at}")
    for event in core_logic.list_event_history(context):
        print(
            f"{event.event_id}\t{event.name}\t{event.started_at} - {event.ended_at}\t"
            f"profit {_money(context, event.net_profit or Decimal('0'))}"
        )
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the export workflow."""
    payload = core_logic.export_data(context)
    if args.output is None:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        destination = core_logic.write_export_file(payload, args.output)
        print(f"Exported to {destination}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, core_logic.PersistenceFailure):
        log.error("%s", error)
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    core_logic.persist_context(context)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        spec = command_table.get(args.command)
        if exit_code == 0 and spec is not None and not spec.read_only:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
