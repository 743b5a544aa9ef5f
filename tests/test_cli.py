"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
import json
from decimal import Decimal
from pathlib import Path
from typing import Iterable

import pytest

from booth_ledger import cli, constants, core_logic
from booth_ledger.data_manager import RecipeItem


WRITE_COMMANDS = {
    "add-ingredient",
    "edit-ingredient",
    "delete-ingredient",
    "adjust-stock",
    "restock-low",
    "snapshot",
    "add-product",
    "edit-product",
    "delete-product",
    "sale",
    "undo",
    "clear-demo",
    "set-event-cost",
    "start-event",
    "end-event",
    "reset-event",
    "import",
    "settings",
    "clear-all",
}

READ_COMMANDS = {
    "ingredients",
    "low-stock",
    "stock-changes",
    "products",
    "sales",
    "summary",
    "breakdown",
    "events",
    "export",
}


def _parse(register, argv):
    parser = argparse.ArgumentParser(prog="cli")
    subparsers = parser.add_subparsers(dest="command")
    spec = register(subparsers)
    spec.register(subparsers)
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    parser = cli.build_parser()
    assert isinstance(parser, argparse.ArgumentParser)
    assert parser.prog == "booth-cli"
    assert "Booth Ledger" in (parser.description or "")


def test_configure_subcommands_registers_all_commands(cli_parser):
    command_table = cli.configure_subcommands(cli_parser)

    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS
    assert _registered_choices(cli_parser) == WRITE_COMMANDS | READ_COMMANDS


def test_read_commands_are_flagged_read_only(subparsers_action):
    read_specs = cli.register_read_commands(subparsers_action)
    write_specs = cli.register_write_commands(subparsers_action)

    assert set(read_specs) == READ_COMMANDS
    assert all(spec.read_only for spec in read_specs.values())
    assert not any(spec.read_only for spec in write_specs.values())


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def test_add_product_parses_repeated_recipe_pairs():
    namespace = _parse(
        cli.register_add_product_command,
        [
            "add-product",
            "--product-name", "Iced Latte",
            "--selling-price", "120",
            "--recipe", "I-SYRUP=20",
            "--recipe", "I-CUP=1",
            "--inactive",
        ],
    )

    assert namespace.selling_price == Decimal("120")
    assert namespace.recipe == [("I-SYRUP", Decimal("20")), ("I-CUP", Decimal("1"))]
    assert namespace.inactive is True


def test_add_product_requires_recipe():
    with pytest.raises(SystemExit):
        _parse(cli.register_add_product_command, ["add-product", "--product-name", "X", "--selling-price", "1"])


def test_pair_arg_rejects_malformed_text():
    with pytest.raises(argparse.ArgumentTypeError):
        cli.pair_arg("I-SYRUP")
    with pytest.raises(argparse.ArgumentTypeError):
        cli.pair_arg("I-SYRUP=lots")


def test_sale_defaults():
    namespace = _parse(cli.register_sale_command, ["sale", "--product-id", "P1"])

    assert namespace.quantity == 1
    assert namespace.payment_type == constants.PaymentType.CASH.value
    assert namespace.demo is False
    assert namespace.mode is None


def test_sale_rejects_unknown_payment_type():
    with pytest.raises(SystemExit):
        _parse(cli.register_sale_command, ["sale", "--product-id", "P1", "--payment-type", "barter"])


def test_edit_product_status_flags():
    activate = _parse(cli.register_edit_product_command, ["edit-product", "--product-id", "P1", "--activate"])
    untouched = _parse(cli.register_edit_product_command, ["edit-product", "--product-id", "P1"])

    assert activate.is_active is True
    assert untouched.is_active is None


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def test_translate_edit_ingredient_only_includes_given_fields():
    namespace = _parse(
        cli.register_edit_ingredient_command,
        ["edit-ingredient", "--ingredient-id", "I1", "--total-cost", "900", "--no-threshold"],
    )

    assert cli.translate_edit_ingredient(namespace) == {
        "total_cost": Decimal("900"),
        "low_stock_threshold": None,
    }


def test_translate_add_product_builds_recipe_items():
    namespace = _parse(
        cli.register_add_product_command,
        ["add-product", "--product-name", "Drink", "--selling-price", "120", "--recipe", "I1=20"],
    )

    payload = cli.translate_add_product(namespace)

    assert payload["recipe"] == [RecipeItem("I1", Decimal("20"))]
    assert payload["is_active"] is True


def test_resolve_mode_prefers_argument(runtime_context):
    assert cli.resolve_mode(runtime_context, argparse.Namespace(mode=None)) is constants.CostingMode.PER_UNIT
    assert (
        cli.resolve_mode(runtime_context, argparse.Namespace(mode="fixed_event"))
        is constants.CostingMode.FIXED_EVENT
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def test_run_sale_passes_configured_mode(runtime_context, monkeypatch):
    captured = {}

    def fake_process(context, product_id, quantity, *, mode, payment_type):
        captured.update(product_id=product_id, quantity=quantity, mode=mode, payment_type=payment_type)
        return core_logic.SaleRow("S1", "t", product_id, "Drink", Decimal("240"), quantity, payment_type.value)

    monkeypatch.setattr(core_logic, "process_sale", fake_process)
    args = argparse.Namespace(product_id="P1", quantity=2, payment_type="card", demo=False, mode=None)

    assert cli.run_sale(runtime_context, args) == 0
    assert captured == {
        "product_id": "P1",
        "quantity": 2,
        "mode": constants.CostingMode.PER_UNIT,
        "payment_type": constants.PaymentType.CARD,
    }


def test_run_sale_uses_demo_path_when_settings_say_so(runtime_context, monkeypatch):
    core_logic.update_settings(runtime_context, demo_mode=True)
    calls = []

    def fake_demo(context, product_id, quantity, *, mode, payment_type):
        calls.append(product_id)
        return core_logic.SaleRow("D1", "t", product_id, "Drink", Decimal("120"), quantity, payment_type.value)

    monkeypatch.setattr(core_logic, "process_demo_sale", fake_demo)
    monkeypatch.setattr(core_logic, "process_sale", lambda *a, **k: pytest.fail("real sale recorded"))
    args = argparse.Namespace(product_id="P1", quantity=1, payment_type="cash", demo=False, mode=None)

    assert cli.run_sale(runtime_context, args) == 0
    assert calls == ["P1"]


def test_run_summary_prints_formatted_totals(stocked_context, capsys):
    core_logic.process_sale(stocked_context, "P-DRINK", mode=constants.CostingMode.PER_UNIT)

    args = argparse.Namespace(mode=None, demo=False)
    assert cli.run_summary_report(stocked_context, args) == 0

    out = capsys.readouterr().out
    assert "Revenue: ₱120.00" in out
    assert "Cost: ₱15.60" in out
    assert "Net profit: ₱104.40" in out


def test_run_products_report_shows_margin(stocked_context, capsys):
    assert cli.run_products_report(stocked_context, argparse.Namespace()) == 0

    out = capsys.readouterr().out
    assert "cost ₱15.60" in out
    assert "margin ₱104.40" in out


def test_run_export_writes_json_to_stdout(stocked_context, capsys):
    assert cli.run_export(stocked_context, argparse.Namespace(output=None)) == 0

    payload = json.loads(capsys.readouterr().out)
    assert [row["id"] for row in payload["ingredients"]] == ["I-SYRUP"]


def test_run_clear_all_requires_confirmation(stocked_context):
    assert cli.run_clear_all(stocked_context, argparse.Namespace(yes=False)) == 1
    assert core_logic.list_ingredients(stocked_context)


def test_run_edit_product_without_changes_fails(stocked_context):
    args = argparse.Namespace(product_id="P-DRINK", product_name=None, selling_price=None, recipe=None, is_active=None)

    assert cli.run_edit_product(stocked_context, args) == 1


# ---------------------------------------------------------------------------
# Runtime helpers
# ---------------------------------------------------------------------------


def test_load_runtime_context_uses_provided_path(config_file, monkeypatch):
    captured = {}

    def fake_loader(path: Path | None) -> object:
        captured["path"] = path
        return "context"

    monkeypatch.setattr(core_logic, "load_runtime_context", fake_loader)

    assert cli.load_runtime_context(config_file) == "context"
    assert captured["path"] == config_file


def test_load_runtime_context_defaults_to_cwd(monkeypatch, tmp_path):
    captured = {}
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(core_logic, "load_runtime_context", lambda path: captured.setdefault("path", path))

    cli.load_runtime_context()

    assert captured["path"] == tmp_path / "config.ini"


def test_dispatch_command_invokes_executor(runtime_context, command_table_entry):
    name, spec = command_table_entry

    assert cli.dispatch_command(runtime_context, argparse.Namespace(command=name), {name: spec}) == 0
    assert spec.execute.__dict__.get("called") is True


def test_dispatch_command_handles_unknown_commands(runtime_context):
    with pytest.raises(KeyError):
        cli.dispatch_command(runtime_context, argparse.Namespace(command="missing"), {})


def test_build_command_table_indexes_specs(command_spec_iterable):
    table = cli.build_command_table(command_spec_iterable)
    assert list(table) == ["alpha", "beta", "gamma"]


def test_build_command_table_detects_duplicate_commands(command_spec_iterable):
    with pytest.raises(ValueError):
        cli.build_command_table([*command_spec_iterable, command_spec_iterable[0]])


@pytest.mark.parametrize(
    "error, expected",
    [
        (core_logic.BusinessRuleViolation("rule"), 2),
        (core_logic.InsufficientStock("short"), 2),
        (FileNotFoundError("missing"), 3),
        (core_logic.PersistenceFailure("locked"), 4),
        (ValueError("bad"), 1),
    ],
)
def test_handle_cli_error_maps_exit_codes(error, expected, caplog):
    with caplog.at_level("ERROR", logger="booth_ledger"):
        assert cli.handle_cli_error(error) == expected
    assert str(error) in caplog.text


def test_main_persists_after_write_command(monkeypatch, runtime_context):
    parser = _stub_parser(command="sale")
    command_table = {"sale": cli.CommandSpec("sale", "help", lambda _: parser, lambda *_: 0)}

    monkeypatch.setattr(cli, "build_parser", lambda: parser)
    monkeypatch.setattr(cli, "configure_subcommands", lambda _: command_table)
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)

    persisted = {}
    monkeypatch.setattr(cli, "persist_workbook", lambda ctx: persisted.setdefault("context", ctx))

    assert cli.main(["sale"]) == 0
    assert persisted["context"] is runtime_context


def test_main_skips_persist_for_read_command(monkeypatch, runtime_context):
    parser = _stub_parser(command="summary")
    command_table = {"summary": cli.CommandSpec("summary", "help", lambda _: parser, lambda *_: 0, read_only=True)}

    monkeypatch.setattr(cli, "build_parser", lambda: parser)
    monkeypatch.setattr(cli, "configure_subcommands", lambda _: command_table)
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)
    monkeypatch.setattr(cli, "persist_workbook", lambda _: pytest.fail("read command persisted"))

    assert cli.main(["summary"]) == 0


def test_main_handles_bll_errors(monkeypatch, runtime_context):
    parser = _stub_parser(command="sale")
    command_table = {"sale": cli.CommandSpec("sale", "help", lambda _: parser, lambda *_: 0)}

    monkeypatch.setattr(cli, "build_parser", lambda: parser)
    monkeypatch.setattr(cli, "configure_subcommands", lambda _: command_table)
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)

    def fake_dispatch(*_: object) -> int:
        raise core_logic.NothingToUndo("nothing")

    monkeypatch.setattr(cli, "dispatch_command", fake_dispatch)
    monkeypatch.setattr(cli, "persist_workbook", lambda _: pytest.fail("should not persist"))

    assert cli.main(["sale"]) == 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _stub_parser(command: str) -> argparse.ArgumentParser:
    """Create a stub parser that always returns the supplied command."""

    class _Stub(argparse.ArgumentParser):
        def parse_args(self, args: Iterable[str] | None = None, namespace: argparse.Namespace | None = None):  # type: ignore[override]
            return argparse.Namespace(command=command)

    return _Stub(prog="test")


def _registered_choices(parser: argparse.ArgumentParser) -> set[str]:
    """Return the set of registered sub-command names for assertion helpers."""

    actions = getattr(parser, "_subparsers", None)
    if not actions:
        return set()
    group_actions = actions._group_actions  # type: ignore[attr-defined]
    if not group_actions:
        return set()
    return set(group_actions[0].choices)  # type: ignore[index]
