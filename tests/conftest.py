"""Shared pytest fixtures and utilities for Booth Ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from booth_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from booth_ledger.data_manager import IngredientRow, ProductRow, RecipeItem  # noqa: E402
from booth_ledger.setup_workbook import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "BoothName = {booth_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Accounting]\n"
    "CostingMode = {costing_mode}\n"
    "CurrencySymbol = {currency_symbol}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    booth_name: str
    costing_mode: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized ledger workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "booth_ledger.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh ledger workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        booth_name: str = "Test Booth",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        costing_mode: str = constants.CostingMode.PER_UNIT.value,
        currency_symbol: str = constants.DEFAULT_CURRENCY_SYMBOL,
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                booth_name=booth_name,
                schema_version=schema_version,
                costing_mode=costing_mode,
                currency_symbol=currency_symbol,
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            booth_name=booth_name,
            costing_mode=costing_mode,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def stocked_context(runtime_context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """Runtime context holding one syrup batch and a drink that uses 20 ml of it.

    Syrup is bought as 1000 ml for 780, so one drink costs 15.60 and sells
    for 120.
    """

    data_manager.write_ingredients(
        runtime_context.workbook,
        [
            IngredientRow(
                ingredient_id="I-SYRUP",
                name="Syrup",
                unit="ml",
                total_cost=Decimal("780"),
                total_quantity=Decimal("1000"),
                remaining_quantity=Decimal("1000"),
                low_stock_threshold=Decimal("100"),
            ),
        ],
    )
    data_manager.write_products(
        runtime_context.workbook,
        [
            ProductRow(
                product_id="P-DRINK",
                product_name="Drink",
                selling_price=Decimal("120"),
                is_active=True,
                recipe=(RecipeItem(ingredient_id="I-SYRUP", quantity=Decimal("20")),),
            ),
        ],
    )
    return runtime_context


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


@pytest.fixture
def make_ingredient() -> Callable[..., IngredientRow]:
    """Build ingredient rows with sensible defaults."""

    def _make(
        ingredient_id: str = "I1",
        *,
        name: str = "Syrup",
        unit: str = "ml",
        total_cost: Decimal | None = Decimal("780"),
        total_quantity: Decimal = Decimal("1000"),
        remaining_quantity: Decimal | None = None,
        low_stock_threshold: Decimal | None = None,
    ) -> IngredientRow:
        return IngredientRow(
            ingredient_id=ingredient_id,
            name=name,
            unit=unit,
            total_cost=total_cost,
            total_quantity=total_quantity,
            remaining_quantity=total_quantity if remaining_quantity is None else remaining_quantity,
            low_stock_threshold=low_stock_threshold,
        )

    return _make


@pytest.fixture
def make_product() -> Callable[..., ProductRow]:
    """Build product rows from ``(ingredient_id, quantity)`` recipe pairs."""

    def _make(
        product_id: str = "P1",
        *,
        product_name: str = "Drink",
        selling_price: Decimal = Decimal("120"),
        is_active: bool = True,
        recipe: tuple[tuple[str, str], ...] = (("I1", "20"),),
    ) -> ProductRow:
        return ProductRow(
            product_id=product_id,
            product_name=product_name,
            selling_price=selling_price,
            is_active=is_active,
            recipe=tuple(RecipeItem(ingredient_id=i, quantity=Decimal(q)) for i, q in recipe),
        )

    return _make


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="booth-cli", description="Booth CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_table_entry() -> tuple[str, cli.CommandSpec]:
    """Provide a placeholder command table entry for dispatch tests."""

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        execute.__dict__["called"] = True
        return 0

    def register(
        subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("catalog-test")

    spec = cli.CommandSpec(
        name="catalog-test",
        help_text="help",
        register=register,
        execute=execute,
    )
    return "catalog-test", spec


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "booth_ledger.xlsx",
        booth_name="Test Booth",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        costing_mode=constants.CostingMode.PER_UNIT,
    )


@pytest.fixture
def workbook() -> Mock:
    """Return a mock workbook object for business logic tests."""

    return Mock(name="workbook")


@pytest.fixture
def context(settings: data_manager.ConfigSettings, workbook: Mock) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and workbook mocks."""

    return core_logic.RuntimeContext(settings=settings, workbook=workbook)


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
