"""Tests for the workbook bootstrap script."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import openpyxl
import pytest

from booth_ledger import data_manager, setup_workbook
from booth_ledger.data_manager import AppSettings, EventCosts


def test_create_master_workbook_writes_bold_headers(tmp_path: Path) -> None:
    destination = setup_workbook.create_master_workbook(tmp_path / "ledger.xlsx")

    workbook = openpyxl.load_workbook(destination)
    assert workbook.sheetnames == list(data_manager.SHEET_COLUMNS)
    for sheet_name, columns in data_manager.SHEET_COLUMNS.items():
        header = next(workbook[sheet_name].iter_rows(min_row=1, max_row=1))
        assert [cell.value for cell in header] == list(columns)
        assert all(cell.font.bold for cell in header)


def test_create_master_workbook_seeds_default_rows(tmp_path: Path) -> None:
    destination = setup_workbook.create_master_workbook(tmp_path / "ledger.xlsx")

    workbook = data_manager.open_workbook(destination)

    assert data_manager.read_event_costs(workbook) == EventCosts(total_fixed_cost=Decimal("0"), notes="")
    assert data_manager.read_settings(workbook) == AppSettings()
    assert list(data_manager.iter_ingredients(workbook)) == []


def test_create_master_workbook_refuses_to_overwrite(tmp_path: Path) -> None:
    destination = setup_workbook.create_master_workbook(tmp_path / "ledger.xlsx")

    with pytest.raises(FileExistsError):
        setup_workbook.create_master_workbook(destination)

    assert setup_workbook.create_master_workbook(destination, overwrite=True) == destination


def test_run_from_config_uses_data_file(config_factory) -> None:
    bundle = config_factory()
    bundle.workbook_path.unlink()

    assert setup_workbook.run_from_config(bundle.config_path) == bundle.workbook_path.resolve()
    assert bundle.workbook_path.exists()


def test_main_reports_existing_workbook(config_factory, capsys: pytest.CaptureFixture[str]) -> None:
    bundle = config_factory()

    assert setup_workbook.main(["--config", str(bundle.config_path)]) == 1
    out = capsys.readouterr().out
    assert "[ERROR]" in out
    assert "--force" in out

    assert setup_workbook.main(["--config", str(bundle.config_path), "--force"]) == 0
    assert "[SUCCESS]" in capsys.readouterr().out


def test_main_reports_missing_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert setup_workbook.main(["--config", str(tmp_path / "missing.ini")]) == 1
    assert "[ERROR]" in capsys.readouterr().out
