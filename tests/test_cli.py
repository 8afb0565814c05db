from pathlib import Path

import pytest

import smb_ledgersight
from smb_ledgersight import __version__
from smb_ledgersight.cli import main

DATA_DIR = Path(__file__).resolve().parent.parent / "data" / "input"
BILLS = str(DATA_DIR / "bills.csv")
PAYMENTS = str(DATA_DIR / "payments.csv")


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    # Keep any smb_ledgersight_config.toml of the repository out of the tests.
    monkeypatch.chdir(tmp_path)


def test_version(capsys) -> None:
    main(["--version"])

    assert capsys.readouterr().out.strip() == f"smb_ledgersight version {__version__}"


def test_package_lists_every_module() -> None:
    package_dir = Path(smb_ledgersight.__file__).parent
    modules = {p.stem for p in package_dir.glob("*.py")} - {"__init__"}

    assert sorted(smb_ledgersight.__all__) == sorted(modules)


def test_table_output_for_one_scope(capsys) -> None:
    main(
        [
            "--bills",
            BILLS,
            "--payments",
            PAYMENTS,
            "--as-of",
            "2025-06-30",
            "--scope",
            "aging",
        ]
    )

    out = capsys.readouterr().out
    assert "Reference date: 2025-06-30" in out
    assert "=== Vendor aging ===" in out
    assert "=== Portfolio aging ===" in out
    assert "Acme Supplies" in out
    assert "=== Vendor performance scorecard ===" not in out
    assert "1 payments reference unknown bills" in out


def test_csv_output_for_all_scopes(tmp_path, capsys) -> None:
    out_dir = tmp_path / "out"

    main(
        [
            "--bills",
            BILLS,
            "--payments",
            PAYMENTS,
            "--as-of",
            "2025-06-30",
            "--display-mode",
            "csv",
            "--output",
            str(out_dir),
        ]
    )

    written = sorted(p.name.rsplit("_", 1)[0] for p in out_dir.glob("*.csv"))
    assert "aging" in written
    assert "scorecard" in written
    assert "recommendations" in written
    assert "diagnostics" in written
    assert "relationships" in written
    assert len(written) == 16
    assert "=== " not in capsys.readouterr().out


def test_customer_domain_and_filters(capsys) -> None:
    main(
        [
            "--bills",
            BILLS,
            "--as-of",
            "2025-06-30",
            "--domain",
            "customer",
            "--counterparty",
            "V-0001",
            "--from-date",
            "2025-01-01",
            "--scope",
            "aging",
        ]
    )

    out = capsys.readouterr().out
    assert "=== Customer aging ===" in out
    assert "91-180" in out
    assert "Gulf Logistics" not in out


def test_config_file_option(tmp_path, capsys) -> None:
    config = tmp_path / "custom.toml"
    config.write_text('[engine]\ndomain = "customer"\n', encoding="utf-8")

    main(
        [
            "--config",
            str(config),
            "--bills",
            BILLS,
            "--as-of",
            "2025-06-30",
            "--scope",
            "scores",
        ]
    )

    assert "=== Customer performance scorecard ===" in capsys.readouterr().out


def test_invalid_date_exits() -> None:
    with pytest.raises(SystemExit):
        main(["--bills", BILLS, "--as-of", "30/06/2025"])


def test_missing_bills_option_exits() -> None:
    with pytest.raises(SystemExit):
        main(["--as-of", "2025-06-30"])


def test_missing_bills_file_exits(tmp_path) -> None:
    with pytest.raises(SystemExit):
        main(["--bills", str(tmp_path / "missing.csv")])


def test_invalid_csv_structure_exits(tmp_path) -> None:
    bad = tmp_path / "bad.csv"
    bad.write_text("bill_id\nB1\n", encoding="utf-8")

    with pytest.raises(SystemExit, match="missing required column"):
        main(["--bills", str(bad)])
