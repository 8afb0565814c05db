from pathlib import Path

import pytest

from smb_ledgersight.config import (
    DEFAULT_CONFIG_FILE,
    EngineConfig,
    default_engine_config,
    load_engine_config,
)


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(content, encoding="utf-8")
    return path


def test_default_configs_per_domain() -> None:
    vendor = default_engine_config()
    customer = default_engine_config("customer")

    assert vendor.aging.bucket_bounds == (30, 60, 90)
    assert customer.aging.bucket_bounds == (30, 60, 90, 180)
    assert vendor.noun == "Vendor"
    assert customer.noun == "Customer"
    assert vendor.scoring.settlement_basis == "last"
    assert vendor.trends.settlement_basis == "first"
    assert vendor.scoring.reliability_mode == "mean"


def test_default_config_unknown_domain() -> None:
    with pytest.raises(ValueError):
        default_engine_config("supplier")


def test_configs_are_hashable_and_comparable() -> None:
    """Configurations are used as cache keys."""
    assert hash(default_engine_config()) == hash(default_engine_config())
    assert default_engine_config() == EngineConfig()
    assert default_engine_config() != default_engine_config("customer")


def test_load_full_config(tmp_path) -> None:
    path = _write(
        tmp_path,
        """
[engine]
domain = "customer"
strict = true

[aging]
bucket_bounds = [15, 45, 120]
balance_source = "reported"
high_risk_age_days = 120

[scoring]
materiality_threshold_pct = 1.0
settlement_basis = "first"
reliability_mode = "running"
limit = 20

[scoring.weights]
overdue_penalty = 2.0

[trends]
recent_window = 3
threshold_days = 2.5

[concentration]
top_n = 5

[recommendations]
inactive = false

[display]
mode = "both"
decimals = 1
""",
    )

    cfg = load_engine_config(str(path))

    assert cfg.domain == "customer"
    assert cfg.strict is True
    assert cfg.aging.bucket_bounds == (15, 45, 120)
    assert cfg.aging.balance_source == "reported"
    assert cfg.aging.high_risk_age_days == 120
    assert cfg.scoring.materiality_threshold_pct == 1.0
    assert cfg.scoring.settlement_basis == "first"
    assert cfg.scoring.reliability_mode == "running"
    assert cfg.scoring.limit == 20
    assert cfg.scoring.weights.overdue_penalty == 2.0
    assert cfg.scoring.weights.speed_cap == 30.0
    assert cfg.trends.recent_window == 3
    assert cfg.trends.threshold_days == 2.5
    assert cfg.concentration_top_n == 5
    assert cfg.rules.inactive is False
    assert cfg.rules.high_overdue is True
    assert cfg.display_mode == "both"
    assert cfg.decimals == 1
    assert cfg.source == path.resolve()


def test_empty_config_uses_domain_defaults(tmp_path) -> None:
    path = _write(tmp_path, '[engine]\ndomain = "customer"\n')

    cfg = load_engine_config(str(path))

    assert cfg.aging.bucket_bounds == (30, 60, 90, 180)
    assert cfg == default_engine_config("customer")


def test_domain_argument_overrides_file(tmp_path) -> None:
    path = _write(tmp_path, '[engine]\ndomain = "customer"\n')

    cfg = load_engine_config(str(path), domain="vendor")

    assert cfg.domain == "vendor"
    assert cfg.aging.bucket_bounds == (30, 60, 90)


def test_default_config_file_in_working_directory(tmp_path, monkeypatch) -> None:
    (tmp_path / DEFAULT_CONFIG_FILE).write_text("[display]\nmode = \"csv\"\n")
    monkeypatch.chdir(tmp_path)

    assert load_engine_config().display_mode == "csv"


def test_missing_config_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_engine_config(str(tmp_path / "nope.toml"))


def test_invalid_toml(tmp_path) -> None:
    path = _write(tmp_path, "[engine\ndomain = ")

    with pytest.raises(ValueError, match="Failed to parse"):
        load_engine_config(str(path))


@pytest.mark.parametrize(
    "content",
    [
        "[aging]\nbucket_bounds = [60, 30, 90]\n",
        "[aging]\nbucket_bounds = [30, 30]\n",
        "[aging]\nbucket_bounds = []\n",
        "[aging]\nbucket_bounds = \"30,60\"\n",
        "[aging]\nbalance_source = \"ledger\"\n",
        "[engine]\ndomain = \"supplier\"\n",
        "[scoring]\nsettlement_basis = \"median\"\n",
        "[scoring]\nreliability_mode = \"weighted\"\n",
        "[scoring]\nmateriality_threshold_pct = 150\n",
        "[scoring]\nlimit = 0\n",
        "[scoring.weights]\nspeed_divisor = 0\n",
        "[trends]\nrecent_window = 0\n",
        "[concentration]\ntop_n = 0\n",
        "[recommendations]\ninactive = \"no\"\n",
        "[display]\nmode = \"html\"\n",
    ],
)
def test_invalid_values_are_rejected(tmp_path, content) -> None:
    path = _write(tmp_path, content)

    with pytest.raises(ValueError):
        load_engine_config(str(path))
