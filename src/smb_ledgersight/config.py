# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for SMB LedgerSight.

This module is responsible for:
- loading the engine configuration from a TOML file,
- validating thresholds, bucket bounds and modes,
- exposing typed (frozen, hashable) dataclasses used by the pipeline.

Every section is optional: a missing section or key falls back to the
defaults below, which reproduce the standard vendor analytics.
"""

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .aging import DOMAIN_BUCKET_BOUNDS, validate_bounds
from .recommendations import RecommendationRules
from .scoring import ScoreWeights

DOMAINS: tuple[str, ...] = ("vendor", "customer")
BALANCE_SOURCES: tuple[str, ...] = ("reconciled", "reported")
SETTLEMENT_BASES: tuple[str, ...] = ("first", "last")
RELIABILITY_MODES: tuple[str, ...] = ("mean", "running")
DISPLAY_MODES: tuple[str, ...] = ("table", "csv", "both")

DEFAULT_CONFIG_FILE = "smb_ledgersight_config.toml"


@dataclass(frozen=True)
class AgingSettings:
    bucket_bounds: tuple[int, ...] = DOMAIN_BUCKET_BOUNDS["vendor"]
    balance_source: str = "reconciled"
    high_risk_age_days: int = 90


@dataclass(frozen=True)
class ScoringSettings:
    materiality_threshold_pct: float = 0.5
    settlement_basis: str = "last"
    reliability_mode: str = "mean"
    limit: Optional[int] = None
    weights: ScoreWeights = ScoreWeights()


@dataclass(frozen=True)
class TrendSettings:
    recent_window: int = 5
    threshold_days: float = 5.0
    max_periods: int = 12
    settlement_basis: str = "first"
    top_counterparties: int = 5


@dataclass(frozen=True)
class EngineConfig:
    """
    Engine-wide configuration for SMB LedgerSight.

    This aggregates:
    - the analytics domain ("vendor" payables or "customer" receivables),
    - aging, scoring, trend and concentration settings,
    - recommendation rule switches,
    - display options for the CLI.
    """

    domain: str = "vendor"
    strict: bool = False
    aging: AgingSettings = AgingSettings()
    scoring: ScoringSettings = ScoringSettings()
    trends: TrendSettings = TrendSettings()
    concentration_top_n: int = 10
    rules: RecommendationRules = RecommendationRules()
    display_mode: str = "table"
    decimals: int = 2
    source: Optional[Path] = field(default=None, compare=False)

    @property
    def noun(self) -> str:
        """Display noun of a counterparty ("Vendor" / "Customer")."""
        return self.domain.capitalize()


def default_engine_config(domain: str = "vendor") -> EngineConfig:
    """Default configuration for a domain, with the domain's bucket bounds."""
    _check_choice("engine.domain", domain, DOMAINS)
    return EngineConfig(
        domain=domain,
        aging=AgingSettings(bucket_bounds=DOMAIN_BUCKET_BOUNDS[domain]),
    )


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(parent: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = parent.get(name) or {}
    if not isinstance(section, Mapping):
        section = {}
    return section


def _check_choice(key: str, value: str, choices: tuple[str, ...]) -> str:
    if value not in choices:
        raise ValueError(
            f"Invalid value {value!r} for '{key}' in the configuration. "
            f"Expected one of: {', '.join(choices)}."
        )
    return value


def _as_number(key: str, value: Any, kind: type = float) -> Any:
    if isinstance(value, bool):
        raise ValueError(f"Invalid value for '{key}' in the configuration.")
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Invalid value for '{key}' in the configuration. "
            f"Expected a {kind.__name__}."
        ) from exc


def _parse_aging(raw: Mapping[str, Any], domain: str) -> AgingSettings:
    section = _section(raw, "aging")

    bounds_raw = section.get("bucket_bounds")
    if bounds_raw is None:
        bounds = DOMAIN_BUCKET_BOUNDS[domain]
    else:
        if not isinstance(bounds_raw, list):
            raise ValueError("'aging.bucket_bounds' must be a list of integers.")
        bounds = validate_bounds(
            [_as_number("aging.bucket_bounds", b, int) for b in bounds_raw]
        )

    balance_source = _check_choice(
        "aging.balance_source",
        str(section.get("balance_source", "reconciled")),
        BALANCE_SOURCES,
    )
    high_risk = _as_number(
        "aging.high_risk_age_days", section.get("high_risk_age_days", 90), int
    )
    if high_risk < 0:
        raise ValueError("'aging.high_risk_age_days' cannot be negative.")

    return AgingSettings(
        bucket_bounds=bounds,
        balance_source=balance_source,
        high_risk_age_days=high_risk,
    )


def _parse_weights(section: Mapping[str, Any]) -> ScoreWeights:
    defaults = ScoreWeights()
    values: dict[str, float] = {}
    for name in (
        "overdue_penalty",
        "speed_cap",
        "speed_divisor",
        "completion_weight",
        "reliability_weight",
    ):
        values[name] = _as_number(
            f"scoring.weights.{name}", section.get(name, getattr(defaults, name))
        )
    if values["speed_divisor"] <= 0:
        raise ValueError("'scoring.weights.speed_divisor' must be positive.")
    return ScoreWeights(**values)


def _parse_scoring(raw: Mapping[str, Any]) -> ScoringSettings:
    section = _section(raw, "scoring")

    threshold = _as_number(
        "scoring.materiality_threshold_pct",
        section.get("materiality_threshold_pct", 0.5),
    )
    if not 0 <= threshold <= 100:
        raise ValueError(
            "'scoring.materiality_threshold_pct' must be between 0 and 100."
        )

    limit_raw = section.get("limit")
    limit = None if limit_raw is None else _as_number("scoring.limit", limit_raw, int)
    if limit is not None and limit <= 0:
        raise ValueError("'scoring.limit' must be a positive integer.")

    return ScoringSettings(
        materiality_threshold_pct=threshold,
        settlement_basis=_check_choice(
            "scoring.settlement_basis",
            str(section.get("settlement_basis", "last")),
            SETTLEMENT_BASES,
        ),
        reliability_mode=_check_choice(
            "scoring.reliability_mode",
            str(section.get("reliability_mode", "mean")),
            RELIABILITY_MODES,
        ),
        limit=limit,
        weights=_parse_weights(_section(section, "weights")),
    )


def _parse_trends(raw: Mapping[str, Any]) -> TrendSettings:
    section = _section(raw, "trends")

    recent_window = _as_number(
        "trends.recent_window", section.get("recent_window", 5), int
    )
    max_periods = _as_number("trends.max_periods", section.get("max_periods", 12), int)
    top = _as_number(
        "trends.top_counterparties", section.get("top_counterparties", 5), int
    )
    if recent_window <= 0 or max_periods <= 0 or top < 0:
        raise ValueError(
            "'trends.recent_window' and 'trends.max_periods' must be positive, "
            "'trends.top_counterparties' cannot be negative."
        )

    return TrendSettings(
        recent_window=recent_window,
        threshold_days=_as_number(
            "trends.threshold_days", section.get("threshold_days", 5.0)
        ),
        max_periods=max_periods,
        settlement_basis=_check_choice(
            "trends.settlement_basis",
            str(section.get("settlement_basis", "first")),
            SETTLEMENT_BASES,
        ),
        top_counterparties=top,
    )


def _parse_rules(raw: Mapping[str, Any]) -> RecommendationRules:
    section = _section(raw, "recommendations")
    defaults = RecommendationRules()
    switches: dict[str, bool] = {}
    for name in defaults.__dataclass_fields__:
        value = section.get(name, getattr(defaults, name))
        if not isinstance(value, bool):
            raise ValueError(
                f"Invalid value for 'recommendations.{name}', expected true or false."
            )
        switches[name] = value
    return RecommendationRules(**switches)


def load_engine_config(
    config_path: Optional[str] = None,
    *,
    domain: Optional[str] = None,
) -> EngineConfig:
    """
    Load the SMB LedgerSight engine configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [engine]
        Analytics domain ("vendor" or "customer") and strict validation.

    [aging]
        Bucket bounds (defaults depend on the domain), balance source and
        the age beyond which a balance counts as high risk.

    [scoring] / [scoring.weights]
        Materiality threshold, settlement basis, reliability mode, optional
        scorecard limit and the weights of the composite score.

    [trends]
        Recent window, classification threshold, number of periods kept,
        settlement basis and number of per-counterparty series.

    [concentration]
        Number of individual entries before "Others".

    [recommendations]
        One boolean switch per rule.

    [display]
        Display mode ("table", "csv", "both") and decimals for the CLI.

    Parameters
    ----------
    config_path : str, optional
        Path to the TOML file. Defaults to ``smb_ledgersight_config.toml``
        in the current directory.
    domain : str, optional
        Overrides ``engine.domain`` (used by the CLI ``--domain`` option).

    Returns
    -------
    EngineConfig
        Parsed and validated configuration.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If the file cannot be parsed or holds invalid values.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)

    # 1) Engine section
    engine_section = _section(raw, "engine")
    resolved_domain = _check_choice(
        "engine.domain",
        str(domain or engine_section.get("domain") or "vendor"),
        DOMAINS,
    )
    strict = bool(engine_section.get("strict", False))

    # 2) Concentration
    concentration_section = _section(raw, "concentration")
    top_n = _as_number(
        "concentration.top_n", concentration_section.get("top_n", 10), int
    )
    if top_n <= 0:
        raise ValueError("'concentration.top_n' must be a positive integer.")

    # 3) Display options
    display_section = _section(raw, "display")
    display_mode = _check_choice(
        "display.mode", str(display_section.get("mode", "table")), DISPLAY_MODES
    )
    try:
        decimals = int(display_section.get("decimals", 2))
    except (TypeError, ValueError):
        decimals = 2

    return EngineConfig(
        domain=resolved_domain,
        strict=strict,
        aging=_parse_aging(raw, resolved_domain),
        scoring=_parse_scoring(raw),
        trends=_parse_trends(raw),
        concentration_top_n=top_n,
        rules=_parse_rules(raw),
        display_mode=display_mode,
        decimals=decimals,
        source=config_file,
    )
