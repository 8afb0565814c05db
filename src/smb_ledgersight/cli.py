# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for SMB LedgerSight.

This module wires together the main building blocks of SMB LedgerSight:

- engine configuration (domain, thresholds, rule switches, display),
- CSV readers for raw bill and payment exports,
- the analytics pipeline (normalization, reconciliation, aging, scoring,
  trends, concentration, recommendations, alerts, relationship and
  operational views),
- view helpers (tabular rendering).

The CLI is intentionally thin: it does not implement any analytics logic
itself. It only orchestrates the underlying modules based on command-line
arguments and the configuration file.


High-level pipeline
-------------------

1) Load the TOML configuration (``smb_ledgersight_config.toml`` by
   default, or ``--config``). When no configuration file exists, the
   defaults of the selected ``--domain`` are used.

2) Read the raw bills (``--bills``) and payments (``--payments``) CSV
   exports. Payments are optional (receivables exports often have none;
   use ``aging.balance_source = "reported"`` in that case).

3) Run the analytics pipeline for the reference date ``--as-of``
   (today when omitted), with optional counterparty and date filters.

4) Render the selected ``--scope`` as console tables and/or CSV files
   depending on the display mode.


Display modes
-------------

- ``table``: render results to stdout (pandas.DataFrame.to_string),
- ``csv``:   write CSV files only,
- ``both``:  do both.

CSV files are written to ``--output DIR`` (``data/output`` by default)
with a timestamp-based name, for example
``aging_YYYY-MM-DD-HH-MM-SS.csv``.
"""

import argparse
import logging
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .config import DEFAULT_CONFIG_FILE, DOMAINS, default_engine_config, load_engine_config
from .io import PAYMENT_COLUMNS, read_bills_csv, read_payments_csv
from .normalize import RecordValidationError
from .pipeline import AnalysisFilters, AnalyticsResult, analyze
from .views import (
    aging_to_dataframe,
    alerts_to_dataframe,
    benchmarks_to_dataframe,
    concentration_levels_to_dataframe,
    concentration_to_dataframe,
    counterparty_trends_to_dataframe,
    diagnostics_to_dataframe,
    group_rollup_to_dataframe,
    kpis_to_dataframe,
    operational_to_dataframe,
    portfolio_aging_to_dataframe,
    problems_to_dataframe,
    recommendations_to_dataframe,
    relationships_to_dataframe,
    risk_distribution_to_dataframe,
    scorecard_to_dataframe,
    trends_to_dataframe,
)

logger = logging.getLogger(__name__)

SCOPES = [
    "aging",
    "scores",
    "trends",
    "concentration",
    "recommendations",
    "alerts",
    "relationships",
    "all",
]


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m smb_ledgersight.cli",
        description=(
            "SMB LedgerSight - Aging & Counterparty Analytics for SMBs. "
            "Reads raw bill and payment exports, reconciles payments, and "
            "renders aging, performance scores, trends, concentration and "
            "recommendations."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of smb_ledgersight and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. If omitted, "
            f"'{DEFAULT_CONFIG_FILE}' in the current directory is used when "
            "it exists, otherwise built-in defaults."
        ),
    )
    ap.add_argument(
        "--log-level",
        dest="log_level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )

    # Inputs
    ap.add_argument(
        "--bills",
        dest="bills_path",
        metavar="CSV_PATH",
        help="CSV export of bills (or invoices).",
    )
    ap.add_argument(
        "--payments",
        dest="payments_path",
        metavar="CSV_PATH",
        help="CSV export of payments. Optional.",
    )
    ap.add_argument(
        "--domain",
        choices=list(DOMAINS),
        help=(
            "Override engine.domain from the configuration: 'vendor' "
            "(payables) or 'customer' (receivables)."
        ),
    )
    ap.add_argument(
        "--strict",
        action="store_true",
        help="Fail on bills missing an id instead of skipping them.",
    )

    # Reference date and filters
    ap.add_argument(
        "--as-of",
        dest="as_of",
        help="Reference date (YYYY-MM-DD) for ages and activity. Defaults to today.",
    )
    ap.add_argument(
        "--counterparty",
        dest="counterparties",
        action="append",
        metavar="ID",
        help="Restrict the analysis to this counterparty id (repeatable).",
    )
    ap.add_argument(
        "--from-date",
        dest="from_date",
        help="Only keep bills dated on or after this date (YYYY-MM-DD).",
    )
    ap.add_argument(
        "--to-date",
        dest="to_date",
        help="Only keep bills dated on or before this date (YYYY-MM-DD).",
    )

    # Scope: what to render
    ap.add_argument(
        "--scope",
        choices=SCOPES,
        default="all",
        help=(
            "Select what to render: aging, scores, trends, concentration, "
            "recommendations, alerts (KPIs, problem counterparties and alerts), "
            "relationships (relationship matrix, operational scores and group "
            "rollup) or all."
        ),
    )

    # Display options
    ap.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=["table", "csv", "both"],
        help=(
            "Override the display.mode setting from the configuration file. "
            "'table' prints results to stdout, "
            "'csv' writes CSV files only, "
            "'both' does both."
        ),
    )
    ap.add_argument(
        "--output",
        dest="output_dir",
        help=(
            "Output directory where CSV files will be written when display "
            "mode includes 'csv'. If omitted, 'data/output' is used."
        ),
    )
    return ap


def _parse_optional_date(value: Optional[str]) -> Optional[date]:
    """
    Parse an optional CLI date argument (YYYY-MM-DD).

    Raises
    ------
    SystemExit
        If the date format is invalid.
    """
    if value is None:
        return None

    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        msg = f"Invalid date format: {value!r}. Expected YYYY-MM-DD."
        raise SystemExit(msg) from exc


def _load_config(args: argparse.Namespace):
    if args.config_path:
        return load_engine_config(args.config_path, domain=args.domain)
    if Path(DEFAULT_CONFIG_FILE).is_file():
        return load_engine_config(domain=args.domain)
    return default_engine_config(args.domain or "vendor")


def build_sections(
    result: AnalyticsResult,
    scope: str,
    decimals: int,
) -> list[tuple[str, str, pd.DataFrame]]:
    """
    Tables to render for a scope, as (file stem, title, DataFrame) tuples.
    """
    noun = result.config.noun
    sections: list[tuple[str, str, pd.DataFrame]] = []

    if scope in {"aging", "all"}:
        sections.append(
            (
                "aging",
                f"{noun} aging",
                aging_to_dataframe(result.aging, decimals),
            )
        )
        sections.append(
            (
                "aging_portfolio",
                "Portfolio aging",
                portfolio_aging_to_dataframe(result.portfolio_aging, decimals),
            )
        )
        sections.append(
            (
                "risk_distribution",
                "Risk distribution",
                risk_distribution_to_dataframe(result.risk_distribution, decimals),
            )
        )

    if scope in {"scores", "all"}:
        sections.append(
            (
                "scorecard",
                f"{noun} performance scorecard",
                scorecard_to_dataframe(result.scorecard, decimals),
            )
        )

    if scope in {"trends", "all"}:
        points = list(result.monthly_trends)
        for series in result.counterparty_series.values():
            points.extend(series)
        sections.append(
            ("trends", "Monthly trends", trends_to_dataframe(points, decimals))
        )
        sections.append(
            (
                "settlement_trends",
                "Settlement trends",
                counterparty_trends_to_dataframe(result.counterparty_trends, decimals),
            )
        )

    if scope in {"concentration", "all"}:
        sections.append(
            (
                "concentration",
                "Spend concentration",
                concentration_to_dataframe(result.concentration, decimals),
            )
        )
        sections.append(
            (
                "concentration_levels",
                "Concentration levels",
                concentration_levels_to_dataframe(result.concentration),
            )
        )

    if scope in {"recommendations", "all"}:
        sections.append(
            (
                "recommendations",
                "Recommendations",
                recommendations_to_dataframe(result.recommendations, decimals),
            )
        )

    if scope in {"alerts", "all"}:
        sections.append(("kpis", "Portfolio KPIs", kpis_to_dataframe(result.kpis, decimals)))
        sections.append(
            (
                "problem_counterparties",
                f"Problem {noun.lower()}s",
                problems_to_dataframe(result.problem_counterparties, decimals),
            )
        )
        sections.append(("alerts", "Alerts", alerts_to_dataframe(result.alerts)))

    if scope in {"relationships", "all"}:
        sections.append(
            (
                "relationships",
                f"{noun} relationship matrix",
                relationships_to_dataframe(result.relationships, decimals),
            )
        )
        sections.append(
            (
                "operational",
                f"{noun} operational metrics",
                operational_to_dataframe(result.operational),
            )
        )
        sections.append(
            (
                "operational_benchmarks",
                "Operational benchmarks",
                benchmarks_to_dataframe(result.operational_benchmarks),
            )
        )
        # Only when the bills carry a group key.
        if result.group_rollup:
            sections.append(
                (
                    "group_rollup",
                    "Outstanding by group",
                    group_rollup_to_dataframe(result.group_rollup, decimals),
                )
            )

    if scope == "all":
        sections.append(
            (
                "diagnostics",
                "Data quality",
                diagnostics_to_dataframe(result.diagnostics),
            )
        )
    return sections


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the SMB LedgerSight CLI.

    This function parses command-line arguments, loads the configuration,
    reads the raw CSV exports, runs the analytics pipeline for the
    reference date and renders the selected scope as console tables and/or
    CSV files.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"smb_ledgersight version {__version__}")
        return

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.bills_path:
        parser.error("--bills is required.")

    # 1) Configuration
    try:
        config = _load_config(args)
    except (FileNotFoundError, ValueError) as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc
    logger.info(
        "Using %s configuration from %s",
        config.domain,
        config.source or "built-in defaults",
    )

    # 2) Inputs
    bills_path = Path(args.bills_path)
    if not bills_path.is_file():
        parser.error(f"Bills CSV file not found: {bills_path}")

    payments_path: Optional[Path] = None
    if args.payments_path:
        payments_path = Path(args.payments_path)
        if not payments_path.is_file():
            parser.error(f"Payments CSV file not found: {payments_path}")

    try:
        bills_df = read_bills_csv(bills_path)
        if payments_path is not None:
            payments_df = read_payments_csv(payments_path)
        else:
            payments_df = pd.DataFrame(columns=PAYMENT_COLUMNS)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    # 3) Reference date and filters
    reference_date = _parse_optional_date(args.as_of) or date.today()
    try:
        filters = AnalysisFilters(
            counterparty_ids=(
                frozenset(args.counterparties) if args.counterparties else None
            ),
            start=_parse_optional_date(args.from_date),
            end=_parse_optional_date(args.to_date),
        )
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    if args.strict:
        config = replace(config, strict=True)

    # 4) Analytics
    try:
        result = analyze(bills_df, payments_df, reference_date, config, filters)
    except RecordValidationError as exc:
        raise SystemExit(f"Invalid input record: {exc}") from exc

    dropped = result.diagnostics.get("dropped_payments", 0)
    orphans = result.diagnostics.get("orphan_payments", 0)
    if dropped or orphans:
        print(
            f"Warning: {int(dropped)} payments dropped, "
            f"{int(orphans)} payments reference unknown bills."
        )

    sections = build_sections(result, args.scope, config.decimals)

    # 5) Resolve display mode: config value overridden by CLI if provided.
    display_mode = config.display_mode
    if args.display_mode:
        display_mode = args.display_mode

    # 6) Render to console (table mode).
    if display_mode in {"table", "both"}:
        print(f"Reference date: {reference_date.isoformat()}")
        for _, title, df in sections:
            print()
            print(f"=== {title} ===")
            if df.empty:
                print("(no data)")
            else:
                print(df.to_string(index=False))

        if args.scope in {"recommendations", "all"}:
            print()
            print("=== Key insights ===")
            for insight in result.recommendations.key_insights:
                print(f"- {insight}")

    # 7) Render to CSV files (csv mode).
    if display_mode in {"csv", "both"}:
        output_dir = Path(args.output_dir) if args.output_dir else Path("data/output")
        output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")

        for stem, _, df in sections:
            path = output_dir / f"{stem}_{timestamp}.csv"
            df.to_csv(path, index=False)
            print(f"Wrote {path} ({len(df)} rows)")


if __name__ == "__main__":
    main()
