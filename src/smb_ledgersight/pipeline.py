# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Pipeline orchestration for SMB LedgerSight.

This module provides the high-level entry point that turns a raw ledger
snapshot into every analytics output in a single pass.

Overview
--------
``analyze()`` runs the following stages, in order:

1. Normalization of raw bills and payments (typed records + diagnostics).
2. Reconciliation of payments against bills.
3. Filtering (counterparty subset, bill-date range). Filters are applied
   to the reconciled bills, so payments of filtered-out bills are never
   mistaken for orphans.
4. Aging per counterparty and for the whole portfolio.
5. Counterparty metrics and the performance scorecard.
6. Monthly series and recent-vs-historical trends.
7. Spend concentration.
8. Recommendations, portfolio KPIs, problem counterparties and alerts.
9. Relationship matrix, operational scores and the rollup by group key.

All outputs are gathered in an ``AnalyticsResult``. Nothing is read from or
written to disk here, and the reference date is always explicit.

Cancellation
------------
A ``CancellationToken`` can be passed to ``analyze()``. It is checked
between stages; once cancelled, ``AnalysisCancelled`` is raised and no
result (partial or complete) is returned to the caller.

Memoization
-----------
``ResultCache`` memoizes results keyed by the SHA-256 fingerprint of the
raw snapshot, the filters, the reference date and the configuration. A new
snapshot always yields a new fingerprint, so a stale result can never be
returned for changed data. ``invalidate()`` empties the cache explicitly.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import date
from typing import Any, Optional

import pandas as pd

from .aging import (
    AgingSummary,
    PortfolioAging,
    RiskDistributionEntry,
    age_counterparties,
    risk_distribution,
    summarize_portfolio,
)
from .concentration import ConcentrationMetrics, analyze_concentration
from .config import EngineConfig, default_engine_config
from .kpis import (
    Alert,
    PortfolioKpis,
    ProblemCounterparty,
    build_alerts,
    compute_portfolio_kpis,
    find_problem_counterparties,
)
from .normalize import normalize_bills, normalize_payments
from .recommendations import RecommendationReport, generate_recommendations
from .reconcile import ReconciliationTotals, reconcile, summarize_totals
from .records import Diagnostics, ReconciledBill
from .relationships import (
    GroupRollup,
    OperationalBenchmark,
    OperationalMetrics,
    RelationshipEntry,
    operational_benchmarks,
    operational_metrics,
    relationship_matrix,
    rollup_by_group,
)
from .scoring import (
    CounterpartyMetrics,
    PerformanceScore,
    compute_all_metrics,
    score_counterparties,
)
from .trends import (
    CounterpartyTrend,
    TrendPoint,
    analyze_counterparty_trends,
    counterparty_series,
    monthly_series,
)

logger = logging.getLogger(__name__)


class AnalysisCancelled(Exception):
    """Raised when an analysis is cancelled before it completes."""


class CancellationToken:
    """
    Thread-safe cancellation flag shared between a caller and ``analyze()``.

    A caller that supersedes a request (for example because a filter
    changed) calls ``cancel()``; the running analysis stops at the next
    stage boundary.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str = "") -> None:
        if self._event.is_set():
            raise AnalysisCancelled(
                f"Analysis cancelled{f' before {stage}' if stage else ''}."
            )


@dataclass(frozen=True)
class AnalysisFilters:
    """
    Optional filters applied after normalization.

    When a date range is set, bills without a parseable bill date are
    excluded, since they cannot be placed in the range.
    """

    counterparty_ids: Optional[frozenset[str]] = None
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self) -> None:
        if self.counterparty_ids is not None and not isinstance(
            self.counterparty_ids, frozenset
        ):
            object.__setattr__(self, "counterparty_ids", frozenset(self.counterparty_ids))
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValueError("Filter end date cannot be before start date.")

    @property
    def has_date_range(self) -> bool:
        return self.start is not None or self.end is not None

    def accepts(self, bill: ReconciledBill) -> bool:
        if (
            self.counterparty_ids is not None
            and bill.counterparty_id not in self.counterparty_ids
        ):
            return False
        if self.has_date_range:
            if bill.bill_date is None:
                return False
            if self.start is not None and bill.bill_date < self.start:
                return False
            if self.end is not None and bill.bill_date > self.end:
                return False
        return True


NO_FILTERS = AnalysisFilters()


@dataclass(frozen=True)
class AnalyticsResult:
    """
    Every output of one analysis run.

    Attributes
    ----------
    reference_date :
        Date all ages, activity and inactivity are measured from.
    bills :
        Reconciled bills after filtering.
    totals :
        Reconciliation totals of the filtered bills, including orphan and
        dropped payments of the whole snapshot.
    diagnostics :
        Data-quality counters (see ``Diagnostics.as_dict``).
    aging / portfolio_aging / risk_distribution :
        Aging outputs.
    metrics / scorecard :
        Metrics of every counterparty and the (material) scorecard.
    monthly_trends / counterparty_series / counterparty_trends :
        Trend outputs.
    concentration, recommendations, kpis, problem_counterparties, alerts :
        Remaining analytics.
    relationships / operational / operational_benchmarks / group_rollup :
        Relationship matrix, operational scores and the rollup by group
        key (empty when the bills carry no group).
    fingerprint :
        SHA-256 fingerprint of the raw snapshot.
    """

    reference_date: date
    config: EngineConfig
    filters: AnalysisFilters
    bills: list[ReconciledBill]
    totals: ReconciliationTotals
    diagnostics: dict[str, float]
    aging: list[AgingSummary]
    portfolio_aging: PortfolioAging
    risk_distribution: list[RiskDistributionEntry]
    metrics: list[CounterpartyMetrics]
    scorecard: list[PerformanceScore]
    monthly_trends: list[TrendPoint]
    counterparty_series: dict[str, list[TrendPoint]]
    counterparty_trends: list[CounterpartyTrend]
    concentration: ConcentrationMetrics
    recommendations: RecommendationReport
    kpis: PortfolioKpis
    problem_counterparties: list[ProblemCounterparty]
    alerts: list[Alert]
    relationships: list[RelationshipEntry]
    operational: list[OperationalMetrics]
    operational_benchmarks: list[OperationalBenchmark]
    group_rollup: list[GroupRollup]
    fingerprint: str = ""
    timings: dict[str, float] = field(default_factory=dict, compare=False)


# ---------------------------------------------------------------------------
# Fingerprinting
# ---------------------------------------------------------------------------


def _record_payload(record: Any) -> Any:
    if is_dataclass(record) and not isinstance(record, type):
        record = asdict(record)
    if isinstance(record, Mapping):
        return sorted((str(k), str(v)) for k, v in record.items())
    return str(record)


def _iter_raw(records: Any) -> Iterable[Any]:
    if isinstance(records, pd.DataFrame):
        return records.to_dict(orient="records")
    return records


def _materialize(records: Any) -> Any:
    """Turn one-shot iterables into lists so they can be read more than once."""
    if isinstance(records, (pd.DataFrame, list, tuple)):
        return records
    return list(records)


def fingerprint_records(records: Any) -> str:
    """
    SHA-256 digest of a raw record snapshot.

    Record order matters (it drives duplicate resolution), key order does not.
    """
    digest = hashlib.sha256()
    for record in _iter_raw(records):
        digest.update(json.dumps(_record_payload(record)).encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


def fingerprint_snapshot(bills: Any, payments: Any) -> str:
    digest = hashlib.sha256()
    digest.update(fingerprint_records(bills).encode("ascii"))
    digest.update(fingerprint_records(payments).encode("ascii"))
    return digest.hexdigest()


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class _StageClock:
    """Checks cancellation at each stage boundary and records timings."""

    def __init__(self, token: Optional[CancellationToken]) -> None:
        self.token = token
        self.timings: dict[str, float] = {}
        self._stage: Optional[str] = None
        self._started = 0.0

    def start(self, stage: str) -> None:
        self._close()
        if self.token is not None:
            self.token.raise_if_cancelled(stage)
        self._stage = stage
        self._started = time.perf_counter()

    def finish(self) -> dict[str, float]:
        self._close()
        if self.token is not None:
            self.token.raise_if_cancelled("returning results")
        return self.timings

    def _close(self) -> None:
        if self._stage is not None:
            elapsed = time.perf_counter() - self._started
            self.timings[self._stage] = elapsed
            logger.debug("Stage %s done in %.4fs", self._stage, elapsed)
            self._stage = None


def analyze(
    bills: Any,
    payments: Any,
    reference_date: date,
    config: Optional[EngineConfig] = None,
    filters: AnalysisFilters = NO_FILTERS,
    cancel_token: Optional[CancellationToken] = None,
    *,
    fingerprint: Optional[str] = None,
) -> AnalyticsResult:
    """
    Run the full analytics pipeline on a raw snapshot.

    Parameters
    ----------
    bills, payments :
        Raw records: iterables of mappings / ``Raw*Record`` instances, or
        pandas DataFrames.
    reference_date :
        Date ages and activity are measured from. Never defaulted here.
    config :
        Engine configuration; defaults to the vendor configuration.
    filters :
        Counterparty subset and bill-date range.
    cancel_token :
        Optional cancellation flag checked between stages.
    fingerprint :
        Precomputed snapshot fingerprint (computed when omitted).

    Raises
    ------
    AnalysisCancelled
        If ``cancel_token`` is cancelled before the run completes.
    RecordValidationError
        In strict mode, when a bill lacks a required field.
    """
    cfg = config if config is not None else default_engine_config()
    bills = _materialize(bills)
    payments = _materialize(payments)
    if fingerprint is None:
        fingerprint = fingerprint_snapshot(bills, payments)
    clock = _StageClock(cancel_token)
    diagnostics = Diagnostics()

    clock.start("normalization")
    normalized_bills = normalize_bills(
        bills, diagnostics, strict=cfg.strict, name_prefix=cfg.noun
    )
    normalized_payments = normalize_payments(payments, diagnostics)

    clock.start("reconciliation")
    reconciliation = reconcile(normalized_bills, normalized_payments, diagnostics)

    clock.start("filtering")
    selected = [b for b in reconciliation.bills if filters.accepts(b)]
    totals = summarize_totals(selected, diagnostics)

    clock.start("aging")
    aging = age_counterparties(
        selected,
        reference_date,
        cfg.aging.bucket_bounds,
        balance_source=cfg.aging.balance_source,  # type: ignore[arg-type]
        high_risk_age_days=cfg.aging.high_risk_age_days,
    )
    portfolio_aging = summarize_portfolio(aging, cfg.aging.bucket_bounds)
    distribution = risk_distribution(aging)

    clock.start("scoring")
    metrics = compute_all_metrics(
        selected,
        settlement_basis=cfg.scoring.settlement_basis,  # type: ignore[arg-type]
        reliability_mode=cfg.scoring.reliability_mode,  # type: ignore[arg-type]
    )
    scorecard = score_counterparties(
        metrics,
        weights=cfg.scoring.weights,
        materiality_threshold_pct=cfg.scoring.materiality_threshold_pct,
        limit=cfg.scoring.limit,
    )

    clock.start("trends")
    basis = cfg.trends.settlement_basis
    monthly = monthly_series(
        selected,
        settlement_basis=basis,  # type: ignore[arg-type]
        max_periods=cfg.trends.max_periods,
    )
    series = counterparty_series(
        selected,
        top_n=cfg.trends.top_counterparties,
        settlement_basis=basis,  # type: ignore[arg-type]
        max_periods=cfg.trends.max_periods,
    )
    cp_trends = analyze_counterparty_trends(
        selected,
        reference_date,
        settlement_basis=basis,  # type: ignore[arg-type]
        recent_window=cfg.trends.recent_window,
        threshold_days=cfg.trends.threshold_days,
    )

    clock.start("concentration")
    concentration = analyze_concentration(
        metrics,
        top_n=cfg.concentration_top_n,
        others_label=f"{cfg.domain}s",
    )

    clock.start("recommendations")
    report = generate_recommendations(metrics, cp_trends, rules=cfg.rules, noun=cfg.noun)
    kpis = compute_portfolio_kpis(
        selected,
        reference_date,
        balance_source=cfg.aging.balance_source,  # type: ignore[arg-type]
    )
    problems = find_problem_counterparties(selected)
    alerts = build_alerts(selected, kpis, noun=cfg.noun)

    clock.start("relationships")
    relationships = relationship_matrix(metrics, cp_trends)
    operational = operational_metrics(metrics, cp_trends)
    benchmarks = operational_benchmarks(operational)
    groups = rollup_by_group(
        selected,
        reference_date,
        cfg.aging.bucket_bounds,
        balance_source=cfg.aging.balance_source,  # type: ignore[arg-type]
    )

    timings = clock.finish()
    logger.info(
        "Analyzed %d bills (%d counterparties) as of %s",
        len(selected),
        len(metrics),
        reference_date.isoformat(),
    )

    return AnalyticsResult(
        reference_date=reference_date,
        config=cfg,
        filters=filters,
        bills=selected,
        totals=totals,
        diagnostics=diagnostics.as_dict(),
        aging=aging,
        portfolio_aging=portfolio_aging,
        risk_distribution=distribution,
        metrics=metrics,
        scorecard=scorecard,
        monthly_trends=monthly,
        counterparty_series=series,
        counterparty_trends=cp_trends,
        concentration=concentration,
        recommendations=report,
        kpis=kpis,
        problem_counterparties=problems,
        alerts=alerts,
        relationships=relationships,
        operational=operational,
        operational_benchmarks=benchmarks,
        group_rollup=groups,
        fingerprint=fingerprint,
        timings=timings,
    )


# ---------------------------------------------------------------------------
# Memoization
# ---------------------------------------------------------------------------

CacheKey = tuple[str, AnalysisFilters, date, EngineConfig]


class ResultCache:
    """
    Memoizes ``analyze()`` results.

    The cache is keyed by (snapshot fingerprint, filters, reference date,
    configuration). It holds at most ``max_entries`` results and evicts the
    least recently used one. The cache itself is shared between threads and
    is guarded by a lock; the analyses are computed outside the lock.
    """

    def __init__(self, max_entries: int = 32) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be a positive integer.")
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, AnalyticsResult]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_or_compute(
        self,
        bills: Any,
        payments: Any,
        reference_date: date,
        config: Optional[EngineConfig] = None,
        filters: AnalysisFilters = NO_FILTERS,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AnalyticsResult:
        """Return the cached result for this input, computing it on a miss."""
        cfg = config if config is not None else default_engine_config()
        bills = _materialize(bills)
        payments = _materialize(payments)
        fingerprint = fingerprint_snapshot(bills, payments)
        key: CacheKey = (fingerprint, filters, reference_date, cfg)

        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return cached
            self.misses += 1

        result = analyze(
            bills,
            payments,
            reference_date,
            cfg,
            filters,
            cancel_token,
            fingerprint=fingerprint,
        )

        with self._lock:
            self._entries[key] = result
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return result

    def invalidate(self, fingerprint: Optional[str] = None) -> int:
        """
        Drop cached results.

        Args:
            fingerprint: When given, only results of that snapshot are
                dropped; otherwise the whole cache is emptied.

        Returns:
            The number of dropped entries.
        """
        with self._lock:
            if fingerprint is None:
                dropped = len(self._entries)
                self._entries.clear()
            else:
                keys = [k for k in self._entries if k[0] == fingerprint]
                for k in keys:
                    del self._entries[k]
                dropped = len(keys)
        if dropped:
            logger.debug("Invalidated %d cached analytics results", dropped)
        return dropped
