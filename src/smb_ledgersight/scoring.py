# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Performance scorer for SMB LedgerSight.

Each counterparty receives a composite score between 0 and 100 computed
from its reconciled bills:

    overdue_rate     = overdue_bills / total_bills * 100
    completion_rate  = total_paid / total_billed * 100
    avg_payment_days = mean settlement days over bills with payments
    reliability      = mean of max(100 - settlement_days, 0) per paid bill

    base              = max(0, 100 - overdue_rate * 1.5)
    speed_bonus       = max(0, 30 - avg_payment_days / 5)
    completion_bonus  = completion_rate * 0.3
    reliability_bonus = reliability * 0.2

    score = clamp(base + speed_bonus + completion_bonus + reliability_bonus, 0, 100)

All weights live in ``ScoreWeights`` and can be overridden from the
configuration file. Every ratio with a zero denominator is 0.

Status bands
------------
    score >= 90 -> "Excellent"
    score >= 75 -> "Good"
    score >= 60 -> "Average"
    otherwise   -> "Needs Attention"

Reliability
-----------
The default "mean" mode is an unweighted mean. The "running" mode keeps the
historical order-dependent behavior, where each paid bill updates the value
as ``(existing + new) / 2`` (the first paid bill initializes it), and is
only meant for comparison with figures produced that way.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Optional

from .reconcile import group_by_counterparty
from .records import ReconciledBill, SettlementBasis

ReliabilityMode = Literal["mean", "running"]

STATUS_BANDS: tuple[tuple[float, str], ...] = (
    (90.0, "Excellent"),
    (75.0, "Good"),
    (60.0, "Average"),
)
LOWEST_BAND = "Needs Attention"


@dataclass(frozen=True)
class ScoreWeights:
    """Weights of the composite performance score."""

    overdue_penalty: float = 1.5
    speed_cap: float = 30.0
    speed_divisor: float = 5.0
    completion_weight: float = 0.3
    reliability_weight: float = 0.2


@dataclass(frozen=True)
class CounterpartyMetrics:
    """Raw metrics of one counterparty, before scoring."""

    counterparty_id: str
    counterparty_name: str
    total_bills: int
    overdue_bills: int
    paid_bills: int
    total_billed: float
    total_paid: float
    outstanding_amount: float
    overdue_rate: float
    completion_rate: float
    avg_payment_days: float
    reliability: float
    settlement_days: tuple[int, ...]


@dataclass(frozen=True)
class PerformanceScore:
    counterparty_id: str
    counterparty_name: str
    score: float
    status_band: str
    overdue_rate: float
    completion_rate: float
    avg_payment_days: float
    reliability: float
    business_share: float
    total_bills: int
    total_billed: float
    outstanding_amount: float


def reliability_score(
    settlement_days: Sequence[int],
    mode: ReliabilityMode = "mean",
) -> float:
    """
    Reliability of a counterparty from the settlement days of its paid bills.

    Each bill contributes ``max(100 - days, 0)``. Returns 0 when there is no
    paid bill.
    """
    if not settlement_days:
        return 0.0

    contributions = [max(100.0 - days, 0.0) for days in settlement_days]
    if mode == "mean":
        return sum(contributions) / len(contributions)
    if mode == "running":
        value = contributions[0]
        for contribution in contributions[1:]:
            value = (value + contribution) / 2
        return value
    raise ValueError(f"Unknown reliability mode: {mode!r}")


def compute_counterparty_metrics(
    bills: Sequence[ReconciledBill],
    *,
    settlement_basis: SettlementBasis = "last",
    reliability_mode: ReliabilityMode = "mean",
) -> CounterpartyMetrics:
    """
    Compute the scoring metrics of a single counterparty.

    Args:
        bills: Non-empty list of reconciled bills of one counterparty.
        settlement_basis: Which payment sets the settlement lag ("first"
            or "last" payment).
        reliability_mode: "mean" or "running".
    """
    if not bills:
        raise ValueError("Cannot compute metrics without bills.")

    total_billed = 0.0
    total_paid = 0.0
    outstanding = 0.0
    overdue = 0
    paid_bills = 0
    days: list[int] = []

    for bill in bills:
        total_billed += bill.billed_amount
        total_paid += bill.paid_amount
        outstanding += bill.outstanding_amount
        if bill.is_overdue:
            overdue += 1
        if bill.has_payments:
            paid_bills += 1
            lag = bill.settlement_days(settlement_basis)
            if lag is not None:
                days.append(lag)

    total_bills = len(bills)
    return CounterpartyMetrics(
        counterparty_id=bills[0].counterparty_id,
        counterparty_name=bills[0].counterparty_name,
        total_bills=total_bills,
        overdue_bills=overdue,
        paid_bills=paid_bills,
        total_billed=total_billed,
        total_paid=total_paid,
        outstanding_amount=outstanding,
        overdue_rate=overdue / total_bills * 100 if total_bills else 0.0,
        completion_rate=total_paid / total_billed * 100 if total_billed > 0 else 0.0,
        avg_payment_days=sum(days) / len(days) if days else 0.0,
        reliability=reliability_score(days, reliability_mode),
        settlement_days=tuple(days),
    )


def composite_score(
    overdue_rate: float,
    completion_rate: float,
    avg_payment_days: float,
    reliability: float,
    weights: ScoreWeights = ScoreWeights(),
) -> float:
    """Return the composite performance score, clamped to [0, 100]."""
    base = max(0.0, 100.0 - overdue_rate * weights.overdue_penalty)
    speed_bonus = max(0.0, weights.speed_cap - avg_payment_days / weights.speed_divisor)
    completion_bonus = completion_rate * weights.completion_weight
    reliability_bonus = reliability * weights.reliability_weight
    total = base + speed_bonus + completion_bonus + reliability_bonus
    return min(max(total, 0.0), 100.0)


def status_band(score: float) -> str:
    for threshold, label in STATUS_BANDS:
        if score >= threshold:
            return label
    return LOWEST_BAND


def compute_all_metrics(
    bills: Sequence[ReconciledBill],
    *,
    settlement_basis: SettlementBasis = "last",
    reliability_mode: ReliabilityMode = "mean",
) -> list[CounterpartyMetrics]:
    """Metrics of every counterparty, in first-seen order."""
    return [
        compute_counterparty_metrics(
            group,
            settlement_basis=settlement_basis,
            reliability_mode=reliability_mode,
        )
        for group in group_by_counterparty(bills).values()
    ]


def score_counterparties(
    metrics: Sequence[CounterpartyMetrics],
    *,
    weights: ScoreWeights = ScoreWeights(),
    materiality_threshold_pct: float = 0.5,
    limit: Optional[int] = None,
) -> list[PerformanceScore]:
    """
    Build the performance scorecard.

    Business share is computed against the billed total of *all*
    counterparties. Counterparties whose share is below
    ``materiality_threshold_pct`` are left out of the scorecard only.

    Returns:
        Scores sorted by business share (descending), then by id, truncated
        to ``limit`` entries when given.
    """
    total_spend = 0.0
    for m in metrics:
        total_spend += m.total_billed

    scores: list[PerformanceScore] = []
    for m in metrics:
        share = m.total_billed / total_spend * 100 if total_spend > 0 else 0.0
        if share < materiality_threshold_pct:
            continue
        score = composite_score(
            m.overdue_rate, m.completion_rate, m.avg_payment_days, m.reliability, weights
        )
        scores.append(
            PerformanceScore(
                counterparty_id=m.counterparty_id,
                counterparty_name=m.counterparty_name,
                score=score,
                status_band=status_band(score),
                overdue_rate=m.overdue_rate,
                completion_rate=m.completion_rate,
                avg_payment_days=m.avg_payment_days,
                reliability=m.reliability,
                business_share=share,
                total_bills=m.total_bills,
                total_billed=m.total_billed,
                outstanding_amount=m.outstanding_amount,
            )
        )

    scores.sort(key=lambda s: (-s.business_share, s.counterparty_id))
    if limit is not None:
        scores = scores[:limit]
    return scores
