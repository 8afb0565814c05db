# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Trend analyzer for SMB LedgerSight.

Two kinds of trends are produced:

1) Monthly series
   --------------
   Bills are grouped by the year-month of their bill date ("YYYY-MM").
   Per period the series accumulates billed and paid amounts, overdue
   counts and settlement days (only over bills with at least one dated
   payment). Only the most recent ``max_periods`` periods are kept, sorted
   ascending. Undated bills are excluded.

   An aggregate series (``counterparty_id is None``) is always built; the
   same series can be built for the top counterparties by billed amount.

2) Recent vs historical settlement
   -------------------------------
   For each counterparty, bills with payments are sorted by bill date,
   most recent first. The first ``recent_window`` bills are "recent", the
   remainder "historical" (equal to the recent group when empty):

       trend_diff = mean(recent days) - mean(historical days)

       trend_diff < -threshold -> "Improving"
       trend_diff >  threshold -> "Deteriorating"
       otherwise               -> "Stable"

Settlement days use the first payment by default ("time to first
payment").
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

from .reconcile import group_by_counterparty
from .records import ReconciledBill, SettlementBasis

logger = logging.getLogger(__name__)

ACTIVITY_STATUSES: tuple[tuple[int, str], ...] = (
    (7, "Very Recent"),
    (30, "Recent"),
    (90, "Moderate"),
)
INACTIVE = "Inactive"

# Window (days before the reference date) of the recent-activity figures.
RECENT_ACTIVITY_DAYS = 30


@dataclass(frozen=True)
class TrendPoint:
    """One period of a monthly series. ``counterparty_id`` None = aggregate."""

    counterparty_id: Optional[str]
    period_key: str
    billed_amount: float
    paid_amount: float
    avg_payment_days: float
    completion_rate: float
    bill_count: int
    overdue_count: int
    overdue_rate: float
    bills_with_payments: int


@dataclass(frozen=True)
class CounterpartyTrend:
    """
    Settlement trend and activity of one counterparty.

    ``recent_bill_count`` counts bills dated in the last
    ``RECENT_ACTIVITY_DAYS`` days. Among them, each paid bill settled
    within that many days adds 2 to ``recent_performance`` and each overdue
    bill subtracts 1.
    """

    counterparty_id: str
    counterparty_name: str
    recent_avg_days: float
    historical_avg_days: float
    trend_diff: float
    classification: str
    paid_bill_count: int
    days_since_last_bill: Optional[int]
    days_since_last_payment: Optional[int]
    activity_status: str
    recent_bill_count: int = 0
    recent_performance: int = 0

    @property
    def days_since_activity(self) -> Optional[int]:
        """Days since the most recent bill or payment, None without any."""
        candidates = [
            d
            for d in (self.days_since_last_bill, self.days_since_last_payment)
            if d is not None
        ]
        return min(candidates) if candidates else None


@dataclass
class _PeriodAccumulator:
    billed: float = 0.0
    paid: float = 0.0
    bills: int = 0
    overdue: int = 0
    with_payments: int = 0
    payment_days: int = 0


def period_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def monthly_series(
    bills: Sequence[ReconciledBill],
    *,
    counterparty_id: Optional[str] = None,
    settlement_basis: SettlementBasis = "first",
    max_periods: int = 12,
) -> list[TrendPoint]:
    """
    Build a monthly series from reconciled bills.

    Args:
        bills: Reconciled bills. When ``counterparty_id`` is given, only the
            bills of that counterparty are used.
        counterparty_id: Counterparty of the series, None for the aggregate.
        settlement_basis: Payment used for settlement days.
        max_periods: Number of most recent periods kept.

    Returns:
        Trend points sorted ascending by period key.
    """
    periods: dict[str, _PeriodAccumulator] = {}

    for bill in bills:
        if counterparty_id is not None and bill.counterparty_id != counterparty_id:
            continue
        if bill.bill_date is None:
            continue

        acc = periods.setdefault(period_key(bill.bill_date), _PeriodAccumulator())
        acc.billed += bill.billed_amount
        acc.paid += bill.paid_amount
        acc.bills += 1
        if bill.is_overdue:
            acc.overdue += 1

        lag = bill.settlement_days(settlement_basis)
        if bill.has_payments and lag is not None:
            acc.with_payments += 1
            acc.payment_days += lag

    keys = sorted(periods)
    if max_periods > 0:
        keys = keys[-max_periods:]

    points: list[TrendPoint] = []
    for key in keys:
        acc = periods[key]
        points.append(
            TrendPoint(
                counterparty_id=counterparty_id,
                period_key=key,
                billed_amount=acc.billed,
                paid_amount=acc.paid,
                avg_payment_days=(
                    acc.payment_days / acc.with_payments if acc.with_payments else 0.0
                ),
                completion_rate=acc.paid / acc.billed * 100 if acc.billed > 0 else 0.0,
                bill_count=acc.bills,
                overdue_count=acc.overdue,
                overdue_rate=acc.overdue / acc.bills * 100 if acc.bills else 0.0,
                bills_with_payments=acc.with_payments,
            )
        )
    return points


def top_counterparties_by_billed(
    bills: Sequence[ReconciledBill],
    count: int,
) -> list[str]:
    """Ids of the ``count`` counterparties with the largest billed total."""
    totals: dict[str, float] = {}
    for bill in bills:
        totals[bill.counterparty_id] = (
            totals.get(bill.counterparty_id, 0.0) + bill.billed_amount
        )
    ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [cp_id for cp_id, _ in ranked[:count]]


def counterparty_series(
    bills: Sequence[ReconciledBill],
    *,
    top_n: int = 5,
    settlement_basis: SettlementBasis = "first",
    max_periods: int = 12,
) -> dict[str, list[TrendPoint]]:
    """Monthly series of the ``top_n`` counterparties by billed amount."""
    return {
        cp_id: monthly_series(
            bills,
            counterparty_id=cp_id,
            settlement_basis=settlement_basis,
            max_periods=max_periods,
        )
        for cp_id in top_counterparties_by_billed(bills, top_n)
    }


def classify_trend(trend_diff: float, threshold: float = 5.0) -> str:
    if trend_diff < -threshold:
        return "Improving"
    if trend_diff > threshold:
        return "Deteriorating"
    return "Stable"


def activity_status(days_since_activity: Optional[int]) -> str:
    """Bucket the number of days since the last bill or payment."""
    if days_since_activity is None:
        return INACTIVE
    for limit, label in ACTIVITY_STATUSES:
        if days_since_activity <= limit:
            return label
    return INACTIVE


def _mean(values: Sequence[int]) -> float:
    return sum(values) / len(values) if values else 0.0


def _counterparty_trend(
    bills: list[ReconciledBill],
    reference_date: date,
    settlement_basis: SettlementBasis,
    recent_window: int,
    threshold_days: float,
) -> CounterpartyTrend:
    timed = [
        b
        for b in bills
        if b.has_payments
        and b.bill_date is not None
        and b.settlement_days(settlement_basis) is not None
    ]
    timed.sort(key=lambda b: (b.bill_date, b.bill_id), reverse=True)

    recent = [b.settlement_days(settlement_basis) for b in timed[:recent_window]]
    historical = [b.settlement_days(settlement_basis) for b in timed[recent_window:]]

    recent_avg = _mean(recent)
    historical_avg = _mean(historical) if historical else recent_avg
    diff = recent_avg - historical_avg

    bill_dates = [b.bill_date for b in bills if b.bill_date is not None]
    payment_dates = [
        b.last_payment_at.date() for b in bills if b.last_payment_at is not None
    ]
    since_bill = (reference_date - max(bill_dates)).days if bill_dates else None
    since_payment = (reference_date - max(payment_dates)).days if payment_dates else None

    recent_bills = 0
    performance = 0
    for b in bills:
        if b.bill_date is None:
            continue
        if not 0 <= (reference_date - b.bill_date).days <= RECENT_ACTIVITY_DAYS:
            continue
        recent_bills += 1
        lag = b.days_to_last_payment
        if lag is None:
            lag = b.age_in_days
        if b.status == "Paid" and lag is not None and lag <= RECENT_ACTIVITY_DAYS:
            performance += 2
        elif b.is_overdue:
            performance -= 1

    trend = CounterpartyTrend(
        counterparty_id=bills[0].counterparty_id,
        counterparty_name=bills[0].counterparty_name,
        recent_avg_days=recent_avg,
        historical_avg_days=historical_avg,
        trend_diff=diff,
        classification=classify_trend(diff, threshold_days),
        paid_bill_count=len(timed),
        days_since_last_bill=since_bill,
        days_since_last_payment=since_payment,
        activity_status=INACTIVE,
        recent_bill_count=recent_bills,
        recent_performance=performance,
    )
    return replace(trend, activity_status=activity_status(trend.days_since_activity))


def analyze_counterparty_trends(
    bills: Sequence[ReconciledBill],
    reference_date: date,
    *,
    settlement_basis: SettlementBasis = "first",
    recent_window: int = 5,
    threshold_days: float = 5.0,
) -> list[CounterpartyTrend]:
    """
    Recent-vs-historical settlement trend of every counterparty.

    Counterparties without any timed payment get a zero difference and are
    classified "Stable". The result is sorted by counterparty id.
    """
    trends = [
        _counterparty_trend(
            group, reference_date, settlement_basis, recent_window, threshold_days
        )
        for group in group_by_counterparty(bills).values()
    ]
    trends.sort(key=lambda t: t.counterparty_id)
    logger.debug("Computed settlement trends for %d counterparties", len(trends))
    return trends
