# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Relationship, operational and group views of the counterparties.

These views are derived from figures computed elsewhere (counterparty
metrics, counterparty trends, aging) and add no new input.

1) Relationship matrix
   -------------------
   Relationship strength (0-100) from four capped components:

       interaction = min(total_bills / 12 * 30, 30)
       recency     = max(30 - days_since_last_bill / 10, 0)
       consistency = min(recent_bills / 3 * 20, 20)
       payment     = max(20 - avg_payment_days / 10, 0)

   Dependency risk is the spend share plus small frequency and recent
   activity terms:

       dependency = share + min(total_bills / 2, 10) / 10
                          + min(recent_bills * 2, 10) / 10

   Only counterparties with spend above ``min_spend`` and a strength above
   ``min_strength`` are kept, largest spend first.

2) Operational metrics
   -------------------
       response_time      = clamp(avg_payment_days or 45, 1, 90)
       service_level      = paid_bills / total_bills * 100
       process_efficiency = min(max(100 - (response_time - 30), 0)
                                + min(service_level * 0.8, 80), 100)
       reliability        = min(max(80 - |recent_performance| * 5, 20)
                                + min(total_bills * 2, 40), 100)
       operational_score  = 0.3 * service_level + 0.3 * process_efficiency
                            + 0.2 * reliability
                            + 0.2 * max(100 - response_time, 0)

   ``operational_benchmarks`` compares the best counterparty with the
   average of all of them.

3) Group rollup
   ------------
   Outstanding balances rolled up by the optional ``group`` key of the
   bills (branch, owner, ...). Bills without a key fall into
   ``UNASSIGNED_GROUP``. Nothing is produced when no bill carries a key.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .aging import BalanceSource, age_counterparties, bill_balance
from .concentration import spend_shares
from .records import ReconciledBill
from .scoring import CounterpartyMetrics
from .trends import CounterpartyTrend

# Days since the last bill when a counterparty has no dated bill.
NO_INTERACTION_DAYS = 999
DEFAULT_RESPONSE_DAYS = 45.0
UNASSIGNED_GROUP = "Unassigned"


@dataclass(frozen=True)
class RelationshipEntry:
    counterparty_id: str
    counterparty_name: str
    relationship_strength: float
    dependency_risk: float
    total_spend: float
    total_paid: float
    completion_rate: float
    interaction_frequency: float
    recent_bills: int


@dataclass(frozen=True)
class OperationalMetrics:
    counterparty_id: str
    counterparty_name: str
    response_time: float
    service_level: float
    process_efficiency: float
    reliability: float
    operational_score: float


@dataclass(frozen=True)
class OperationalBenchmark:
    subject: str
    top_performer: float
    average: float


@dataclass(frozen=True)
class GroupRollup:
    """Outstanding balances of one group of bills."""

    group: str
    counterparty_count: int
    counterparties_with_balance: int
    total_bills: int
    outstanding_bills: int
    total_outstanding: float
    undated_outstanding: float
    buckets: dict[str, float]

    @property
    def avg_balance_per_counterparty(self) -> float:
        if self.counterparties_with_balance == 0:
            return 0.0
        return self.total_outstanding / self.counterparties_with_balance


def relationship_strength(
    total_bills: int,
    days_since_last_bill: Optional[int],
    recent_bills: int,
    avg_payment_days: float,
) -> float:
    """Relationship strength between 0 and 100."""
    last = NO_INTERACTION_DAYS if days_since_last_bill is None else days_since_last_bill
    interaction = min(total_bills / 12 * 30, 30.0)
    recency = max(30 - last / 10, 0.0)
    consistency = min(recent_bills / 3 * 20, 20.0)
    payment = max(20 - avg_payment_days / 10, 0.0)
    return min(interaction + recency + consistency + payment, 100.0)


def relationship_matrix(
    metrics: Sequence[CounterpartyMetrics],
    trends: Sequence[CounterpartyTrend],
    *,
    min_spend: float = 1000.0,
    min_strength: float = 10.0,
    limit: Optional[int] = 20,
) -> list[RelationshipEntry]:
    """
    Relationship strength and dependency risk of every counterparty.

    Args:
        metrics: Per-counterparty metrics (all counterparties).
        trends: Counterparty trends for the same reference date; they give
            the days since the last bill and the recent bill count.
        min_spend: Spend a counterparty must exceed to be listed.
        min_strength: Strength a counterparty must exceed to be listed.
        limit: Maximum number of entries (None for all).

    Returns:
        Entries sorted by spend (descending), then by id.
    """
    shares = spend_shares(metrics)
    by_id = {t.counterparty_id: t for t in trends}

    entries: list[RelationshipEntry] = []
    for m in metrics:
        trend = by_id.get(m.counterparty_id)
        since_bill = trend.days_since_last_bill if trend is not None else None
        recent = trend.recent_bill_count if trend is not None else 0

        strength = relationship_strength(
            m.total_bills, since_bill, recent, m.avg_payment_days
        )
        if m.total_billed <= min_spend or strength <= min_strength:
            continue

        dependency = (
            shares[m.counterparty_id]
            + min(m.total_bills / 2, 10.0) / 10
            + min(recent * 2, 10.0) / 10
        )
        entries.append(
            RelationshipEntry(
                counterparty_id=m.counterparty_id,
                counterparty_name=m.counterparty_name,
                relationship_strength=strength,
                dependency_risk=dependency,
                total_spend=m.total_billed,
                total_paid=m.total_paid,
                completion_rate=m.completion_rate,
                interaction_frequency=m.total_bills / 12,
                recent_bills=recent,
            )
        )

    entries.sort(key=lambda e: (-e.total_spend, e.counterparty_id))
    return entries if limit is None else entries[:limit]


def operational_metrics(
    metrics: Sequence[CounterpartyMetrics],
    trends: Sequence[CounterpartyTrend],
    *,
    limit: Optional[int] = 15,
) -> list[OperationalMetrics]:
    """
    Operational scores of every counterparty with at least one paid bill.

    Returns:
        Scores sorted by operational score (descending), then by id.
    """
    performance = {t.counterparty_id: t.recent_performance for t in trends}

    results: list[OperationalMetrics] = []
    for m in metrics:
        if m.total_bills == 0 or m.paid_bills == 0:
            continue

        days = m.avg_payment_days if m.settlement_days else DEFAULT_RESPONSE_DAYS
        response = min(max(days or DEFAULT_RESPONSE_DAYS, 1.0), 90.0)
        service = m.paid_bills / m.total_bills * 100
        efficiency = min(
            max(100 - (response - 30), 0.0) + min(service * 0.8, 80.0), 100.0
        )
        recent = performance.get(m.counterparty_id, 0)
        reliability = min(
            max(80 - abs(recent) * 5, 20.0) + min(m.total_bills * 2, 40.0), 100.0
        )
        score = (
            service * 0.3
            + efficiency * 0.3
            + reliability * 0.2
            + max(100 - response, 0.0) * 0.2
        )
        results.append(
            OperationalMetrics(
                counterparty_id=m.counterparty_id,
                counterparty_name=m.counterparty_name,
                response_time=response,
                service_level=service,
                process_efficiency=efficiency,
                reliability=reliability,
                operational_score=score,
            )
        )

    results.sort(key=lambda r: (-r.operational_score, r.counterparty_id))
    return results if limit is None else results[:limit]


def operational_benchmarks(
    results: Sequence[OperationalMetrics],
) -> list[OperationalBenchmark]:
    """
    Compare the best counterparty with the average of ``results``.

    ``results`` must be sorted best first, as returned by
    ``operational_metrics``. Response time is expressed as
    ``100 - response_time`` so that higher is better on every subject.
    """
    if not results:
        return []

    def _avg(values: list[float]) -> float:
        return sum(values) / len(values)

    top = results[0]
    return [
        OperationalBenchmark(
            "Response Time",
            max(100 - top.response_time, 0.0),
            max(100 - _avg([r.response_time for r in results]), 0.0),
        ),
        OperationalBenchmark(
            "Service Level",
            top.service_level,
            _avg([r.service_level for r in results]),
        ),
        OperationalBenchmark(
            "Process Efficiency",
            top.process_efficiency,
            _avg([r.process_efficiency for r in results]),
        ),
        OperationalBenchmark(
            "Reliability",
            top.reliability,
            _avg([r.reliability for r in results]),
        ),
        OperationalBenchmark(
            "Overall Score",
            top.operational_score,
            _avg([r.operational_score for r in results]),
        ),
    ]


def rollup_by_group(
    bills: Sequence[ReconciledBill],
    reference_date: date,
    bounds: Sequence[int],
    *,
    balance_source: BalanceSource = "reconciled",
) -> list[GroupRollup]:
    """
    Roll outstanding balances up by the ``group`` key of the bills.

    Returns:
        One rollup per group, sorted by total outstanding (descending),
        then by group name. Empty when no bill has a group key.
    """
    if not any(b.group for b in bills):
        return []

    grouped: dict[str, list[ReconciledBill]] = {}
    for bill in bills:
        grouped.setdefault(bill.group or UNASSIGNED_GROUP, []).append(bill)

    rollups: list[GroupRollup] = []
    for name, group_bills in grouped.items():
        summaries = age_counterparties(
            group_bills, reference_date, bounds, balance_source=balance_source
        )
        buckets = {label: 0.0 for label in summaries[0].buckets}
        total = 0.0
        undated = 0.0
        for s in summaries:
            for label, amount in s.buckets.items():
                buckets[label] += amount
            total += s.counterparty_outstanding
            undated += s.undated_outstanding

        rollups.append(
            GroupRollup(
                group=name,
                counterparty_count=len(summaries),
                counterparties_with_balance=sum(
                    1 for s in summaries if s.counterparty_outstanding > 0
                ),
                total_bills=len(group_bills),
                outstanding_bills=sum(
                    1 for b in group_bills if bill_balance(b, balance_source) > 0
                ),
                total_outstanding=total,
                undated_outstanding=undated,
                buckets=buckets,
            )
        )

    rollups.sort(key=lambda r: (-r.total_outstanding, r.group))
    return rollups
