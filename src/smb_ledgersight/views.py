# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for SMB LedgerSight.

This module converts the analytics result objects into pandas DataFrames
that are easy to display (``DataFrame.to_string``) or export to CSV. Each
helper returns a DataFrame with a stable column order, even when there is
nothing to show, so that the CLI and any other presentation layer can rely
on the schema.

Amounts and percentages are rounded to ``decimals`` here and only here:
the analytics objects always keep full precision.
"""

from collections.abc import Sequence

import pandas as pd

from .aging import AgingSummary, PortfolioAging, RiskDistributionEntry
from .concentration import ConcentrationMetrics
from .kpis import Alert, PortfolioKpis, ProblemCounterparty
from .recommendations import RecommendationReport
from .relationships import (
    GroupRollup,
    OperationalBenchmark,
    OperationalMetrics,
    RelationshipEntry,
)
from .scoring import PerformanceScore
from .trends import CounterpartyTrend, TrendPoint

SCORECARD_COLUMNS = [
    "rank",
    "counterparty_id",
    "counterparty_name",
    "score",
    "status_band",
    "overdue_rate",
    "completion_rate",
    "avg_payment_days",
    "reliability",
    "business_share",
    "total_bills",
    "outstanding_amount",
]

TREND_COLUMNS = [
    "counterparty_id",
    "period",
    "billed_amount",
    "paid_amount",
    "avg_payment_days",
    "completion_rate",
    "bill_count",
    "overdue_count",
    "overdue_rate",
]

COUNTERPARTY_TREND_COLUMNS = [
    "counterparty_id",
    "counterparty_name",
    "recent_avg_days",
    "historical_avg_days",
    "trend_diff",
    "classification",
    "activity_status",
    "days_since_last_bill",
    "days_since_last_payment",
]

CONCENTRATION_COLUMNS = [
    "label",
    "spend",
    "paid",
    "share_percentage",
    "counterparty_count",
    "completion_rate",
]

RECOMMENDATION_COLUMNS = [
    "priority",
    "category",
    "title",
    "description",
    "affected",
    "estimated_effort",
    "cost_savings",
    "risk_reduction",
    "performance_improvement",
]

PROBLEM_COLUMNS = [
    "counterparty_id",
    "counterparty_name",
    "risk_level",
    "overdue_rate",
    "completion_rate",
    "business_share",
    "total_bills",
    "outstanding_amount",
    "recommended_action",
]

RELATIONSHIP_COLUMNS = [
    "counterparty_id",
    "counterparty_name",
    "relationship_strength",
    "dependency_risk",
    "total_spend",
    "total_paid",
    "completion_rate",
    "interaction_frequency",
    "recent_bills",
]

OPERATIONAL_COLUMNS = [
    "counterparty_id",
    "counterparty_name",
    "response_time",
    "service_level",
    "process_efficiency",
    "reliability",
    "operational_score",
]


def aging_to_dataframe(
    summaries: Sequence[AgingSummary],
    decimals: int = 2,
) -> pd.DataFrame:
    """
    One row per counterparty: total outstanding, one column per bucket,
    undated outstanding, bill counts and risk category.

    Bucket columns follow bucket order ("0-30", "31-60", ...).
    """
    labels: list[str] = list(summaries[0].buckets) if summaries else []
    columns = (
        ["counterparty_id", "counterparty_name", "total_outstanding"]
        + labels
        + [
            "undated_outstanding",
            "counterparty_outstanding",
            "total_bills",
            "overdue_bills",
            "risk_category",
        ]
    )
    if not summaries:
        return pd.DataFrame(columns=columns)

    rows: list[dict[str, object]] = []
    for s in summaries:
        row: dict[str, object] = {
            "counterparty_id": s.counterparty_id,
            "counterparty_name": s.counterparty_name,
            "total_outstanding": round(s.total_outstanding, decimals),
        }
        for label in labels:
            row[label] = round(s.buckets[label], decimals)
        row.update(
            {
                "undated_outstanding": round(s.undated_outstanding, decimals),
                "counterparty_outstanding": round(s.counterparty_outstanding, decimals),
                "total_bills": s.total_bills,
                "overdue_bills": s.overdue_bills,
                "risk_category": s.risk_category,
            }
        )
        rows.append(row)
    return pd.DataFrame(rows)[columns]


def portfolio_aging_to_dataframe(
    portfolio: PortfolioAging,
    decimals: int = 2,
) -> pd.DataFrame:
    """One row per bucket with amount, percentage and bill count."""
    rows = [
        {
            "bucket": label,
            "amount": round(amount, decimals),
            "percentage": round(portfolio.bucket_percentages[label], decimals),
            "bills": portfolio.bucket_counts[label],
        }
        for label, amount in portfolio.buckets.items()
    ]
    return pd.DataFrame(rows, columns=["bucket", "amount", "percentage", "bills"])


def risk_distribution_to_dataframe(
    entries: Sequence[RiskDistributionEntry],
    decimals: int = 2,
) -> pd.DataFrame:
    rows = [
        {
            "category": e.category,
            "counterparties": e.counterparty_count,
            "total_outstanding": round(e.total_outstanding, decimals),
        }
        for e in entries
    ]
    return pd.DataFrame(rows, columns=["category", "counterparties", "total_outstanding"])


def scorecard_to_dataframe(
    scores: Sequence[PerformanceScore],
    decimals: int = 2,
) -> pd.DataFrame:
    """
    Convert the performance scorecard into a DataFrame.

    Rows keep the scorecard order (business share, descending) and are
    numbered in ``rank``. The score itself is rounded to one decimal.
    """
    rows: list[dict[str, object]] = []
    for rank, s in enumerate(scores, start=1):
        rows.append(
            {
                "rank": rank,
                "counterparty_id": s.counterparty_id,
                "counterparty_name": s.counterparty_name,
                "score": round(s.score, 1),
                "status_band": s.status_band,
                "overdue_rate": round(s.overdue_rate, decimals),
                "completion_rate": round(s.completion_rate, decimals),
                "avg_payment_days": round(s.avg_payment_days, decimals),
                "reliability": round(s.reliability, decimals),
                "business_share": round(s.business_share, decimals),
                "total_bills": s.total_bills,
                "outstanding_amount": round(s.outstanding_amount, decimals),
            }
        )
    return pd.DataFrame(rows, columns=SCORECARD_COLUMNS)


def trends_to_dataframe(
    points: Sequence[TrendPoint],
    decimals: int = 2,
) -> pd.DataFrame:
    """Long-format monthly series; ``counterparty_id`` is "ALL" for the aggregate."""
    rows = [
        {
            "counterparty_id": p.counterparty_id or "ALL",
            "period": p.period_key,
            "billed_amount": round(p.billed_amount, decimals),
            "paid_amount": round(p.paid_amount, decimals),
            "avg_payment_days": round(p.avg_payment_days, decimals),
            "completion_rate": round(p.completion_rate, decimals),
            "bill_count": p.bill_count,
            "overdue_count": p.overdue_count,
            "overdue_rate": round(p.overdue_rate, decimals),
        }
        for p in points
    ]
    return pd.DataFrame(rows, columns=TREND_COLUMNS)


def counterparty_trends_to_dataframe(
    trends: Sequence[CounterpartyTrend],
    decimals: int = 2,
) -> pd.DataFrame:
    rows = [
        {
            "counterparty_id": t.counterparty_id,
            "counterparty_name": t.counterparty_name,
            "recent_avg_days": round(t.recent_avg_days, decimals),
            "historical_avg_days": round(t.historical_avg_days, decimals),
            "trend_diff": round(t.trend_diff, decimals),
            "classification": t.classification,
            "activity_status": t.activity_status,
            "days_since_last_bill": t.days_since_last_bill,
            "days_since_last_payment": t.days_since_last_payment,
        }
        for t in trends
    ]
    return pd.DataFrame(rows, columns=COUNTERPARTY_TREND_COLUMNS)


def concentration_to_dataframe(
    concentration: ConcentrationMetrics,
    decimals: int = 2,
) -> pd.DataFrame:
    rows = [
        {
            "label": e.label,
            "spend": round(e.spend, decimals),
            "paid": round(e.paid, decimals),
            "share_percentage": round(e.share_percentage, decimals),
            "counterparty_count": e.counterparty_count,
            "completion_rate": round(e.completion_rate, decimals),
        }
        for e in concentration.entries
    ]
    return pd.DataFrame(rows, columns=CONCENTRATION_COLUMNS)


def concentration_levels_to_dataframe(
    concentration: ConcentrationMetrics,
    decimals: int = 1,
) -> pd.DataFrame:
    """Top-1/3/5/10 cumulative shares."""
    rows = [
        {"metric": f"Top {level}", "percentage": round(share, decimals)}
        for level, share in concentration.top_shares.items()
    ]
    return pd.DataFrame(rows, columns=["metric", "percentage"])


def recommendations_to_dataframe(
    report: RecommendationReport,
    decimals: int = 2,
) -> pd.DataFrame:
    """One row per recommendation, in rule order."""
    rows: list[dict[str, object]] = []
    for r in report.recommendations:
        savings = r.impact.cost_savings
        rows.append(
            {
                "priority": r.priority,
                "category": r.category,
                "title": r.title,
                "description": r.description,
                "affected": ", ".join(r.affected_counterparties),
                "estimated_effort": r.estimated_effort,
                "cost_savings": (
                    float("nan") if savings is None else round(savings, decimals)
                ),
                "risk_reduction": r.impact.risk_reduction or "",
                "performance_improvement": r.impact.performance_improvement or "",
            }
        )
    return pd.DataFrame(rows, columns=RECOMMENDATION_COLUMNS)


def kpis_to_dataframe(kpis: PortfolioKpis, decimals: int = 2) -> pd.DataFrame:
    """Portfolio KPIs as (metric, value) rows."""
    values: list[tuple[str, object]] = [
        ("total_bills", kpis.total_bills),
        ("open_bills", kpis.open_bills),
        ("overdue_bills", kpis.overdue_bills),
        ("paid_bills", kpis.paid_bills),
        ("outstanding_bills", kpis.outstanding_bills),
        ("total_billed", round(kpis.total_billed, decimals)),
        ("total_paid", round(kpis.total_paid, decimals)),
        ("total_outstanding", round(kpis.total_outstanding, decimals)),
        ("overdue_percentage", round(kpis.overdue_percentage, decimals)),
        ("payment_success_rate", round(kpis.payment_success_rate, decimals)),
        ("avg_payment_days", round(kpis.avg_payment_days, decimals)),
        ("active_counterparties_this_month", kpis.active_counterparties_this_month),
        ("counterparty_count", kpis.counterparty_count),
    ]
    return pd.DataFrame(values, columns=["metric", "value"])


def problems_to_dataframe(
    problems: Sequence[ProblemCounterparty],
    decimals: int = 2,
) -> pd.DataFrame:
    rows = [
        {
            "counterparty_id": p.counterparty_id,
            "counterparty_name": p.counterparty_name,
            "risk_level": p.risk_level,
            "overdue_rate": round(p.overdue_rate, 1),
            "completion_rate": round(p.completion_rate, 1),
            "business_share": round(p.business_share, decimals),
            "total_bills": p.total_bills,
            "outstanding_amount": round(p.outstanding_amount, decimals),
            "recommended_action": p.recommended_action,
        }
        for p in problems
    ]
    return pd.DataFrame(rows, columns=PROBLEM_COLUMNS)


def alerts_to_dataframe(alerts: Sequence[Alert]) -> pd.DataFrame:
    rows = [{"level": a.level, "category": a.category, "message": a.message} for a in alerts]
    return pd.DataFrame(rows, columns=["level", "category", "message"])


def diagnostics_to_dataframe(diagnostics: dict[str, float]) -> pd.DataFrame:
    """Data-quality counters as (counter, value) rows, in counter order."""
    return pd.DataFrame(list(diagnostics.items()), columns=["counter", "value"])


def relationships_to_dataframe(
    entries: Sequence[RelationshipEntry],
    decimals: int = 2,
) -> pd.DataFrame:
    """Relationship matrix; strength is rounded to a whole number."""
    rows = [
        {
            "counterparty_id": e.counterparty_id,
            "counterparty_name": e.counterparty_name,
            "relationship_strength": round(e.relationship_strength),
            "dependency_risk": round(e.dependency_risk, 1),
            "total_spend": round(e.total_spend, decimals),
            "total_paid": round(e.total_paid, decimals),
            "completion_rate": round(e.completion_rate, decimals),
            "interaction_frequency": round(e.interaction_frequency, 1),
            "recent_bills": e.recent_bills,
        }
        for e in entries
    ]
    return pd.DataFrame(rows, columns=RELATIONSHIP_COLUMNS)


def operational_to_dataframe(
    results: Sequence[OperationalMetrics],
) -> pd.DataFrame:
    """Operational scores, rounded to whole numbers."""
    rows = [
        {
            "counterparty_id": r.counterparty_id,
            "counterparty_name": r.counterparty_name,
            "response_time": round(r.response_time),
            "service_level": round(r.service_level),
            "process_efficiency": round(r.process_efficiency),
            "reliability": round(r.reliability),
            "operational_score": round(r.operational_score),
        }
        for r in results
    ]
    return pd.DataFrame(rows, columns=OPERATIONAL_COLUMNS)


def benchmarks_to_dataframe(
    benchmarks: Sequence[OperationalBenchmark],
) -> pd.DataFrame:
    rows = [
        {
            "subject": b.subject,
            "top_performer": round(b.top_performer),
            "average": round(b.average),
        }
        for b in benchmarks
    ]
    return pd.DataFrame(rows, columns=["subject", "top_performer", "average"])


def group_rollup_to_dataframe(
    rollups: Sequence[GroupRollup],
    decimals: int = 2,
) -> pd.DataFrame:
    """One row per group, with one column per aging bucket."""
    labels: list[str] = list(rollups[0].buckets) if rollups else []
    columns = (
        [
            "group",
            "counterparties",
            "counterparties_with_balance",
            "total_bills",
            "outstanding_bills",
            "total_outstanding",
            "avg_balance_per_counterparty",
        ]
        + labels
        + ["undated_outstanding"]
    )
    rows: list[dict[str, object]] = []
    for r in rollups:
        row: dict[str, object] = {
            "group": r.group,
            "counterparties": r.counterparty_count,
            "counterparties_with_balance": r.counterparties_with_balance,
            "total_bills": r.total_bills,
            "outstanding_bills": r.outstanding_bills,
            "total_outstanding": round(r.total_outstanding, decimals),
            "avg_balance_per_counterparty": round(
                r.avg_balance_per_counterparty, decimals
            ),
        }
        for label in labels:
            row[label] = round(r.buckets[label], decimals)
        row["undated_outstanding"] = round(r.undated_outstanding, decimals)
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)
