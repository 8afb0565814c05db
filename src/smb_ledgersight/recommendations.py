# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Rule-based recommendation generator.

Each rule looks at the per-counterparty metrics, spend shares and activity
trends and produces at most one ``Recommendation``. Rules are evaluated in
a fixed order and each one can be switched off through
``RecommendationRules``:

1) high_overdue            overdue rate > 30% with >= 5 bills       Critical
2) concentration           spend share > 15%                       High/Medium
3) early_payment           avg payment days > 45, overdue < 10%     Medium
4) inconsistent_timing     settlement days CV > 0.5, >= 5 bills     Medium
5) inactive                no bill or payment in the last 30 days   Low
6) high_performer          overdue < 5%, spend share > 5%           Medium
7) portfolio_payment_cycle portfolio avg payment days > 40          High/Medium

Impact figures
--------------
``Impact.cost_savings`` is a heuristic: a flat percentage of the affected
spend (5%, 3%, 2%, 7% and 1% of total spend for the portfolio rule). These
are rough order-of-magnitude estimates to rank actions, not projections.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from .concentration import spend_shares
from .scoring import CounterpartyMetrics
from .trends import CounterpartyTrend

MIN_BILLS_FOR_PATTERN = 5
INACTIVITY_DAYS = 30
INCONSISTENCY_CV = 0.5


@dataclass(frozen=True)
class RecommendationRules:
    """On/off switch of every recommendation rule."""

    high_overdue: bool = True
    concentration: bool = True
    early_payment: bool = True
    inconsistent_timing: bool = True
    inactive: bool = True
    high_performer: bool = True
    portfolio_payment_cycle: bool = True


@dataclass(frozen=True)
class Impact:
    cost_savings: Optional[float] = None
    risk_reduction: Optional[str] = None
    performance_improvement: Optional[str] = None


@dataclass(frozen=True)
class Recommendation:
    title: str
    description: str
    priority: str
    category: str
    affected_counterparties: list[str]
    estimated_effort: str
    impact: Impact


@dataclass(frozen=True)
class RecommendationReport:
    recommendations: list[Recommendation]
    category_breakdown: dict[str, int]
    key_insights: list[str]
    portfolio_avg_payment_days: float
    total_spend: float = 0.0
    counterparty_count: int = 0


@dataclass(frozen=True)
class _Profile:
    """Everything the rules need about one counterparty."""

    metrics: CounterpartyMetrics
    share: float
    days_since_activity: Optional[int]

    @property
    def name(self) -> str:
        return self.metrics.counterparty_name


def coefficient_of_variation(values: Sequence[int]) -> float:
    """Population standard deviation divided by the mean; 0 when undefined."""
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    if mean <= 0:
        return 0.0
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance) / mean


def _savings(profiles: Sequence[_Profile], rate: float) -> float:
    total = 0.0
    for p in profiles:
        total += p.metrics.total_billed
    return round(total * rate, 2)


def _high_overdue(profiles: list[_Profile], noun: str) -> Optional[Recommendation]:
    hits = [
        p
        for p in profiles
        if p.metrics.overdue_rate > 30
        and p.metrics.total_bills >= MIN_BILLS_FOR_PATTERN
    ]
    hits.sort(key=lambda p: (-p.metrics.overdue_rate, p.metrics.counterparty_id))
    hits = hits[:5]
    if not hits:
        return None
    return Recommendation(
        title="Address Critical Payment Issues",
        description=(
            f"{len(hits)} {noun.lower()}s have overdue rates exceeding 30%. "
            "Immediate intervention required to prevent service disruptions."
        ),
        priority="Critical",
        category="Risk Management",
        affected_counterparties=[p.name for p in hits],
        estimated_effort="1-2 weeks",
        impact=Impact(
            cost_savings=_savings(hits, 0.05),
            risk_reduction="High - Prevents service disruptions",
        ),
    )


def _concentration(profiles: list[_Profile], noun: str) -> Optional[Recommendation]:
    hits = [p for p in profiles if p.share > 15]
    hits.sort(key=lambda p: (-p.share, p.metrics.counterparty_id))
    if not hits:
        return None
    return Recommendation(
        title=f"Diversify {noun} Portfolio",
        description=(
            f"{len(hits)} {noun.lower()}s represent over 15% of total spend each. "
            "Consider diversification to reduce dependency risk."
        ),
        priority="High" if hits[0].share > 25 else "Medium",
        category="Risk Management",
        affected_counterparties=[p.name for p in hits],
        estimated_effort="2-3 months",
        impact=Impact(
            cost_savings=_savings(hits, 0.03),
            risk_reduction="Medium - Reduces dependency risk",
        ),
    )


def _early_payment(profiles: list[_Profile], noun: str) -> Optional[Recommendation]:
    hits = [
        p
        for p in profiles
        if p.metrics.avg_payment_days > 45 and p.metrics.overdue_rate < 10
    ]
    hits.sort(key=lambda p: (-p.metrics.avg_payment_days, p.metrics.counterparty_id))
    hits = hits[:3]
    if not hits:
        return None
    return Recommendation(
        title="Negotiate Early Payment Discounts",
        description=(
            f"{len(hits)} {noun.lower()}s have average payment cycles over 45 days. "
            "Negotiate early payment discounts for mutual benefit."
        ),
        priority="Medium",
        category="Cost Reduction",
        affected_counterparties=[p.name for p in hits],
        estimated_effort="3-4 weeks",
        impact=Impact(
            cost_savings=_savings(hits, 0.02),
            performance_improvement="Improved cash flow management",
        ),
    )


def _inconsistent_timing(
    profiles: list[_Profile], noun: str
) -> Optional[Recommendation]:
    hits = [
        p
        for p in profiles
        if p.metrics.total_bills >= MIN_BILLS_FOR_PATTERN
        and coefficient_of_variation(p.metrics.settlement_days) > INCONSISTENCY_CV
    ]
    hits = hits[:4]
    if not hits:
        return None
    return Recommendation(
        title=f"Standardize {noun} Processes",
        description=(
            f"{len(hits)} {noun.lower()}s show inconsistent payment patterns. "
            "Implement standardized processes to improve predictability."
        ),
        priority="Medium",
        category="Process Improvement",
        affected_counterparties=[p.name for p in hits],
        estimated_effort="4-6 weeks",
        impact=Impact(
            performance_improvement="Improved process efficiency and predictability"
        ),
    )


def _inactive(profiles: list[_Profile], noun: str) -> Optional[Recommendation]:
    hits = [
        p
        for p in profiles
        if p.days_since_activity is None or p.days_since_activity > INACTIVITY_DAYS
    ]
    hits = hits[:3]
    if not hits:
        return None
    return Recommendation(
        title=f"Reactivate Strategic {noun} Relationships",
        description=(
            f"{len(hits)} {noun.lower()}s have no recent activity. "
            "Evaluate for potential reactivation or contract cleanup."
        ),
        priority="Low",
        category="Relationship Enhancement",
        affected_counterparties=[p.name for p in hits],
        estimated_effort="2-3 weeks",
        impact=Impact(
            performance_improvement=f"Improved {noun.lower()} portfolio management"
        ),
    )


def _high_performer(profiles: list[_Profile], noun: str) -> Optional[Recommendation]:
    hits = [p for p in profiles if p.metrics.overdue_rate < 5 and p.share > 5]
    hits.sort(key=lambda p: (-p.metrics.total_billed, p.metrics.counterparty_id))
    hits = hits[:3]
    if not hits:
        return None
    return Recommendation(
        title="Strengthen Strategic Partnerships",
        description=(
            f"{len(hits)} high-performing {noun.lower()}s offer partnership "
            "opportunities. Consider strategic agreements or volume discounts."
        ),
        priority="Medium",
        category="Relationship Enhancement",
        affected_counterparties=[p.name for p in hits],
        estimated_effort="6-8 weeks",
        impact=Impact(
            cost_savings=_savings(hits, 0.07),
            performance_improvement="Enhanced service levels and innovation",
        ),
    )


def _portfolio_payment_cycle(
    avg_days: float, total_spend: float, noun: str
) -> Optional[Recommendation]:
    if avg_days <= 40:
        return None
    return Recommendation(
        title="Optimize Payment Processing",
        description=(
            f"Average payment cycle is {round(avg_days)} days. Implement automated "
            "payment systems to reduce processing time."
        ),
        priority="High" if avg_days > 60 else "Medium",
        category="Process Improvement",
        affected_counterparties=[f"All {noun}s"],
        estimated_effort="8-12 weeks",
        impact=Impact(
            cost_savings=round(total_spend * 0.01, 2),
            performance_improvement="Reduced administrative overhead",
        ),
    )


def portfolio_avg_payment_days(metrics: Sequence[CounterpartyMetrics]) -> float:
    """Mean of the counterparty averages, over counterparties with timed payments."""
    values = [m.avg_payment_days for m in metrics if m.settlement_days]
    return sum(values) / len(values) if values else 0.0


def _key_insights(
    recommendations: Sequence[Recommendation],
    counterparty_count: int,
    total_spend: float,
    avg_days: float,
    noun: str,
) -> list[str]:
    urgent = sum(1 for r in recommendations if r.priority in ("Critical", "High"))
    savings = 0.0
    for r in recommendations:
        savings += r.impact.cost_savings or 0.0
    return [
        f"{counterparty_count} {noun.lower()}s analyzed with "
        f"{total_spend:,.0f} total spend",
        f"{urgent} high-priority actions identified",
        f"Potential savings of {savings:,.0f} available",
        (
            "Payment processing optimization could significantly improve cash flow"
            if avg_days > 45
            else "Payment processing is within acceptable ranges"
        ),
    ]


def generate_recommendations(
    metrics: Sequence[CounterpartyMetrics],
    trends: Sequence[CounterpartyTrend],
    *,
    rules: RecommendationRules = RecommendationRules(),
    noun: str = "Vendor",
) -> RecommendationReport:
    """
    Evaluate every enabled rule and build the recommendation report.

    Args:
        metrics: Per-counterparty metrics (all counterparties, not only the
            scorecard).
        trends: Counterparty trends, computed for the same reference date.
            Only their activity figures are used here.
        rules: Rule switches.
        noun: "Vendor" or "Customer", used in titles and texts.
    """
    total_spend = 0.0
    for m in metrics:
        total_spend += m.total_billed

    shares = spend_shares(metrics)
    activity = {t.counterparty_id: t.days_since_activity for t in trends}
    profiles = [
        _Profile(
            metrics=m,
            share=shares[m.counterparty_id],
            days_since_activity=activity.get(m.counterparty_id),
        )
        for m in sorted(metrics, key=lambda m: m.counterparty_id)
    ]
    avg_days = portfolio_avg_payment_days(metrics)

    candidates: list[Optional[Recommendation]] = []
    if rules.high_overdue:
        candidates.append(_high_overdue(profiles, noun))
    if rules.concentration:
        candidates.append(_concentration(profiles, noun))
    if rules.early_payment:
        candidates.append(_early_payment(profiles, noun))
    if rules.inconsistent_timing:
        candidates.append(_inconsistent_timing(profiles, noun))
    if rules.inactive:
        candidates.append(_inactive(profiles, noun))
    if rules.high_performer:
        candidates.append(_high_performer(profiles, noun))
    if rules.portfolio_payment_cycle:
        candidates.append(_portfolio_payment_cycle(avg_days, total_spend, noun))

    recommendations = [r for r in candidates if r is not None]

    breakdown: dict[str, int] = {}
    for r in recommendations:
        breakdown[r.category] = breakdown.get(r.category, 0) + 1

    return RecommendationReport(
        recommendations=recommendations,
        category_breakdown=breakdown,
        key_insights=_key_insights(
            recommendations, len(metrics), total_spend, avg_days, noun
        ),
        portfolio_avg_payment_days=avg_days,
        total_spend=total_spend,
        counterparty_count=len(metrics),
    )
