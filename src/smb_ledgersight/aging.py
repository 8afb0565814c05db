# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Aging bucketer for SMB LedgerSight.

Outstanding balances are classified into fixed age buckets relative to an
explicit reference date. Buckets are defined by an ascending list of upper
bounds, which produces N+1 buckets:

    bounds = [30, 60, 90, 180]
    labels = ["0-30", "31-60", "61-90", "91-180", ">180"]

A bill of age ``a`` (days since its bill date) goes to the first bucket
whose upper bound is >= ``a``, otherwise to the final over-max bucket.
Bills dated after the reference date (negative age) go to the first bucket.

Only bills with a positive balance are bucketed. Bills with a zero balance
still count in ``total_bills``. A bill without a bill date is aged on the
``age_in_days`` reported by the ledger store. When neither is known, its
balance is excluded from the buckets and reported separately as
``undated_outstanding``, which keeps the invariant

    sum(buckets) == total_outstanding

exact for every counterparty. ``counterparty_outstanding`` is the whole
balance (bucketed plus undated). With the reconciled balance it matches
the outstanding amount of the scoring metrics.

Balance source
--------------
``"reconciled"`` (default) uses the outstanding amount derived from the
payments; ``"reported"`` uses the balance reported by the ledger store,
which is what receivables data usually provides when payments are not
available.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

from .reconcile import group_by_counterparty
from .records import ReconciledBill

BalanceSource = Literal["reconciled", "reported"]

DOMAIN_BUCKET_BOUNDS: dict[str, tuple[int, ...]] = {
    "vendor": (30, 60, 90),
    "customer": (30, 60, 90, 180),
}

RISK_CATEGORIES: tuple[str, ...] = ("Critical", "High", "Medium", "Low")

# Ordered from the freshest to the oldest bucket.
DISTRIBUTION_CATEGORIES: tuple[str, ...] = (
    "Current",
    "Low Risk",
    "Medium Risk",
    "High Risk",
    "Very High Risk",
)


@dataclass(frozen=True)
class AgingSummary:
    """
    Aging of one counterparty's outstanding balance.

    ``buckets`` and ``bucket_counts`` are keyed by bucket label and always
    contain every label, in bucket order. ``total_outstanding`` is the
    bucketed balance; ``counterparty_outstanding`` adds the undated one.
    """

    counterparty_id: str
    counterparty_name: str
    total_outstanding: float
    buckets: dict[str, float]
    bucket_counts: dict[str, int]
    total_bills: int
    overdue_bills: int
    undated_outstanding: float
    avg_bill_age: float
    last_bill_date: Optional[date]
    risk_category: str
    counterparty_outstanding: float = 0.0

    @property
    def overdue_rate(self) -> float:
        if self.total_bills == 0:
            return 0.0
        return self.overdue_bills / self.total_bills * 100


@dataclass(frozen=True)
class PortfolioAging:
    """Aging across all counterparties."""

    total_outstanding: float
    buckets: dict[str, float]
    bucket_percentages: dict[str, float]
    bucket_counts: dict[str, int]
    undated_outstanding: float
    counterparty_count: int


@dataclass(frozen=True)
class RiskDistributionEntry:
    category: str
    counterparty_count: int
    total_outstanding: float


def validate_bounds(bounds: Sequence[int]) -> tuple[int, ...]:
    """
    Check that bucket bounds are non-empty, positive and strictly ascending.

    Raises:
        ValueError: if the bounds are invalid.
    """
    values = tuple(int(b) for b in bounds)
    if not values:
        raise ValueError("At least one aging bucket bound is required.")
    if values[0] <= 0:
        raise ValueError("Aging bucket bounds must be positive.")
    for previous, current in zip(values, values[1:]):
        if current <= previous:
            raise ValueError(
                f"Aging bucket bounds must be strictly ascending, got {list(values)}."
            )
    return values


def bucket_labels(bounds: Sequence[int]) -> list[str]:
    """Return the N+1 labels for N bucket bounds ("0-30", "31-60", ..., ">90")."""
    labels: list[str] = []
    lower = 0
    for upper in bounds:
        labels.append(f"{lower}-{upper}")
        lower = upper + 1
    labels.append(f">{bounds[-1]}")
    return labels


def assign_bucket(age_days: int, bounds: Sequence[int]) -> int:
    """Return the index of the bucket for ``age_days``."""
    for index, upper in enumerate(bounds):
        if age_days <= upper:
            return index
    return len(bounds)


def bill_balance(bill: ReconciledBill, balance_source: BalanceSource) -> float:
    if balance_source == "reconciled":
        return bill.outstanding_amount
    if balance_source == "reported":
        return bill.reported_outstanding
    raise ValueError(f"Unknown balance source: {balance_source!r}")


def classify_risk(
    high_risk_share: float,
    overdue_rate: float,
) -> str:
    """
    Classify a counterparty from the share of its balance in the high-risk
    age range and its overdue rate (both percentages).
    """
    if high_risk_share > 70 or overdue_rate > 80:
        return "Critical"
    if high_risk_share > 40 or overdue_rate > 50:
        return "High"
    if high_risk_share > 20 or overdue_rate > 30:
        return "Medium"
    return "Low"


def bill_age(bill: ReconciledBill, reference_date: date) -> Optional[int]:
    """
    Age of a bill in days at ``reference_date``.

    Falls back to the age reported by the ledger store when the bill date
    is missing. Returns None when neither is known.
    """
    if bill.bill_date is not None:
        return (reference_date - bill.bill_date).days
    return bill.age_in_days


def _summarize_counterparty(
    bills: list[ReconciledBill],
    reference_date: date,
    bounds: tuple[int, ...],
    labels: list[str],
    balance_source: BalanceSource,
    high_risk_age_days: int,
) -> AgingSummary:
    buckets = {label: 0.0 for label in labels}
    counts = {label: 0 for label in labels}
    undated = 0.0
    high_risk = 0.0
    overdue = 0
    ages: list[int] = []
    last_bill_date: Optional[date] = None

    for bill in bills:
        if bill.is_overdue:
            overdue += 1
        if bill.bill_date is not None:
            if last_bill_date is None or bill.bill_date > last_bill_date:
                last_bill_date = bill.bill_date
        age = bill_age(bill, reference_date)
        if age is not None:
            ages.append(age)

        balance = bill_balance(bill, balance_source)
        if balance <= 0:
            continue
        if age is None:
            undated += balance
            continue

        label = labels[assign_bucket(age, bounds)]
        buckets[label] += balance
        counts[label] += 1
        if age > high_risk_age_days:
            high_risk += balance

    total = 0.0
    for label in labels:
        total += buckets[label]

    total_bills = len(bills)
    overdue_rate = overdue / total_bills * 100 if total_bills else 0.0
    high_risk_share = high_risk / total * 100 if total > 0 else 0.0

    first = bills[0]
    return AgingSummary(
        counterparty_id=first.counterparty_id,
        counterparty_name=first.counterparty_name,
        total_outstanding=total,
        buckets=buckets,
        bucket_counts=counts,
        total_bills=total_bills,
        overdue_bills=overdue,
        undated_outstanding=undated,
        counterparty_outstanding=total + undated,
        avg_bill_age=sum(ages) / len(ages) if ages else 0.0,
        last_bill_date=last_bill_date,
        risk_category=classify_risk(high_risk_share, overdue_rate),
    )


def age_counterparties(
    bills: Sequence[ReconciledBill],
    reference_date: date,
    bounds: Sequence[int] = DOMAIN_BUCKET_BOUNDS["customer"],
    *,
    balance_source: BalanceSource = "reconciled",
    high_risk_age_days: int = 90,
) -> list[AgingSummary]:
    """
    Build one ``AgingSummary`` per counterparty.

    Args:
        bills: Reconciled bills.
        reference_date: Date ages are measured from.
        bounds: Ascending bucket upper bounds.
        balance_source: "reconciled" or "reported".
        high_risk_age_days: Age beyond which a balance counts as high risk.

    Returns:
        Summaries sorted by total outstanding (descending), then by id.
    """
    checked = validate_bounds(bounds)
    labels = bucket_labels(checked)

    summaries = [
        _summarize_counterparty(
            group, reference_date, checked, labels, balance_source, high_risk_age_days
        )
        for group in group_by_counterparty(bills).values()
    ]
    summaries.sort(key=lambda s: (-s.total_outstanding, s.counterparty_id))
    return summaries


def summarize_portfolio(
    summaries: Sequence[AgingSummary],
    bounds: Sequence[int],
) -> PortfolioAging:
    """Aggregate counterparty summaries into a portfolio-level aging."""
    labels = bucket_labels(validate_bounds(bounds))
    buckets = {label: 0.0 for label in labels}
    counts = {label: 0 for label in labels}
    undated = 0.0

    for summary in summaries:
        for label in labels:
            buckets[label] += summary.buckets.get(label, 0.0)
            counts[label] += summary.bucket_counts.get(label, 0)
        undated += summary.undated_outstanding

    total = 0.0
    for label in labels:
        total += buckets[label]

    percentages = {
        label: (buckets[label] / total * 100 if total > 0 else 0.0)
        for label in labels
    }

    return PortfolioAging(
        total_outstanding=total,
        buckets=buckets,
        bucket_percentages=percentages,
        bucket_counts=counts,
        undated_outstanding=undated,
        counterparty_count=len(summaries),
    )


def distribution_category(summary: AgingSummary) -> Optional[str]:
    """
    Category of a counterparty from the oldest bucket holding a balance.

    Returns None when the counterparty has no bucketed balance.
    """
    oldest: Optional[int] = None
    for index, amount in enumerate(summary.buckets.values()):
        if amount > 0:
            oldest = index
    if oldest is None:
        return None
    return DISTRIBUTION_CATEGORIES[min(oldest, len(DISTRIBUTION_CATEGORIES) - 1)]


def risk_distribution(summaries: Sequence[AgingSummary]) -> list[RiskDistributionEntry]:
    """
    Count counterparties and balances per risk category.

    Each counterparty lands in exactly one category. Categories without any
    counterparty are omitted; the result follows ``DISTRIBUTION_CATEGORIES``
    order.
    """
    counts = {category: 0 for category in DISTRIBUTION_CATEGORIES}
    amounts = {category: 0.0 for category in DISTRIBUTION_CATEGORIES}

    for summary in summaries:
        category = distribution_category(summary)
        if category is None:
            continue
        counts[category] += 1
        amounts[category] += summary.total_outstanding

    return [
        RiskDistributionEntry(
            category=category,
            counterparty_count=counts[category],
            total_outstanding=amounts[category],
        )
        for category in DISTRIBUTION_CATEGORIES
        if counts[category] > 0
    ]
