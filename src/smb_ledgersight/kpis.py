# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Portfolio KPIs, problem counterparties and alerts.

This module produces the headline figures of a portfolio (bill counts by
status, billed / paid / outstanding totals, overdue percentage, ...) and
flags counterparties that need attention.

Problem counterparties
----------------------
A counterparty with at least 5 bills is a problem counterparty when any of
the following holds:

- overdue rate > 15%,
- business share > 10%,
- completion rate < 80%,
- slow payment rate > 30% (bills settled more than 30 days after the
  bill date, on the last payment),
- partial payment rate > 25% (paid bills with less than 95% of the billed
  amount paid).

Each one is then given a risk level and a recommended action; the list is
sorted by severity, then outstanding amount, then overdue rate.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from .aging import BalanceSource, bill_balance
from .reconcile import group_by_counterparty
from .records import ReconciledBill

SLOW_PAYMENT_DAYS = 30
PARTIAL_PAYMENT_RATIO = 0.95
MIN_BILLS_FOR_PROBLEM = 5

# (severity, risk level, recommended action)
RISK_LEVELS: dict[str, tuple[int, str, str]] = {
    "payment_crisis": (
        0,
        "CRITICAL - Payment Crisis",
        "Immediate collection action and payment plan negotiation",
    ),
    "payment_issues": (
        1,
        "HIGH - Payment Issues",
        "Urgent payment follow-up and terms review",
    ),
    "concentration": (
        1,
        "HIGH - Concentration Risk",
        "Diversify supplier base to reduce dependency",
    ),
    "slow_payment": (
        1,
        "HIGH - Slow Payment Pattern",
        "Negotiate payment acceleration incentives",
    ),
    "partial_payment": (
        2,
        "MEDIUM - Partial Payment Issues",
        "Review invoicing and payment reconciliation process",
    ),
    "monitor": (
        2,
        "MEDIUM - Monitor Closely",
        "Enhanced payment monitoring and follow-up",
    ),
    "standard": (
        3,
        "LOW - Standard Monitoring",
        "Continue standard payment process",
    ),
}


@dataclass(frozen=True)
class PortfolioKpis:
    total_bills: int
    open_bills: int
    overdue_bills: int
    paid_bills: int
    outstanding_bills: int
    total_billed: float
    total_paid: float
    total_outstanding: float
    overdue_percentage: float
    payment_success_rate: float
    avg_payment_days: float
    active_counterparties_this_month: int
    counterparty_count: int


@dataclass(frozen=True)
class ProblemCounterparty:
    counterparty_id: str
    counterparty_name: str
    risk_level: str
    recommended_action: str
    severity: int
    total_bills: int
    overdue_rate: float
    business_share: float
    completion_rate: float
    slow_payment_rate: float
    partial_payment_rate: float
    outstanding_amount: float


@dataclass(frozen=True)
class Alert:
    level: str
    category: str
    message: str


def compute_portfolio_kpis(
    bills: Sequence[ReconciledBill],
    reference_date: date,
    *,
    balance_source: BalanceSource = "reconciled",
) -> PortfolioKpis:
    """
    Headline figures of the whole portfolio.

    ``total_outstanding`` follows ``balance_source``; ``total_paid`` is the
    billed total minus that outstanding so both figures stay consistent.
    Active counterparties are those with a bill dated in the reference
    month, up to the reference date.
    """
    total_billed = 0.0
    total_outstanding = 0.0
    open_count = overdue_count = paid_count = 0
    days: list[int] = []
    month_start = reference_date.replace(day=1)
    active: set[str] = set()

    for bill in bills:
        total_billed += bill.billed_amount
        total_outstanding += bill_balance(bill, balance_source)
        if bill.status == "Open":
            open_count += 1
        elif bill.status == "Overdue":
            overdue_count += 1
        elif bill.status == "Paid":
            paid_count += 1

        lag = bill.settlement_days("last")
        if bill.has_payments and lag is not None:
            days.append(lag)
        if bill.bill_date is not None and month_start <= bill.bill_date <= reference_date:
            active.add(bill.counterparty_id)

    total_bills = len(bills)
    total_paid = max(total_billed - total_outstanding, 0.0)
    return PortfolioKpis(
        total_bills=total_bills,
        open_bills=open_count,
        overdue_bills=overdue_count,
        paid_bills=paid_count,
        outstanding_bills=open_count + overdue_count,
        total_billed=total_billed,
        total_paid=total_paid,
        total_outstanding=total_outstanding,
        overdue_percentage=overdue_count / total_bills * 100 if total_bills else 0.0,
        payment_success_rate=(
            total_paid / total_billed * 100 if total_billed > 0 else 0.0
        ),
        avg_payment_days=sum(days) / len(days) if days else 0.0,
        active_counterparties_this_month=len(active),
        counterparty_count=len({b.counterparty_id for b in bills}),
    )


def classify_problem(
    overdue_rate: float,
    business_share: float,
    completion_rate: float,
    slow_payment_rate: float,
    partial_payment_rate: float,
) -> str:
    """Return the key of ``RISK_LEVELS`` matching the given rates."""
    if overdue_rate > 40 or completion_rate < 50:
        return "payment_crisis"
    if overdue_rate > 25 or completion_rate < 70:
        return "payment_issues"
    if business_share > 15:
        return "concentration"
    if slow_payment_rate > 50:
        return "slow_payment"
    if partial_payment_rate > 40:
        return "partial_payment"
    if overdue_rate > 15:
        return "monitor"
    return "standard"


def _counterparty_rates(
    group: Sequence[ReconciledBill], total_billed_all: float
) -> dict[str, float]:
    billed = paid = outstanding = 0.0
    overdue = slow = partial = 0
    for bill in group:
        billed += bill.billed_amount
        paid += bill.paid_amount
        outstanding += bill.outstanding_amount
        if bill.is_overdue:
            overdue += 1
        if bill.has_payments:
            lag = bill.settlement_days("last")
            if lag is not None and lag > SLOW_PAYMENT_DAYS:
                slow += 1
            if bill.paid_amount < bill.billed_amount * PARTIAL_PAYMENT_RATIO:
                partial += 1

    n = len(group)
    return {
        "overdue_rate": overdue / n * 100 if n else 0.0,
        "business_share": billed / total_billed_all * 100 if total_billed_all > 0 else 0.0,
        "completion_rate": paid / billed * 100 if billed > 0 else 0.0,
        "slow_payment_rate": slow / n * 100 if n else 0.0,
        "partial_payment_rate": partial / n * 100 if n else 0.0,
        "outstanding_amount": outstanding,
    }


def counterparty_risk_rates(
    bills: Sequence[ReconciledBill],
) -> dict[str, dict[str, float]]:
    """Risk rates of every counterparty, keyed by id."""
    total_billed = 0.0
    for bill in bills:
        total_billed += bill.billed_amount
    return {
        cp_id: _counterparty_rates(group, total_billed)
        for cp_id, group in group_by_counterparty(bills).items()
    }


def find_problem_counterparties(
    bills: Sequence[ReconciledBill],
    *,
    limit: int = 10,
) -> list[ProblemCounterparty]:
    """
    Flag counterparties with significant payment issues.

    Returns:
        At most ``limit`` problem counterparties, most severe first.
    """
    groups = group_by_counterparty(bills)
    rates_by_id = counterparty_risk_rates(bills)

    problems: list[ProblemCounterparty] = []
    for cp_id, group in groups.items():
        if len(group) < MIN_BILLS_FOR_PROBLEM:
            continue
        rates = rates_by_id[cp_id]
        significant = (
            rates["overdue_rate"] > 15
            or rates["business_share"] > 10
            or rates["completion_rate"] < 80
            or rates["slow_payment_rate"] > 30
            or rates["partial_payment_rate"] > 25
        )
        if not significant:
            continue

        severity, risk_level, action = RISK_LEVELS[
            classify_problem(
                rates["overdue_rate"],
                rates["business_share"],
                rates["completion_rate"],
                rates["slow_payment_rate"],
                rates["partial_payment_rate"],
            )
        ]
        problems.append(
            ProblemCounterparty(
                counterparty_id=cp_id,
                counterparty_name=group[0].counterparty_name,
                risk_level=risk_level,
                recommended_action=action,
                severity=severity,
                total_bills=len(group),
                overdue_rate=rates["overdue_rate"],
                business_share=rates["business_share"],
                completion_rate=rates["completion_rate"],
                slow_payment_rate=rates["slow_payment_rate"],
                partial_payment_rate=rates["partial_payment_rate"],
                outstanding_amount=rates["outstanding_amount"],
            )
        )

    problems.sort(
        key=lambda p: (
            p.severity,
            -p.outstanding_amount,
            -p.overdue_rate,
            p.counterparty_id,
        )
    )
    return problems[:limit]


def build_alerts(
    bills: Sequence[ReconciledBill],
    kpis: PortfolioKpis,
    *,
    noun: str = "Vendor",
) -> list[Alert]:
    """Portfolio alerts, most urgent first."""
    high_risk = concentrated = slow = 0
    for rates in counterparty_risk_rates(bills).values():
        if rates["overdue_rate"] > 30 or rates["completion_rate"] < 70:
            high_risk += 1
        if rates["business_share"] > 10:
            concentrated += 1
        if rates["slow_payment_rate"] > 40:
            slow += 1

    plural = f"{noun.lower()}s"
    return [
        Alert(
            "URGENT",
            "Critical Payment Risk",
            f"{high_risk} {plural} with critical payment issues "
            "(>30% overdue or <70% payment completion)",
        ),
        Alert(
            "WARNING",
            "Concentration Risk",
            f"{concentrated} {plural} represent >10% of total spend",
        ),
        Alert(
            "WARNING",
            "Payment Efficiency",
            f"{slow} {plural} showing slow payment patterns "
            "(>40% of bills paid slowly)",
        ),
        Alert(
            "INFO",
            "Outstanding Balance",
            f"{kpis.total_outstanding:,.0f} in actual outstanding amounts",
        ),
        Alert(
            "INFO",
            "Activity Summary",
            f"{kpis.active_counterparties_this_month} {plural} active this month",
        ),
    ]
