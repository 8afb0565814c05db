# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Reconciliation of payments against bills.

Payments reference the bill they settle through ``bill_id``. A bill may be
settled by any number of payments (partial payments, instalments), so the
join is one-to-many:

    bill_id -> [payment, payment, ...]

For each bill the reconciled values are:

    paid_amount        = sum(payment.amount)
    outstanding_amount = max(billed_amount - paid_amount, 0)

and, when the bill has a date and at least one dated payment:

    days_to_first_payment = floor(first_payment - bill_date)
    days_to_last_payment  = floor(last_payment  - bill_date)

A payment dated before its bill gives a negative lag. The lag is kept as
is and the bill is counted in ``Diagnostics.negative_settlement_lags``.

Payments whose ``bill_id`` matches no bill are orphans. They do not affect
any bill, but their count and total amount are kept in ``Diagnostics`` and
``ReconciliationTotals`` so that aggregate reconciliation never loses money
silently.
"""

import logging
import math
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from .records import Bill, Diagnostics, Payment, ReconciledBill

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationTotals:
    """Portfolio-level reconciliation figures."""

    total_billed: float
    matched_paid: float
    total_outstanding: float
    orphan_payment_count: int
    orphan_payment_amount: float
    dropped_payment_count: int


@dataclass(frozen=True)
class Reconciliation:
    """Result of ``reconcile``: reconciled bills plus portfolio totals."""

    bills: list[ReconciledBill]
    totals: ReconciliationTotals


def _days_between(bill_date: date, moment: datetime) -> int:
    """Whole days (floored) from the start of ``bill_date`` to ``moment``."""
    start = datetime(bill_date.year, bill_date.month, bill_date.day)
    return math.floor((moment - start).total_seconds() / 86400)


def index_payments(payments: list[Payment]) -> dict[str, list[Payment]]:
    """Group payments by bill id, preserving input order within each group."""
    index: dict[str, list[Payment]] = defaultdict(list)
    for payment in payments:
        index[payment.bill_id].append(payment)
    return dict(index)


def reconcile_bill(bill: Bill, payments: list[Payment]) -> ReconciledBill:
    """
    Reconcile a single bill with the payments that reference it.

    A bill counts as overdue when its status says so, regardless of the
    reconciled balance.
    """
    paid = 0.0
    for payment in payments:
        paid += payment.amount

    dated = sorted(p.paid_at for p in payments if p.paid_at is not None)
    first_at: Optional[datetime] = dated[0] if dated else None
    last_at: Optional[datetime] = dated[-1] if dated else None

    days_first: Optional[int] = None
    days_last: Optional[int] = None
    if bill.bill_date is not None and first_at is not None and last_at is not None:
        days_first = _days_between(bill.bill_date, first_at)
        days_last = _days_between(bill.bill_date, last_at)

    return ReconciledBill(
        bill_id=bill.bill_id,
        counterparty_id=bill.counterparty_id,
        counterparty_name=bill.counterparty_name,
        bill_date=bill.bill_date,
        billed_amount=bill.billed_amount,
        paid_amount=paid,
        outstanding_amount=max(bill.billed_amount - paid, 0.0),
        payment_count=len(payments),
        first_payment_at=first_at,
        last_payment_at=last_at,
        days_to_first_payment=days_first,
        days_to_last_payment=days_last,
        is_overdue=bill.status == "Overdue",
        status=bill.status,
        reported_outstanding=bill.reported_outstanding,
        age_in_days=bill.age_in_days,
        group=bill.group,
    )


def reconcile(
    bills: list[Bill],
    payments: list[Payment],
    diagnostics: Optional[Diagnostics] = None,
) -> Reconciliation:
    """
    Join normalized payments to normalized bills.

    Args:
        bills: Normalized bills (unique bill ids).
        payments: Normalized payments (positive amounts, bill id present).
        diagnostics: Counters updated with orphan payments.

    Returns:
        A ``Reconciliation`` with one ``ReconciledBill`` per input bill
        (input order preserved) and the portfolio totals.
    """
    diag = diagnostics if diagnostics is not None else Diagnostics()
    index = index_payments(payments)

    reconciled: list[ReconciledBill] = []
    for bill in bills:
        rb = reconcile_bill(bill, index.get(bill.bill_id, []))
        if rb.days_to_first_payment is not None and rb.days_to_first_payment < 0:
            diag.negative_settlement_lags += 1
        reconciled.append(rb)

    if diag.negative_settlement_lags:
        logger.warning(
            "%d bills have a payment dated before the bill date",
            diag.negative_settlement_lags,
        )

    known_ids = {bill.bill_id for bill in bills}
    for bill_id, orphaned in index.items():
        if bill_id in known_ids:
            continue
        for payment in orphaned:
            diag.orphan_payments += 1
            diag.orphan_payment_amount += payment.amount

    if diag.orphan_payments:
        logger.warning(
            "%d payments (%.2f) reference unknown bills",
            diag.orphan_payments,
            diag.orphan_payment_amount,
        )

    return Reconciliation(bills=reconciled, totals=summarize_totals(reconciled, diag))


def summarize_totals(
    bills: Sequence[ReconciledBill],
    diagnostics: Diagnostics,
) -> ReconciliationTotals:
    """Portfolio totals of reconciled bills, with the payments left out of them."""
    total_billed = 0.0
    matched_paid = 0.0
    total_outstanding = 0.0
    for rb in bills:
        total_billed += rb.billed_amount
        matched_paid += rb.paid_amount
        total_outstanding += rb.outstanding_amount

    return ReconciliationTotals(
        total_billed=total_billed,
        matched_paid=matched_paid,
        total_outstanding=total_outstanding,
        orphan_payment_count=diagnostics.orphan_payments,
        orphan_payment_amount=diagnostics.orphan_payment_amount,
        dropped_payment_count=diagnostics.dropped_payments,
    )


def group_by_counterparty(
    bills: Sequence[ReconciledBill],
) -> dict[str, list[ReconciledBill]]:
    """Group bills by counterparty id, keeping first-seen order."""
    groups: dict[str, list[ReconciledBill]] = {}
    for bill in bills:
        groups.setdefault(bill.counterparty_id, []).append(bill)
    return groups
