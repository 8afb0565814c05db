# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Typed records for SMB LedgerSight.

This module defines the data model shared by every stage of the analytics
pipeline. Records fall into three families:

1. Raw records
   -----------
   ``RawBillRecord`` and ``RawPaymentRecord`` mirror the ledger store
   contract: every value is still a string exactly as it was fetched
   (currency strings such as "SAR 1,234.56", dates such as "28 Jul 2025").

2. Normalized records
   ------------------
   ``Bill`` and ``Payment`` are produced by ``normalize.py``. Amounts are
   floats, dates are ``datetime.date`` / ``datetime.datetime`` objects or
   None when the source value could not be parsed.

3. Reconciled records
   ------------------
   ``ReconciledBill`` is produced by ``reconcile.py`` and carries the paid
   and outstanding amounts of a bill together with its settlement timing.

``Diagnostics`` is the only mutable structure: it collects data-quality
counters while the raw snapshot is normalized and reconciled.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal, Optional

BillStatus = Literal["Open", "Overdue", "Paid"]
SettlementBasis = Literal["first", "last"]

BILL_STATUSES: tuple[str, ...] = ("Open", "Overdue", "Paid")


@dataclass(frozen=True)
class RawBillRecord:
    """Bill (or invoice) as fetched from the ledger store, all values as text."""

    bill_id: str
    counterparty_id: str
    counterparty_name: Optional[str]
    bill_date: Optional[str]
    billed_amount: Optional[str]
    outstanding_amount: Optional[str]
    status: Optional[str]
    age_in_days: Optional[str] = None
    group: Optional[str] = None


@dataclass(frozen=True)
class RawPaymentRecord:
    """Payment as fetched from the ledger store, all values as text."""

    bill_id: Optional[str]
    amount: Optional[str]
    paid_at: Optional[str]


@dataclass(frozen=True)
class Bill:
    """
    Normalized bill.

    Attributes
    ----------
    bill_id :
        Identifier used to join payments.
    counterparty_id / counterparty_name :
        Vendor (payables) or customer (receivables) the bill belongs to.
    bill_date :
        Parsed bill date, or None when the source date was unparseable.
    billed_amount :
        Total billed amount (>= 0).
    reported_outstanding :
        Outstanding balance as reported by the ledger store. The
        reconciled outstanding amount is derived from payments instead.
    status :
        One of "Open", "Overdue", "Paid".
    age_in_days :
        Age reported by the ledger store, or None.
    group :
        Optional grouping key (branch, owner, ...), "" when absent.
    """

    bill_id: str
    counterparty_id: str
    counterparty_name: str
    bill_date: Optional[date]
    billed_amount: float
    reported_outstanding: float
    status: BillStatus
    age_in_days: Optional[int] = None
    group: str = ""


@dataclass(frozen=True)
class Payment:
    """Normalized payment. ``amount`` is always strictly positive."""

    bill_id: str
    amount: float
    paid_at: Optional[datetime]


@dataclass(frozen=True)
class ReconciledBill:
    """
    A bill joined with all the payments that settle it.

    Invariant: ``outstanding_amount == max(billed_amount - paid_amount, 0)``.

    ``days_to_first_payment`` / ``days_to_last_payment`` are whole days
    (floored) between the bill date and the first / last dated payment.
    They are None when the bill has no dated payment or no bill date. A
    payment dated before the bill gives a negative lag.

    ``age_in_days`` is the age reported by the ledger store; aging falls
    back to it when the bill date is missing.
    """

    bill_id: str
    counterparty_id: str
    counterparty_name: str
    bill_date: Optional[date]
    billed_amount: float
    paid_amount: float
    outstanding_amount: float
    payment_count: int
    first_payment_at: Optional[datetime]
    last_payment_at: Optional[datetime]
    days_to_first_payment: Optional[int]
    days_to_last_payment: Optional[int]
    is_overdue: bool
    status: BillStatus
    reported_outstanding: float = 0.0
    age_in_days: Optional[int] = None
    group: str = ""

    @property
    def has_payments(self) -> bool:
        return self.payment_count > 0

    @property
    def actual_settlement_days(self) -> Optional[int]:
        """Days until the bill was fully settled (last payment basis)."""
        return self.days_to_last_payment

    def settlement_days(self, basis: SettlementBasis = "last") -> Optional[int]:
        """Return the settlement lag for the requested basis."""
        if basis == "first":
            return self.days_to_first_payment
        if basis == "last":
            return self.days_to_last_payment
        raise ValueError(f"Unknown settlement basis: {basis!r}")


@dataclass
class Diagnostics:
    """
    Data-quality counters collected while normalizing and reconciling.

    None of these conditions raise: values fall back to neutral defaults
    and the corresponding counter is incremented so callers can monitor
    the quality of the upstream data.
    """

    unparseable_currency: int = 0
    unparseable_dates: int = 0
    missing_dates: int = 0
    unknown_statuses: int = 0
    negative_billed_amounts: int = 0
    rejected_bills: int = 0
    duplicate_bills: int = 0
    payments_missing_bill_id: int = 0
    payments_unparseable_amount: int = 0
    payments_non_positive_amount: int = 0
    orphan_payments: int = 0
    orphan_payment_amount: float = 0.0
    negative_settlement_lags: int = 0

    @property
    def dropped_payments(self) -> int:
        """Payments excluded before reconciliation, all reasons combined."""
        return (
            self.payments_missing_bill_id
            + self.payments_unparseable_amount
            + self.payments_non_positive_amount
        )

    def as_dict(self) -> dict[str, float]:
        return {
            "unparseable_currency": self.unparseable_currency,
            "unparseable_dates": self.unparseable_dates,
            "missing_dates": self.missing_dates,
            "unknown_statuses": self.unknown_statuses,
            "negative_billed_amounts": self.negative_billed_amounts,
            "rejected_bills": self.rejected_bills,
            "duplicate_bills": self.duplicate_bills,
            "payments_missing_bill_id": self.payments_missing_bill_id,
            "payments_unparseable_amount": self.payments_unparseable_amount,
            "payments_non_positive_amount": self.payments_non_positive_amount,
            "dropped_payments": self.dropped_payments,
            "orphan_payments": self.orphan_payments,
            "orphan_payment_amount": round(self.orphan_payment_amount, 2),
            "negative_settlement_lags": self.negative_settlement_lags,
        }
