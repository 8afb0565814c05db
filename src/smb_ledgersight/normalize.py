# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Normalization of raw ledger records for SMB LedgerSight.

Every other component of the pipeline consumes only the typed records
produced here. This module is the single place where string-encoded
currency amounts, dates and statuses are interpreted.

Currency strings
----------------
The ledger store exports amounts as display strings. All of the following
forms are supported:

    "SAR 1,234.56"   -> 1234.56
    "SAR 1.08M"      -> 1080000.0
    "SAR 12K"        -> 12000.0
    "1,000"          -> 1000.0
    "(250.00)"       -> -250.0
    "-SAR 100"       -> -100.0
    "" / None        -> 0.0

A three-letter currency code prefix is stripped, thousands separators are
removed, and a K / M / B suffix multiplier is detected *before* the
numeral is parsed (so "1.08M" is never truncated to 1.08). Arithmetic is
done with ``Decimal`` so that the multiplied value is exact.

Dates
-----
Dates are tried, in order, against:

1) the "D Mon YYYY" pattern used by bill exports ("28 Jul 2025"),
2) an ISO "YYYY-MM-DD..." prefix (dates and timestamps),
3) a generic fallback parse via ``pandas.to_datetime``.

Unparseable values never raise: they become 0 (amounts) or None (dates)
and the matching counter of the ``Diagnostics`` object is incremented.
"""

import logging
import math
import re
import warnings
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

import pandas as pd

from .records import (
    BILL_STATUSES,
    Bill,
    BillStatus,
    Diagnostics,
    Payment,
    RawBillRecord,
    RawPaymentRecord,
)

logger = logging.getLogger(__name__)


class RecordValidationError(ValueError):
    """Raised in strict mode when a raw record lacks a required field."""


# ---------------------------------------------------------------------------
# Field aliases accepted at the normalization boundary
# ---------------------------------------------------------------------------

BILL_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "bill_id": ("bill_id", "invoice_id"),
    "counterparty_id": ("counterparty_id", "vendor_id", "customer_id"),
    "counterparty_name": ("counterparty_name", "vendor_name", "customer_name"),
    "bill_date": ("bill_date", "invoice_date"),
    "billed_amount": ("billed_amount", "total_amount", "total_bcy"),
    "outstanding_amount": ("outstanding_amount", "balance_bcy"),
    "status": ("status", "bill_status", "invoice_status"),
    "age_in_days": ("age_in_days",),
    "group": (
        "group",
        "branch",
        "branch_name",
        "owner",
        "customer_owner_name_custom",
    ),
}

PAYMENT_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "bill_id": ("bill_id", "invoice_id"),
    "amount": ("amount", "amount_bcy"),
    "paid_at": ("paid_at", "created_time", "payment_date"),
}

_EMPTY_MARKERS = {"", "null", "none", "nan", "nat"}

_CURRENCY_PREFIX_RE = re.compile(r"^[A-Za-z]{3}\.?\s*")
_NUMBER_RE = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)$")

# Suffix multipliers, looked up on the last character of the cleaned value.
CURRENCY_MULTIPLIERS: dict[str, Decimal] = {
    "K": Decimal(1_000),
    "M": Decimal(1_000_000),
    "B": Decimal(1_000_000_000),
}

_DAY_MON_YEAR_RE = re.compile(r"^\d{1,2}\s+[A-Za-z]{3}\s+\d{4}$")
_ISO_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


# ---------------------------------------------------------------------------
# Scalar parsers
# ---------------------------------------------------------------------------


def _clean_text(value: Any) -> Optional[str]:
    """Return a stripped string for ``value``, or None when it is empty/missing."""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    text = str(value).strip()
    if text.lower() in _EMPTY_MARKERS:
        return None
    return text


def _parse_currency_text(text: str) -> Optional[Decimal]:
    """Parse a non-empty currency string, or return None if it is unparseable."""
    s = text.strip()

    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()

    # A sign may precede the currency code ("-SAR 100").
    if s[:1] in ("-", "+") and _CURRENCY_PREFIX_RE.match(s[1:].lstrip()):
        if s[0] == "-":
            negative = not negative
        s = s[1:].lstrip()

    s = _CURRENCY_PREFIX_RE.sub("", s)
    s = s.replace(",", "").replace(" ", "")

    multiplier = Decimal(1)
    if s and s[-1].upper() in CURRENCY_MULTIPLIERS:
        multiplier = CURRENCY_MULTIPLIERS[s[-1].upper()]
        s = s[:-1]

    if not _NUMBER_RE.match(s):
        return None

    try:
        number = Decimal(s)
    except InvalidOperation:
        return None

    number = number * multiplier
    return -number if negative else number


def parse_currency_or_none(
    value: Any, diagnostics: Optional[Diagnostics] = None
) -> Optional[float]:
    """
    Parse a currency value, distinguishing "missing/unparseable" from zero.

    Returns None for empty and unparseable input. Unparseable (non-empty)
    input increments ``diagnostics.unparseable_currency``.
    """
    if isinstance(value, bool):
        value = None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and math.isnan(value):
            return None
        return float(value)

    text = _clean_text(value)
    if text is None:
        return None

    parsed = _parse_currency_text(text)
    if parsed is None:
        if diagnostics is not None:
            diagnostics.unparseable_currency += 1
        logger.debug("Unparseable currency value %r normalized to 0", text)
        return None
    return float(parsed)


def parse_currency(value: Any, diagnostics: Optional[Diagnostics] = None) -> float:
    """
    Parse a currency string such as "SAR 1,234.56", "SAR 1.08M" or "SAR 12K".

    Args:
        value: Raw value (string, number or None).
        diagnostics: Optional counters updated when the value is unparseable.

    Returns:
        The parsed amount as a float. Empty or unparseable input gives 0.0.
    """
    parsed = parse_currency_or_none(value, diagnostics)
    return 0.0 if parsed is None else parsed


def _to_naive(moment: datetime, to_utc: bool) -> datetime:
    if moment.tzinfo is None:
        return moment
    if to_utc:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.replace(tzinfo=None)


def _fallback_parse(text: str, to_utc: bool) -> Optional[datetime]:
    """Generic date parse through pandas; returns None when pandas gives up."""
    try:
        with warnings.catch_warnings():
            # pandas warns when it has to guess the format of a lone string.
            warnings.simplefilter("ignore", UserWarning)
            ts = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None

    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC") if to_utc else ts
        ts = ts.tz_localize(None)
    return ts.to_pydatetime()


def _parse_datetime_text(text: str, to_utc: bool) -> Optional[datetime]:
    # (a) "D Mon YYYY"
    if _DAY_MON_YEAR_RE.match(text):
        try:
            return datetime.strptime(" ".join(text.split()), "%d %b %Y")
        except ValueError:
            pass

    # (b) ISO date / datetime prefix
    if _ISO_PREFIX_RE.match(text):
        try:
            return _to_naive(datetime.fromisoformat(text), to_utc)
        except ValueError:
            try:
                return datetime.fromisoformat(text[:10])
            except ValueError:
                pass

    # (c) generic fallback
    return _fallback_parse(text, to_utc)


def _parse_temporal(
    value: Any, diagnostics: Optional[Diagnostics], to_utc: bool
) -> Optional[datetime]:
    if isinstance(value, datetime):
        if pd.isna(value):
            value = None
        else:
            return _to_naive(value, to_utc)
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)

    text = _clean_text(value)
    if text is None:
        if diagnostics is not None:
            diagnostics.missing_dates += 1
        return None

    parsed = _parse_datetime_text(text, to_utc)
    if parsed is None:
        if diagnostics is not None:
            diagnostics.unparseable_dates += 1
        logger.debug("Unparseable date value %r", text)
    return parsed


def parse_date(value: Any, diagnostics: Optional[Diagnostics] = None) -> Optional[date]:
    """
    Parse a bill date ("28 Jul 2025", "2025-07-28", "2025-07-28 10:40:49", ...).

    Returns None when the value is missing or cannot be parsed. Callers must
    exclude such records from time-based calculations while keeping them in
    amount totals.
    """
    parsed = _parse_temporal(value, diagnostics, to_utc=False)
    return parsed.date() if parsed is not None else None


def parse_timestamp(
    value: Any, diagnostics: Optional[Diagnostics] = None
) -> Optional[datetime]:
    """
    Parse a payment timestamp into a naive datetime.

    Timezone-aware inputs are converted to UTC before the timezone is
    dropped, so that payments from different sources compare consistently.
    """
    return _parse_temporal(value, diagnostics, to_utc=True)


def parse_int(value: Any) -> Optional[int]:
    """Parse an integer-like value such as "45" or "45.0"; None if impossible."""
    text = _clean_text(value)
    if text is None:
        return None
    try:
        return int(float(text.replace(",", "")))
    except (TypeError, ValueError, OverflowError):
        return None


def normalize_status(
    value: Any, diagnostics: Optional[Diagnostics] = None
) -> BillStatus:
    """
    Map a raw status onto "Open", "Overdue" or "Paid" (case-insensitive).

    Unknown or missing statuses are treated as "Open" and counted.
    """
    text = _clean_text(value)
    if text is not None:
        for status in BILL_STATUSES:
            if text.lower() == status.lower():
                return status  # type: ignore[return-value]
    if diagnostics is not None:
        diagnostics.unknown_statuses += 1
    return "Open"


# ---------------------------------------------------------------------------
# Record normalization
# ---------------------------------------------------------------------------

RawRecord = Union[Mapping[str, Any], RawBillRecord, RawPaymentRecord]


def _get_field(record: RawRecord, names: tuple[str, ...]) -> Any:
    """Return the first non-missing value among ``names`` in a raw record."""
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if _clean_text(value) is not None or isinstance(value, (date, int, float)):
            if isinstance(value, float) and math.isnan(value):
                continue
            return value
    return None


def _iter_records(records: Any) -> Iterable[RawRecord]:
    if isinstance(records, pd.DataFrame):
        return records.to_dict(orient="records")
    return records


def default_counterparty_name(counterparty_id: str, name_prefix: str = "Vendor") -> str:
    """Fallback display name built from the last four characters of the id."""
    return f"{name_prefix} {counterparty_id[-4:]}"


def normalize_bills(
    records: Any,
    diagnostics: Optional[Diagnostics] = None,
    *,
    strict: bool = False,
    name_prefix: str = "Vendor",
) -> list[Bill]:
    """
    Validate and normalize raw bill records.

    Args:
        records:
            Iterable of mappings or ``RawBillRecord`` instances, or a pandas
            DataFrame (one row per bill). Column aliases listed in
            ``BILL_FIELD_ALIASES`` are accepted (e.g. ``total_amount``).
        diagnostics:
            Counters updated with every data-quality issue found.
        strict:
            When True, a record missing ``bill_id`` or ``counterparty_id``
            raises ``RecordValidationError`` instead of being rejected.
        name_prefix:
            Prefix used to build a display name when none is provided.

    Returns:
        A list of ``Bill`` objects, in input order. Bills whose id was
        already seen are dropped (first occurrence wins).
    """
    diag = diagnostics if diagnostics is not None else Diagnostics()
    bills: list[Bill] = []
    seen: set[str] = set()

    for index, record in enumerate(_iter_records(records)):
        bill_id = _clean_text(_get_field(record, BILL_FIELD_ALIASES["bill_id"]))
        cp_id = _clean_text(_get_field(record, BILL_FIELD_ALIASES["counterparty_id"]))

        if bill_id is None or cp_id is None:
            missing = "bill_id" if bill_id is None else "counterparty_id"
            if strict:
                raise RecordValidationError(
                    f"Bill record #{index} is missing required field {missing!r}."
                )
            diag.rejected_bills += 1
            logger.warning("Rejected bill record #%d: missing %s", index, missing)
            continue

        if bill_id in seen:
            diag.duplicate_bills += 1
            logger.warning("Duplicate bill id %s ignored", bill_id)
            continue
        seen.add(bill_id)

        name = _clean_text(_get_field(record, BILL_FIELD_ALIASES["counterparty_name"]))

        billed = parse_currency(
            _get_field(record, BILL_FIELD_ALIASES["billed_amount"]), diag
        )
        if billed < 0:
            diag.negative_billed_amounts += 1
            billed = 0.0

        reported = max(
            parse_currency(
                _get_field(record, BILL_FIELD_ALIASES["outstanding_amount"]), diag
            ),
            0.0,
        )

        bills.append(
            Bill(
                bill_id=bill_id,
                counterparty_id=cp_id,
                counterparty_name=name or default_counterparty_name(cp_id, name_prefix),
                bill_date=parse_date(
                    _get_field(record, BILL_FIELD_ALIASES["bill_date"]), diag
                ),
                billed_amount=billed,
                reported_outstanding=reported,
                status=normalize_status(
                    _get_field(record, BILL_FIELD_ALIASES["status"]), diag
                ),
                age_in_days=parse_int(
                    _get_field(record, BILL_FIELD_ALIASES["age_in_days"])
                ),
                group=_clean_text(_get_field(record, BILL_FIELD_ALIASES["group"])) or "",
            )
        )

    return bills


def normalize_payments(
    records: Any,
    diagnostics: Optional[Diagnostics] = None,
) -> list[Payment]:
    """
    Validate and normalize raw payment records.

    Payments are dropped, and counted per reason in ``diagnostics``, when:
    - ``bill_id`` is missing,
    - the amount cannot be parsed,
    - the amount is zero or negative.

    A payment with an unparseable ``paid_at`` is kept: it still counts
    toward paid amounts but is excluded from settlement timing.
    """
    diag = diagnostics if diagnostics is not None else Diagnostics()
    payments: list[Payment] = []

    for record in _iter_records(records):
        bill_id = _clean_text(_get_field(record, PAYMENT_FIELD_ALIASES["bill_id"]))
        if bill_id is None:
            diag.payments_missing_bill_id += 1
            continue

        amount = parse_currency_or_none(
            _get_field(record, PAYMENT_FIELD_ALIASES["amount"]), diag
        )
        if amount is None:
            diag.payments_unparseable_amount += 1
            continue
        if amount <= 0:
            diag.payments_non_positive_amount += 1
            continue

        payments.append(
            Payment(
                bill_id=bill_id,
                amount=amount,
                paid_at=parse_timestamp(
                    _get_field(record, PAYMENT_FIELD_ALIASES["paid_at"]), diag
                ),
            )
        )

    if diag.dropped_payments:
        logger.warning(
            "Dropped %d payment records (missing bill id: %d, "
            "unparseable amount: %d, non-positive amount: %d)",
            diag.dropped_payments,
            diag.payments_missing_bill_id,
            diag.payments_unparseable_amount,
            diag.payments_non_positive_amount,
        )

    return payments
