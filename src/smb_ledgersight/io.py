# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for SMB LedgerSight.

This module reads raw bill and payment exports from CSV files. Values are
kept as text, exactly as exported by the ledger store: currency strings
("SAR 1,234.56", "SAR 1.08M"), dates ("28 Jul 2025", ISO timestamps) and
statuses are interpreted later by ``normalize.py``.

Expected input formats
----------------------

Column names are case-insensitive. The aliases listed below are renamed
to the canonical column name.

1) Bills
   -----
       bill_id, counterparty_id, counterparty_name, bill_date,
       billed_amount, outstanding_amount, status, age_in_days, group

   Accepted aliases:
   - ``invoice_id`` for ``bill_id``,
   - ``vendor_id`` / ``customer_id`` for ``counterparty_id``,
   - ``vendor_name`` / ``customer_name`` for ``counterparty_name``,
   - ``invoice_date`` for ``bill_date``,
   - ``total_amount`` / ``total_bcy`` for ``billed_amount``,
   - ``balance_bcy`` for ``outstanding_amount``,
   - ``bill_status`` / ``invoice_status`` for ``status``,
   - ``branch`` / ``branch_name`` / ``owner`` /
     ``customer_owner_name_custom`` for ``group``.

   Required: ``bill_id``, ``counterparty_id``, ``billed_amount``.

2) Payments
   --------
       bill_id, amount, paid_at

   Accepted aliases: ``invoice_id`` for ``bill_id``, ``amount_bcy`` for
   ``amount``, ``created_time`` / ``payment_date`` for ``paid_at``.

   Required: ``bill_id``, ``amount``.

Output schema
-------------
Both readers return a pandas DataFrame with the canonical columns (missing
optional columns are added empty) and string values. Any other column is
ignored.

If the CSV structure does not match, a clear ValueError is raised.
"""

import os
from typing import Union

import pandas as pd

from .normalize import BILL_FIELD_ALIASES, PAYMENT_FIELD_ALIASES

BILL_COLUMNS: list[str] = list(BILL_FIELD_ALIASES)
PAYMENT_COLUMNS: list[str] = list(PAYMENT_FIELD_ALIASES)

REQUIRED_BILL_COLUMNS = ("bill_id", "counterparty_id", "billed_amount")
REQUIRED_PAYMENT_COLUMNS = ("bill_id", "amount")

PathLike = Union[str, "os.PathLike[str]"]


def _canonicalize(
    df: pd.DataFrame,
    aliases: dict[str, tuple[str, ...]],
    required: tuple[str, ...],
    kind: str,
) -> pd.DataFrame:
    # Normalize column names to lowercase (to make the check case-insensitive)
    df.columns = [str(c).lower().strip() for c in df.columns]
    cols = set(df.columns)

    renames: dict[str, str] = {}
    for canonical, names in aliases.items():
        if canonical in cols:
            continue
        for name in names:
            if name in cols:
                renames[name] = canonical
                break
    if renames:
        df = df.rename(columns=renames)

    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(
            f"Invalid {kind} CSV structure: missing required column(s) "
            f"{', '.join(missing)}. Expected at least: {', '.join(required)} "
            "(column names are case-insensitive)."
        )

    out = df.copy()
    for column in aliases:
        if column not in out.columns:
            out[column] = ""
    return out[list(aliases)].reset_index(drop=True)


def _read_raw_csv(path: PathLike) -> pd.DataFrame:
    # Everything stays text; empty cells become "" rather than NaN.
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def read_bills_csv(path: PathLike) -> pd.DataFrame:
    """
    Read raw bills (or invoices) from a CSV file.

    Parameters
    ----------
    path:
        Path to the CSV export.

    Returns
    -------
    pandas.DataFrame
        One row per bill, with the columns of ``BILL_COLUMNS`` as strings.

    Raises
    ------
    ValueError
        If a required column is missing.
    """
    return _canonicalize(
        _read_raw_csv(path), BILL_FIELD_ALIASES, REQUIRED_BILL_COLUMNS, "bills"
    )


def read_payments_csv(path: PathLike) -> pd.DataFrame:
    """
    Read raw payments from a CSV file.

    Returns a DataFrame with the columns of ``PAYMENT_COLUMNS`` as strings.
    Raises ValueError if a required column is missing.
    """
    return _canonicalize(
        _read_raw_csv(path), PAYMENT_FIELD_ALIASES, REQUIRED_PAYMENT_COLUMNS, "payments"
    )
