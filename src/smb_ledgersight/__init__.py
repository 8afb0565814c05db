# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
SMB LedgerSight
---------------

A Python-based aging and counterparty analytics engine designed for Small
and Medium-sized Businesses (SMBs). It turns raw ledger exports (bills or
invoices and their payments) into deterministic analytics for payables
(vendors) and receivables (customers).

Main capabilities:
- normalization of messy currency ("SAR 1.08M") and date formats,
- reconciliation of many-to-one payment-to-bill relationships,
- time-bucketed aging summaries per counterparty and portfolio-wide,
- weighted performance scores with status bands,
- recent-vs-historical payment trend classification,
- spend concentration rankings,
- rule-based action recommendations, KPIs and alerts,
- relationship, operational and group rollup views of counterparties,
- cancellable, memoized analysis runs.

SMB LedgerSight separates computation (pipeline), configuration (TOML), and
presentation (views / CLI), making it suitable for scripting, automation
and dashboards.


Version: 0.1.0

Usage:
    python -m smb_ledgersight.cli --help
"""

__all__ = [
    "records",
    "normalize",
    "reconcile",
    "aging",
    "scoring",
    "trends",
    "concentration",
    "recommendations",
    "kpis",
    "relationships",
    "config",
    "pipeline",
    "io",
    "views",
    "cli",
]

__version__ = "0.1.0"
