# SMB LedgerSight - Aging & Counterparty Analytics for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Spend concentration analysis (Pareto-style).

Counterparties are ranked by total billed amount. The ``top_n`` largest
ones become individual entries; all the others are merged into a single
"Others (k counterparties)" entry. Top-1/3/5/10 cumulative shares are
computed on the full ranking, independently of ``top_n``.

When the total spend is zero every percentage is zero.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from .scoring import CounterpartyMetrics

CONCENTRATION_LEVELS: tuple[int, ...] = (1, 3, 5, 10)


@dataclass(frozen=True)
class ConcentrationEntry:
    label: str
    spend: float
    paid: float
    share_percentage: float
    counterparty_count: int
    completion_rate: float
    counterparty_id: Optional[str] = None

    @property
    def is_others(self) -> bool:
        return self.counterparty_id is None


@dataclass(frozen=True)
class ConcentrationMetrics:
    """
    Result of ``analyze_concentration``.

    ``top_shares`` maps N (1, 3, 5, 10) to the cumulative share of the N
    largest counterparties.
    """

    total_spend: float
    entries: list[ConcentrationEntry]
    top_shares: dict[int, float]
    counterparty_count: int


def _pct(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0.0


def analyze_concentration(
    metrics: Sequence[CounterpartyMetrics],
    *,
    top_n: int = 10,
    others_label: str = "counterparties",
) -> ConcentrationMetrics:
    """
    Rank counterparties by spend and compute concentration figures.

    Args:
        metrics: Per-counterparty metrics (billed and paid totals).
        top_n: Number of individual entries before the "Others" entry.
        others_label: Noun used in the "Others" label ("vendors", ...).
    """
    ranked = sorted(metrics, key=lambda m: (-m.total_billed, m.counterparty_id))

    total_spend = 0.0
    for m in ranked:
        total_spend += m.total_billed

    entries: list[ConcentrationEntry] = []
    for m in ranked[:top_n]:
        entries.append(
            ConcentrationEntry(
                label=m.counterparty_name,
                spend=m.total_billed,
                paid=m.total_paid,
                share_percentage=_pct(m.total_billed, total_spend),
                counterparty_count=1,
                completion_rate=_pct(m.total_paid, m.total_billed),
                counterparty_id=m.counterparty_id,
            )
        )

    rest = ranked[top_n:]
    other_spend = 0.0
    other_paid = 0.0
    for m in rest:
        other_spend += m.total_billed
        other_paid += m.total_paid

    if rest and other_spend > 0:
        entries.append(
            ConcentrationEntry(
                label=f"Others ({len(rest)} {others_label})",
                spend=other_spend,
                paid=other_paid,
                share_percentage=_pct(other_spend, total_spend),
                counterparty_count=len(rest),
                completion_rate=_pct(other_paid, other_spend),
            )
        )

    top_shares: dict[int, float] = {}
    for level in CONCENTRATION_LEVELS:
        cumulative = 0.0
        for m in ranked[:level]:
            cumulative += m.total_billed
        top_shares[level] = _pct(cumulative, total_spend)

    return ConcentrationMetrics(
        total_spend=total_spend,
        entries=entries,
        top_shares=top_shares,
        counterparty_count=len(ranked),
    )


def spend_shares(metrics: Sequence[CounterpartyMetrics]) -> dict[str, float]:
    """Share of total spend of every counterparty, keyed by id."""
    total = 0.0
    for m in metrics:
        total += m.total_billed
    return {m.counterparty_id: _pct(m.total_billed, total) for m in metrics}
