import pytest

from smb_ledgersight.concentration import analyze_concentration, spend_shares
from smb_ledgersight.scoring import CounterpartyMetrics


def _metrics(cp_id: str, billed: float, paid: float = 0.0) -> CounterpartyMetrics:
    return CounterpartyMetrics(
        counterparty_id=cp_id,
        counterparty_name=f"Vendor {cp_id}",
        total_bills=1,
        overdue_bills=0,
        paid_bills=1 if paid else 0,
        total_billed=billed,
        total_paid=paid,
        outstanding_amount=max(billed - paid, 0.0),
        overdue_rate=0.0,
        completion_rate=paid / billed * 100 if billed else 0.0,
        avg_payment_days=0.0,
        reliability=0.0,
        settlement_days=(),
    )


def test_top_entries_and_others_sum_to_100() -> None:
    metrics = [_metrics(f"V{i:02d}", 100.0 * (i + 1), paid=50.0 * i) for i in range(12)]

    result = analyze_concentration(metrics, top_n=10, others_label="vendors")

    assert len(result.entries) == 11
    others = result.entries[-1]
    assert others.is_others
    assert others.label == "Others (2 vendors)"
    assert others.counterparty_count == 2
    assert others.spend == pytest.approx(300.0)
    assert sum(e.share_percentage for e in result.entries) == pytest.approx(100.0, abs=0.1)
    assert result.entries[0].counterparty_id == "V11"
    assert result.counterparty_count == 12


def test_no_others_entry_when_everything_fits() -> None:
    result = analyze_concentration([_metrics("V1", 10.0), _metrics("V2", 30.0)])

    assert [e.counterparty_id for e in result.entries] == ["V2", "V1"]
    assert not any(e.is_others for e in result.entries)
    assert result.entries[0].share_percentage == pytest.approx(75.0)


def test_top_shares_are_independent_of_top_n() -> None:
    metrics = [_metrics(f"V{i}", 100.0) for i in range(5)]

    result = analyze_concentration(metrics, top_n=2)

    assert result.top_shares[1] == pytest.approx(20.0)
    assert result.top_shares[3] == pytest.approx(60.0)
    assert result.top_shares[5] == pytest.approx(100.0)
    assert result.top_shares[10] == pytest.approx(100.0)


def test_ties_are_broken_by_id() -> None:
    result = analyze_concentration([_metrics("V2", 50.0), _metrics("V1", 50.0)])

    assert [e.counterparty_id for e in result.entries] == ["V1", "V2"]


def test_zero_spend_gives_zero_percentages() -> None:
    """No division by zero: every share is 0 when nothing was billed."""
    metrics = [_metrics(f"V{i}", 0.0) for i in range(12)]

    result = analyze_concentration(metrics, top_n=10)

    assert result.total_spend == 0.0
    assert all(e.share_percentage == 0.0 for e in result.entries)
    assert all(e.completion_rate == 0.0 for e in result.entries)
    assert set(result.top_shares.values()) == {0.0}
    assert not any(e.is_others for e in result.entries)


def test_completion_rate_per_entry() -> None:
    result = analyze_concentration([_metrics("V1", 200.0, paid=150.0)])

    assert result.entries[0].completion_rate == pytest.approx(75.0)
    assert result.entries[0].paid == pytest.approx(150.0)


def test_spend_shares() -> None:
    shares = spend_shares([_metrics("V1", 30.0), _metrics("V2", 10.0)])

    assert shares == {"V1": pytest.approx(75.0), "V2": pytest.approx(25.0)}
