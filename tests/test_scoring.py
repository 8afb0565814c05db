from datetime import date, datetime, timedelta

import pytest

from smb_ledgersight.reconcile import reconcile_bill
from smb_ledgersight.records import Bill, Payment
from smb_ledgersight.scoring import (
    ScoreWeights,
    composite_score,
    compute_all_metrics,
    compute_counterparty_metrics,
    reliability_score,
    score_counterparties,
    status_band,
)

BILL_DATE = date(2025, 1, 1)


def _rb(bill_id, cp_id="V1", billed=100.0, paid=0.0, lag=None, status="Open"):
    payments = []
    if paid:
        at = datetime(2025, 1, 1) + timedelta(days=lag if lag is not None else 0)
        payments.append(Payment(bill_id, paid, at if lag is not None else None))
    bill = Bill(
        bill_id=bill_id,
        counterparty_id=cp_id,
        counterparty_name=f"Vendor {cp_id}",
        bill_date=BILL_DATE,
        billed_amount=billed,
        reported_outstanding=billed - paid,
        status=status,
    )
    return reconcile_bill(bill, payments)


def test_reliability_mean_and_running_modes() -> None:
    """The running mode is order dependent, the mean mode is not."""
    assert reliability_score([10, 30, 50], "mean") == pytest.approx(70.0)
    assert reliability_score([10, 30, 50], "running") == pytest.approx(65.0)
    assert reliability_score([50, 30, 10], "running") == pytest.approx(75.0)
    assert reliability_score([], "mean") == 0.0
    assert reliability_score([150], "mean") == 0.0


def test_reliability_unknown_mode() -> None:
    with pytest.raises(ValueError):
        reliability_score([1, 2], "median")


def test_composite_score_is_clamped() -> None:
    assert composite_score(0.0, 100.0, 0.0, 100.0) == 100.0
    assert composite_score(100.0, 0.0, 500.0, 0.0) == 0.0


def test_composite_score_components() -> None:
    """base 40 + speed 10 + completion 6 + reliability 4."""
    assert composite_score(40.0, 20.0, 100.0, 20.0) == pytest.approx(60.0)


def test_composite_score_custom_weights() -> None:
    weights = ScoreWeights(
        overdue_penalty=1.0,
        speed_cap=0.0,
        completion_weight=0.0,
        reliability_weight=0.0,
    )
    assert composite_score(25.0, 100.0, 0.0, 100.0, weights) == pytest.approx(75.0)


@pytest.mark.parametrize(
    "score, expected",
    [
        (100.0, "Excellent"),
        (90.0, "Excellent"),
        (89.9, "Good"),
        (75.0, "Good"),
        (60.0, "Average"),
        (59.99, "Needs Attention"),
        (0.0, "Needs Attention"),
    ],
)
def test_status_band(score, expected) -> None:
    assert status_band(score) == expected


def test_counterparty_metrics() -> None:
    metrics = compute_counterparty_metrics(
        [
            _rb("B1", billed=100.0, paid=100.0, lag=10),
            _rb("B2", billed=100.0, paid=50.0, lag=30),
            _rb("B3", billed=200.0, status="Overdue"),
        ]
    )

    assert metrics.total_bills == 3
    assert metrics.overdue_bills == 1
    assert metrics.paid_bills == 2
    assert metrics.overdue_rate == pytest.approx(100 / 3)
    assert metrics.completion_rate == pytest.approx(37.5)
    assert metrics.avg_payment_days == pytest.approx(20.0)
    assert metrics.reliability == pytest.approx(80.0)
    assert metrics.outstanding_amount == pytest.approx(250.0)
    assert metrics.settlement_days == (10, 30)


def test_counterparty_metrics_without_bills() -> None:
    with pytest.raises(ValueError):
        compute_counterparty_metrics([])


def test_undated_payment_counts_as_paid_but_not_timed() -> None:
    metrics = compute_counterparty_metrics([_rb("B1", billed=100.0, paid=100.0)])

    assert metrics.paid_bills == 1
    assert metrics.completion_rate == pytest.approx(100.0)
    assert metrics.settlement_days == ()
    assert metrics.avg_payment_days == 0.0


def test_scorecard_excludes_immaterial_counterparties() -> None:
    """A share below the threshold is left out, but still counts in totals."""
    metrics = compute_all_metrics(
        [
            _rb("B1", cp_id="V1", billed=1000.0, paid=1000.0, lag=5),
            _rb("B2", cp_id="V2", billed=4.0),
        ]
    )

    scores = score_counterparties(metrics, materiality_threshold_pct=0.5)

    assert [s.counterparty_id for s in scores] == ["V1"]
    assert scores[0].business_share == pytest.approx(1000 / 1004 * 100)


def test_scorecard_order_and_limit() -> None:
    metrics = compute_all_metrics(
        [
            _rb("B1", cp_id="V3", billed=100.0),
            _rb("B2", cp_id="V1", billed=300.0),
            _rb("B3", cp_id="V2", billed=100.0),
        ]
    )

    ordered = score_counterparties(metrics)
    limited = score_counterparties(metrics, limit=2)

    assert [s.counterparty_id for s in ordered] == ["V1", "V2", "V3"]
    assert [s.counterparty_id for s in limited] == ["V1", "V2"]


def test_scores_always_within_range() -> None:
    bills = [
        _rb(
            f"B{i}",
            cp_id=f"V{i % 4}",
            billed=50.0 * (i + 1),
            paid=25.0 * i,
            lag=i * 9,
            status="Overdue" if i % 3 == 0 else "Open",
        )
        for i in range(12)
    ]
    metrics = compute_all_metrics(bills)

    for score in score_counterparties(metrics, materiality_threshold_pct=0):
        assert 0.0 <= score.score <= 100.0
        assert score.status_band in {"Excellent", "Good", "Average", "Needs Attention"}
