from datetime import date, datetime, timedelta

import pytest

from smb_ledgersight.aging import (
    age_counterparties,
    assign_bucket,
    bucket_labels,
    classify_risk,
    risk_distribution,
    summarize_portfolio,
    validate_bounds,
)
from smb_ledgersight.reconcile import reconcile_bill
from smb_ledgersight.records import Bill, Payment

REFERENCE = date(2025, 6, 30)
CUSTOMER_BOUNDS = (30, 60, 90, 180)


def _rb(
    bill_id: str,
    age_days,
    billed: float = 100.0,
    paid: float = 0.0,
    cp_id: str = "C1",
    status: str = "Open",
    reported=None,
):
    bill_date = None if age_days is None else REFERENCE - timedelta(days=age_days)
    payments = []
    if paid:
        payments.append(Payment(bill_id, paid, datetime(2025, 6, 1)))
    bill = Bill(
        bill_id=bill_id,
        counterparty_id=cp_id,
        counterparty_name=f"Customer {cp_id}",
        bill_date=bill_date,
        billed_amount=billed,
        reported_outstanding=billed - paid if reported is None else reported,
        status=status,
    )
    return reconcile_bill(bill, payments)


def test_bucket_labels() -> None:
    assert bucket_labels((30, 60, 90)) == ["0-30", "31-60", "61-90", ">90"]
    assert bucket_labels(CUSTOMER_BOUNDS)[-2:] == ["91-180", ">180"]


@pytest.mark.parametrize(
    "age, expected",
    [(-3, 0), (0, 0), (30, 0), (31, 1), (60, 1), (61, 2), (90, 2), (91, 3), (180, 3), (181, 4)],
)
def test_assign_bucket_edges(age, expected) -> None:
    """Bucket bounds are inclusive upper edges."""
    assert assign_bucket(age, CUSTOMER_BOUNDS) == expected


@pytest.mark.parametrize("bounds", [[], [60, 30], [30, 30, 60], [0, 30], [-5, 30]])
def test_validate_bounds_rejects_invalid(bounds) -> None:
    with pytest.raises(ValueError):
        validate_bounds(bounds)


def test_bill_aged_45_days_lands_in_31_60() -> None:
    summaries = age_counterparties([_rb("B1", 45, billed=250.0)], REFERENCE, CUSTOMER_BOUNDS)

    assert len(summaries) == 1
    assert summaries[0].buckets["31-60"] == pytest.approx(250.0)
    assert summaries[0].bucket_counts["31-60"] == 1
    assert summaries[0].total_outstanding == pytest.approx(250.0)


def test_bucket_sum_equals_total_outstanding() -> None:
    bills = [
        _rb("B1", 5, billed=100.0, paid=40.0),
        _rb("B2", 45, billed=1234.56),
        _rb("B3", 75, billed=99.99),
        _rb("B4", 120, billed=10.01),
        _rb("B5", 400, billed=5000.0, paid=1000.0),
        _rb("B6", 20, billed=80.0, cp_id="C2"),
        _rb("B7", 200, billed=80.0, cp_id="C2", paid=80.0),
    ]

    for summary in age_counterparties(bills, REFERENCE, CUSTOMER_BOUNDS):
        assert sum(summary.buckets.values()) == pytest.approx(
            summary.total_outstanding, abs=0.01
        )


def test_settled_and_undated_bills_are_excluded_from_buckets() -> None:
    """Zero balances and undated balances never enter a bucket."""
    summaries = age_counterparties(
        [
            _rb("B1", 10, billed=100.0, paid=100.0),
            _rb("B2", None, billed=70.0),
            _rb("B3", 15, billed=30.0, status="Overdue"),
        ],
        REFERENCE,
        CUSTOMER_BOUNDS,
    )

    summary = summaries[0]
    assert summary.total_bills == 3
    assert summary.overdue_bills == 1
    assert summary.total_outstanding == pytest.approx(30.0)
    assert summary.undated_outstanding == pytest.approx(70.0)
    assert sum(summary.bucket_counts.values()) == 1
    assert summary.last_bill_date == REFERENCE - timedelta(days=10)
    assert summary.avg_bill_age == pytest.approx(12.5)


def test_reported_balance_source() -> None:
    """Receivables without payments can be aged on the reported balance."""
    bills = [_rb("B1", 45, billed=500.0, reported=200.0)]

    reconciled = age_counterparties(bills, REFERENCE, CUSTOMER_BOUNDS)
    reported = age_counterparties(
        bills, REFERENCE, CUSTOMER_BOUNDS, balance_source="reported"
    )

    assert reconciled[0].total_outstanding == pytest.approx(500.0)
    assert reported[0].total_outstanding == pytest.approx(200.0)


def test_summaries_sorted_by_outstanding_then_id() -> None:
    bills = [
        _rb("B1", 10, billed=50.0, cp_id="C3"),
        _rb("B2", 10, billed=500.0, cp_id="C2"),
        _rb("B3", 10, billed=50.0, cp_id="C1"),
    ]

    ids = [s.counterparty_id for s in age_counterparties(bills, REFERENCE, CUSTOMER_BOUNDS)]

    assert ids == ["C2", "C1", "C3"]


@pytest.mark.parametrize(
    "share, overdue_rate, expected",
    [
        (75.0, 0.0, "Critical"),
        (0.0, 85.0, "Critical"),
        (45.0, 0.0, "High"),
        (0.0, 55.0, "High"),
        (25.0, 0.0, "Medium"),
        (0.0, 35.0, "Medium"),
        (20.0, 30.0, "Low"),
    ],
)
def test_classify_risk(share, overdue_rate, expected) -> None:
    assert classify_risk(share, overdue_rate) == expected


def test_risk_category_from_old_balances() -> None:
    summaries = age_counterparties(
        [_rb("B1", 200, billed=900.0), _rb("B2", 10, billed=100.0)],
        REFERENCE,
        CUSTOMER_BOUNDS,
    )

    assert summaries[0].risk_category == "Critical"


def test_portfolio_percentages_sum_to_100() -> None:
    summaries = age_counterparties(
        [
            _rb("B1", 10, billed=100.0, cp_id="C1"),
            _rb("B2", 70, billed=300.0, cp_id="C2"),
            _rb("B3", None, billed=50.0, cp_id="C2"),
        ],
        REFERENCE,
        CUSTOMER_BOUNDS,
    )

    portfolio = summarize_portfolio(summaries, CUSTOMER_BOUNDS)

    assert portfolio.total_outstanding == pytest.approx(400.0)
    assert portfolio.undated_outstanding == pytest.approx(50.0)
    assert portfolio.bucket_percentages["0-30"] == pytest.approx(25.0)
    assert portfolio.bucket_percentages["61-90"] == pytest.approx(75.0)
    assert sum(portfolio.bucket_percentages.values()) == pytest.approx(100.0)
    assert portfolio.counterparty_count == 2


def test_portfolio_of_nothing_has_zero_percentages() -> None:
    portfolio = summarize_portfolio([], (30, 60, 90))

    assert portfolio.total_outstanding == 0.0
    assert set(portfolio.bucket_percentages.values()) == {0.0}


def test_risk_distribution_places_each_counterparty_once() -> None:
    """A counterparty is categorized by its oldest bucketed balance."""
    summaries = age_counterparties(
        [
            _rb("B1", 10, cp_id="C1"),
            _rb("B2", 10, cp_id="C2"),
            _rb("B3", 250, cp_id="C2"),
            _rb("B4", 45, cp_id="C3"),
            _rb("B5", 5, cp_id="C4", paid=100.0),
        ],
        REFERENCE,
        CUSTOMER_BOUNDS,
    )

    distribution = {e.category: e for e in risk_distribution(summaries)}

    assert list(distribution) == ["Current", "Low Risk", "Very High Risk"]
    assert distribution["Current"].counterparty_count == 1
    assert distribution["Very High Risk"].total_outstanding == pytest.approx(200.0)
    assert sum(e.counterparty_count for e in distribution.values()) == 3


def test_undated_bill_is_aged_on_reported_age() -> None:
    """Without a bill date, the reported age in days places the balance."""
    bill = Bill(
        bill_id="B1",
        counterparty_id="C1",
        counterparty_name="Customer C1",
        bill_date=None,
        billed_amount=200.0,
        reported_outstanding=200.0,
        status="Open",
        age_in_days=45,
    )
    summary = age_counterparties(
        [reconcile_bill(bill, []), _rb("B2", None, billed=70.0)],
        REFERENCE,
        CUSTOMER_BOUNDS,
    )[0]

    assert summary.buckets["31-60"] == pytest.approx(200.0)
    assert summary.total_outstanding == pytest.approx(200.0)
    assert summary.undated_outstanding == pytest.approx(70.0)
    assert summary.avg_bill_age == pytest.approx(45.0)


def test_counterparty_outstanding_includes_undated_balance() -> None:
    """Bucketed plus undated balance equals the reconciled outstanding amount."""
    bills = [_rb("B1", 10, billed=1000.0), _rb("B2", None, billed=500.0)]

    summary = age_counterparties(bills, REFERENCE, CUSTOMER_BOUNDS)[0]

    assert summary.total_outstanding == pytest.approx(1000.0)
    assert summary.undated_outstanding == pytest.approx(500.0)
    assert summary.counterparty_outstanding == pytest.approx(
        sum(b.outstanding_amount for b in bills)
    )
