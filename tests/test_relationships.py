from datetime import date

import pytest

from smb_ledgersight.reconcile import reconcile_bill
from smb_ledgersight.records import Bill
from smb_ledgersight.relationships import (
    operational_benchmarks,
    operational_metrics,
    relationship_matrix,
    relationship_strength,
    rollup_by_group,
)
from smb_ledgersight.scoring import CounterpartyMetrics
from smb_ledgersight.trends import CounterpartyTrend


def _metrics(cp_id: str, billed: float, **kwargs) -> CounterpartyMetrics:
    values = {
        "counterparty_id": cp_id,
        "counterparty_name": f"Vendor {cp_id}",
        "total_bills": 1,
        "overdue_bills": 0,
        "paid_bills": 0,
        "total_billed": billed,
        "total_paid": 0.0,
        "outstanding_amount": billed,
        "overdue_rate": 0.0,
        "completion_rate": 0.0,
        "avg_payment_days": 0.0,
        "reliability": 0.0,
        "settlement_days": (),
    }
    values.update(kwargs)
    return CounterpartyMetrics(**values)


def _trend(cp_id: str, days_since_bill=None, recent_bills=0, performance=0):
    return CounterpartyTrend(
        counterparty_id=cp_id,
        counterparty_name=f"Vendor {cp_id}",
        recent_avg_days=0.0,
        historical_avg_days=0.0,
        trend_diff=0.0,
        classification="Stable",
        paid_bill_count=0,
        days_since_last_bill=days_since_bill,
        days_since_last_payment=None,
        activity_status="Recent",
        recent_bill_count=recent_bills,
        recent_performance=performance,
    )


@pytest.mark.parametrize(
    "args, expected",
    [
        ((24, 0, 6, 0.0), 100.0),
        ((0, None, 0, 300.0), 0.0),
        ((12, 10, 3, 20.0), 97.0),
        ((2, 100, 0, 0.0), 45.0),
    ],
)
def test_relationship_strength_components(args, expected) -> None:
    """Each component is capped; an unknown last bill gives no recency points."""
    assert relationship_strength(*args) == pytest.approx(expected)


def test_relationship_matrix_filters_and_orders() -> None:
    metrics = [
        _metrics("B", 3000.0, total_bills=2),
        _metrics("A", 6000.0, total_bills=12, avg_payment_days=20.0),
        _metrics("C", 500.0, total_bills=10),
        _metrics("D", 2000.0, avg_payment_days=300.0),
    ]
    trends = [_trend("A", 10, recent_bills=3), _trend("B", 100), _trend("C", 1)]

    entries = relationship_matrix(metrics, trends)

    # C has too little spend, D (no trend, slow payments) too weak a relationship.
    assert [e.counterparty_id for e in entries] == ["A", "B"]
    a = entries[0]
    assert a.relationship_strength == pytest.approx(97.0)
    assert a.dependency_risk == pytest.approx(6000 / 11500 * 100 + 0.6 + 0.6)
    assert a.interaction_frequency == pytest.approx(1.0)
    assert a.recent_bills == 3


def test_relationship_matrix_limit() -> None:
    metrics = [_metrics(f"V{i}", 5000.0, total_bills=6) for i in range(5)]
    trends = [_trend(f"V{i}", 5) for i in range(5)]

    assert len(relationship_matrix(metrics, trends, limit=3)) == 3


def test_operational_metrics() -> None:
    metrics = [
        _metrics("M2", 100.0, total_bills=4, paid_bills=1),
        _metrics(
            "M1",
            100.0,
            total_bills=10,
            paid_bills=8,
            avg_payment_days=20.0,
            settlement_days=(10, 30),
        ),
        _metrics("M3", 100.0, total_bills=3),
    ]
    trends = [_trend("M1", performance=2)]

    results = operational_metrics(metrics, trends)

    # M3 has no paid bill.
    assert [r.counterparty_id for r in results] == ["M1", "M2"]
    m1, m2 = results
    assert m1.response_time == pytest.approx(20.0)
    assert m1.service_level == pytest.approx(80.0)
    assert m1.process_efficiency == pytest.approx(100.0)
    assert m1.reliability == pytest.approx(90.0)
    assert m1.operational_score == pytest.approx(88.0)
    # Without timed payments the response time defaults to 45 days.
    assert m2.response_time == pytest.approx(45.0)
    assert m2.reliability == pytest.approx(88.0)
    assert m2.operational_score == pytest.approx(66.1)

    benchmarks = {b.subject: b for b in operational_benchmarks(results)}
    assert benchmarks["Response Time"].top_performer == pytest.approx(80.0)
    assert benchmarks["Response Time"].average == pytest.approx(67.5)
    assert benchmarks["Service Level"].average == pytest.approx(52.5)
    assert benchmarks["Overall Score"].top_performer == pytest.approx(88.0)


def test_operational_benchmarks_empty() -> None:
    assert operational_benchmarks([]) == []


def test_rollup_without_group_key_is_empty() -> None:
    bill = Bill(
        bill_id="B1",
        counterparty_id="C1",
        counterparty_name="Customer C1",
        bill_date=date(2025, 6, 1),
        billed_amount=100.0,
        reported_outstanding=100.0,
        status="Open",
    )

    assert rollup_by_group([reconcile_bill(bill, [])], date(2025, 6, 30), (30, 60)) == []


def test_rollup_by_group_counts_counterparties() -> None:
    def _bill(bill_id, cp_id, group, billed):
        return reconcile_bill(
            Bill(
                bill_id=bill_id,
                counterparty_id=cp_id,
                counterparty_name=f"Customer {cp_id}",
                bill_date=date(2025, 6, 10),
                billed_amount=billed,
                reported_outstanding=billed,
                status="Open",
                group=group,
            ),
            [],
        )

    rollups = rollup_by_group(
        [
            _bill("B1", "C1", "East", 100.0),
            _bill("B2", "C2", "East", 300.0),
            _bill("B3", "C3", "West", 1000.0),
            _bill("B4", "C4", "East", 0.0),
        ],
        date(2025, 6, 30),
        (30, 60),
    )

    assert [r.group for r in rollups] == ["West", "East"]
    east = rollups[1]
    assert east.counterparty_count == 3
    assert east.counterparties_with_balance == 2
    assert east.outstanding_bills == 2
    assert east.buckets["0-30"] == pytest.approx(400.0)
    assert east.avg_balance_per_counterparty == pytest.approx(200.0)
