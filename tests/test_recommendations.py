from dataclasses import fields

import pytest

from smb_ledgersight.recommendations import (
    RecommendationRules,
    coefficient_of_variation,
    generate_recommendations,
    portfolio_avg_payment_days,
)
from smb_ledgersight.scoring import CounterpartyMetrics
from smb_ledgersight.trends import CounterpartyTrend


def _metrics(cp_id: str, billed: float = 100.0, **kwargs) -> CounterpartyMetrics:
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


def _trend(cp_id: str, days_since) -> CounterpartyTrend:
    return CounterpartyTrend(
        counterparty_id=cp_id,
        counterparty_name=f"Vendor {cp_id}",
        recent_avg_days=0.0,
        historical_avg_days=0.0,
        trend_diff=0.0,
        classification="Stable",
        paid_bill_count=0,
        days_since_last_bill=days_since,
        days_since_last_payment=None,
        activity_status="Recent",
    )


def _only(rule: str) -> RecommendationRules:
    return RecommendationRules(
        **{f.name: f.name == rule for f in fields(RecommendationRules)}
    )


def _active(*metrics: CounterpartyMetrics) -> list[CounterpartyTrend]:
    return [_trend(m.counterparty_id, 1) for m in metrics]


def test_coefficient_of_variation() -> None:
    assert coefficient_of_variation([]) == 0.0
    assert coefficient_of_variation([10]) == 0.0
    assert coefficient_of_variation([10, 10, 10]) == 0.0
    assert coefficient_of_variation([10, 30]) == pytest.approx(0.5)


def test_high_overdue_rule_requires_enough_bills() -> None:
    metrics = [
        _metrics("V1", total_bills=6, overdue_rate=40.0),
        _metrics("V2", total_bills=4, overdue_rate=90.0),
    ]

    report = generate_recommendations(
        metrics, _active(*metrics), rules=_only("high_overdue")
    )

    (rec,) = report.recommendations
    assert rec.priority == "Critical"
    assert rec.category == "Risk Management"
    assert rec.affected_counterparties == ["Vendor V1"]
    assert rec.impact.cost_savings == pytest.approx(5.0)


@pytest.mark.parametrize("share_billed, priority", [(60.0, "High"), (20.0, "Medium")])
def test_concentration_rule_priority(share_billed, priority) -> None:
    rest = (100.0 - share_billed) / 10
    metrics = [_metrics("V1", billed=share_billed)]
    metrics += [_metrics(f"X{i}", billed=rest) for i in range(10)]

    report = generate_recommendations(
        metrics, _active(*metrics), rules=_only("concentration"), noun="Customer"
    )

    (rec,) = report.recommendations
    assert rec.title == "Diversify Customer Portfolio"
    assert rec.priority == priority


def test_early_payment_rule() -> None:
    metrics = [
        _metrics("V1", avg_payment_days=50.0, overdue_rate=5.0),
        _metrics("V2", avg_payment_days=50.0, overdue_rate=20.0),
        _metrics("V3", avg_payment_days=30.0),
    ]

    report = generate_recommendations(
        metrics, _active(*metrics), rules=_only("early_payment")
    )

    (rec,) = report.recommendations
    assert rec.category == "Cost Reduction"
    assert rec.affected_counterparties == ["Vendor V1"]
    assert rec.impact.cost_savings == pytest.approx(2.0)


def test_inconsistent_timing_rule() -> None:
    metrics = [
        _metrics("V1", total_bills=5, settlement_days=(2, 60, 5, 90, 10)),
        _metrics("V2", total_bills=5, settlement_days=(20, 21, 19, 20, 20)),
        _metrics("V3", total_bills=3, settlement_days=(1, 90, 2)),
    ]

    report = generate_recommendations(
        metrics, _active(*metrics), rules=_only("inconsistent_timing")
    )

    (rec,) = report.recommendations
    assert rec.category == "Process Improvement"
    assert rec.affected_counterparties == ["Vendor V1"]


def test_inactive_rule() -> None:
    """Inactive: no bill or payment in the trailing 30 days, or none at all."""
    metrics = [_metrics("V1"), _metrics("V2"), _metrics("V3")]
    trends = [_trend("V1", 45), _trend("V2", 30)]

    report = generate_recommendations(metrics, trends, rules=_only("inactive"))

    (rec,) = report.recommendations
    assert rec.priority == "Low"
    assert rec.affected_counterparties == ["Vendor V1", "Vendor V3"]


def test_high_performer_rule() -> None:
    metrics = [
        _metrics("V1", billed=500.0, overdue_rate=0.0),
        _metrics("V2", billed=400.0, overdue_rate=20.0),
        _metrics("V3", billed=10.0, overdue_rate=0.0),
    ]

    report = generate_recommendations(
        metrics, _active(*metrics), rules=_only("high_performer")
    )

    (rec,) = report.recommendations
    assert rec.category == "Relationship Enhancement"
    assert rec.affected_counterparties == ["Vendor V1"]
    assert rec.impact.cost_savings == pytest.approx(35.0)


@pytest.mark.parametrize("days, priority", [(70.0, "High"), (50.0, "Medium")])
def test_portfolio_payment_cycle_rule(days, priority) -> None:
    metrics = [
        _metrics("V1", billed=1000.0, avg_payment_days=days, settlement_days=(int(days),)),
        _metrics("V2", billed=1000.0, avg_payment_days=days, settlement_days=(int(days),)),
    ]

    report = generate_recommendations(
        metrics, _active(*metrics), rules=_only("portfolio_payment_cycle")
    )

    (rec,) = report.recommendations
    assert rec.priority == priority
    assert rec.affected_counterparties == ["All Vendors"]
    assert rec.impact.cost_savings == pytest.approx(20.0)
    assert report.portfolio_avg_payment_days == pytest.approx(days)


def test_portfolio_average_ignores_untimed_counterparties() -> None:
    metrics = [
        _metrics("V1", avg_payment_days=30.0, settlement_days=(30,)),
        _metrics("V2"),
    ]

    assert portfolio_avg_payment_days(metrics) == pytest.approx(30.0)


def test_disabled_rules_produce_nothing() -> None:
    metrics = [_metrics("V1", total_bills=10, overdue_rate=90.0)]
    rules = RecommendationRules(**{f.name: False for f in fields(RecommendationRules)})

    report = generate_recommendations(metrics, [], rules=rules)

    assert report.recommendations == []
    assert report.category_breakdown == {}


def test_report_breakdown_and_insights() -> None:
    metrics = [
        _metrics("V1", billed=800.0, total_bills=6, overdue_rate=50.0),
        _metrics("V2", billed=200.0),
    ]

    report = generate_recommendations(metrics, _active(*metrics))

    assert report.total_spend == pytest.approx(1000.0)
    assert report.counterparty_count == 2
    assert sum(report.category_breakdown.values()) == len(report.recommendations)
    assert report.category_breakdown["Risk Management"] == 2
    assert report.key_insights[0] == "2 vendors analyzed with 1,000 total spend"
    assert len(report.key_insights) == 4
