"""Unit tests for prediction snapshots, reconciliation and accuracy metrics"""

import pytest
from datetime import timedelta
from pattern_engine.domain.accuracy import (
    build_snapshots,
    calculate_accuracy_metrics,
    daily_actuals,
    reconcile_snapshots,
)
from pattern_engine.domain.forecast import generate_forecast
from pattern_engine.domain.models import AccuracyMetrics, InsufficientData, PredictionSnapshot


def reconciled(day, predicted: float, actual: float) -> PredictionSnapshot:
    variance = actual - predicted
    return PredictionSnapshot(
        date=day,
        predicted_balance=predicted,
        predicted_income=0.0,
        predicted_expenses=0.0,
        confidence=0.5,
        actual_balance=actual,
        variance_amount=variance,
        variance_percent=variance / abs(predicted) * 100 if predicted else 0.0,
    )


def test_accuracy_metrics_example(today):
    """Predicted [100, 90, 80] vs actual [100, 95, 70]"""
    snapshots = [
        reconciled(today - timedelta(days=3), 100.0, 100.0),
        reconciled(today - timedelta(days=2), 90.0, 95.0),
        reconciled(today - timedelta(days=1), 80.0, 70.0),
    ]

    metrics = calculate_accuracy_metrics(snapshots, today)

    assert isinstance(metrics, AccuracyMetrics)
    assert metrics.mean_absolute_error == 5.0
    assert metrics.direction_accuracy == 1.0
    assert metrics.root_mean_square_error == pytest.approx(6.45, abs=0.01)
    assert metrics.mean_percentage_error == pytest.approx((0 + 5 / 90 * 100 + 12.5) / 3, abs=0.001)
    assert metrics.predictions_count == 3
    assert metrics.period_end == today


def test_direction_mismatch(today):
    snapshots = [
        reconciled(today - timedelta(days=3), 100.0, 100.0),
        reconciled(today - timedelta(days=2), 110.0, 90.0),
        reconciled(today - timedelta(days=1), 120.0, 130.0),
    ]

    metrics = calculate_accuracy_metrics(snapshots, today)

    assert metrics.direction_accuracy == 0.5


def test_metrics_need_enough_reconciled_snapshots(today):
    snapshots = [
        reconciled(today - timedelta(days=2), 100.0, 100.0),
        reconciled(today - timedelta(days=1), 90.0, 95.0),
        PredictionSnapshot(today, 80.0, 0.0, 0.0, 0.5),
        # Outside the 30-day window
        reconciled(today - timedelta(days=45), 80.0, 70.0),
    ]

    result = calculate_accuracy_metrics(snapshots, today)

    assert isinstance(result, InsufficientData)
    assert result.required == 3
    assert result.current == 2


def test_build_snapshots_from_forecast(today):
    forecast = generate_forecast(1000.0, [], 10.0, 30, today=today)

    snapshots = build_snapshots(forecast, max_days=7)

    assert len(snapshots) == 7
    assert snapshots[0].date == today + timedelta(days=1)
    assert snapshots[0].predicted_balance == 990.0
    assert snapshots[0].predicted_expenses == 10.0
    # low forecast confidence
    assert snapshots[0].confidence == 0.3
    assert not snapshots[0].is_reconciled


def test_daily_actuals(make_transaction, today):
    transactions = [
        make_transaction(40.0, 1, "Grocery Mart"),
        make_transaction(10.0, 1, "Coffee"),
        make_transaction(-500.0, 1, "Payroll"),
        make_transaction(99.0, 1, "Reimbursed", excluded_from_budget=True),
    ]

    assert daily_actuals(transactions) == {today - timedelta(days=1): (500.0, 50.0)}


def test_reconcile_walks_back_from_current_balance(make_transaction, today):
    """Actual balance for D = current balance + expenses - income after D"""
    snapshots = [
        PredictionSnapshot(today - timedelta(days=3), 1000.0, 0.0, 0.0, 0.5),
        PredictionSnapshot(today - timedelta(days=1), 900.0, 0.0, 60.0, 0.5),
        PredictionSnapshot(today, 850.0, 0.0, 0.0, 0.5),
    ]
    transactions = [
        make_transaction(60.0, 1, "Grocery Mart"),
        make_transaction(25.0, 0, "Coffee"),
        make_transaction(-200.0, 2, "Refund"),
    ]

    result = reconcile_snapshots(snapshots, transactions, current_balance=1100.0, today=today)

    # Day -3: 1100 + 25 + 60 - 200 = 985
    assert result[0].actual_balance == 985.0
    assert result[0].variance_amount == -15.0
    assert result[0].variance_percent == -1.5
    # Day -1: 1100 + 25 = 1125
    assert result[1].actual_balance == 1125.0
    assert result[1].actual_expenses == 60.0
    assert result[1].variance_amount == 225.0
    # Today is not reconciled yet
    assert result[2] is snapshots[2]
    assert not snapshots[0].is_reconciled


def test_reconcile_zero_prediction(today):
    snapshot = PredictionSnapshot(today - timedelta(days=1), 0.0, 0.0, 0.0, 0.5)

    [result] = reconcile_snapshots([snapshot], [], current_balance=50.0, today=today)

    assert result.variance_amount == 50.0
    assert result.variance_percent == 0.0


def test_reconcile_skips_already_reconciled(today):
    done = reconciled(today - timedelta(days=1), 100.0, 90.0)

    [result] = reconcile_snapshots([done], [], current_balance=500.0, today=today)

    assert result is done
