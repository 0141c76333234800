"""Prediction accuracy tracking - snapshots, reconciliation and error metrics"""

import math
from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple, Union

from pattern_engine.domain.models import (
    AccuracyMetrics,
    Forecast,
    InsufficientData,
    PredictionSnapshot,
    Transaction,
)

CONFIDENCE_SCORES = {"high": 0.8, "medium": 0.5, "low": 0.3}
DEFAULT_ACCURACY_WINDOW_DAYS = 30
MIN_RECONCILED_SNAPSHOTS = 3


def build_snapshots(forecast: Forecast, max_days: Optional[int] = None) -> List[PredictionSnapshot]:
    """One snapshot per projected day (optionally only the first `max_days`)"""
    days = forecast.daily_forecasts if max_days is None else forecast.daily_forecasts[:max_days]
    confidence = CONFIDENCE_SCORES.get(forecast.confidence, CONFIDENCE_SCORES["medium"])
    return [
        PredictionSnapshot(
            date=day.date,
            predicted_balance=day.projected_balance,
            predicted_income=day.income,
            predicted_expenses=day.expenses,
            confidence=confidence,
        )
        for day in days
    ]


def daily_actuals(transactions: List[Transaction]) -> Dict[date, Tuple[float, float]]:
    """Observed (income, expenses) per date"""
    totals: Dict[date, Tuple[float, float]] = {}
    for txn in transactions:
        if txn.excluded_from_budget:
            continue
        income, expenses = totals.get(txn.date, (0.0, 0.0))
        if txn.is_inflow:
            income += abs(txn.amount)
        else:
            expenses += txn.amount
        totals[txn.date] = (income, expenses)
    return totals


def reconcile_snapshots(
    snapshots: List[PredictionSnapshot],
    transactions: List[Transaction],
    current_balance: float,
    today: date,
) -> List[PredictionSnapshot]:
    """
    Fill in actuals for unreconciled snapshots dated before today.

    The actual end-of-day balance for date D is estimated by walking back
    from the current balance: current + expenses - income over every real
    transaction dated after D up to and including today.

    Returns a new list in input order; snapshots that are already reconciled,
    or dated today or later, pass through unchanged.
    """
    actuals = daily_actuals(transactions)
    flow_dates = sorted(d for d in actuals if d <= today)

    reconciled = []
    for snapshot in snapshots:
        if snapshot.is_reconciled or snapshot.date >= today:
            reconciled.append(snapshot)
            continue

        actual_balance = current_balance
        for flow_date in flow_dates:
            if flow_date > snapshot.date:
                income, expenses = actuals[flow_date]
                actual_balance += expenses - income

        actual_income, actual_expenses = actuals.get(snapshot.date, (0.0, 0.0))
        variance = actual_balance - snapshot.predicted_balance
        variance_percent = (
            variance / abs(snapshot.predicted_balance) * 100
            if snapshot.predicted_balance != 0
            else 0.0
        )

        reconciled.append(
            replace(
                snapshot,
                actual_balance=round(actual_balance, 2),
                actual_income=round(actual_income, 2),
                actual_expenses=round(actual_expenses, 2),
                variance_amount=round(variance, 2),
                variance_percent=round(variance_percent, 4),
            )
        )
    return reconciled


def calculate_accuracy_metrics(
    snapshots: List[PredictionSnapshot],
    today: date,
    window_days: int = DEFAULT_ACCURACY_WINDOW_DAYS,
    min_snapshots: int = MIN_RECONCILED_SNAPSHOTS,
) -> Union[AccuracyMetrics, InsufficientData]:
    """
    Aggregate error over reconciled snapshots in the trailing window.

    - MAE: mean |variance|
    - MPE: mean |variance %|
    - RMSE: sqrt(mean(variance^2))
    - direction accuracy: share of consecutive-day pairs whose predicted and
      actual balance deltas have the same sign (zero counts as non-negative)
    """
    period_start = today - timedelta(days=window_days)
    window = sorted(
        (s for s in snapshots if s.is_reconciled and period_start <= s.date <= today),
        key=lambda s: s.date,
    )
    if len(window) < min_snapshots:
        return InsufficientData(
            reason="Not enough reconciled predictions for accuracy metrics",
            required=min_snapshots,
            current=len(window),
        )

    variances = [s.variance_amount or 0.0 for s in window]
    percents = [abs(s.variance_percent or 0.0) for s in window]

    mae = sum(abs(v) for v in variances) / len(variances)
    mpe = sum(percents) / len(percents)
    rmse = math.sqrt(sum(v * v for v in variances) / len(variances))

    correct = 0
    for previous, current in zip(window, window[1:]):
        predicted_change = current.predicted_balance - previous.predicted_balance
        actual_change = current.actual_balance - previous.actual_balance
        if (predicted_change >= 0) == (actual_change >= 0):
            correct += 1
    direction_accuracy = correct / (len(window) - 1) if len(window) > 1 else 0.0

    return AccuracyMetrics(
        period_start=period_start,
        period_end=today,
        mean_absolute_error=round(mae, 2),
        mean_percentage_error=round(mpe, 4),
        root_mean_square_error=round(rmse, 2),
        direction_accuracy=round(direction_accuracy, 4),
        predictions_count=len(window),
    )
