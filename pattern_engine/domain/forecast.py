"""Cash flow forecasting - day-by-day balance projection"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Set, Union

from pattern_engine.domain.exceptions import InvalidConfigurationError
from pattern_engine.domain.models import (
    DailySpendingRate,
    Forecast,
    ForecastAlert,
    ForecastDay,
    RecurringItem,
    Transaction,
)
from pattern_engine.domain.spending_patterns import PatternSpendingRate
from pattern_engine.utils.date_utils import generate_date_range

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 30
DEFAULT_LOW_BALANCE_THRESHOLD = 100.0
DEFAULT_SPENDING_WINDOW_DAYS = 30
WEEKEND_MULTIPLIER = 1.3

SpendingRate = Union[float, DailySpendingRate, PatternSpendingRate]


def calculate_daily_spending_rate(
    transactions: List[Transaction],
    recurring_items: List[RecurringItem],
    today: date,
    window_days: int = DEFAULT_SPENDING_WINDOW_DAYS,
    weekend_multiplier: float = WEEKEND_MULTIPLIER,
) -> DailySpendingRate:
    """
    Average daily discretionary spending over a trailing window.

    Sums expense transactions in (today - window_days, today] that are not
    recurring and not excluded from budget, divided by the elapsed days:
    the window, or the shorter span since the first transaction (minimum 1).
    Weekend days are projected at `weekend_multiplier` times the rate.
    """
    recurring_keys = {item.merchant_key for item in recurring_items}
    window_start = today - timedelta(days=window_days)

    discretionary = [
        t for t in transactions
        if t.is_expense
        and not t.excluded_from_budget
        and t.merchant_key not in recurring_keys
        and window_start < t.date <= today
    ]
    total = sum(t.amount for t in discretionary)

    elapsed = window_days
    if transactions:
        history_span = (today - min(t.date for t in transactions)).days
        elapsed = min(window_days, history_span)
    elapsed = max(elapsed, 1)

    return DailySpendingRate(weekday_rate=round(total / elapsed, 2), weekend_multiplier=weekend_multiplier)


def forecast_confidence(recurring_items: List[RecurringItem], history_days: int) -> str:
    """
    Weighted-majority rating over the recurring items' own confidence.

    - low: fewer than 2 items, under 30% high-confidence, or under 30 days of history
    - high: more than half high-confidence and at least 90 days of history
    - medium: everything else
    """
    if len(recurring_items) < 2 or history_days < 30:
        return "low"

    high_ratio = sum(1 for i in recurring_items if i.confidence_level == "high") / len(recurring_items)
    if high_ratio < 0.3:
        return "low"
    if high_ratio > 0.5 and history_days >= 90:
        return "high"
    return "medium"


def generate_forecast(
    current_balance: float,
    recurring_items: List[RecurringItem],
    daily_spending_rate: SpendingRate,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    low_balance_threshold: float = DEFAULT_LOW_BALANCE_THRESHOLD,
    *,
    today: date,
    history_start: Optional[date] = None,
    large_expense_fraction: Optional[float] = None,
) -> Forecast:
    """
    Project the balance for days 1..horizon_days after `today`.

    Each day subtracts discretionary spending (weekend-adjusted when a
    DailySpendingRate is given, pattern-blended for a PatternSpendingRate,
    flat for a plain float), then applies every recurring item due that day
    and advances its next date by the item's interval. The caller's items
    are never mutated. Confidence is rated over the items that occur at
    least once within the horizon.

    Alerts:
    - low_balance (warning): first day 0 <= balance < threshold
    - negative_balance (critical): first day balance < 0
    - large_expense (warning): an expense occurrence above
      large_expense_fraction * current_balance (when the fraction is set)
    - missed_income (warning): an income item whose expected date already passed

    Raises:
        InvalidConfigurationError: horizon_days < 1
    """
    if horizon_days < 1:
        raise InvalidConfigurationError(f"horizon_days must be at least 1, got {horizon_days}")

    end_date = today + timedelta(days=horizon_days)
    alerts: List[ForecastAlert] = []

    # Local working copy of each item's next occurrence
    next_dates: Dict[int, date] = {}
    for index, item in enumerate(recurring_items):
        next_date = item.next_expected_date
        if item.is_income and next_date < today:
            alerts.append(
                ForecastAlert(
                    alert_type="missed_income",
                    date=next_date,
                    message=f"Expected income from {item.display_name} (${item.average_amount:.2f}) has not arrived",
                    severity="warning",
                    amount=item.average_amount,
                )
            )
        while next_date <= today:
            next_date += timedelta(days=item.interval_days)
        next_dates[index] = next_date

    large_expense_limit = None
    if large_expense_fraction is not None and current_balance > 0:
        large_expense_limit = large_expense_fraction * current_balance

    balance = current_balance
    total_income = 0.0
    total_expenses = 0.0
    total_discretionary = 0.0
    daily: List[ForecastDay] = []
    applied: Set[int] = set()
    low_alerted = False
    negative_alerted = False

    for day in generate_date_range(today + timedelta(days=1), end_date):
        discretionary = _spending_for(daily_spending_rate, day)
        balance -= discretionary
        total_discretionary += discretionary

        day_income = 0.0
        day_expenses = 0.0
        for index, item in enumerate(recurring_items):
            if next_dates[index] != day:
                continue
            applied.add(index)
            amount = item.average_amount
            if item.is_income:
                balance += amount
                day_income += amount
            else:
                balance -= amount
                day_expenses += amount
                if large_expense_limit is not None and amount > large_expense_limit:
                    alerts.append(
                        ForecastAlert(
                            alert_type="large_expense",
                            date=day,
                            message=f"{item.display_name} (${amount:.2f}) coming up on {_format_day(day)}",
                            severity="warning",
                            amount=amount,
                        )
                    )
            next_dates[index] = day + timedelta(days=item.interval_days)

        total_income += day_income
        total_expenses += day_expenses

        is_negative = balance < 0
        is_low = 0 <= balance < low_balance_threshold

        if is_low and not low_alerted:
            low_alerted = True
            alerts.append(
                ForecastAlert(
                    alert_type="low_balance",
                    date=day,
                    message=f"Balance projected to drop to ${balance:.2f} on {_format_day(day)}",
                    severity="warning",
                    amount=round(balance, 2),
                )
            )
        if is_negative and not negative_alerted:
            negative_alerted = True
            alerts.append(
                ForecastAlert(
                    alert_type="negative_balance",
                    date=day,
                    message=f"Projected negative balance of ${abs(balance):.2f} on {_format_day(day)}",
                    severity="critical",
                    amount=round(balance, 2),
                )
            )

        daily.append(
            ForecastDay(
                date=day,
                projected_balance=round(balance, 2),
                is_low_balance=is_low,
                is_negative=is_negative,
                income=round(day_income, 2),
                expenses=round(day_expenses + discretionary, 2),
                discretionary=round(discretionary, 2),
            )
        )

    lowest = min(daily, key=lambda d: d.projected_balance)
    highest = max(daily, key=lambda d: d.projected_balance)
    history_days = (today - history_start).days if history_start is not None else 0
    contributing = [item for index, item in enumerate(recurring_items) if index in applied]

    forecast = Forecast(
        start_date=today,
        end_date=end_date,
        current_balance=current_balance,
        projected_end_balance=daily[-1].projected_balance,
        lowest_balance=lowest.projected_balance,
        lowest_balance_date=lowest.date,
        highest_balance=highest.projected_balance,
        highest_balance_date=highest.date,
        total_income=round(total_income, 2),
        total_expenses=round(total_expenses, 2),
        total_discretionary=round(total_discretionary, 2),
        net_cash_flow=round(total_income - total_expenses, 2),
        daily_forecasts=daily,
        alerts=alerts,
        confidence=forecast_confidence(contributing, history_days),
    )
    logger.debug(
        "Forecast %s..%s: end %.2f, lowest %.2f, %d alerts",
        today, end_date, forecast.projected_end_balance, forecast.lowest_balance, len(alerts),
    )
    return forecast


def summarize_forecast(forecast: Forecast) -> str:
    """One-line human summary of a forecast"""
    days = len(forecast.daily_forecasts)
    if forecast.lowest_balance < 0:
        return (
            f"Warning: Your balance may go negative around {forecast.lowest_balance_date.isoformat()}. "
            f"Consider adjusting spending."
        )

    change = forecast.projected_end_balance - forecast.current_balance
    direction = "increase" if change >= 0 else "decrease"
    if forecast.current_balance == 0:
        return f"Your balance is projected to {direction} by ${abs(change):.2f} over the next {days} days."

    percent = abs(change / forecast.current_balance * 100)
    return (
        f"Your balance is projected to {direction} by ${abs(change):.2f} ({percent:.1f}%) "
        f"over the next {days} days."
    )


def _spending_for(rate: SpendingRate, day: date) -> float:
    if isinstance(rate, (DailySpendingRate, PatternSpendingRate)):
        return rate.amount_for(day)
    return float(rate)


def _format_day(day: date) -> str:
    # e.g. "Mon Jan 5"
    return f"{day.strftime('%a %b')} {day.day}"
