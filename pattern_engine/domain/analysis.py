"""Analysis pipeline - main entry point tying the engine components together"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Union

from pattern_engine.domain.anomalies import detect_anomalies
from pattern_engine.domain.baselines import build_merchant_baselines
from pattern_engine.domain.forecast import SpendingRate, calculate_daily_spending_rate, generate_forecast
from pattern_engine.domain.models import (
    Anomaly,
    AnomalyPreferences,
    DailySpendingRate,
    Forecast,
    InsufficientData,
    MerchantBaseline,
    RecurringConfig,
    RecurringItem,
    SpendingPatternAnalysis,
    Transaction,
)
from pattern_engine.domain.recurring import (
    default_recurring_config,
    detect_recurring_income,
    detect_recurring_items,
)
from pattern_engine.domain.spending_patterns import PatternSpendingRate, analyze_spending_patterns


@dataclass(frozen=True)
class AnalysisConfig:
    """Every tunable input of one analysis run"""

    recurring: RecurringConfig = field(default_factory=default_recurring_config)
    anomaly: AnomalyPreferences = field(default_factory=AnomalyPreferences)
    horizon_days: int = 30
    low_balance_threshold: float = 100.0
    spending_window_days: int = 30
    anomaly_lookback_days: int = 7
    min_transactions: int = 10
    large_expense_fraction: float = 0.5
    use_spending_patterns: bool = True


@dataclass
class AnalysisResult:
    """Output of a full analysis run"""

    recurring_items: List[RecurringItem]
    income_items: List[RecurringItem]
    baselines: List[MerchantBaseline]
    anomalies: List[Anomaly]
    forecast: Forecast
    spending_rate: DailySpendingRate
    spending_patterns: SpendingPatternAnalysis


def split_recent(transactions: List[Transaction], today: date, lookback_days: int):
    """Partition into (history before the lookback window, transactions inside it)"""
    cutoff = today - timedelta(days=lookback_days)
    history = [t for t in transactions if t.date <= cutoff]
    recent = [t for t in transactions if cutoff < t.date <= today]
    return history, recent


def analyze_history(
    transactions: List[Transaction],
    current_balance: float,
    *,
    today: date,
    config: AnalysisConfig,
) -> Union[AnalysisResult, InsufficientData]:
    """
    Run the full engine over one user's history.

    Flow:
    1. Drop transactions excluded from budget
    2. Detect recurring bills and income
    3. Build merchant baselines (all history for output; pre-lookback
       history for anomaly checks so new charges don't skew their own baseline)
    4. Detect anomalies in the lookback window
    5. Compute the spending rate, learn spending patterns and project the
       balance (pattern-blended unless config.use_spending_patterns is off)

    Returns InsufficientData when fewer than config.min_transactions remain.
    """
    usable = [t for t in transactions if not t.excluded_from_budget]
    if len(usable) < config.min_transactions:
        return InsufficientData(
            reason="Not enough transaction data for pattern analysis",
            required=config.min_transactions,
            current=len(usable),
        )

    recurring_items = detect_recurring_items(usable, config.recurring)
    income_items = detect_recurring_income(usable, config.recurring)
    baselines = build_merchant_baselines(usable)

    history, recent = split_recent(usable, today, config.anomaly_lookback_days)
    anomalies = detect_anomalies(
        new_transactions=recent,
        history=usable,
        baselines=build_merchant_baselines(history),
        prefs=config.anomaly,
        today=today,
    )

    spending_rate = calculate_daily_spending_rate(
        usable,
        recurring_items + income_items,
        today,
        window_days=config.spending_window_days,
    )
    spending_patterns = analyze_spending_patterns(usable)
    projected_rate: SpendingRate = spending_rate
    if config.use_spending_patterns:
        projected_rate = PatternSpendingRate(spending_rate, tuple(spending_patterns.spending_patterns))

    forecast = generate_forecast(
        current_balance,
        recurring_items + income_items,
        projected_rate,
        config.horizon_days,
        config.low_balance_threshold,
        today=today,
        history_start=min(t.date for t in usable),
        large_expense_fraction=config.large_expense_fraction,
    )

    return AnalysisResult(
        recurring_items=recurring_items,
        income_items=income_items,
        baselines=baselines,
        anomalies=anomalies,
        forecast=forecast,
        spending_rate=spending_rate,
        spending_patterns=spending_patterns,
    )
