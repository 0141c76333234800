"""Domain models - pure Python dataclasses representing engine records"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime, time
from typing import Any, Dict, FrozenSet, List, Optional

from pattern_engine.domain.exceptions import InvalidConfigurationError
from pattern_engine.domain.normalizer import normalize_merchant
from pattern_engine.utils.date_utils import is_weekend


# Canonical interval (days) per recurring frequency
FREQUENCY_DAYS: Dict[str, int] = {
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
    "quarterly": 90,
    "yearly": 365,
}


@dataclass(frozen=True)
class Transaction:
    """Bank transaction, read-only input to the engine.

    Sign convention: positive amount = expense, negative amount = income.
    """

    transaction_id: str
    date: date
    amount: float
    merchant: str
    category: Optional[str] = None
    is_income: bool = False
    excluded_from_budget: bool = False
    posted_at: Optional[datetime] = None

    @property
    def merchant_key(self) -> str:
        return normalize_merchant(self.merchant)

    @property
    def occurred_at(self) -> datetime:
        if self.posted_at is not None:
            return self.posted_at
        return datetime.combine(self.date, time.min)

    @property
    def is_inflow(self) -> bool:
        return self.is_income or self.amount < 0

    @property
    def is_expense(self) -> bool:
        return not self.is_inflow and self.amount > 0


@dataclass(frozen=True)
class RecurringItem:
    """Detected bill, subscription or income source"""

    merchant_key: str
    display_name: str
    average_amount: float  # always a positive magnitude
    frequency: str  # weekly | biweekly | monthly | quarterly | yearly
    last_date: date
    next_expected_date: date
    occurrence_count: int
    confidence: int  # 0-100
    category: Optional[str] = None
    is_income: bool = False

    @property
    def confidence_level(self) -> str:
        if self.confidence >= 90:
            return "high"
        if self.confidence >= 75:
            return "medium"
        return "low"

    @property
    def interval_days(self) -> int:
        return FREQUENCY_DAYS[self.frequency]


@dataclass(frozen=True)
class MerchantBaseline:
    """Statistical summary of a merchant's history"""

    merchant_name: str
    merchant_key: str
    average_amount: float
    median_amount: float
    std_deviation: float
    min_amount: float
    max_amount: float
    typical_frequency: str  # bucket name or "irregular"
    average_days_between: Optional[float]
    transaction_count: int
    typical_category: Optional[str]
    is_likely_subscription: bool
    subscription_amount: Optional[float]
    subscription_day_of_month: Optional[int]
    first_seen_date: date
    last_seen_date: date


@dataclass(frozen=True)
class Anomaly:
    """Flagged transaction or transaction cluster"""

    transaction_id: Optional[str]
    anomaly_type: str  # unusual_amount | duplicate_charge | price_increase | new_merchant_large | frequency_spike
    severity: str  # low | medium | high | critical
    title: str
    description: str
    merchant_name: Optional[str]
    amount: Optional[float]
    expected_amount: Optional[float] = None
    historical_average: Optional[float] = None
    deviation_percent: Optional[float] = None
    related_transaction_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ForecastDay:
    """Projected end-of-day balance"""

    date: date
    projected_balance: float
    is_low_balance: bool
    is_negative: bool
    income: float = 0.0
    expenses: float = 0.0
    discretionary: float = 0.0


@dataclass(frozen=True)
class ForecastAlert:
    """Alert raised while projecting the balance"""

    alert_type: str  # low_balance | negative_balance | large_expense | missed_income
    date: date
    message: str
    severity: str  # warning | critical
    amount: Optional[float] = None


@dataclass(frozen=True)
class Forecast:
    """Day-by-day balance projection with alerts"""

    start_date: date
    end_date: date
    current_balance: float
    projected_end_balance: float
    lowest_balance: float
    lowest_balance_date: date
    highest_balance: float
    highest_balance_date: date
    total_income: float
    total_expenses: float
    total_discretionary: float
    net_cash_flow: float
    daily_forecasts: List[ForecastDay]
    alerts: List[ForecastAlert]
    confidence: str  # high | medium | low

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable rendering with ISO dates"""
        return _isoformat_dates(asdict(self))


@dataclass(frozen=True)
class PredictionSnapshot:
    """Stored prediction for one date, filled in once ground truth exists"""

    date: date
    predicted_balance: float
    predicted_income: float
    predicted_expenses: float
    confidence: float
    actual_balance: Optional[float] = None
    actual_income: Optional[float] = None
    actual_expenses: Optional[float] = None
    variance_amount: Optional[float] = None
    variance_percent: Optional[float] = None

    @property
    def is_reconciled(self) -> bool:
        return self.actual_balance is not None


@dataclass(frozen=True)
class AccuracyMetrics:
    """Aggregate forecast error over a trailing window"""

    period_start: date
    period_end: date
    mean_absolute_error: float
    mean_percentage_error: float
    root_mean_square_error: float
    direction_accuracy: float
    predictions_count: int


@dataclass(frozen=True)
class InsufficientData:
    """Not enough data for a result yet; callers treat this as "no result", not a failure"""

    reason: str
    required: int
    current: int


@dataclass(frozen=True)
class DailySpendingRate:
    """Discretionary spending per day, with weekend adjustment"""

    weekday_rate: float
    weekend_multiplier: float = 1.3

    def amount_for(self, day: date) -> float:
        if is_weekend(day):
            return self.weekday_rate * self.weekend_multiplier
        return self.weekday_rate


@dataclass(frozen=True)
class SpendingPattern:
    """Learned expense statistics for one time or category dimension.

    pattern_type is one of day_of_week, week_of_month, month_of_year,
    seasonal, category_daily or category_monthly; dimension_key names the
    bucket ("saturday", "week_1", "december", "summer", "daily", "monthly").
    """

    pattern_type: str
    dimension_key: str
    average_amount: float
    median_amount: float
    std_deviation: float
    min_amount: float
    max_amount: float
    occurrence_count: int
    confidence_score: float  # 0-1
    months_of_data: int
    category: Optional[str] = None


@dataclass(frozen=True)
class IncomePattern:
    """Timing and amount profile of one income source"""

    source_name: str
    source_key: str
    source_type: str  # salary | transfer | investment | other
    frequency: str  # weekly | biweekly | semimonthly | monthly | irregular
    typical_days_of_month: List[int]
    typical_day_of_week: Optional[int]
    average_amount: float
    min_amount: float
    max_amount: float
    variability: float  # std-dev / mean
    confidence_score: float
    occurrences: int
    last_occurrence: date
    next_expected: date


@dataclass(frozen=True)
class PatternInsight:
    title: str
    description: str
    impact_score: float
    actionable: bool
    category: Optional[str] = None


@dataclass(frozen=True)
class SpendingPatternAnalysis:
    """Everything learned from one pass over a user's history"""

    spending_patterns: List[SpendingPattern]
    income_patterns: List[IncomePattern]
    insights: List[PatternInsight]
    total_transactions: int
    months_of_data: int
    category_coverage: float
    data_completeness: float


@dataclass(frozen=True)
class RecurringConfig:
    """Tunable inputs for recurring detection"""

    excluded_merchants: FrozenSet[str] = frozenset()
    excluded_categories: FrozenSet[str] = frozenset()
    amount_tolerance: float = 0.15
    interval_tolerance: float = 0.25
    min_confidence: int = 60


@dataclass(frozen=True)
class AnomalyPreferences:
    """User-tunable anomaly detection settings"""

    sensitivity_level: int = 5  # 1 (least sensitive) to 10
    detect_unusual_amounts: bool = True
    detect_duplicate_charges: bool = True
    detect_price_increases: bool = True
    detect_new_merchants: bool = True
    detect_frequency_spikes: bool = True
    unusual_amount_threshold: float = 2.0  # standard deviations
    duplicate_window_hours: float = 48
    price_increase_threshold: float = 0.10
    new_merchant_amount_threshold: float = 100.0
    frequency_spike_min_count: int = 3

    def __post_init__(self) -> None:
        if not 1 <= self.sensitivity_level <= 10:
            raise InvalidConfigurationError(f"sensitivity_level must be between 1 and 10, got {self.sensitivity_level}")

    @property
    def sensitivity_multiplier(self) -> float:
        # Higher sensitivity lowers the severity thresholds
        return (11 - self.sensitivity_level) / 5


def _isoformat_dates(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _isoformat_dates(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_isoformat_dates(v) for v in value]
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value
