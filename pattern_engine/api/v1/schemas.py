"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date
from typing import List, Optional


class AnomalyPreferencesSchema(BaseModel):
    """Per-request anomaly detection overrides"""

    sensitivity_level: int = Field(5, ge=1, le=10, description="1 (least sensitive) to 10")
    detect_unusual_amounts: bool = True
    detect_duplicate_charges: bool = True
    detect_price_increases: bool = True
    detect_new_merchants: bool = True
    detect_frequency_spikes: bool = True
    unusual_amount_threshold: float = Field(2.0, gt=0, description="Standard deviations above the mean")
    duplicate_window_hours: float = Field(48, gt=0)
    price_increase_threshold: float = Field(0.10, gt=0)
    new_merchant_amount_threshold: float = Field(100.0, ge=0)


class AnalysisRequest(BaseModel):
    """Request body for POST /v1/analysis"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    as_of: Optional[date] = Field(None, description="Analysis date; defaults to today")
    current_balance: Optional[float] = Field(None, description="Overrides the balance reported by the bank")
    horizon_days: Optional[int] = Field(None, ge=1, le=365)
    low_balance_threshold: Optional[float] = Field(None, ge=0)
    excluded_merchants: List[str] = Field(default_factory=list, description="Extra merchant keys to skip")
    anomaly_preferences: Optional[AnomalyPreferencesSchema] = None
    persist: bool = True


class ForecastRequest(BaseModel):
    """Request body for POST /v1/forecast"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    as_of: Optional[date] = None
    current_balance: Optional[float] = None
    horizon_days: Optional[int] = Field(None, ge=1, le=365)
    low_balance_threshold: Optional[float] = Field(None, ge=0)
    store: bool = Field(False, description="Persist prediction snapshots for accuracy tracking")


class ReconcileRequest(BaseModel):
    """Request body for POST /v1/accuracy/reconcile"""

    user_id: str = Field(..., min_length=1)
    as_of: Optional[date] = None


class InsufficientDataSchema(BaseModel):
    reason: str
    required: int
    current: int


class RecurringItemSchema(BaseModel):
    """Detected bill, subscription or income source"""

    merchant_key: str
    display_name: str
    average_amount: float
    frequency: str
    last_date: date
    next_expected_date: date
    occurrence_count: int
    confidence: int
    confidence_level: str
    category: Optional[str] = None
    is_income: bool = False
    yearly_cost: float


class MerchantBaselineSchema(BaseModel):
    merchant_name: str
    merchant_key: str
    average_amount: float
    median_amount: float
    std_deviation: float
    min_amount: float
    max_amount: float
    typical_frequency: str
    average_days_between: Optional[float] = None
    transaction_count: int
    typical_category: Optional[str] = None
    is_likely_subscription: bool
    subscription_amount: Optional[float] = None
    subscription_day_of_month: Optional[int] = None
    first_seen_date: date
    last_seen_date: date


class AnomalySchema(BaseModel):
    transaction_id: Optional[str] = None
    anomaly_type: str
    severity: str
    title: str
    description: str
    merchant_name: Optional[str] = None
    amount: Optional[float] = None
    expected_amount: Optional[float] = None
    historical_average: Optional[float] = None
    deviation_percent: Optional[float] = None
    related_transaction_ids: List[str] = Field(default_factory=list)


class ForecastDaySchema(BaseModel):
    date: date
    projected_balance: float
    is_low_balance: bool
    is_negative: bool
    income: float
    expenses: float
    discretionary: float


class ForecastAlertSchema(BaseModel):
    alert_type: str
    date: date
    message: str
    severity: str
    amount: Optional[float] = None


class ForecastSchema(BaseModel):
    """Day-by-day balance projection"""

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
    daily_forecasts: List[ForecastDaySchema]
    alerts: List[ForecastAlertSchema]
    confidence: str


class PatternInsightSchema(BaseModel):
    title: str
    description: str
    impact_score: float
    actionable: bool
    category: Optional[str] = None


class AnalysisResponse(BaseModel):
    """Response for POST /v1/analysis"""

    user_id: str
    status: str  # completed | insufficient_data
    transaction_count: int
    skipped_count: int
    recurring_items: List[RecurringItemSchema] = Field(default_factory=list)
    income_items: List[RecurringItemSchema] = Field(default_factory=list)
    baselines: List[MerchantBaselineSchema] = Field(default_factory=list)
    anomalies: List[AnomalySchema] = Field(default_factory=list)
    anomalies_saved: int = 0
    forecast: Optional[ForecastSchema] = None
    insights: List[PatternInsightSchema] = Field(default_factory=list)
    summary: Optional[str] = None
    insufficient_data: Optional[InsufficientDataSchema] = None


class ForecastResponse(BaseModel):
    """Response for POST /v1/forecast"""

    user_id: str
    status: str
    forecast: Optional[ForecastSchema] = None
    summary: Optional[str] = None
    snapshots_stored: int = 0
    insufficient_data: Optional[InsufficientDataSchema] = None


class AccuracyMetricsSchema(BaseModel):
    period_start: date
    period_end: date
    mean_absolute_error: float
    mean_percentage_error: float
    root_mean_square_error: float
    direction_accuracy: float
    predictions_count: int


class AccuracyResponse(BaseModel):
    """Response for GET /v1/accuracy and POST /v1/accuracy/reconcile"""

    user_id: str
    status: str
    reconciled_count: int = 0
    purged_count: int = 0
    metrics: Optional[AccuracyMetricsSchema] = None
    insufficient_data: Optional[InsufficientDataSchema] = None
