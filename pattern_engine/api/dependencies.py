"""Dependency injection for FastAPI endpoints"""

from dataclasses import replace
from typing import Iterable, Optional

from fastapi import Request

from pattern_engine.api.v1.schemas import AnomalyPreferencesSchema
from pattern_engine.config import settings
from pattern_engine.domain.analysis import AnalysisConfig
from pattern_engine.domain.models import AnomalyPreferences
from pattern_engine.domain.recurring import default_recurring_config
from pattern_engine.infrastructure.clients.bank import BankClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_bank_client() -> BankClient:
    """Provide Bank API client instance"""
    return BankClient()


def build_analysis_config(
    horizon_days: Optional[int] = None,
    low_balance_threshold: Optional[float] = None,
    excluded_merchants: Iterable[str] = (),
    anomaly_preferences: Optional[AnomalyPreferencesSchema] = None,
) -> AnalysisConfig:
    """Immutable engine config from service settings plus request overrides"""
    recurring = default_recurring_config()
    extra = {m.strip().lower() for m in excluded_merchants if m.strip()}
    if extra:
        recurring = replace(recurring, excluded_merchants=recurring.excluded_merchants | extra)

    anomaly = (
        AnomalyPreferences(**anomaly_preferences.model_dump())
        if anomaly_preferences is not None
        else AnomalyPreferences()
    )

    return AnalysisConfig(
        recurring=recurring,
        anomaly=anomaly,
        horizon_days=horizon_days or settings.forecast_horizon_days,
        low_balance_threshold=(
            low_balance_threshold if low_balance_threshold is not None else settings.low_balance_threshold
        ),
        spending_window_days=settings.spending_window_days,
        anomaly_lookback_days=settings.anomaly_lookback_days,
        min_transactions=settings.min_transactions,
        large_expense_fraction=settings.large_expense_fraction,
    )
