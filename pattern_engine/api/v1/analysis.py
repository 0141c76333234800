"""POST /v1/analysis - full pattern analysis endpoint"""

import time
import logging
from dataclasses import asdict
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pattern_engine.api.v1.schemas import (
    AnalysisRequest,
    AnalysisResponse,
    AnomalySchema,
    ForecastSchema,
    InsufficientDataSchema,
    MerchantBaselineSchema,
    PatternInsightSchema,
    RecurringItemSchema,
)
from pattern_engine.api.dependencies import build_analysis_config, get_bank_client, get_request_id
from pattern_engine.infrastructure.database.session import get_db
from pattern_engine.infrastructure.database.repositories import AnomalyRepository, BaselineRepository
from pattern_engine.infrastructure.clients.bank import BankClient
from pattern_engine.domain.analysis import analyze_history
from pattern_engine.domain.exceptions import BankAPIError, InvalidConfigurationError
from pattern_engine.domain.forecast import summarize_forecast
from pattern_engine.domain.models import Forecast, InsufficientData, RecurringItem
from pattern_engine.domain.recurring import yearly_cost
from pattern_engine.infrastructure.observability.metrics import (
    analysis_counter,
    bank_fetch_failures_counter,
    record_anomalies,
    record_forecast,
    skipped_records_counter,
)
from pattern_engine.infrastructure.observability.logging import log_analysis

router = APIRouter()


@router.post("/analysis", response_model=AnalysisResponse)
async def run_analysis(
    request_body: AnalysisRequest,
    request: Request,
    db: Session = Depends(get_db),
    bank_client: BankClient = Depends(get_bank_client),
):
    """
    Analyze a user's transaction history.

    Flow:
    1. Fetch transactions (and balance, unless given) from the bank API
    2. Detect recurring items, build baselines, flag anomalies, forecast
    3. Persist baselines and new anomalies (unless persist=false)
    4. Return everything, or an insufficient_data status
    """
    start_time = time.time()
    request_id = get_request_id(request)
    user_id = request_body.user_id
    today = request_body.as_of or date.today()

    try:
        parsed = await bank_client.get_transactions(user_id)
        current_balance = request_body.current_balance
        if current_balance is None:
            current_balance = await bank_client.get_current_balance(user_id)
        if parsed.skipped_count:
            skipped_records_counter.inc(parsed.skipped_count)

        config = build_analysis_config(
            horizon_days=request_body.horizon_days,
            low_balance_threshold=request_body.low_balance_threshold,
            excluded_merchants=request_body.excluded_merchants,
            anomaly_preferences=request_body.anomaly_preferences,
        )
        result = analyze_history(parsed.transactions, current_balance, today=today, config=config)

        if isinstance(result, InsufficientData):
            analysis_counter.labels(outcome="insufficient_data").inc()
            log_analysis(
                request_id, user_id, "insufficient_data",
                len(parsed.transactions), parsed.skipped_count, 0, (time.time() - start_time) * 1000,
            )
            return AnalysisResponse(
                user_id=user_id,
                status="insufficient_data",
                transaction_count=len(parsed.transactions),
                skipped_count=parsed.skipped_count,
                insufficient_data=InsufficientDataSchema(**asdict(result)),
            )

        anomalies_saved = 0
        if request_body.persist:
            BaselineRepository(db).upsert_baselines(user_id, result.baselines)
            anomalies_saved, duplicates = AnomalyRepository(db).save_anomalies(user_id, result.anomalies)
            db.commit()
            if duplicates:
                logging.info(
                    "Skipped previously recorded anomalies",
                    extra={"request_id": request_id, "duplicates": duplicates},
                )

        # Record metrics and logs
        analysis_counter.labels(outcome="completed").inc()
        record_anomalies(result.anomalies)
        record_forecast(result.forecast)
        log_analysis(
            request_id, user_id, "completed",
            len(parsed.transactions), parsed.skipped_count, len(result.anomalies),
            (time.time() - start_time) * 1000,
        )

        return AnalysisResponse(
            user_id=user_id,
            status="completed",
            transaction_count=len(parsed.transactions),
            skipped_count=parsed.skipped_count,
            recurring_items=[recurring_item_schema(i) for i in result.recurring_items],
            income_items=[recurring_item_schema(i) for i in result.income_items],
            baselines=[MerchantBaselineSchema(**asdict(b)) for b in result.baselines],
            anomalies=[AnomalySchema(**asdict(a)) for a in result.anomalies],
            anomalies_saved=anomalies_saved,
            forecast=forecast_schema(result.forecast),
            insights=[PatternInsightSchema(**asdict(i)) for i in result.spending_patterns.insights],
            summary=summarize_forecast(result.forecast),
        )

    except BankAPIError as e:
        bank_fetch_failures_counter.inc()
        db.rollback()
        logging.error(f"Bank API error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Bank service unavailable")

    except InvalidConfigurationError as e:
        db.rollback()
        logging.warning(f"Invalid configuration: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


def recurring_item_schema(item: RecurringItem) -> RecurringItemSchema:
    return RecurringItemSchema(
        **asdict(item),
        confidence_level=item.confidence_level,
        yearly_cost=yearly_cost(item),
    )


def forecast_schema(forecast: Forecast) -> ForecastSchema:
    return ForecastSchema(**asdict(forecast))
