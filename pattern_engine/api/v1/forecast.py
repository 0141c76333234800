"""POST /v1/forecast - cash flow projection endpoint"""

import time
import logging
from dataclasses import asdict
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pattern_engine.api.v1.analysis import forecast_schema
from pattern_engine.api.v1.schemas import ForecastRequest, ForecastResponse, InsufficientDataSchema
from pattern_engine.api.dependencies import build_analysis_config, get_bank_client, get_request_id
from pattern_engine.config import settings
from pattern_engine.infrastructure.database.session import get_db
from pattern_engine.infrastructure.database.repositories import SnapshotRepository
from pattern_engine.infrastructure.clients.bank import BankClient
from pattern_engine.domain.accuracy import build_snapshots
from pattern_engine.domain.analysis import analyze_history
from pattern_engine.domain.exceptions import BankAPIError, InvalidConfigurationError
from pattern_engine.domain.forecast import summarize_forecast
from pattern_engine.domain.models import InsufficientData
from pattern_engine.infrastructure.observability.metrics import (
    bank_fetch_failures_counter,
    record_forecast,
    skipped_records_counter,
)

router = APIRouter()


@router.post("/forecast", response_model=ForecastResponse)
async def create_forecast(
    request_body: ForecastRequest,
    request: Request,
    db: Session = Depends(get_db),
    bank_client: BankClient = Depends(get_bank_client),
):
    """
    Project a user's balance day by day.

    With store=true the first few projected days are saved as prediction
    snapshots, to be reconciled against real balances later.
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
        )
        result = analyze_history(parsed.transactions, current_balance, today=today, config=config)

        if isinstance(result, InsufficientData):
            return ForecastResponse(
                user_id=user_id,
                status="insufficient_data",
                insufficient_data=InsufficientDataSchema(**asdict(result)),
            )

        stored = 0
        if request_body.store:
            snapshots = build_snapshots(result.forecast, max_days=settings.snapshot_days_stored)
            stored = SnapshotRepository(db).store_snapshots(user_id, snapshots)
            db.commit()

        record_forecast(result.forecast)
        logging.info(
            "Forecast generated",
            extra={
                "request_id": request_id,
                "user_id": user_id,
                "step": "forecast_complete",
                "confidence": result.forecast.confidence,
                "alert_count": len(result.forecast.alerts),
                "snapshots_stored": stored,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )

        return ForecastResponse(
            user_id=user_id,
            status="completed",
            forecast=forecast_schema(result.forecast),
            summary=summarize_forecast(result.forecast),
            snapshots_stored=stored,
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
