"""Prediction accuracy endpoints - reconcile snapshots and report error metrics"""

import logging
from dataclasses import asdict
from datetime import date, timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from pattern_engine.api.v1.schemas import (
    AccuracyMetricsSchema,
    AccuracyResponse,
    InsufficientDataSchema,
    ReconcileRequest,
)
from pattern_engine.api.dependencies import get_bank_client, get_request_id
from pattern_engine.config import settings
from pattern_engine.infrastructure.database.session import get_db
from pattern_engine.infrastructure.database.repositories import AccuracyRepository, SnapshotRepository
from pattern_engine.infrastructure.clients.bank import BankClient
from pattern_engine.domain.accuracy import calculate_accuracy_metrics, reconcile_snapshots
from pattern_engine.domain.exceptions import BankAPIError
from pattern_engine.domain.models import AccuracyMetrics
from pattern_engine.infrastructure.observability.metrics import bank_fetch_failures_counter, forecast_mae_gauge

router = APIRouter()


@router.post("/accuracy/reconcile", response_model=AccuracyResponse)
async def reconcile_predictions(
    request_body: ReconcileRequest,
    request: Request,
    db: Session = Depends(get_db),
    bank_client: BankClient = Depends(get_bank_client),
):
    """
    Fill in actual balances for stored predictions dated before today.

    Flow:
    1. Fetch fresh transactions and current balance from the bank API
    2. Reconcile pending snapshots and write the actuals back
    3. Purge snapshots past retention
    4. Recompute and store accuracy metrics for the trailing window
    """
    request_id = get_request_id(request)
    user_id = request_body.user_id
    today = request_body.as_of or date.today()

    try:
        parsed = await bank_client.get_transactions(user_id)
        current_balance = await bank_client.get_current_balance(user_id)

        snapshots = SnapshotRepository(db)
        pending = snapshots.get_unreconciled(user_id, before=today)
        reconciled = reconcile_snapshots(pending, parsed.transactions, current_balance, today)
        reconciled_count = snapshots.save_reconciled(user_id, reconciled)
        purged_count = snapshots.purge_older_than(user_id, today, settings.snapshot_retention_days)

        response = _accuracy_response(db, user_id, today, persist=True)
        db.commit()

        logging.info(
            "Predictions reconciled",
            extra={
                "request_id": request_id,
                "user_id": user_id,
                "step": "reconcile_complete",
                "reconciled_count": reconciled_count,
                "purged_count": purged_count,
            },
        )
        return response.model_copy(update={"reconciled_count": reconciled_count, "purged_count": purged_count})

    except BankAPIError as e:
        bank_fetch_failures_counter.inc()
        db.rollback()
        logging.error(f"Bank API error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Bank service unavailable")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/accuracy", response_model=AccuracyResponse)
def get_accuracy(
    user_id: str = Query(..., description="User identifier"),
    as_of: Optional[date] = Query(None, description="End of the accuracy window; defaults to today"),
    db: Session = Depends(get_db),
):
    """
    Forecast accuracy over the trailing window.

    Without as_of the most recent metrics stored by a reconcile run are
    returned; with as_of (or when nothing is stored yet) the window is
    computed from the stored snapshots.

    Returns:
        Metrics, or insufficient_data until enough predictions are reconciled
    """
    if as_of is None:
        latest = AccuracyRepository(db).get_latest(user_id)
        if latest is not None:
            return AccuracyResponse(
                user_id=user_id,
                status="completed",
                metrics=AccuracyMetricsSchema(
                    period_start=latest.period_start,
                    period_end=latest.period_end,
                    mean_absolute_error=latest.mean_absolute_error,
                    mean_percentage_error=latest.mean_percentage_error,
                    root_mean_square_error=latest.root_mean_square_error,
                    direction_accuracy=latest.direction_accuracy,
                    predictions_count=latest.predictions_count,
                ),
            )

    return _accuracy_response(db, user_id, as_of or date.today(), persist=False)


def _accuracy_response(db: Session, user_id: str, today: date, persist: bool) -> AccuracyResponse:
    window_start = today - timedelta(days=settings.accuracy_window_days)
    window = SnapshotRepository(db).get_window(user_id, window_start, today)
    metrics = calculate_accuracy_metrics(window, today, window_days=settings.accuracy_window_days)

    if not isinstance(metrics, AccuracyMetrics):
        return AccuracyResponse(
            user_id=user_id,
            status="insufficient_data",
            insufficient_data=InsufficientDataSchema(**asdict(metrics)),
        )

    if persist:
        AccuracyRepository(db).upsert_metrics(user_id, metrics)
        forecast_mae_gauge.set(metrics.mean_absolute_error)

    return AccuracyResponse(
        user_id=user_id,
        status="completed",
        metrics=AccuracyMetricsSchema(**asdict(metrics)),
    )
