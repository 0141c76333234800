"""Data access layer for baselines, anomalies and prediction tracking"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Tuple
from sqlalchemy.orm import Session
from pattern_engine.infrastructure.database.models import (
    DetectedAnomalyRecord,
    MerchantBaselineRecord,
    PredictionAccuracyRecord,
    PredictionSnapshotRecord,
)
from pattern_engine.domain.models import AccuracyMetrics, Anomaly, MerchantBaseline, PredictionSnapshot


class BaselineRepository:
    """Repository for merchant baselines"""

    def __init__(self, db: Session):
        self.db = db

    def upsert_baselines(self, user_id: str, baselines: List[MerchantBaseline]) -> int:
        """Insert or refresh one row per (user, merchant key)"""
        existing = {
            row.merchant_key: row
            for row in self.db.query(MerchantBaselineRecord)
            .filter(MerchantBaselineRecord.user_id == user_id)
            .all()
        }
        for baseline in baselines:
            row = existing.get(baseline.merchant_key)
            if row is None:
                row = MerchantBaselineRecord(user_id=user_id, merchant_key=baseline.merchant_key)
                self.db.add(row)
            row.merchant_name = baseline.merchant_name
            row.average_amount = baseline.average_amount
            row.median_amount = baseline.median_amount
            row.std_deviation = baseline.std_deviation
            row.min_amount = baseline.min_amount
            row.max_amount = baseline.max_amount
            row.typical_frequency = baseline.typical_frequency
            row.average_days_between = baseline.average_days_between
            row.transaction_count = baseline.transaction_count
            row.typical_category = baseline.typical_category
            row.is_likely_subscription = baseline.is_likely_subscription
            row.subscription_amount = baseline.subscription_amount
            row.subscription_day_of_month = baseline.subscription_day_of_month
            row.first_seen_date = baseline.first_seen_date
            row.last_seen_date = baseline.last_seen_date
        self.db.flush()
        return len(baselines)

    def get_baselines(self, user_id: str) -> List[MerchantBaselineRecord]:
        return (
            self.db.query(MerchantBaselineRecord)
            .filter(MerchantBaselineRecord.user_id == user_id)
            .order_by(MerchantBaselineRecord.merchant_key)
            .all()
        )


class AnomalyRepository:
    """Repository for detected anomalies"""

    def __init__(self, db: Session):
        self.db = db

    def save_anomalies(self, user_id: str, anomalies: List[Anomaly]) -> Tuple[int, int]:
        """
        Persist anomalies not already recorded for (user, transaction, type).

        Returns:
            (saved, duplicates) counts
        """
        seen = {
            (row.transaction_id, row.anomaly_type)
            for row in self.db.query(
                DetectedAnomalyRecord.transaction_id, DetectedAnomalyRecord.anomaly_type
            )
            .filter(DetectedAnomalyRecord.user_id == user_id)
            .all()
        }

        saved = 0
        duplicates = 0
        for anomaly in anomalies:
            key = (anomaly.transaction_id, anomaly.anomaly_type)
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
            self.db.add(
                DetectedAnomalyRecord(
                    user_id=user_id,
                    transaction_id=anomaly.transaction_id,
                    anomaly_type=anomaly.anomaly_type,
                    severity=anomaly.severity,
                    title=anomaly.title,
                    description=anomaly.description,
                    merchant_name=anomaly.merchant_name,
                    amount=anomaly.amount,
                    expected_amount=anomaly.expected_amount,
                    historical_average=anomaly.historical_average,
                    deviation_percent=anomaly.deviation_percent,
                    related_transaction_ids=list(anomaly.related_transaction_ids),
                )
            )
            saved += 1
        self.db.flush()
        return saved, duplicates

    def get_anomalies_by_user(self, user_id: str, limit: int = 50) -> List[DetectedAnomalyRecord]:
        return (
            self.db.query(DetectedAnomalyRecord)
            .filter(DetectedAnomalyRecord.user_id == user_id)
            .order_by(DetectedAnomalyRecord.detected_at.desc())
            .limit(limit)
            .all()
        )


class SnapshotRepository:
    """Repository for forecast prediction snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def store_snapshots(self, user_id: str, snapshots: List[PredictionSnapshot]) -> int:
        """Upsert predictions by (user, date); reconciled rows are left alone"""
        dates = [s.date for s in snapshots]
        existing = {
            row.prediction_date: row
            for row in self.db.query(PredictionSnapshotRecord)
            .filter(
                PredictionSnapshotRecord.user_id == user_id,
                PredictionSnapshotRecord.prediction_date.in_(dates),
            )
            .all()
        }

        stored = 0
        for snapshot in snapshots:
            row = existing.get(snapshot.date)
            if row is None:
                row = PredictionSnapshotRecord(user_id=user_id, prediction_date=snapshot.date)
                self.db.add(row)
            elif row.actual_balance is not None:
                continue
            row.predicted_balance = snapshot.predicted_balance
            row.predicted_income = snapshot.predicted_income
            row.predicted_expenses = snapshot.predicted_expenses
            row.confidence = snapshot.confidence
            stored += 1
        self.db.flush()
        return stored

    def get_unreconciled(self, user_id: str, before: date) -> List[PredictionSnapshot]:
        rows = (
            self.db.query(PredictionSnapshotRecord)
            .filter(
                PredictionSnapshotRecord.user_id == user_id,
                PredictionSnapshotRecord.actual_balance.is_(None),
                PredictionSnapshotRecord.prediction_date < before,
            )
            .order_by(PredictionSnapshotRecord.prediction_date)
            .all()
        )
        return [_to_snapshot(row) for row in rows]

    def save_reconciled(self, user_id: str, snapshots: List[PredictionSnapshot]) -> int:
        """Write actuals and variance back for reconciled snapshots"""
        rows = {
            row.prediction_date: row
            for row in self.db.query(PredictionSnapshotRecord)
            .filter(
                PredictionSnapshotRecord.user_id == user_id,
                PredictionSnapshotRecord.prediction_date.in_([s.date for s in snapshots]),
            )
            .all()
        }

        updated = 0
        now = datetime.now(timezone.utc)
        for snapshot in snapshots:
            row = rows.get(snapshot.date)
            if row is None or not snapshot.is_reconciled:
                continue
            row.actual_balance = snapshot.actual_balance
            row.actual_income = snapshot.actual_income
            row.actual_expenses = snapshot.actual_expenses
            row.variance_amount = snapshot.variance_amount
            row.variance_percent = snapshot.variance_percent
            row.reconciled_at = now
            updated += 1
        self.db.flush()
        return updated

    def get_window(self, user_id: str, start: date, end: date) -> List[PredictionSnapshot]:
        rows = (
            self.db.query(PredictionSnapshotRecord)
            .filter(
                PredictionSnapshotRecord.user_id == user_id,
                PredictionSnapshotRecord.prediction_date >= start,
                PredictionSnapshotRecord.prediction_date <= end,
            )
            .order_by(PredictionSnapshotRecord.prediction_date)
            .all()
        )
        return [_to_snapshot(row) for row in rows]

    def purge_older_than(self, user_id: str, today: date, retention_days: int) -> int:
        """Delete snapshots dated more than retention_days before today"""
        cutoff = today - timedelta(days=retention_days)
        deleted = (
            self.db.query(PredictionSnapshotRecord)
            .filter(
                PredictionSnapshotRecord.user_id == user_id,
                PredictionSnapshotRecord.prediction_date < cutoff,
            )
            .delete(synchronize_session=False)
        )
        return deleted


class AccuracyRepository:
    """Repository for aggregated accuracy metrics"""

    def __init__(self, db: Session):
        self.db = db

    def upsert_metrics(self, user_id: str, metrics: AccuracyMetrics) -> PredictionAccuracyRecord:
        row = (
            self.db.query(PredictionAccuracyRecord)
            .filter(
                PredictionAccuracyRecord.user_id == user_id,
                PredictionAccuracyRecord.period_start == metrics.period_start,
            )
            .first()
        )
        if row is None:
            row = PredictionAccuracyRecord(user_id=user_id, period_start=metrics.period_start)
            self.db.add(row)
        row.period_end = metrics.period_end
        row.mean_absolute_error = metrics.mean_absolute_error
        row.mean_percentage_error = metrics.mean_percentage_error
        row.root_mean_square_error = metrics.root_mean_square_error
        row.direction_accuracy = metrics.direction_accuracy
        row.predictions_count = metrics.predictions_count
        self.db.flush()
        return row

    def get_latest(self, user_id: str) -> PredictionAccuracyRecord | None:
        return (
            self.db.query(PredictionAccuracyRecord)
            .filter(PredictionAccuracyRecord.user_id == user_id)
            .order_by(PredictionAccuracyRecord.period_end.desc())
            .first()
        )


def _to_snapshot(row: PredictionSnapshotRecord) -> PredictionSnapshot:
    return PredictionSnapshot(
        date=row.prediction_date,
        predicted_balance=row.predicted_balance,
        predicted_income=row.predicted_income,
        predicted_expenses=row.predicted_expenses,
        confidence=row.confidence,
        actual_balance=row.actual_balance,
        actual_income=row.actual_income,
        actual_expenses=row.actual_expenses,
        variance_amount=row.variance_amount,
        variance_percent=row.variance_percent,
    )
