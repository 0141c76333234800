"""SQLAlchemy ORM models for persisted engine output"""

import uuid
from sqlalchemy import Column, String, Boolean, Float, DateTime, Date, Integer, Text, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class MerchantBaselineRecord(Base):
    """Per-merchant baseline, upserted by (user, merchant key)"""

    __tablename__ = "merchant_baseline"
    __table_args__ = (UniqueConstraint("user_id", "merchant_key", name="uq_baseline_user_merchant"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    merchant_name = Column(Text, nullable=False)
    merchant_key = Column(Text, nullable=False)
    average_amount = Column(Float, nullable=False)
    median_amount = Column(Float, nullable=False)
    std_deviation = Column(Float, nullable=False)
    min_amount = Column(Float, nullable=False)
    max_amount = Column(Float, nullable=False)
    typical_frequency = Column(String(16), nullable=False)
    average_days_between = Column(Float, nullable=True)
    transaction_count = Column(Integer, nullable=False)
    typical_category = Column(Text, nullable=True)
    is_likely_subscription = Column(Boolean, nullable=False, default=False)
    subscription_amount = Column(Float, nullable=True)
    subscription_day_of_month = Column(Integer, nullable=True)
    first_seen_date = Column(Date, nullable=False)
    last_seen_date = Column(Date, nullable=False)
    last_calculated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class DetectedAnomalyRecord(Base):
    """Anomaly awaiting user review, unique per (user, transaction, type)"""

    __tablename__ = "detected_anomaly"
    __table_args__ = (
        UniqueConstraint("user_id", "transaction_id", "anomaly_type", name="uq_anomaly_user_txn_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    transaction_id = Column(Text, nullable=True)
    anomaly_type = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    merchant_name = Column(Text, nullable=True)
    amount = Column(Float, nullable=True)
    expected_amount = Column(Float, nullable=True)
    historical_average = Column(Float, nullable=True)
    deviation_percent = Column(Float, nullable=True)
    related_transaction_ids = Column(JSON, nullable=True)
    status = Column(Text, nullable=False, default="pending")
    detected_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PredictionSnapshotRecord(Base):
    """Forecast prediction for one date, reconciled later"""

    __tablename__ = "prediction_snapshot"
    __table_args__ = (UniqueConstraint("user_id", "prediction_date", name="uq_snapshot_user_date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    prediction_date = Column(Date, nullable=False)
    predicted_balance = Column(Float, nullable=False)
    predicted_income = Column(Float, nullable=False, default=0)
    predicted_expenses = Column(Float, nullable=False, default=0)
    confidence = Column(Float, nullable=False, default=0.5)
    actual_balance = Column(Float, nullable=True)
    actual_income = Column(Float, nullable=True)
    actual_expenses = Column(Float, nullable=True)
    variance_amount = Column(Float, nullable=True)
    variance_percent = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    reconciled_at = Column(DateTime(timezone=True), nullable=True)


class PredictionAccuracyRecord(Base):
    """Aggregated accuracy metrics per period"""

    __tablename__ = "prediction_accuracy"
    __table_args__ = (UniqueConstraint("user_id", "period_start", name="uq_accuracy_user_period"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    mean_absolute_error = Column(Float, nullable=False)
    mean_percentage_error = Column(Float, nullable=False)
    root_mean_square_error = Column(Float, nullable=False)
    direction_accuracy = Column(Float, nullable=False)
    predictions_count = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
