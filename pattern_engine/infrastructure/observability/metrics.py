"""Prometheus metrics for monitoring analysis runs, anomalies and forecast quality"""

from typing import Iterable

from prometheus_client import Counter, Gauge, Histogram

from pattern_engine.domain.models import Anomaly, Forecast

# Analysis metrics
analysis_counter = Counter(
    "pattern_engine_analysis_total",
    "Total analysis runs",
    ["outcome"],  # completed | insufficient_data
)

skipped_records_counter = Counter(
    "pattern_engine_skipped_records_total",
    "Malformed transaction records rejected at parse time",
)

anomaly_counter = Counter(
    "pattern_engine_anomalies_total",
    "Anomalies detected",
    ["anomaly_type", "severity"],
)

forecast_counter = Counter(
    "pattern_engine_forecasts_total",
    "Forecasts generated by confidence rating",
    ["confidence"],
)

forecast_alert_counter = Counter(
    "pattern_engine_forecast_alerts_total",
    "Forecast alerts raised",
    ["alert_type"],
)

# Accuracy
forecast_mae_gauge = Gauge(
    "pattern_engine_forecast_mae",
    "Most recently computed forecast mean absolute error",
)

# Bank API metrics
bank_fetch_failures_counter = Counter(
    "bank_fetch_failures_total",
    "Failed bank API calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_anomalies(anomalies: Iterable[Anomaly]) -> None:
    for anomaly in anomalies:
        anomaly_counter.labels(anomaly_type=anomaly.anomaly_type, severity=anomaly.severity).inc()


def record_forecast(forecast: Forecast) -> None:
    """Record forecast confidence and alert distribution"""
    forecast_counter.labels(confidence=forecast.confidence).inc()
    for alert in forecast.alerts:
        forecast_alert_counter.labels(alert_type=alert.alert_type).inc()
