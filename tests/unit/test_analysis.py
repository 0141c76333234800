"""Unit tests for the full analysis pipeline"""

from dataclasses import replace
from datetime import timedelta
from pattern_engine.domain.analysis import AnalysisConfig, AnalysisResult, analyze_history, split_recent
from pattern_engine.domain.models import AnomalyPreferences, InsufficientData


def test_analyze_history(sample_transactions, today):
    result = analyze_history(sample_transactions, 3000.0, today=today, config=AnalysisConfig())

    assert isinstance(result, AnalysisResult)

    # Coffee is a shopping category and Apple Store was seen once
    assert [i.merchant_key for i in result.recurring_items] == ["oakwood apartments", "netflixcom"]
    assert [i.merchant_key for i in result.income_items] == ["acme corp payroll"]
    assert result.income_items[0].frequency == "biweekly"

    assert [b.merchant_key for b in result.baselines] == [
        "acme corp payroll",
        "blue bottle coffee",
        "netflixcom",
        "oakwood apartments",
    ]

    assert [(a.anomaly_type, a.merchant_name) for a in result.anomalies] == [
        ("new_merchant_large", "Apple Store")
    ]
    assert result.anomalies[0].severity == "high"

    # Coffee over the last 30 days plus the Apple purchase, spread over 30 days
    assert result.spending_rate.weekday_rate == 31.54

    forecast = result.forecast
    assert forecast.start_date == today
    assert forecast.end_date == today + timedelta(days=30)
    assert forecast.total_income == 5000.0
    assert forecast.total_expenses == 1215.99
    assert forecast.confidence == "high"


def test_insufficient_data(make_transaction, today):
    transactions = [make_transaction(10.0, days_ago, "Corner Deli") for days_ago in range(5)]

    result = analyze_history(transactions, 100.0, today=today, config=AnalysisConfig())

    assert result == InsufficientData(
        reason="Not enough transaction data for pattern analysis",
        required=10,
        current=5,
    )


def test_budget_excluded_transactions_do_not_count(make_transaction, today):
    transactions = [make_transaction(10.0, days_ago, "Corner Deli") for days_ago in range(8)]
    transactions += [
        make_transaction(500.0, 1, "Transfer To Savings", excluded_from_budget=True),
        make_transaction(500.0, 2, "Transfer To Savings", excluded_from_budget=True),
    ]

    result = analyze_history(transactions, 100.0, today=today, config=AnalysisConfig())

    assert isinstance(result, InsufficientData)
    assert result.current == 8


def test_config_is_honored(sample_transactions, today):
    config = AnalysisConfig(
        anomaly=AnomalyPreferences(detect_new_merchants=False),
        horizon_days=14,
    )

    result = analyze_history(sample_transactions, 3000.0, today=today, config=config)

    assert result.anomalies == []
    assert len(result.forecast.daily_forecasts) == 14


def test_new_charges_do_not_skew_their_own_baseline(make_transaction, today):
    """A 200 charge today is compared against history before the lookback window"""
    transactions = [make_transaction(amount, 30 + 10 * i, "Corner Deli") for i, amount in enumerate((10.0, 10.0, 10.0, 50.0))]
    transactions += [make_transaction(12.0, 30 + days, "Filler Store") for days in range(0, 60, 10)]
    transactions.append(make_transaction(200.0, 0, "Corner Deli"))
    config = replace(AnalysisConfig(), anomaly=AnomalyPreferences(detect_frequency_spikes=False))

    result = analyze_history(transactions, 1000.0, today=today, config=config)

    unusual = [a for a in result.anomalies if a.anomaly_type == "unusual_amount"]
    assert len(unusual) == 1
    assert unusual[0].expected_amount == 20.0


def test_split_recent(make_transaction, today):
    old = make_transaction(1.0, 7)
    recent = make_transaction(1.0, 6)
    future = make_transaction(1.0, -1)

    history, window = split_recent([old, recent, future], today, 7)

    assert history == [old]
    assert window == [recent]


def test_new_merchant_flag_only_on_first_ever_purchase(make_transaction, today):
    """A repeat purchase is never "first-time", even when the merchant has no baseline"""
    transactions = [make_transaction(12.0, days, "Filler Store") for days in range(30, 90, 10)]
    transactions += [
        make_transaction(150.0, 30, "Best Buy", transaction_id="bb_first"),
        make_transaction(150.0, 1, "Best Buy", transaction_id="bb_second"),
        make_transaction(300.0, 4, "Furniture Barn", transaction_id="fb_1"),
        make_transaction(450.0, 1, "Furniture Barn", transaction_id="fb_2"),
    ]

    result = analyze_history(transactions, 5000.0, today=today, config=AnalysisConfig())

    flagged = [a.transaction_id for a in result.anomalies if a.anomaly_type == "new_merchant_large"]
    assert flagged == ["fb_1"]


def test_forecast_uses_learned_spending_patterns(sample_transactions, today):
    result = analyze_history(sample_transactions, 3000.0, today=today, config=AnalysisConfig())
    flat = analyze_history(
        sample_transactions, 3000.0, today=today, config=AnalysisConfig(use_spending_patterns=False)
    )

    assert [p.source_key for p in result.spending_patterns.income_patterns] == ["acme corp payroll"]
    assert result.spending_patterns.spending_patterns
    assert [d.discretionary for d in flat.forecast.daily_forecasts] == [
        round(flat.spending_rate.amount_for(d.date), 2) for d in flat.forecast.daily_forecasts
    ]
    # Recurring totals do not depend on the spending model
    assert result.forecast.total_expenses == flat.forecast.total_expenses
