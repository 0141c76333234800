"""Unit tests for anomaly detection rules"""

import pytest
from datetime import datetime, timedelta
from pattern_engine.domain.anomalies import (
    check_duplicate_charge,
    check_frequency_spike,
    check_new_merchant_large,
    check_price_increase,
    check_unusual_amount,
    detect_anomalies,
    first_transaction_ids,
    get_severity,
)
from pattern_engine.domain.baselines import build_merchant_baselines
from pattern_engine.domain.exceptions import InvalidConfigurationError
from pattern_engine.domain.models import AnomalyPreferences


@pytest.fixture
def prefs() -> AnomalyPreferences:
    return AnomalyPreferences()


@pytest.fixture
def deli_baseline(make_transaction):
    """Baseline from charges of 10, 10, 10, 50 (mean 20)"""
    history = [
        make_transaction(amount, days_ago, "Corner Deli")
        for amount, days_ago in ((10.0, 90), (10.0, 60), (10.0, 30), (50.0, 20))
    ]
    return build_merchant_baselines(history)[0]


@pytest.fixture
def subscription_baseline(make_transaction):
    history = [make_transaction(15.99, days_ago, "Netflix") for days_ago in (90, 60, 30)]
    return build_merchant_baselines(history)[0]


def test_severity_scales_with_sensitivity():
    default = AnomalyPreferences(sensitivity_level=5)  # multiplier 1.2
    assert get_severity(50, default) == "low"
    assert get_severity(120, default) == "medium"
    assert get_severity(240, default) == "high"
    assert get_severity(600, default) == "critical"

    strict = AnomalyPreferences(sensitivity_level=10)  # multiplier 0.2
    assert get_severity(100, strict) == "critical"

    relaxed = AnomalyPreferences(sensitivity_level=1)  # multiplier 2.0
    assert get_severity(600, relaxed) == "high"


@pytest.mark.parametrize("level", [0, 11])
def test_sensitivity_must_be_in_range(level):
    with pytest.raises(InvalidConfigurationError):
        AnomalyPreferences(sensitivity_level=level)


def test_unusual_amount_fires(make_transaction, deli_baseline, prefs):
    """A 200 charge against mean 20 / std 17.32 is ~10 deviations out"""
    assert deli_baseline.average_amount == 20.0
    assert deli_baseline.std_deviation > 0

    anomaly = check_unusual_amount(make_transaction(200.0, 0, "Corner Deli"), deli_baseline, prefs)

    assert anomaly is not None
    assert anomaly.anomaly_type == "unusual_amount"
    assert anomaly.expected_amount == 20.0
    assert anomaly.deviation_percent == 900.0
    assert anomaly.severity == "critical"


def test_unusual_amount_within_threshold(make_transaction, deli_baseline, prefs):
    # (50 - 20) / 17.32 = 1.73 deviations
    assert check_unusual_amount(make_transaction(50.0, 0, "Corner Deli"), deli_baseline, prefs) is None


def test_unusual_amount_needs_spread(make_transaction, subscription_baseline, prefs):
    """Zero std-dev baselines never produce an unusual-amount finding"""
    assert check_unusual_amount(make_transaction(99.0, 0, "Netflix"), subscription_baseline, prefs) is None


def test_unusual_amount_disabled(make_transaction, deli_baseline):
    prefs = AnomalyPreferences(detect_unusual_amounts=False)
    assert check_unusual_amount(make_transaction(200.0, 0, "Corner Deli"), deli_baseline, prefs) is None


def test_duplicate_charge_three_hours_apart(make_transaction, prefs, today):
    """Two identical 49.99 charges 3 hours apart -> exactly one high-severity duplicate"""
    morning = datetime.combine(today, datetime.min.time()) + timedelta(hours=9)
    first = make_transaction(49.99, 0, "Streaming Service", transaction_id="a", posted_at=morning)
    second = make_transaction(
        49.99, 0, "Streaming Service", transaction_id="b", posted_at=morning + timedelta(hours=3)
    )

    anomalies = detect_anomalies([first, second], [first, second], [], prefs, today)

    assert len(anomalies) == 1
    anomaly = anomalies[0]
    assert anomaly.anomaly_type == "duplicate_charge"
    assert anomaly.severity == "high"
    assert anomaly.transaction_id == "a"
    assert anomaly.related_transaction_ids == ["b"]


def test_duplicate_outside_window(make_transaction, prefs):
    first = make_transaction(49.99, 3, "Streaming Service")
    second = make_transaction(49.99, 0, "Streaming Service")

    assert check_duplicate_charge(second, [first, second], prefs) is None


def test_duplicate_requires_matching_amount(make_transaction, prefs):
    first = make_transaction(49.99, 0, "Streaming Service")
    second = make_transaction(50.99, 0, "Streaming Service")

    assert check_duplicate_charge(second, [first, second], prefs) is None


def test_price_increase(make_transaction, subscription_baseline, prefs):
    anomaly = check_price_increase(make_transaction(19.99, 0, "Netflix"), subscription_baseline, prefs)

    assert anomaly is not None
    assert anomaly.anomaly_type == "price_increase"
    assert anomaly.expected_amount == 15.99
    # 25% increase -> high
    assert anomaly.severity == "high"


def test_small_price_increase_is_medium(make_transaction, subscription_baseline, prefs):
    anomaly = check_price_increase(make_transaction(17.99, 0, "Netflix"), subscription_baseline, prefs)

    assert anomaly is not None
    assert anomaly.severity == "medium"


def test_price_increase_below_threshold(make_transaction, subscription_baseline, prefs):
    assert check_price_increase(make_transaction(16.99, 0, "Netflix"), subscription_baseline, prefs) is None


def test_new_merchant_large(make_transaction, prefs):
    medium = check_new_merchant_large(make_transaction(150.0, 0, "Furniture Outlet"), None, prefs)
    high = check_new_merchant_large(make_transaction(750.0, 0, "Furniture Outlet"), None, prefs)

    assert medium.anomaly_type == "new_merchant_large"
    assert medium.severity == "medium"
    assert high.severity == "high"


def test_new_merchant_small_or_known(make_transaction, deli_baseline, prefs):
    assert check_new_merchant_large(make_transaction(50.0, 0, "Furniture Outlet"), None, prefs) is None
    assert check_new_merchant_large(make_transaction(500.0, 0, "Corner Deli"), deli_baseline, prefs) is None


def test_frequency_spike(make_transaction, deli_baseline, prefs, today):
    """Deli averages one visit every ~23 days; four in a week is a spike"""
    recent = [make_transaction(10.0, days_ago, "Corner Deli") for days_ago in (6, 4, 2, 0)]

    anomaly = check_frequency_spike("corner deli", recent, deli_baseline, prefs, today)

    assert anomaly is not None
    assert anomaly.anomaly_type == "frequency_spike"
    assert anomaly.severity == "high"
    assert anomaly.transaction_id == recent[-1].transaction_id
    assert anomaly.related_transaction_ids == [t.transaction_id for t in recent]
    assert anomaly.amount == 40.0


def test_frequency_spike_needs_minimum_count(make_transaction, deli_baseline, prefs, today):
    recent = [make_transaction(10.0, days_ago, "Corner Deli") for days_ago in (2, 0)]

    assert check_frequency_spike("corner deli", recent, deli_baseline, prefs, today) is None


def test_detect_anomalies_reports_spike_once(make_transaction, deli_baseline, today):
    prefs = AnomalyPreferences(detect_unusual_amounts=False, detect_duplicate_charges=False)
    recent = [make_transaction(10.0, days_ago, "Corner Deli") for days_ago in (6, 4, 2, 0)]

    anomalies = detect_anomalies(recent, recent, [deli_baseline], prefs, today)

    assert [a.anomaly_type for a in anomalies] == ["frequency_spike"]


def test_detect_anomalies_respects_disabled_checks(make_transaction, today):
    prefs = AnomalyPreferences(
        detect_unusual_amounts=False,
        detect_duplicate_charges=False,
        detect_price_increases=False,
        detect_new_merchants=False,
        detect_frequency_spikes=False,
    )
    txn = make_transaction(5000.0, 0, "Jewelry Store")

    assert detect_anomalies([txn], [txn], [], prefs, today) == []


@pytest.fixture
def monthly_deli_baseline(make_transaction):
    """Deli visited every 30 days"""
    history = [make_transaction(10.0, days_ago, "Corner Deli") for days_ago in (120, 90, 60)]
    return build_merchant_baselines(history)[0]


def test_frequency_spike_window_is_seven_days(make_transaction, monthly_deli_baseline, prefs, today):
    """A visit exactly 7 days ago falls outside the trailing week"""
    assert monthly_deli_baseline.average_days_between == 30.0
    recent = [make_transaction(10.0, days_ago, "Corner Deli") for days_ago in (7, 3, 0)]

    assert check_frequency_spike("corner deli", recent, monthly_deli_baseline, prefs, today) is None


def test_frequency_spike_includes_day_six(make_transaction, monthly_deli_baseline, prefs, today):
    recent = [make_transaction(10.0, days_ago, "Corner Deli") for days_ago in (6, 3, 0)]

    anomaly = check_frequency_spike("corner deli", recent, monthly_deli_baseline, prefs, today)

    assert anomaly is not None
    assert anomaly.related_transaction_ids == [t.transaction_id for t in recent]


def test_first_transaction_ids(make_transaction):
    older = make_transaction(20.0, 10, "Best Buy", transaction_id="bb_1")
    newer = make_transaction(20.0, 2, "Best Buy", transaction_id="bb_2")
    other = make_transaction(5.0, 1, "Corner Deli", transaction_id="deli_1")

    assert first_transaction_ids([newer, other, older]) == {"best buy": "bb_1", "corner deli": "deli_1"}


def test_new_merchant_skips_repeat_purchases(make_transaction, prefs, today):
    """A merchant seen once before has no baseline but is not new"""
    earlier = make_transaction(150.0, 30, "Best Buy", transaction_id="bb_first")
    repeat = make_transaction(150.0, 1, "Best Buy", transaction_id="bb_second")

    assert detect_anomalies([repeat], [earlier, repeat], [], prefs, today) == []


def test_new_merchant_flags_only_first_of_a_burst(make_transaction, prefs, today):
    first = make_transaction(300.0, 4, "Furniture Barn", transaction_id="fb_1")
    second = make_transaction(450.0, 1, "Furniture Barn", transaction_id="fb_2")

    anomalies = detect_anomalies([first, second], [first, second], [], prefs, today)

    assert [(a.anomaly_type, a.transaction_id) for a in anomalies] == [("new_merchant_large", "fb_1")]
