"""Anomaly detection - rule checks against merchant baselines"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Set

from pattern_engine.domain.models import Anomaly, AnomalyPreferences, MerchantBaseline, Transaction

logger = logging.getLogger(__name__)

MIN_BASELINE_OBSERVATIONS = 3
MIN_STD_DEVIATION = 1.0
AMOUNT_MATCH_TOLERANCE = 0.01
SPIKE_WINDOW_DAYS = 7
SPIKE_RATIO = 2
SPIKE_HIGH_RATIO = 4
PRICE_INCREASE_HIGH = 0.25
NEW_MERCHANT_HIGH_MULTIPLE = 5


def get_severity(deviation_percent: float, prefs: AnomalyPreferences) -> str:
    """
    Severity from percent deviation, scaled by sensitivity.

    At sensitivity 5 the multiplier is 1.2: critical >= 600%, high >= 240%,
    medium >= 120%. Sensitivity 10 drops the multiplier to 0.2.
    """
    multiplier = prefs.sensitivity_multiplier
    if deviation_percent >= 500 * multiplier:
        return "critical"
    if deviation_percent >= 200 * multiplier:
        return "high"
    if deviation_percent >= 100 * multiplier:
        return "medium"
    return "low"


def check_unusual_amount(
    transaction: Transaction,
    baseline: Optional[MerchantBaseline],
    prefs: AnomalyPreferences,
) -> Optional[Anomaly]:
    """Charge far above the merchant's typical amount (in standard deviations)"""
    if not prefs.detect_unusual_amounts:
        return None
    if baseline is None or baseline.transaction_count < MIN_BASELINE_OBSERVATIONS:
        return None

    mean = baseline.average_amount
    std_dev = baseline.std_deviation
    # No meaningful spread (or no mean) to compare against
    if std_dev < MIN_STD_DEVIATION or mean <= 0:
        return None

    amount = abs(transaction.amount)
    deviations = (amount - mean) / std_dev
    if deviations < prefs.unusual_amount_threshold:
        return None

    deviation_percent = (amount - mean) / mean * 100
    return Anomaly(
        transaction_id=transaction.transaction_id,
        anomaly_type="unusual_amount",
        severity=get_severity(deviation_percent, prefs),
        title=f"Unusual charge from {transaction.merchant}",
        description=(
            f"This ${amount:.2f} charge is {deviation_percent:.0f}% higher than "
            f"your typical ${mean:.2f} at this merchant."
        ),
        merchant_name=transaction.merchant,
        amount=amount,
        expected_amount=mean,
        historical_average=mean,
        deviation_percent=round(deviation_percent, 2),
    )


def check_duplicate_charge(
    transaction: Transaction,
    recent_transactions: List[Transaction],
    prefs: AnomalyPreferences,
) -> Optional[Anomaly]:
    """Same merchant, same amount, different transaction within the duplicate window"""
    if not prefs.detect_duplicate_charges:
        return None

    key = transaction.merchant_key
    if not key:
        return None

    window = timedelta(hours=prefs.duplicate_window_hours)
    duplicates = [
        t for t in recent_transactions
        if t.transaction_id != transaction.transaction_id
        and t.merchant_key == key
        and abs(t.amount - transaction.amount) < AMOUNT_MATCH_TOLERANCE
        and abs(t.occurred_at - transaction.occurred_at) <= window
    ]
    if not duplicates:
        return None

    amount = abs(transaction.amount)
    return Anomaly(
        transaction_id=transaction.transaction_id,
        anomaly_type="duplicate_charge",
        severity="high",
        title=f"Possible duplicate charge from {transaction.merchant}",
        description=(
            f"Found {len(duplicates) + 1} identical charges of ${amount:.2f} within "
            f"{prefs.duplicate_window_hours:g} hours. This could be a double charge."
        ),
        merchant_name=transaction.merchant,
        amount=amount,
        related_transaction_ids=[t.transaction_id for t in duplicates],
    )


def check_price_increase(
    transaction: Transaction,
    baseline: Optional[MerchantBaseline],
    prefs: AnomalyPreferences,
) -> Optional[Anomaly]:
    """Subscription charged above its usual price"""
    if not prefs.detect_price_increases:
        return None
    if baseline is None or not baseline.is_likely_subscription or not baseline.subscription_amount:
        return None

    amount = abs(transaction.amount)
    expected = baseline.subscription_amount
    increase = (amount - expected) / expected
    if increase < prefs.price_increase_threshold:
        return None

    return Anomaly(
        transaction_id=transaction.transaction_id,
        anomaly_type="price_increase",
        severity="high" if increase >= PRICE_INCREASE_HIGH else "medium",
        title=f"{transaction.merchant} subscription increased",
        description=(
            f"Your subscription went from ${expected:.2f} to ${amount:.2f} "
            f"({increase * 100:.0f}% increase)."
        ),
        merchant_name=transaction.merchant,
        amount=amount,
        expected_amount=expected,
        historical_average=baseline.average_amount,
        deviation_percent=round(increase * 100, 2),
    )


def check_new_merchant_large(
    transaction: Transaction,
    baseline: Optional[MerchantBaseline],
    prefs: AnomalyPreferences,
) -> Optional[Anomaly]:
    """Large first-ever purchase at a merchant with no baseline"""
    if not prefs.detect_new_merchants or baseline is not None:
        return None

    amount = abs(transaction.amount)
    threshold = prefs.new_merchant_amount_threshold
    if amount < threshold:
        return None

    return Anomaly(
        transaction_id=transaction.transaction_id,
        anomaly_type="new_merchant_large",
        severity="high" if amount >= threshold * NEW_MERCHANT_HIGH_MULTIPLE else "medium",
        title=f"Large first-time purchase at {transaction.merchant}",
        description=(
            f"This is your first transaction at this merchant and it's ${amount:.2f}. "
            f"Please verify this is legitimate."
        ),
        merchant_name=transaction.merchant,
        amount=amount,
    )


def check_frequency_spike(
    merchant_key: str,
    recent_transactions: List[Transaction],
    baseline: Optional[MerchantBaseline],
    prefs: AnomalyPreferences,
    today: date,
) -> Optional[Anomaly]:
    """
    Many more transactions at a merchant in the trailing week than its cadence predicts.

    The trailing week is the 7 calendar days ending today. expected_per_week
    = 7 / average_days_between; fires when the trailing count is at least
    twice that (and at least prefs.frequency_spike_min_count transactions).
    """
    if not prefs.detect_frequency_spikes or not merchant_key:
        return None
    if baseline is None or not baseline.average_days_between:
        return None

    window_start = today - timedelta(days=SPIKE_WINDOW_DAYS - 1)
    cluster = sorted(
        (
            t for t in recent_transactions
            if t.merchant_key == merchant_key and window_start <= t.date <= today
        ),
        key=lambda t: (t.date, t.transaction_id),
    )
    if len(cluster) < prefs.frequency_spike_min_count:
        return None

    expected_per_week = SPIKE_WINDOW_DAYS / baseline.average_days_between
    ratio = len(cluster) / expected_per_week
    if ratio < SPIKE_RATIO:
        return None

    total = sum(abs(t.amount) for t in cluster)
    merchant_name = cluster[-1].merchant
    return Anomaly(
        # Most recent transaction anchors the (user, transaction, type) key
        transaction_id=cluster[-1].transaction_id,
        anomaly_type="frequency_spike",
        severity="high" if ratio >= SPIKE_HIGH_RATIO else "medium",
        title=f"Unusual activity at {merchant_name}",
        description=(
            f"You've had {len(cluster)} transactions at this merchant in the past week, "
            f"which is {ratio:.1f}x your normal rate. Total: ${total:.2f}"
        ),
        merchant_name=merchant_name,
        amount=round(total, 2),
        historical_average=baseline.average_amount,
        deviation_percent=round((ratio - 1) * 100, 2),
        related_transaction_ids=[t.transaction_id for t in cluster],
    )


def first_transaction_ids(transactions: List[Transaction]) -> Dict[str, str]:
    """Merchant key -> id of its earliest transaction (by occurred_at, then id)"""
    first: Dict[str, Transaction] = {}
    for txn in transactions:
        key = txn.merchant_key
        if not key:
            continue
        current = first.get(key)
        if current is None or (txn.occurred_at, txn.transaction_id) < (current.occurred_at, current.transaction_id):
            first[key] = txn
    return {key: txn.transaction_id for key, txn in first.items()}


def detect_anomalies(
    new_transactions: List[Transaction],
    history: List[Transaction],
    baselines: List[MerchantBaseline],
    prefs: AnomalyPreferences,
    today: date,
) -> List[Anomaly]:
    """
    Run every check over the new transactions.

    Args:
        new_transactions: Transactions to evaluate
        history: Context for duplicate and spike checks (should include new_transactions)
        baselines: Merchant baselines, matched by merchant key
        prefs: Enable flags and thresholds
        today: Reference date for the trailing spike window

    A duplicate cluster is reported once per run, and frequency spikes
    once per merchant per run. The new-merchant check only runs on the
    earliest transaction ever seen for its merchant key.
    """
    by_key: Dict[str, MerchantBaseline] = {b.merchant_key: b for b in baselines}
    first_seen = first_transaction_ids(history + new_transactions)
    anomalies: List[Anomaly] = []
    checked_spikes: Set[str] = set()
    reported_duplicates: Set[str] = set()

    for txn in sorted(new_transactions, key=lambda t: (t.occurred_at, t.transaction_id)):
        key = txn.merchant_key
        baseline = by_key.get(key)

        duplicate = None
        if txn.transaction_id not in reported_duplicates:
            duplicate = check_duplicate_charge(txn, history, prefs)
            if duplicate is not None:
                reported_duplicates.update(duplicate.related_transaction_ids)

        found = [
            check_unusual_amount(txn, baseline, prefs),
            duplicate,
            check_price_increase(txn, baseline, prefs),
        ]
        if key and first_seen.get(key) == txn.transaction_id:
            found.append(check_new_merchant_large(txn, baseline, prefs))

        if key and key not in checked_spikes:
            checked_spikes.add(key)
            found.append(check_frequency_spike(key, history, baseline, prefs, today))

        anomalies.extend(a for a in found if a is not None)

    logger.debug("Detected %d anomalies across %d transactions", len(anomalies), len(new_transactions))
    return anomalies
