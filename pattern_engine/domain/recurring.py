"""Recurring pattern detection - bills, subscriptions and income sources"""

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

from pattern_engine.domain.models import FREQUENCY_DAYS, RecurringConfig, RecurringItem, Transaction
from pattern_engine.utils.date_utils import day_intervals

logger = logging.getLogger(__name__)

# Merchants that are ordinary shopping, not recurring bills
DEFAULT_EXCLUDED_MERCHANTS = frozenset({
    "walmart", "target", "costco", "sams club", "aldi", "kroger", "heb",
    "hobby lobby", "michaels", "joann", "dollar tree", "dollar general",
    "home depot", "lowes", "menards", "ace hardware",
    "amazon", "ebay", "etsy",
    "mcdonalds", "burger king", "wendys", "chick fil a", "taco bell",
    "starbucks", "dunkin", "sonic", "whataburger", "chipotle",
    "gas", "shell", "exxon", "chevron", "bp ", "quiktrip", "racetrac",
    "walgreens", "cvs", "rite aid",
    "braums", "dairy queen",
    "publix", "safeway", "albertsons", "food lion", "piggly wiggly",
    "whole foods", "trader joes", "sprouts",
})

# Category codes that are typically shopping, not bills
DEFAULT_EXCLUDED_CATEGORIES = frozenset({
    "FOOD_AND_DRINK",
    "MERCHANDISE",
    "SHOPPING",
    "GENERAL_MERCHANDISE",
    "SUPERMARKETS_AND_GROCERIES",
    "GAS_STATIONS",
})

# Inclusive mean-interval bounds per frequency; gaps between buckets are unclassified
FREQUENCY_BOUNDS = (
    ("weekly", 5, 10),
    ("biweekly", 12, 18),
    ("monthly", 25, 35),
    ("quarterly", 80, 100),
    ("yearly", 350, 380),
)

BASE_CONFIDENCE = 50
OCCURRENCE_BONUS_PER_TXN = 5
MAX_OCCURRENCE_BONUS = 25
AMOUNT_CONSISTENCY_BONUS = 10
INTERVAL_CONSISTENCY_BONUS = 15

ANNUAL_MULTIPLIER = {"weekly": 52, "biweekly": 26, "monthly": 12, "quarterly": 4, "yearly": 1}


def default_recurring_config() -> RecurringConfig:
    """Recurring detection config with the built-in shopping exclusions"""
    return RecurringConfig(
        excluded_merchants=DEFAULT_EXCLUDED_MERCHANTS,
        excluded_categories=DEFAULT_EXCLUDED_CATEGORIES,
    )


def classify_frequency(mean_interval: float) -> Optional[str]:
    """Map a mean day-interval to a frequency bucket, or None if it falls in no bucket"""
    for frequency, low, high in FREQUENCY_BOUNDS:
        if low <= mean_interval <= high:
            return frequency
    return None


def is_excluded(transaction: Transaction, config: RecurringConfig) -> bool:
    """True when merchant name or category marks ordinary shopping"""
    merchant = (transaction.merchant or "").lower()
    if any(excluded in merchant for excluded in config.excluded_merchants):
        return True
    return bool(transaction.category) and transaction.category in config.excluded_categories


def detect_recurring_items(transactions: List[Transaction], config: RecurringConfig) -> List[RecurringItem]:
    """
    Detect recurring bills from expense transactions.

    Steps:
    1. Keep expenses, drop excluded merchants/categories
    2. Group by merchant key (groups of 2+)
    3. Reject groups with inconsistent amounts (outside tolerance of mean)
    4. Classify frequency from mean interval; reject unclassified groups
    5. Score confidence, keep groups at or above config.min_confidence

    Returns items ordered by confidence, then most recent last_date.
    """
    candidates = [
        t for t in transactions
        if t.is_expense and not t.excluded_from_budget and not is_excluded(t, config)
    ]
    return _detect(candidates, config, is_income=False)


def detect_recurring_income(transactions: List[Transaction], config: RecurringConfig) -> List[RecurringItem]:
    """Detect recurring income sources (paychecks, transfers in) with the same rules, minus shopping exclusions"""
    candidates = [t for t in transactions if t.is_inflow and not t.excluded_from_budget]
    return _detect(candidates, config, is_income=True)


def _detect(transactions: List[Transaction], config: RecurringConfig, is_income: bool) -> List[RecurringItem]:
    groups: Dict[str, List[Transaction]] = defaultdict(list)
    for txn in transactions:
        key = txn.merchant_key
        if key:
            groups[key].append(txn)

    items = []
    for key, txns in groups.items():
        if len(txns) < 2:
            continue
        item = _evaluate_group(key, txns, config, is_income)
        if item is not None:
            items.append(item)

    items.sort(key=lambda i: (-i.confidence, -i.last_date.toordinal(), i.merchant_key))
    return items


def _evaluate_group(
    key: str,
    txns: List[Transaction],
    config: RecurringConfig,
    is_income: bool,
) -> Optional[RecurringItem]:
    ordered = sorted(txns, key=lambda t: (t.date, t.transaction_id))
    amounts = [abs(t.amount) for t in ordered]
    mean_amount = sum(amounts) / len(amounts)
    if mean_amount == 0:
        return None

    amount_consistent = all(abs(a - mean_amount) / mean_amount < config.amount_tolerance for a in amounts)
    if not amount_consistent:
        logger.debug("Rejected %s: inconsistent amounts", key)
        return None

    intervals = day_intervals([t.date for t in ordered])
    mean_interval = sum(intervals) / len(intervals)
    frequency = classify_frequency(mean_interval)
    if frequency is None:
        logger.debug("Rejected %s: mean interval %.1f days matches no frequency", key, mean_interval)
        return None

    expected = FREQUENCY_DAYS[frequency]
    interval_consistent = all(abs(i - expected) / expected < config.interval_tolerance for i in intervals)

    confidence = BASE_CONFIDENCE
    confidence += min(len(ordered) * OCCURRENCE_BONUS_PER_TXN, MAX_OCCURRENCE_BONUS)
    if amount_consistent:
        confidence += AMOUNT_CONSISTENCY_BONUS
    if interval_consistent:
        confidence += INTERVAL_CONSISTENCY_BONUS
    confidence = min(confidence, 100)

    if confidence < config.min_confidence:
        return None

    last = ordered[-1]
    return RecurringItem(
        merchant_key=key,
        display_name=last.merchant,
        average_amount=round(mean_amount, 2),
        frequency=frequency,
        last_date=last.date,
        next_expected_date=last.date + timedelta(days=expected),
        occurrence_count=len(ordered),
        confidence=confidence,
        category=last.category,
        is_income=is_income,
    )


def yearly_cost(item: RecurringItem) -> float:
    """Annualized amount for a recurring item"""
    return round(item.average_amount * ANNUAL_MULTIPLIER[item.frequency], 2)
