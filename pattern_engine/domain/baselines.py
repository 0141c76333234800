"""Merchant baseline statistics - per-merchant amount and cadence summaries"""

import statistics
from collections import Counter, defaultdict
from typing import Dict, List, Optional

from pattern_engine.domain.models import MerchantBaseline, Transaction
from pattern_engine.domain.recurring import classify_frequency
from pattern_engine.utils.date_utils import day_intervals, round_half_up

SUBSCRIPTION_MAX_VARIATION = 0.05  # std-dev / mean
SUBSCRIPTION_MIN_COUNT = 3


def build_merchant_baselines(transactions: List[Transaction]) -> List[MerchantBaseline]:
    """
    Build one baseline per merchant key with at least 2 transactions.

    Unlike recurring detection this covers every merchant and direction,
    so a coffee shop excluded from bills still gets a baseline.
    """
    groups: Dict[str, List[Transaction]] = defaultdict(list)
    for txn in transactions:
        key = txn.merchant_key
        if key:
            groups[key].append(txn)

    return [
        build_baseline(key, txns)
        for key, txns in sorted(groups.items())
        if len(txns) >= 2
    ]


def build_baseline(key: str, txns: List[Transaction]) -> MerchantBaseline:
    """Compute the statistics for a single merchant group"""
    ordered = sorted(txns, key=lambda t: (t.date, t.transaction_id))
    amounts = [abs(t.amount) for t in ordered]

    mean = statistics.fmean(amounts)
    median = statistics.median(amounts)
    std_dev = statistics.pstdev(amounts)

    intervals = day_intervals([t.date for t in ordered])
    avg_days_between = statistics.fmean(intervals) if intervals else None
    frequency = classify_frequency(avg_days_between) if avg_days_between is not None else None

    # Coefficient of variation, guarded against an all-zero merchant
    variation = std_dev / mean if mean > 0 else None
    is_subscription = (
        frequency == "monthly"
        and variation is not None
        and variation < SUBSCRIPTION_MAX_VARIATION
        and len(ordered) >= SUBSCRIPTION_MIN_COUNT
    )

    subscription_day: Optional[int] = None
    if is_subscription:
        subscription_day = round_half_up(statistics.fmean(t.date.day for t in ordered))

    return MerchantBaseline(
        merchant_name=ordered[0].merchant or key,
        merchant_key=key,
        average_amount=round(mean, 2),
        median_amount=round(median, 2),
        std_deviation=round(std_dev, 2),
        min_amount=min(amounts),
        max_amount=max(amounts),
        typical_frequency=frequency or "irregular",
        average_days_between=round(avg_days_between, 2) if avg_days_between is not None else None,
        transaction_count=len(ordered),
        typical_category=_typical_category(ordered),
        is_likely_subscription=is_subscription,
        subscription_amount=round(median, 2) if is_subscription else None,
        subscription_day_of_month=subscription_day,
        first_seen_date=ordered[0].date,
        last_seen_date=ordered[-1].date,
    )


def _typical_category(ordered: List[Transaction]) -> Optional[str]:
    # Counter keeps insertion order for ties, so the first-seen category wins
    counts = Counter(t.category for t in ordered if t.category)
    if not counts:
        return None
    return counts.most_common(1)[0][0]
