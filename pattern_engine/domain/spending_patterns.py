"""Spending pattern learning - time and category profiles of a user's spending"""

import logging
import statistics
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from pattern_engine.domain.models import (
    DailySpendingRate,
    IncomePattern,
    PatternInsight,
    SpendingPattern,
    SpendingPatternAnalysis,
    Transaction,
)
from pattern_engine.utils.date_utils import add_months, day_intervals

logger = logging.getLogger(__name__)

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)

MIN_DAY_OCCURRENCES = 3
MIN_MONTH_OCCURRENCES = 2
MIN_CATEGORY_TRANSACTIONS = 5
MIN_SEASONAL_MONTHS = 6
MAX_INSIGHTS = 10

# Share of the blended daily prediction each dimension may claim
PREDICTION_WEIGHTS: Dict[str, float] = {
    "day_of_week": 0.3,
    "week_of_month": 0.25,
    "month_of_year": 0.25,
    "seasonal": 0.2,
    "category_daily": 0.4,
}
DAYS_PER_MONTH = 30
MIN_BLEND_CONFIDENCE = 0.3
MAX_BLEND_WEIGHT = 0.6

INCOME_SOURCE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("salary", ("payroll", "salary", "direct dep")),
    ("transfer", ("venmo", "paypal", "zelle")),
    ("investment", ("dividend", "interest")),
)


def week_of_month(day: date) -> str:
    return f"week_{min((day.day - 1) // 7 + 1, 4)}"


def season_of(day: date) -> str:
    if 3 <= day.month <= 5:
        return "spring"
    if 6 <= day.month <= 8:
        return "summer"
    if 9 <= day.month <= 11:
        return "fall"
    return "winter"


def pattern_confidence(occurrences: int, std_dev: float, average: float, months_of_data: int) -> float:
    """
    0-1 confidence in a learned pattern.

    Up to 0.4 from the number of observations, up to 0.3 for consistency
    (low coefficient of variation) and up to 0.3 for months of history.
    """
    confidence = min(occurrences / 10, 0.4)
    variation = std_dev / average if average > 0 else 1.0
    confidence += max(0.0, 0.3 - variation * 0.3)
    confidence += min(months_of_data / 12, 0.3)
    return min(max(confidence, 0.0), 1.0)


def _pattern(
    pattern_type: str,
    dimension_key: str,
    amounts: Sequence[float],
    months_of_data: int,
    category: Optional[str] = None,
) -> SpendingPattern:
    average = statistics.fmean(amounts)
    std_dev = statistics.pstdev(amounts)
    return SpendingPattern(
        pattern_type=pattern_type,
        dimension_key=dimension_key,
        category=category,
        average_amount=round(average, 2),
        median_amount=round(statistics.median(amounts), 2),
        std_deviation=round(std_dev, 2),
        min_amount=min(amounts),
        max_amount=max(amounts),
        occurrence_count=len(amounts),
        confidence_score=round(pattern_confidence(len(amounts), std_dev, average, months_of_data), 4),
        months_of_data=months_of_data,
    )


def _monthly_totals(expenses: List[Transaction]) -> Dict[Tuple[int, int], float]:
    totals: Dict[Tuple[int, int], float] = defaultdict(float)
    for txn in expenses:
        totals[(txn.date.year, txn.date.month)] += txn.amount
    return totals


def extract_day_of_week_patterns(expenses: List[Transaction], months_of_data: int) -> List[SpendingPattern]:
    """Average transaction size per weekday (weekdays seen fewer than 3 times are skipped)"""
    groups: Dict[int, List[float]] = defaultdict(list)
    for txn in expenses:
        groups[txn.date.weekday()].append(txn.amount)

    return [
        _pattern("day_of_week", DAY_NAMES[weekday], groups[weekday], months_of_data)
        for weekday in range(7)
        if len(groups[weekday]) >= MIN_DAY_OCCURRENCES
    ]


def extract_week_of_month_patterns(expenses: List[Transaction], months_of_data: int) -> List[SpendingPattern]:
    """Average transaction size per week of the month (days 22+ are week_4)"""
    groups: Dict[str, List[float]] = defaultdict(list)
    for txn in expenses:
        groups[week_of_month(txn.date)].append(txn.amount)

    return [
        _pattern("week_of_month", week, groups[week], months_of_data)
        for week in ("week_1", "week_2", "week_3", "week_4")
        if len(groups[week]) >= MIN_DAY_OCCURRENCES
    ]


def extract_month_of_year_patterns(expenses: List[Transaction], months_of_data: int) -> List[SpendingPattern]:
    """Monthly spending totals grouped by calendar month across years"""
    groups: Dict[int, List[float]] = defaultdict(list)
    for (_, month), total in sorted(_monthly_totals(expenses).items()):
        groups[month].append(total)

    return [
        _pattern("month_of_year", MONTH_NAMES[month - 1], groups[month], months_of_data)
        for month in sorted(groups)
        if len(groups[month]) >= MIN_MONTH_OCCURRENCES
    ]


def extract_seasonal_patterns(expenses: List[Transaction], months_of_data: int) -> List[SpendingPattern]:
    """Monthly spending totals grouped by season; needs six months of history"""
    if months_of_data < MIN_SEASONAL_MONTHS:
        return []

    groups: Dict[str, List[float]] = defaultdict(list)
    for (year, month), total in sorted(_monthly_totals(expenses).items()):
        groups[season_of(date(year, month, 15))].append(total)

    return [
        _pattern("seasonal", season, groups[season], months_of_data)
        for season in ("spring", "summer", "fall", "winter")
        if len(groups[season]) >= MIN_MONTH_OCCURRENCES
    ]


def extract_category_patterns(expenses: List[Transaction], months_of_data: int) -> List[SpendingPattern]:
    """
    Per-category daily and monthly totals.

    category_daily averages the totals of days that had spending in the
    category; category_monthly needs at least two months.
    """
    groups: Dict[str, List[Transaction]] = defaultdict(list)
    for txn in expenses:
        groups[txn.category or "uncategorized"].append(txn)

    patterns: List[SpendingPattern] = []
    for category in sorted(groups):
        txns = groups[category]
        if len(txns) < MIN_CATEGORY_TRANSACTIONS:
            continue

        daily: Dict[date, float] = defaultdict(float)
        for txn in txns:
            daily[txn.date] += txn.amount
        patterns.append(_pattern("category_daily", "daily", list(daily.values()), months_of_data, category))

        monthly = list(_monthly_totals(txns).values())
        if len(monthly) >= MIN_MONTH_OCCURRENCES:
            patterns.append(_pattern("category_monthly", "monthly", monthly, months_of_data, category))

    return patterns


def classify_income_frequency(average_interval: float) -> str:
    if average_interval <= 10:
        return "weekly"
    if average_interval <= 18:
        return "biweekly"
    if average_interval <= 20:
        return "semimonthly"
    if average_interval <= 35:
        return "monthly"
    return "irregular"


def income_source_type(name: str) -> str:
    lowered = name.lower()
    for source_type, keywords in INCOME_SOURCE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return source_type
    return "other"


def extract_income_patterns(transactions: List[Transaction]) -> List[IncomePattern]:
    """Profile every income source seen at least twice, largest first"""
    groups: Dict[str, List[Transaction]] = defaultdict(list)
    for txn in transactions:
        if txn.is_inflow and txn.merchant_key:
            groups[txn.merchant_key].append(txn)

    patterns = []
    for key, txns in groups.items():
        if len(txns) < 2:
            continue

        ordered = sorted(txns, key=lambda t: (t.date, t.transaction_id))
        amounts = [abs(t.amount) for t in ordered]
        average = statistics.fmean(amounts)
        std_dev = statistics.pstdev(amounts)

        intervals = day_intervals([t.date for t in ordered])
        frequency = classify_income_frequency(statistics.fmean(intervals))

        day_counts = Counter(t.date.day for t in ordered)
        typical_days = sorted(day for day, count in day_counts.items() if count >= len(ordered) * 0.3)

        last = ordered[-1].date
        if frequency == "weekly":
            next_expected = last + timedelta(days=7)
        elif frequency == "biweekly":
            next_expected = last + timedelta(days=14)
        elif frequency == "semimonthly":
            next_expected = last + timedelta(days=15)
        else:
            next_expected = add_months(last, 1)

        name = ordered[0].merchant or key
        patterns.append(
            IncomePattern(
                source_name=name,
                source_key=key,
                source_type=income_source_type(name),
                frequency=frequency,
                typical_days_of_month=typical_days,
                typical_day_of_week=ordered[0].date.weekday() if frequency == "weekly" else None,
                average_amount=round(average, 2),
                min_amount=min(amounts),
                max_amount=max(amounts),
                variability=round(std_dev / average, 4) if average > 0 else 0.0,
                confidence_score=round(pattern_confidence(len(ordered), std_dev, average, 12), 4),
                occurrences=len(ordered),
                last_occurrence=last,
                next_expected=next_expected,
            )
        )

    patterns.sort(key=lambda p: (-p.average_amount, p.source_key))
    return patterns


def generate_insights(patterns: List[SpendingPattern], income_patterns: List[IncomePattern]) -> List[PatternInsight]:
    """Rank noteworthy findings by impact (at most 10)"""
    insights: List[PatternInsight] = []

    day_patterns = [p for p in patterns if p.pattern_type == "day_of_week"]
    if day_patterns:
        typical = statistics.fmean(p.average_amount for p in day_patterns)
        for pattern in day_patterns:
            if typical > 0 and pattern.average_amount > typical * 1.3:
                lift = pattern.average_amount / typical - 1
                insights.append(
                    PatternInsight(
                        title=f"Higher spending on {pattern.dimension_key.capitalize()}s",
                        description=(
                            f"You spend {lift * 100:.0f}% more on {pattern.dimension_key.capitalize()}s "
                            f"compared to other days."
                        ),
                        impact_score=round(min(lift * 0.5, 0.8), 4),
                        actionable=True,
                    )
                )

    weeks = {p.dimension_key: p for p in patterns if p.pattern_type == "week_of_month"}
    first, last = weeks.get("week_1"), weeks.get("week_4")
    if first and last and last.average_amount > 0 and first.average_amount > last.average_amount * 1.5:
        insights.append(
            PatternInsight(
                title="Post-payday spending spike",
                description=(
                    f"You spend {(first.average_amount / last.average_amount - 1) * 100:.0f}% more in the "
                    f"first week of the month compared to the last week."
                ),
                impact_score=0.7,
                actionable=True,
            )
        )

    for pattern in patterns:
        if pattern.pattern_type != "category_monthly" or pattern.average_amount <= 100:
            continue
        variation = pattern.std_deviation / pattern.average_amount
        if variation > 0.5:
            insights.append(
                PatternInsight(
                    title=f"Inconsistent {pattern.category} spending",
                    description=(
                        f"Your {pattern.category} spending varies significantly month to month "
                        f"(±{variation * 100:.0f}%). This makes predictions less accurate."
                    ),
                    impact_score=round(variation * 0.6, 4),
                    actionable=False,
                    category=pattern.category,
                )
            )

    for income in income_patterns:
        if income.variability > 0.2:
            insights.append(
                PatternInsight(
                    title=f"Variable income from {income.source_name}",
                    description=(
                        f"Income from {income.source_name} varies by ±{income.variability * 100:.0f}%. "
                        f"Using average of ${income.average_amount:.0f} for predictions."
                    ),
                    impact_score=round(income.variability * 0.5, 4),
                    actionable=False,
                )
            )

    insights.sort(key=lambda i: -i.impact_score)
    return insights[:MAX_INSIGHTS]


def analyze_spending_patterns(transactions: List[Transaction]) -> SpendingPatternAnalysis:
    """
    Learn spending and income patterns from a user's history.

    Expense patterns come from non-excluded expense transactions; income
    patterns from inflows. months_of_data is the history span in 30-day
    months (at least 1).
    """
    if transactions:
        span = (max(t.date for t in transactions) - min(t.date for t in transactions)).days
        months_of_data = max(1, round(span / DAYS_PER_MONTH))
    else:
        months_of_data = 1

    expenses = [t for t in transactions if t.is_expense and not t.excluded_from_budget]
    spending_patterns = (
        extract_day_of_week_patterns(expenses, months_of_data)
        + extract_week_of_month_patterns(expenses, months_of_data)
        + extract_month_of_year_patterns(expenses, months_of_data)
        + extract_category_patterns(expenses, months_of_data)
        + extract_seasonal_patterns(expenses, months_of_data)
    )
    income_patterns = extract_income_patterns(transactions)

    categorized = sum(1 for t in transactions if t.category)
    coverage = categorized / len(transactions) if transactions else 0.0

    logger.debug(
        "Learned %d spending and %d income patterns from %d transactions",
        len(spending_patterns), len(income_patterns), len(transactions),
    )
    return SpendingPatternAnalysis(
        spending_patterns=spending_patterns,
        income_patterns=income_patterns,
        insights=generate_insights(spending_patterns, income_patterns),
        total_transactions=len(transactions),
        months_of_data=months_of_data,
        category_coverage=round(coverage, 4),
        data_completeness=round(min(months_of_data / 12, 1) * 0.5 + coverage * 0.5, 4),
    )


def predict_daily_spending(
    patterns: Sequence[SpendingPattern],
    day: date,
    category: Optional[str] = None,
) -> Tuple[float, float]:
    """
    Confidence-weighted spending prediction for one day.

    Blends the day-of-week, week-of-month, month-of-year (per day) and
    seasonal (per day) patterns that match `day`, plus the category's daily
    pattern when a category is given. Returns (amount, confidence); both are
    0 when no pattern matches.
    """
    wanted = {
        ("day_of_week", DAY_NAMES[day.weekday()]): 1,
        ("week_of_month", week_of_month(day)): 1,
        ("month_of_year", MONTH_NAMES[day.month - 1]): DAYS_PER_MONTH,
        ("seasonal", season_of(day)): DAYS_PER_MONTH,
    }

    weighted_sum = 0.0
    total_weight = 0.0
    confidence_sum = 0.0
    for pattern in patterns:
        if category is not None and pattern.pattern_type == "category_daily" and pattern.category == category:
            divisor = 1
        elif pattern.category is None and (pattern.pattern_type, pattern.dimension_key) in wanted:
            divisor = wanted[(pattern.pattern_type, pattern.dimension_key)]
        else:
            continue
        weight = pattern.confidence_score * PREDICTION_WEIGHTS[pattern.pattern_type]
        weighted_sum += pattern.average_amount / divisor * weight
        total_weight += weight
        confidence_sum += pattern.confidence_score

    if total_weight <= 0:
        return 0.0, 0.0
    dimensions = 5 if category is not None else 4
    return weighted_sum / total_weight, confidence_sum / dimensions


@dataclass(frozen=True)
class PatternSpendingRate:
    """
    Daily spending rate adjusted by learned patterns.

    Days whose pattern prediction is confident enough (> 0.3) blend the
    base rate with the prediction, giving the prediction a weight of its
    confidence capped at 0.6. Other days use the base rate unchanged.
    """

    base: DailySpendingRate
    patterns: Tuple[SpendingPattern, ...] = ()

    def amount_for(self, day: date) -> float:
        base_amount = self.base.amount_for(day)
        predicted, confidence = predict_daily_spending(self.patterns, day)
        if confidence <= MIN_BLEND_CONFIDENCE:
            return base_amount
        weight = min(confidence, MAX_BLEND_WEIGHT)
        return base_amount * (1 - weight) + predicted * weight
