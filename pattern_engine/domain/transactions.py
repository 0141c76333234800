"""Boundary parsing of raw transaction records into Transaction models"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from pattern_engine.domain.exceptions import InvalidTransactionDataError
from pattern_engine.domain.models import Transaction

logger = logging.getLogger(__name__)


@dataclass
class ParsedTransactions:
    """Valid transactions plus the count of rejected records"""

    transactions: List[Transaction] = field(default_factory=list)
    skipped_count: int = 0


def parse_transaction(record: Dict[str, Any]) -> Transaction:
    """
    Build a Transaction from a raw record.

    Accepts `merchant`, `merchant_name` or `name` for the description and an
    optional ISO `posted_at` timestamp.

    Raises:
        InvalidTransactionDataError: Missing or unparseable id, date or amount
    """
    record_id = _record_id(record)
    try:
        raw_date = record["date"]
        raw_amount = record["amount"]
        if raw_date is None or raw_amount is None:
            raise InvalidTransactionDataError("date and amount are required", record_id)

        txn_date = raw_date if isinstance(raw_date, date) else date.fromisoformat(str(raw_date)[:10])
        if isinstance(txn_date, datetime):
            txn_date = txn_date.date()

        posted_at = record.get("posted_at")
        if posted_at is not None and not isinstance(posted_at, datetime):
            posted_at = datetime.fromisoformat(str(posted_at))

        amount = float(raw_amount)
        if not math.isfinite(amount):
            raise InvalidTransactionDataError(f"amount is not finite: {raw_amount}", record_id)

        merchant = record.get("merchant") or record.get("merchant_name") or record.get("name") or ""

        return Transaction(
            transaction_id=str(record.get("transaction_id") or record["id"]),
            date=txn_date,
            amount=amount,
            merchant=merchant,
            category=record.get("category"),
            is_income=bool(record.get("is_income", False)),
            excluded_from_budget=bool(record.get("excluded_from_budget", False)),
            posted_at=posted_at,
        )
    except InvalidTransactionDataError:
        raise
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise InvalidTransactionDataError(f"Invalid transaction record: {e}", record_id) from e


def parse_transactions(records: Iterable[Dict[str, Any]]) -> ParsedTransactions:
    """Parse records, rejecting malformed ones individually and counting them"""
    result = ParsedTransactions()
    for record in records:
        try:
            result.transactions.append(parse_transaction(record))
        except InvalidTransactionDataError as e:
            result.skipped_count += 1
            logger.warning(
                "Skipping malformed transaction",
                extra={"reason": str(e), "transaction_id": e.transaction_id},
            )
    return result


def _record_id(record: Any) -> Optional[str]:
    if not isinstance(record, dict):
        return None
    raw_id = record.get("transaction_id") or record.get("id")
    return str(raw_id) if raw_id is not None else None
