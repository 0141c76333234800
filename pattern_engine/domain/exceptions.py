"""Domain-specific exceptions"""

from typing import Optional


class DomainException(Exception):
    """Base exception for the analytics engine"""


class BankAPIError(DomainException):
    """Bank API returned an error or is unavailable"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidTransactionDataError(DomainException):
    """Transaction record is malformed (missing or unparseable date/amount)"""

    def __init__(self, message: str, transaction_id: Optional[str] = None):
        super().__init__(message)
        self.transaction_id = transaction_id


class InvalidConfigurationError(DomainException, ValueError):
    """Engine setting outside its allowed range (sensitivity, horizon)"""
