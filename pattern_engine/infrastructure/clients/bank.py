"""Bank API HTTP client for fetching transaction history and balances"""

import httpx

from pattern_engine.config import settings
from pattern_engine.domain.exceptions import BankAPIError
from pattern_engine.domain.transactions import ParsedTransactions, parse_transactions


class BankClient:
    """Client for the external banking-sync API"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.bank_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def get_transactions(self, user_id: str) -> ParsedTransactions:
        """
        Fetch transaction history for a user.

        Malformed records are skipped and counted rather than failing the fetch.

        Raises:
            BankAPIError: On timeout, HTTP errors, or an invalid response body
        """
        data = await self._get("/bank/transactions", user_id)
        records = data.get("transactions")
        if not isinstance(records, list):
            raise BankAPIError("Invalid transaction data from bank: missing transactions list")
        return parse_transactions(records)

    async def get_current_balance(self, user_id: str) -> float:
        """
        Sum of current balances across depository (checking/savings) accounts.

        Raises:
            BankAPIError: On timeout, HTTP errors, or an invalid response body
        """
        data = await self._get("/bank/accounts", user_id)
        try:
            return sum(
                float(account.get("current_balance") or 0)
                for account in data.get("accounts", [])
                if account.get("type") == "depository"
            )
        except (AttributeError, ValueError, TypeError) as e:
            raise BankAPIError(f"Invalid account data from bank: {e}") from e

    async def _get(self, path: str, user_id: str) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(
                    f"{self.base_url}{path}",
                    params={"user_id": user_id},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as e:
                raise BankAPIError(f"Bank API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise BankAPIError(
                    f"Bank API error: {e.response.status_code}", status_code=e.response.status_code
                ) from e
            except httpx.RequestError as e:
                raise BankAPIError(f"Bank API unreachable: {e}") from e
            except ValueError as e:
                raise BankAPIError(f"Invalid JSON from bank: {e}") from e

        if not isinstance(data, dict):
            raise BankAPIError("Invalid response from bank: expected an object")
        return data
