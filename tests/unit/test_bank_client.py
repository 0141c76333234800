"""Unit tests for the bank API client"""

import httpx
import pytest
from unittest.mock import AsyncMock, patch
from pattern_engine.domain.exceptions import BankAPIError
from pattern_engine.infrastructure.clients.bank import BankClient

BASE_URL = "http://bank.test"


def bank_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload, request=httpx.Request("GET", BASE_URL))


@patch("httpx.AsyncClient.get", new_callable=AsyncMock)
async def test_get_transactions_parses_and_counts_skipped(mock_get: AsyncMock):
    mock_get.return_value = bank_response(
        {
            "transactions": [
                {"id": "t1", "date": "2024-06-01", "amount": 15.99, "merchant_name": "Netflix"},
                {"id": "t2", "date": "bad", "amount": 15.99, "merchant_name": "Netflix"},
            ]
        }
    )

    parsed = await BankClient(base_url=BASE_URL).get_transactions("user_1")

    assert [t.transaction_id for t in parsed.transactions] == ["t1"]
    assert parsed.skipped_count == 1
    assert mock_get.call_args.kwargs["params"] == {"user_id": "user_1"}


@patch("httpx.AsyncClient.get", new_callable=AsyncMock)
async def test_get_current_balance_sums_depository_accounts(mock_get: AsyncMock):
    mock_get.return_value = bank_response(
        {
            "accounts": [
                {"type": "depository", "current_balance": 1200.50},
                {"type": "depository", "current_balance": 300},
                {"type": "credit", "current_balance": 5000},
            ]
        }
    )

    balance = await BankClient(base_url=BASE_URL).get_current_balance("user_1")

    assert balance == 1500.50


@patch("httpx.AsyncClient.get", new_callable=AsyncMock)
async def test_http_error_raises_bank_api_error(mock_get: AsyncMock):
    mock_get.return_value = bank_response({"error": "down"}, status_code=500)

    with pytest.raises(BankAPIError) as exc_info:
        await BankClient(base_url=BASE_URL).get_transactions("user_1")

    assert exc_info.value.status_code == 500


@patch("httpx.AsyncClient.get", new_callable=AsyncMock)
async def test_timeout_raises_bank_api_error(mock_get: AsyncMock):
    mock_get.side_effect = httpx.ReadTimeout("timed out")

    with pytest.raises(BankAPIError, match="timeout"):
        await BankClient(base_url=BASE_URL).get_transactions("user_1")


@patch("httpx.AsyncClient.get", new_callable=AsyncMock)
async def test_missing_transaction_list_raises(mock_get: AsyncMock):
    mock_get.return_value = bank_response({"unexpected": True})

    with pytest.raises(BankAPIError):
        await BankClient(base_url=BASE_URL).get_transactions("user_1")
