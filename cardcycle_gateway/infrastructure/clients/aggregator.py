"""Aggregator HTTP client for transactions and liabilities, with pacing and retries"""

import asyncio
import logging
import time
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Awaitable, Callable, Dict, List, Optional
import httpx
from cardcycle_gateway.config import settings
from cardcycle_gateway.domain.exceptions import UpstreamFetchError
from cardcycle_gateway.domain.institutions import DEFAULT_POLICY, InstitutionPolicy
from cardcycle_gateway.domain.models import LiabilitySnapshot, Transaction
from cardcycle_gateway.infrastructure.observability.metrics import (
    aggregator_latency_histogram,
    aggregator_fetch_failures_counter,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def to_cents(amount: Any) -> Optional[int]:
    """Convert an aggregator dollar amount to integer cents"""
    if amount is None:
        return None
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def parse_transaction(txn: Dict[str, Any]) -> Transaction:
    category = txn.get("category")
    if isinstance(category, list):
        category = category[0] if category else None
    return Transaction(
        transaction_id=txn["transaction_id"],
        account_id=txn["account_id"],
        date=date.fromisoformat(txn["date"]),
        amount_cents=to_cents(txn["amount"]),
        description=txn.get("name") or txn.get("merchant_name") or "",
        pending=bool(txn.get("pending", False)),
        merchant_name=txn.get("merchant_name"),
        category=category,
        authorized_date=_parse_date(txn.get("authorized_date")),
    )


def parse_liabilities(data: Dict[str, Any]) -> List[LiabilitySnapshot]:
    """
    Merge credit liabilities with account balances.

    Statement balance is sign-normalised to the non-negative amount owed.
    Accounts that are not credit cards are ignored.
    """
    credit_by_account = {
        c["account_id"]: c for c in (data.get("liabilities") or {}).get("credit") or []
    }
    snapshots = []
    for account in data.get("accounts", []):
        if account.get("subtype") not in (None, "credit card"):
            continue
        liability = credit_by_account.get(account["account_id"], {})
        balances = account.get("balances") or {}
        statement_balance = to_cents(liability.get("last_statement_balance"))
        snapshots.append(
            LiabilitySnapshot(
                account_id=account["account_id"],
                last_statement_issue_date=_parse_date(liability.get("last_statement_issue_date")),
                last_statement_balance_cents=abs(statement_balance) if statement_balance is not None else None,
                minimum_payment_cents=to_cents(liability.get("minimum_payment_amount")),
                next_payment_due_date=_parse_date(liability.get("next_payment_due_date")),
                balance_current_cents=to_cents(balances.get("current")),
                balance_limit_cents=to_cents(balances.get("limit")),
                name=account.get("name"),
                mask=account.get("mask"),
            )
        )
    return snapshots


class AggregatorClient:
    """Client for the external account aggregator API"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url or settings.aggregator_api_base
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.fetch_max_retries
        self.backoff_base = settings.fetch_backoff_base
        self.page_size = settings.fetch_page_size
        self.sleep = sleep
        self.clock = clock
        self._last_request_at: Dict[str, float] = {}  # policy key -> clock reading
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _auth(self) -> Dict[str, str]:
        return {"client_id": settings.aggregator_client_id, "secret": settings.aggregator_secret}

    async def _pace(self, policy: InstitutionPolicy) -> None:
        """Space consecutive calls for one institution by its inter-request delay"""
        if policy.inter_request_delay:
            last = self._last_request_at.get(policy.key)
            if last is not None:
                wait = policy.inter_request_delay - (self.clock() - last)
                if wait > 0:
                    await self.sleep(wait)
        self._last_request_at[policy.key] = self.clock()

    async def _post(self, path: str, payload: Dict[str, Any], policy: InstitutionPolicy) -> Dict[str, Any]:
        """
        POST with retry logic.

        Retry strategy:
        - Exponential backoff scaled per institution: base * multiplier * 2^(attempt-1)
        - Retries on 429, 5xx and network failures; other 4xx fail at once
        - Raises UpstreamFetchError after the final attempt

        Every call, retries included, is paced per institution.
        """
        attempt = 0
        while True:
            await self._pace(policy)
            try:
                with aggregator_latency_histogram.time():
                    response = await self._client.post(path, json={**self._auth(), **payload})
                    response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                attempt += 1
                aggregator_fetch_failures_counter.labels(institution=policy.key).inc()
                error_code = _error_code(e.response)
                if e.response.status_code not in RETRYABLE_STATUS or attempt >= self.max_retries:
                    raise UpstreamFetchError(
                        f"Aggregator error on {path}: {e.response.status_code}", error_code=error_code
                    ) from e

            except httpx.RequestError as e:
                attempt += 1
                aggregator_fetch_failures_counter.labels(institution=policy.key).inc()
                if attempt >= self.max_retries:
                    raise UpstreamFetchError(f"Aggregator unreachable on {path}: {e}", error_code="NETWORK_ERROR") from e

            except ValueError as e:
                raise UpstreamFetchError(f"Invalid JSON from aggregator on {path}", error_code="INVALID_RESPONSE") from e

            backoff = self.backoff_base * policy.backoff_multiplier * (2 ** (attempt - 1))
            logger.warning(
                "Retrying aggregator request",
                extra={"path": path, "attempt": attempt, "backoff_seconds": backoff, "institution": policy.key},
            )
            await self.sleep(backoff)

    async def get_liabilities(self, access_token: str, policy: InstitutionPolicy = DEFAULT_POLICY) -> List[LiabilitySnapshot]:
        """
        Fetch statement metadata and balances for every card on an item.

        Raises:
            UpstreamFetchError: On HTTP errors, timeouts, or malformed payloads
        """
        data = await self._post("/liabilities/get", {"access_token": access_token}, policy)
        try:
            return parse_liabilities(data)
        except (KeyError, ValueError, TypeError) as e:
            raise UpstreamFetchError(f"Invalid liabilities data from aggregator: {e}", error_code="INVALID_RESPONSE") from e

    async def get_transactions(
        self,
        access_token: str,
        start_date: date,
        end_date: date,
        policy: InstitutionPolicy = DEFAULT_POLICY,
    ) -> List[Transaction]:
        """
        Fetch all transactions in [start_date, end_date], page by page.

        Pages are spaced by the institution's inter-request delay so that
        issuers with strict historical-query limits are not hammered.

        Raises:
            UpstreamFetchError: On HTTP errors, timeouts, or malformed payloads
        """
        transactions: List[Transaction] = []
        offset = 0
        while True:
            data = await self._post(
                "/transactions/get",
                {
                    "access_token": access_token,
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                    "options": {"count": self.page_size, "offset": offset},
                },
                policy,
            )
            try:
                page = [parse_transaction(t) for t in data.get("transactions", [])]
                total = int(data.get("total_transactions", len(page)))
            except (KeyError, ValueError, TypeError) as e:
                raise UpstreamFetchError(
                    f"Invalid transaction data from aggregator: {e}", error_code="INVALID_RESPONSE"
                ) from e

            transactions.extend(page)
            offset += len(page)
            if not page or offset >= total:
                return transactions


def _error_code(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error_code"):
        return body["error_code"]
    return f"HTTP_{response.status_code}"
