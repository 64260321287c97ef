"""Block-explorer client for an account's transaction history.

Talks to the Etherscan/Blockscout style ``module=account&action=txlist``
endpoint. This is the validation boundary for transaction data: every entry
is parsed into a ``TransactionRecord`` here, and malformed entries are dropped
with a warning instead of leaking loosely-typed dicts downstream.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from soulscape.model.address import normalize_address
from soulscape.model.transaction import TransactionRecord

logger = logging.getLogger(__name__)


class ExplorerError(Exception):
    """Raised when the explorer cannot be reached or answers garbage."""

    pass


class ExplorerClient:
    """Fetches ordered transaction lists from a block explorer.

    Example:
        >>> client = ExplorerClient("https://blockscout.example", timeout=10.0)
        >>> txs = client.fetch_transactions("0xabc...")
    """

    END_BLOCK = 99_999_999

    def __init__(
        self,
        base_url: str,
        timeout: float = 20.0,
        max_retries: int = 3,
        retry_wait: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the explorer client.

        Args:
            base_url: Explorer root, e.g. ``https://blockscout-...``.
            timeout: Per-request timeout in seconds.
            max_retries: Attempts per fetch before giving up.
            retry_wait: Initial exponential backoff in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_wait = retry_wait
        self._transport = transport

    def fetch_transactions(self, address: str) -> list[TransactionRecord]:
        """Fetch the full ascending history for ``address``.

        A non-"1" status from the explorer (including "No transactions
        found") is reported as an empty list.

        Raises:
            InvalidAddressError: If ``address`` is malformed.
            ExplorerError: On network failure after retries, or a non-JSON body.
        """
        subject = normalize_address(address)
        retryer = Retrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_wait, max=10.0),
            retry=retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError)),
            reraise=True,
        )
        try:
            body = retryer(self._get, subject)
        except httpx.TimeoutException as e:
            logger.error("Explorer request timed out after %ss", self._timeout)
            raise ExplorerError(f"Explorer request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error("Explorer HTTP error: %s", e.response.status_code)
            raise ExplorerError(f"Explorer HTTP error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("Explorer unreachable at %s: %s", self._base_url, str(e))
            raise ExplorerError(f"Explorer unreachable: {e}") from e

        return self._parse_body(body, subject)

    def _get(self, address: str) -> Any:
        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": self.END_BLOCK,
            "sort": "asc",
        }
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            response = client.get(f"{self._base_url}/api", params=params)
            response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise ExplorerError("Explorer returned a non-JSON body") from e

    def _parse_body(self, body: Any, address: str) -> list[TransactionRecord]:
        if not isinstance(body, dict) or body.get("status") != "1":
            message = body.get("message", "") if isinstance(body, dict) else ""
            logger.debug("Explorer returned no transactions for %s: %s", address, message)
            return []

        raw = body.get("result")
        if not isinstance(raw, list):
            return []

        records: list[TransactionRecord] = []
        for entry in raw:
            try:
                records.append(TransactionRecord.model_validate(entry))
            except ValidationError as e:
                logger.warning(
                    "Dropping malformed transaction for %s: %s", address, e.errors()[0]["msg"]
                )
        return records
