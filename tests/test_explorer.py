"""Tests for the block-explorer client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from conftest import ALICE, BOB

from soulscape.ingest.explorer import ExplorerClient, ExplorerError
from soulscape.model.address import InvalidAddressError

BASE_URL = "https://explorer.test"


def _entry(**overrides: Any) -> dict[str, Any]:
    entry = {
        "hash": "0x" + "ab" * 32,
        "from": ALICE.upper().replace("0X", "0x"),
        "to": BOB,
        "value": "1000000000000000000",
        "input": "0x",
        "timeStamp": "1700000000",
        "blockNumber": "123",
    }
    entry.update(overrides)
    return entry


def _client(handler: Any, **kwargs: Any) -> ExplorerClient:
    return ExplorerClient(
        BASE_URL, retry_wait=0.0, transport=httpx.MockTransport(handler), **kwargs
    )


class TestFetchTransactions:
    """Tests for ExplorerClient.fetch_transactions."""

    def test_request_parameters(self) -> None:
        """The txlist query covers the whole history in ascending order."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": []})

        _client(handler).fetch_transactions(ALICE)

        params = seen[0].url.params
        assert seen[0].url.path == "/api"
        assert params["module"] == "account"
        assert params["action"] == "txlist"
        assert params["address"] == ALICE
        assert params["startblock"] == "0"
        assert params["endblock"] == "99999999"
        assert params["sort"] == "asc"

    def test_parses_records(self) -> None:
        """Entries become typed records with lower-cased addresses."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "1", "result": [_entry()]})

        records = _client(handler).fetch_transactions(ALICE)

        assert len(records) == 1
        assert records[0].sender == ALICE
        assert records[0].recipient == BOB
        assert records[0].value == 10**18
        assert records[0].timestamp == 1_700_000_000
        assert records[0].has_call_data is False

    def test_non_success_status_is_empty(self) -> None:
        """Status "0" (e.g. no transactions found) is an empty history."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"status": "0", "message": "No transactions found", "result": []}
            )

        assert _client(handler).fetch_transactions(ALICE) == []

    def test_malformed_entries_are_dropped(self) -> None:
        """Entries failing validation are skipped, the rest are kept."""

        def handler(request: httpx.Request) -> httpx.Response:
            result = [_entry(), _entry(**{"from": "nonsense"}), _entry(timeStamp="soon")]
            return httpx.Response(200, json={"status": "1", "result": result})

        records = _client(handler).fetch_transactions(ALICE)

        assert len(records) == 1

    def test_contract_creation_and_missing_value(self) -> None:
        """Empty ``to`` and unparseable ``value`` are coerced, not rejected."""

        def handler(request: httpx.Request) -> httpx.Response:
            result = [_entry(to="", value="n/a", input="0x60806040")]
            return httpx.Response(200, json={"status": "1", "result": result})

        record = _client(handler).fetch_transactions(ALICE)[0]

        assert record.recipient is None
        assert record.value is None
        assert record.has_call_data is True

    def test_server_error_retries_then_raises(self) -> None:
        """HTTP errors are retried up to max_retries, then reported."""
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(503)

        with pytest.raises(ExplorerError, match="503"):
            _client(handler, max_retries=3).fetch_transactions(ALICE)
        assert len(attempts) == 3

    def test_transient_failure_recovers(self) -> None:
        """A connection error followed by success returns the data."""
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"status": "1", "result": [_entry()]})

        assert len(_client(handler).fetch_transactions(ALICE)) == 1
        assert len(attempts) == 2

    def test_unreachable_raises_explorer_error(self) -> None:
        """Persistent network failure surfaces as ExplorerError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExplorerError, match="unreachable"):
            _client(handler, max_retries=2).fetch_transactions(ALICE)

    def test_non_json_body(self) -> None:
        """A non-JSON body is an ExplorerError, not a crash."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(ExplorerError):
            _client(handler).fetch_transactions(ALICE)

    def test_invalid_address_is_rejected_before_request(self) -> None:
        """A malformed address never reaches the network."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": "1", "result": []})

        with pytest.raises(InvalidAddressError):
            _client(handler).fetch_transactions("0x1234")
        assert seen == []
