"""Shared fixtures: in-memory fakes of the chain, explorer and entity store."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

import pytest

from soulscape.chain.client import (
    ChainClient,
    ChainError,
    ChainWriteError,
    EventDecodeError,
    PaintEvent,
    TxReceipt,
    validate_paint_args,
)
from soulscape.config import SoulscapeConfig
from soulscape.engine.evolution import EvolutionOrchestrator
from soulscape.ingest.explorer import ExplorerError
from soulscape.model.spirit import AttributeVector, SpiritState
from soulscape.model.transaction import TransactionRecord
from soulscape.services import Services, set_services, wire_services
from soulscape.store.entity_store import Entity, EntityStoreError, InMemoryEntityStore
from soulscape.store.snapshots import SnapshotStore

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
NOBODY = "0x" + "d4" * 20

EVOLUTION_KEY = "0x" + "11" * 32
SOUL_CONTRACT = "0x" + "5" * 40
GRAFFITI_CONTRACT = "0x" + "6" * 40


class FakeChainClient(ChainClient):
    """Scriptable chain client that records every call in ``calls``."""

    def __init__(self, calls: list[str] | None = None) -> None:
        self.calls = calls if calls is not None else []
        self.tokens: dict[str, int] = {}
        self.owners: dict[int, str] = {}
        self.states: dict[int, SpiritState] = {}
        self.submitted: list[tuple[int, AttributeVector]] = []
        self.painted: list[tuple[int, int, int, int]] = []
        self.logs: list[Any] = []
        self.head = 20_000
        self.last_paint: dict[int, int] = {}
        self.cooldown = 60
        self.fail_spirit_of: Exception | None = None
        self.fail_submit: Exception | None = None
        self.fail_confirm: Exception | None = None
        self.fail_owner_of: set[int] = set()
        self.fail_logs: Exception | None = None
        self.log_ranges: list[tuple[int, int]] = []

    def add_spirit(self, owner: str, token_id: int, vector: AttributeVector | None = None) -> None:
        self.tokens[owner.lower()] = token_id
        self.owners[token_id] = owner
        self.states[token_id] = SpiritState(
            token_id=token_id,
            attributes=vector
            or AttributeVector(aggression=10, serenity=60, chaos=10, influence=5, connectivity=5),
            last_updated=1_700_000_000,
        )

    def spirit_of(self, owner: str) -> int:
        self.calls.append("spirit_of")
        if self.fail_spirit_of is not None:
            raise self.fail_spirit_of
        return self.tokens.get(owner.lower(), 0)

    def get_spirit(self, token_id: int) -> SpiritState:
        self.calls.append("get_spirit")
        if token_id not in self.states:
            raise ChainError(f"getSpirit reverted for {token_id}")
        return self.states[token_id]

    def owner_of(self, token_id: int) -> str:
        self.calls.append("owner_of")
        if token_id in self.fail_owner_of or token_id not in self.owners:
            raise ChainError(f"ownerOf reverted for {token_id}")
        return self.owners[token_id]

    def total_supply(self) -> int:
        self.calls.append("total_supply")
        return max(self.owners, default=0)

    def submit_evolution(self, token_id: int, vector: AttributeVector) -> str:
        self.calls.append("submit_evolution")
        if self.fail_submit is not None:
            raise self.fail_submit
        self.submitted.append((token_id, vector))
        return f"0x{len(self.submitted):064x}"

    def wait_for_confirmation(self, tx_hash: str) -> TxReceipt:
        self.calls.append("wait_for_confirmation")
        if self.fail_confirm is not None:
            raise self.fail_confirm
        return TxReceipt(tx_hash=tx_hash, block_number=self.head, status=1)

    def block_number(self) -> int:
        self.calls.append("block_number")
        return self.head

    def get_paint_logs(self, from_block: int, to_block: int) -> list[Any]:
        self.calls.append("get_paint_logs")
        self.log_ranges.append((from_block, to_block))
        if self.fail_logs is not None:
            raise self.fail_logs
        return list(self.logs)

    def decode_paint_log(self, log: Any) -> PaintEvent:
        if not isinstance(log, PaintEvent):
            raise EventDecodeError(f"Cannot decode {log!r}")
        return log

    def last_paint_time_of(self, token_id: int) -> int:
        return self.last_paint.get(token_id, 0)

    def paint_cooldown(self) -> int:
        return self.cooldown

    def paint(self, token_id: int, x: int, y: int, color: int, private_key: str) -> str:
        validate_paint_args(x, y, color)
        if self.fail_submit is not None:
            raise ChainWriteError(str(self.fail_submit))
        self.painted.append((token_id, x, y, color))
        return f"0x{len(self.painted):064x}"


class FakeExplorer:
    """Explorer stand-in serving canned histories."""

    def __init__(self) -> None:
        self.histories: dict[str, list[TransactionRecord]] = {}
        self.error: Exception | None = None
        self.requested: list[str] = []

    def fetch_transactions(self, address: str) -> list[TransactionRecord]:
        self.requested.append(address.lower())
        if self.error is not None:
            raise self.error
        return list(self.histories.get(address.lower(), []))


class RecordingEntityStore(InMemoryEntityStore):
    """In-memory store that logs writes and can be made to fail."""

    def __init__(self, calls: list[str] | None = None, clock: Any = None) -> None:
        if clock is None:
            super().__init__()
        else:
            super().__init__(clock=clock)
        self.calls = calls if calls is not None else []
        self.fail_writes = False
        self.fail_queries = False

    def write(
        self,
        payload: bytes,
        content_type: str,
        attributes: Mapping[str, str],
        ttl_seconds: int,
    ) -> str:
        self.calls.append(f"store_write:{attributes.get('type')}")
        if self.fail_writes:
            raise EntityStoreError("store unavailable")
        return super().write(payload, content_type, attributes, ttl_seconds)

    def query(self, filters: Mapping[str, str], include_payload: bool = True) -> list[Entity]:
        self.calls.append(f"store_query:{filters.get('type')}")
        if self.fail_queries:
            raise EntityStoreError("store unavailable")
        return super().query(filters, include_payload)


def make_tx(
    sender: str,
    recipient: str | None,
    timestamp: int,
    value_wei: int | None = 0,
    data: str = "0x",
) -> TransactionRecord:
    """Build a TransactionRecord the way the explorer reports one."""
    raw: dict[str, Any] = {
        "from": sender,
        "to": recipient or "",
        "timeStamp": str(timestamp),
        "input": data,
        "hash": f"0x{timestamp:064x}",
    }
    if value_wei is not None:
        raw["value"] = str(value_wei)
    return TransactionRecord.model_validate(raw)


@pytest.fixture
def calls() -> list[str]:
    """Shared call log across fakes, for ordering assertions."""
    return []


@pytest.fixture
def chain(calls: list[str]) -> FakeChainClient:
    return FakeChainClient(calls)


@pytest.fixture
def explorer() -> FakeExplorer:
    return FakeExplorer()


@pytest.fixture
def entity_store(calls: list[str]) -> RecordingEntityStore:
    return RecordingEntityStore(calls)


@pytest.fixture
def snapshots(entity_store: RecordingEntityStore) -> SnapshotStore:
    return SnapshotStore(entity_store, snapshot_ttl=3600, stroke_ttl=3600)


@pytest.fixture
def orchestrator(
    chain: FakeChainClient, explorer: FakeExplorer, snapshots: SnapshotStore
) -> EvolutionOrchestrator:
    return EvolutionOrchestrator(chain, explorer, snapshots)  # type: ignore[arg-type]


@pytest.fixture
def config() -> SoulscapeConfig:
    """Configuration able to perform writes, isolated from any .env file."""
    return SoulscapeConfig(
        _env_file=None,
        evolution_private_key=EVOLUTION_KEY,
        soul_contract=SOUL_CONTRACT,
        graffiti_contract=GRAFFITI_CONTRACT,
        snapshot_ttl=3600,
        stroke_ttl=3600,
    )


@pytest.fixture
def services(
    config: SoulscapeConfig,
    chain: FakeChainClient,
    explorer: FakeExplorer,
    entity_store: RecordingEntityStore,
) -> Iterator[Services]:
    """Wired services over the fakes, installed process-wide for the test."""
    wired = wire_services(config, chain, explorer, entity_store)  # type: ignore[arg-type]
    set_services(wired)
    yield wired
    set_services(None)


def explorer_down() -> ExplorerError:
    return ExplorerError("Explorer unreachable: connection refused")


@pytest.fixture(autouse=True)
def reset_soulscape_logger() -> Iterator[None]:
    """Undo configure_logging so caplog keeps seeing records."""
    yield
    root = logging.getLogger("soulscape")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)
