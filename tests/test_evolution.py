"""Tests for the single-address evolution pipeline."""

from __future__ import annotations

import logging

import pytest
from conftest import (
    ALICE,
    BOB,
    CAROL,
    FakeChainClient,
    FakeExplorer,
    RecordingEntityStore,
    explorer_down,
    make_tx,
)

from soulscape.chain.client import ChainError, ChainWriteError, ConfirmationTimeoutError
from soulscape.engine.evolution import (
    AddressLocks,
    EvolutionError,
    EvolutionInProgressError,
    EvolutionOrchestrator,
    EvolutionStatus,
)
from soulscape.model.address import InvalidAddressError
from soulscape.model.spirit import DORMANT_VECTOR, Stage
from soulscape.model.transaction import WEI_PER_ETHER
from soulscape.store.snapshots import SnapshotStore


@pytest.fixture
def alice_spirit(chain: FakeChainClient, explorer: FakeExplorer) -> int:
    """Alice owns token 7 and has a small transfer history."""
    chain.add_spirit(ALICE, 7)
    explorer.histories[ALICE] = [
        make_tx(ALICE, BOB, 1000, value_wei=3 * WEI_PER_ETHER),
        make_tx(ALICE, CAROL, 1100, value_wei=1 * WEI_PER_ETHER),
        make_tx(BOB, ALICE, 1200, value_wei=0),
    ]
    return 7


class TestEvolve:
    """Tests for EvolutionOrchestrator.evolve."""

    def test_happy_path(
        self,
        orchestrator: EvolutionOrchestrator,
        chain: FakeChainClient,
        snapshots: SnapshotStore,
        alice_spirit: int,
    ) -> None:
        """Scores are committed on-chain and then snapshotted."""
        result = orchestrator.evolve(ALICE)

        assert result.status is EvolutionStatus.EVOLVED
        assert result.token_id == 7
        assert result.attributes is not None
        assert result.attributes.as_tuple() == (10, 98, 0, 2, 2)
        assert result.stage is Stage.SEED
        assert result.transaction_count == 3
        assert result.tx_hash == f"0x{1:064x}"
        assert result.block_number == chain.head
        assert result.snapshot_persisted
        assert chain.submitted == [(7, result.attributes)]
        (snapshot,) = snapshots.query_snapshots(ALICE, 7)
        assert snapshot.entity_key == result.snapshot_key
        assert snapshot.attributes == result.attributes

    def test_snapshot_written_after_confirmation(
        self, orchestrator: EvolutionOrchestrator, calls: list[str], alice_spirit: int
    ) -> None:
        """The snapshot write follows the confirmed transaction."""
        orchestrator.evolve(ALICE)

        assert calls.index("submit_evolution") < calls.index("wait_for_confirmation")
        assert calls.index("wait_for_confirmation") < calls.index("store_write:spiritSnapshot")

    def test_no_spirit(
        self, orchestrator: EvolutionOrchestrator, chain: FakeChainClient, calls: list[str]
    ) -> None:
        """An address without a token is reported, nothing is written."""
        result = orchestrator.evolve(ALICE)

        assert result.status is EvolutionStatus.NO_SPIRIT
        assert result.token_id is None
        assert chain.submitted == []
        assert not any(c.startswith("store_write") for c in calls)

    def test_explorer_down_scores_dormant(
        self,
        orchestrator: EvolutionOrchestrator,
        chain: FakeChainClient,
        explorer: FakeExplorer,
        alice_spirit: int,
    ) -> None:
        """An unreachable explorer means the dormant baseline is committed."""
        explorer.error = explorer_down()

        result = orchestrator.evolve(ALICE)

        assert result.status is EvolutionStatus.EVOLVED
        assert result.attributes == DORMANT_VECTOR
        assert result.transaction_count == 0
        assert chain.submitted == [(7, DORMANT_VECTOR)]

    def test_snapshot_failure_is_not_fatal(
        self,
        orchestrator: EvolutionOrchestrator,
        entity_store: RecordingEntityStore,
        alice_spirit: int,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A store outage after confirmation still reports success."""
        entity_store.fail_writes = True

        with caplog.at_level(logging.ERROR, logger="soulscape"):
            result = orchestrator.evolve(ALICE)

        assert result.status is EvolutionStatus.EVOLVED
        assert result.tx_hash is not None
        assert result.snapshot_key is None
        assert not result.snapshot_persisted
        assert "Snapshot persistence failed" in caplog.text

    def test_submit_failure(
        self,
        orchestrator: EvolutionOrchestrator,
        chain: FakeChainClient,
        calls: list[str],
        alice_spirit: int,
    ) -> None:
        """A rejected transaction fails the run with no snapshot."""
        chain.fail_submit = ChainWriteError("insufficient funds")

        with pytest.raises(EvolutionError, match="insufficient funds") as excinfo:
            orchestrator.evolve(ALICE)

        assert excinfo.value.address == ALICE
        assert excinfo.value.tx_hash is None
        assert "store_write:spiritSnapshot" not in calls

    def test_confirmation_timeout(
        self,
        orchestrator: EvolutionOrchestrator,
        chain: FakeChainClient,
        calls: list[str],
        alice_spirit: int,
    ) -> None:
        """A submitted but unconfirmed transaction fails with its hash."""
        chain.fail_confirm = ConfirmationTimeoutError("not mined", tx_hash=f"0x{1:064x}")

        with pytest.raises(EvolutionError) as excinfo:
            orchestrator.evolve(ALICE)

        assert excinfo.value.tx_hash == f"0x{1:064x}"
        assert "store_write:spiritSnapshot" not in calls

    def test_ownership_lookup_failure(
        self, orchestrator: EvolutionOrchestrator, chain: FakeChainClient
    ) -> None:
        """A failed spiritOf read is an EvolutionError."""
        chain.fail_spirit_of = ChainError("rpc down")

        with pytest.raises(EvolutionError, match="Ownership lookup failed"):
            orchestrator.evolve(ALICE)

    def test_invalid_address(
        self, orchestrator: EvolutionOrchestrator, calls: list[str]
    ) -> None:
        """Malformed addresses are rejected before any chain call."""
        with pytest.raises(InvalidAddressError):
            orchestrator.evolve("not-an-address")

        assert calls == []

    def test_concurrent_run_is_rejected(
        self, orchestrator: EvolutionOrchestrator, chain: FakeChainClient, alice_spirit: int
    ) -> None:
        """A second run for a held address fails fast."""
        with orchestrator.locks.hold(ALICE):
            with pytest.raises(EvolutionInProgressError):
                orchestrator.evolve(ALICE.upper().replace("0X", "0x"))

        assert chain.submitted == []
        assert orchestrator.evolve(ALICE).status is EvolutionStatus.EVOLVED

    def test_lock_released_after_failure(
        self, orchestrator: EvolutionOrchestrator, chain: FakeChainClient, alice_spirit: int
    ) -> None:
        """A failed run does not leave the address locked."""
        chain.fail_submit = ChainWriteError("nonce too low")
        with pytest.raises(EvolutionError):
            orchestrator.evolve(ALICE)

        assert not orchestrator.locks.is_held(ALICE)

    def test_repeat_appends_history(
        self,
        orchestrator: EvolutionOrchestrator,
        snapshots: SnapshotStore,
        alice_spirit: int,
    ) -> None:
        """Each run adds a snapshot; nothing is overwritten."""
        first = orchestrator.evolve(ALICE)
        second = orchestrator.evolve(ALICE)

        keys = {s.entity_key for s in snapshots.query_snapshots(ALICE, 7)}
        assert keys == {first.snapshot_key, second.snapshot_key}
        assert first.tx_hash != second.tx_hash


class TestAddressLocks:
    """Tests for AddressLocks."""

    def test_hold_and_release(self) -> None:
        """An address is held only inside the block."""
        locks = AddressLocks()

        with locks.hold(ALICE):
            assert locks.is_held(ALICE)
            assert not locks.is_held(BOB)
        assert not locks.is_held(ALICE)

    def test_different_addresses_do_not_block(self) -> None:
        """Locks are per address."""
        locks = AddressLocks()

        with locks.hold(ALICE), locks.hold(BOB):
            assert locks.is_held(ALICE) and locks.is_held(BOB)
