"""Single-address evolution pipeline.

Resolve token -> fetch history -> score -> commit on-chain -> wait for
confirmation -> persist snapshot. The snapshot is written only after the
evolution transaction is confirmed, and a failed snapshot write never fails
the run because the chain already holds the authoritative state.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum

from pydantic import BaseModel

from soulscape.chain.client import ChainClient, ChainError
from soulscape.engine.scoring import compute_attributes, derive_stage
from soulscape.ingest.explorer import ExplorerClient, ExplorerError
from soulscape.model.address import normalize_address
from soulscape.model.spirit import AttributeVector, Stage
from soulscape.model.transaction import TransactionRecord
from soulscape.store.snapshots import SnapshotStore, StoreError

logger = logging.getLogger(__name__)


class EvolutionError(Exception):
    """Raised when an evolution cannot be committed on-chain."""

    def __init__(self, message: str, address: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.address = address
        self.tx_hash = tx_hash


class EvolutionInProgressError(EvolutionError):
    """Raised when an evolution for the same address is already running."""

    pass


class EvolutionStatus(StrEnum):
    """Terminal outcome of one evolution run."""

    EVOLVED = "evolved"
    NO_SPIRIT = "no_spirit"


class EvolutionResult(BaseModel):
    """Outcome of ``EvolutionOrchestrator.evolve``.

    Attributes:
        address: Lower-cased subject address.
        status: EVOLVED, or NO_SPIRIT when the address owns no token.
        token_id: Spirit token id (None without a spirit).
        attributes: Vector committed on-chain.
        stage: Stage derived from ``attributes``.
        transaction_count: Number of transactions scored.
        tx_hash: Hash of the confirmed evolution transaction.
        block_number: Block the evolution landed in.
        snapshot_key: Entity key of the persisted snapshot, if any.
    """

    address: str
    status: EvolutionStatus
    token_id: int | None = None
    attributes: AttributeVector | None = None
    stage: Stage | None = None
    transaction_count: int = 0
    tx_hash: str | None = None
    block_number: int | None = None
    snapshot_key: str | None = None

    @property
    def snapshot_persisted(self) -> bool:
        """True when the audit snapshot reached the store."""
        return self.snapshot_key is not None


class AddressLocks:
    """Registry of per-address locks that rejects instead of waiting."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    def is_held(self, address: str) -> bool:
        """Whether an evolution currently holds ``address``."""
        with self._guard:
            return address in self._held

    @contextmanager
    def hold(self, address: str) -> Iterator[None]:
        """Hold ``address`` for the duration of the block.

        Raises:
            EvolutionInProgressError: If the address is already held.
        """
        with self._guard:
            if address in self._held:
                raise EvolutionInProgressError(
                    f"Evolution already in progress for {address}", address=address
                )
            self._held.add(address)
        try:
            yield
        finally:
            with self._guard:
                self._held.discard(address)


class EvolutionOrchestrator:
    """Runs the evolution pipeline for one address at a time.

    Example:
        >>> orchestrator = EvolutionOrchestrator(chain, explorer, snapshots)
        >>> result = orchestrator.evolve("0xabc...")
        >>> result.status
        <EvolutionStatus.EVOLVED: 'evolved'>
    """

    def __init__(
        self,
        chain: ChainClient,
        explorer: ExplorerClient,
        snapshots: SnapshotStore,
        locks: AddressLocks | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            chain: Chain client holding the evolution account.
            explorer: Transaction history source.
            snapshots: Snapshot persistence.
            locks: Per-address lock registry (shared with other runners).
        """
        self._chain = chain
        self._explorer = explorer
        self._snapshots = snapshots
        self._locks = locks or AddressLocks()

    @property
    def locks(self) -> AddressLocks:
        """The per-address lock registry."""
        return self._locks

    def fetch_history(self, address: str) -> list[TransactionRecord]:
        """Transaction history, or an empty list when the explorer is down."""
        try:
            return self._explorer.fetch_transactions(address)
        except ExplorerError as e:
            logger.warning(
                "Explorer unavailable, scoring empty history: %s",
                str(e),
                extra={"address": address},
            )
            return []

    def evolve(self, address: str) -> EvolutionResult:
        """Evolve the spirit owned by ``address``.

        Returns:
            EvolutionResult; status NO_SPIRIT when the address owns no token.

        Raises:
            InvalidAddressError: If ``address`` is malformed.
            EvolutionInProgressError: If another run for ``address`` is active.
            EvolutionError: If the ownership lookup or the on-chain write fails.
        """
        subject = normalize_address(address)
        with self._locks.hold(subject):
            return self._evolve(subject)

    def _evolve(self, address: str) -> EvolutionResult:
        context = {"address": address}
        try:
            token_id = self._chain.spirit_of(address)
        except ChainError as e:
            raise EvolutionError(f"Ownership lookup failed: {e}", address=address) from e

        if token_id == 0:
            logger.info("No spirit owned, skipping", extra=context)
            return EvolutionResult(address=address, status=EvolutionStatus.NO_SPIRIT)

        context["token_id"] = token_id
        transactions = self.fetch_history(address)
        vector = compute_attributes(transactions, address)
        stage = derive_stage(vector)
        logger.info(
            "Scored %d transactions: %s (%s)",
            len(transactions),
            vector.canonical(),
            stage.value,
            extra=context,
        )

        tx_hash: str | None = None
        try:
            tx_hash = self._chain.submit_evolution(token_id, vector)
            receipt = self._chain.wait_for_confirmation(tx_hash)
        except ChainError as e:
            raise EvolutionError(
                f"On-chain evolution failed: {e}", address=address, tx_hash=tx_hash
            ) from e
        logger.info("Evolution confirmed in block %d", receipt.block_number, extra=context)

        snapshot_key: str | None = None
        try:
            snapshot = self._snapshots.write_snapshot(address, token_id, vector, stage)
            snapshot_key = snapshot.entity_key
        except StoreError:
            logger.exception("Snapshot persistence failed after confirmed evolution", extra=context)

        return EvolutionResult(
            address=address,
            status=EvolutionStatus.EVOLVED,
            token_id=token_id,
            attributes=vector,
            stage=stage,
            transaction_count=len(transactions),
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            snapshot_key=snapshot_key,
        )
