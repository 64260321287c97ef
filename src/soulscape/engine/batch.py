"""Evolve every known spirit owner, isolating failures per address."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from soulscape.chain.client import ChainClient, ChainError
from soulscape.engine.evolution import EvolutionOrchestrator, EvolutionResult, EvolutionStatus

logger = logging.getLogger(__name__)


class AddressFailure(BaseModel):
    """One address that could not be evolved."""

    address: str
    error: str


class BatchResult(BaseModel):
    """Summary of a batch run.

    ``succeeded`` counts every address whose run completed without raising,
    including addresses that turned out to own no spirit (``skipped``).
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[AddressFailure] = Field(default_factory=list)
    results: list[EvolutionResult] = Field(default_factory=list)


class BatchEvolutionRunner:
    """Runs the orchestrator sequentially over all spirit owners."""

    def __init__(self, chain: ChainClient, orchestrator: EvolutionOrchestrator) -> None:
        self._chain = chain
        self._orchestrator = orchestrator

    def list_owners(self) -> list[str]:
        """Unique owners of tokens 1..totalSupply, in token order.

        Tokens whose owner lookup fails (burned or missing) are skipped.

        Raises:
            ChainError: If the total supply cannot be read.
        """
        total = self._chain.total_supply()
        owners: list[str] = []
        seen: set[str] = set()
        for token_id in range(1, total + 1):
            try:
                owner = self._chain.owner_of(token_id)
            except ChainError as e:
                logger.warning("Skipping token %d: %s", token_id, str(e))
                continue
            key = owner.lower()
            if owner and key not in seen:
                seen.add(key)
                owners.append(owner)
        logger.info("Found %d unique owners across %d tokens", len(owners), total)
        return owners

    def evolve_addresses(self, addresses: list[str]) -> BatchResult:
        """Evolve each address in order; one failure never stops the batch."""
        result = BatchResult(total=len(addresses))
        for index, address in enumerate(addresses, start=1):
            logger.info("[%d/%d] Evolving", index, len(addresses), extra={"address": address})
            try:
                outcome = self._orchestrator.evolve(address)
            except Exception as e:
                logger.warning("Evolution failed: %s", str(e), extra={"address": address})
                result.failed += 1
                result.errors.append(AddressFailure(address=address, error=str(e)))
                continue
            result.succeeded += 1
            if outcome.status is EvolutionStatus.NO_SPIRIT:
                result.skipped += 1
            result.results.append(outcome)
        logger.info(
            "Batch complete: %d succeeded, %d failed of %d",
            result.succeeded,
            result.failed,
            result.total,
        )
        return result

    def evolve_all(self) -> BatchResult:
        """Evolve every current spirit owner.

        Raises:
            ChainError: If the owner list cannot be built at all.
        """
        return self.evolve_addresses(self.list_owners())
