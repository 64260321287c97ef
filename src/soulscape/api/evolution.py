"""API endpoints for spirit evolution.

Provides single-address evolution, batch evolution over every owner, and
the owner listing used to drive batches.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from soulscape.api.errors import ApiError
from soulscape.engine.batch import AddressFailure
from soulscape.engine.evolution import EvolutionResult, EvolutionStatus
from soulscape.model.address import normalize_address
from soulscape.services import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["evolution"])


class EvolveRequest(BaseModel):
    """Request body for a single evolution.

    Attributes:
        address: Owner address whose spirit should evolve.
    """

    address: str | None = Field(default=None, description="Owner address (0x + 40 hex)")


class EvolveResponse(BaseModel):
    """Response body for a completed evolution."""

    success: bool = True
    message: str
    address: str
    token_id: int = Field(serialization_alias="tokenId")
    attributes: dict[str, int]
    stage: str
    tx_hash: str | None = Field(serialization_alias="txHash")
    block_number: int | None = Field(serialization_alias="blockNumber")
    snapshot_key: str | None = Field(serialization_alias="snapshotKey")


class BatchSummary(BaseModel):
    """Counts and per-address failures of a batch run."""

    total: int
    succeeded: int
    failed: int
    skipped: int
    errors: list[AddressFailure]


class EvolveAllResponse(BaseModel):
    """Response body for a batch evolution."""

    success: bool = True
    message: str
    results: BatchSummary


class OwnersResponse(BaseModel):
    """Response body for the owner listing."""

    success: bool = True
    count: int
    owners: list[str]


def result_payload(result: EvolutionResult) -> EvolveResponse:
    """Render an EVOLVED result for the API.

    Raises:
        ValueError: If ``result`` carries no committed vector.
    """
    if result.token_id is None or result.attributes is None or result.stage is None:
        raise ValueError(f"No committed evolution for {result.address}")
    return EvolveResponse(
        message=f"Evolution complete for {result.address}",
        address=result.address,
        token_id=result.token_id,
        attributes=result.attributes.model_dump(),
        stage=result.stage.value,
        tx_hash=result.tx_hash,
        block_number=result.block_number,
        snapshot_key=result.snapshot_key,
    )


@router.post(
    "/evolve",
    response_model=EvolveResponse,
    response_model_by_alias=True,
    responses={
        400: {"description": "Missing or malformed address"},
        404: {"description": "Address owns no spirit"},
        409: {"description": "Evolution already running for this address"},
        502: {"description": "On-chain write failed"},
        503: {"description": "Service not configured for writes"},
    },
)
def evolve(request: EvolveRequest) -> Any:
    """Evolve the spirit owned by ``address`` and wait for confirmation.

    Raises:
        ApiError: 404 no_spirit when the address holds no token; other
            failures are mapped by the installed error handlers.
    """
    address = normalize_address(request.address)
    services = get_services()
    services.config.validate_for_writes()

    logger.info("API request: evolve", extra={"address": address})
    result = services.orchestrator.evolve(address)
    if result.status is EvolutionStatus.NO_SPIRIT:
        raise ApiError(
            status.HTTP_404_NOT_FOUND, "no_spirit", f"No spirit minted for {address}"
        )
    return result_payload(result)


@router.post("/evolve/all", response_model=EvolveAllResponse)
def evolve_all() -> EvolveAllResponse:
    """Evolve every current owner; per-address failures are reported, not raised."""
    services = get_services()
    services.config.validate_for_writes()

    logger.info("API request: evolve all")
    batch = services.batch.evolve_all()
    return EvolveAllResponse(
        message=f"Evolved {batch.succeeded}/{batch.total} spirits",
        results=BatchSummary(
            total=batch.total,
            succeeded=batch.succeeded,
            failed=batch.failed,
            skipped=batch.skipped,
            errors=batch.errors,
        ),
    )


@router.get("/spirits/owners", response_model=OwnersResponse)
def list_owners() -> OwnersResponse:
    """List every unique spirit owner."""
    owners = get_services().batch.list_owners()
    return OwnersResponse(count=len(owners), owners=owners)
