"""API endpoints for reading spirits: state, history and token metadata."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Path, Query, status

from soulscape.api.errors import ApiError
from soulscape.engine.metadata import build_metadata
from soulscape.engine.scoring import derive_stage
from soulscape.model.address import normalize_address
from soulscape.services import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["spirits"])


@router.get("/spirits/{token_id}")
def get_spirit(token_id: int = Path(ge=1)) -> dict[str, Any]:
    """Current on-chain attributes and stage of a spirit."""
    state = get_services().chain.get_spirit(token_id)
    return {
        "success": True,
        "tokenId": state.token_id,
        "attributes": state.attributes.model_dump(),
        "stage": derive_stage(state.attributes).value,
        "lastUpdated": state.last_updated,
    }


@router.get("/spirit-history")
def spirit_history(
    address: str | None = Query(default=None),
    spirit_address: str | None = Query(default=None, alias="spiritAddress"),
    token_id: int | None = Query(default=None, alias="tokenId", ge=1),
) -> list[dict[str, Any]]:
    """Evolution snapshots for a spirit, newest first.

    Returns an empty list when the store is unavailable.
    """
    raw_address = address or spirit_address
    if raw_address is None or token_id is None:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            "invalid_request",
            "address and tokenId query parameters are required",
        )
    owner = normalize_address(raw_address)
    snapshots = get_services().snapshots.history(owner, token_id)
    return [{"id": s.entity_key, **s.to_payload()} for s in snapshots]


@router.get("/metadata/{token_id}")
def token_metadata(token_id: int = Path(ge=1)) -> dict[str, Any]:
    """ERC-721 metadata with an inline generated image."""
    state = get_services().chain.get_spirit(token_id)
    return build_metadata(state.attributes, token_id)
