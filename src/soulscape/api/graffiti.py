"""API endpoints for the shared graffiti wall."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, Field

from soulscape.canvas.sync import SyncResult
from soulscape.model.stroke import Stroke
from soulscape.services import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/graffiti", tags=["graffiti"])
history_router = APIRouter(tags=["graffiti"])


class SyncRequest(BaseModel):
    """Request body for a sync pass.

    Attributes:
        block_window: Blocks to scan back from the chain head.
    """

    block_window: int | None = Field(default=None, ge=1, le=1_000_000, alias="blockWindow")


def stroke_payload(stroke: Stroke) -> dict[str, Any]:
    """Render a stroke for API clients."""
    return {
        "id": stroke.entity_key,
        "x": stroke.x,
        "y": stroke.y,
        "tokenId": str(stroke.token_id),
        "color": stroke.color,
        "timestamp": stroke.timestamp,
        "txHash": stroke.tx_hash,
    }


def sync_payload(result: SyncResult) -> dict[str, Any]:
    return {
        "success": True,
        "scanned": result.scanned,
        "synced": result.synced,
        "skipped": result.skipped,
        "failed": result.failed,
        "fromBlock": result.from_block,
        "toBlock": result.to_block,
    }


@history_router.get("/graffiti-history")
def wall_history(limit: int | None = Query(default=None, ge=1, le=65536)) -> list[dict[str, Any]]:
    """Reconciled wall, one stroke per pixel, newest first."""
    wall = get_services().reconciler.get_wall_state(limit)
    strokes = sorted(wall.values(), key=lambda s: (s.timestamp, s.y, s.x), reverse=True)
    return [stroke_payload(s) for s in strokes]


@router.post("/sync")
def sync_graffiti(request: SyncRequest | None = None) -> dict[str, Any]:
    """Copy recent paint events from the chain into the store."""
    window = request.block_window if request is not None else None
    result = get_services().syncer.sync_recent(window)
    return sync_payload(result)


@router.get("/cooldown/{token_id}")
def paint_cooldown(token_id: int = Path(ge=1)) -> dict[str, Any]:
    """When a spirit may paint next (epoch seconds)."""
    cooldown = get_services().reconciler.cooldown_status(token_id)
    return {
        "success": True,
        "tokenId": cooldown.token_id,
        "lastPaintTime": cooldown.last_paint_time,
        "cooldown": cooldown.cooldown,
        "canPaintAt": cooldown.can_paint_at,
        "remaining": cooldown.remaining,
    }
