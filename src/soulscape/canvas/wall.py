"""Reconciled graffiti wall reads and per-pixel merge rules."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from pydantic import BaseModel

from soulscape.chain.client import ChainClient, ChainError
from soulscape.model.stroke import Stroke, StrokeSource, WallState
from soulscape.store.snapshots import SnapshotStore, StoreError

logger = logging.getLogger(__name__)


def _wins(candidate: Stroke, current: Stroke) -> bool:
    """Whether ``candidate`` should replace ``current`` at the same pixel."""
    if candidate.timestamp != current.timestamp:
        return candidate.timestamp > current.timestamp
    return candidate.source > current.source


def reduce_latest(strokes: Iterable[Stroke]) -> WallState:
    """Collapse strokes to one per coordinate, latest timestamp winning.

    On equal timestamps the more authoritative source wins; if that is also
    equal, the stroke seen first is kept.
    """
    wall: WallState = {}
    for stroke in strokes:
        current = wall.get(stroke.coordinate)
        if current is None or _wins(stroke, current):
            wall[stroke.coordinate] = stroke
    return wall


def merge_strokes(existing: WallState, incoming: Iterable[Stroke]) -> WallState:
    """Layer ``incoming`` strokes over ``existing`` without mutating it.

    An incoming stroke replaces the pixel only if its timestamp is strictly
    newer, or equal with a strictly more authoritative source. Store reads
    therefore outrank optimistic local strokes with the same timestamp.
    """
    merged = dict(existing)
    for stroke in incoming:
        current = merged.get(stroke.coordinate)
        if current is None or _wins(stroke, current):
            merged[stroke.coordinate] = stroke
    return merged


def cap_newest(wall: WallState, limit: int) -> WallState:
    """Keep at most ``limit`` pixels, preferring the most recently painted."""
    if limit <= 0:
        return {}
    if len(wall) <= limit:
        return dict(wall)
    newest = sorted(wall.values(), key=lambda s: s.timestamp, reverse=True)[:limit]
    return {s.coordinate: s for s in newest}


class Cooldown(BaseModel):
    """Paint cooldown status for a token (epoch seconds)."""

    token_id: int
    last_paint_time: int
    cooldown: int
    can_paint_at: int
    remaining: int

    @property
    def can_paint(self) -> bool:
        return self.remaining == 0


class CanvasReconciler:
    """Builds the wall view from the store, falling back to chain events."""

    def __init__(
        self,
        chain: ChainClient,
        snapshots: SnapshotStore,
        fallback_block_window: int = 5_000,
        default_limit: int = 500,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the reconciler.

        Args:
            chain: Chain client for fallback scans and cooldown reads.
            snapshots: Source of synced strokes.
            fallback_block_window: Blocks scanned when the store has nothing.
            default_limit: Cap used when the caller gives none.
            clock: Source of epoch seconds.
        """
        self._chain = chain
        self._snapshots = snapshots
        self._fallback_block_window = fallback_block_window
        self._default_limit = default_limit
        self._clock = clock

    def get_wall_state(self, limit: int | None = None) -> WallState:
        """Current wall, one stroke per pixel, at most ``limit`` pixels.

        Never raises for upstream failures: an unreachable store triggers the
        chain fallback, and a failed fallback yields an empty wall.
        """
        cap = self._default_limit if limit is None else limit
        try:
            strokes = self._snapshots.query_strokes()
        except StoreError as e:
            logger.warning("Stroke query failed, scanning chain instead: %s", str(e))
            strokes = []

        if strokes:
            return cap_newest(reduce_latest(strokes), cap)
        return cap_newest(self._scan_chain(), cap)

    def _scan_chain(self) -> WallState:
        try:
            head = self._chain.block_number()
            from_block = max(0, head - self._fallback_block_window)
            logs = self._chain.get_paint_logs(from_block, head)
        except ChainError as e:
            logger.warning("Chain fallback for wall state failed: %s", str(e))
            return {}

        strokes: list[Stroke] = []
        for log in logs:
            try:
                strokes.append(self._chain.decode_paint_log(log).to_stroke(StrokeSource.CHAIN))
            except (ChainError, ValueError) as e:
                logger.debug("Skipping undecodable paint log: %s", str(e))
        logger.info(
            "Built wall from %d chain events",
            len(strokes),
            extra={"block_range": f"{from_block}-{head}"},
        )
        return reduce_latest(strokes)

    def cooldown_status(self, token_id: int) -> Cooldown:
        """When ``token_id`` may paint next.

        Raises:
            ChainError: If the graffiti contract cannot be read.
        """
        last = self._chain.last_paint_time_of(token_id)
        cooldown = self._chain.paint_cooldown()
        can_paint_at = last + cooldown if last > 0 else 0
        remaining = max(0, can_paint_at - int(self._clock()))
        return Cooldown(
            token_id=token_id,
            last_paint_time=last,
            cooldown=cooldown,
            can_paint_at=can_paint_at,
            remaining=remaining,
        )
