"""Typed adapter over the entity store for snapshots and strokes.

Serializes ``Snapshot`` and ``Stroke`` as JSON payloads, tags them with
queryable attributes, and parses them back. All store failures surface as
``StoreError`` so that display-only callers can treat them as "no data".
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import ValidationError

from soulscape.engine.scoring import derive_stage
from soulscape.model.address import normalize_address
from soulscape.model.spirit import ATTRIBUTE_NAMES, AttributeVector, Snapshot, Stage
from soulscape.model.stroke import Stroke, StrokeSource
from soulscape.store.entity_store import Entity, EntityStore, EntityStoreError

logger = logging.getLogger(__name__)

SNAPSHOT_TYPE = "spiritSnapshot"
STROKE_TYPE = "graffitiStroke"
JSON_CONTENT_TYPE = "application/json"

DEFAULT_TTL = 30 * 24 * 60 * 60


class StoreError(Exception):
    """Raised when a snapshot or stroke cannot be written or read."""

    pass


def _now_ms() -> int:
    return int(time.time() * 1000)


def newest_first(snapshots: Iterable[Snapshot]) -> list[Snapshot]:
    """Order snapshots by creation time, most recent first."""
    return sorted(snapshots, key=lambda s: s.created_at, reverse=True)


class SnapshotStore:
    """Reads and writes spirit snapshots and graffiti strokes.

    Example:
        >>> snapshots = SnapshotStore(InMemoryEntityStore())
        >>> snap = snapshots.write_snapshot("0xabc...", 7, vector)
        >>> snapshots.query_snapshots("0xabc...", 7)
        [Snapshot(...)]
    """

    def __init__(
        self,
        store: EntityStore,
        snapshot_ttl: int = DEFAULT_TTL,
        stroke_ttl: int = DEFAULT_TTL,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        """Initialize the adapter.

        Args:
            store: Underlying entity store.
            snapshot_ttl: Lifetime of snapshot entities in seconds.
            stroke_ttl: Lifetime of stroke entities in seconds.
            clock_ms: Source of epoch milliseconds for snapshot timestamps.
        """
        self._store = store
        self._snapshot_ttl = snapshot_ttl
        self._stroke_ttl = stroke_ttl
        self._clock_ms = clock_ms
        self._last_created: dict[int, int] = {}
        self._lock = threading.Lock()

    @property
    def entity_store(self) -> EntityStore:
        """The wrapped entity store."""
        return self._store

    def _next_created_at(self, token_id: int, requested: int | None) -> int:
        # createdAt never goes backwards for a token within this process.
        with self._lock:
            candidate = requested if requested is not None else self._clock_ms()
            created_at = max(candidate, self._last_created.get(token_id, 0))
            self._last_created[token_id] = created_at
            return created_at

    def _write(self, payload: dict[str, Any], attributes: dict[str, str], ttl: int) -> str:
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        try:
            return self._store.write(body, JSON_CONTENT_TYPE, attributes, ttl)
        except EntityStoreError as e:
            raise StoreError(f"Write of {attributes['type']} failed: {e}") from e

    def _query(self, filters: dict[str, str], include_payload: bool = True) -> list[Entity]:
        try:
            return self._store.query(filters, include_payload=include_payload)
        except EntityStoreError as e:
            raise StoreError(f"Query for {filters['type']} failed: {e}") from e

    # -- snapshots ----------------------------------------------------------

    def write_snapshot(
        self,
        address: str,
        token_id: int,
        vector: AttributeVector,
        stage: Stage | None = None,
        created_at: int | None = None,
    ) -> Snapshot:
        """Persist one evolution record.

        Args:
            address: Owner address (normalized to lower case).
            token_id: Spirit token id.
            vector: Vector committed on-chain.
            stage: Stage to record; derived from ``vector`` when omitted.
            created_at: Epoch ms; defaults to now.

        Returns:
            The stored snapshot, carrying its entity key.

        Raises:
            StoreError: If the store rejects the write.
        """
        owner = normalize_address(address)
        snapshot = Snapshot(
            token_id=token_id,
            owner_address=owner,
            attributes=vector,
            stage=stage or derive_stage(vector),
            created_at=self._next_created_at(token_id, created_at),
            ttl=self._snapshot_ttl,
        )
        attributes = {
            "type": SNAPSHOT_TYPE,
            "spiritAddress": owner,
            "tokenId": str(token_id),
            "stage": snapshot.stage.store_value,
        }
        for name in ATTRIBUTE_NAMES:
            attributes[name] = str(getattr(vector, name))

        key = self._write(snapshot.to_payload(), attributes, self._snapshot_ttl)
        logger.debug(
            "Snapshot stored as %s", key, extra={"address": owner, "token_id": token_id}
        )
        return snapshot.model_copy(update={"entity_key": key})

    def query_snapshots(self, address: str, token_id: int) -> list[Snapshot]:
        """All live snapshots for (address, token_id), in store order.

        Raises:
            StoreError: If the store cannot be queried.
        """
        filters = {
            "type": SNAPSHOT_TYPE,
            "spiritAddress": normalize_address(address),
            "tokenId": str(token_id),
        }
        snapshots: list[Snapshot] = []
        for entity in self._query(filters):
            try:
                snapshots.append(Snapshot.from_payload(entity.json_payload(), entity.key))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                logger.warning("Skipping unreadable snapshot %s: %s", entity.key, str(e))
        return snapshots

    def history(self, address: str, token_id: int) -> list[Snapshot]:
        """Newest-first snapshots for display; empty when the store is unavailable."""
        try:
            return newest_first(self.query_snapshots(address, token_id))
        except StoreError as e:
            logger.warning("Snapshot history unavailable: %s", str(e), extra={"token_id": token_id})
            return []

    # -- strokes ------------------------------------------------------------

    def write_stroke(self, stroke: Stroke) -> str:
        """Persist one stroke and return its entity key.

        Raises:
            StoreError: If the store rejects the write.
        """
        attributes = {
            "type": STROKE_TYPE,
            "x": str(stroke.x),
            "y": str(stroke.y),
            "tokenId": str(stroke.token_id),
            "color": stroke.color_hex,
            "timestamp": str(stroke.timestamp // 1000),
            "txHash": stroke.tx_hash,
        }
        return self._write(stroke.to_payload(), attributes, self._stroke_ttl)

    def has_stroke(self, stroke: Stroke) -> bool:
        """Whether ``stroke`` was already stored by an earlier sync.

        Matches on transaction hash and coordinate.

        Raises:
            StoreError: If the store cannot be queried.
        """
        filters = {
            "type": STROKE_TYPE,
            "txHash": stroke.tx_hash,
            "x": str(stroke.x),
            "y": str(stroke.y),
        }
        return bool(self._query(filters, include_payload=False))

    def query_strokes(self) -> list[Stroke]:
        """All live strokes, possibly several per coordinate.

        Raises:
            StoreError: If the store cannot be queried.
        """
        strokes: list[Stroke] = []
        for entity in self._query({"type": STROKE_TYPE}):
            try:
                strokes.append(
                    Stroke.from_payload(entity.json_payload(), entity.key, StrokeSource.STORE)
                )
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                logger.warning("Skipping unreadable stroke %s: %s", entity.key, str(e))
        return strokes
