"""Copy PixelPainted events from the chain into the entity store."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from soulscape.canvas.wall import reduce_latest
from soulscape.chain.client import ChainClient
from soulscape.model.stroke import Stroke
from soulscape.store.snapshots import SnapshotStore, StoreError

logger = logging.getLogger(__name__)


class SyncResult(BaseModel):
    """Outcome of one sync pass over a block range."""

    scanned: int
    synced: int
    skipped: int
    failed: int
    from_block: int
    to_block: int


class EventSyncer:
    """Scans a bounded block range and persists each paint as a stroke.

    Meant to be run periodically over a recent window, not as a full
    history indexer.
    """

    def __init__(
        self, chain: ChainClient, snapshots: SnapshotStore, block_window: int = 10_000
    ) -> None:
        """Initialize the syncer.

        Args:
            chain: Chain client for the graffiti contract.
            snapshots: Destination for strokes.
            block_window: Default horizon for ``sync_recent``.
        """
        self._chain = chain
        self._snapshots = snapshots
        self._block_window = block_window

    def sync(self, from_block: int, to_block: int) -> SyncResult:
        """Sync the paint events in ``[from_block, to_block]``.

        Decoded strokes are reduced to the latest per coordinate, and strokes
        whose transaction is already stored are skipped, so rerunning over the
        same window writes nothing new. A log that fails to decode or to
        persist is counted as failed and the scan continues.

        Raises:
            ChainError: If the logs cannot be fetched at all.
        """
        block_range = f"{from_block}-{to_block}"
        logs = self._chain.get_paint_logs(from_block, to_block)
        logger.info("Found %d PixelPainted events", len(logs), extra={"block_range": block_range})

        strokes: list[Stroke] = []
        failed = 0
        for log in logs:
            try:
                strokes.append(self._chain.decode_paint_log(log).to_stroke())
            except Exception as e:
                logger.warning("Skipping paint log: %s", str(e), extra={"block_range": block_range})
                failed += 1

        latest = reduce_latest(strokes)
        skipped = len(strokes) - len(latest)
        synced = 0
        for stroke in latest.values():
            try:
                if stroke.tx_hash and self._snapshots.has_stroke(stroke):
                    skipped += 1
                    continue
                self._snapshots.write_stroke(stroke)
            except StoreError as e:
                logger.warning(
                    "Failed to store stroke at %s: %s",
                    stroke.coordinate,
                    str(e),
                    extra={"block_range": block_range},
                )
                failed += 1
                continue
            synced += 1

        result = SyncResult(
            scanned=len(logs),
            synced=synced,
            skipped=skipped,
            failed=failed,
            from_block=from_block,
            to_block=to_block,
        )
        logger.info(
            "Graffiti sync complete: %d/%d synced, %d skipped",
            synced,
            len(logs),
            skipped,
            extra={"block_range": block_range},
        )
        return result

    def sync_recent(self, block_window: int | None = None) -> SyncResult:
        """Sync the last ``block_window`` blocks up to the chain head."""
        window = block_window if block_window is not None else self._block_window
        head = self._chain.block_number()
        return self.sync(max(0, head - window), head)
