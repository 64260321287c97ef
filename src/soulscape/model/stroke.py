"""Stroke and WallState: the shared graffiti canvas."""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

WALL_SIZE = 256
MAX_COLOR = 0xFFFFFF

Coordinate = tuple[int, int]


class StrokeSource(IntEnum):
    """Where a stroke was read from; higher values are more authoritative."""

    OPTIMISTIC = 0
    CHAIN = 1
    STORE = 2


class Stroke(BaseModel):
    """A single paint action.

    Attributes:
        x: Column on the 256x256 wall.
        y: Row on the 256x256 wall.
        color: 24-bit RGB color.
        token_id: Spirit that painted.
        timestamp: Epoch milliseconds.
        tx_hash: Paint transaction hash, if known.
        block_number: Block the paint landed in, if known.
        entity_key: Store key, for strokes read back from the store.
        source: Provenance used to break timestamp ties.
    """

    model_config = ConfigDict(frozen=True)

    x: int = Field(ge=0, lt=WALL_SIZE)
    y: int = Field(ge=0, lt=WALL_SIZE)
    color: int = Field(ge=0, le=MAX_COLOR)
    token_id: int = Field(ge=0)
    timestamp: int = Field(ge=0)
    tx_hash: str = ""
    block_number: int = Field(default=0, ge=0)
    entity_key: str | None = None
    source: StrokeSource = StrokeSource.STORE

    @property
    def coordinate(self) -> Coordinate:
        """(x, y) key used for per-pixel reconciliation."""
        return (self.x, self.y)

    @property
    def color_hex(self) -> str:
        """Color as 0x-prefixed 6-digit hex."""
        return f"0x{self.color:06x}"

    def to_payload(self) -> dict[str, Any]:
        """JSON payload stored in the entity body."""
        return {
            "x": self.x,
            "y": self.y,
            "tokenId": str(self.token_id),
            "color": self.color,
            "timestamp": self.timestamp,
            "txHash": self.tx_hash,
            "blockNumber": str(self.block_number),
        }

    @classmethod
    def from_payload(
        cls,
        data: dict[str, Any],
        entity_key: str | None = None,
        source: StrokeSource = StrokeSource.STORE,
    ) -> Stroke:
        """Inverse of ``to_payload``."""
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            color=int(data["color"]),
            token_id=int(data["tokenId"]),
            timestamp=int(data["timestamp"]),
            tx_hash=str(data.get("txHash") or ""),
            block_number=int(data.get("blockNumber") or 0),
            entity_key=entity_key,
            source=source,
        )


WallState = dict[Coordinate, Stroke]
