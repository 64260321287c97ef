"""Domain model: transactions, spirits, snapshots and wall strokes."""

from soulscape.model.address import InvalidAddressError, is_address, normalize_address
from soulscape.model.spirit import (
    ATTRIBUTE_NAMES,
    DORMANT_VECTOR,
    AttributeVector,
    Snapshot,
    SpiritState,
    Stage,
    clamp_score,
)
from soulscape.model.stroke import (
    MAX_COLOR,
    WALL_SIZE,
    Coordinate,
    Stroke,
    StrokeSource,
    WallState,
)
from soulscape.model.transaction import WEI_PER_ETHER, TransactionRecord

__all__ = [
    "ATTRIBUTE_NAMES",
    "DORMANT_VECTOR",
    "MAX_COLOR",
    "WALL_SIZE",
    "WEI_PER_ETHER",
    "AttributeVector",
    "Coordinate",
    "InvalidAddressError",
    "Snapshot",
    "SpiritState",
    "Stage",
    "Stroke",
    "StrokeSource",
    "TransactionRecord",
    "WallState",
    "clamp_score",
    "is_address",
    "normalize_address",
]
