"""Soul NFT and graffiti wall contract access."""

from soulscape.chain.client import (
    ChainClient,
    ChainError,
    ChainWriteError,
    ConfirmationTimeoutError,
    EventDecodeError,
    PaintEvent,
    TxReceipt,
    Web3ChainClient,
)

__all__ = [
    "ChainClient",
    "ChainError",
    "ChainWriteError",
    "ConfirmationTimeoutError",
    "EventDecodeError",
    "PaintEvent",
    "TxReceipt",
    "Web3ChainClient",
]
