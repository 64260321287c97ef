"""Contract ABIs for the Soul NFT and the graffiti wall."""

from __future__ import annotations

from typing import Any


def _fn(
    name: str,
    inputs: list[tuple[str, str]],
    outputs: list[str],
    mutability: str = "view",
) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs],
    }


SOUL_ABI: list[dict[str, Any]] = [
    _fn("spiritOf", [("owner", "address")], ["uint256"]),
    _fn(
        "getSpirit",
        [("tokenId", "uint256")],
        ["uint32", "uint32", "uint32", "uint32", "uint32", "uint64"],
    ),
    _fn(
        "evolveSpirit",
        [
            ("tokenId", "uint256"),
            ("aggression", "uint32"),
            ("serenity", "uint32"),
            ("chaos", "uint32"),
            ("influence", "uint32"),
            ("connectivity", "uint32"),
        ],
        [],
        mutability="nonpayable",
    ),
    _fn("ownerOf", [("tokenId", "uint256")], ["address"]),
    _fn("totalSupply", [], ["uint256"]),
]

PIXEL_PAINTED_SIGNATURE = "PixelPainted(uint16,uint16,uint256,uint32,uint64)"

GRAFFITI_ABI: list[dict[str, Any]] = [
    _fn(
        "paint",
        [("tokenId", "uint256"), ("x", "uint16"), ("y", "uint16"), ("color", "uint32")],
        [],
        mutability="nonpayable",
    ),
    _fn("lastPaintTimeOf", [("tokenId", "uint256")], ["uint64"]),
    _fn("PAINT_COOLDOWN", [], ["uint256"]),
    {
        "type": "event",
        "name": "PixelPainted",
        "anonymous": False,
        "inputs": [
            {"name": "x", "type": "uint16", "indexed": True},
            {"name": "y", "type": "uint16", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
            {"name": "color", "type": "uint32", "indexed": False},
            {"name": "timestamp", "type": "uint64", "indexed": False},
        ],
    },
]
