"""Spirit domain types: AttributeVector, Stage and Snapshot."""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ATTRIBUTE_NAMES: tuple[str, ...] = (
    "aggression",
    "serenity",
    "chaos",
    "influence",
    "connectivity",
)


def clamp_score(value: float) -> int:
    """Round half-up and clamp a raw score into [0, 100]."""
    return max(0, min(100, math.floor(value + 0.5)))


class Stage(StrEnum):
    """Coarse classification of a spirit, always re-derived from its vector."""

    SEED = "Seed"
    WILD = "Wild"
    ASCENDED = "Ascended"

    @property
    def store_value(self) -> str:
        """Lower-case form used as a store attribute."""
        return self.value.lower()

    @classmethod
    def parse(cls, value: str) -> Stage:
        """Parse either the display or the store form."""
        for stage in cls:
            if stage.value.lower() == str(value).lower():
                return stage
        raise ValueError(f"Unknown stage: {value}")


class AttributeVector(BaseModel):
    """Five bounded personality scores, each an integer in [0, 100]."""

    model_config = ConfigDict(frozen=True)

    aggression: int = Field(ge=0, le=100)
    serenity: int = Field(ge=0, le=100)
    chaos: int = Field(ge=0, le=100)
    influence: int = Field(ge=0, le=100)
    connectivity: int = Field(ge=0, le=100)

    @classmethod
    def clamped(cls, **scores: float) -> AttributeVector:
        """Build a vector from raw scores, rounding and clamping each one."""
        return cls(**{name: clamp_score(scores.get(name, 0)) for name in ATTRIBUTE_NAMES})

    def as_tuple(self) -> tuple[int, int, int, int, int]:
        """Scores in contract argument order."""
        return (self.aggression, self.serenity, self.chaos, self.influence, self.connectivity)

    def canonical(self) -> str:
        """Order-fixed serialization used for seeding."""
        return ",".join(f"{name}={getattr(self, name)}" for name in ATTRIBUTE_NAMES)


DORMANT_VECTOR = AttributeVector(aggression=10, serenity=60, chaos=10, influence=5, connectivity=5)


class SpiritState(BaseModel):
    """On-chain view of a spirit as returned by ``getSpirit``."""

    token_id: int = Field(ge=1)
    attributes: AttributeVector
    last_updated: int = Field(default=0, ge=0, description="Epoch seconds of last evolution")


class Snapshot(BaseModel):
    """One immutable evolution record kept in the entity store.

    Attributes:
        token_id: Spirit token id.
        owner_address: Lower-cased owner address.
        attributes: Vector committed on-chain for this evolution.
        stage: Stage derived from ``attributes``.
        created_at: Epoch milliseconds.
        ttl: Lifetime in seconds granted by the store.
        entity_key: Store key, present on snapshots read back from the store.
    """

    model_config = ConfigDict(frozen=True)

    token_id: int = Field(ge=1)
    owner_address: str
    attributes: AttributeVector
    stage: Stage
    created_at: int = Field(ge=0)
    ttl: int = Field(ge=1)
    entity_key: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Flat JSON payload stored in the entity body."""
        return {
            "spiritAddress": self.owner_address,
            "tokenId": str(self.token_id),
            **self.attributes.model_dump(),
            "stage": self.stage.store_value,
            "createdAt": self.created_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any], entity_key: str | None = None) -> Snapshot:
        """Inverse of ``to_payload``."""
        return cls(
            token_id=int(data["tokenId"]),
            owner_address=str(data["spiritAddress"]).lower(),
            attributes=AttributeVector(**{name: data[name] for name in ATTRIBUTE_NAMES}),
            stage=Stage.parse(data["stage"]),
            created_at=int(data["createdAt"]),
            ttl=int(data.get("ttl", 1)),
            entity_key=entity_key,
        )
