"""TransactionRecord: one historical chain transaction as reported by the explorer.

Explorer payloads are loosely typed (every field a string, ``to`` empty for
contract creation). This model is the single place where they are coerced;
code downstream of ingestion only ever sees clean integers and lower-cased
addresses.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from soulscape.model.address import is_address

WEI_PER_ETHER = 10**18


class TransactionRecord(BaseModel):
    """A transaction touching the subject account.

    Attributes:
        sender: Lower-cased ``from`` address.
        recipient: Lower-cased ``to`` address, or None for contract creation.
        input: Call data as hex (``"0x"`` for a plain transfer).
        value: Transferred amount in wei, or None when the explorer omitted it.
        timestamp: Block time in epoch seconds.
        hash: Transaction hash, when provided.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    sender: str = Field(alias="from", description="Sender address")
    recipient: str | None = Field(default=None, alias="to", description="Recipient address")
    input: str = Field(default="0x", description="Call data")
    value: int | None = Field(default=None, ge=0, description="Amount in wei")
    timestamp: int = Field(alias="timeStamp", ge=0, description="Epoch seconds")
    hash: str | None = Field(default=None, description="Transaction hash")

    @field_validator("sender", mode="before")
    @classmethod
    def normalize_sender(cls, v: Any) -> str:
        """Sender must be a valid address."""
        if not is_address(v):
            raise ValueError("from is not a valid address")
        return v.lower()

    @field_validator("recipient", mode="before")
    @classmethod
    def normalize_recipient(cls, v: Any) -> str | None:
        """Empty recipient means contract creation."""
        if v is None or v == "":
            return None
        if not is_address(v):
            raise ValueError("to is not a valid address")
        return v.lower()

    @field_validator("input", mode="before")
    @classmethod
    def normalize_input(cls, v: Any) -> str:
        """Missing call data is treated as an empty call."""
        if not v:
            return "0x"
        return str(v)

    @field_validator("value", mode="before")
    @classmethod
    def parse_value(cls, v: Any) -> int | None:
        """Explorer values are decimal strings; unparseable ones are dropped."""
        if v is None or v == "":
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    @property
    def has_call_data(self) -> bool:
        """True when the transaction carries non-empty call data."""
        return self.input not in ("", "0x")

    @property
    def value_ether(self) -> float | None:
        """Value converted to ether, or None when unknown."""
        if self.value is None:
            return None
        return self.value / WEI_PER_ETHER
