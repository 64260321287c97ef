"""Account address validation."""

from __future__ import annotations

import re

_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


class InvalidAddressError(ValueError):
    """Raised when a value is not a 20-byte hex account address."""

    pass


def is_address(value: object) -> bool:
    """Check whether ``value`` looks like a 0x-prefixed 20-byte address."""
    return isinstance(value, str) and bool(_ADDRESS.match(value))


def normalize_address(value: object) -> str:
    """Return the lower-cased form of an address.

    Raises:
        InvalidAddressError: If the value is missing or malformed.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidAddressError("Address is required")
    candidate = value.strip()
    if not _ADDRESS.match(candidate):
        raise InvalidAddressError(f"Invalid address: {candidate[:64]!r}")
    return candidate.lower()
