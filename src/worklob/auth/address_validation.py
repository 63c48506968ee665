"""
EVM wallet address format validation.

Addresses are ``0x`` followed by 40 hex characters. They are stored and
compared lower-cased, so checksum casing is accepted but not verified.
"""

from __future__ import annotations

import re

_EVM_ADDRESS = re.compile(r"^0x[a-fA-F0-9]{40}$")


def validate_wallet_address(address: str) -> str:
    """
    Validate an EVM wallet address.

    Returns:
        The normalized (lower-case, stripped) address.

    Raises:
        ValueError: If the address is empty or malformed.
    """
    if not address or not isinstance(address, str):
        msg = "Address must be a non-empty string"
        raise ValueError(msg)

    candidate = address.strip()
    if not _EVM_ADDRESS.match(candidate):
        msg = "Please enter a valid wallet address"
        raise ValueError(msg)
    return candidate.lower()


def normalize_wallet_address(address: str | None) -> str | None:
    """Lower-case an address for lookups; None stays None."""
    if address is None:
        return None
    return address.strip().lower() or None
