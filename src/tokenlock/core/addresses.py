"""
Account and contract addresses.

Addresses are ``0x`` followed by 40 hex characters. They are compared
case-insensitively and stored lowercase.
"""

from __future__ import annotations

import hashlib

from .exceptions import InvalidAddressError

ZERO_ADDRESS = "0x" + "0" * 40


def validate_address(address: str) -> tuple[bool, str]:
    """
    Validate address format.

    Args:
        address: Address to validate

    Returns:
        Tuple of (is_valid, error_message or normalized_address)
    """
    if not isinstance(address, str) or not address:
        return False, "Address cannot be empty"
    if not address.lower().startswith("0x"):
        return False, "Address must start with 0x"

    hex_part = address[2:]
    if len(hex_part) != 40:
        return False, "Address must be 42 characters"

    try:
        int(hex_part, 16)
    except ValueError:
        return False, "Address contains invalid hex characters"

    return True, "0x" + hex_part.lower()


def is_proper_address(address: str) -> bool:
    """True for a well-formed, non-zero address."""
    is_valid, result = validate_address(address)
    return is_valid and result != ZERO_ADDRESS


def normalize_address(address: str) -> str:
    """
    Normalize address to lowercase form.

    Raises:
        InvalidAddressError: If address is invalid
    """
    is_valid, result = validate_address(address)
    if not is_valid:
        raise InvalidAddressError(result, details={"address": address})
    return result


def derive_address(*parts: object) -> str:
    """Derive a deterministic contract address from arbitrary seed parts."""
    seed = ":".join(str(part) for part in parts).encode()
    digest = hashlib.sha3_256(seed).digest()
    return f"0x{digest[-20:].hex()}"
