"""Byte, hex and address helpers shared by the stealth and pool modules."""

from __future__ import annotations

from typing import Union

from Crypto.Hash import keccak

from .config import ADDRESS_BYTES, FIELD_ELEMENT_BYTES, FIELD_PRIME
from .exceptions import ValidationError

BytesLike = Union[bytes, bytearray, str]


def keccak256(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


def strip_hex_prefix(value: str) -> str:
    if value.startswith(("0x", "0X")):
        return value[2:]
    return value


def to_bytes(value: BytesLike, field: str = "value") -> bytes:
    """Accept raw bytes or a hex string with optional 0x prefix."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        body = strip_hex_prefix(value.strip())
        if len(body) % 2:
            raise ValidationError(f"{field} has odd hex length")
        try:
            return bytes.fromhex(body)
        except ValueError as exc:
            raise ValidationError(f"{field} is not valid hex") from exc
    raise ValidationError(f"{field} must be bytes or hex string")


def to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def int_to_bytes32(value: int) -> bytes:
    return int(value).to_bytes(32, "big")


def to_checksum_address(address: BytesLike) -> str:
    """EIP-55 mixed-case checksum encoding."""
    raw = to_bytes(address, "address")
    if len(raw) != ADDRESS_BYTES:
        raise ValidationError(f"address must be {ADDRESS_BYTES} bytes, got {len(raw)}")
    lower = raw.hex()
    digest = keccak256(lower.encode("ascii")).hex()
    out = []
    for ch, nibble in zip(lower, digest):
        if ch.isalpha() and int(nibble, 16) >= 8:
            out.append(ch.upper())
        else:
            out.append(ch)
    return "0x" + "".join(out)


def is_address(value: str) -> bool:
    if not isinstance(value, str):
        return False
    body = strip_hex_prefix(value)
    if len(body) != 2 * ADDRESS_BYTES:
        return False
    try:
        bytes.fromhex(body)
    except ValueError:
        return False
    return True


def address_to_int(address: str) -> int:
    if not is_address(address):
        raise ValidationError(f"invalid address: {address!r}")
    return int(strip_hex_prefix(address), 16)


def int_to_address(value: int) -> str:
    return to_checksum_address(int(value).to_bytes(ADDRESS_BYTES, "big"))


def parse_field_element(value, field: str = "value") -> int:
    """
    Parse a BN254 field element from int, decimal string or 0x-hex string.

    Raises:
        ValidationError: If the value is not an integer in [0, p).
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text.startswith(("0x", "0X")):
                parsed = int(text, 16)
            else:
                parsed = int(text, 10)
        except ValueError as exc:
            raise ValidationError(f"{field} is not an integer: {value!r}") from exc
    elif isinstance(value, (bytes, bytearray)):
        if len(value) != FIELD_ELEMENT_BYTES:
            raise ValidationError(f"{field} must be {FIELD_ELEMENT_BYTES} bytes")
        parsed = int.from_bytes(value, "big")
    else:
        raise ValidationError(f"{field} must be an integer, got {type(value).__name__}")

    if not 0 <= parsed < FIELD_PRIME:
        raise ValidationError(f"{field} is outside the scalar field")
    return parsed
