"""Minimal Solidity ABI helpers for the announcer and pool contracts."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..privacy_protocol.encoding import (
    address_to_int,
    int_to_address,
    keccak256,
    strip_hex_prefix,
    to_bytes,
    to_hex,
)
from ..privacy_protocol.exceptions import ValidationError

WORD_BYTES = 32
ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")

ANNOUNCEMENT_SIGNATURE = "Announcement(uint256,address,address,bytes,bytes)"
DEPOSIT_SIGNATURE = "Deposit(uint256,uint256,uint256,uint256)"
WITHDRAWAL_SIGNATURE = "Withdrawal(address,uint256,uint256,uint256)"

GET_ROOT_SIGNATURE = "getRoot()"
IS_KNOWN_ROOT_SIGNATURE = "isKnownRoot(uint256)"
IS_NULLIFIER_USED_SIGNATURE = "isNullifierUsed(uint256)"
WITHDRAW_SIGNATURE = "withdraw(uint256[8],uint256,uint256,address,uint256)"


def function_selector(signature: str) -> bytes:
    return keccak256(signature.encode("ascii"))[:4]


def event_topic(signature: str) -> str:
    return to_hex(keccak256(signature.encode("ascii")))


ANNOUNCEMENT_TOPIC = event_topic(ANNOUNCEMENT_SIGNATURE)
DEPOSIT_TOPIC = event_topic(DEPOSIT_SIGNATURE)
WITHDRAWAL_TOPIC = event_topic(WITHDRAWAL_SIGNATURE)


def encode_uint(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("uint256 value must be an int")
    if not 0 <= value < 2**256:
        raise ValidationError("uint256 value out of range")
    return value.to_bytes(WORD_BYTES, "big")


def encode_address(address: str) -> bytes:
    return encode_uint(address_to_int(address))


def encode_call(signature: str, words: Sequence[bytes] = ()) -> str:
    """Selector followed by already-encoded static words."""
    return to_hex(function_selector(signature) + b"".join(words))


def split_words(data) -> List[int]:
    raw = to_bytes(data, "abi data")
    if len(raw) % WORD_BYTES:
        raise ValidationError("abi data is not word aligned")
    return [
        int.from_bytes(raw[i:i + WORD_BYTES], "big")
        for i in range(0, len(raw), WORD_BYTES)
    ]


def decode_uint(data) -> int:
    words = split_words(data)
    if not words:
        raise ValidationError("empty return data")
    return words[0]


def decode_bool(data) -> bool:
    return decode_uint(data) != 0


def topic_to_int(topic: str) -> int:
    return int(strip_hex_prefix(topic), 16)


def topic_to_address(topic: str) -> str:
    return int_to_address(topic_to_int(topic) & ((1 << 160) - 1))


def decode_dynamic_bytes(raw: bytes, head_offset: int) -> bytes:
    """Read a `bytes` value whose offset word sits at head_offset."""
    if head_offset + WORD_BYTES > len(raw):
        raise ValidationError("abi offset outside data")
    offset = int.from_bytes(raw[head_offset:head_offset + WORD_BYTES], "big")
    if offset + WORD_BYTES > len(raw):
        raise ValidationError("abi bytes offset outside data")
    length = int.from_bytes(raw[offset:offset + WORD_BYTES], "big")
    start = offset + WORD_BYTES
    if start + length > len(raw):
        raise ValidationError("abi bytes length outside data")
    return raw[start:start + length]


def encode_dynamic_bytes_pair(first: bytes, second: bytes) -> bytes:
    """ABI-encode (bytes, bytes) as event data."""

    def _tail(value: bytes) -> bytes:
        padded = value + b"\x00" * (-len(value) % WORD_BYTES)
        return encode_uint(len(value)) + padded

    first_tail = _tail(first)
    head = encode_uint(2 * WORD_BYTES) + encode_uint(2 * WORD_BYTES + len(first_tail))
    return head + first_tail + _tail(second)


def decode_revert_reason(data) -> Optional[str]:
    """Extract the reason of a Solidity Error(string) revert, if any."""
    if not data:
        return None
    try:
        raw = to_bytes(data, "revert data")
    except ValidationError:
        return None
    if raw[:4] != ERROR_STRING_SELECTOR:
        return None
    try:
        return decode_dynamic_bytes(raw[4:], 0).decode("utf-8", errors="replace")
    except ValidationError:
        return None
