"""Unit tests for byte, hex and address helpers."""

import pytest

from mantle_privacy.privacy_protocol.config import FIELD_PRIME
from mantle_privacy.privacy_protocol.encoding import (
    address_to_int,
    int_to_address,
    is_address,
    keccak256,
    parse_field_element,
    to_bytes,
    to_checksum_address,
    to_hex,
)
from mantle_privacy.privacy_protocol.exceptions import ValidationError


def test_keccak256_empty_vector() -> None:
    assert keccak256(b"").hex() == (
        "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
    )


def test_to_bytes_accepts_hex_and_bytes() -> None:
    assert to_bytes("0x0102") == b"\x01\x02"
    assert to_bytes("0102") == b"\x01\x02"
    assert to_bytes(bytearray(b"\x03")) == b"\x03"
    assert to_hex(b"\xab") == "0xab"


@pytest.mark.parametrize("value", ["0x123", "0xzz", 12])
def test_to_bytes_rejects_bad_input(value) -> None:
    with pytest.raises(ValidationError):
        to_bytes(value)


def test_eip55_checksum_vectors() -> None:
    # vectors from EIP-55
    for expected in (
        "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359",
        "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB",
    ):
        assert to_checksum_address(expected.lower()) == expected


def test_address_int_round_trip() -> None:
    address = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
    assert int_to_address(address_to_int(address)) == address


def test_is_address() -> None:
    assert is_address("0x" + "11" * 20)
    assert not is_address("0x" + "11" * 19)
    assert not is_address("0x" + "zz" * 20)
    assert not is_address(None)
    with pytest.raises(ValidationError):
        address_to_int("0x1234")


def test_parse_field_element_forms() -> None:
    assert parse_field_element(5) == 5
    assert parse_field_element("5") == 5
    assert parse_field_element("0x10") == 16
    assert parse_field_element((7).to_bytes(32, "big")) == 7


@pytest.mark.parametrize("value", [FIELD_PRIME, -1, "abc", True, 1.5, b"\x01"])
def test_parse_field_element_rejects(value) -> None:
    with pytest.raises(ValidationError):
        parse_field_element(value)
