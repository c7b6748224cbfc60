"""
⚠️ DRAFT — requires crypto review before production use

Unit tests for secp256k1 key handling.
"""

import pytest

from mantle_privacy.privacy_protocol.config import SECP256K1_ORDER
from mantle_privacy.privacy_protocol.exceptions import (
    InvalidKeyLength,
    InvalidPrivateKey,
    InvalidPublicKey,
)
from mantle_privacy.privacy_protocol.stealth.keys import (
    compress_public_key,
    derive_public_key,
    ecdh_shared_secret,
    generate_keypair,
    parse_public_key,
    uncompress_public_key,
)

ONE = (1).to_bytes(32, "big")
G_COMPRESSED = bytes.fromhex(
    "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
)
G_UNCOMPRESSED = bytes.fromhex(
    "0479be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"
    "483ada7726a3c4655da4fbfc0e1108a8fd17b448a68554199c47d08ffb10d4b8"
)


class TestKeypair:
    def test_private_key_one_is_generator(self):
        keypair = derive_public_key(ONE)
        assert keypair.compressed_public_key == G_COMPRESSED
        assert keypair.public_key == G_UNCOMPRESSED
        assert keypair.private_key_int == 1

    def test_generate_keypair_shapes(self):
        keypair = generate_keypair()
        assert len(keypair.private_key) == 32
        assert len(keypair.public_key) == 65
        assert len(keypair.compressed_public_key) == 33
        assert 0 < keypair.private_key_int < SECP256K1_ORDER

    def test_entropy_is_used_verbatim(self):
        entropy = bytes.fromhex("11" * 32)
        assert generate_keypair(entropy) == derive_public_key(entropy)

    def test_repr_hides_private_key(self):
        keypair = derive_public_key(ONE)
        assert "private" not in repr(keypair)

    @pytest.mark.parametrize(
        "value",
        [b"\x00" * 32, SECP256K1_ORDER.to_bytes(32, "big"), b"\xff" * 32],
    )
    def test_out_of_range_private_keys(self, value):
        with pytest.raises(InvalidPrivateKey):
            derive_public_key(value)

    def test_private_key_length(self):
        with pytest.raises(InvalidKeyLength):
            derive_public_key(b"\x01" * 31)


class TestPublicKeys:
    def test_compress_and_uncompress(self):
        assert compress_public_key(G_UNCOMPRESSED) == G_COMPRESSED
        assert uncompress_public_key(G_COMPRESSED) == G_UNCOMPRESSED
        assert compress_public_key("0x" + G_COMPRESSED.hex()) == G_COMPRESSED

    def test_wrong_length(self):
        with pytest.raises(InvalidKeyLength):
            parse_public_key(b"\x02" + b"\x01" * 31)

    def test_bad_prefix(self):
        with pytest.raises(InvalidPublicKey):
            parse_public_key(b"\x05" + G_COMPRESSED[1:])

    def test_point_not_on_curve(self):
        bad = bytearray(G_UNCOMPRESSED)
        bad[-1] ^= 1
        with pytest.raises(InvalidPublicKey):
            parse_public_key(bytes(bad))

    def test_non_hex_string(self):
        with pytest.raises(InvalidPublicKey):
            parse_public_key("0xnothex")


class TestECDH:
    def test_shared_secret_is_commutative(self):
        alice = generate_keypair()
        bob = generate_keypair()
        assert ecdh_shared_secret(alice.private_key, bob.public_key) == ecdh_shared_secret(
            bob.private_key, alice.compressed_public_key
        )

    def test_shared_secret_is_32_bytes(self):
        a = generate_keypair()
        assert len(ecdh_shared_secret(a.private_key, G_COMPRESSED)) == 32
