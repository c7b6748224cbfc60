"""
⚠️ DRAFT — requires crypto review before production use

ERC-5564 stealth address derivation (scheme id 1, secp256k1 with view tags).

Sender:
    e  <- random scalar
    s  = sha256(compress(e * V))
    P  = S + s * G
    address = keccak256(P_uncompressed[1:])[-20:]
    view tag = s[0]

Recipient:
    s' = sha256(compress(v * E))
    p  = (spend_priv + s') mod n, and p * G == P

The view tag is a 1-byte filter only. A matching tag is never proof of
ownership; the address must be re-derived with check_stealth_address.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..config import (
    COMPRESSED_KEY_BYTES,
    META_ADDRESS_PREFIX,
    SCHEME_ID_SECP256K1,
    SECP256K1_ORDER,
    SUPPORTED_SCHEME_IDS,
)
from ..encoding import BytesLike, keccak256, strip_hex_prefix, to_bytes, to_checksum_address
from ..exceptions import InvalidKeyLength, InvalidPublicKey, UnsupportedScheme
from ..security import constant_time_compare
from .keys import (
    Keypair,
    compress_public_key,
    derive_public_key,
    ecdh_shared_secret,
    generate_keypair,
    get_curve,
    parse_private_key,
    parse_public_key,
    point_to_compressed,
    point_to_uncompressed,
    scalar_to_bn,
)


@dataclass(frozen=True)
class StealthMetaAddress:
    """Recipient's published viewing and spending public keys (compressed)."""

    viewing_public_key: bytes
    spending_public_key: bytes

    def encode(self) -> str:
        return (
            META_ADDRESS_PREFIX
            + "0x"
            + self.viewing_public_key.hex()
            + self.spending_public_key.hex()
        )

    def encode_pair(self) -> str:
        """``0x<view>:0x<spend>``, the form the Mantle TypeScript SDK emits."""
        return "0x" + self.viewing_public_key.hex() + ":0x" + self.spending_public_key.hex()

    def __str__(self) -> str:
        return self.encode()


@dataclass(frozen=True)
class StealthAddressInfo:
    """
    Sender-side output of a stealth derivation.

    Attributes:
        stealth_address: EIP-55 checksummed address funds are sent to
        ephemeral_public_key: compressed E, published in the announcement
        metadata: announcement metadata, first byte is the view tag
        view_tag: s[0]
        scheme_id: ERC-5564 scheme id
    """

    stealth_address: str
    ephemeral_public_key: bytes
    metadata: bytes
    view_tag: int
    scheme_id: int = SCHEME_ID_SECP256K1


def check_scheme_id(scheme_id: int) -> None:
    if scheme_id not in SUPPORTED_SCHEME_IDS:
        raise UnsupportedScheme(scheme_id)


def generate_stealth_meta_address(
    viewing_public_key: BytesLike, spending_public_key: BytesLike
) -> StealthMetaAddress:
    return StealthMetaAddress(
        viewing_public_key=compress_public_key(viewing_public_key),
        spending_public_key=compress_public_key(spending_public_key),
    )


def parse_stealth_meta_address(encoded) -> StealthMetaAddress:
    """
    Parse a stealth meta-address.

    Accepted forms:
        st:mnt:0x<view33><spend33>
        0x<view33><spend33>
        0x<view33>:0x<spend33>
    """
    if isinstance(encoded, StealthMetaAddress):
        return encoded
    if not isinstance(encoded, str):
        raise InvalidPublicKey("meta-address must be a string")

    text = encoded.strip()
    if text.startswith(META_ADDRESS_PREFIX):
        text = text[len(META_ADDRESS_PREFIX):]

    if ":" in text:
        view_part, _, spend_part = text.partition(":")
        view, spend = to_bytes(view_part, "viewing key"), to_bytes(spend_part, "spending key")
    else:
        raw = to_bytes(strip_hex_prefix(text), "meta-address")
        if len(raw) != 2 * COMPRESSED_KEY_BYTES:
            raise InvalidKeyLength("meta-address", len(raw), 2 * COMPRESSED_KEY_BYTES)
        view, spend = raw[:COMPRESSED_KEY_BYTES], raw[COMPRESSED_KEY_BYTES:]

    return generate_stealth_meta_address(view, spend)


def public_key_to_address(public_key: BytesLike) -> str:
    uncompressed = point_to_uncompressed(parse_public_key(public_key))
    return to_checksum_address(keccak256(uncompressed[1:])[-20:])


def private_key_to_address(private_key: BytesLike) -> str:
    return public_key_to_address(derive_public_key(private_key).public_key)


def _stealth_point(spending_public_key: BytesLike, shared_secret: bytes):
    params = get_curve()
    offset = int.from_bytes(shared_secret, "big") % SECP256K1_ORDER
    point = parse_public_key(spending_public_key) + scalar_to_bn(offset) * params.G
    if point.is_infinite():
        raise InvalidPublicKey("stealth public key is the point at infinity")
    return point


def generate_stealth_address(
    meta_address,
    scheme_id: int = SCHEME_ID_SECP256K1,
    ephemeral: Optional[Keypair] = None,
) -> StealthAddressInfo:
    """
    Derive a fresh one-time address for a recipient.

    Args:
        meta_address: StealthMetaAddress or its string encoding
        scheme_id: ERC-5564 scheme id, only 1 is supported
        ephemeral: Optional ephemeral keypair (tests pin it for determinism)

    Raises:
        UnsupportedScheme: If scheme_id is not 1.
        InvalidPublicKey: If either meta-address key is not a curve point.
    """
    check_scheme_id(scheme_id)
    meta = parse_stealth_meta_address(meta_address)
    ephemeral = ephemeral or generate_keypair()

    shared_secret = ecdh_shared_secret(ephemeral.private_key, meta.viewing_public_key)
    point = _stealth_point(meta.spending_public_key, shared_secret)
    address = to_checksum_address(keccak256(point_to_uncompressed(point)[1:])[-20:])
    view_tag = shared_secret[0]

    return StealthAddressInfo(
        stealth_address=address,
        ephemeral_public_key=ephemeral.compressed_public_key,
        metadata=bytes([view_tag]),
        view_tag=view_tag,
        scheme_id=scheme_id,
    )


def compute_view_tag(viewing_private_key: BytesLike, ephemeral_public_key: BytesLike) -> int:
    return ecdh_shared_secret(viewing_private_key, ephemeral_public_key)[0]


def compute_stealth_public_key(
    viewing_private_key: BytesLike,
    spending_public_key: BytesLike,
    ephemeral_public_key: BytesLike,
) -> bytes:
    """Recipient-side P = S + s'*G, usable with only the viewing key."""
    shared_secret = ecdh_shared_secret(viewing_private_key, ephemeral_public_key)
    return point_to_compressed(_stealth_point(spending_public_key, shared_secret))


def compute_stealth_private_key(
    viewing_private_key: BytesLike,
    spending_private_key: BytesLike,
    ephemeral_public_key: BytesLike,
) -> bytes:
    """
    Recover the one-time private key p = (spend_priv + s') mod n.

    Raises:
        InvalidPrivateKey: In the negligible case p == 0.
    """
    shared_secret = ecdh_shared_secret(viewing_private_key, ephemeral_public_key)
    spend = parse_private_key(spending_private_key)
    stealth = (spend + int.from_bytes(shared_secret, "big")) % SECP256K1_ORDER
    # re-validate: reject the zero scalar
    return derive_public_key(stealth.to_bytes(32, "big")).private_key


def check_stealth_address(stealth_private_key: BytesLike, claimed_address: str) -> bool:
    """Case-insensitive comparison of the derived and claimed addresses."""
    if not isinstance(claimed_address, str):
        return False
    derived = private_key_to_address(stealth_private_key)
    return constant_time_compare(
        derived.lower().encode("ascii"), claimed_address.strip().lower().encode("ascii", "replace")
    )
