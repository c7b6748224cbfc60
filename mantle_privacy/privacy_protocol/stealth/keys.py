"""
⚠️ DRAFT — requires crypto review before production use

secp256k1 key handling for stealth payments using petlib.

Keys cross the API boundary as bytes (or hex strings). Points are parsed with
explicit validation because every public key handled here may come from an
untrusted announcement or meta-address.

Formats:
    - private key: 32 bytes, big-endian scalar in [1, n)
    - compressed public key: 33 bytes, 0x02/0x03 || x
    - uncompressed public key: 65 bytes, 0x04 || x || y
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from typing import Any, Optional

try:
    from petlib.bn import Bn
    from petlib.ec import EcGroup, EcPt
except ImportError:
    raise ImportError(
        "petlib is required for stealth key operations. "
        "Install with: pip install petlib"
    )

from ..config import (
    COMPRESSED_KEY_BYTES,
    CURVE_NID,
    PRIVATE_KEY_BYTES,
    SECP256K1_ORDER,
    UNCOMPRESSED_KEY_BYTES,
)
from ..encoding import BytesLike, to_bytes
from ..exceptions import (
    CryptographicError,
    InvalidKeyLength,
    InvalidPrivateKey,
    InvalidPublicKey,
    ValidationError,
)
from ..security import default_randomness


# ============================================================================
# CURVE SETUP
# ============================================================================


@dataclass(frozen=True)
class CurveParameters:
    group: Any  # EcGroup
    G: Any  # EcPt
    order: int


_params: Optional[CurveParameters] = None
_params_lock = threading.Lock()


def get_curve() -> CurveParameters:
    """
    Return the process-wide secp256k1 parameters.

    Double-checked locking keeps initialization single-shot under threads
    (the query API runs beside the trio ingestor).
    """
    global _params
    if _params is None:
        with _params_lock:
            if _params is None:
                group = EcGroup(CURVE_NID)
                order = int(group.order())
                if order != SECP256K1_ORDER:
                    raise CryptographicError(
                        f"Curve order mismatch: expected {SECP256K1_ORDER}, got {order}"
                    )
                _params = CurveParameters(
                    group=group, G=group.generator(), order=order
                )
    return _params


def scalar_to_bn(value: int) -> Bn:
    return Bn.from_binary(int(value).to_bytes(PRIVATE_KEY_BYTES, "big"))


# ============================================================================
# KEYPAIR
# ============================================================================


@dataclass(frozen=True)
class Keypair:
    """
    Immutable secp256k1 keypair.

    Attributes:
        private_key: 32-byte scalar
        public_key: 65-byte uncompressed point
        compressed_public_key: 33-byte compressed point
    """

    private_key: bytes
    public_key: bytes
    compressed_public_key: bytes

    @property
    def private_key_int(self) -> int:
        return int.from_bytes(self.private_key, "big")

    def __repr__(self) -> str:
        return f"Keypair(public_key=0x{self.compressed_public_key.hex()})"


def parse_private_key(private_key: BytesLike) -> int:
    """
    Parse and range-check a private key.

    Raises:
        InvalidKeyLength: If the key is not 32 bytes.
        InvalidPrivateKey: If the scalar is 0 or >= n.
    """
    raw = to_bytes(private_key, "private key")
    if len(raw) != PRIVATE_KEY_BYTES:
        raise InvalidKeyLength("private key", len(raw), PRIVATE_KEY_BYTES)
    scalar = int.from_bytes(raw, "big")
    if not 0 < scalar < SECP256K1_ORDER:
        raise InvalidPrivateKey("private key must be in [1, n)")
    return scalar


def parse_public_key(public_key: BytesLike) -> EcPt:
    """
    Parse a compressed or uncompressed secp256k1 point.

    Raises:
        InvalidKeyLength: If the key is neither 33 nor 65 bytes.
        InvalidPublicKey: If the bytes do not encode a valid curve point.
    """
    try:
        raw = to_bytes(public_key, "public key")
    except ValidationError as exc:
        raise InvalidPublicKey(str(exc)) from exc

    if len(raw) not in (COMPRESSED_KEY_BYTES, UNCOMPRESSED_KEY_BYTES):
        raise InvalidKeyLength(
            "public key", len(raw), (COMPRESSED_KEY_BYTES, UNCOMPRESSED_KEY_BYTES)
        )
    if len(raw) == COMPRESSED_KEY_BYTES and raw[0] not in (2, 3):
        raise InvalidPublicKey("compressed key must start with 0x02 or 0x03")
    if len(raw) == UNCOMPRESSED_KEY_BYTES and raw[0] != 4:
        raise InvalidPublicKey("uncompressed key must start with 0x04")

    params = get_curve()
    try:
        point = EcPt.from_binary(raw, params.group)
    except Exception as exc:
        # petlib surfaces OpenSSL decode failures as generic exceptions
        raise InvalidPublicKey("public key is not a curve point") from exc

    if point is None or point.is_infinite() or not params.group.check_point(point):
        raise InvalidPublicKey("public key is not a valid curve point")
    return point


def point_to_compressed(point: EcPt) -> bytes:
    return point.export()


def point_to_uncompressed(point: EcPt) -> bytes:
    x, y = point.get_affine()
    return b"\x04" + _coord_bytes(x) + _coord_bytes(y)


def _coord_bytes(value: Bn) -> bytes:
    return int(value).to_bytes(32, "big")


def _keypair_from_scalar(scalar: int) -> Keypair:
    params = get_curve()
    point = scalar_to_bn(scalar) * params.G
    return Keypair(
        private_key=scalar.to_bytes(PRIVATE_KEY_BYTES, "big"),
        public_key=point_to_uncompressed(point),
        compressed_public_key=point_to_compressed(point),
    )


# ============================================================================
# OPERATIONS
# ============================================================================


def generate_keypair(entropy: Optional[BytesLike] = None) -> Keypair:
    """
    Generate a secp256k1 keypair.

    Args:
        entropy: Optional 32 bytes used verbatim as the private key. Out of
            range values are rejected rather than reduced.

    Returns:
        Keypair with uniform private key in [1, n)

    Raises:
        InvalidKeyLength: If entropy is not 32 bytes.
        InvalidPrivateKey: If entropy is 0 or >= n.
    """
    if entropy is None:
        scalar = default_randomness().get_random_private_key()
    else:
        scalar = parse_private_key(entropy)
    return _keypair_from_scalar(scalar)


def derive_public_key(private_key: BytesLike) -> Keypair:
    """Derive the full keypair for an existing private key."""
    return _keypair_from_scalar(parse_private_key(private_key))


def compress_public_key(public_key: BytesLike) -> bytes:
    return point_to_compressed(parse_public_key(public_key))


def uncompress_public_key(public_key: BytesLike) -> bytes:
    return point_to_uncompressed(parse_public_key(public_key))


def ecdh_shared_secret(private_key: BytesLike, public_key: BytesLike) -> bytes:
    """
    s = sha256(compress(priv * Pub)).

    Both sides of the exchange arrive at the same 32 bytes:
    sha256(compress(e * V)) == sha256(compress(v * E)).
    """
    scalar = parse_private_key(private_key)
    point = parse_public_key(public_key)
    shared = scalar_to_bn(scalar) * point
    if shared.is_infinite():
        raise CryptographicError("ECDH produced the point at infinity")
    return hashlib.sha256(point_to_compressed(shared)).digest()
