"""
⚠️ DRAFT — requires crypto review before production use

Security utilities for cryptographic operations.

Randomness for both groups comes from one fork-safe source. Secrets are
drawn by rejection sampling so they are uniform in their range.
"""

import hmac
import os
import secrets

from .config import FIELD_PRIME, SECP256K1_ORDER


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents catastrophic randomness reuse if process forks.

    Example:
        >>> rng = RandomnessSource()
        >>> key = rng.get_random_private_key()
        >>> # After fork, RNG automatically reinitializes
    """

    def __init__(self):
        """Initialize randomness source with fork detection."""
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def _check_fork(self) -> None:
        if os.getpid() != self._pid:
            self.__init__()

    def get_random_bytes(self, n: int) -> bytes:
        """
        Get n cryptographically secure random bytes.

        Args:
            n: Number of bytes to generate

        Returns:
            n random bytes
        """
        self._check_fork()
        return secrets.token_bytes(n)

    def get_random_scalar(self, max_value: int) -> int:
        """
        Get random scalar in [1, max_value).

        Zero is excluded: it is never a valid private key and a zero
        note secret would make the commitment guessable.
        """
        if max_value <= 2:
            raise ValueError(f"max_value must be > 2, got {max_value}")
        self._check_fork()
        bits = max_value.bit_length()
        while True:
            candidate = self._rng.getrandbits(bits)
            if 0 < candidate < max_value:
                return candidate

    def get_random_private_key(self) -> int:
        """Random secp256k1 scalar in [1, n)."""
        return self.get_random_scalar(SECP256K1_ORDER)

    def get_random_field_element(self) -> int:
        """Random BN254 field element in [1, p)."""
        return self.get_random_scalar(FIELD_PRIME)


_default_source = RandomnessSource()


def default_randomness() -> RandomnessSource:
    return _default_source


# ============================================================================
# CONSTANT-TIME OPERATIONS
# ============================================================================


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison to prevent timing attacks.

    Args:
        a: First byte string
        b: Second byte string

    Returns:
        True if equal, False otherwise
    """
    if not isinstance(a, bytes) or not isinstance(b, bytes):
        raise TypeError("constant_time_compare requires bytes")
    return hmac.compare_digest(a, b)
