"""Two-to-one field hashers used for Merkle tree nodes."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..config import FIELD_PRIME
from ..encoding import int_to_bytes32, keccak256
from .poseidon import poseidon


class FieldHasher(ABC):
    """Hash two field elements to one. Implementations must be pure."""

    name: str = ""

    @abstractmethod
    def hash_pair(self, left: int, right: int) -> int:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class PoseidonHasher(FieldHasher):
    """Poseidon(left, right), the hash the withdrawal circuit uses."""

    name = "poseidon"

    def hash_pair(self, left: int, right: int) -> int:
        return poseidon([left, right])


class KeccakFieldHasher(FieldHasher):
    """keccak256(left || right) mod p, matching the placeholder pool contract."""

    name = "keccak"

    def hash_pair(self, left: int, right: int) -> int:
        digest = keccak256(int_to_bytes32(left) + int_to_bytes32(right))
        return int.from_bytes(digest, "big") % FIELD_PRIME
