"""
⚠️ DRAFT — requires crypto review before production use

Deposit notes for the shielded pool.

    commitment     = Poseidon(secret, nullifier, amount)
    nullifier_hash = Poseidon(nullifier)

Secret and nullifier are uniform BN254 field elements. They are drawn mod the
field prime p, never mod the secp256k1 order, since the circuit works in F_p.
The nullifier hash deliberately excludes the amount so a note has exactly one
spend tag regardless of how its value is later presented.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..config import FIELD_PRIME
from ..encoding import parse_field_element
from ..exceptions import ValidationError
from ..security import RandomnessSource, default_randomness
from .poseidon import poseidon


@dataclass(frozen=True)
class DepositNote:
    """
    Private note held by the depositor.

    Attributes:
        secret: random field element
        nullifier: random field element, revealed only as its hash
        amount: deposited amount in base units (must fit the field)
        commitment: leaf inserted into the pool tree
        nullifier_hash: public spend tag
    """

    secret: int
    nullifier: int
    amount: int
    commitment: int
    nullifier_hash: int

    def __repr__(self) -> str:
        # secret and nullifier stay out of logs and tracebacks
        return (
            f"DepositNote(commitment={self.commitment}, "
            f"nullifier_hash={self.nullifier_hash}, amount={self.amount})"
        )


def _check_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount must be an integer")
    if not 0 <= amount < FIELD_PRIME:
        raise ValidationError("amount outside the scalar field")
    return amount


def compute_commitment(secret: int, nullifier: int, amount: int) -> int:
    return poseidon(
        [
            parse_field_element(secret, "secret"),
            parse_field_element(nullifier, "nullifier"),
            _check_amount(amount),
        ]
    )


def compute_nullifier_hash(nullifier: int) -> int:
    return poseidon([parse_field_element(nullifier, "nullifier")])


def build_note(secret: int, nullifier: int, amount: int) -> DepositNote:
    """Build a note from existing secrets (e.g. when restoring a backup)."""
    return DepositNote(
        secret=secret,
        nullifier=nullifier,
        amount=amount,
        commitment=compute_commitment(secret, nullifier, amount),
        nullifier_hash=compute_nullifier_hash(nullifier),
    )


def generate_deposit_note(
    amount: int, rng: Optional[RandomnessSource] = None
) -> DepositNote:
    """
    Create a fresh note for a deposit of ``amount``.

    Args:
        amount: Amount in base units
        rng: Optional randomness source (defaults to the process source)

    Raises:
        ValidationError: If amount is negative, not an int, or >= p.
    """
    _check_amount(amount)
    rng = rng or default_randomness()
    secret = rng.get_random_field_element()
    nullifier = rng.get_random_field_element()
    return build_note(secret, nullifier, amount)
