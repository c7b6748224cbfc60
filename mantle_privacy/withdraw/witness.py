"""Withdrawal circuit witness."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from ..privacy_protocol.config import PUBLIC_SIGNAL_ORDER
from ..privacy_protocol.encoding import address_to_int, to_checksum_address
from ..privacy_protocol.exceptions import ValidationError
from ..privacy_protocol.pool.commitments import DepositNote
from ..privacy_protocol.pool.merkle import SiblingPath


@dataclass(frozen=True)
class WithdrawWitness:
    """
    Full circuit input.

    Private: secret, nullifier, path_elements, path_indices.
    Public (in this order): root, nullifier_hash, recipient, amount.
    """

    root: int
    nullifier_hash: int
    recipient: str
    amount: int
    secret: int
    nullifier: int
    path_elements: Tuple[int, ...]
    path_indices: Tuple[int, ...]

    def public_signals(self) -> Tuple[int, int, int, int]:
        values = {
            "root": self.root,
            "nullifierHash": self.nullifier_hash,
            "recipient": address_to_int(self.recipient),
            "amount": self.amount,
        }
        return tuple(values[name] for name in PUBLIC_SIGNAL_ORDER)

    def to_circuit_input(self) -> Dict[str, object]:
        """snarkjs input.json, numbers as decimal strings."""
        return {
            "secret": str(self.secret),
            "nullifier": str(self.nullifier),
            "pathElements": [str(e) for e in self.path_elements],
            "pathIndices": list(self.path_indices),
            "root": str(self.root),
            "nullifierHash": str(self.nullifier_hash),
            "recipient": str(address_to_int(self.recipient)),
            "amount": str(self.amount),
        }

    def __repr__(self) -> str:
        return (
            f"WithdrawWitness(root={self.root}, nullifier_hash={self.nullifier_hash}, "
            f"recipient={self.recipient}, amount={self.amount})"
        )


def build_witness(note: DepositNote, path: SiblingPath, recipient: str) -> WithdrawWitness:
    if path.leaf != note.commitment:
        raise ValidationError("sibling path is for a different commitment")
    return WithdrawWitness(
        root=path.root,
        nullifier_hash=note.nullifier_hash,
        recipient=to_checksum_address(recipient),
        amount=note.amount,
        secret=note.secret,
        nullifier=note.nullifier,
        path_elements=tuple(path.path_elements),
        path_indices=tuple(path.path_indices),
    )
