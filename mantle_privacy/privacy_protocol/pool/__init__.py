"""Shielded pool primitives: notes, Poseidon and the Merkle tree replica."""

from .commitments import (
    DepositNote,
    build_note,
    compute_commitment,
    compute_nullifier_hash,
    generate_deposit_note,
)
from .hashing import FieldHasher, KeccakFieldHasher, PoseidonHasher
from .merkle import (
    IncrementalMerkleReplica,
    SiblingPath,
    TreeSnapshot,
    verify_path,
    verify_sibling_path,
)
from .notes import decode_note, encode_note, note_to_json, parse_note
from .poseidon import poseidon

__all__ = [
    "DepositNote",
    "FieldHasher",
    "IncrementalMerkleReplica",
    "KeccakFieldHasher",
    "PoseidonHasher",
    "SiblingPath",
    "TreeSnapshot",
    "build_note",
    "compute_commitment",
    "compute_nullifier_hash",
    "decode_note",
    "encode_note",
    "generate_deposit_note",
    "note_to_json",
    "parse_note",
    "poseidon",
    "verify_path",
    "verify_sibling_path",
]
