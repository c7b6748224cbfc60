"""
⚠️ DRAFT — requires crypto review before production use

Unit tests for deposit commitments and nullifier hashes.
"""

import pytest

from mantle_privacy.privacy_protocol.config import FIELD_PRIME
from mantle_privacy.privacy_protocol.exceptions import ValidationError
from mantle_privacy.privacy_protocol.pool.commitments import (
    build_note,
    compute_commitment,
    compute_nullifier_hash,
    generate_deposit_note,
)
from mantle_privacy.privacy_protocol.pool.poseidon import poseidon


def test_commitment_is_poseidon_of_three_inputs():
    assert compute_commitment(11, 22, 33) == poseidon([11, 22, 33])
    assert compute_nullifier_hash(22) == poseidon([22])


def test_commitment_is_deterministic():
    assert compute_commitment(1, 2, 3) == compute_commitment(1, 2, 3)


@pytest.mark.parametrize("changed", [(2, 2, 3), (1, 3, 3), (1, 2, 4)])
def test_commitment_changes_with_every_input(changed):
    assert compute_commitment(*changed) != compute_commitment(1, 2, 3)


def test_nullifier_hash_ignores_amount():
    small = build_note(5, 6, 1)
    large = build_note(5, 6, 10**18)
    assert small.nullifier_hash == large.nullifier_hash
    assert small.commitment != large.commitment


def test_generated_note_fields():
    note = generate_deposit_note(10**18)
    assert 0 < note.secret < FIELD_PRIME
    assert 0 < note.nullifier < FIELD_PRIME
    assert note.secret != note.nullifier
    assert note.commitment == compute_commitment(note.secret, note.nullifier, note.amount)
    assert note.nullifier_hash == compute_nullifier_hash(note.nullifier)


def test_generated_notes_are_unique():
    assert generate_deposit_note(1).commitment != generate_deposit_note(1).commitment


def test_repr_hides_secrets():
    note = build_note(123456789, 987654321, 7)
    text = repr(note)
    assert "123456789" not in text
    assert "987654321" not in text


@pytest.mark.parametrize("amount", [-1, FIELD_PRIME, 1.5, True, "10"])
def test_invalid_amounts(amount):
    with pytest.raises(ValidationError):
        generate_deposit_note(amount)


def test_secrets_must_be_field_elements():
    with pytest.raises(ValidationError):
        compute_commitment(FIELD_PRIME, 1, 1)
