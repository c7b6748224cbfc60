"""Behaviour of the in-memory pool contract and prover used by tests and the demo."""

from dataclasses import replace

import pytest
import trio

from mantle_privacy.adapters.mock_chain import (
    MockChain,
    MockProver,
    MockShieldedPool,
    mock_proof_calldata,
    mock_verify,
)
from mantle_privacy.privacy_protocol.config import FIELD_PRIME
from mantle_privacy.privacy_protocol.encoding import address_to_int
from mantle_privacy.privacy_protocol.exceptions import ProofGenerationError, TransactionReverted
from mantle_privacy.privacy_protocol.pool.commitments import build_note
from mantle_privacy.privacy_protocol.pool.hashing import KeccakFieldHasher
from mantle_privacy.privacy_protocol.pool.merkle import IncrementalMerkleReplica
from mantle_privacy.withdraw.witness import build_witness

HASHER = KeccakFieldHasher()
RECIPIENT = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


@pytest.fixture
def pool():
    return MockShieldedPool(MockChain(), HASHER, depth=2, denominations=(10, 100))


def _withdraw_args(root, nullifier_hash=5, amount=10):
    signals = [root, nullifier_hash, address_to_int(RECIPIENT), amount]
    return mock_proof_calldata(signals), root, nullifier_hash, RECIPIENT, amount


class TestDeposit:
    def test_deposit_mines_block_and_tracks_balance(self, pool):
        tx_hash = pool.deposit(123, 10)
        assert pool.chain.block_number == 1
        assert pool.chain.receipts[tx_hash]["status"] == "0x1"
        assert pool.balance == 10
        assert pool.next_index == 1

    @pytest.mark.parametrize(
        "args, reason",
        [
            ((123, 7), "Unsupported denomination"),
            ((123, 10, 9), "Value mismatch"),
            ((FIELD_PRIME, 10), "Commitment out of field"),
        ],
    )
    def test_deposit_reverts(self, pool, args, reason):
        with pytest.raises(TransactionReverted) as info:
            pool.deposit(*args)
        assert info.value.reason == reason
        assert pool.chain.block_number == 0

    def test_full_tree_reverts(self, pool):
        for commitment in range(4):
            pool.deposit(commitment, 10)
        with pytest.raises(TransactionReverted, match="full"):
            pool.deposit(99, 10)


class TestWithdraw:
    def test_withdraw_spends_nullifier(self, pool):
        pool.deposit(123, 100)
        pool.withdraw(*_withdraw_args(pool.current_root()))
        assert pool.nullifiers == {5}
        assert pool.balance == 90
        assert trio.run(pool.is_nullifier_used, 5)

    @pytest.mark.parametrize(
        "mutate, reason",
        [
            (lambda a: (a[0], 12345) + a[2:], "Unknown merkle root"),
            (lambda a: (a[0][:7],) + a[1:], "Invalid proof length"),
            (lambda a: ([0] * 8,) + a[1:], "Invalid withdraw proof"),
        ],
    )
    def test_withdraw_reverts(self, pool, mutate, reason):
        pool.deposit(123, 10)
        args = mutate(_withdraw_args(pool.current_root()))
        with pytest.raises(TransactionReverted) as info:
            pool.withdraw(*args)
        assert info.value.reason == reason
        assert not pool.nullifiers

    def test_double_spend_reverts(self, pool):
        pool.deposit(123, 100)
        args = _withdraw_args(pool.current_root())
        pool.withdraw(*args)
        with pytest.raises(TransactionReverted, match="Nullifier already used"):
            pool.withdraw(*args)

    def test_balance_is_checked(self, pool):
        pool.deposit(123, 10)
        with pytest.raises(TransactionReverted, match="Insufficient"):
            pool.withdraw(*_withdraw_args(pool.current_root(), amount=100))

    def test_empty_root_is_known_but_zero_is_not(self, pool):
        assert pool.known_root(pool.current_root())
        assert not pool.known_root(0)


class TestMockProver:
    def _witness(self, note, tree):
        return build_witness(note, tree.get_path_for_commitment(note.commitment), RECIPIENT)

    def test_proof_is_accepted_by_default_verifier(self):
        note = build_note(1, 2, 10)
        tree = IncrementalMerkleReplica(hasher=HASHER, depth=2)
        tree.insert(note.commitment)
        witness = self._witness(note, tree)

        proof = trio.run(MockProver(HASHER).prove, witness)
        assert mock_verify(proof.to_calldata(), witness.public_signals())

    @pytest.mark.parametrize("field", ["nullifier_hash", "root"])
    def test_inconsistent_witness_is_refused(self, field):
        note = build_note(1, 2, 10)
        tree = IncrementalMerkleReplica(hasher=HASHER, depth=2)
        tree.insert(note.commitment)
        witness = self._witness(note, tree)
        forged = replace(witness, **{field: getattr(witness, field) + 1})

        with pytest.raises(ProofGenerationError):
            trio.run(MockProver(HASHER).prove, forged)
