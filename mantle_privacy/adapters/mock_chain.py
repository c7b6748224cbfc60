"""
In-memory stand-ins for the on-chain collaborators.

Notes:
- MockChain records raw JSON-RPC style logs, so everything read back goes
  through the real ABI log decoder.
- MockShieldedPool keeps its own copy of the contract's insertion loop. It
  shares no code with the off-chain replica and serves as the reference model
  for parity tests.
- MockProver checks the withdrawal constraints in Python and emits a fake
  proof. It does NOT provide any cryptographic soundness.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

import trio

from ..chain.abi import (
    ANNOUNCEMENT_TOPIC,
    DEPOSIT_TOPIC,
    WITHDRAWAL_TOPIC,
    encode_address,
    encode_dynamic_bytes_pair,
    encode_uint,
)
from ..chain.events import ChainEvent, decode_log, event_sort_key
from ..privacy_protocol.config import (
    FIELD_PRIME,
    PROOF_CALLDATA_LENGTH,
    ROOT_HISTORY_SIZE,
    TREE_DEPTH,
)
from ..privacy_protocol.encoding import (
    address_to_int,
    int_to_bytes32,
    keccak256,
    to_checksum_address,
    to_hex,
)
from ..privacy_protocol.exceptions import (
    ChainError,
    ProofGenerationError,
    ProofTimeout,
    TransactionReverted,
    TreeFull,
)
from ..privacy_protocol.pool.commitments import compute_commitment, compute_nullifier_hash
from ..privacy_protocol.pool.hashing import FieldHasher
from ..privacy_protocol.pool.merkle import verify_path
from ..withdraw.prover import Groth16Proof
from ..withdraw.witness import WithdrawWitness

logger = logging.getLogger(__name__)

GENESIS_TIMESTAMP = 1_700_000_000
BLOCK_TIME = 2

DEFAULT_ANNOUNCER_ADDRESS = "0x55649E01B5Df198D18D95b5cc5051630cfD45564"
DEFAULT_POOL_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
DEFAULT_CALLER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def _word_hex(value: int) -> str:
    return to_hex(encode_uint(value))


def mock_proof_calldata(public_signals: Sequence[int]) -> List[int]:
    """Deterministic fake proof bound to its public signals."""
    seed = b"".join(int_to_bytes32(s % (1 << 256)) for s in public_signals)
    return [
        int.from_bytes(keccak256(seed + bytes([i])), "big") % FIELD_PRIME
        for i in range(PROOF_CALLDATA_LENGTH)
    ]


def mock_verify(proof: Sequence[int], public_signals: Sequence[int]) -> bool:
    return list(proof) == mock_proof_calldata(public_signals)


# ============================================================================
# CHAIN
# ============================================================================


class MockChain:
    """
    One block per transaction, logs and receipts kept in memory.

    Implements the EventSource interface used by the ingestor.
    """

    def __init__(self, start_block: int = 0) -> None:
        self.block_number = start_block
        self.logs: List[Dict[str, Any]] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.withhold_receipts = False
        self.fail_fetches = 0
        self._tx_count = 0

    @property
    def timestamp(self) -> int:
        return GENESIS_TIMESTAMP + self.block_number * BLOCK_TIME

    def mine_block(self) -> int:
        self.block_number += 1
        return self.block_number

    def _next_tx_hash(self) -> str:
        self._tx_count += 1
        return to_hex(keccak256(b"mock-tx" + self._tx_count.to_bytes(8, "big")))

    def send(self, address: str, entries: Iterable[Dict[str, Any]]) -> str:
        """Mine a block holding one transaction that emits ``entries``."""
        block = self.mine_block()
        tx_hash = self._next_tx_hash()
        for log_index, entry in enumerate(entries):
            self.logs.append(
                {
                    "address": address,
                    "topics": list(entry["topics"]),
                    "data": entry["data"],
                    "blockNumber": hex(block),
                    "transactionHash": tx_hash,
                    "logIndex": hex(log_index),
                    "removed": False,
                }
            )
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "blockNumber": hex(block),
            "status": "0x1",
        }
        return tx_hash

    def inject_log(self, log: Dict[str, Any]) -> None:
        self.logs.append(dict(log))

    async def latest_block(self) -> int:
        return self.block_number

    async def fetch_events(self, from_block: int, to_block: int) -> List[ChainEvent]:
        if self.fail_fetches > 0:
            self.fail_fetches -= 1
            raise ChainError("mock eth_getLogs failure")
        events = [
            decode_log(log)
            for log in self.logs
            if not log.get("removed") and from_block <= int(log["blockNumber"], 16) <= to_block
        ]
        events.sort(key=event_sort_key)
        return events

    async def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        if self.withhold_receipts:
            return None
        return self.receipts.get(tx_hash)


# ============================================================================
# ANNOUNCER
# ============================================================================


class MockAnnouncer:
    """ERC-5564 announcer: emits Announcement logs, keeps no state."""

    def __init__(self, chain: MockChain, address: str = DEFAULT_ANNOUNCER_ADDRESS) -> None:
        self.chain = chain
        self.address = to_checksum_address(address)

    def announce(
        self,
        scheme_id: int,
        stealth_address: str,
        ephemeral_public_key: bytes,
        metadata: bytes,
        caller: str = DEFAULT_CALLER_ADDRESS,
    ) -> str:
        entry = {
            "topics": [
                ANNOUNCEMENT_TOPIC,
                _word_hex(scheme_id),
                to_hex(encode_address(stealth_address)),
                to_hex(encode_address(caller)),
            ],
            "data": to_hex(encode_dynamic_bytes_pair(ephemeral_public_key, metadata)),
        }
        return self.chain.send(self.address, [entry])


# ============================================================================
# SHIELDED POOL
# ============================================================================


class MockShieldedPool:
    """
    Reference model of the shielded pool contract.

    Also implements the PoolChain interface so the withdrawal orchestrator can
    run against it directly.

    Args:
        chain: MockChain that records this contract's logs
        hasher: tree node hasher
        depth: tree depth
        root_history_size: size of the known-root ring buffer
        denominations: accepted deposit amounts (any amount when empty)
        verifier: proof check, defaults to the MockProver scheme
    """

    def __init__(
        self,
        chain: MockChain,
        hasher: FieldHasher,
        depth: int = TREE_DEPTH,
        root_history_size: int = ROOT_HISTORY_SIZE,
        address: str = DEFAULT_POOL_ADDRESS,
        denominations: Iterable[int] = (),
        verifier: Callable[[Sequence[int], Sequence[int]], bool] = mock_verify,
    ) -> None:
        self.chain = chain
        self.hasher = hasher
        self.depth = depth
        self.address = to_checksum_address(address)
        self.denominations: Set[int] = set(denominations)
        self.verifier = verifier
        self.balance = 0
        self.next_index = 0
        self.nullifiers: Set[int] = set()

        zeros = [0]
        for _ in range(depth):
            zeros.append(hasher.hash_pair(zeros[-1], zeros[-1]))
        self.zeros = zeros
        self.filled_subtrees = list(zeros[:depth])
        self.roots = [0] * root_history_size
        self.roots[0] = zeros[depth]
        self.current_root_index = 0

    # contract views

    def current_root(self) -> int:
        return self.roots[self.current_root_index]

    def known_root(self, root: int) -> bool:
        if root == 0:
            return False
        return root in self.roots

    def _insert(self, leaf: int) -> int:
        index = self.next_index
        if index >= 1 << self.depth:
            raise TreeFull("Merkle tree is full")
        current = leaf
        position = index
        for level in range(self.depth):
            if position % 2 == 0:
                left = current
                right = self.filled_subtrees[level]
                self.filled_subtrees[level] = current
            else:
                left = self.filled_subtrees[level]
                right = current
            current = self.hasher.hash_pair(left, right)
            position //= 2

        self.current_root_index = (self.current_root_index + 1) % len(self.roots)
        self.roots[self.current_root_index] = current
        self.next_index = index + 1
        return index

    # contract transactions

    def deposit(self, commitment: int, amount: int, value: Optional[int] = None) -> str:
        """Payable deposit. ``value`` is the attached native amount (defaults to amount)."""
        value = amount if value is None else value
        if self.denominations and amount not in self.denominations:
            raise TransactionReverted("Unsupported denomination")
        if value != amount:
            raise TransactionReverted("Value mismatch")
        if not 0 <= commitment < FIELD_PRIME:
            raise TransactionReverted("Commitment out of field")
        if self.next_index >= 1 << self.depth:
            raise TransactionReverted("Merkle tree is full")

        leaf_index = self._insert(commitment)
        self.balance += amount
        entry = {
            "topics": [DEPOSIT_TOPIC, _word_hex(commitment)],
            "data": to_hex(
                encode_uint(leaf_index)
                + encode_uint(amount)
                + encode_uint(self.chain.timestamp + BLOCK_TIME)
            ),
        }
        tx_hash = self.chain.send(self.address, [entry])
        logger.debug("Mock deposit of %d at leaf %d", amount, leaf_index)
        return tx_hash

    def withdraw(
        self,
        proof: Sequence[int],
        root: int,
        nullifier_hash: int,
        recipient: str,
        amount: int,
    ) -> str:
        if nullifier_hash in self.nullifiers:
            raise TransactionReverted("Nullifier already used")
        if not self.known_root(root):
            raise TransactionReverted("Unknown merkle root")
        if len(proof) != PROOF_CALLDATA_LENGTH:
            raise TransactionReverted("Invalid proof length")
        public_signals = [root, nullifier_hash, address_to_int(recipient), amount]
        if not self.verifier(proof, public_signals):
            raise TransactionReverted("Invalid withdraw proof")
        if amount > self.balance:
            raise TransactionReverted("Insufficient pool balance")

        self.nullifiers.add(nullifier_hash)
        self.balance -= amount
        entry = {
            "topics": [WITHDRAWAL_TOPIC, to_hex(encode_address(recipient))],
            "data": to_hex(
                encode_uint(nullifier_hash)
                + encode_uint(amount)
                + encode_uint(self.chain.timestamp + BLOCK_TIME)
            ),
        }
        return self.chain.send(self.address, [entry])

    # PoolChain interface

    async def get_root(self) -> int:
        return self.current_root()

    async def is_known_root(self, root: int) -> bool:
        return self.known_root(root)

    async def is_nullifier_used(self, nullifier_hash: int) -> bool:
        return nullifier_hash in self.nullifiers

    async def submit_withdraw(
        self,
        proof: Sequence[int],
        root: int,
        nullifier_hash: int,
        recipient: str,
        amount: int,
    ) -> str:
        return self.withdraw(proof, root, nullifier_hash, recipient, amount)

    async def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.chain.get_receipt(tx_hash)


# ============================================================================
# PROVER
# ============================================================================


class MockProver:
    """
    Constraint-checking prover for tests and the demo.

    Checks what the withdrawal circuit enforces, then returns a proof that
    MockShieldedPool's default verifier accepts.
    """

    def __init__(self, hasher: FieldHasher, delay: float = 0.0, timeout: Optional[float] = None) -> None:
        self.hasher = hasher
        self.delay = delay
        self.timeout = timeout
        self.calls = 0

    def _check(self, witness: WithdrawWitness) -> None:
        commitment = compute_commitment(witness.secret, witness.nullifier, witness.amount)
        if compute_nullifier_hash(witness.nullifier) != witness.nullifier_hash:
            raise ProofGenerationError("witness nullifier hash does not match the nullifier")
        if not verify_path(
            commitment, witness.path_elements, witness.path_indices, witness.root, self.hasher
        ):
            raise ProofGenerationError("witness path does not reach the root")

    async def prove(self, witness: WithdrawWitness) -> Groth16Proof:
        self.calls += 1
        self._check(witness)
        if self.delay:
            try:
                with trio.fail_after(self.timeout if self.timeout is not None else float("inf")):
                    await trio.sleep(self.delay)
            except trio.TooSlowError as exc:
                raise ProofTimeout(f"prover exceeded {self.timeout}s") from exc

        signals = witness.public_signals()
        calldata = mock_proof_calldata(signals)
        return Groth16Proof(
            pi_a=(calldata[0], calldata[1]),
            pi_b=((calldata[3], calldata[2]), (calldata[5], calldata[4])),
            pi_c=(calldata[6], calldata[7]),
            public_signals=signals,
        )

    async def verify(self, proof: Groth16Proof) -> bool:
        return mock_verify(proof.to_calldata(), proof.public_signals)
