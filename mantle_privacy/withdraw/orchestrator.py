"""
Withdrawal state machine.

    ParseNote -> CheckNullifier -> FetchPath -> VerifyRoot -> BuildWitness
              -> Prove -> Submit -> Confirm -> Done

Attempts on the same nullifier are serialized in-process. The nullifier
checks are advisory only; the contract is the final arbiter and its revert is
mapped back to NullifierAlreadyUsed.
"""

from __future__ import annotations

import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Tuple

import trio

from ..chain.rpc import PoolChain
from ..privacy_protocol.encoding import is_address, to_checksum_address
from ..privacy_protocol.exceptions import (
    ChainError,
    ConfirmationPending,
    LivenessError,
    NullifierAlreadyUsed,
    ProofGenerationError,
    RootMismatch,
    TransactionReverted,
    ValidationError,
    WithdrawalFailed,
)
from ..privacy_protocol.pool.commitments import DepositNote
from ..privacy_protocol.pool.hashing import FieldHasher
from ..privacy_protocol.pool.merkle import SiblingPath, verify_sibling_path
from ..privacy_protocol.pool.notes import parse_note
from .prover import Groth16Proof, Prover, check_calldata, check_public_signals
from .witness import WithdrawWitness, build_witness

logger = logging.getLogger(__name__)

DEFAULT_CONFIRM_TIMEOUT = 120.0
DEFAULT_POLL_INTERVAL = 2.0


class WithdrawalStage(enum.Enum):
    PARSE_NOTE = "parse_note"
    CHECK_NULLIFIER = "check_nullifier"
    FETCH_PATH = "fetch_path"
    VERIFY_ROOT = "verify_root"
    BUILD_WITNESS = "build_witness"
    PROVE = "prove"
    SUBMIT = "submit"
    CONFIRM = "confirm"
    DONE = "done"


class PathSource(Protocol):
    async def get_path(self, commitment: int) -> SiblingPath:
        ...

    async def is_nullifier_spent(self, nullifier_hash: int) -> bool:
        ...


@dataclass
class WithdrawalAttempt:
    """Mutable record of how far one attempt got; useful after a failure."""

    stage: WithdrawalStage = WithdrawalStage.PARSE_NOTE
    history: List[WithdrawalStage] = field(default_factory=list)
    note: Optional[DepositNote] = None
    path: Optional[SiblingPath] = None
    witness: Optional[WithdrawWitness] = None
    proof: Optional[Groth16Proof] = None
    tx_hash: Optional[str] = None

    def advance(self, stage: WithdrawalStage) -> None:
        self.stage = stage
        self.history.append(stage)
        logger.info("Withdrawal stage: %s", stage.value)


@dataclass(frozen=True)
class WithdrawalResult:
    tx_hash: str
    recipient: str
    amount: int
    nullifier_hash: int
    root: int
    block_number: Optional[int]


class NullifierLocks:
    """One trio.Lock per nullifier hash, dropped when no attempt holds it."""

    def __init__(self) -> None:
        self._locks: Dict[int, Tuple[trio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, nullifier_hash: int) -> AsyncIterator[None]:
        lock, users = self._locks.get(nullifier_hash, (None, 0))
        if lock is None:
            lock = trio.Lock()
        self._locks[nullifier_hash] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[nullifier_hash]
            if users <= 1:
                del self._locks[nullifier_hash]
            else:
                self._locks[nullifier_hash] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)


def _receipt_status(receipt: Dict[str, Any]) -> int:
    status = receipt.get("status", 1)
    if isinstance(status, str):
        return int(status, 16)
    return int(status)


def _receipt_block(receipt: Dict[str, Any]) -> Optional[int]:
    block = receipt.get("blockNumber")
    if block is None:
        return None
    return int(block, 16) if isinstance(block, str) else int(block)


class WithdrawalOrchestrator:
    """
    Drives a deposit note to a confirmed withdrawal.

    Args:
        chain: pool contract access (roots, nullifiers, submit, receipts)
        paths: sibling path source (local state or remote indexer)
        prover: Groth16 prover
        hasher: tree node hasher, must match the contract
        confirm_timeout: seconds to wait for a receipt before ConfirmationPending
        poll_interval: seconds between receipt polls
    """

    def __init__(
        self,
        chain: PoolChain,
        paths: PathSource,
        prover: Prover,
        hasher: FieldHasher,
        confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.chain = chain
        self.paths = paths
        self.prover = prover
        self.hasher = hasher
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self.locks = NullifierLocks()

    async def withdraw(
        self,
        note: Any,
        recipient: str,
        attempt: Optional[WithdrawalAttempt] = None,
    ) -> WithdrawalResult:
        """
        Run every stage for one note.

        Raises:
            MalformedNote: note cannot be parsed.
            NullifierAlreadyUsed: note already spent (locally, on chain, or on submit).
            CommitmentNotIndexed: indexer has not seen the deposit yet.
            RootMismatch: path does not hash to a root the contract accepts.
            ProofGenerationError, ProofTimeout: prover failed or the proof did not verify.
            ConfirmationPending: submitted but not confirmed in time.
            WithdrawalFailed: transaction reverted for another reason.
        """
        attempt = attempt if attempt is not None else WithdrawalAttempt()

        attempt.advance(WithdrawalStage.PARSE_NOTE)
        note = parse_note(note)
        attempt.note = note
        if not is_address(recipient):
            raise ValidationError(f"invalid recipient address: {recipient!r}")
        recipient = to_checksum_address(recipient)

        async with self.locks.hold(note.nullifier_hash):
            attempt.advance(WithdrawalStage.CHECK_NULLIFIER)
            await self._check_nullifier(note.nullifier_hash)

            attempt.advance(WithdrawalStage.FETCH_PATH)
            attempt.path = await self.paths.get_path(note.commitment)

            attempt.advance(WithdrawalStage.VERIFY_ROOT)
            await self._verify_root(note, attempt.path)

            attempt.advance(WithdrawalStage.BUILD_WITNESS)
            attempt.witness = build_witness(note, attempt.path, recipient)

            attempt.advance(WithdrawalStage.PROVE)
            attempt.proof = await self.prover.prove(attempt.witness)
            check_public_signals(attempt.proof, attempt.witness)
            if not await self.prover.verify(attempt.proof):
                raise ProofGenerationError("proof failed local verification")
            calldata = attempt.proof.to_calldata()
            check_calldata(calldata)

            attempt.advance(WithdrawalStage.SUBMIT)
            attempt.tx_hash = await self._submit(attempt.witness, calldata)

            attempt.advance(WithdrawalStage.CONFIRM)
            receipt = await self._confirm(attempt.tx_hash)

        attempt.advance(WithdrawalStage.DONE)
        return WithdrawalResult(
            tx_hash=attempt.tx_hash,
            recipient=recipient,
            amount=note.amount,
            nullifier_hash=note.nullifier_hash,
            root=attempt.path.root,
            block_number=_receipt_block(receipt),
        )

    async def _check_nullifier(self, nullifier_hash: int) -> None:
        if await self.paths.is_nullifier_spent(nullifier_hash):
            raise NullifierAlreadyUsed(nullifier_hash)
        if await self.chain.is_nullifier_used(nullifier_hash):
            raise NullifierAlreadyUsed(nullifier_hash)

    async def _verify_root(self, note: DepositNote, path: SiblingPath) -> None:
        if path.leaf != note.commitment:
            raise RootMismatch("sibling path belongs to a different commitment")
        if not verify_sibling_path(path, self.hasher):
            raise RootMismatch("sibling path does not hash to its root")
        if path.root == await self.chain.get_root():
            return
        if not await self.chain.is_known_root(path.root):
            raise RootMismatch(f"root {path.root} is not known to the pool contract")

    async def _submit(self, witness: WithdrawWitness, calldata: List[int]) -> str:
        try:
            return await self.chain.submit_withdraw(
                calldata,
                witness.root,
                witness.nullifier_hash,
                witness.recipient,
                witness.amount,
            )
        except TransactionReverted as exc:
            reason = (exc.reason or "").lower()
            if "nullifier" in reason:
                raise NullifierAlreadyUsed(witness.nullifier_hash) from exc
            if "root" in reason:
                raise RootMismatch(f"contract rejected root: {exc.reason}") from exc
            raise

    async def _confirm(self, tx_hash: str) -> Dict[str, Any]:
        receipt = None
        with trio.move_on_after(self.confirm_timeout):
            while True:
                try:
                    receipt = await self.chain.get_receipt(tx_hash)
                except (LivenessError, ChainError) as exc:
                    # the transaction is already out; only confirmation is late
                    logger.warning("Receipt poll for %s failed, retrying: %s", tx_hash, exc)
                else:
                    if receipt is not None:
                        break
                await trio.sleep(self.poll_interval)

        if receipt is None:
            raise ConfirmationPending(tx_hash)
        if _receipt_status(receipt) == 0:
            raise WithdrawalFailed(f"withdrawal transaction {tx_hash} reverted", tx_hash)
        logger.info("Withdrawal confirmed in tx %s", tx_hash)
        return receipt
