"""
Owned indexer state: the Merkle replica, the nullifier record and the cursor.

There is exactly one writer (the ingestor). Readers, including the query API
running in another thread, call ``view()`` and get an immutable IndexerView;
a view is swapped in only after a block range is fully applied.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..chain.events import (
    AnnouncementEvent,
    ChainEvent,
    DepositEvent,
    WithdrawalEvent,
    event_sort_key,
)
from ..privacy_protocol.config import FIELD_PRIME, TREE_DEPTH
from ..privacy_protocol.exceptions import (
    CommitmentNotIndexed,
    LeafIndexGap,
    LeafNotFound,
    ReplicaDivergence,
    TreeFull,
    ValidationError,
)
from ..privacy_protocol.pool.hashing import FieldHasher
from ..privacy_protocol.pool.merkle import IncrementalMerkleReplica, SiblingPath, TreeSnapshot
from .store import IndexerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexerView:
    tree: TreeSnapshot
    nullifiers: FrozenSet[int]
    last_block_scanned: int

    def is_nullifier_spent(self, nullifier_hash: int) -> bool:
        return nullifier_hash in self.nullifiers

    def get_path_for_commitment(self, commitment: int) -> SiblingPath:
        try:
            return self.tree.get_path_for_commitment(commitment)
        except LeafNotFound as exc:
            raise CommitmentNotIndexed(f"commitment {commitment} is not indexed") from exc


@dataclass
class RangeResult:
    from_block: int
    to_block: int
    inserted: Dict[str, int] = field(default_factory=dict)
    new_leaves: int = 0
    announcements: Tuple[AnnouncementEvent, ...] = ()
    deposits: Tuple[DepositEvent, ...] = ()
    withdrawals: Tuple[WithdrawalEvent, ...] = ()


RangeListener = Callable[[RangeResult, IndexerView], None]


class IndexerState:
    """
    Rebuilds the replica from the stored deposit log, then tracks new ranges.

    Args:
        store: durable event store
        hasher: tree node hasher (feature flag default when None)
        depth: tree depth
        start_block: first block to scan when the store has no cursor yet
    """

    def __init__(
        self,
        store: IndexerStore,
        hasher: Optional[FieldHasher] = None,
        depth: int = TREE_DEPTH,
        start_block: int = 0,
    ) -> None:
        self.store = store
        self.replica = IncrementalMerkleReplica(hasher=hasher, depth=depth)
        self._write_lock = threading.Lock()
        self._listeners: List[RangeListener] = []

        last_block = store.init_cursor(start_block - 1)
        self._replay_deposits(store.load_deposits())
        nullifiers = frozenset(store.load_nullifiers())
        self._view = IndexerView(self.replica.snapshot(), nullifiers, last_block)
        logger.info(
            "Indexer state restored: %d leaves, %d nullifiers, cursor at block %d",
            self.replica.next_index,
            len(nullifiers),
            last_block,
        )

    def _replay_deposits(self, deposits: Iterable[DepositEvent]) -> None:
        for deposit in deposits:
            if deposit.leaf_index != self.replica.next_index:
                raise LeafIndexGap(self.replica.next_index, deposit.leaf_index)
            self.replica.insert(deposit.commitment)

    def view(self) -> IndexerView:
        return self._view

    @property
    def last_block_scanned(self) -> int:
        return self._view.last_block_scanned

    @property
    def hasher(self) -> FieldHasher:
        return self.replica.hasher

    def add_listener(self, listener: RangeListener) -> None:
        """Call ``listener(result, view)`` after every committed range, outside the write lock."""
        self._listeners.append(listener)

    def remove_listener(self, listener: RangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, result: RangeResult, view: IndexerView) -> None:
        for listener in list(self._listeners):
            try:
                listener(result, view)
            except Exception:
                # the range is already committed; a listener cannot undo it
                logger.exception("Range listener %r failed", listener)

    def _plan_deposits(self, deposits: List[DepositEvent]) -> List[DepositEvent]:
        """Validate deposits against the replica before anything is written."""
        snapshot = self.replica.snapshot()
        expected = snapshot.next_index
        pending: Dict[int, int] = {}
        new_leaves = []
        for deposit in deposits:
            if not 0 <= deposit.commitment < FIELD_PRIME:
                raise ValidationError(f"commitment outside the field at leaf {deposit.leaf_index}")
            if deposit.leaf_index < expected:
                known = pending.get(deposit.leaf_index)
                if known is None:
                    known = snapshot.leaf_at(deposit.leaf_index)
                if known != deposit.commitment:
                    raise ReplicaDivergence(
                        f"leaf {deposit.leaf_index} is {known}, event says {deposit.commitment}"
                    )
                continue
            if deposit.leaf_index != expected:
                raise LeafIndexGap(expected, deposit.leaf_index)
            if expected >= self.replica.capacity:
                raise TreeFull(f"Merkle tree is full ({self.replica.capacity} leaves)")
            pending[expected] = deposit.commitment
            new_leaves.append(deposit)
            expected += 1
        return new_leaves

    def apply_range(self, from_block: int, to_block: int, events: Iterable[ChainEvent]) -> RangeResult:
        """
        Apply one scanned block range.

        The range is validated first, then persisted with the cursor in one
        transaction, then applied in memory. A failure before the commit leaves
        both the store and the replica untouched.

        Raises:
            LeafIndexGap, ReplicaDivergence: Deposit order disagrees with the replica.
            TreeFull: The range would overflow the tree.
        """
        ordered = sorted(events, key=event_sort_key)
        announcements = [e for e in ordered if isinstance(e, AnnouncementEvent)]
        deposits = [e for e in ordered if isinstance(e, DepositEvent)]
        withdrawals = [e for e in ordered if isinstance(e, WithdrawalEvent)]

        with self._write_lock:
            if from_block != self._view.last_block_scanned + 1:
                raise ValidationError(
                    f"range starts at {from_block}, cursor is at {self._view.last_block_scanned}"
                )
            new_leaves = self._plan_deposits(deposits)
            inserted = self.store.commit_range(to_block, announcements, deposits, withdrawals)

            for deposit in new_leaves:
                self.replica.insert(deposit.commitment)
            nullifiers = self._view.nullifiers
            if withdrawals:
                nullifiers = nullifiers | {w.nullifier_hash for w in withdrawals}
            self._view = IndexerView(self.replica.snapshot(), nullifiers, to_block)
            view = self._view

        result = RangeResult(
            from_block,
            to_block,
            inserted,
            len(new_leaves),
            tuple(announcements),
            tuple(new_leaves),
            tuple(withdrawals),
        )
        self._notify(result, view)
        return result


class LocalPathSource:
    """Serve paths and nullifier status straight from an in-process IndexerState."""

    def __init__(self, state: IndexerState) -> None:
        self._state = state

    async def get_path(self, commitment: int) -> SiblingPath:
        return self._state.view().get_path_for_commitment(commitment)

    async def is_nullifier_spent(self, nullifier_hash: int) -> bool:
        return self._state.view().is_nullifier_spent(nullifier_hash)
