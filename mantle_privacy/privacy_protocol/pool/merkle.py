"""
⚠️ DRAFT — requires crypto review before production use

Off-chain replica of the shielded pool's incremental Merkle tree.

The replica reproduces the contract's insertion bit for bit, including its
frontier handling: at an even index the stored filled subtree of the level is
read as the right sibling *before* it is overwritten with the new node; at an
odd index the stored value is the left sibling and nothing is written.

    zeros[0] = 0, zeros[i+1] = H(zeros[i], zeros[i])
    filled_subtrees start as zeros

Because of this, a leaf is not simply a subtree of the latest root. A later
insertion commits to leaf i only when it reads, as its stored sibling, a node
whose value already depends on leaf i. Sibling paths follow those reads
upwards from the values read while inserting leaf i and end at the newest
root that commits to the leaf. Inside an aligned block of 2^l leaves, the
last insertion reads a node that depends on every earlier leaf of the block,
so the walk always reaches the latest root.

Concurrency:
    One writer calls insert(); any number of readers work on TreeSnapshot
    objects. A snapshot never changes after publication: frontier and root
    history are fresh tuples per insert, and the leaf log it shares with the
    writer is append-only and read only below the snapshot's leaf count.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import (
    FIELD_PRIME,
    PATH_CACHE_SIZE,
    ROOT_HISTORY_SIZE,
    TREE_DEPTH,
)
from ..exceptions import LeafNotFound, TreeFull, ValidationError
from .hashing import FieldHasher

logger = logging.getLogger(__name__)


# ============================================================================
# PATH TYPES
# ============================================================================


@dataclass(frozen=True)
class SiblingPath:
    """
    Authentication path for one leaf.

    Attributes:
        leaf: commitment at leaf_index
        leaf_index: position in insertion order
        path_elements: sibling per level, leaf level first
        path_indices: 0 if the running node is the left input, 1 if right
        root: root the path hashes to
    """

    leaf: int
    leaf_index: int
    path_elements: Tuple[int, ...]
    path_indices: Tuple[int, ...]
    root: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "leaf": str(self.leaf),
            "leafIndex": self.leaf_index,
            "pathElements": [str(e) for e in self.path_elements],
            "pathIndices": list(self.path_indices),
            "root": str(self.root),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "SiblingPath":
        try:
            return cls(
                leaf=int(data["leaf"]),
                leaf_index=int(data["leafIndex"]),
                path_elements=tuple(int(e) for e in data["pathElements"]),
                path_indices=tuple(int(i) for i in data["pathIndices"]),
                root=int(data["root"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"malformed sibling path: {exc}") from exc


def verify_path(
    leaf: int,
    path_elements: Sequence[int],
    path_indices: Sequence[int],
    root: int,
    hasher: FieldHasher,
) -> bool:
    """Recompute the root from a leaf and its siblings."""
    if len(path_elements) != len(path_indices):
        return False
    node = leaf
    for sibling, index_bit in zip(path_elements, path_indices):
        if index_bit == 0:
            node = hasher.hash_pair(node, sibling)
        elif index_bit == 1:
            node = hasher.hash_pair(sibling, node)
        else:
            return False
    return node == root


def verify_sibling_path(path: SiblingPath, hasher: FieldHasher) -> bool:
    return verify_path(path.leaf, path.path_elements, path.path_indices, path.root, hasher)


# ============================================================================
# INSERTION STEPS
# ============================================================================


@dataclass(frozen=True)
class LevelStep:
    level: int
    index_bit: int
    node: int
    sibling: int
    parent: int
    written: Optional[int]


def compute_zeros(hasher: FieldHasher, depth: int) -> Tuple[int, ...]:
    """zeros[0..depth]; zeros[depth] is the empty root."""
    zeros = [0]
    for _ in range(depth):
        zeros.append(hasher.hash_pair(zeros[-1], zeros[-1]))
    return tuple(zeros)


def read_sibling(filled_subtrees: Sequence[int], level: int) -> int:
    return filled_subtrees[level]


def combine(hasher: FieldHasher, node: int, stored: int, index_bit: int) -> int:
    if index_bit == 0:
        return hasher.hash_pair(node, stored)
    return hasher.hash_pair(stored, node)


def write_frontier(filled_subtrees: List[int], level: int, node: int, index_bit: int) -> Optional[int]:
    if index_bit == 0:
        filled_subtrees[level] = node
        return node
    return None


def plan_insertion(
    hasher: FieldHasher,
    filled_subtrees: Sequence[int],
    leaf: int,
    leaf_index: int,
) -> Tuple[List[LevelStep], Tuple[int, ...], int]:
    """
    Run one insertion without touching shared state.

    Returns:
        (steps, new_filled_subtrees, new_root)
    """
    frontier = list(filled_subtrees)
    steps = []
    node = leaf
    index = leaf_index
    for level in range(len(frontier)):
        index_bit = index & 1
        sibling = read_sibling(frontier, level)
        parent = combine(hasher, node, sibling, index_bit)
        written = write_frontier(frontier, level, node, index_bit)
        steps.append(LevelStep(level, index_bit, node, sibling, parent, written))
        node = parent
        index >>= 1
    return steps, tuple(frontier), node


def last_writer(insertion: int, level: int) -> Optional[int]:
    """Latest earlier insertion that wrote filled_subtrees[level], if any."""
    if insertion == 0:
        return None
    previous = insertion - 1
    if not (previous >> level) & 1:
        return previous
    # previous is inside a run of 2^level indices with the bit set
    return ((previous >> level) << level) - 1


def readers_of(insertion: int, level: int, count: int) -> range:
    """
    Insertions that read the value ``insertion`` wrote at ``level``.

    Only meaningful when the level bit of ``insertion`` is clear. The value
    stays stored until the next index with a clear bit overwrites it, and
    that index reads it first.
    """
    overwriter = insertion + 1
    if (overwriter >> level) & 1:
        overwriter += 1 << level
    return range(insertion + 1, min(overwriter, count - 1) + 1)


# ============================================================================
# SHARED LEAF LOG
# ============================================================================


class _LeafLog:
    """Append-only storage shared by the writer and all snapshots."""

    def __init__(self, hasher: FieldHasher, zeros: Tuple[int, ...]):
        self.hasher = hasher
        self.zeros = zeros
        self.depth = len(zeros) - 1
        self.leaves: List[int] = []
        self.index_by_commitment: Dict[int, int] = {}
        # level_nodes[k][l] = node entering level l during insertion k
        self.level_nodes: List[Tuple[int, ...]] = []
        self.roots: List[int] = []
        self._path_cache: "OrderedDict[Tuple[int, int], SiblingPath]" = OrderedDict()
        self._cache_lock = threading.Lock()

    def record(self, leaf_index: int, leaf: int, steps: Sequence[LevelStep], root: int) -> None:
        self.level_nodes.append(tuple(step.node for step in steps))
        self.roots.append(root)
        self.leaves.append(leaf)
        self.index_by_commitment.setdefault(leaf, leaf_index)

    def stored_sibling(self, insertion: int, level: int) -> int:
        """Value insertion ``insertion`` read from filled_subtrees[level]."""
        writer = last_writer(insertion, level)
        if writer is None:
            return self.zeros[level]
        return self.level_nodes[writer][level]

    def build_path(self, leaf_index: int, count: int) -> SiblingPath:
        if not 0 <= leaf_index < count:
            raise LeafNotFound(f"leaf index {leaf_index} not in tree of {count} leaves")

        key = (leaf_index, count)
        with self._cache_lock:
            cached = self._path_cache.get(key)
            if cached is not None:
                self._path_cache.move_to_end(key)
                return cached

        # links[l][k] = (insertion below, sibling, index bit) for the hop into level l + 1
        links: List[Dict[int, Tuple[int, int, int]]] = []
        reached = [leaf_index]
        for level in range(self.depth):
            hops: Dict[int, Tuple[int, int, int]] = {}
            for insertion in reached:
                index_bit = (insertion >> level) & 1
                hops.setdefault(
                    insertion, (insertion, self.stored_sibling(insertion, level), index_bit)
                )
                if index_bit == 0:
                    for reader in readers_of(insertion, level, count):
                        reader_bit = (reader >> level) & 1
                        hops.setdefault(
                            reader,
                            (insertion, self.level_nodes[reader][level], 1 - reader_bit),
                        )
            links.append(hops)
            reached = sorted(hops)

        # newest root that still commits to the leaf
        target = reached[-1]
        elements: List[int] = []
        indices: List[int] = []
        insertion = target
        for level in reversed(range(self.depth)):
            insertion, sibling, index_bit = links[level][insertion]
            elements.append(sibling)
            indices.append(index_bit)

        path = SiblingPath(
            leaf=self.leaves[leaf_index],
            leaf_index=leaf_index,
            path_elements=tuple(reversed(elements)),
            path_indices=tuple(reversed(indices)),
            root=self.roots[target],
        )

        with self._cache_lock:
            self._path_cache[key] = path
            while len(self._path_cache) > PATH_CACHE_SIZE:
                self._path_cache.popitem(last=False)
        return path


# ============================================================================
# SNAPSHOT
# ============================================================================


@dataclass(frozen=True)
class TreeSnapshot:
    """Immutable view of the tree after ``next_index`` insertions."""

    depth: int
    next_index: int
    root: int
    filled_subtrees: Tuple[int, ...]
    root_history: Tuple[int, ...]
    _log: _LeafLog

    @property
    def size(self) -> int:
        return self.next_index

    @property
    def hasher(self) -> FieldHasher:
        return self._log.hasher

    def is_known_root(self, root: int) -> bool:
        if root == 0:
            return False
        return root in self.root_history

    def leaf_at(self, leaf_index: int) -> int:
        if not 0 <= leaf_index < self.next_index:
            raise LeafNotFound(f"leaf index {leaf_index} not in tree")
        return self._log.leaves[leaf_index]

    def index_of(self, commitment: int) -> int:
        index = self._log.index_by_commitment.get(commitment)
        if index is None or index >= self.next_index:
            raise LeafNotFound(f"commitment {commitment} not in tree")
        return index

    def has_commitment(self, commitment: int) -> bool:
        try:
            self.index_of(commitment)
        except LeafNotFound:
            return False
        return True

    def get_sibling_path(self, leaf_index: int) -> SiblingPath:
        return self._log.build_path(leaf_index, self.next_index)

    def get_path_for_commitment(self, commitment: int) -> SiblingPath:
        return self.get_sibling_path(self.index_of(commitment))


# ============================================================================
# REPLICA
# ============================================================================


class IncrementalMerkleReplica:
    """
    Single-writer incremental Merkle tree mirroring the pool contract.

    Example:
        >>> tree = IncrementalMerkleReplica(hasher=KeccakFieldHasher(), depth=4)
        >>> index = tree.insert(12345)
        >>> path = tree.get_sibling_path(index)
        >>> verify_sibling_path(path, tree.hasher)
        True
    """

    def __init__(
        self,
        hasher: Optional[FieldHasher] = None,
        depth: int = TREE_DEPTH,
        root_history_size: int = ROOT_HISTORY_SIZE,
    ):
        if hasher is None:
            from ..factory import get_tree_hasher

            hasher = get_tree_hasher()
        if depth < 1:
            raise ValueError("depth must be >= 1")
        if root_history_size < 1:
            raise ValueError("root_history_size must be >= 1")

        self.depth = depth
        self.capacity = 1 << depth
        self.root_history_size = root_history_size
        self.zeros = compute_zeros(hasher, depth)
        self._log = _LeafLog(hasher, self.zeros)
        self._write_lock = threading.Lock()
        self._snapshot = TreeSnapshot(
            depth=depth,
            next_index=0,
            root=self.zeros[depth],
            filled_subtrees=self.zeros[:depth],
            root_history=(self.zeros[depth],),
            _log=self._log,
        )

    @property
    def hasher(self) -> FieldHasher:
        return self._log.hasher

    @property
    def next_index(self) -> int:
        return self._snapshot.next_index

    @property
    def root(self) -> int:
        return self._snapshot.root

    @property
    def empty_root(self) -> int:
        return self.zeros[self.depth]

    def snapshot(self) -> TreeSnapshot:
        return self._snapshot

    def insert(self, leaf: int) -> int:
        """
        Append a leaf and publish the resulting snapshot.

        Returns:
            Index of the inserted leaf.

        Raises:
            TreeFull: If all 2^depth leaves are used.
            ValidationError: If leaf is not a field element.
        """
        if isinstance(leaf, bool) or not isinstance(leaf, int) or not 0 <= leaf < FIELD_PRIME:
            raise ValidationError("leaf must be a field element")

        with self._write_lock:
            current = self._snapshot
            leaf_index = current.next_index
            if leaf_index >= self.capacity:
                raise TreeFull(f"Merkle tree is full ({self.capacity} leaves)")

            steps, frontier, root = plan_insertion(
                self.hasher, current.filled_subtrees, leaf, leaf_index
            )
            history = current.root_history + (root,)
            if len(history) > self.root_history_size:
                history = history[-self.root_history_size:]

            self._log.record(leaf_index, leaf, steps, root)
            self._snapshot = TreeSnapshot(
                depth=self.depth,
                next_index=leaf_index + 1,
                root=root,
                filled_subtrees=frontier,
                root_history=history,
                _log=self._log,
            )

        logger.debug("Inserted leaf %d, root=%d", leaf_index, root)
        return leaf_index

    # Reader conveniences bound to the latest snapshot

    def is_known_root(self, root: int) -> bool:
        return self._snapshot.is_known_root(root)

    def index_of(self, commitment: int) -> int:
        return self._snapshot.index_of(commitment)

    def leaf_at(self, leaf_index: int) -> int:
        return self._snapshot.leaf_at(leaf_index)

    def get_sibling_path(self, leaf_index: int) -> SiblingPath:
        return self._snapshot.get_sibling_path(leaf_index)

    def get_path_for_commitment(self, commitment: int) -> SiblingPath:
        return self._snapshot.get_path_for_commitment(commitment)
