"""Public API for the stealth payment and shielded pool protocol."""

from __future__ import annotations

from .factory import get_tree_hasher
from .feature_flags import get_tree_hash, set_tree_hash

__all__ = [
    "get_tree_hash",
    "get_tree_hasher",
    "set_tree_hash",
]
