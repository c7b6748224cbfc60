"""
Feature flags for selecting the Merkle tree node hash.

WARNING: the off-chain replica must hash exactly like the deployed pool
contract. A mismatched flag yields roots the contract never accepts.
"""

from __future__ import annotations

import os
from typing import Final

_VALID_TREE_HASHES: Final[tuple[str, ...]] = ("poseidon", "keccak")
_DEFAULT_TREE_HASH: Final[str] = "poseidon"
_ENV_VAR_NAME: Final[str] = "MANTLE_PRIVACY_TREE_HASH"

_tree_hash_override: str | None = None


def _format_valid_options() -> str:
    return ", ".join(_VALID_TREE_HASHES)


def _normalize_tree_hash(value: str | None) -> str | None:
    if value is None:
        return None

    if not isinstance(value, str):
        raise ValueError(
            f"Invalid tree hash: {value!r}. Valid options: {_format_valid_options()}"
        )

    value = value.strip().lower()
    if value == "":
        return None

    if value not in _VALID_TREE_HASHES:
        raise ValueError(
            f"Invalid tree hash: {value!r}. Valid options: {_format_valid_options()}"
        )

    return value


def get_tree_hash(prefer: str | None = None) -> str:
    """
    Resolve tree hash name in precedence order.

    Args:
        prefer: Optional preferred hash name.

    Returns:
        Tree hash name.

    Raises:
        ValueError: If a provided value is invalid.
    """
    preferred = _normalize_tree_hash(prefer)
    if preferred is not None:
        return preferred

    if _tree_hash_override is not None:
        return _tree_hash_override

    env_hash = _normalize_tree_hash(os.getenv(_ENV_VAR_NAME))
    if env_hash is not None:
        return env_hash

    return _DEFAULT_TREE_HASH


def set_tree_hash(value: str | None) -> None:
    """
    Set in-memory tree hash override (testing only).

    Args:
        value: Hash name to force, or None to clear the override.
    """
    global _tree_hash_override
    _tree_hash_override = _normalize_tree_hash(value)
