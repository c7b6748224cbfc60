"""
Factory for Merkle tree node hashers.

The registry maps flag names to import paths so the Poseidon tables are only
built when a Poseidon tree is actually requested.
"""

from __future__ import annotations

import importlib
from typing import Final

from .feature_flags import get_tree_hash
from .pool.hashing import FieldHasher

HASHER_REGISTRY: Final[dict[str, str]] = {
    "poseidon": "mantle_privacy.privacy_protocol.pool.hashing.PoseidonHasher",
    "keccak": "mantle_privacy.privacy_protocol.pool.hashing.KeccakFieldHasher",
}


def _format_valid_options() -> str:
    return ", ".join(sorted(HASHER_REGISTRY.keys()))


def _load_hasher_class(name: str) -> type[FieldHasher]:
    import_path = HASHER_REGISTRY[name]
    module_path, _, class_name = import_path.rpartition(".")
    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as exc:
        raise ImportError(
            f"Unable to import hasher module {module_path!r} for {name!r}"
        ) from exc

    try:
        hasher_cls = getattr(module, class_name)
    except AttributeError as exc:
        raise ImportError(
            f"Hasher class {class_name!r} not found in module {module_path!r}"
        ) from exc

    if not isinstance(hasher_cls, type) or not issubclass(hasher_cls, FieldHasher):
        raise TypeError(f"Hasher reference {import_path!r} is not a FieldHasher")

    return hasher_cls


def get_tree_hasher(*, prefer: str | None = None) -> FieldHasher:
    """
    Return a node hasher instance based on feature flags.

    Args:
        prefer: Optional hash name, overrides the flag.

    Raises:
        ValueError: If the hash name is invalid.
        ImportError: If the hasher class cannot be imported.
    """
    name = get_tree_hash(prefer)
    if name not in HASHER_REGISTRY:
        raise ValueError(
            f"Invalid tree hash {name!r}. Valid options: {_format_valid_options()}"
        )
    return _load_hasher_class(name)()
