"""
Indexer and relayer settings.

Resolution order (later wins):
1. built-in defaults
2. optional YAML file (``--config`` or ``MANTLE_PRIVACY_CONFIG``)
3. environment variables (RPC_URL, SHIELDED_POOL, START_BLOCK, ...)
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ..privacy_protocol.encoding import is_address
from ..privacy_protocol.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "MANTLE_PRIVACY_CONFIG"


@dataclass(frozen=True)
class IndexerSettings:
    rpc_url: str = "https://rpc.sepolia.mantle.xyz"
    announcer_address: Optional[str] = None
    pool_address: Optional[str] = None
    relayer_address: Optional[str] = None
    start_block: int = 0
    blocks_per_scan: int = 1000
    scan_interval: float = 5.0
    database_path: str = "mantle_privacy_indexer.db"
    host: str = "0.0.0.0"
    port: int = 3001
    indexer_url: str = "http://localhost:3001"
    tree_hash: Optional[str] = None
    rpc_timeout: float = 30.0
    confirm_timeout: float = 120.0
    prove_timeout: float = 300.0
    circuit_wasm: str = "circuits/withdraw.wasm"
    circuit_zkey: str = "circuits/withdraw_final.zkey"
    circuit_vkey: Optional[str] = "circuits/verification_key.json"

    def validate(self) -> "IndexerSettings":
        if self.blocks_per_scan < 1:
            raise ConfigurationError("blocks_per_scan must be >= 1")
        if self.start_block < 0:
            raise ConfigurationError("start_block must be >= 0")
        if self.scan_interval <= 0:
            raise ConfigurationError("scan_interval must be positive")
        for name in ("rpc_timeout", "confirm_timeout", "prove_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        for name in ("announcer_address", "pool_address", "relayer_address"):
            value = getattr(self, name)
            if value is not None and not is_address(value):
                raise ConfigurationError(f"{name} is not an address: {value!r}")
        return self

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# env var -> (field, parser)
_ENV_FIELDS = {
    "RPC_URL": ("rpc_url", str),
    "ERC5564_ANNOUNCER": ("announcer_address", str),
    "SHIELDED_POOL": ("pool_address", str),
    "RELAYER_ADDRESS": ("relayer_address", str),
    "START_BLOCK": ("start_block", int),
    "BLOCKS_PER_SCAN": ("blocks_per_scan", int),
    # milliseconds, as the original deployment configured it
    "SCAN_INTERVAL": ("scan_interval", lambda v: int(v) / 1000.0),
    "DATABASE_PATH": ("database_path", str),
    "HOST": ("host", str),
    "PORT": ("port", int),
    "INDEXER_URL": ("indexer_url", str),
    "MANTLE_PRIVACY_TREE_HASH": ("tree_hash", str),
    "RPC_TIMEOUT": ("rpc_timeout", float),
    "CONFIRM_TIMEOUT": ("confirm_timeout", float),
    "PROVE_TIMEOUT": ("prove_timeout", float),
    "CIRCUIT_WASM": ("circuit_wasm", str),
    "CIRCUIT_ZKEY": ("circuit_zkey", str),
    "CIRCUIT_VKEY": ("circuit_vkey", str),
}


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Config file is not valid YAML: {path} ({exc})") from exc

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Config file must contain a mapping: {path}")

    known = {f.name for f in fields(IndexerSettings)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigurationError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    return payload


def load_settings(
    config_path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> IndexerSettings:
    """
    Build settings from defaults, YAML, environment and explicit overrides.

    Raises:
        ConfigurationError: On unreadable files, bad values or unknown keys.
    """
    env = os.environ if env is None else env
    settings = IndexerSettings()

    path_value = config_path or env.get(CONFIG_PATH_ENV)
    if path_value:
        try:
            settings = replace(settings, **_load_yaml(Path(path_value)))
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc
        logger.info("Loaded indexer settings from %s", path_value)

    updates: Dict[str, Any] = {}
    for env_name, (field_name, parser) in _ENV_FIELDS.items():
        raw = env.get(env_name)
        if raw is None or raw.strip() == "":
            continue
        try:
            updates[field_name] = parser(raw.strip())
        except ValueError as exc:
            raise ConfigurationError(f"Invalid {env_name}={raw!r}") from exc

    updates.update({k: v for k, v in overrides.items() if v is not None})
    return replace(settings, **updates).validate()
