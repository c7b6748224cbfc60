"""Recipient-side scanning of ERC-5564 announcements."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from ..encoding import BytesLike
from ..exceptions import ValidationError
from .addresses import (
    check_scheme_id,
    check_stealth_address,
    compute_stealth_private_key,
    compute_stealth_public_key,
    public_key_to_address,
)
from .keys import compress_public_key, derive_public_key, ecdh_shared_secret

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StealthKeys:
    """
    Key material a recipient scans with.

    With only the viewing key and spending public key, matches are found but
    the one-time private key is not recovered (watch-only mode).
    """

    viewing_private_key: bytes
    spending_public_key: bytes
    spending_private_key: Optional[bytes] = None

    @classmethod
    def from_private_keys(cls, viewing_private_key: BytesLike, spending_private_key: BytesLike) -> "StealthKeys":
        viewing = derive_public_key(viewing_private_key)
        spending = derive_public_key(spending_private_key)
        return cls(
            viewing_private_key=viewing.private_key,
            spending_public_key=spending.compressed_public_key,
            spending_private_key=spending.private_key,
        )


@dataclass(frozen=True)
class StealthMatch:
    stealth_address: str
    ephemeral_public_key: bytes
    view_tag: int
    stealth_private_key: Optional[bytes]
    announcement: Any = None


@dataclass
class ScanReport:
    matches: List[StealthMatch] = field(default_factory=list)
    # (announcement, reason) for announcements that could not be evaluated
    rejected: List[Tuple[Any, str]] = field(default_factory=list)
    scanned: int = 0


def match_announcement(keys: StealthKeys, announcement: Any) -> Optional[StealthMatch]:
    """
    Check one announcement against the recipient keys.

    The announcement needs ``scheme_id``, ``stealth_address``,
    ``ephemeral_public_key`` and ``metadata`` attributes.

    Returns:
        StealthMatch if the address belongs to the recipient, else None.

    Raises:
        UnsupportedScheme, InvalidKeyLength, InvalidPublicKey: For malformed
            announcements; scan_announcements reports these as rejected.
    """
    check_scheme_id(announcement.scheme_id)
    ephemeral = compress_public_key(announcement.ephemeral_public_key)
    shared_secret = ecdh_shared_secret(keys.viewing_private_key, ephemeral)
    view_tag = shared_secret[0]

    metadata = bytes(announcement.metadata or b"")
    if metadata and metadata[0] != view_tag:
        return None

    if keys.spending_private_key is not None:
        stealth_priv = compute_stealth_private_key(
            keys.viewing_private_key, keys.spending_private_key, ephemeral
        )
        if not check_stealth_address(stealth_priv, announcement.stealth_address):
            return None
    else:
        stealth_priv = None
        stealth_pub = compute_stealth_public_key(
            keys.viewing_private_key, keys.spending_public_key, ephemeral
        )
        derived = public_key_to_address(stealth_pub)
        if derived.lower() != str(announcement.stealth_address).lower():
            return None

    return StealthMatch(
        stealth_address=announcement.stealth_address,
        ephemeral_public_key=ephemeral,
        view_tag=view_tag,
        stealth_private_key=stealth_priv,
        announcement=announcement,
    )


def scan_announcements(keys: StealthKeys, announcements: Iterable[Any]) -> ScanReport:
    report = ScanReport()
    for announcement in announcements:
        report.scanned += 1
        try:
            match = match_announcement(keys, announcement)
        except ValidationError as exc:
            report.rejected.append((announcement, str(exc)))
            continue
        if match is not None:
            report.matches.append(match)

    logger.info(
        "Scanned %d announcements: %d matches, %d rejected",
        report.scanned,
        len(report.matches),
        len(report.rejected),
    )
    return report
