"""ERC-5564 stealth addresses on secp256k1."""

from .addresses import (
    StealthAddressInfo,
    StealthMetaAddress,
    check_stealth_address,
    compute_stealth_private_key,
    generate_stealth_address,
    generate_stealth_meta_address,
    parse_stealth_meta_address,
    private_key_to_address,
)
from .keys import (
    Keypair,
    compress_public_key,
    derive_public_key,
    generate_keypair,
    uncompress_public_key,
)
from .scanner import ScanReport, StealthKeys, StealthMatch, match_announcement, scan_announcements

__all__ = [
    "Keypair",
    "ScanReport",
    "StealthAddressInfo",
    "StealthKeys",
    "StealthMatch",
    "StealthMetaAddress",
    "check_stealth_address",
    "compress_public_key",
    "compute_stealth_private_key",
    "derive_public_key",
    "generate_keypair",
    "generate_stealth_address",
    "generate_stealth_meta_address",
    "match_announcement",
    "parse_stealth_meta_address",
    "private_key_to_address",
    "scan_announcements",
    "uncompress_public_key",
]
