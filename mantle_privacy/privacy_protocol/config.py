"""
⚠️ DRAFT — requires crypto review before production use

Cryptographic configuration for the stealth payment and shielded pool protocol.

Two groups are in play and must never be mixed up:
    - secp256k1 (stealth keys, ECDH), scalars mod SECP256K1_ORDER
    - BN254 scalar field (notes, Poseidon, Merkle tree), elements mod FIELD_PRIME
"""

# ============================================================================
# CURVE SELECTION (stealth addresses)
# ============================================================================

CURVE_NAME = "secp256k1"
CURVE_LIBRARY = "petlib"
CURVE_NID = 714  # OpenSSL NID for secp256k1

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
PRIVATE_KEY_BYTES = 32
COMPRESSED_KEY_BYTES = 33
UNCOMPRESSED_KEY_BYTES = 65
ADDRESS_BYTES = 20

# ERC-5564 scheme id 1 = secp256k1 with view tags
SCHEME_ID_SECP256K1 = 1
SUPPORTED_SCHEME_IDS = (SCHEME_ID_SECP256K1,)
META_ADDRESS_PREFIX = "st:mnt:"

# ============================================================================
# FIELD PARAMETERS (shielded pool)
# ============================================================================

# BN254 scalar field, the native field of the Groth16 circuit
FIELD_PRIME = 21888242871839275222246405745257275088548364400416034343698204186575808495617
FIELD_ELEMENT_BYTES = 32

POSEIDON_FULL_ROUNDS = 8
POSEIDON_ALPHA = 5
# circomlib partial rounds, indexed by t - 2 (t = number of inputs + 1)
POSEIDON_PARTIAL_ROUNDS = (56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68)

# ============================================================================
# MERKLE TREE
# ============================================================================

TREE_DEPTH = 20
ROOT_HISTORY_SIZE = 100
PATH_CACHE_SIZE = 1024

# ============================================================================
# WITHDRAWAL CIRCUIT
# ============================================================================

PUBLIC_SIGNAL_ORDER = ("root", "nullifierHash", "recipient", "amount")
PROOF_CALLDATA_LENGTH = 8

# ============================================================================
# NOTE SERIALIZATION
# ============================================================================

NOTE_VERSION = 1
NOTE_TOKEN_PREFIX = "mantle-note-v1-"


# ============================================================================
# VALIDATION
# ============================================================================


def validate_config() -> bool:
    """
    Validate configuration parameters.

    Returns:
        True if configuration is valid

    Raises:
        AssertionError: If configuration is invalid
    """
    assert CURVE_NAME == "secp256k1", "Stealth addresses require secp256k1"
    assert CURVE_LIBRARY == "petlib", "secp256k1 requires petlib library"
    assert CURVE_NID == 714, "secp256k1 NID must be 714"
    assert FIELD_PRIME < SECP256K1_ORDER, "Field and curve order confused"
    assert FIELD_PRIME < 2 ** (8 * FIELD_ELEMENT_BYTES), "Field element too wide"
    assert 1 <= TREE_DEPTH <= 32, "Unsupported tree depth"
    assert ROOT_HISTORY_SIZE >= 1, "Root history must hold at least one root"
    assert len(PUBLIC_SIGNAL_ORDER) == 4, "Public signal layout is fixed"
    assert POSEIDON_FULL_ROUNDS % 2 == 0, "Full rounds split evenly"

    return True


# Auto-validate on import
validate_config()
