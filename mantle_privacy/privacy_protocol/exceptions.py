"""
⚠️ DRAFT — requires crypto review before production use

Custom exceptions for the privacy protocol.

Every error carries a ``retryable`` flag so callers can tell a permanent
rejection (bad input, double spend) from a transient one (replica behind
the chain, receipt not yet mined).
"""


class PrivacyProtocolError(Exception):
    """Base exception for privacy protocol errors."""

    retryable = False


# ----------------------------------------------------------------------------
# Protocol errors (never retried)
# ----------------------------------------------------------------------------


class ValidationError(PrivacyProtocolError):
    """Input failed validation."""

    pass


class UnsupportedScheme(ValidationError):
    """Stealth scheme id other than the supported secp256k1 scheme."""

    def __init__(self, scheme_id):
        super().__init__(f"Unsupported stealth scheme id: {scheme_id!r}")
        self.scheme_id = scheme_id


class InvalidKeyLength(ValidationError):
    """Key material has the wrong byte length."""

    def __init__(self, kind: str, length: int, expected):
        super().__init__(
            f"Invalid {kind} length: got {length} bytes, expected {expected}"
        )
        self.kind = kind
        self.length = length
        self.expected = expected


class InvalidPublicKey(ValidationError):
    """Bytes do not encode a point on secp256k1."""

    pass


class InvalidPrivateKey(ValidationError):
    """Private key is zero or not below the curve order."""

    pass


class MalformedNote(ValidationError):
    """Deposit note does not match the expected schema."""

    pass


class UnknownEvent(ValidationError):
    """Log entry does not match any tracked event signature."""

    pass


# ----------------------------------------------------------------------------
# Consistency errors (retry after the replica catches up)
# ----------------------------------------------------------------------------


class ConsistencyError(PrivacyProtocolError):
    """Local replica and chain disagree."""

    retryable = True


class RootMismatch(ConsistencyError):
    """Path root is not accepted by the pool contract."""

    pass


class CommitmentNotIndexed(ConsistencyError):
    """Commitment has not been ingested yet."""

    pass


class LeafNotFound(ConsistencyError):
    """Leaf index or commitment is not present in the replica."""

    pass


class LeafIndexGap(ConsistencyError):
    """Deposit event would leave a hole in the leaf sequence."""

    def __init__(self, expected: int, got: int):
        super().__init__(f"Leaf index gap: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class ReplicaDivergence(ConsistencyError):
    """Deposit event conflicts with an already ingested leaf."""

    pass


# ----------------------------------------------------------------------------
# Resource errors (fatal)
# ----------------------------------------------------------------------------


class TreeFull(PrivacyProtocolError):
    """Merkle tree has no free leaves left."""

    pass


# ----------------------------------------------------------------------------
# Liveness errors (poll again)
# ----------------------------------------------------------------------------


class LivenessError(PrivacyProtocolError):
    """Operation did not finish within its deadline."""

    retryable = True


class ConfirmationPending(LivenessError):
    """Transaction submitted but not confirmed before the deadline."""

    def __init__(self, tx_hash: str):
        super().__init__(f"Transaction {tx_hash} not yet confirmed")
        self.tx_hash = tx_hash


class ChainTimeout(LivenessError):
    """RPC endpoint did not answer in time."""

    pass


class ProofTimeout(LivenessError):
    """Prover exceeded its time budget."""

    pass


# ----------------------------------------------------------------------------
# Double spend
# ----------------------------------------------------------------------------


class NullifierAlreadyUsed(PrivacyProtocolError):
    """Nullifier hash was already spent."""

    def __init__(self, nullifier_hash: int):
        super().__init__(f"Nullifier already used: {nullifier_hash}")
        self.nullifier_hash = nullifier_hash


# ----------------------------------------------------------------------------
# Chain and proving failures
# ----------------------------------------------------------------------------


class ChainError(PrivacyProtocolError):
    """JSON-RPC call failed."""

    retryable = True


class WithdrawalFailed(PrivacyProtocolError):
    """Withdrawal transaction reverted or was rejected."""

    def __init__(self, message: str, tx_hash=None):
        super().__init__(message)
        self.tx_hash = tx_hash


class ProofGenerationError(PrivacyProtocolError):
    """Error during proof generation."""

    pass


class ConfigurationError(PrivacyProtocolError):
    """Configuration error."""

    pass


class CryptographicError(PrivacyProtocolError):
    """Cryptographic operation error."""

    pass


class TransactionReverted(WithdrawalFailed):
    """Contract call reverted; ``reason`` holds the decoded revert string."""

    def __init__(self, reason, tx_hash=None):
        super().__init__(f"Transaction reverted: {reason or 'no reason'}", tx_hash)
        self.reason = reason
