"""
⚠️ DRAFT — requires crypto review before production use

Unit tests for configuration module.
"""

from mantle_privacy.privacy_protocol import config


class TestCurveParameters:
    """Stealth address curve parameters."""

    def test_curve_is_secp256k1(self):
        assert config.CURVE_NAME == "secp256k1"
        assert config.CURVE_LIBRARY == "petlib"
        assert config.CURVE_NID == 714

    def test_group_order(self):
        assert config.SECP256K1_ORDER == (
            0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
        )

    def test_key_sizes(self):
        assert config.PRIVATE_KEY_BYTES == 32
        assert config.COMPRESSED_KEY_BYTES == 33
        assert config.UNCOMPRESSED_KEY_BYTES == 65
        assert config.ADDRESS_BYTES == 20

    def test_only_scheme_one_supported(self):
        assert config.SUPPORTED_SCHEME_IDS == (1,)
        assert config.META_ADDRESS_PREFIX == "st:mnt:"


class TestFieldParameters:
    """Shielded pool field and tree parameters."""

    def test_bn254_prime(self):
        assert config.FIELD_PRIME == (
            21888242871839275222246405745257275088548364400416034343698204186575808495617
        )
        assert config.FIELD_PRIME.bit_length() == 254

    def test_field_and_curve_orders_differ(self):
        assert config.FIELD_PRIME < config.SECP256K1_ORDER

    def test_tree_defaults(self):
        assert config.TREE_DEPTH == 20
        assert config.ROOT_HISTORY_SIZE == 100

    def test_public_signal_order(self):
        assert config.PUBLIC_SIGNAL_ORDER == ("root", "nullifierHash", "recipient", "amount")
        assert config.PROOF_CALLDATA_LENGTH == 8

    def test_poseidon_partial_rounds_for_common_widths(self):
        # t = 2, 3, 4
        assert config.POSEIDON_PARTIAL_ROUNDS[:3] == (56, 57, 56)


def test_validate_config_passes():
    assert config.validate_config() is True
