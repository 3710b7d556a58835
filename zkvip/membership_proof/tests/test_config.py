"""
Unit tests for configuration module.

Tests token units, field parameters and the bundled circuit location.
"""

from zkvip.membership_proof import config


class TestTokenUnits:
    def test_decimals(self):
        assert config.TOKEN_DECIMALS == 18
        assert config.TOKEN_SCALE == 10**18

    def test_symbol(self):
        assert config.TOKEN_SYMBOL == "WLD"


class TestFieldParameters:
    def test_bn254_modulus(self):
        expected = int(
            "30644e72e131a029b85045b68181585d2833e84879b9709143e1f593f0000001", 16
        )
        assert config.BN254_FIELD_MODULUS == expected

    def test_nonce_fits_field(self):
        assert 8 * config.NONCE_BYTES < config.BN254_FIELD_MODULUS.bit_length()


class TestCircuit:
    def test_default_circuit_is_bundled(self):
        assert config.DEFAULT_CIRCUIT_PATH.is_file()
        assert config.DEFAULT_CIRCUIT_PATH.name == "balance_threshold.json"

    def test_noir_project_is_bundled(self):
        project = config.DEFAULT_CIRCUIT_PATH.with_suffix("")
        assert (project / "Nargo.toml").is_file()
        assert (project / "src" / "main.nr").is_file()

    def test_public_parameters(self):
        assert config.PUBLIC_PARAMETERS == ("threshold", "nonce")
        assert set(config.PUBLIC_PARAMETERS) <= set(config.CIRCUIT_PARAMETERS)


class TestProgressSteps:
    def test_monotonic_to_100(self):
        percents = [percent for percent, _ in config.PROGRESS_STEPS]
        assert percents == [10, 20, 30, 60, 70, 80, 90, 100]


def test_validate_config():
    assert config.validate_config() is True
