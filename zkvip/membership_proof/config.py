"""
Configuration constants for the membership proof pipeline.

The balance-threshold circuit is a Noir program compiled for the BN254
curve. Token amounts enter the circuit as fixed-point integers scaled by
the token's ERC-20 decimals.
"""

from decimal import Decimal
from pathlib import Path

# ============================================================================
# TOKEN UNITS
# ============================================================================

TOKEN_SYMBOL = "WLD"
TOKEN_DECIMALS = 18  # ERC-20 default, WLD uses 18
TOKEN_SCALE = 10**TOKEN_DECIMALS

# ============================================================================
# FIELD PARAMETERS
# ============================================================================

# BN254 scalar field (Noir / Barretenberg native field)
BN254_FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)
FIELD_ELEMENT_BYTES = 32

# Random nonce size: 128 bits fits comfortably inside one field element
NONCE_BYTES = 16

# ============================================================================
# CIRCUIT ARTIFACTS
# ============================================================================

CIRCUIT_NAME = "balance_threshold"
DEFAULT_CIRCUIT_PATH = Path(__file__).resolve().parent / "circuits" / f"{CIRCUIT_NAME}.json"

# Parameter names as declared by the circuit ABI, in declaration order
CIRCUIT_PARAMETERS = ("threshold", "nonce", "balance", "secret_nonce")
PUBLIC_PARAMETERS = ("threshold", "nonce")

# Domain separator for the hash-based mock backend
PROOF_DOMAIN_SEPARATOR = b"ZKVIP_BALANCE_THRESHOLD_V1_"
PROOF_VERSION = 1  # Increment for breaking changes

# ============================================================================
# PROGRESS REPORTING
# ============================================================================

# (percent, text) emitted by ProofService, in pipeline order
PROGRESS_STEPS = (
    (10, "Validating inputs..."),
    (20, "Loading circuit..."),
    (30, "Initializing backend..."),
    (60, "Generating witness..."),
    (70, "Generating proof..."),
    (80, "Verifying proof locally..."),
    (90, "Finalizing..."),
    (100, "Proof generated successfully!"),
)

# ============================================================================
# BALANCE ORACLE
# ============================================================================

# Placeholder returned when the oracle fails and mocked balances are allowed
# (development only, always flagged as mocked)
MOCK_BALANCE = Decimal("1.5")
DEFAULT_ORACLE_TIMEOUT = 10.0

# World Chain mainnet
DEFAULT_RPC_URL = "https://worldchain-mainnet.g.alchemy.com/public"
DEFAULT_TOKEN_ADDRESS = "0x2cFc85d8E48F8EAB294be644d9E25C3030863003"

# ERC-20 selectors
ERC20_BALANCE_OF_SELECTOR = "0x70a08231"
ERC20_DECIMALS_SELECTOR = "0x313ce567"

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
    assert TOKEN_DECIMALS >= 0, "Token decimals must be non-negative"
    assert 8 * NONCE_BYTES < BN254_FIELD_MODULUS.bit_length(), "Nonce must fit the field"
    assert set(PUBLIC_PARAMETERS) <= set(CIRCUIT_PARAMETERS), "Unknown public parameter"

    percents = [percent for percent, _ in PROGRESS_STEPS]
    assert percents == sorted(percents), "Progress steps must be monotonic"
    assert percents[-1] == 100, "Progress must terminate at 100"

    return True


# Auto-validate on import
validate_config()
