"""Public API for the membership proof pipeline."""

from __future__ import annotations

from importlib import import_module

from .exceptions import (
    BackendError,
    ConfigurationError,
    MembershipProofError,
    OracleError,
    ValidationError,
)
from .factory import get_backend_type, get_proof_backend, set_backend_type
from .interfaces import BalanceOracle, ProofBackend
from .oracle import (
    BalanceReading,
    FallbackBalanceOracle,
    RpcBalanceOracle,
    StaticBalanceOracle,
    read_balance,
)
from .progress import ProgressReporter, StepStatus, StepTracker
from .service import ProofService, validate_inputs
from .types import (
    ProofInputs,
    ProofResult,
    encode_proof_b64,
    generate_random_nonce,
    proof_b64_to_bytes,
    scale_amount,
)

__all__ = [
    "BackendError",
    "BalanceOracle",
    "BalanceReading",
    "ConfigurationError",
    "FallbackBalanceOracle",
    "MembershipProofError",
    "MockProofBackend",
    "NoirCliBackend",
    "OracleError",
    "ProgressReporter",
    "ProofBackend",
    "ProofInputs",
    "ProofResult",
    "ProofService",
    "RpcBalanceOracle",
    "StaticBalanceOracle",
    "StepStatus",
    "StepTracker",
    "ValidationError",
    "encode_proof_b64",
    "generate_random_nonce",
    "get_backend_type",
    "get_proof_backend",
    "proof_b64_to_bytes",
    "read_balance",
    "scale_amount",
    "set_backend_type",
    "validate_inputs",
]

_LAZY_EXPORTS = {
    "MockProofBackend": "adapters.mock_backend",
    "NoirCliBackend": "adapters.noir_backend",
}


def __getattr__(name: str):
    if name in _LAZY_EXPORTS:
        module = import_module(f"{__name__}.{_LAZY_EXPORTS[name]}")
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
