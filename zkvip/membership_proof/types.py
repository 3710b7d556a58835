"""
⚠️ DRAFT - requires crypto review before production use

Common types for the balance-threshold membership proof.

This module provides:
1. ProofInputs - the circuit input assignment (transient, never persisted)
2. ProofResult - the bundle returned by a successful pipeline run
3. CircuitArtifact / CircuitHandle / Witness - backend-facing values
4. Helpers for fixed-point scaling, nonces and base64 transport encoding
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .config import NONCE_BYTES, TOKEN_DECIMALS
from .exceptions import ValidationError

# ============================================================================
# PROOF INPUTS
# ============================================================================


@dataclass(frozen=True)
class ProofInputs:
    """
    Input assignment for the balance-threshold circuit.

    Attributes:
        threshold: Minimum balance, fixed point (public)
        balance: Actual balance, fixed point (private)
        nonce: Session nonce as a decimal string (public)
        secret_nonce: Same nonce, disclosed as a private input (private)

    The nonce is fed to the circuit twice so that the proof is bound to a
    single session: the circuit asserts nonce == secret_nonce.

    Example:
        >>> nonce = generate_random_nonce()
        >>> inputs = ProofInputs(
        ...     threshold=scale_amount("0.5"),
        ...     balance=scale_amount("1.2"),
        ...     nonce=nonce,
        ...     secret_nonce=nonce,
        ... )
    """

    threshold: int
    balance: int
    nonce: str
    secret_nonce: str

    def to_assignment(self) -> Dict[str, int]:
        """
        Convert to circuit field values.

        Nonces become arbitrary-precision ints; they routinely exceed 64 bits.
        """
        return {
            "threshold": self.threshold,
            "nonce": int(self.nonce.strip()),
            "balance": self.balance,
            "secret_nonce": int(self.secret_nonce.strip()),
        }

    def __repr__(self) -> str:
        # balance is the private witness; keep it out of logs and tracebacks
        return (
            f"ProofInputs(threshold={self.threshold}, balance=<hidden>, "
            f"nonce={self.nonce!r}, secret_nonce=<hidden>)"
        )


# ============================================================================
# PROOF RESULT
# ============================================================================


@dataclass(frozen=True)
class ProofResult:
    """
    Outcome of a successful proof pipeline run.

    Attributes:
        proof: Binary proof artifact
        proof_b64: Base64 encoding of proof, for transport
        public_inputs: Public inputs in circuit order (threshold, nonce)
        verification_key: Binary verification key
        is_valid: Result of local self-verification
    """

    proof: bytes
    proof_b64: str
    public_inputs: Tuple[int, ...]
    verification_key: bytes
    is_valid: bool

    def to_dict(self) -> dict:
        """Convert to dictionary for hand-off (binary fields base64-encoded)."""
        return {
            "proof_b64": self.proof_b64,
            "public_inputs": [str(value) for value in self.public_inputs],
            "verification_key_b64": encode_proof_b64(self.verification_key),
            "is_valid": self.is_valid,
        }


# ============================================================================
# BACKEND-FACING VALUES
# ============================================================================


@dataclass(frozen=True)
class CircuitParameter:
    name: str
    visibility: str  # "public" or "private"
    kind: str = "field"
    width: Optional[int] = None

    @property
    def is_public(self) -> bool:
        return self.visibility == "public"


@dataclass(frozen=True)
class CircuitArtifact:
    """Compiled circuit description (nargo JSON artifact)."""

    name: str
    noir_version: str
    circuit_hash: str
    parameters: Tuple[CircuitParameter, ...]
    bytecode: Optional[str] = None
    path: Optional[Path] = None

    @property
    def public_parameters(self) -> Tuple[CircuitParameter, ...]:
        return tuple(param for param in self.parameters if param.is_public)


@dataclass
class CircuitHandle:
    """A loaded circuit plus whatever backend state is attached to it."""

    artifact: CircuitArtifact
    workdir: Optional[Path] = None
    state: Dict[str, Any] = field(default_factory=dict)
    released: bool = False


@dataclass(frozen=True)
class Witness:
    """
    Solved circuit assignment.

    values holds (name, value) pairs in ABI order; digest commits to them.
    Backends that keep the witness on disk set path.
    """

    values: Tuple[Tuple[str, int], ...]
    digest: bytes
    path: Optional[Path] = None


# ============================================================================
# HELPERS
# ============================================================================


def scale_amount(amount: Any, decimals: int = TOKEN_DECIMALS) -> int:
    """
    Scale a token amount to fixed point, rounding toward zero.

    Args:
        amount: Decimal, int or numeric string (floats go through str())
        decimals: Token decimals

    Returns:
        int: amount * 10**decimals, floored

    Raises:
        ValidationError: If amount is not a finite number
    """
    if isinstance(amount, bool):
        raise ValidationError(f"Amount must be numeric, got {amount!r}")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Amount must be numeric, got {amount!r}") from exc
    if not value.is_finite():
        raise ValidationError(f"Amount must be finite, got {amount!r}")

    scaled = value.scaleb(decimals).to_integral_value(rounding=ROUND_FLOOR)
    return int(scaled)


def unscale_amount(value: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Inverse of scale_amount (exact)."""
    return Decimal(value).scaleb(-decimals)


def generate_random_nonce() -> str:
    """Return a fresh 128-bit random nonce as a decimal string."""
    return str(int.from_bytes(secrets.token_bytes(NONCE_BYTES), "big"))


def encode_proof_b64(proof: bytes) -> str:
    """Encode proof bytes as standard base64."""
    return base64.b64encode(bytes(proof)).decode("ascii")


def proof_b64_to_bytes(proof_b64: str) -> bytes:
    """
    Decode a base64 proof back to bytes.

    Raises:
        ValidationError: If the input is not valid base64
    """
    if not isinstance(proof_b64, str):
        raise ValidationError("proof_b64 must be a string")
    try:
        return base64.b64decode(proof_b64.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValidationError(f"Failed to decode base64 proof: {exc}") from exc
