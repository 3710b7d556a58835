"""
Abstract interfaces for the external collaborators of the proof pipeline.

ProofBackend wraps a proof-system runtime (circuit execution, proving,
verification). BalanceOracle resolves a wallet address to a token balance.
Both are async: every call is a potential suspension point.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Tuple

from .types import CircuitHandle, Witness


class ProofBackend(ABC):
    """
    Proof-system runtime for a compiled circuit.

    All methods except release() may raise BackendError.
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Human-readable backend name."""

    @property
    def backend_version(self) -> str:
        return "0.1.0"

    @abstractmethod
    async def load_circuit(self, location: str | Path) -> CircuitHandle:
        """Load a circuit artifact and prepare backend resources for it."""

    @abstractmethod
    async def execute(
        self, handle: CircuitHandle, inputs: Mapping[str, int]
    ) -> Witness:
        """Solve the circuit for a concrete input assignment."""

    @abstractmethod
    async def prove(
        self, handle: CircuitHandle, witness: Witness
    ) -> Tuple[bytes, Tuple[int, ...]]:
        """Produce (proof, public_inputs) from a witness."""

    @abstractmethod
    async def get_verification_key(self, handle: CircuitHandle) -> bytes:
        """Return the verification key for the loaded circuit."""

    @abstractmethod
    async def verify(
        self,
        handle: CircuitHandle,
        proof: bytes,
        public_inputs: Tuple[int, ...],
    ) -> bool:
        """Check a proof against its public inputs."""

    async def release(self, handle: CircuitHandle) -> None:
        """Release resources attached to a handle. Must not raise."""
        handle.released = True

    def get_backend_info(self) -> dict:
        return {"name": self.backend_name, "version": self.backend_version}


class BalanceOracle(ABC):
    """Resolves a wallet address to a balance in token units."""

    name: str = "oracle"

    def is_available(self) -> bool:
        """Capability probe: False when the oracle cannot be used at all."""
        return True

    @abstractmethod
    async def get_balance(self, address: str) -> Decimal:
        """
        Return the current balance of address in token units.

        Raises:
            OracleError: On lookup failure or timeout
        """
