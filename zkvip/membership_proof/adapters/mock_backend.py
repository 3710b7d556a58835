"""
⚠️ DRAFT - mock proof system, NOT zero-knowledge and NOT sound

Deterministic hash-based stand-in for the Noir/Barretenberg runtime.

The mock evaluates the same constraints as the balance-threshold circuit
(range checks from the ABI, nonce == secret_nonce, balance >= threshold) so
that pipeline behaviour matches the real backend, but its "proof" is only a
SHA3 commitment plus a binding tag. Anyone holding the verification key can
forge it. For development and tests only.
"""

from __future__ import annotations

import hashlib
import hmac
from pathlib import Path
from typing import Mapping, Tuple

import cbor2
import trio

from ..circuit import load_circuit_artifact
from ..config import (
    BN254_FIELD_MODULUS,
    FIELD_ELEMENT_BYTES,
    PROOF_DOMAIN_SEPARATOR,
    PROOF_VERSION,
)
from ..exceptions import BackendError
from ..interfaces import ProofBackend
from ..types import CircuitArtifact, CircuitHandle, CircuitParameter, Witness


class MockProofBackend(ProofBackend):
    """
    Mock backend for the balance-threshold circuit.

    Example:
        >>> backend = MockProofBackend()
        >>> handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
        >>> witness = await backend.execute(handle, inputs.to_assignment())
        >>> proof, public_inputs = await backend.prove(handle, witness)
        >>> assert await backend.verify(handle, proof, public_inputs)
    """

    _BACKEND_NAME = "MockBalanceThreshold"
    _BACKEND_VERSION = "0.1.0"
    _DIGEST_LEN = 32
    _PROOF_LEN = 2 * _DIGEST_LEN

    @property
    def backend_name(self) -> str:
        return self._BACKEND_NAME

    @property
    def backend_version(self) -> str:
        return self._BACKEND_VERSION

    async def load_circuit(self, location: str | Path) -> CircuitHandle:
        await trio.lowlevel.checkpoint()
        artifact = load_circuit_artifact(location)
        handle = CircuitHandle(artifact=artifact)
        handle.state["vk"] = self._derive_verification_key(artifact)
        return handle

    async def execute(
        self, handle: CircuitHandle, inputs: Mapping[str, int]
    ) -> Witness:
        await trio.lowlevel.checkpoint()
        self._require_open(handle)
        if not isinstance(inputs, Mapping):
            raise BackendError("inputs must be a mapping")

        values = []
        for param in handle.artifact.parameters:
            if param.name not in inputs:
                raise BackendError(f"missing circuit input: {param.name}")
            value = inputs[param.name]
            self._check_range(param, value)
            values.append((param.name, value))

        assignment = dict(values)
        if assignment["nonce"] != assignment["secret_nonce"]:
            raise BackendError("Circuit execution failed: nonce mismatch")
        if assignment["balance"] < assignment["threshold"]:
            raise BackendError("Circuit execution failed: insufficient balance")

        digest = self._hash(b"WITNESS", cbor2.dumps([list(pair) for pair in values]))
        return Witness(values=tuple(values), digest=digest)

    async def prove(
        self, handle: CircuitHandle, witness: Witness
    ) -> Tuple[bytes, Tuple[int, ...]]:
        await trio.lowlevel.checkpoint()
        self._require_open(handle)
        if not isinstance(witness, Witness) or len(witness.digest) != self._DIGEST_LEN:
            raise BackendError("invalid witness")

        assignment = dict(witness.values)
        try:
            public_inputs = tuple(
                assignment[param.name] for param in handle.artifact.public_parameters
            )
        except KeyError as exc:
            raise BackendError(f"witness missing public input {exc}") from exc

        commitment = self._hash(b"COMMIT", witness.digest)
        tag = self._binding_tag(handle.state["vk"], public_inputs, commitment)
        return commitment + tag, public_inputs

    async def get_verification_key(self, handle: CircuitHandle) -> bytes:
        await trio.lowlevel.checkpoint()
        self._require_open(handle)
        return handle.state["vk"]

    async def verify(
        self,
        handle: CircuitHandle,
        proof: bytes,
        public_inputs: Tuple[int, ...],
    ) -> bool:
        await trio.lowlevel.checkpoint()
        self._require_open(handle)
        if not isinstance(proof, (bytes, bytearray)) or len(proof) != self._PROOF_LEN:
            return False
        if len(public_inputs) != len(handle.artifact.public_parameters):
            return False
        try:
            commitment = bytes(proof[: self._DIGEST_LEN])
            expected = self._binding_tag(handle.state["vk"], public_inputs, commitment)
        except (TypeError, ValueError, OverflowError):
            return False
        return hmac.compare_digest(bytes(proof[self._DIGEST_LEN :]), expected)

    async def release(self, handle: CircuitHandle) -> None:
        handle.state.clear()
        handle.released = True

    # ------------------------------------------------------------------------

    @staticmethod
    def _require_open(handle: CircuitHandle) -> None:
        if not isinstance(handle, CircuitHandle):
            raise BackendError("handle must be CircuitHandle")
        if handle.released or "vk" not in handle.state:
            raise BackendError("circuit handle has been released")

    @staticmethod
    def _check_range(param: CircuitParameter, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise BackendError(f"{param.name} must be an integer")
        if param.kind == "integer" and param.width is not None:
            bound = 1 << param.width
        else:
            bound = BN254_FIELD_MODULUS
        if not 0 <= value < bound:
            raise BackendError(f"{param.name} out of range for {param.kind}")

    def _derive_verification_key(self, artifact: CircuitArtifact) -> bytes:
        return self._hash(
            b"VK",
            PROOF_VERSION.to_bytes(2, "big") + artifact.circuit_hash.encode("utf-8"),
        )

    def _binding_tag(
        self, vk: bytes, public_inputs: Tuple[int, ...], commitment: bytes
    ) -> bytes:
        encoded = b"".join(
            int(value).to_bytes(FIELD_ELEMENT_BYTES, "big") for value in public_inputs
        )
        return self._hash(b"TAG", vk + encoded + commitment)

    @staticmethod
    def _hash(label: bytes, data: bytes) -> bytes:
        return hashlib.sha3_256(PROOF_DOMAIN_SEPARATOR + label + data).digest()
