"""
Proof generation pipeline for balance-threshold membership proofs.

ProofService.generate_proof() runs, strictly in order:
validate -> load circuit -> execute (witness) -> prove -> verification key
-> verify locally -> encode. Invalid input is rejected before the backend is
touched, circuit resources are released on every path, and the caller gets
either a complete ProofResult or an exception.

Known limitation: there is no cancellation model. A caller that abandons a
run (e.g. closes the UI) leaves in-flight backend work to finish on its own.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import trio

from .config import BN254_FIELD_MODULUS, DEFAULT_CIRCUIT_PATH, PROGRESS_STEPS, TOKEN_SYMBOL
from .exceptions import BackendError, OracleError, ValidationError
from .interfaces import BalanceOracle, ProofBackend
from .oracle import BalanceReading, read_balance
from .progress import ProgressCallback, ProgressReporter
from .types import (
    CircuitHandle,
    ProofInputs,
    ProofResult,
    encode_proof_b64,
    generate_random_nonce,
    scale_amount,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PROGRESS = dict(enumerate(PROGRESS_STEPS))
(
    _VALIDATE,
    _LOAD,
    _INIT,
    _WITNESS,
    _PROVE,
    _VERIFY,
    _FINALIZE,
    _DONE,
) = range(len(PROGRESS_STEPS))


def validate_inputs(inputs: ProofInputs) -> None:
    """
    Check proof inputs, reporting the most fundamental problem first.

    Raises:
        ValidationError: On the first violated rule
    """
    if not isinstance(inputs, ProofInputs):
        raise ValidationError("inputs must be ProofInputs")
    if not _is_int(inputs.threshold) or inputs.threshold < 0:
        raise ValidationError("threshold must be a non-negative integer")
    if not _is_int(inputs.balance) or inputs.balance < 0:
        raise ValidationError("balance must be a non-negative integer")
    if not isinstance(inputs.nonce, str) or not inputs.nonce.strip():
        raise ValidationError("nonce must not be empty")
    if not isinstance(inputs.secret_nonce, str) or not inputs.secret_nonce.strip():
        raise ValidationError("secret nonce must not be empty")
    if inputs.nonce != inputs.secret_nonce:
        raise ValidationError("public and secret nonce must be equal")

    nonce = inputs.nonce
    if not nonce.isdecimal() or int(nonce) >= BN254_FIELD_MODULUS:
        raise ValidationError("nonce must be a decimal integer below the field modulus")

    if inputs.balance < inputs.threshold:
        raise ValidationError(
            "insufficient balance: balance must be greater than or equal to threshold"
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ProofService:
    """
    Orchestrates balance lookup and proof generation.

    Example:
        >>> service = ProofService(MockProofBackend(), oracle=oracle)
        >>> result = await service.prove_eligibility(Decimal("0.5"), wallet)
        >>> assert result.is_valid
    """

    def __init__(
        self,
        backend: ProofBackend,
        *,
        circuit_path: str | Path = DEFAULT_CIRCUIT_PATH,
        oracle: Optional[BalanceOracle] = None,
        allow_mock_balance: bool = False,
        oracle_timeout: Optional[float] = None,
    ) -> None:
        self._backend = backend
        self._circuit_path = Path(circuit_path)
        self._oracle = oracle
        self._allow_mock_balance = allow_mock_balance
        self._oracle_timeout = oracle_timeout
        self.last_balance: Optional[BalanceReading] = None

    @property
    def backend(self) -> ProofBackend:
        return self._backend

    async def generate_proof(
        self,
        inputs: ProofInputs,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProofResult:
        """
        Generate and locally verify a proof that balance >= threshold.

        Raises:
            ValidationError: Inputs violate a rule (no backend call was made)
            BackendError: Circuit loading, proving or verification failed
        """
        reporter = ProgressReporter(on_progress)

        self._step(reporter, _VALIDATE)
        validate_inputs(inputs)
        assignment = inputs.to_assignment()

        self._step(reporter, _LOAD)
        handle = await self._call(self._backend.load_circuit, self._circuit_path)
        try:
            self._step(reporter, _INIT)
            logger.debug(
                "Loaded circuit %s (noir %s, hash %s) on %s",
                handle.artifact.name,
                handle.artifact.noir_version,
                handle.artifact.circuit_hash,
                self._backend.backend_name,
            )

            self._step(reporter, _WITNESS)
            witness = await self._call(self._backend.execute, handle, assignment)

            self._step(reporter, _PROVE)
            proof, public_inputs = await self._call(self._backend.prove, handle, witness)
            verification_key = await self._call(
                self._backend.get_verification_key, handle
            )
            logger.debug(
                "Proof generated: %d bytes, %d public inputs",
                len(proof),
                len(public_inputs),
            )

            self._step(reporter, _VERIFY)
            is_valid = bool(
                await self._call(self._backend.verify, handle, proof, public_inputs)
            )

            self._step(reporter, _FINALIZE)
            result = ProofResult(
                proof=bytes(proof),
                proof_b64=encode_proof_b64(proof),
                public_inputs=tuple(int(value) for value in public_inputs),
                verification_key=bytes(verification_key),
                is_valid=is_valid,
            )
        finally:
            await self._release(handle)

        if is_valid:
            logger.info("Membership proof generated and verified locally")
        else:
            logger.warning("Generated proof failed local verification")
        self._step(reporter, _DONE)
        return result

    async def prove_eligibility(
        self,
        min_balance: Decimal,
        wallet_address: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProofResult:
        """
        Look up the wallet balance and prove it meets min_balance.

        A fresh nonce is generated per call and used as both the public and
        the secret nonce.

        Raises:
            OracleError: Balance lookup failed (and mocked balances are disabled)
            ValidationError: Bad balance value or insufficient balance
            BackendError: Proof system failure
        """
        if self._oracle is None:
            raise OracleError("no balance oracle configured")

        reading = await read_balance(
            self._oracle,
            wallet_address,
            allow_mock=self._allow_mock_balance,
            timeout=self._oracle_timeout,
        )
        self.last_balance = reading

        threshold = scale_amount(min_balance)
        balance = scale_amount(reading.amount)
        if balance < threshold:
            raise ValidationError(
                f"insufficient balance: you have {reading.amount:.2f} {TOKEN_SYMBOL} "
                f"but need {min_balance} {TOKEN_SYMBOL}"
            )

        nonce = generate_random_nonce()
        inputs = ProofInputs(
            threshold=threshold,
            balance=balance,
            nonce=nonce,
            secret_nonce=nonce,
        )
        return await self.generate_proof(inputs, on_progress)

    # ------------------------------------------------------------------------

    @staticmethod
    def _step(reporter: ProgressReporter, index: int) -> None:
        percent, text = _PROGRESS[index]
        logger.debug("Proof pipeline %d%%: %s", percent, text)
        reporter.report(percent, text)

    @staticmethod
    async def _call(fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        try:
            return await fn(*args)
        except BackendError:
            raise
        except Exception as exc:
            raise BackendError(f"{fn.__name__} failed: {exc}") from exc

    async def _release(self, handle: CircuitHandle) -> None:
        with trio.CancelScope(shield=True):
            try:
                await self._backend.release(handle)
            except Exception:
                logger.warning("Failed to release circuit handle", exc_info=True)
