"""
⚠️ DRAFT - requires crypto review before production use

Unit tests for the hash-based mock proof backend.
"""

import pytest

from zkvip.membership_proof.adapters.mock_backend import MockProofBackend
from zkvip.membership_proof.config import DEFAULT_CIRCUIT_PATH
from zkvip.membership_proof.exceptions import BackendError
from zkvip.membership_proof.types import ProofInputs, scale_amount


def _assignment(threshold="0.5", balance="1.2", nonce="123456789", secret=None):
    return ProofInputs(
        threshold=scale_amount(threshold),
        balance=scale_amount(balance),
        nonce=nonce,
        secret_nonce=secret if secret is not None else nonce,
    ).to_assignment()


@pytest.fixture
def backend():
    return MockProofBackend()


@pytest.mark.trio
async def test_prove_and_verify(backend):
    handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    witness = await backend.execute(handle, _assignment())
    proof, public_inputs = await backend.prove(handle, witness)

    assert len(proof) == 64
    assert public_inputs == (scale_amount("0.5"), 123456789)
    assert await backend.verify(handle, proof, public_inputs)


@pytest.mark.trio
async def test_proof_is_bound_to_public_inputs(backend):
    handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    witness = await backend.execute(handle, _assignment())
    proof, public_inputs = await backend.prove(handle, witness)

    assert not await backend.verify(handle, proof, (public_inputs[0], 999))
    assert not await backend.verify(handle, proof, (1, public_inputs[1]))
    tampered = bytes([proof[0] ^ 1]) + proof[1:]
    assert not await backend.verify(handle, tampered, public_inputs)
    assert not await backend.verify(handle, proof[:-1], public_inputs)


@pytest.mark.trio
async def test_equal_balance_is_sufficient(backend):
    handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    witness = await backend.execute(handle, _assignment(threshold="1", balance="1"))
    proof, public_inputs = await backend.prove(handle, witness)
    assert await backend.verify(handle, proof, public_inputs)


@pytest.mark.trio
async def test_execute_rejects_insufficient_balance(backend):
    handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    with pytest.raises(BackendError, match="insufficient balance"):
        await backend.execute(handle, _assignment(threshold="2", balance="1"))


@pytest.mark.trio
async def test_execute_rejects_nonce_mismatch(backend):
    handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    with pytest.raises(BackendError, match="nonce mismatch"):
        await backend.execute(handle, _assignment(nonce="1", secret="2"))


@pytest.mark.trio
async def test_execute_range_checks_u128(backend):
    handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    assignment = _assignment()
    assignment["balance"] = 2**128
    with pytest.raises(BackendError, match="out of range"):
        await backend.execute(handle, assignment)


@pytest.mark.trio
async def test_execute_requires_all_inputs(backend):
    handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    assignment = _assignment()
    del assignment["secret_nonce"]
    with pytest.raises(BackendError, match="missing circuit input"):
        await backend.execute(handle, assignment)


@pytest.mark.trio
async def test_verification_key_is_stable(backend):
    first = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    second = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    assert await backend.get_verification_key(first) == await backend.get_verification_key(second)


@pytest.mark.trio
async def test_released_handle_is_unusable(backend):
    handle = await backend.load_circuit(DEFAULT_CIRCUIT_PATH)
    await backend.release(handle)
    assert handle.released
    with pytest.raises(BackendError, match="released"):
        await backend.execute(handle, _assignment())


@pytest.mark.trio
async def test_missing_circuit(backend, tmp_path):
    with pytest.raises(BackendError, match="not found"):
        await backend.load_circuit(tmp_path / "missing.json")


def test_backend_info(backend):
    info = backend.get_backend_info()
    assert info == {"name": "MockBalanceThreshold", "version": "0.1.0"}
