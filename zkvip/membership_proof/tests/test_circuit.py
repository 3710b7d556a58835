"""Tests for circuit artifact loading."""

import copy
import json

import pytest

from zkvip.membership_proof.circuit import load_circuit_artifact, parse_circuit_artifact
from zkvip.membership_proof.config import DEFAULT_CIRCUIT_PATH
from zkvip.membership_proof.exceptions import BackendError


@pytest.fixture
def payload():
    return json.loads(DEFAULT_CIRCUIT_PATH.read_text(encoding="utf-8"))


def test_bundled_artifact():
    artifact = load_circuit_artifact(DEFAULT_CIRCUIT_PATH)
    assert artifact.name == "balance_threshold"
    assert artifact.path == DEFAULT_CIRCUIT_PATH
    assert [p.name for p in artifact.public_parameters] == ["threshold", "nonce"]

    threshold, nonce, balance, secret = artifact.parameters
    assert threshold.kind == "integer" and threshold.width == 128
    assert balance.kind == "integer" and not balance.is_public
    assert nonce.kind == "field" and secret.kind == "field"


def test_hash_defaults_to_abi_digest(payload):
    first = parse_circuit_artifact(payload)
    changed = copy.deepcopy(payload)
    changed["abi"]["parameters"][0]["type"]["width"] = 64
    assert first.circuit_hash != parse_circuit_artifact(changed).circuit_hash


def test_explicit_hash_is_kept(payload):
    payload["hash"] = 1234
    assert parse_circuit_artifact(payload).circuit_hash == "1234"


def test_wrong_parameter_order(payload):
    params = payload["abi"]["parameters"]
    params[0], params[2] = params[2], params[0]
    with pytest.raises(BackendError, match="unexpected circuit parameters"):
        parse_circuit_artifact(payload)


def test_balance_must_stay_private(payload):
    payload["abi"]["parameters"][2]["visibility"] = "public"
    with pytest.raises(BackendError, match="unexpected public parameters"):
        parse_circuit_artifact(payload)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p.pop("abi"),
        lambda p: p["abi"].update(parameters=[]),
        lambda p: p["abi"]["parameters"][0].update(visibility="secret"),
        lambda p: p["abi"]["parameters"][0].update(name=""),
        lambda p: p["abi"]["parameters"][0]["type"].update(width=0),
        lambda p: p.update(bytecode=42),
    ],
)
def test_malformed_artifacts(payload, mutate):
    mutate(payload)
    with pytest.raises(BackendError):
        parse_circuit_artifact(payload)


def test_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(BackendError, match="failed to read"):
        load_circuit_artifact(path)


def test_missing_file(tmp_path):
    with pytest.raises(BackendError, match="not found"):
        load_circuit_artifact(tmp_path / "absent.json")
