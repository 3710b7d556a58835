"""Loading and validation of compiled circuit artifacts (nargo JSON)."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Iterable, Mapping

from .config import CIRCUIT_PARAMETERS, PUBLIC_PARAMETERS
from .exceptions import BackendError
from .types import CircuitArtifact, CircuitParameter

MAX_ARTIFACT_BYTES = 16 * 1024 * 1024


def load_circuit_artifact(location: str | Path) -> CircuitArtifact:
    """
    Read and validate a circuit artifact from disk.

    Raises:
        BackendError: If the file is missing, oversized or malformed
    """
    path = Path(location)
    if not path.is_file():
        raise BackendError(f"circuit artifact not found: {path}")
    if path.stat().st_size > MAX_ARTIFACT_BYTES:
        raise BackendError(f"circuit artifact too large: {path}")

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BackendError(f"failed to read circuit artifact {path}: {exc}") from exc

    artifact = parse_circuit_artifact(payload, name=path.stem)
    return CircuitArtifact(
        name=artifact.name,
        noir_version=artifact.noir_version,
        circuit_hash=artifact.circuit_hash,
        parameters=artifact.parameters,
        bytecode=artifact.bytecode,
        path=path,
    )


def parse_circuit_artifact(payload: Any, *, name: str = "circuit") -> CircuitArtifact:
    if not isinstance(payload, dict):
        raise BackendError("circuit artifact must be a JSON object")

    abi = payload.get("abi")
    if not isinstance(abi, dict):
        raise BackendError("circuit artifact missing abi")
    raw_params = abi.get("parameters")
    if not isinstance(raw_params, list) or not raw_params:
        raise BackendError("circuit abi must declare parameters")

    parameters = tuple(
        _parse_parameter(entry, idx) for idx, entry in enumerate(raw_params)
    )
    _check_expected_parameters(parameters)

    bytecode = payload.get("bytecode")
    if bytecode is not None and not isinstance(bytecode, str):
        raise BackendError("circuit bytecode must be a string")

    noir_version = payload.get("noir_version") or "unknown"
    circuit_hash = payload.get("hash")
    if circuit_hash is None:
        circuit_hash = _abi_digest(raw_params)

    return CircuitArtifact(
        name=name,
        noir_version=str(noir_version),
        circuit_hash=str(circuit_hash),
        parameters=parameters,
        bytecode=bytecode or None,
    )


def _parse_parameter(entry: Any, idx: int) -> CircuitParameter:
    if not isinstance(entry, Mapping):
        raise BackendError(f"abi.parameters[{idx}] must be an object")
    name = entry.get("name")
    visibility = entry.get("visibility")
    if not isinstance(name, str) or not name:
        raise BackendError(f"abi.parameters[{idx}] missing name")
    if visibility not in ("public", "private"):
        raise BackendError(f"abi.parameters[{idx}] has invalid visibility")

    type_info = entry.get("type") or {}
    if not isinstance(type_info, Mapping):
        raise BackendError(f"abi.parameters[{idx}].type must be an object")
    kind = type_info.get("kind", "field")
    width = type_info.get("width")
    if width is not None and (not isinstance(width, int) or width <= 0):
        raise BackendError(f"abi.parameters[{idx}] has invalid width")
    return CircuitParameter(name=name, visibility=visibility, kind=kind, width=width)


def _check_expected_parameters(parameters: Iterable[CircuitParameter]) -> None:
    params = list(parameters)
    names = tuple(param.name for param in params)
    if names != CIRCUIT_PARAMETERS:
        raise BackendError(
            f"unexpected circuit parameters {names!r}, expected {CIRCUIT_PARAMETERS!r}"
        )
    public = tuple(param.name for param in params if param.is_public)
    if public != PUBLIC_PARAMETERS:
        raise BackendError(
            f"unexpected public parameters {public!r}, expected {PUBLIC_PARAMETERS!r}"
        )


def _abi_digest(raw_params: list) -> str:
    canonical = json.dumps(raw_params, sort_keys=True, separators=(",", ":"))
    return hashlib.sha3_256(canonical.encode("utf-8")).hexdigest()
