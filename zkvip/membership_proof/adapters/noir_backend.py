"""
Noir + Barretenberg backend driven through the `nargo` and `bb` CLIs.

The circuit is compiled from the Noir project shipped next to the ABI
artifact (circuits/balance_threshold/). Every handle gets a private working
directory so concurrent runs never share Prover.toml or witness files; the
directory is removed on release().
"""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from pathlib import Path
from typing import Mapping, Sequence, Tuple

import trio

from ..circuit import load_circuit_artifact
from ..config import FIELD_ELEMENT_BYTES
from ..exceptions import BackendError
from ..interfaces import ProofBackend
from ..types import CircuitHandle, Witness

DEFAULT_PROVER_TIMEOUT = 120
WITNESS_NAME = "witness"


class NoirCliBackend(ProofBackend):
    _BACKEND_NAME = "Noir/UltraHonk (CLI)"
    _BACKEND_VERSION = "0.1.0"

    def __init__(
        self,
        nargo_path: str | Path | None = None,
        bb_path: str | Path | None = None,
        timeout: float = DEFAULT_PROVER_TIMEOUT,
    ) -> None:
        self._nargo = _find_binary("nargo", nargo_path, "NARGO_BIN")
        self._bb = _find_binary("bb", bb_path, "BB_BIN")
        self._timeout = timeout

    @property
    def backend_name(self) -> str:
        return self._BACKEND_NAME

    @property
    def backend_version(self) -> str:
        return self._BACKEND_VERSION

    async def load_circuit(self, location: str | Path) -> CircuitHandle:
        source_dir = resolve_project_dir(location)
        workdir = Path(tempfile.mkdtemp(prefix="zkvip-noir-"))
        project_dir = workdir / source_dir.name
        try:
            shutil.copytree(source_dir, project_dir, ignore=shutil.ignore_patterns("target"))
            await self._run([self._nargo, "compile"], cwd=project_dir)
            artifact = load_circuit_artifact(
                project_dir / "target" / f"{source_dir.name}.json"
            )
            if not artifact.bytecode:
                raise BackendError("compiled circuit has no bytecode")
        except BaseException:
            shutil.rmtree(workdir, ignore_errors=True)
            raise

        handle = CircuitHandle(artifact=artifact, workdir=workdir)
        handle.state["project_dir"] = project_dir
        return handle

    async def execute(
        self, handle: CircuitHandle, inputs: Mapping[str, int]
    ) -> Witness:
        project_dir = self._project_dir(handle)
        values = []
        for param in handle.artifact.parameters:
            if param.name not in inputs:
                raise BackendError(f"missing circuit input: {param.name}")
            values.append((param.name, inputs[param.name]))

        (project_dir / "Prover.toml").write_text(
            render_prover_toml(values), encoding="utf-8"
        )
        await self._run([self._nargo, "execute", WITNESS_NAME], cwd=project_dir)

        witness_path = project_dir / "target" / f"{WITNESS_NAME}.gz"
        if not witness_path.exists():
            raise BackendError(f"nargo did not produce a witness: {witness_path}")
        digest = hashlib.sha3_256(witness_path.read_bytes()).digest()
        return Witness(values=tuple(values), digest=digest, path=witness_path)

    async def prove(
        self, handle: CircuitHandle, witness: Witness
    ) -> Tuple[bytes, Tuple[int, ...]]:
        project_dir = self._project_dir(handle)
        if witness.path is None or not witness.path.exists():
            raise BackendError("witness file missing")

        out_dir = handle.workdir / "proof"
        out_dir.mkdir(exist_ok=True)
        await self._run(
            [
                self._bb,
                "prove",
                "-b",
                str(handle.artifact.path),
                "-w",
                str(witness.path),
                "-o",
                str(out_dir),
            ],
            cwd=project_dir,
        )
        proof_path = out_dir / "proof"
        public_inputs_path = out_dir / "public_inputs"
        if not proof_path.exists() or not public_inputs_path.exists():
            raise BackendError(f"bb did not write proof artifacts to {out_dir}")

        public_inputs = parse_public_inputs(public_inputs_path.read_bytes())
        return proof_path.read_bytes(), public_inputs

    async def get_verification_key(self, handle: CircuitHandle) -> bytes:
        project_dir = self._project_dir(handle)
        vk_path = handle.workdir / "vk" / "vk"
        if not vk_path.exists():
            vk_path.parent.mkdir(exist_ok=True)
            await self._run(
                [
                    self._bb,
                    "write_vk",
                    "-b",
                    str(handle.artifact.path),
                    "-o",
                    str(vk_path.parent),
                ],
                cwd=project_dir,
            )
        if not vk_path.exists():
            raise BackendError("bb did not write a verification key")
        return vk_path.read_bytes()

    async def verify(
        self,
        handle: CircuitHandle,
        proof: bytes,
        public_inputs: Tuple[int, ...],
    ) -> bool:
        project_dir = self._project_dir(handle)
        vk_path = handle.workdir / "vk" / "vk"
        if not vk_path.exists():
            await self.get_verification_key(handle)

        check_dir = Path(tempfile.mkdtemp(prefix="verify-", dir=handle.workdir))
        try:
            (check_dir / "proof").write_bytes(proof)
            (check_dir / "public_inputs").write_bytes(encode_public_inputs(public_inputs))
            result = await self._run(
                [
                    self._bb,
                    "verify",
                    "-k",
                    str(vk_path),
                    "-p",
                    str(check_dir / "proof"),
                    "-i",
                    str(check_dir / "public_inputs"),
                ],
                cwd=project_dir,
                check=False,
            )
        finally:
            shutil.rmtree(check_dir, ignore_errors=True)
        return result.returncode == 0

    async def release(self, handle: CircuitHandle) -> None:
        if handle.workdir is not None:
            shutil.rmtree(handle.workdir, ignore_errors=True)
        handle.state.clear()
        handle.released = True

    # ------------------------------------------------------------------------

    @staticmethod
    def _project_dir(handle: CircuitHandle) -> Path:
        if handle.released or "project_dir" not in handle.state:
            raise BackendError("circuit handle has been released")
        return handle.state["project_dir"]

    async def _run(self, command: Sequence[str], *, cwd: Path, check: bool = True):
        binary = Path(command[0])
        if not binary.exists():
            raise BackendError(f"missing binary: {command[0]}")
        try:
            with trio.fail_after(self._timeout):
                result = await trio.run_process(
                    list(command),
                    cwd=str(cwd),
                    capture_stdout=True,
                    capture_stderr=True,
                    check=False,
                )
        except trio.TooSlowError as exc:
            raise BackendError(
                f"{binary.name} timed out after {self._timeout}s"
            ) from exc
        except OSError as exc:
            raise BackendError(f"failed to run {binary.name}: {exc}") from exc

        if check and result.returncode != 0:
            stderr = result.stderr.decode("utf-8", "replace").strip()
            raise BackendError(f"{binary.name} failed: {stderr or 'unknown error'}")
        return result


def resolve_project_dir(location: str | Path) -> Path:
    """
    Map an artifact path or project directory to the Noir project directory.

    circuits/balance_threshold.json resolves to circuits/balance_threshold/.
    """
    path = Path(location)
    if path.suffix == ".json":
        path = path.with_suffix("")
    if not (path / "Nargo.toml").is_file():
        raise BackendError(f"Noir project not found (no Nargo.toml): {path}")
    return path


def render_prover_toml(values: Sequence[Tuple[str, int]]) -> str:
    lines = []
    for name, value in values:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise BackendError(f"{name} must be a non-negative integer")
        lines.append(f'{name} = "{value}"')
    return "\n".join(lines) + "\n"


def encode_public_inputs(public_inputs: Sequence[int]) -> bytes:
    try:
        return b"".join(
            int(value).to_bytes(FIELD_ELEMENT_BYTES, "big") for value in public_inputs
        )
    except OverflowError as exc:
        raise BackendError("public input does not fit a field element") from exc


def parse_public_inputs(data: bytes) -> Tuple[int, ...]:
    if len(data) % FIELD_ELEMENT_BYTES:
        raise BackendError(
            f"public inputs length {len(data)} is not a multiple of {FIELD_ELEMENT_BYTES}"
        )
    return tuple(
        int.from_bytes(data[offset : offset + FIELD_ELEMENT_BYTES], "big")
        for offset in range(0, len(data), FIELD_ELEMENT_BYTES)
    )


def _find_binary(name: str, explicit: str | Path | None, env_var: str) -> str:
    if explicit:
        return str(explicit)
    from_env = os.getenv(env_var)
    if from_env:
        return from_env
    found = shutil.which(name)
    if found:
        return found
    for candidate in (Path.home() / ".nargo" / "bin" / name, Path.home() / ".bb" / name):
        if candidate.exists():
            return str(candidate)
    return name
