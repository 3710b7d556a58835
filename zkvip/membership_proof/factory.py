"""
Proof backend selection and lazy construction.

WARNING: backend choice affects security assumptions. The mock backend is
for development and tests only; it does not produce sound proofs.

Resolution order: explicit override, then prefer, then the in-memory
override set with set_backend_type(), then ZKVIP_PROOF_BACKEND, then "mock".
"""

from __future__ import annotations

import importlib
import os
from typing import Final

from .interfaces import ProofBackend

BACKEND_REGISTRY: Final[dict[str, str]] = {
    "mock": "zkvip.membership_proof.adapters.mock_backend.MockProofBackend",
    "noir": "zkvip.membership_proof.adapters.noir_backend.NoirCliBackend",
}

_DEFAULT_BACKEND: Final[str] = "mock"
_ENV_VAR_NAME: Final[str] = "ZKVIP_PROOF_BACKEND"

_backend_override: str | None = None


def _format_valid_options() -> str:
    return ", ".join(sorted(BACKEND_REGISTRY.keys()))


def _normalize_backend_name(value: str | None, *, source: str) -> str | None:
    if value is None or value == "":
        return None

    if not isinstance(value, str) or value not in BACKEND_REGISTRY:
        raise ValueError(
            f"Invalid backend name from {source}: {value!r}. "
            f"Valid options: {_format_valid_options()}"
        )

    return value


def set_backend_type(value: str | None) -> None:
    """
    Set in-memory backend override (testing only).

    Args:
        value: Backend name to force, or None/"" to clear the override.

    Raises:
        ValueError: If the value is not a registered backend.
    """
    global _backend_override
    _backend_override = _normalize_backend_name(value, source="set_backend_type")


def get_backend_type(
    *, prefer: str | None = None, override: str | None = None
) -> str:
    """
    Resolve the backend name without importing it.

    Raises:
        ValueError: If any provided or configured name is invalid.
    """
    for value, source in (
        (override, "override"),
        (prefer, "prefer"),
        (_backend_override, "set_backend_type"),
        (os.getenv(_ENV_VAR_NAME), _ENV_VAR_NAME),
    ):
        resolved = _normalize_backend_name(value, source=source)
        if resolved is not None:
            return resolved
    return _DEFAULT_BACKEND


def _load_backend_class(backend_name: str) -> type[ProofBackend]:
    import_path = BACKEND_REGISTRY[backend_name]
    module_path, _, class_name = import_path.rpartition(".")

    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as exc:
        raise ImportError(
            f"Unable to import backend module {module_path!r} for {backend_name!r}"
        ) from exc

    backend_cls = getattr(module, class_name, None)
    if backend_cls is None:
        raise ImportError(
            f"Backend class {class_name!r} not found in module {module_path!r}"
        )
    if not isinstance(backend_cls, type) or not issubclass(backend_cls, ProofBackend):
        raise TypeError(f"Backend reference {import_path!r} is not a ProofBackend")

    return backend_cls


def get_proof_backend(
    *, prefer: str | None = None, override: str | None = None, **kwargs
) -> ProofBackend:
    """
    Return a new proof backend instance.

    Args:
        prefer: Optional backend name hint.
        override: Optional backend name override (testing only).
        **kwargs: Passed to the backend constructor.

    Raises:
        ValueError: If a backend name is invalid.
        ImportError: If the backend class cannot be imported.
        TypeError: If the backend class does not implement ProofBackend.
    """
    backend_name = get_backend_type(prefer=prefer, override=override)
    backend_cls = _load_backend_class(backend_name)
    return backend_cls(**kwargs)
