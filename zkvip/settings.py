"""
Runtime settings.

Precedence (lowest to highest): built-in defaults, YAML file named by
ZKVIP_CONFIG (or passed explicitly), environment variables.

Mocked balances are a development aid: enabling allow_mock_balance in any
environment other than "development" is a configuration error.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .membership_proof.config import (
    DEFAULT_CIRCUIT_PATH,
    DEFAULT_ORACLE_TIMEOUT,
    DEFAULT_RPC_URL,
    DEFAULT_TOKEN_ADDRESS,
)
from .membership_proof.exceptions import ConfigurationError
from .membership_proof.factory import BACKEND_REGISTRY

CONFIG_ENV_VAR = "ZKVIP_CONFIG"
ENVIRONMENTS = ("development", "production")

_ENV_VARS = {
    "environment": "ZKVIP_ENV",
    "allow_mock_balance": "ZKVIP_ALLOW_MOCK_BALANCE",
    "rpc_url": "ZKVIP_RPC_URL",
    "token_address": "ZKVIP_TOKEN_ADDRESS",
    "circuit_path": "ZKVIP_CIRCUIT_PATH",
    "store_dir": "ZKVIP_STORE_DIR",
    "oracle_timeout": "ZKVIP_ORACLE_TIMEOUT",
    "proof_backend": "ZKVIP_PROOF_BACKEND",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    environment: str = "production"
    allow_mock_balance: bool = False
    rpc_url: str = DEFAULT_RPC_URL
    token_address: str = DEFAULT_TOKEN_ADDRESS
    circuit_path: Path = DEFAULT_CIRCUIT_PATH
    store_dir: Path = Path.home() / ".zkvip"
    oracle_timeout: float = DEFAULT_ORACLE_TIMEOUT
    proof_backend: Optional[str] = None

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def validate(self) -> "Settings":
        if self.environment not in ENVIRONMENTS:
            raise ConfigurationError(
                f"Invalid environment {self.environment!r}. "
                f"Valid options: {', '.join(ENVIRONMENTS)}"
            )
        if self.allow_mock_balance and not self.is_development:
            raise ConfigurationError(
                "allow_mock_balance may only be enabled in the development environment"
            )
        if not math.isfinite(self.oracle_timeout) or self.oracle_timeout <= 0:
            raise ConfigurationError("oracle_timeout must be a positive finite number")
        if self.proof_backend is not None and self.proof_backend not in BACKEND_REGISTRY:
            raise ConfigurationError(
                f"Invalid proof_backend {self.proof_backend!r}. "
                f"Valid options: {', '.join(sorted(BACKEND_REGISTRY))}"
            )
        return self


def load_settings(
    config_path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build validated Settings.

    Raises:
        ConfigurationError: If the YAML file or any value is invalid
    """
    environ = os.environ if environ is None else environ
    settings = Settings()

    path = config_path or environ.get(CONFIG_ENV_VAR)
    if path:
        settings = _apply(settings, _read_yaml(Path(path)), source=str(path))

    env_values = {
        name: environ[var] for name, var in _ENV_VARS.items() if var in environ
    }
    settings = _apply(settings, env_values, source="environment")
    return settings.validate()


def _read_yaml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigurationError(f"Unable to read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _apply(settings: Settings, values: Mapping[str, Any], *, source: str) -> Settings:
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"Unknown settings in {source}: {', '.join(unknown)}")

    updates = {}
    for name, raw in values.items():
        try:
            updates[name] = _coerce(name, raw)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid value for {name} in {source}: {raw!r}") from exc
    return replace(settings, **updates)


def _coerce(name: str, raw: Any) -> Any:
    if name == "allow_mock_balance":
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(raw)
    if name in ("circuit_path", "store_dir"):
        return Path(str(raw)).expanduser()
    if name == "oracle_timeout":
        return float(raw)
    if name == "proof_backend":
        return str(raw) or None
    return str(raw)
