"""
Balance oracles: resolve a wallet address to a token balance.

RpcBalanceOracle reads an ERC-20 balance over JSON-RPC. FallbackBalanceOracle
chains oracles behind an availability probe. read_balance() is what the
pipeline calls: it applies the timeout, validates the returned value and,
only when explicitly allowed (development), substitutes a flagged mock
balance for a failed lookup.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

import requests
import trio

from .config import (
    DEFAULT_ORACLE_TIMEOUT,
    DEFAULT_RPC_URL,
    DEFAULT_TOKEN_ADDRESS,
    ERC20_BALANCE_OF_SELECTOR,
    ERC20_DECIMALS_SELECTOR,
    MOCK_BALANCE,
)
from .exceptions import OracleError, ValidationError
from .interfaces import BalanceOracle

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class BalanceReading:
    """A balance plus where it came from. mocked=True is never a real balance."""

    amount: Decimal
    source: str
    mocked: bool = False


def normalize_address(address: str) -> str:
    if not isinstance(address, str) or not _ADDRESS_RE.match(address.strip()):
        raise OracleError(f"invalid wallet address: {address!r}")
    return address.strip().lower()


class RpcBalanceOracle(BalanceOracle):
    """ERC-20 balanceOf over Ethereum JSON-RPC (World Chain by default)."""

    name = "rpc"

    def __init__(
        self,
        rpc_url: str = DEFAULT_RPC_URL,
        token_address: str = DEFAULT_TOKEN_ADDRESS,
        timeout: float = DEFAULT_ORACLE_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._token_address = token_address
        self._timeout = timeout
        self._session = session or requests.Session()
        self._decimals: Optional[int] = None
        self._request_id = 0

    def is_available(self) -> bool:
        return bool(self._rpc_url) and bool(_ADDRESS_RE.match(self._token_address or ""))

    async def get_balance(self, address: str) -> Decimal:
        wallet = normalize_address(address)
        data = ERC20_BALANCE_OF_SELECTOR + wallet[2:].rjust(64, "0")
        raw_balance = await self._eth_call(data)
        if self._decimals is None:
            self._decimals = await self._eth_call(ERC20_DECIMALS_SELECTOR)
        return Decimal(raw_balance).scaleb(-self._decimals)

    async def _eth_call(self, data: str) -> int:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": "eth_call",
            "params": [{"to": self._token_address, "data": data}, "latest"],
        }
        try:
            with trio.fail_after(self._timeout):
                response = await trio.to_thread.run_sync(
                    self._post, payload, abandon_on_cancel=True
                )
        except trio.TooSlowError as exc:
            raise OracleError(f"balance lookup timed out after {self._timeout}s") from exc
        return _parse_rpc_result(response)

    def _post(self, payload: dict) -> Any:
        try:
            response = self._session.post(self._rpc_url, json=payload, timeout=self._timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise OracleError(f"balance lookup failed: {exc}") from exc


def _parse_rpc_result(response: Any) -> int:
    if not isinstance(response, dict):
        raise OracleError("malformed JSON-RPC response")
    if response.get("error"):
        error = response["error"]
        message = error.get("message") if isinstance(error, dict) else error
        raise OracleError(f"JSON-RPC error: {message}")
    result = response.get("result")
    if not isinstance(result, str) or not result.startswith("0x"):
        raise OracleError("JSON-RPC result is not a hex quantity")
    if result == "0x":
        raise OracleError("token contract returned no data")
    try:
        return int(result, 16)
    except ValueError as exc:
        raise OracleError(f"invalid hex result: {result!r}") from exc


class StaticBalanceOracle(BalanceOracle):
    """Fixed address -> balance table (tests, demos, offline use)."""

    name = "static"

    def __init__(
        self,
        balances: Mapping[str, Any],
        default: Any = None,
    ) -> None:
        self._balances = {addr.lower(): value for addr, value in balances.items()}
        self._default = default

    async def get_balance(self, address: str) -> Decimal:
        await trio.lowlevel.checkpoint()
        key = address.lower() if isinstance(address, str) else address
        if key in self._balances:
            return self._balances[key]
        if self._default is not None:
            return self._default
        raise OracleError(f"no balance known for {address!r}")


class FallbackBalanceOracle(BalanceOracle):
    """Tries each available oracle in order until one answers."""

    name = "fallback"

    def __init__(self, oracles: Iterable[BalanceOracle]) -> None:
        self._oracles = list(oracles)

    def is_available(self) -> bool:
        return any(oracle.is_available() for oracle in self._oracles)

    async def get_balance(self, address: str) -> Decimal:
        errors = []
        for oracle in self._oracles:
            if not oracle.is_available():
                logger.debug("Skipping unavailable balance oracle %s", oracle.name)
                continue
            try:
                return await oracle.get_balance(address)
            except OracleError as exc:
                logger.debug("Balance oracle %s failed: %s", oracle.name, exc)
                errors.append(f"{oracle.name}: {exc}")
        if not errors:
            raise OracleError("no balance oracle available")
        raise OracleError("all balance oracles failed (" + "; ".join(errors) + ")")


async def read_balance(
    oracle: BalanceOracle,
    address: str,
    *,
    allow_mock: bool = False,
    timeout: Optional[float] = None,
) -> BalanceReading:
    """
    Look up a balance and validate it.

    Args:
        oracle: Balance oracle to consult
        address: Wallet address
        allow_mock: Substitute MOCK_BALANCE on oracle failure (development only)
        timeout: Optional overall timeout in seconds

    Returns:
        BalanceReading; mocked=True marks a placeholder value

    Raises:
        OracleError: If the lookup fails and allow_mock is False
        ValidationError: If the oracle returned a non-numeric or negative value
    """
    try:
        value = await _lookup(oracle, address, timeout)
    except OracleError as exc:
        if not allow_mock:
            raise
        logger.warning(
            "MOCKED BALANCE: oracle failed (%s); using placeholder %s "
            "(development only, not a real balance)",
            exc,
            MOCK_BALANCE,
        )
        return BalanceReading(amount=MOCK_BALANCE, source="mock", mocked=True)

    return BalanceReading(amount=_validate_balance(value), source=oracle.name)


async def _lookup(oracle: BalanceOracle, address: str, timeout: Optional[float]) -> Any:
    if not oracle.is_available():
        raise OracleError(f"balance oracle {oracle.name!r} is not available")
    if timeout is None:
        return await oracle.get_balance(address)
    try:
        with trio.fail_after(timeout):
            return await oracle.get_balance(address)
    except trio.TooSlowError as exc:
        raise OracleError(f"balance lookup timed out after {timeout}s") from exc


def _validate_balance(value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
        raise ValidationError(f"oracle returned a non-numeric balance: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"oracle returned a non-numeric balance: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"oracle returned a non-finite balance: {value!r}")
    if amount < 0:
        raise ValidationError(f"oracle returned a negative balance: {value!r}")
    return amount
