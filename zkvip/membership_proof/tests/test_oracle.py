"""Tests for balance oracles and read_balance()."""

from decimal import Decimal

import pytest
import requests
import trio

from zkvip.membership_proof.config import MOCK_BALANCE
from zkvip.membership_proof.exceptions import OracleError, ValidationError
from zkvip.membership_proof.interfaces import BalanceOracle
from zkvip.membership_proof.oracle import (
    FallbackBalanceOracle,
    RpcBalanceOracle,
    StaticBalanceOracle,
    _parse_rpc_result,
    normalize_address,
    read_balance,
)

WALLET = "0x" + "12" * 20


class UnavailableOracle(BalanceOracle):
    name = "offline"

    def is_available(self):
        return False

    async def get_balance(self, address):
        raise AssertionError("must not be called")


class SlowOracle(BalanceOracle):
    name = "slow"

    async def get_balance(self, address):
        await trio.sleep(10)
        return Decimal("1")


class FakeResponse:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, results):
        self._results = list(results)
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append(json)
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return FakeResponse({"jsonrpc": "2.0", "id": json["id"], "result": result})


class TestStaticOracle:
    @pytest.mark.trio
    async def test_case_insensitive_lookup(self):
        oracle = StaticBalanceOracle({WALLET.upper().replace("0X", "0x"): Decimal("2")})
        assert await oracle.get_balance(WALLET) == Decimal("2")

    @pytest.mark.trio
    async def test_default(self):
        oracle = StaticBalanceOracle({}, default=Decimal("0"))
        assert await oracle.get_balance(WALLET) == Decimal("0")

    @pytest.mark.trio
    async def test_unknown_address(self):
        with pytest.raises(OracleError):
            await StaticBalanceOracle({}).get_balance(WALLET)


class TestReadBalance:
    @pytest.mark.trio
    async def test_real_reading(self):
        reading = await read_balance(StaticBalanceOracle({WALLET: "1.25"}), WALLET)
        assert reading.amount == Decimal("1.25")
        assert reading.source == "static"
        assert not reading.mocked

    @pytest.mark.trio
    async def test_failure_raises_without_mock(self):
        with pytest.raises(OracleError):
            await read_balance(StaticBalanceOracle({}), WALLET)

    @pytest.mark.trio
    async def test_failure_with_mock_is_flagged(self, caplog):
        reading = await read_balance(StaticBalanceOracle({}), WALLET, allow_mock=True)
        assert reading.amount == MOCK_BALANCE
        assert reading.mocked
        assert reading.source == "mock"
        assert "MOCKED BALANCE" in caplog.text

    @pytest.mark.trio
    async def test_unavailable_oracle(self):
        with pytest.raises(OracleError, match="not available"):
            await read_balance(UnavailableOracle(), WALLET)

    @pytest.mark.trio
    async def test_timeout(self):
        with pytest.raises(OracleError, match="timed out"):
            await read_balance(SlowOracle(), WALLET, timeout=0.01)

    @pytest.mark.trio
    async def test_timeout_falls_back_to_mock_when_allowed(self):
        reading = await read_balance(
            SlowOracle(), WALLET, allow_mock=True, timeout=0.01
        )
        assert reading.mocked

    @pytest.mark.trio
    @pytest.mark.parametrize("bad", ["abc", None, True, {"value": 1}])
    async def test_non_numeric_balance(self, bad):
        oracle = StaticBalanceOracle({WALLET: bad})
        with pytest.raises(ValidationError):
            await read_balance(oracle, WALLET)

    @pytest.mark.trio
    async def test_negative_balance(self):
        oracle = StaticBalanceOracle({WALLET: Decimal("-1")})
        with pytest.raises(ValidationError, match="negative"):
            await read_balance(oracle, WALLET)

    @pytest.mark.trio
    async def test_bad_value_is_not_masked_by_mock(self):
        oracle = StaticBalanceOracle({WALLET: "NaN"})
        with pytest.raises(ValidationError):
            await read_balance(oracle, WALLET, allow_mock=True)


class TestFallbackOracle:
    @pytest.mark.trio
    async def test_skips_unavailable_and_failing(self):
        oracle = FallbackBalanceOracle(
            [
                UnavailableOracle(),
                StaticBalanceOracle({}),
                StaticBalanceOracle({WALLET: Decimal("3")}),
            ]
        )
        assert await oracle.get_balance(WALLET) == Decimal("3")

    @pytest.mark.trio
    async def test_aggregates_errors(self):
        oracle = FallbackBalanceOracle([StaticBalanceOracle({}), StaticBalanceOracle({})])
        with pytest.raises(OracleError, match="all balance oracles failed"):
            await oracle.get_balance(WALLET)

    def test_availability(self):
        assert not FallbackBalanceOracle([UnavailableOracle()]).is_available()
        assert FallbackBalanceOracle([StaticBalanceOracle({})]).is_available()


class TestRpcOracle:
    @pytest.mark.trio
    async def test_reads_erc20_balance(self):
        session = FakeSession([hex(1500000000000000000), hex(18)])
        oracle = RpcBalanceOracle(session=session)

        assert await oracle.get_balance(WALLET) == Decimal("1.5")
        balance_call = session.requests[0]["params"][0]["data"]
        assert balance_call.startswith("0x70a08231")
        assert balance_call.endswith("12" * 20)
        assert len(balance_call) == 2 + 8 + 64
        assert session.requests[1]["params"][0]["data"] == "0x313ce567"

    @pytest.mark.trio
    async def test_decimals_cached(self):
        session = FakeSession([hex(1), hex(18), hex(2)])
        oracle = RpcBalanceOracle(session=session)
        await oracle.get_balance(WALLET)
        await oracle.get_balance(WALLET)
        assert len(session.requests) == 3

    @pytest.mark.trio
    async def test_http_error(self):
        session = FakeSession([requests.ConnectionError("down")])
        with pytest.raises(OracleError, match="balance lookup failed"):
            await RpcBalanceOracle(session=session).get_balance(WALLET)

    @pytest.mark.trio
    async def test_invalid_address(self):
        with pytest.raises(OracleError, match="invalid wallet address"):
            await RpcBalanceOracle(session=FakeSession([])).get_balance("0x1234")

    def test_unavailable_without_token(self):
        assert not RpcBalanceOracle(token_address="", session=FakeSession([])).is_available()


class TestHelpers:
    def test_normalize_address(self):
        assert normalize_address(" 0x" + "AB" * 20 + " ") == "0x" + "ab" * 20

    @pytest.mark.parametrize("bad", ["", "ab" * 20, "0x" + "zz" * 20, None])
    def test_normalize_address_rejects(self, bad):
        with pytest.raises(OracleError):
            normalize_address(bad)

    @pytest.mark.parametrize(
        "response",
        [
            None,
            {"error": {"message": "execution reverted"}},
            {"result": 5},
            {"result": "0x"},
            {"result": "0xzz"},
        ],
    )
    def test_parse_rpc_result_rejects(self, response):
        with pytest.raises(OracleError):
            _parse_rpc_result(response)

    def test_parse_rpc_result(self):
        assert _parse_rpc_result({"result": "0x0a"}) == 10
