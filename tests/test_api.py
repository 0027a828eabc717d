"""
Iceberg Protocol API Tests
JSON-RPC dispatch, the aiohttp endpoints and the httpx remote ledger talking
to the same handlers.
"""

import json
from types import SimpleNamespace

import httpx
import pytest
from aiohttp.test_utils import TestClient, TestServer

from iceberg.api.methods import (
    ERROR_INVALID_PARAMS,
    ERROR_INVALID_REQUEST,
    ERROR_METHOD_NOT_FOUND,
    ERROR_PROTOCOL,
    list_methods,
)
from iceberg.api.remote import RemoteLedger
from iceberg.api.server import APIServer
from iceberg.client.wallet import authorize_swap, check_withdrawable
from iceberg.constants import CHAIN_ID_LOCAL, DEFAULT_NATIVE_DENOMINATION, EVENT_DEPOSIT
from iceberg.core.asset import NATIVE
from iceberg.crypto.field import to_hex32
from iceberg.errors import ErrorCode, IcebergError, InternalError, RPCTransportError
from iceberg.node.config import IcebergConfig
from iceberg.protocol.commitment import derive
from iceberg.protocol.registry import NullifierState
from iceberg.protocol.swap import SwapOperator

from conftest import DEPOSITOR_KEY, EXPECTED_USDC_OUT, POOL, RECIPIENT, USDC, stub_proof

URL = "http://iceberg.test/"


@pytest.fixture
def node(ledger, mock_aggregator, operator_address):
    """Just enough of an IcebergNode for the RPC handlers."""
    async def get_status():
        return {"name": "test", "leafCount": await ledger.leaf_count()}

    return SimpleNamespace(
        config=IcebergConfig.default_local(),
        ledger=ledger,
        operator=SwapOperator(ledger, mock_aggregator, operator_address, CHAIN_ID_LOCAL),
        get_status=get_status,
    )


@pytest.fixture
def server(node) -> APIServer:
    return APIServer(node=node)


@pytest.fixture
def remote(server) -> RemoteLedger:
    """RemoteLedger whose transport calls the server's dispatcher directly."""
    async def handler(request: httpx.Request) -> httpx.Response:
        response = await server._process_request(json.loads(request.content))
        return httpx.Response(200, json=response.to_dict())

    return RemoteLedger(URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def rpc(method, *params, req_id=1):
    return {"jsonrpc": "2.0", "method": method, "params": list(params), "id": req_id}


# =============================================================================
# Dispatch
# =============================================================================

class TestDispatch:
    """APIServer._process_request"""

    @pytest.mark.asyncio
    async def test_result(self, server, ledger):
        """Successful calls carry result and id."""
        response = (await server._process_request(rpc("iceberg_getRoot", req_id=7))).to_dict()
        assert response == {"jsonrpc": "2.0", "id": 7, "result": to_hex32(await ledger.get_root())}

    @pytest.mark.asyncio
    async def test_method_not_found(self, server):
        """Unknown methods get -32601."""
        response = await server._process_request(rpc("eth_call"))
        assert response.error["code"] == ERROR_METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_invalid_params(self, server):
        """Wrong arity gets -32602."""
        response = await server._process_request(rpc("iceberg_getRoot", "extra"))
        assert response.error["code"] == ERROR_INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_invalid_request(self, server):
        """Non-2.0 and method-less requests get -32600."""
        response = await server._process_request({"jsonrpc": "1.0", "method": "iceberg_getRoot", "id": 1})
        assert response.error["code"] == ERROR_INVALID_REQUEST
        response = await server._process_request({"jsonrpc": "2.0", "id": 1})
        assert response.error["code"] == ERROR_INVALID_REQUEST
        response = await server._process_request(["not", "a", "request"])
        assert response.error["code"] == ERROR_INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_protocol_error(self, server):
        """Ledger errors get -32000 with the error dict as data."""
        response = await server._process_request(rpc("iceberg_getSwapConfig", 42))
        assert response.error["code"] == ERROR_PROTOCOL
        assert response.error["data"]["code"] == ErrorCode.UNKNOWN_CONFIG.value
        assert response.error["data"]["name"] == "UNKNOWN_CONFIG"

    @pytest.mark.asyncio
    async def test_named_params(self, server):
        """Params may be passed by name."""
        data = {"jsonrpc": "2.0", "method": "iceberg_getSwapConfig", "params": {"swap_config_id": 1}, "id": 1}
        response = await server._process_request(data)
        assert response.result["fixedAmount"] == str(DEFAULT_NATIVE_DENOMINATION)

    def test_methods_listed(self):
        """Every client-facing call is exposed."""
        methods = list_methods()
        for name in ("iceberg_getRoot", "iceberg_getProof", "iceberg_withdraw",
                     "iceberg_executeSwap", "iceberg_getLogs", "iceberg_checkWithdrawable",
                     "iceberg_listSwapConfigs"):
            assert name in methods


# =============================================================================
# HTTP endpoints
# =============================================================================

class TestHTTPEndpoints:
    """aiohttp application."""

    @pytest.mark.asyncio
    async def test_single_and_batch(self, server):
        """Single calls and batches over POST /."""
        async with TestClient(TestServer(server.build_app())) as client:
            resp = await client.post("/", json=rpc("iceberg_leafCount"))
            assert (await resp.json())["result"] == 0
            assert resp.headers["Access-Control-Allow-Origin"] == "*"

            resp = await client.post("/", json=[rpc("iceberg_leafCount", req_id=1), rpc("iceberg_blockNumber", req_id=2)])
            body = await resp.json()
            assert [r["id"] for r in body] == [1, 2]

    @pytest.mark.asyncio
    async def test_parse_error(self, server):
        """Invalid JSON gets a 400 parse error."""
        async with TestClient(TestServer(server.build_app())) as client:
            resp = await client.post("/", data="{broken")
            assert resp.status == 400
            assert (await resp.json())["error"]["code"] == -32700

    @pytest.mark.asyncio
    async def test_empty_batch(self, server):
        """Empty batches are rejected."""
        async with TestClient(TestServer(server.build_app())) as client:
            resp = await client.post("/", json=[])
            assert resp.status == 400

    @pytest.mark.asyncio
    async def test_health_and_methods(self, server):
        """GET /health and GET /methods."""
        async with TestClient(TestServer(server.build_app())) as client:
            health = await (await client.get("/health")).json()
            assert health["status"] == "ok"
            assert health["leafCount"] == 0
            methods = await (await client.get("/methods")).json()
            assert "iceberg_withdraw" in methods["methods"]


# =============================================================================
# Remote ledger
# =============================================================================

class TestRemoteLedger:
    """Client operations over JSON-RPC."""

    @pytest.mark.asyncio
    async def test_reads_match_ledger(self, remote, ledger, depositor_address):
        """Remote reads return what the ledger holds."""
        note = derive("abc123")
        await ledger.insert(note.commitment, 1, depositor_address)

        assert await remote.get_root() == await ledger.get_root()
        assert await remote.instance_id() == await ledger.instance_id()
        assert await remote.leaf_count() == 1
        assert await remote.is_known_root(await ledger.get_root())
        assert await remote.get_proof(0) == await ledger.get_proof(0)
        assert await remote.block_number() == await ledger.block_number()
        assert await remote.next_swap_config_id() == 2
        assert (await remote.get_swap_config(1)).token_in == NATIVE

        events = await remote.get_logs(EVENT_DEPOSIT)
        assert events == await ledger.get_logs(EVENT_DEPOSIT)
        assert await remote.balance_of(NATIVE, POOL) == DEFAULT_NATIVE_DENOMINATION

    @pytest.mark.asyncio
    async def test_swap_and_withdraw(self, remote, ledger, depositor_address):
        """executeSwap and withdraw through the API."""
        note = derive("abc123")
        await ledger.insert(note.commitment, 1, depositor_address)

        auth, signature = authorize_swap(note, 1, USDC, DEPOSITOR_KEY, CHAIN_ID_LOCAL)
        assert await remote.execute_swap(auth, signature) == EXPECTED_USDC_OUT
        assert (await check_withdrawable(note.nullifier_hash, remote)).state == NullifierState.SWAPPED

        proof = stub_proof(await remote.get_root(), note.nullifier_hash, RECIPIENT)
        result = await remote.withdraw(note.nullifier_hash, RECIPIENT, proof)
        assert result.token_out == USDC
        assert result.amount == EXPECTED_USDC_OUT
        assert await remote.is_consumed(note.nullifier_hash)
        assert await ledger.balance_of(USDC, RECIPIENT) == EXPECTED_USDC_OUT

    @pytest.mark.asyncio
    async def test_protocol_errors_mapped(self, remote, ledger, depositor_address):
        """Ledger rejections come back with their error code."""
        note = derive("abc123")
        await ledger.insert(note.commitment, 1, depositor_address)
        proof = stub_proof(await ledger.get_root(), note.nullifier_hash, RECIPIENT)

        with pytest.raises(IcebergError) as exc:
            await remote.withdraw(note.nullifier_hash, RECIPIENT, proof)
        assert exc.value.code == ErrorCode.NO_SWAP_RESULT
        assert not await ledger.is_consumed(note.nullifier_hash)

    @pytest.mark.asyncio
    async def test_deposit_assets(self, remote, ledger, operator_address):
        """iceberg_listSwapConfigs labels every configuration for the node's chain."""
        await ledger.add_swap_config(operator_address, USDC, 1_000_000)

        assets = await remote.list_deposit_assets()
        assert [a.config_id for a in assets] == [1, 2]
        assert (assets[0].token_in, assets[0].symbol, assets[0].fixed_amount_formatted) == (NATIVE, "ETH", "0.0002")
        assert (assets[1].token_in, assets[1].symbol, assets[1].decimals) == (USDC, "USDC", 6)
        assert assets[1].fixed_amount == 1_000_000
        assert assets[1].fixed_amount_formatted == "1.0"

    @pytest.mark.asyncio
    async def test_missing_swap_result(self, remote):
        """Unknown nullifier hashes have no swap result."""
        assert await remote.get_swap_result(12345) is None

    @pytest.mark.asyncio
    async def test_rpc_error(self, remote):
        """Non-protocol RPC errors surface as internal errors."""
        with pytest.raises(InternalError) as exc:
            await remote.call("iceberg_nope")
        assert exc.value.details["rpc_code"] == ERROR_METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Transport failures are retryable transport errors."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        remote = RemoteLedger(URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(RPCTransportError):
            await remote.get_root()

    @pytest.mark.asyncio
    async def test_garbage_response(self):
        """Non-JSON answers are transport errors."""
        remote = RemoteLedger(URL, client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
        ))
        with pytest.raises(RPCTransportError):
            await remote.leaf_count()
