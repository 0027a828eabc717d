"""
Iceberg Protocol JSON-RPC Server

HTTP JSON-RPC 2.0 over aiohttp:

    POST /          one call or a batch (executed in order)
    GET  /health    liveness plus ledger head
    GET  /methods   registered method names

Ledger rejections travel as code -32000 with the IcebergError dict as data,
which RemoteLedger turns back into the typed exception.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, TYPE_CHECKING

from aiohttp import web

from iceberg.api.methods import (
    ERROR_INTERNAL,
    ERROR_INVALID_PARAMS,
    ERROR_INVALID_REQUEST,
    ERROR_METHOD_NOT_FOUND,
    ERROR_PARSE,
    ERROR_PROTOCOL,
    RPCError,
    get_method,
    list_methods,
)
from iceberg.constants import DEFAULT_API_HOST, DEFAULT_API_PORT, MAX_BATCH_SIZE
from iceberg.crypto.field import to_hex32
from iceberg.errors import IcebergError

if TYPE_CHECKING:
    from iceberg.node.node import IcebergNode

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"


@dataclass
class RPCResponse:
    """One JSON-RPC response object."""
    id: Any = None
    result: Any = None
    error: Optional[dict] = None

    @classmethod
    def failure(cls, code: int, message: str, req_id: Any = None, data: Any = None) -> "RPCResponse":
        error = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return cls(id=req_id, error=error)

    def to_dict(self) -> dict:
        body = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            body["error"] = self.error
        else:
            body["result"] = self.result
        return body


def parse_envelope(data: Any) -> Tuple[str, Any, Any]:
    """
    Split a request object into (method, params, id).

    Raises:
        RPCError: ERROR_INVALID_REQUEST if the object is not a 2.0 request
    """
    if not isinstance(data, dict):
        raise RPCError(ERROR_INVALID_REQUEST, "Request must be an object")
    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise RPCError(ERROR_INVALID_REQUEST, f"jsonrpc must be \"{JSONRPC_VERSION}\"")
    method = data.get("method")
    if not isinstance(method, str) or not method:
        raise RPCError(ERROR_INVALID_REQUEST, "method must be a non-empty string")
    return method, data.get("params"), data.get("id")


@dataclass
class APIServer:
    """
    JSON-RPC front of an Iceberg node.

    Args:
        node: Node whose ledger and operator the methods use
        host: Bind address
        port: Bind port
        cors_origins: Allowed origins (all when empty)
        max_batch_size: Largest accepted batch
    """
    node: "IcebergNode"
    host: str = DEFAULT_API_HOST
    port: int = DEFAULT_API_PORT
    cors_origins: List[str] = field(default_factory=list)
    max_batch_size: int = MAX_BATCH_SIZE

    _runner: Optional[web.AppRunner] = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._cors])
        app.router.add_post("/", self._handle_rpc)
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/methods", self._handle_methods)
        return app

    async def start(self) -> None:
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        await web.TCPSite(runner, self.host, self.port).start()
        self._runner = runner
        logger.info(f"JSON-RPC listening on http://{self.host}:{self.port}/")

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("JSON-RPC server stopped")

    # ==========================================================================
    # HTTP handlers
    # ==========================================================================

    @web.middleware
    async def _cors(self, request: web.Request, handler) -> web.StreamResponse:
        origin = ", ".join(self.cors_origins) if self.cors_origins else "*"
        if request.method == "OPTIONS":
            response = web.Response(headers={
                "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
                "Access-Control-Allow-Headers": "Content-Type",
            })
        else:
            response = await handler(request)
        response.headers["Access-Control-Allow-Origin"] = origin
        return response

    async def _handle_health(self, request: web.Request) -> web.Response:
        ledger = self.node.ledger
        return web.json_response({
            "status": "ok",
            "blockNumber": await ledger.block_number(),
            "leafCount": await ledger.leaf_count(),
            "root": to_hex32(await ledger.get_root()),
        })

    async def _handle_methods(self, request: web.Request) -> web.Response:
        return web.json_response({"methods": list_methods()})

    async def _handle_rpc(self, request: web.Request) -> web.Response:
        try:
            payload = json.loads(await request.text())
        except json.JSONDecodeError as e:
            failure = RPCResponse.failure(ERROR_PARSE, f"Parse error: {e}")
            return web.json_response(failure.to_dict(), status=400)

        if not isinstance(payload, list):
            response = await self._process_request(payload)
            return web.json_response(response.to_dict())

        if not 0 < len(payload) <= self.max_batch_size:
            failure = RPCResponse.failure(
                ERROR_INVALID_REQUEST, f"Batch must hold 1 to {self.max_batch_size} requests"
            )
            return web.json_response(failure.to_dict(), status=400)

        # Ledger writes in a batch depend on each other's outcome
        responses = [await self._process_request(item) for item in payload]
        return web.json_response([r.to_dict() for r in responses])

    # ==========================================================================
    # Dispatch
    # ==========================================================================

    async def _process_request(self, data: Any) -> RPCResponse:
        """Run one request object; every outcome becomes a response."""
        req_id = data.get("id") if isinstance(data, dict) else None
        try:
            method, params, req_id = parse_envelope(data)
            return RPCResponse(id=req_id, result=await self._invoke(method, params))
        except RPCError as e:
            return RPCResponse.failure(e.code, e.message, req_id, e.data)
        except IcebergError as e:
            logger.debug(f"{data.get('method')} rejected: {e}")
            return RPCResponse.failure(ERROR_PROTOCOL, e.message, req_id, e.to_dict())
        except Exception as e:
            logger.error(f"Unhandled error in {data.get('method')}: {e}", exc_info=True)
            return RPCResponse.failure(ERROR_INTERNAL, str(e), req_id)

    async def _invoke(self, method: str, params: Any) -> Any:
        handler = get_method(method)
        if handler is None:
            raise RPCError(ERROR_METHOD_NOT_FOUND, f"Method not found: {method}")

        if params is None:
            args, kwargs = [], {}
        elif isinstance(params, list):
            args, kwargs = params, {}
        elif isinstance(params, dict):
            args, kwargs = [], params
        else:
            raise RPCError(ERROR_INVALID_PARAMS, "params must be an array or an object")

        try:
            call = handler(self.node, *args, **kwargs)
        except TypeError as e:
            raise RPCError(ERROR_INVALID_PARAMS, f"Invalid params for {method}: {e}") from None
        return await call
