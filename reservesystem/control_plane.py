"""Control plane server - operator controls over HTTP."""

import asyncio
import logging
from typing import Callable, Optional

from aiohttp import web
import orjson

from .errors import ErrorKind, InvalidInputError, ReserveSystemError
from .orchestrator import DispatchOrchestrator
from .registry import ConfigurationRegistry

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"
TOKEN_HEADER = "X-Operator-Token"


def _json_response(payload: dict, status: int = 200) -> web.Response:
    return web.Response(
        status=status,
        content_type="application/json",
        body=orjson.dumps(payload),
    )


def _error_response(err: Exception) -> web.Response:
    if isinstance(err, ReserveSystemError):
        status = 403 if err.kind == ErrorKind.UNAUTHORIZED else 409
        return _json_response({"error": err.kind.value, "detail": str(err)}, status=status)
    return _json_response({"error": "bad_request", "detail": str(err)}, status=400)


def _str_list(data: dict, key: str) -> list[str]:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidInputError(f"'{key}' must be a list of strings")
    return value


class ControlPlaneServer:
    """
    Local-only HTTP server for operator commands.

    Endpoints:
    - POST /set_ratio        {"ratio": int | str}
    - POST /set_authorities  {"markets": [...], "authorities": [...]}
    - POST /set_handlers     {"markets": [...], "handlers": [...]}
    - POST /dispatch         {"markets": [...]}
    - GET /status

    Requests carrying the operator token act as the owner; all others act
    as an anonymous caller and are rejected by the registry.
    """

    def __init__(
        self,
        registry: ConfigurationRegistry,
        orchestrator: DispatchOrchestrator,
        operator_token: str = "",
        bind_host: str = "127.0.0.1",
        port: int = 9100,
    ):
        """
        Initialize the control plane server.

        Args:
            registry: Configuration registry to mutate
            orchestrator: Orchestrator to dispatch through
            operator_token: Shared secret identifying the owner
            bind_host: Host to bind to (default localhost only)
            port: Port to bind to
        """
        self.registry = registry
        self.orchestrator = orchestrator
        self._operator_token = operator_token
        self.bind_host = bind_host
        self.port = port

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

        self._status_callback: Optional[Callable[[], dict]] = None

    def set_status_callback(self, callback: Callable[[], dict]) -> None:
        """Set callback to get current status."""
        self._status_callback = callback

    def _caller(self, request: web.Request) -> str:
        token = request.headers.get(TOKEN_HEADER, "")
        if self._operator_token and token == self._operator_token:
            return self.registry.owner
        return ANONYMOUS

    async def _read_json(self, request: web.Request) -> dict:
        try:
            data = orjson.loads(await request.read())
        except orjson.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON body: {e}") from None
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data

    async def handle_set_ratio(self, request: web.Request) -> web.Response:
        """Handle POST /set_ratio"""
        try:
            data = await self._read_json(request)
            value = data.get("ratio")
            if isinstance(value, bool) or not isinstance(value, (int, str)):
                raise InvalidInputError("'ratio' must be an integer or integer string")
            ratio = int(value)
            await asyncio.to_thread(self.registry.set_ratio, self._caller(request), ratio)
            logger.warning(f"OPERATOR: ratio set to {ratio}")
            return _json_response({"ok": True, "ratio": str(ratio)})
        except (ReserveSystemError, KeyError, ValueError, TypeError) as e:
            return _error_response(e)

    async def handle_set_authorities(self, request: web.Request) -> web.Response:
        """Handle POST /set_authorities"""
        try:
            data = await self._read_json(request)
            markets = _str_list(data, "markets")
            authorities = _str_list(data, "authorities")
            await asyncio.to_thread(
                self.registry.set_extraction_authorities,
                self._caller(request), markets, authorities,
            )
            return _json_response({"ok": True, "updated": len(markets)})
        except (ReserveSystemError, KeyError, ValueError, TypeError) as e:
            return _error_response(e)

    async def handle_set_handlers(self, request: web.Request) -> web.Response:
        """Handle POST /set_handlers"""
        try:
            data = await self._read_json(request)
            markets = _str_list(data, "markets")
            handlers = _str_list(data, "handlers")
            await asyncio.to_thread(
                self.registry.set_conversion_handlers,
                self._caller(request), markets, handlers,
            )
            return _json_response({"ok": True, "updated": len(markets)})
        except (ReserveSystemError, KeyError, ValueError, TypeError) as e:
            return _error_response(e)

    async def handle_dispatch(self, request: web.Request) -> web.Response:
        """
        Handle POST /dispatch

        Dispatch is permissionless, like the keeper entry points on-chain.
        One market runs the single path; several run the batched path.
        """
        try:
            data = await self._read_json(request)
            markets = _str_list(data, "markets")
            if not markets:
                raise InvalidInputError("'markets' must not be empty")

            if len(markets) == 1:
                results = [await asyncio.to_thread(self.orchestrator.dispatch_one, markets[0])]
            else:
                results = await asyncio.to_thread(self.orchestrator.dispatch_many, markets)

            return _json_response({
                "ok": True,
                "results": [
                    {
                        "market": r.market,
                        "extracted": r.extracted,
                        "amount_extracted": str(r.amount_extracted),
                        "asset": r.asset,
                        "checkpoint": {
                            "timestamp": r.checkpoint.timestamp,
                            "total_reserves": str(r.checkpoint.total_reserves),
                        },
                    }
                    for r in results
                ],
            })
        except (ReserveSystemError, KeyError, ValueError, TypeError) as e:
            return _error_response(e)

    async def handle_status(self, request: web.Request) -> web.Response:
        """Handle GET /status"""
        try:
            status = {}
            if self._status_callback:
                status = self._status_callback()
            return _json_response(status)
        except Exception as e:
            logger.error(f"Status callback failed: {e}")
            return _json_response({"error": str(e)}, status=500)

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_post("/set_ratio", self.handle_set_ratio)
        app.router.add_post("/set_authorities", self.handle_set_authorities)
        app.router.add_post("/set_handlers", self.handle_set_handlers)
        app.router.add_post("/dispatch", self.handle_dispatch)
        app.router.add_get("/status", self.handle_status)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.build_app()

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.bind_host, self.port)
        await self._site.start()

        logger.info(f"Control plane started on http://{self.bind_host}:{self.port}")

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()

        logger.info("Control plane stopped")
