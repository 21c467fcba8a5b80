"""HTTP surface of the gateway.

aiohttp application exposing torrent resolution and byte-range streaming.
Every request runs under a correlation id, and errors from the taxonomy in
`btstream.utils.exceptions` are mapped to JSON error bodies by middleware.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any

from aiohttp import hdrs, web
from pydantic import ValidationError

from btstream import __version__
from btstream.config import get_config
from btstream.engine.library import LibraryEngine
from btstream.models import ServerConfig
from btstream.server.protocol import (
    CORRELATION_ID_HEADER,
    EXPOSED_HEADERS,
    AddTorrentRequest,
    AddTorrentResponse,
    ErrorResponse,
    HealthResponse,
)
from btstream.session.resolver import MetadataResolver
from btstream.streaming.adapter import RangeStreamingAdapter
from btstream.utils.exceptions import (
    BTStreamError,
    InvalidRequestError,
    RangeNotSatisfiableError,
)
from btstream.utils.logging_config import correlation_scope

if TYPE_CHECKING:
    from aiohttp.web_request import Request
    from aiohttp.web_response import StreamResponse

    from btstream.engine.types import TorrentEngineProtocol
    from btstream.models import Config

logger = logging.getLogger(__name__)

_ALLOWED_METHODS = "GET, HEAD, POST, OPTIONS"
_DEFAULT_ALLOWED_HEADERS = "Content-Type, Range"


class GatewayServer:
    """HTTP gateway for torrent metadata and file streams."""

    def __init__(
        self,
        resolver: MetadataResolver,
        *,
        config: ServerConfig | None = None,
        adapter: RangeStreamingAdapter | None = None,
        close_engine: bool = False,
    ):
        """Initialize the gateway.

        Args:
            resolver: Metadata resolver owning the session registry
            config: Server section of the configuration
            adapter: Streaming adapter (built on the resolver's registry if omitted)
            close_engine: Close the resolver's engine when the app is cleaned up

        """
        self.resolver = resolver
        self.config = config or ServerConfig()
        self.adapter = adapter or RangeStreamingAdapter(resolver.registry)
        self.close_engine = close_engine
        self.base_path = self.config.api_base_path

        self.app = web.Application()
        self.app[GATEWAY_KEY] = self
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

        self._setup_middleware()
        self._setup_routes()
        self.app.on_response_prepare.append(self._on_response_prepare)
        self.app.on_cleanup.append(self._on_cleanup)

    def _setup_middleware(self) -> None:
        """Set up request correlation and error mapping."""

        @web.middleware
        async def correlation_middleware(request: Request, handler: Any) -> StreamResponse:
            corr_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
            request["correlation_id"] = corr_id
            with correlation_scope(corr_id):
                logger.debug("%s %s from %s", request.method, request.path_qs, request.remote)
                return await handler(request)

        @web.middleware
        async def error_middleware(request: Request, handler: Any) -> StreamResponse:
            try:
                return await handler(request)
            except (asyncio.CancelledError, web.HTTPException):
                raise
            except BTStreamError as e:
                return self._error_response(request, e)
            except Exception:
                logger.exception(
                    "Error handling request %s %s from %s",
                    request.method,
                    request.path,
                    request.remote,
                )
                return web.json_response(
                    ErrorResponse(
                        error="Internal server error",
                        code="INTERNAL_ERROR",
                    ).model_dump(exclude_none=True),
                    status=500,
                )

        self.app.middlewares.append(correlation_middleware)
        self.app.middlewares.append(error_middleware)

    def _setup_routes(self) -> None:
        base = self.base_path
        self.app.router.add_post(f"{base}/add-torrent", self._handle_add_torrent)
        # add_get also answers HEAD
        self.app.router.add_get(
            f"{base}/stream/{{info_hash}}/{{file_index}}",
            self._handle_stream,
        )
        self.app.router.add_get(f"{base}/health", self._handle_health)
        self.app.router.add_route(
            hdrs.METH_OPTIONS, f"{base}/{{tail:.*}}", self._handle_preflight
        )

    def _error_response(self, request: Request, error: BTStreamError) -> web.Response:
        if error.status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, error)
        else:
            logger.info("%s %s rejected (%d): %s", request.method, request.path, error.status, error)

        headers: dict[str, str] = {}
        if isinstance(error, RangeNotSatisfiableError):
            headers[hdrs.CONTENT_RANGE] = f"bytes */{error.length}"
        body = ErrorResponse(
            error=error.message,
            code=error.code,
            details=error.details or None,
        )
        return web.json_response(
            body.model_dump(exclude_none=True),
            status=error.status,
            headers=headers,
        )

    def _allowed_origin(self, origin: str | None) -> str | None:
        if not origin:
            return None
        origins = self.config.cors_origins
        if "*" in origins:
            return "*"
        return origin if origin in origins else None

    async def _on_response_prepare(self, request: Request, response: StreamResponse) -> None:
        corr_id = request.get("correlation_id")
        if corr_id:
            response.headers[CORRELATION_ID_HEADER] = corr_id

        allowed = self._allowed_origin(request.headers.get(hdrs.ORIGIN))
        if allowed is None:
            return
        response.headers[hdrs.ACCESS_CONTROL_ALLOW_ORIGIN] = allowed
        response.headers[hdrs.ACCESS_CONTROL_EXPOSE_HEADERS] = ", ".join(EXPOSED_HEADERS)
        if allowed != "*":
            response.headers.add(hdrs.VARY, hdrs.ORIGIN)

    async def _on_cleanup(self, _app: web.Application) -> None:
        await self.resolver.close()
        if self.close_engine:
            await self.resolver.engine.close()

    async def _handle_preflight(self, request: Request) -> web.Response:
        """Handle OPTIONS preflight requests."""
        headers: dict[str, str] = {}
        if self._allowed_origin(request.headers.get(hdrs.ORIGIN)) is not None:
            headers[hdrs.ACCESS_CONTROL_ALLOW_METHODS] = _ALLOWED_METHODS
            headers[hdrs.ACCESS_CONTROL_ALLOW_HEADERS] = request.headers.get(
                hdrs.ACCESS_CONTROL_REQUEST_HEADERS, _DEFAULT_ALLOWED_HEADERS
            )
            headers[hdrs.ACCESS_CONTROL_MAX_AGE] = "600"
        return web.Response(status=204, headers=headers)

    async def _handle_add_torrent(self, request: Request) -> web.Response:
        """Handle POST /add-torrent."""
        try:
            body = await request.json()
        except ValueError as e:
            msg = "Request body must be valid JSON."
            raise InvalidRequestError(msg) from e
        if not isinstance(body, dict):
            msg = "Request body must be a JSON object."
            raise InvalidRequestError(msg)

        try:
            add_request = AddTorrentRequest.model_validate(body)
        except ValidationError as e:
            msg = "Magnet URI is required."
            raise InvalidRequestError(msg) from e

        resolved = await self.resolver.resolve(add_request.magnet_uri)
        response = AddTorrentResponse.from_resolved(resolved)
        return web.json_response(response.model_dump(by_alias=True))

    async def _handle_stream(self, request: Request) -> StreamResponse:
        """Handle GET/HEAD /stream/{info_hash}/{file_index}."""
        plan = self.adapter.prepare(
            request.match_info["info_hash"],
            request.match_info["file_index"],
            request.headers.get(hdrs.RANGE),
        )

        response = web.StreamResponse(status=plan.status, headers=plan.headers)
        await response.prepare(request)
        if request.method == hdrs.METH_HEAD:
            await response.write_eof()
            return response

        # Headers are on the wire: from here on failures can only close the connection
        body = plan.iter_body()
        try:
            async for chunk in body:
                await response.write(chunk)
        except ConnectionResetError:
            logger.debug(
                "Client went away while streaming %s of %s",
                plan.entry.name,
                plan.info_hash,
            )
            return response
        except BTStreamError as e:
            logger.error("Stream of %s aborted: %s", plan.entry.name, e)
            response.force_close()
            if request.transport is not None:
                request.transport.close()
            return response
        finally:
            await body.aclose()

        await response.write_eof()
        return response

    async def _handle_health(self, _request: Request) -> web.Response:
        """Handle GET /health."""
        health = HealthResponse(
            status="ok",
            version=__version__,
            sessions=len(self.resolver.registry),
            pending=self.resolver.pending_count,
        )
        return web.json_response(health.model_dump())

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        self.runner = web.AppRunner(
            self.app,
            shutdown_timeout=self.config.shutdown_timeout,
        )
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.config.host, self.config.port)
        await self.site.start()
        logger.info("Gateway listening on %s", ", ".join(map(str, self.runner.addresses)))

    async def stop(self) -> None:
        """Stop serving and release every torrent session."""
        if self.site:
            await self.site.stop()
            self.site = None
        if self.runner:
            # Triggers on_cleanup, which closes the resolver
            await self.runner.cleanup()
            self.runner = None
        logger.info("Gateway stopped")


GATEWAY_KEY = web.AppKey("gateway", GatewayServer)


def create_gateway(
    config: Config | None = None,
    engine: TorrentEngineProtocol | None = None,
) -> GatewayServer:
    """Wire engine, resolver, adapter and HTTP surface from configuration.

    An engine built here is owned by the gateway and closed with it; a
    caller-supplied engine is left open.
    """
    config = config or get_config()
    close_engine = engine is None
    if engine is None:
        engine = LibraryEngine.from_config(config)

    resolver = MetadataResolver(
        engine,
        metadata_timeout=config.resolver.metadata_timeout,
    )
    adapter = RangeStreamingAdapter(
        resolver.registry,
        default_media_type=config.streaming.default_media_type,
    )
    return GatewayServer(
        resolver,
        config=config.server,
        adapter=adapter,
        close_engine=close_engine,
    )


def create_app(
    config: Config | None = None,
    engine: TorrentEngineProtocol | None = None,
) -> web.Application:
    """Return the aiohttp application, e.g. for `aiohttp.web.run_app`."""
    return create_gateway(config, engine).app
