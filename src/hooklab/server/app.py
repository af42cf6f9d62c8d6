"""
Hooklab Server

FastAPI-based webhook capture and mock-response server.

Features:
- Captures any request sent to /webhook or /webhook/{key}
- Live event stream (Server-Sent Events)
- Per-key static responses with a "default" fallback
- Conditional rules evaluated in priority order (first match wins)
- Graceful shutdown that releases streaming connections
"""

from __future__ import annotations  # Enable forward references for type hints

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ..common import (
    RESPONSE_PREFIX,
    WEBHOOK_PREFIX,
    collect_headers,
    key_from_path,
    safe_json_parse,
)
from ..core import ConditionError, RequestCoordinator, ResponseConfig, Rule
from .config import ServerConfig
from .stream import event_stream

WEBHOOK_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

_INVALID = object()


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(content={'error': message}, status_code=status_code)


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Read at most ``limit`` bytes of the request body; the rest is discarded."""
    body = bytearray()
    async for chunk in request.stream():
        remaining = limit - len(body)
        if remaining > 0:
            body.extend(chunk[:remaining])
    return bytes(body)


class _UvicornServer(uvicorn.Server):
    """uvicorn server that releases streaming connections before shutting down."""

    def __init__(self, config: uvicorn.Config, on_exit):
        super().__init__(config)
        self._on_exit = on_exit

    def handle_exit(self, sig, frame):
        self._on_exit()
        super().handle_exit(sig, frame)


class HooklabServer:
    """
    Webhook capture server.

    Example:
        server = HooklabServer()
        server.start(host='0.0.0.0', port=8080)

        # With custom config
        config = ServerConfig(port=9000, default_response={'received': True},
                              default_status_code=202)
        server = HooklabServer(config=config)
        server.start()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        coordinator: Optional[RequestCoordinator] = None
    ):
        """
        Initialize webhook server.

        Args:
            config: Optional ServerConfig for server behavior
            coordinator: Optional RequestCoordinator (will create if None)
        """
        self.config = config or ServerConfig()

        self.logger = logging.getLogger("hooklab.server")
        self.logger.setLevel(getattr(logging, self.config.log_level.upper()))

        self.coordinator = coordinator or RequestCoordinator(max_events=self.config.max_events)
        self.coordinator.responses.set("default", ResponseConfig(
            response=self.config.default_response,
            response_raw=json.dumps(self.config.default_response),
            status_code=self.config.default_status_code
        ))

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            yield
            self.coordinator.shutdown()
            self.logger.info("Server stopped")

        app = FastAPI(
            title="Hooklab",
            description="Webhook capture and mock-response server",
            version="1.0.0",
            lifespan=lifespan
        )

        # Webhook capture
        @app.api_route(WEBHOOK_PREFIX, methods=WEBHOOK_METHODS)
        @app.api_route(WEBHOOK_PREFIX + "/{key:path}", methods=WEBHOOK_METHODS)
        async def webhook(request: Request):
            """Capture a webhook and answer with the configured response."""
            return await self._handle_webhook(request)

        @app.get("/api/events")
        async def list_events(key: str = ""):
            """List captured events, most recent first."""
            events = self.coordinator.events.list(key or None)
            return JSONResponse(content={'events': [event.to_dict() for event in events]})

        @app.get("/api/stream")
        async def stream(request: Request):
            """Stream captured events as Server-Sent Events."""
            subscriber = self.coordinator.hub.subscribe()
            return StreamingResponse(
                event_stream(
                    self.coordinator.hub,
                    subscriber,
                    request.is_disconnected,
                    heartbeat_interval=self.config.heartbeat_interval,
                    disconnect_poll_interval=self.config.disconnect_poll_interval
                ),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive",
                    "X-Accel-Buffering": "no",
                }
            )

        # Response configuration
        @app.get(RESPONSE_PREFIX)
        @app.get(RESPONSE_PREFIX + "/{path_key:path}")
        async def get_response(request: Request):
            """Get the effective response configuration for a key."""
            key = self._response_key(request)
            config = self.coordinator.responses.get(key)
            return JSONResponse(content={**config.to_dict(), 'key': key})

        @app.post(RESPONSE_PREFIX)
        @app.post(RESPONSE_PREFIX + "/{path_key:path}")
        async def set_response(request: Request):
            """Replace the response configuration for a key."""
            return await self._set_response(request)

        # Rules
        @app.get("/api/rules")
        async def list_rules(key: str = ""):
            """List rules for a key in evaluation order."""
            key = key or "default"
            rules = self.coordinator.rules.list(key)
            return JSONResponse(content={'rules': [rule.to_dict() for rule in rules], 'key': key})

        @app.post("/api/rules")
        async def create_rule(request: Request, key: str = ""):
            """Create a rule."""
            rule = await self._parse_rule(request)
            if isinstance(rule, Response):
                return rule

            created = self.coordinator.rules.add(key or "default", rule)
            self.logger.info(f"Rule {created.id} created for key '{key or 'default'}'")
            return JSONResponse(content=created.to_dict(), status_code=201)

        @app.put("/api/rules")
        async def update_rule(request: Request, key: str = "", id: str = ""):
            """Update a rule by ID."""
            if not id:
                return _error("Rule ID required", 400)

            rule = await self._parse_rule(request)
            if isinstance(rule, Response):
                return rule

            if not self.coordinator.rules.update(key or "default", id, rule):
                return _error("Rule not found", 404)

            self.logger.info(f"Rule {id} updated for key '{key or 'default'}'")
            return JSONResponse(content={'status': 'ok'})

        @app.delete("/api/rules")
        async def delete_rule(key: str = "", id: str = ""):
            """Delete a rule by ID."""
            if not id:
                return _error("Rule ID required", 400)

            if not self.coordinator.rules.delete(key or "default", id):
                return _error("Rule not found", 404)

            self.logger.info(f"Rule {id} deleted for key '{key or 'default'}'")
            return JSONResponse(content={'status': 'ok'})

        @app.get("/api/keys")
        async def list_keys():
            """List all known webhook keys."""
            return JSONResponse(content={'keys': self.coordinator.get_keys()})

        @app.get("/api/health")
        async def health():
            """Liveness check."""
            return JSONResponse(content={
                'status': 'ok',
                'events': len(self.coordinator.events),
                'subscribers': self.coordinator.hub.subscriber_count
            })

        return app

    async def _handle_webhook(self, request: Request) -> Response:
        """
        Capture an incoming webhook and serve its response.

        Args:
            request: FastAPI Request object

        Returns:
            JSON response chosen by the first matching rule, or the key's
            response configuration
        """
        path = request.url.path
        key = key_from_path(path, WEBHOOK_PREFIX)
        headers = collect_headers(request.headers.items())
        raw_body = await read_limited_body(request, self.config.max_body_size)
        body = raw_body.decode('utf-8', errors='replace')

        outcome = self.coordinator.handle_webhook(request.method, path, key, headers, body)
        self.logger.debug(f"Captured {request.method} {path} as event {outcome.event.id} (key: {key})")

        response_headers = {'X-Hooklab-Event-Id': str(outcome.event.id)}
        if outcome.matched_rule:
            response_headers['X-Hooklab-Rule'] = outcome.matched_rule.id

        return JSONResponse(
            content=outcome.config.response,
            status_code=outcome.config.status_code or 200,
            headers=response_headers
        )

    def _response_key(self, request: Request) -> str:
        """Key from the "key" query parameter, else from the path."""
        key = request.query_params.get('key')
        if key:
            return key
        return key_from_path(request.url.path, RESPONSE_PREFIX)

    async def _set_response(self, request: Request) -> Response:
        raw_text = (await read_limited_body(request, self.config.max_body_size)).decode('utf-8', errors='replace')
        payload = safe_json_parse(raw_text, default=_INVALID)
        if not isinstance(payload, dict):
            return _error("Invalid JSON", 400)

        key = self._response_key(request)
        status_code = self.coordinator.responses.get(key).status_code
        status_value = payload.get('statusCode')
        if isinstance(status_value, (int, float)) and not isinstance(status_value, bool):
            status_code = int(status_value)

        self.coordinator.responses.set(key, ResponseConfig(
            response=payload.get('response'),
            response_raw=raw_text,
            status_code=status_code
        ))
        self.logger.info(f"Response for key '{key}' set (status {status_code})")
        return JSONResponse(content={'status': 'ok'})

    async def _parse_rule(self, request: Request):
        """
        Read and validate a rule from the request body.

        Returns:
            Rule on success, or an error Response
        """
        raw_body = await read_limited_body(request, self.config.max_body_size)
        payload = safe_json_parse(raw_body.decode('utf-8', errors='replace'), default=_INVALID)
        if payload is _INVALID:
            return _error("Invalid JSON", 400)

        try:
            rule = Rule.from_dict(payload)
        except ValueError:
            return _error("Invalid JSON", 400)

        if rule.condition:
            try:
                self.coordinator.evaluator.validate(rule.condition)
            except ConditionError as e:
                return _error(f"Invalid expression: {e.message}", 400)

        return rule

    def start(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        access_log: Optional[bool] = None
    ):
        """
        Start the server (blocking).

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
            access_log: Enable access logging (overrides config)
        """
        actual_host = host or self.config.host
        actual_port = port or self.config.port

        print(f"🪝 Hooklab starting...")
        print(f"   Webhooks: http://{actual_host}:{actual_port}{WEBHOOK_PREFIX}/<key>")
        print(f"   Events:   http://{actual_host}:{actual_port}/api/events")
        print(f"   Stream:   http://{actual_host}:{actual_port}/api/stream")
        print()

        uvicorn_config = uvicorn.Config(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level,
            access_log=self.config.access_log if access_log is None else access_log,
            timeout_graceful_shutdown=self.config.shutdown_timeout
        )
        server = _UvicornServer(uvicorn_config, on_exit=self._on_exit)
        server.run()

    def _on_exit(self):
        self.logger.info("Server is shutting down...")
        self.coordinator.shutdown()

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def create_server(
    host: str = "127.0.0.1",
    port: int = 8080,
    default_response: Any = None,
    default_status_code: int = 200,
    max_events: int = 50,
    log_level: str = "info"
) -> HooklabServer:
    """
    Convenience function to create and configure a webhook server.

    Args:
        host: Host to bind to
        port: Port to bind to
        default_response: Response served for unconfigured keys ({"result": "ok"} if None)
        default_status_code: Status code served for unconfigured keys
        max_events: Number of captured events kept in memory
        log_level: Log level name

    Returns:
        Configured HooklabServer instance
    """
    config = ServerConfig(
        host=host,
        port=port,
        default_status_code=default_status_code,
        max_events=max_events,
        log_level=log_level
    )
    if default_response is not None:
        config.default_response = default_response

    return HooklabServer(config=config)
