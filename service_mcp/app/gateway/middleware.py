"""
Request filter chain in front of every MCP route.

Order of checks for an HTTP request:

1. resolve the client IP from the trusted proxy chain
2. general rate limit (everything except the health check); CORS preflights
   are handed on after this step
3. body size guard
4. API rate limit, for paths under the API prefix
5. API key authentication, for paths under the API prefix

Rejections are answered here with a small generic JSON body; the wrapped
application never sees them.
"""

import time
from typing import Awaitable, Callable, Dict, Iterable, Optional

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from shared.config import ServiceConfig
from shared.errors import (
    AuthInvalidCredential,
    AuthMissingCredential,
    HarnessException,
    PayloadTooLarge,
    RateLimitExceeded,
)
from shared.headers import get_header, get_joined_header
from shared.logging import get_logger, set_client_ip
from service_mcp.app.domain.auth_middleware import ApiKeyAuthenticator
from service_mcp.app.domain.security_events import SecurityEventKind, SecurityEventLogger
from service_mcp.app.gateway.client_ip import normalize_ip, resolve_client_ip
from service_mcp.app.ratelimit.fixed_window import (
    FixedWindowRateLimiter,
    RateLimitResult,
    RateLimitTier,
)

DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024


class Gateway:
    """Admission decisions for inbound requests.

    Owns one limiter per tier, the authenticator and the event logger so a
    test can build an isolated instance with its own counters.
    """

    def __init__(
        self,
        general_limiter: FixedWindowRateLimiter,
        api_limiter: FixedWindowRateLimiter,
        authenticator: ApiKeyAuthenticator,
        events: SecurityEventLogger,
        trusted_hops: int = 3,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
        api_prefix: str = "/api",
        exempt_paths: Iterable[str] = ("/health",),
        metrics=None,
    ):
        self.general_limiter = general_limiter
        self.api_limiter = api_limiter
        self.authenticator = authenticator
        self.events = events
        self.trusted_hops = trusted_hops
        self.max_body_bytes = max_body_bytes
        self.api_prefix = api_prefix.rstrip("/")
        self.exempt_paths = frozenset(exempt_paths)
        self.metrics = metrics
        self.logger = get_logger("mcp.gateway")

    @classmethod
    def from_config(
        cls,
        config: ServiceConfig,
        events: Optional[SecurityEventLogger] = None,
        metrics=None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "Gateway":
        events = events or SecurityEventLogger()
        window = config.rate_limit_window_seconds
        return cls(
            general_limiter=FixedWindowRateLimiter(
                RateLimitTier("general", config.general_rate_limit, window), clock=clock
            ),
            api_limiter=FixedWindowRateLimiter(
                RateLimitTier("api", config.api_rate_limit, window), clock=clock
            ),
            authenticator=ApiKeyAuthenticator(config.credential(), events, metrics=metrics),
            events=events,
            trusted_hops=config.trusted_proxy_hops,
            max_body_bytes=config.max_body_bytes,
            metrics=metrics,
        )

    def client_ip(self, request: Request) -> str:
        peer = request.client.host if request.client else None
        forwarded_for = get_joined_header(request.headers, "X-Forwarded-For")
        return normalize_ip(resolve_client_ip(peer, forwarded_for, self.trusted_hops))

    def is_exempt(self, path: str) -> bool:
        return path in self.exempt_paths

    def is_api_path(self, path: str) -> bool:
        return path == self.api_prefix or path.startswith(self.api_prefix + "/")

    @staticmethod
    def is_preflight(request: Request) -> bool:
        """CORS preflight: answered by the CORS layer, never authenticated."""
        return (
            request.method == "OPTIONS"
            and get_header(request.headers, "Origin") is not None
            and get_header(request.headers, "Access-Control-Request-Method") is not None
        )

    def check_rate_limit(self, limiter: FixedWindowRateLimiter, request: Request, client_ip: str) -> RateLimitResult:
        """Consume one request from ``limiter``; raises ``RateLimitExceeded``."""
        result = limiter.hit(client_ip)
        tier = limiter.tier

        if result.allowed:
            self.events.emit(
                SecurityEventKind.RATE_LIMIT_PASSED,
                request,
                tier=tier.name,
                limit=result.limit,
                remaining=result.remaining,
            )
            return result

        self.events.emit(
            SecurityEventKind.RATE_LIMIT_EXCEEDED,
            request,
            tier=tier.name,
            limit=tier.limit,
            window=tier.window_label,
            endpoint=request.url.path,
            retry_after=result.retry_after,
        )
        if self.metrics is not None:
            self.metrics.record_rate_limit_rejection(tier.name)
        raise RateLimitExceeded(
            details={"tier": tier.name, "limit": tier.limit, "retry_after": result.retry_after},
            headers=result.headers(),
        )

    def check_declared_length(self, request: Request) -> None:
        declared = get_header(request.headers, "Content-Length")
        if declared and declared.strip().isdigit() and int(declared) > self.max_body_bytes:
            raise PayloadTooLarge(details={"declared_length": int(declared)})

    def reject_payload(self, request: Request, exc: PayloadTooLarge) -> None:
        self.events.emit(
            SecurityEventKind.PAYLOAD_TOO_LARGE,
            request,
            status=exc.status_code,
            limit_bytes=self.max_body_bytes,
            **exc.details,
        )
        if self.metrics is not None:
            self.metrics.record_payload_rejection()


class GatewayMiddleware:
    """ASGI middleware applying :class:`Gateway` decisions."""

    def __init__(self, app: ASGIApp, gateway: Gateway):
        self.app = app
        self.gateway = gateway

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        gateway = self.gateway
        request = Request(scope, receive)
        path = scope["path"]

        client_ip = gateway.client_ip(request)
        scope.setdefault("state", {})["client_ip"] = client_ip
        set_client_ip(client_ip)

        rate_headers: Dict[str, str] = {}

        try:
            if not gateway.is_exempt(path):
                result = gateway.check_rate_limit(gateway.general_limiter, request, client_ip)
                rate_headers = result.headers()

            # Preflights stop here and are answered by the CORS layer
            preflight = gateway.is_preflight(request)

            if not preflight:
                try:
                    gateway.check_declared_length(request)
                    body = await self._read_body(receive)
                except PayloadTooLarge as exc:
                    gateway.reject_payload(request, exc)
                    raise

                if body is None:
                    # Client went away while we were buffering
                    return
                receive = self._replay(body, receive)

            if not preflight and gateway.is_api_path(path):
                result = gateway.check_rate_limit(gateway.api_limiter, request, client_ip)
                rate_headers = result.headers()
                gateway.authenticator.authenticate(request)

        except RateLimitExceeded as exc:
            await self._reject(exc, scope, receive, send, exc.headers)
            return
        except (AuthMissingCredential, AuthInvalidCredential, PayloadTooLarge) as exc:
            await self._reject(exc, scope, receive, send, rate_headers)
            return

        await self.app(scope, receive, self._with_headers(send, rate_headers))

    async def _read_body(self, receive: Receive) -> Optional[bytes]:
        """Buffer the request body, stopping as soon as it crosses the ceiling."""
        limit = self.gateway.max_body_bytes
        chunks = []
        size = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return None
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > limit:
                raise PayloadTooLarge(details={"received_bytes": size})
            chunks.append(chunk)
            if not message.get("more_body", False):
                return b"".join(chunks)

    @staticmethod
    def _replay(body: bytes, receive: Receive) -> Receive:
        delivered = False

        async def replay() -> Message:
            nonlocal delivered
            if not delivered:
                delivered = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        return replay

    @staticmethod
    def _with_headers(send: Send, extra: Dict[str, str]) -> Callable[[Message], Awaitable[None]]:
        if not extra:
            return send

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in extra.items():
                    headers[name] = value
            await send(message)

        return send_with_headers

    @staticmethod
    async def _reject(exc: HarnessException, scope: Scope, receive: Receive, send: Send,
                      headers: Dict[str, str]) -> None:
        response = JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
            headers=headers or None,
        )
        await response(scope, receive, send)
