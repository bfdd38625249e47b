"""aiohttp middlewares for the faucet API.

Applied outermost first:
- request ID propagation
- CORS and preflight handling
- security headers
- per-IP rate limiting
- request timing and unhandled error reporting
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from aiohttp import web

from continuum_faucet.faucet.rate_limiter import RateLimiter
from continuum_faucet.observability.logging import clear_request_id, set_request_id
from continuum_faucet.observability.metrics import RATE_LIMITED, REQUEST_DURATION

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

REQUEST_ID_HEADER = "X-Request-ID"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,HEAD,PUT,PATCH,POST,DELETE",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Request-ID",
}

SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'self'; object-src 'none'",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def client_ip(request: web.Request, trusted_header: str | None) -> str:
    """Resolve the requester IP address.

    The trusted proxy header wins when present; otherwise the socket peer
    address is used.
    """
    if trusted_header:
        forwarded = request.headers.get(trusted_header, "")
        # X-Forwarded-For style headers list the original client first
        candidate = forwarded.split(",")[0].strip()
        if candidate:
            return candidate
    return request.remote or "unknown"


@web.middleware
async def request_id_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Tag the request and its log lines with a request ID."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    set_request_id(request_id)
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers[REQUEST_ID_HEADER] = request_id
        raise
    finally:
        clear_request_id()
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Allow any origin and answer preflight requests directly."""
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)

    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def security_headers_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """Add browser hardening headers to every response."""
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(SECURITY_HEADERS)
        raise
    response.headers.update(SECURITY_HEADERS)
    return response


def rate_limit_middleware(limiter: RateLimiter, trusted_header: str | None):
    """Build a middleware rejecting clients over their request budget.

    Parameters
    ----------
    limiter : RateLimiter
        Limiter counting requests per client IP.
    trusted_header : str | None
        Proxy header carrying the client IP.
    """

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        ip_address = client_ip(request, trusted_header)
        result = await limiter.hit(ip_address)
        if not result.allowed:
            RATE_LIMITED.inc()
            logger.warning(
                "Request rate limited",
                extra={"ip": ip_address, "retry_after": result.retry_after_seconds},
            )
            return web.json_response(
                {"error": result.reason},
                status=429,
                headers={"Retry-After": str(result.retry_after_seconds)},
            )

        response = await handler(request)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response

    return middleware


def _route_name(request: web.Request) -> str:
    resource = request.match_info.route.resource
    return resource.canonical if resource is not None else "unmatched"


@web.middleware
async def timing_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Record request duration and turn unhandled errors into a JSON 500."""
    start = time.monotonic()
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        logger.error(
            "Unhandled error serving request",
            extra={"method": request.method, "path": request.path},
            exc_info=True,
        )
        return web.json_response({"error": "An unexpected error occurred."}, status=500)
    finally:
        REQUEST_DURATION.labels(route=_route_name(request)).observe(time.monotonic() - start)
