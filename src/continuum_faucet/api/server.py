"""HTTP API for the faucet.

Routes:
- GET  /               - Welcome text
- GET  /chains         - Registered chains
- GET  /tokens         - Registered tokens
- GET  /status         - Faucet address and registry/claim counts
- POST /add-chain      - Register a chain (admin)
- POST /add-token      - Register a token on a chain (admin)
- POST /request-tokens - Claim every registered token for a wallet
"""

import hmac
import json
import logging

from aiohttp import web
from pydantic import BaseModel, SecretStr, ValidationError

from continuum_faucet.errors import FaucetError
from continuum_faucet.faucet.rate_limiter import RateLimiter
from continuum_faucet.faucet.service import FaucetService
from continuum_faucet.observability.metrics import CLAIMS

from .middleware import (
    client_ip,
    cors_middleware,
    rate_limit_middleware,
    request_id_middleware,
    security_headers_middleware,
    timing_middleware,
)
from .schemas import AddChainRequest, AddTokenRequest, RequestTokensRequest

logger = logging.getLogger(__name__)

WELCOME_TEXT = """Welcome to the Continuum faucet.

GET  /chains          list registered chains
GET  /tokens          list registered tokens
GET  /status          faucet status
POST /add-chain       {name, chainId, rpcUrl, blockExplorerUrl}
POST /add-token       {name, tokenAddress, decimals, chainId, amount}
POST /request-tokens  {walletAddress}
"""


class BadRequest(Exception):
    """A request body could not be parsed."""


def _error(message: str, status: int = 400) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    if location:
        return f"Invalid request body: {location}: {first['msg']}"
    return f"Invalid request body: {first['msg']}"


async def _parse_body(request: web.Request, model: type[BaseModel]) -> BaseModel:
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequest("Request body must be valid JSON.") from None
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object.")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise BadRequest(_describe_validation_error(e)) from None


class FaucetAPI:
    """aiohttp server exposing the faucet.

    Parameters
    ----------
    service : FaucetService
        Faucet service handling claims and registry access.
    rate_limiter : RateLimiter
        Per-IP request limiter.
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    trusted_ip_header : str | None
        Proxy header carrying the client IP. None or empty uses the peer address.
    admin_token : SecretStr | None
        Bearer token required on admin routes. None leaves them open.
    """

    def __init__(
        self,
        service: FaucetService,
        rate_limiter: RateLimiter,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 3000,
        trusted_ip_header: str | None = "X-Real-IP",
        admin_token: SecretStr | None = None,
    ):
        self._service = service
        self._rate_limiter = rate_limiter
        self._host = host
        self._port = port
        self._trusted_ip_header = trusted_ip_header or None
        self._admin_token = admin_token
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application with middlewares and routes."""
        app = web.Application(
            middlewares=[
                request_id_middleware,
                cors_middleware,
                security_headers_middleware,
                rate_limit_middleware(self._rate_limiter, self._trusted_ip_header),
                timing_middleware,
            ]
        )
        app.router.add_get("/", self._handle_index)
        app.router.add_get("/chains", self._handle_chains)
        app.router.add_get("/tokens", self._handle_tokens)
        app.router.add_get("/status", self._handle_status)
        app.router.add_post("/add-chain", self._handle_add_chain)
        app.router.add_post("/add-token", self._handle_add_token)
        app.router.add_post("/request-tokens", self._handle_request_tokens)
        return app

    async def start(self) -> None:
        """Start serving."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        logger.info("Faucet API started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("Faucet API stopped")

    def _is_authorized(self, request: web.Request) -> bool:
        if self._admin_token is None:
            return True
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return False
        return hmac.compare_digest(
            token.strip().encode(), self._admin_token.get_secret_value().encode()
        )

    async def _handle_index(self, _request: web.Request) -> web.Response:
        return web.Response(text=WELCOME_TEXT)

    async def _handle_chains(self, _request: web.Request) -> web.Response:
        chains = self._service.registry.list_chains()
        return web.json_response([chain.to_dict() for chain in chains])

    async def _handle_tokens(self, _request: web.Request) -> web.Response:
        tokens = self._service.registry.list_tokens()
        return web.json_response([token.to_dict() for token in tokens])

    async def _handle_status(self, _request: web.Request) -> web.Response:
        return web.json_response(self._service.get_status().to_dict())

    async def _handle_add_chain(self, request: web.Request) -> web.Response:
        if not self._is_authorized(request):
            return _error("Unauthorized.", status=401)

        try:
            body = await _parse_body(request, AddChainRequest)
            chain = self._service.registry.add_chain(
                name=body.name,
                chain_id=body.chain_id,
                rpc_url=body.rpc_url,
                block_explorer_url=body.block_explorer_url,
            )
        except BadRequest as e:
            return _error(str(e))
        except FaucetError as e:
            return _error(e.message)

        return web.json_response({"message": "Chain added.", "chain": chain.to_dict()})

    async def _handle_add_token(self, request: web.Request) -> web.Response:
        if not self._is_authorized(request):
            return _error("Unauthorized.", status=401)

        try:
            body = await _parse_body(request, AddTokenRequest)
            token = self._service.registry.add_token(
                name=body.name,
                token_address=body.token_address,
                decimals=body.decimals,
                chain_id=body.chain_id,
                amount=body.amount,
            )
        except BadRequest as e:
            return _error(str(e))
        except FaucetError as e:
            return _error(e.message)

        return web.json_response({"message": "Token added.", "token": token.to_dict()})

    async def _handle_request_tokens(self, request: web.Request) -> web.Response:
        try:
            body = await _parse_body(request, RequestTokensRequest)
        except BadRequest as e:
            CLAIMS.labels(status="bad_request").inc()
            return _error(str(e))

        ip_address = client_ip(request, self._trusted_ip_header)
        try:
            result = await self._service.request_tokens(ip_address, body.wallet_address)
        except FaucetError as e:
            CLAIMS.labels(status=e.code).inc()
            return _error(e.message)

        CLAIMS.labels(status=result.status.value).inc()
        return web.json_response(result.to_dict())
