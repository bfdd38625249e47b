"""Probe and metrics endpoints served beside the faucet API.

Endpoints:
- /health: Liveness probe, always 200 while the event loop answers
- /ready: Readiness probe, 503 when a check fails or times out
- /metrics: Prometheus metrics endpoint

Readiness checks run concurrently, each bounded by ``check_timeout``. A
DEGRADED check (an empty registry, say) is reported but keeps the faucet in
rotation; only ERROR takes it out.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from aiohttp import web
from prometheus_client import REGISTRY, generate_latest
from redis import Redis

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Outcome of one readiness check."""

    OK = "ok"
    DEGRADED = "degraded"
    ERROR = "error"


@dataclass
class CheckResult:
    """Result of a single readiness check."""

    name: str
    status: HealthStatus
    message: str | None = None

    @property
    def summary(self) -> str:
        if self.status == HealthStatus.OK:
            return "ok"
        return self.message or self.status.value


@dataclass
class ReadinessReport:
    """All check results of one /ready probe."""

    results: list[CheckResult] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return all(r.status != HealthStatus.ERROR for r in self.results)

    @property
    def status(self) -> str:
        if not self.ready:
            return "not_ready"
        if any(r.status == HealthStatus.DEGRADED for r in self.results):
            return "degraded"
        return "ok"

    def to_dict(self) -> dict:
        body: dict = {"status": self.status}
        if self.results:
            body["checks"] = {r.name: r.summary for r in self.results}
        return body


class HealthCheck(ABC):
    """A named readiness check."""

    name: str

    @abstractmethod
    async def check(self) -> CheckResult:
        """Run the check; raising counts as ERROR."""
        ...


class StoreHealthCheck(HealthCheck):
    """Ping the Redis store holding the registry and claims."""

    name = "store"

    def __init__(self, redis: Redis):
        self._redis = redis

    async def check(self) -> CheckResult:
        if await asyncio.to_thread(self._redis.ping):
            return CheckResult(self.name, HealthStatus.OK)
        return CheckResult(self.name, HealthStatus.ERROR, "ping failed")


class RegistryHealthCheck(HealthCheck):
    """Report whether any token is registered for distribution.

    Claims against an empty registry are refused, but the admin routes must
    stay reachable to fill it, so an empty registry only degrades readiness.
    """

    name = "registry"

    def __init__(self, registry):
        self._registry = registry

    async def check(self) -> CheckResult:
        tokens = await asyncio.to_thread(self._registry.list_tokens)
        if not tokens:
            return CheckResult(self.name, HealthStatus.DEGRADED, "no tokens registered")
        return CheckResult(self.name, HealthStatus.OK)


class HealthServer:
    """HTTP server for the probe and metrics endpoints.

    Parameters
    ----------
    host : str
        Host to bind to. All interfaces by default so probes and Prometheus
        reach it from outside a container.
    port : int
        Port to bind to.
    check_timeout : float
        Seconds a single readiness check may take before it counts as failed.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 8080,
        check_timeout: float = 5.0,
    ):
        self._host = host
        self._port = port
        self._check_timeout = check_timeout
        self._checks: list[HealthCheck] = []
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def add_check(self, check: HealthCheck) -> None:
        self._checks.append(check)

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/ready", self._handle_ready)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        logger.info("Health server started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("Health server stopped")

    async def readiness(self) -> ReadinessReport:
        """Run every readiness check concurrently."""
        results = await asyncio.gather(*(self._run_check(check) for check in self._checks))
        return ReadinessReport(results=list(results))

    async def _run_check(self, check: HealthCheck) -> CheckResult:
        try:
            return await asyncio.wait_for(check.check(), timeout=self._check_timeout)
        except asyncio.TimeoutError:
            logger.warning("Readiness check timed out", extra={"check": check.name})
            return CheckResult(check.name, HealthStatus.ERROR, "timed out")
        except Exception as e:
            logger.warning(
                "Readiness check failed", extra={"check": check.name, "error": str(e)}
            )
            return CheckResult(check.name, HealthStatus.ERROR, f"{type(e).__name__}: {e}")

    async def _handle_health(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _handle_ready(self, _request: web.Request) -> web.Response:
        report = await self.readiness()
        return web.json_response(report.to_dict(), status=200 if report.ready else 503)

    async def _handle_metrics(self, _request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(REGISTRY),
            content_type="text/plain",
            charset="utf-8",
        )
