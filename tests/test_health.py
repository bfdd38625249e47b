"""Tests for health, readiness and metrics endpoints."""

import asyncio
from unittest.mock import MagicMock

import pytest
from aiohttp.test_utils import TestClient, TestServer
from redis.exceptions import ConnectionError as RedisConnectionError

from continuum_faucet.faucet.registry import RegistryStore
from continuum_faucet.observability.health import (
    CheckResult,
    HealthCheck,
    HealthServer,
    HealthStatus,
    ReadinessReport,
    RegistryHealthCheck,
    StoreHealthCheck,
)


class StaticCheck(HealthCheck):
    """Check returning a fixed result."""

    def __init__(self, name: str, status: HealthStatus, message: str | None = None):
        self.name = name
        self._status = status
        self._message = message

    async def check(self) -> CheckResult:
        return CheckResult(self.name, self._status, self._message)


class HangingCheck(HealthCheck):
    name = "rpc"

    async def check(self) -> CheckResult:
        await asyncio.sleep(60)
        return CheckResult(self.name, HealthStatus.OK)


class TestReadinessReport:
    """Tests for ReadinessReport aggregation."""

    def test_ok_without_checks(self):
        report = ReadinessReport()

        assert report.ready is True
        assert report.to_dict() == {"status": "ok"}

    def test_degraded_stays_ready(self):
        report = ReadinessReport(
            results=[
                CheckResult("store", HealthStatus.OK),
                CheckResult("registry", HealthStatus.DEGRADED, "no tokens registered"),
            ]
        )

        assert report.ready is True
        assert report.to_dict() == {
            "status": "degraded",
            "checks": {"store": "ok", "registry": "no tokens registered"},
        }

    def test_error_not_ready(self):
        report = ReadinessReport(results=[CheckResult("store", HealthStatus.ERROR)])

        assert report.ready is False
        assert report.to_dict() == {"status": "not_ready", "checks": {"store": "error"}}


class TestStoreHealthCheck:
    """Tests for the Redis store readiness check."""

    @pytest.mark.asyncio
    async def test_ping_ok(self):
        redis = MagicMock()
        redis.ping.return_value = True

        result = await StoreHealthCheck(redis).check()

        assert result.name == "store"
        assert result.status == HealthStatus.OK

    @pytest.mark.asyncio
    async def test_ping_false(self):
        redis = MagicMock()
        redis.ping.return_value = False

        result = await StoreHealthCheck(redis).check()

        assert result.status == HealthStatus.ERROR
        assert result.message == "ping failed"

    @pytest.mark.asyncio
    async def test_ping_raises(self):
        """Connection errors propagate to the readiness runner."""
        redis = MagicMock()
        redis.ping.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(RedisConnectionError):
            await StoreHealthCheck(redis).check()


class TestRegistryHealthCheck:
    """Tests for the registry readiness check."""

    @pytest.mark.asyncio
    async def test_empty_registry_degraded(self):
        result = await RegistryHealthCheck(RegistryStore()).check()

        assert result.status == HealthStatus.DEGRADED
        assert result.message == "no tokens registered"

    @pytest.mark.asyncio
    async def test_registered_token_ok(self):
        registry = RegistryStore()
        registry.add_chain("One", 1, "https://rpc.one.example")
        registry.add_token("TEST", "0x" + "aa" * 20, 18, 1, "1")

        result = await RegistryHealthCheck(registry).check()

        assert result.status == HealthStatus.OK


class TestHealthServer:
    """Tests for HealthServer endpoints."""

    @pytest.fixture
    async def app_client(self):
        """Test client over the HealthServer application."""
        health_server = HealthServer(check_timeout=0.1)
        client = TestClient(TestServer(health_server.create_app()))
        await client.start_server()
        yield client, health_server
        await client.close()

    @pytest.mark.asyncio
    async def test_health_endpoint_returns_ok(self, app_client):
        client, _ = app_client
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_without_checks(self, app_client):
        """In-memory deployments have nothing to check and are ready."""
        client, _ = app_client
        resp = await client.get("/ready")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_with_healthy_store(self, app_client):
        client, server = app_client
        redis = MagicMock()
        redis.ping.return_value = True
        server.add_check(StoreHealthCheck(redis))

        resp = await client.get("/ready")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok", "checks": {"store": "ok"}}

    @pytest.mark.asyncio
    async def test_ready_with_empty_registry(self, app_client):
        client, server = app_client
        server.add_check(RegistryHealthCheck(RegistryStore()))

        resp = await client.get("/ready")
        assert resp.status == 200
        assert (await resp.json())["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_ready_with_failing_check(self, app_client):
        client, server = app_client
        server.add_check(StaticCheck("store", HealthStatus.OK))
        server.add_check(StaticCheck("rpc", HealthStatus.ERROR, "endpoint unreachable"))

        resp = await client.get("/ready")
        assert resp.status == 503
        data = await resp.json()
        assert data["status"] == "not_ready"
        assert data["checks"] == {"store": "ok", "rpc": "endpoint unreachable"}

    @pytest.mark.asyncio
    async def test_ready_when_store_unreachable(self, app_client):
        """A raising check is reported with its exception type."""
        client, server = app_client
        redis = MagicMock()
        redis.ping.side_effect = RedisConnectionError("connection refused")
        server.add_check(StoreHealthCheck(redis))

        resp = await client.get("/ready")
        assert resp.status == 503
        assert (await resp.json())["checks"]["store"] == "ConnectionError: connection refused"

    @pytest.mark.asyncio
    async def test_hanging_check_times_out(self, app_client):
        client, server = app_client
        server.add_check(HangingCheck())

        resp = await client.get("/ready")
        assert resp.status == 503
        assert (await resp.json())["checks"] == {"rpc": "timed out"}

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, app_client):
        client, _ = app_client
        resp = await client.get("/metrics")
        assert resp.status == 200
        assert "text/plain" in resp.content_type
        assert "faucet_claims_total" in await resp.text()


@pytest.mark.asyncio
async def test_health_server_lifecycle(unused_tcp_port):
    """HealthServer start and stop lifecycle."""
    server = HealthServer(host="127.0.0.1", port=unused_tcp_port)

    await server.start()
    assert server._runner is not None
    assert server._site is not None

    await server.stop()
    assert server._runner is None
    assert server._site is None
