"""Tests for Prometheus metrics."""

from prometheus_client import REGISTRY

from continuum_faucet.observability.metrics import (
    CHAIN_CLIENTS,
    CLAIMS,
    RATE_LIMITED,
    REQUEST_DURATION,
    TRANSACTION_DURATION,
    TRANSACTIONS,
)


class TestMetrics:
    """Tests for Prometheus metrics."""

    def test_claims_counter_labels(self):
        """CLAIMS counter is labelled by outcome."""
        CLAIMS.labels(status="full_success").inc()

        sample = REGISTRY.get_sample_value(
            "faucet_claims_total",
            {"status": "full_success"},
        )
        assert sample is not None
        assert sample >= 1

    def test_transactions_counter(self):
        """TRANSACTIONS counter tracks per-chain outcomes."""
        labels = {"chain_id": "424242", "status": "confirmed"}
        initial = REGISTRY.get_sample_value("faucet_transactions_total", labels) or 0

        TRANSACTIONS.labels(**labels).inc(3)

        assert REGISTRY.get_sample_value("faucet_transactions_total", labels) == initial + 3

    def test_rate_limited_counter(self):
        """RATE_LIMITED counts rejected requests."""
        initial = REGISTRY.get_sample_value("faucet_rate_limited_total") or 0

        RATE_LIMITED.inc()

        assert REGISTRY.get_sample_value("faucet_rate_limited_total") == initial + 1

    def test_chain_clients_gauge(self):
        """CHAIN_CLIENTS gauge can be set."""
        CHAIN_CLIENTS.set(3)

        assert REGISTRY.get_sample_value("faucet_chain_clients") == 3

    def test_request_duration_histogram(self):
        """REQUEST_DURATION histogram records observations per route."""
        initial = (
            REGISTRY.get_sample_value(
                "faucet_request_duration_seconds_count", {"route": "/request-tokens"}
            )
            or 0
        )

        REQUEST_DURATION.labels(route="/request-tokens").observe(0.3)

        count = REGISTRY.get_sample_value(
            "faucet_request_duration_seconds_count", {"route": "/request-tokens"}
        )
        assert count == initial + 1

    def test_transaction_duration_histogram(self):
        """TRANSACTION_DURATION histogram records observations per chain."""
        TRANSACTION_DURATION.labels(chain_id="424242").observe(4.0)

        count = REGISTRY.get_sample_value(
            "faucet_transaction_duration_seconds_count", {"chain_id": "424242"}
        )
        assert count is not None
        assert count >= 1
