"""Prometheus metrics for the faucet.

Metrics:
- faucet_claims_total: Counter of claim requests by outcome
- faucet_transactions_total: Counter of distribution transactions by chain and status
- faucet_rate_limited_total: Counter of requests rejected by the rate limiter
- faucet_chain_clients: Gauge of cached chain clients
- faucet_request_duration_seconds: Histogram of HTTP request duration
- faucet_transaction_duration_seconds: Histogram of submit-to-receipt duration
"""

from prometheus_client import Counter, Gauge, Histogram

# Counters
CLAIMS = Counter(
    "faucet_claims_total",
    "Total number of claim requests",
    ["status"],
)

TRANSACTIONS = Counter(
    "faucet_transactions_total",
    "Total distribution transactions",
    ["chain_id", "status"],
)

RATE_LIMITED = Counter(
    "faucet_rate_limited_total",
    "Requests rejected by the rate limiter",
)

# Gauges
CHAIN_CLIENTS = Gauge(
    "faucet_chain_clients",
    "Number of cached chain clients",
)

# Histograms
REQUEST_DURATION = Histogram(
    "faucet_request_duration_seconds",
    "HTTP request processing duration",
    ["route"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

TRANSACTION_DURATION = Histogram(
    "faucet_transaction_duration_seconds",
    "Duration from submission to receipt",
    ["chain_id"],
    buckets=(1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)
