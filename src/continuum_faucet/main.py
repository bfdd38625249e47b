#!/usr/bin/env python3
"""Continuum faucet.

Entry point for the faucet service and CLI.
"""

import asyncio
import logging
import os
import signal
import sys
import tempfile
from pathlib import Path

from eth_account import Account
from redis.exceptions import RedisError

from continuum_faucet.api.server import FaucetAPI
from continuum_faucet.blockchain.pool import ChainClientPool
from continuum_faucet.cli import create_parser, run_cli
from continuum_faucet.config import FaucetConfig
from continuum_faucet.core.store import connect_redis
from continuum_faucet.core.wallet import wallet_from_config
from continuum_faucet.faucet import (
    ClaimLedger,
    DistributionEngine,
    FaucetService,
    RateLimiter,
    RegistryStore,
)
from continuum_faucet.observability.health import (
    HealthServer,
    RegistryHealthCheck,
    StoreHealthCheck,
)
from continuum_faucet.observability.logging import configure_logging


def generate_wallet(output_path: str) -> None:
    """Generate a new wallet and save the private key to a file.

    Parameters
    ----------
    output_path : str
        Path to save the private key file.
    """
    account = Account.create()

    # Temp file in the target directory so the rename stays on one filesystem
    key_path = Path(output_path)
    key_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(dir=key_path.parent, prefix=".faucet-key-")
    fd_closed = False
    try:
        os.fchmod(fd, 0o600)
        os.write(fd, account.key.hex().encode())
        os.close(fd)
        fd_closed = True
        os.rename(temp_path, key_path)
    except Exception:
        if not fd_closed:
            os.close(fd)
        Path(temp_path).unlink(missing_ok=True)
        raise

    print(f"""
Wallet generated successfully!

  Address:     {account.address}
  Private Key: {key_path.absolute()}

Next steps:

  1. Fund this address with gas on every chain you register, and grant it
     the minter role on each token (or fund it with the tokens when
     FAUCET_DISTRIBUTION_METHOD=transfer)

  2. Launch the faucet with this wallet:

     export FAUCET_PRIVATE_KEY_FILE={key_path.absolute()}
     continuum-faucet run

IMPORTANT: Keep this private key secure. Anyone with access can control the wallet.
""")


def parse_args():
    """Parse command line arguments."""
    return create_parser().parse_args()


async def run_service() -> None:
    """Run the faucet service (long-running mode).

    Wires up and starts all service components:
    - HealthServer for probes and metrics
    - Registry and claim ledger (Redis or in-memory)
    - Wallet and chain client pool
    - DistributionEngine and FaucetService
    - RateLimiter and the HTTP API
    """
    config = FaucetConfig()
    configure_logging(level=config.log_level, log_format=config.log_format)

    logger = logging.getLogger(__name__)
    logger.info("Faucet starting")
    logger.info("Distribution method: %s", config.distribution_method.value)
    logger.info("Default RPC endpoint: %s", config.default_rpc_url or "none")

    # Storage must be shared when configured; never fall back to per-process claims
    redis = None
    if config.database_url:
        try:
            redis = connect_redis(config.database_url)
        except RedisError as e:
            logger.error("Database unreachable: %s", e)
            sys.exit(1)
    else:
        logger.warning("FAUCET_DATABASE_URL not set, using in-memory storage")

    try:
        wallet = wallet_from_config(config)
    except (ValueError, FileNotFoundError) as e:
        logger.error("%s", e)
        sys.exit(1)
    if config.wallet_private_key and config.wallet_private_key_file:
        logger.warning(
            "Both FAUCET_PRIVATE_KEY and FAUCET_PRIVATE_KEY_FILE set; using FAUCET_PRIVATE_KEY"
        )
    logger.info("Wallet loaded: %s", wallet.address)

    # Create shutdown event
    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()

    def on_shutdown_signal(sig_name: str) -> None:
        logger.info("Received signal %s, initiating shutdown", sig_name)
        shutdown_event.set()

    loop.add_signal_handler(signal.SIGTERM, lambda: on_shutdown_signal("SIGTERM"))
    loop.add_signal_handler(signal.SIGINT, lambda: on_shutdown_signal("SIGINT"))

    # Start health server first (for probes)
    health_server = HealthServer(port=config.metrics_port)
    if redis is not None:
        health_server.add_check(StoreHealthCheck(redis))
    await health_server.start()

    registry = RegistryStore(redis)
    health_server.add_check(RegistryHealthCheck(registry))
    ledger = ClaimLedger(redis)
    pool = ChainClientPool(
        wallet,
        default_rpc_url=config.default_rpc_url,
        method=config.distribution_method,
        confirmation_timeout=config.confirmation_timeout_seconds,
        poll_interval=config.poll_interval_seconds,
        rpc_timeout=config.rpc_timeout_seconds,
    )
    engine = DistributionEngine(registry, pool)
    faucet = FaucetService(registry, ledger, engine, faucet_address=wallet.address)

    rate_limiter = RateLimiter(
        max_requests=config.rate_limit_max_requests,
        window_minutes=config.rate_limit_window_minutes,
        redis=redis,
    )
    logger.info(
        "Rate limiter initialized: %d requests per %d minutes",
        config.rate_limit_max_requests,
        config.rate_limit_window_minutes,
    )

    api = FaucetAPI(
        faucet,
        rate_limiter,
        host=config.host,
        port=config.port,
        trusted_ip_header=config.trusted_ip_header,
        admin_token=config.admin_token,
    )
    await api.start()
    if config.admin_token is None:
        logger.warning("FAUCET_ADMIN_TOKEN not set; /add-chain and /add-token are open")

    logger.info("Faucet service ready")

    # Wait for shutdown signal
    await shutdown_event.wait()

    # Graceful shutdown
    logger.info("Faucet shutting down...")
    await api.stop()
    await health_server.stop()
    if redis is not None:
        redis.close()
    logger.info("Faucet shutdown complete")


def main() -> None:
    """Main entry point for the faucet."""
    args = parse_args()

    if args.generate_wallet:
        generate_wallet(args.generate_wallet)
        return

    # Handle CLI subcommands
    if args.command and args.command != "run":
        exit_code = run_cli(args)
        if exit_code >= 0:
            sys.exit(exit_code)
        create_parser().print_help()
        sys.exit(0)

    # No subcommand or "run" - start service
    asyncio.run(run_service())


if __name__ == "__main__":
    main()
