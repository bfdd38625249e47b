"""CLI subcommands for faucet operations.

Provides command-line interface for:
- Wallet operations (address)
- Chain registry (list, add, check)
- Token registry (list, add)
- Claim administration (show, reset)
- Rate limit administration (show, reset)
"""

import argparse
import asyncio
import json
import sys

from redis import Redis

from continuum_faucet.blockchain.pool import ChainClientPool
from continuum_faucet.config import FaucetConfig
from continuum_faucet.core.store import connect_redis
from continuum_faucet.core.units import parse_units, validate_address
from continuum_faucet.core.wallet import EnvironmentWallet, wallet_from_config
from continuum_faucet.errors import ClientUnavailable, FaucetError
from continuum_faucet.faucet.claims import ClaimLedger
from continuum_faucet.faucet.rate_limiter import RateLimiter
from continuum_faucet.faucet.registry import RegistryStore


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="continuum-faucet",
        description="Continuum - multi-chain testnet token faucet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global flags
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would happen without executing",
    )
    parser.add_argument(
        "--generate-wallet",
        metavar="FILE",
        help="Generate a new wallet and save private key to FILE, then exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Wallet subcommand
    wallet_parser = subparsers.add_parser("wallet", help="Wallet operations")
    wallet_sub = wallet_parser.add_subparsers(dest="wallet_command")
    wallet_sub.add_parser("address", help="Show faucet wallet address")

    # Chains subcommand
    chains_parser = subparsers.add_parser("chains", help="Chain registry")
    chains_sub = chains_parser.add_subparsers(dest="chains_command")

    chains_sub.add_parser("list", help="List registered chains")

    add_chain_parser = chains_sub.add_parser("add", help="Register a chain")
    add_chain_parser.add_argument("name", type=str, help="Chain name")
    add_chain_parser.add_argument("chain_id", type=int, help="EIP-155 chain ID")
    add_chain_parser.add_argument(
        "rpc_url", type=str, nargs="?", default=None, help="RPC URL (default: FAUCET_RPC_URL)"
    )
    add_chain_parser.add_argument("--explorer", type=str, help="Block explorer URL")

    check_parser = chains_sub.add_parser("check", help="Connect to a chain's RPC endpoint")
    check_parser.add_argument("chain_id", type=int, help="Registered chain ID")

    # Tokens subcommand
    tokens_parser = subparsers.add_parser("tokens", help="Token registry")
    tokens_sub = tokens_parser.add_subparsers(dest="tokens_command")

    tokens_sub.add_parser("list", help="List registered tokens")

    add_token_parser = tokens_sub.add_parser("add", help="Register a token on a chain")
    add_token_parser.add_argument("name", type=str, help="Token name")
    add_token_parser.add_argument("address", type=str, help="Token contract address")
    add_token_parser.add_argument("decimals", type=int, help="Token decimals")
    add_token_parser.add_argument("chain_id", type=int, help="Registered chain ID")
    add_token_parser.add_argument("amount", type=str, help="Amount per claim, in whole tokens")

    # Claims subcommand
    claims_parser = subparsers.add_parser("claims", help="Claim administration")
    claims_sub = claims_parser.add_subparsers(dest="claims_command")

    show_parser = claims_sub.add_parser("show", help="Show the claim held by a wallet")
    show_parser.add_argument("wallet", type=str, help="Wallet address")

    reset_parser = claims_sub.add_parser("reset", help="Delete a wallet's claim")
    reset_parser.add_argument("wallet", type=str, help="Wallet address")

    # Rate limit subcommand
    ratelimit_parser = subparsers.add_parser("ratelimit", help="Per-IP request limits")
    ratelimit_sub = ratelimit_parser.add_subparsers(dest="ratelimit_command")

    limit_show_parser = ratelimit_sub.add_parser("show", help="Show requests left for an IP")
    limit_show_parser.add_argument("ip", type=str, help="Client IP address")

    limit_reset_parser = ratelimit_sub.add_parser("reset", help="Clear an IP's request window")
    limit_reset_parser.add_argument("ip", type=str, help="Client IP address")

    # Run subcommand (start service)
    subparsers.add_parser("run", help="Start the faucet service")

    return parser


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(self, config: FaucetConfig, dry_run: bool = False, json_output: bool = False):
        self.config = config
        self.dry_run = dry_run
        self.json_output = json_output
        self._wallet: EnvironmentWallet | None = None
        self._redis: Redis | None = None
        self._redis_loaded = False
        self._registry: RegistryStore | None = None
        self._ledger: ClaimLedger | None = None
        self._pool: ChainClientPool | None = None
        self._rate_limiter: RateLimiter | None = None

    @property
    def wallet(self) -> EnvironmentWallet:
        """Get wallet (lazy loaded)."""
        if self._wallet is None:
            self._wallet = wallet_from_config(self.config)
        return self._wallet

    @property
    def redis(self) -> Redis | None:
        """Redis client for the configured database, or None for in-memory storage."""
        if not self._redis_loaded:
            if self.config.database_url:
                self._redis = connect_redis(self.config.database_url)
            self._redis_loaded = True
        return self._redis

    @property
    def registry(self) -> RegistryStore:
        """Get chain and token registry (lazy loaded)."""
        if self._registry is None:
            self._registry = RegistryStore(self.redis)
        return self._registry

    @property
    def ledger(self) -> ClaimLedger:
        """Get claim ledger (lazy loaded)."""
        if self._ledger is None:
            self._ledger = ClaimLedger(self.redis)
        return self._ledger

    @property
    def pool(self) -> ChainClientPool:
        """Get chain client pool (lazy loaded)."""
        if self._pool is None:
            self._pool = ChainClientPool(
                self.wallet,
                default_rpc_url=self.config.default_rpc_url,
                method=self.config.distribution_method,
                confirmation_timeout=self.config.confirmation_timeout_seconds,
                poll_interval=self.config.poll_interval_seconds,
                rpc_timeout=self.config.rpc_timeout_seconds,
            )
        return self._pool

    @property
    def rate_limiter(self) -> RateLimiter:
        """Get the request limiter over the configured database (lazy loaded)."""
        if self._rate_limiter is None:
            self._rate_limiter = RateLimiter(
                max_requests=self.config.rate_limit_max_requests,
                window_minutes=self.config.rate_limit_window_minutes,
                redis=self.redis,
            )
        return self._rate_limiter

    def require_database(self) -> bool:
        """Report an error unless changes will persist to the configured database."""
        if self.config.database_url:
            return True
        self.output({"error": "FAUCET_DATABASE_URL is not set; changes would not persist"})
        return False

    def output(self, data: dict) -> None:
        """Output data in the appropriate format."""
        if self.json_output:
            print(json.dumps(data, indent=2))
        else:
            self._print_formatted(data)

    def _print_formatted(self, data: dict, indent: int = 0) -> None:
        """Print data in human-readable format."""
        prefix = "  " * indent
        for key, value in data.items():
            if isinstance(value, dict):
                print(f"{prefix}{key}:")
                self._print_formatted(value, indent + 1)
            elif isinstance(value, list):
                print(f"{prefix}{key}:")
                for item in value:
                    if isinstance(item, dict):
                        print(f"{prefix}  -")
                        self._print_formatted(item, indent + 2)
                    else:
                        print(f"{prefix}  - {item}")
            else:
                print(f"{prefix}{key}: {value}")


# Wallet commands


def cmd_wallet_address(ctx: CLIContext) -> int:
    """Show wallet address."""
    try:
        ctx.output({"address": ctx.wallet.address})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


# Chain commands


def cmd_chains_list(ctx: CLIContext) -> int:
    """List registered chains."""
    try:
        chains = ctx.registry.list_chains()
        ctx.output({"chains": [chain.to_dict() for chain in chains]})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_chains_add(
    ctx: CLIContext,
    name: str,
    chain_id: int,
    rpc_url: str | None,
    explorer: str | None,
) -> int:
    """Register a chain."""
    try:
        if chain_id <= 0:
            ctx.output({"error": "Chain ID must be positive"})
            return 1

        if ctx.dry_run:
            ctx.output(
                {
                    "dry_run": True,
                    "action": "add_chain",
                    "name": name,
                    "chain_id": chain_id,
                    "rpc_url": rpc_url,
                    "message": f"Would register chain {name} ({chain_id})",
                }
            )
            return 0

        if not ctx.require_database():
            return 1

        chain = ctx.registry.add_chain(
            name=name, chain_id=chain_id, rpc_url=rpc_url, block_explorer_url=explorer
        )
        ctx.output({"success": True, "action": "add_chain", "chain": chain.to_dict()})
        return 0
    except FaucetError as e:
        ctx.output({"error": e.message})
        return 1
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_chains_check(ctx: CLIContext, chain_id: int) -> int:
    """Connect to a registered chain and report the signer it would use."""
    try:
        chain = ctx.registry.get_chain(chain_id)
        if chain is None:
            ctx.output({"error": f"Chain {chain_id} has not been added"})
            return 1

        client = asyncio.run(ctx.pool.get_client(chain))
        ctx.output(
            {
                "chain": chain.name,
                "chain_id": client.chain_id,
                "rpc_url": client.rpc_url,
                "connected": client.connected,
                "signer": client.signer_address,
                "explorer": chain.get_address_url(client.signer_address),
            }
        )
        return 0
    except ClientUnavailable as e:
        ctx.output({"error": e.message, "chain_id": chain_id})
        return 1
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


# Token commands


def cmd_tokens_list(ctx: CLIContext) -> int:
    """List registered tokens."""
    try:
        tokens = ctx.registry.list_tokens()
        ctx.output({"tokens": [token.to_dict() for token in tokens]})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_tokens_add(
    ctx: CLIContext,
    name: str,
    address: str,
    decimals: int,
    chain_id: int,
    amount_str: str,
) -> int:
    """Register a token on a chain."""
    try:
        if ctx.dry_run:
            if not validate_address(address):
                ctx.output({"error": f"Invalid address: {address}"})
                return 1
            ctx.output(
                {
                    "dry_run": True,
                    "action": "add_token",
                    "name": name,
                    "address": address.lower(),
                    "chain_id": chain_id,
                    "distribution_amount": str(parse_units(amount_str, decimals)),
                    "message": f"Would register {amount_str} {name} per claim on chain {chain_id}",
                }
            )
            return 0

        if not ctx.require_database():
            return 1

        token = ctx.registry.add_token(
            name=name,
            token_address=address,
            decimals=decimals,
            chain_id=chain_id,
            amount=amount_str,
        )
        ctx.output({"success": True, "action": "add_token", "token": token.to_dict()})
        return 0
    except ValueError:
        ctx.output({"error": f"Invalid amount: {amount_str}"})
        return 1
    except FaucetError as e:
        ctx.output({"error": e.message})
        return 1
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


# Claim commands


def _claim_dict(record) -> dict:
    return {
        "claim_id": record.claim_id,
        "ip_address": record.ip_address,
        "wallet_address": record.wallet_address,
        "created_at": record.created_at.isoformat(),
    }


def cmd_claims_show(ctx: CLIContext, wallet: str) -> int:
    """Show the claim held by a wallet."""
    try:
        if not validate_address(wallet):
            ctx.output({"error": f"Invalid address: {wallet}"})
            return 1

        record = ctx.ledger.find(wallet_address=wallet)
        if record is None:
            ctx.output({"wallet_address": wallet.lower(), "claimed": False})
            return 0
        ctx.output({"claimed": True, "claim": _claim_dict(record)})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_claims_reset(ctx: CLIContext, wallet: str) -> int:
    """Delete a wallet's claim and the IP slot it holds."""
    try:
        if not validate_address(wallet):
            ctx.output({"error": f"Invalid address: {wallet}"})
            return 1

        if not ctx.require_database():
            return 1

        record = ctx.ledger.find(wallet_address=wallet)
        if record is None:
            ctx.output({"error": f"No claim found for {wallet.lower()}"})
            return 1

        if ctx.dry_run:
            ctx.output(
                {
                    "dry_run": True,
                    "action": "reset_claim",
                    "claim": _claim_dict(record),
                    "message": f"Would delete the claim of {record.wallet_address}",
                }
            )
            return 0

        ctx.ledger.reset_wallet(wallet)
        ctx.output({"success": True, "action": "reset_claim", "claim": _claim_dict(record)})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1

# Rate limit commands


def cmd_ratelimit_show(ctx: CLIContext, ip: str) -> int:
    """Show how many requests an IP has left in the current window."""
    try:
        if not ctx.require_database():
            return 1

        remaining = asyncio.run(ctx.rate_limiter.get_remaining(ip))
        ctx.output(
            {
                "ip": ip,
                "remaining": remaining,
                "limit": ctx.config.rate_limit_max_requests,
                "window_minutes": ctx.config.rate_limit_window_minutes,
            }
        )
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def cmd_ratelimit_reset(ctx: CLIContext, ip: str) -> int:
    """Clear an IP's current request window."""
    try:
        if not ctx.require_database():
            return 1

        if ctx.dry_run:
            ctx.output(
                {
                    "dry_run": True,
                    "action": "reset_rate_limit",
                    "ip": ip,
                    "message": f"Would clear the request window of {ip}",
                }
            )
            return 0

        ctx.rate_limiter.reset(ip)
        ctx.output({"success": True, "action": "reset_rate_limit", "ip": ip})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def run_cli(args: argparse.Namespace) -> int:
    """Execute CLI command based on parsed arguments.

    Returns
    -------
    int
        Exit code: 0 for success, positive for error, -1 signals caller
        to show help or start service mode (no CLI command specified).
    """
    # Load config
    try:
        config = FaucetConfig()
    except Exception as e:
        if args.json:
            print(json.dumps({"error": f"Configuration error: {e}"}))
        else:
            print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    ctx = CLIContext(config, dry_run=args.dry_run, json_output=args.json)

    # Route to appropriate command
    if args.command == "wallet":
        if args.wallet_command == "address":
            return cmd_wallet_address(ctx)
        print("Usage: continuum-faucet wallet [address]", file=sys.stderr)
        return 1

    elif args.command == "chains":
        if args.chains_command == "list":
            return cmd_chains_list(ctx)
        elif args.chains_command == "add":
            return cmd_chains_add(ctx, args.name, args.chain_id, args.rpc_url, args.explorer)
        elif args.chains_command == "check":
            return cmd_chains_check(ctx, args.chain_id)
        print("Usage: continuum-faucet chains [list|add|check]", file=sys.stderr)
        return 1

    elif args.command == "tokens":
        if args.tokens_command == "list":
            return cmd_tokens_list(ctx)
        elif args.tokens_command == "add":
            return cmd_tokens_add(
                ctx, args.name, args.address, args.decimals, args.chain_id, args.amount
            )
        print("Usage: continuum-faucet tokens [list|add]", file=sys.stderr)
        return 1

    elif args.command == "claims":
        if args.claims_command == "show":
            return cmd_claims_show(ctx, args.wallet)
        elif args.claims_command == "reset":
            return cmd_claims_reset(ctx, args.wallet)
        print("Usage: continuum-faucet claims [show|reset]", file=sys.stderr)
        return 1

    elif args.command == "ratelimit":
        if args.ratelimit_command == "show":
            return cmd_ratelimit_show(ctx, args.ip)
        elif args.ratelimit_command == "reset":
            return cmd_ratelimit_reset(ctx, args.ip)
        print("Usage: continuum-faucet ratelimit [show|reset]", file=sys.stderr)
        return 1

    else:
        # No subcommand - show help
        return -1  # Signal to caller to show help or run service
