"""
mintfeed/config.py

Loads configuration from the repo-root .env (or the process environment).

Variables:
  WS_MONAD_TESTNET          websocket RPC used for the log subscription
  HTTP_MONAD_TESTNET        HTTP RPC used for transactions, blocks and contract calls
  CHAIN_ID                  expected chain id (warning on mismatch)
  MINT_CONTRACT_ALLOWLIST   comma-separated mint contract addresses
  BLOCK_POLL_SECONDS        latest-block poll interval
  FEED_LIMIT                rows shown by the CLI feed
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Always load .env from repo root reliably (no find_dotenv() stack-frame issues)
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

DEFAULT_WS_URL = "wss://testnet-rpc.monad.xyz"
DEFAULT_HTTP_URL = "https://testnet-rpc.monad.xyz"
DEFAULT_CHAIN_ID = 10143  # Monad testnet
DEFAULT_MINT_CONTRACTS = ("0x00000000009a1E02f00E280dcfA4C81c55724212",)


def _opt(name: str) -> str | None:
    """Fetch an optional environment variable."""
    v = os.getenv(name)
    return v.strip() if v and v.strip() else None


def _as_addr(x: str) -> str:
    """Basic validation for Ethereum address strings."""
    x = x.strip()
    if not x.startswith("0x") or len(x) != 42:
        raise ValueError(f"Not an address: {x}")
    try:
        int(x[2:], 16)
    except ValueError:
        raise ValueError(f"Not an address: {x}") from None
    return x


def _env_int(name: str, default: int) -> int:
    """Read an int env var with a default."""
    return int(_opt(name) or str(default))


def _env_float(name: str, default: float) -> float:
    """Read a float env var with a default."""
    return float(_opt(name) or str(default))


def _env_addrs(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Read a comma-separated address list."""
    raw = _opt(name)
    if raw is None:
        return default
    return tuple(_as_addr(a) for a in raw.split(",") if a.strip())


@dataclass(frozen=True)
class MintFeedConfig:
    # Network + RPC
    ws_url: str
    http_url: str
    chain_id: int

    # Contracts whose transactions are in scope
    mint_contracts: tuple[str, ...]

    # Presentation
    block_poll_seconds: float
    feed_limit: int


def load_config() -> MintFeedConfig:
    block_poll_seconds = _env_float("BLOCK_POLL_SECONDS", 5.0)
    if block_poll_seconds <= 0:
        raise ValueError(f"BLOCK_POLL_SECONDS must be positive, got {block_poll_seconds}")

    return MintFeedConfig(
        ws_url=_opt("WS_MONAD_TESTNET") or DEFAULT_WS_URL,
        http_url=_opt("HTTP_MONAD_TESTNET") or DEFAULT_HTTP_URL,
        chain_id=_env_int("CHAIN_ID", DEFAULT_CHAIN_ID),
        mint_contracts=_env_addrs("MINT_CONTRACT_ALLOWLIST", DEFAULT_MINT_CONTRACTS),
        block_poll_seconds=block_poll_seconds,
        feed_limit=_env_int("FEED_LIMIT", 25),
    )
