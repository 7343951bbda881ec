"""
mintfeed/run_live.py

Live mint tracker for the configured chain.

- Connects the HTTP RPC (transactions, blocks, metadata calls) and the
  websocket RPC (log subscription)
- Polls the latest block every BLOCK_POLL_SECONDS
- Prints each new mint as it is ingested
- On exit (Ctrl-C or --duration) stops the session and prints the latest
  FEED_LIMIT mints and the contract summary

Usage:
  python -m mintfeed.run_live
  python -m mintfeed.run_live --duration 300 --allow 0xabc...,0xdef...
  python -m mintfeed.run_live --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Callable, Optional

from mintfeed.aggregator import Aggregator
from mintfeed.allowlist import ContractAllowList
from mintfeed.chain import Chain, LogStream, TransportError
from mintfeed.config import load_config
from mintfeed.metadata import MetadataEnricher
from mintfeed.render import render_feed_row, render_report
from mintfeed.session import LiveSession
from mintfeed.timestamps import TimestampResolver

logger = logging.getLogger(__name__)


async def poll_latest_block(chain: Chain, interval_s: float, on_block: Callable[[int], None]) -> None:
    """Report the chain head every interval_s seconds until cancelled."""
    last: Optional[int] = None
    while True:
        try:
            n = await chain.get_block_number()
            if n != last:
                last = n
                on_block(n)
        except Exception as e:
            logger.warning("Failed to fetch latest block: %s", e)
        await asyncio.sleep(interval_s)


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Live ERC-20/721/1155 mint tracker.")
    ap.add_argument("--duration", type=float, default=None, help="Stop after this many seconds (default: run until Ctrl-C)")
    ap.add_argument("--allow", default=None, help="Comma-separated mint contract allow-list (overrides MINT_CONTRACT_ALLOWLIST)")
    ap.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return ap.parse_args(argv)


async def _run(args: argparse.Namespace) -> None:
    cfg = load_config()
    contracts = [a for a in args.allow.split(",") if a.strip()] if args.allow else list(cfg.mint_contracts)
    allowlist = ContractAllowList(contracts)

    chain = Chain(cfg.http_url)
    try:
        await chain.connect(expected_chain_id=cfg.chain_id)
    except TransportError as e:
        raise SystemExit(f"Error: {e}")

    stream = LogStream(cfg.ws_url)
    try:
        await stream.connect()
    except TransportError as e:
        # start() reports the unavailable stream below
        logger.error("%s", e)

    aggregator = Aggregator()
    session = LiveSession(
        stream=stream,
        transactions=chain,
        allowlist=allowlist,
        aggregator=aggregator,
        enricher=MetadataEnricher(chain, aggregator.store),
        resolver=TimestampResolver(chain),
    )

    printed: set[tuple] = set()

    def on_change(kind: str) -> None:
        if kind == "reset":
            printed.clear()
            return
        if kind != "ingest":
            return
        summaries = aggregator.summaries
        for it in reversed(aggregator.events):
            key = (it.tx_hash, *it.sort_key)
            if key in printed:
                continue
            printed.add(key)
            print(render_feed_row(it, summaries.get(it.contract)))

    aggregator.add_listener(on_change)

    print("Resolved settings:")
    print(f"  HTTP RPC   = {cfg.http_url}")
    print(f"  WS RPC     = {cfg.ws_url}")
    print(f"  CHAIN ID   = {cfg.chain_id}")
    print(f"  CONTRACTS  = {len(allowlist)}")
    print("")

    try:
        await session.start()
    except TransportError as e:
        await stream.close()
        raise SystemExit(f"Error: {e}")

    poller = asyncio.create_task(
        poll_latest_block(chain, cfg.block_poll_seconds, lambda n: print(f"Latest block: {n}"))
    )
    try:
        if args.duration is not None:
            await asyncio.wait_for(session.wait_closed(), timeout=args.duration)
        else:
            await session.wait_closed()
    except asyncio.TimeoutError:
        pass
    finally:
        poller.cancel()
        await session.stop()
        await stream.close()

        print("")
        print(render_report(aggregator.events, aggregator.summaries, aggregator.summary_list(), cfg.feed_limit))

    if session.error:
        raise SystemExit(f"Error: {session.error}")


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
