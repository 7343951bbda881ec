"""
mintfeed/render.py

Plain-text rendering of the live feed and the contract summary table.

Missing data is shown, never guessed:
- unresolved name -> "Unknown" (feed falls back to the short address)
- unresolved timestamp -> "-"
- ERC-20 unique tokens -> "N/A" (ERC-20 mints carry no token id)
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Mapping, Optional, Sequence

from mintfeed.models import CollSummary, MintItem, TokenType

DEFAULT_DECIMALS = 18


def shorten_address(addr: str) -> str:
    return f"{addr[:6]}...{addr[-4:]}"


def format_units(value: int, decimals: int) -> str:
    """Scale an integer by 10**decimals, keeping at least one fractional digit."""
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** decimals)
    frac_s = str(frac).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{frac_s}"


def format_amount(amount: Optional[str], decimals: Optional[int] = None) -> str:
    if not amount:
        return "N/A"
    try:
        return format_units(int(amount), DEFAULT_DECIMALS if decimals is None else decimals)
    except ValueError:
        return amount


def fmt_time(ts: Optional[int], tz: Optional[tzinfo] = None) -> str:
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts, tz=tz).strftime("%Y-%m-%d %H:%M:%S")


def summary_label(s: CollSummary) -> str:
    label = s.name or "Unknown"
    if s.symbol:
        label += f" ({s.symbol})"
    return label


def unique_tokens_label(s: CollSummary) -> str:
    return str(s.unique_token_count) if s.tracks_token_ids else "N/A"


def mint_details(item: MintItem, decimals: Optional[int] = None) -> str:
    if item.type is TokenType.ERC721:
        return f"ID: {item.token_id}"
    if item.type is TokenType.ERC20:
        return f"Amount: {format_amount(item.amount, decimals)}"
    return f"ID: {item.token_id}, Amt: {item.amount}"


def render_summary_table(summaries: Sequence[CollSummary]) -> str:
    if not summaries:
        return "No data yet."

    header = f"{'Contract':<32} {'Type':<9} {'Address':<14} {'Mints':>7} {'Unique Tokens':>14}"
    lines = [header, "-" * len(header)]
    for s in summaries:
        lines.append(
            f"{summary_label(s)[:32]:<32} {s.type.value:<9} {shorten_address(s.address):<14} "
            f"{s.total_mint_events:>7} {unique_tokens_label(s):>14}"
        )
    return "\n".join(lines)


def render_feed_row(item: MintItem, summary: Optional[CollSummary] = None, tz: Optional[tzinfo] = None) -> str:
    name = summary.name if summary else None
    decimals = summary.decimals if summary else None
    when = f"{fmt_time(item.timestamp, tz)} ({item.block_number})"
    return (
        f"{when:<32} {item.type.value:<9} {(name or shorten_address(item.contract))[:24]:<24} "
        f"{shorten_address(item.to):<14} {mint_details(item, decimals)}  tx {shorten_address(item.tx_hash)}"
    )


def render_feed(
    events: Sequence[MintItem],
    summaries: Mapping[str, CollSummary],
    limit: Optional[int] = None,
    tz: Optional[tzinfo] = None,
) -> str:
    if not events:
        return "Waiting for mint events..."
    shown = events if limit is None else events[:limit]
    return "\n".join(render_feed_row(it, summaries.get(it.contract), tz) for it in shown)


def render_report(
    events: Sequence[MintItem],
    summaries: Mapping[str, CollSummary],
    ranked: Sequence[CollSummary],
    feed_limit: int,
    tz: Optional[tzinfo] = None,
) -> str:
    """Exit report: the newest feed_limit mints, then the contract summary table."""
    return "\n".join([
        f"Recent Mints (latest {feed_limit})",
        render_feed(events, summaries, limit=feed_limit, tz=tz),
        "",
        "Contract Summary",
        render_summary_table(ranked),
    ])
