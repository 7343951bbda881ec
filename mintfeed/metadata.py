"""
mintfeed/metadata.py

Contract-level metadata (name/symbol/decimals) for the summary table.

MetadataStore is scoped to a live session. Entries are keyed by
(generation, address); reset() bumps the generation and drops everything
older, and fills carrying an old generation are ignored. That is how a fetch
started before a restart is kept out of the new session.

reserve() inserts an empty ContractMeta before the first await, so the entry
itself marks "fetch in flight or done". Only the caller that reserved an
address fetches it; there is no retry, even when some calls failed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from mintfeed.models import ContractMeta, TokenType

logger = logging.getLogger(__name__)


class ContractCaller(Protocol):
    async def call_metadata(self, address: str, fn_name: str) -> Any: ...


class MetadataStore:
    def __init__(self) -> None:
        self._generation = 0
        self._entries: dict[tuple[int, str], ContractMeta] = {}

    @property
    def generation(self) -> int:
        return self._generation

    def reset(self) -> int:
        self._generation += 1
        self._entries = {}
        return self._generation

    def _key(self, address: str) -> tuple[int, str]:
        return (self._generation, address.lower())

    def __contains__(self, address: str) -> bool:
        return self._key(address) in self._entries

    def get(self, address: str) -> Optional[ContractMeta]:
        return self._entries.get(self._key(address))

    def reserve(self, address: str) -> bool:
        """Insert a placeholder; False if the address was already reserved this session."""
        key = self._key(address)
        if key in self._entries:
            return False
        self._entries[key] = ContractMeta()
        return True

    def fill(self, generation: int, address: str, meta: ContractMeta) -> bool:
        """Store a fetch result. Results from an older session are discarded."""
        if generation != self._generation:
            return False
        self._entries[self._key(address)] = meta
        return True


def _settled(address: str, fn_name: str, result: Any) -> Any:
    if isinstance(result, BaseException):
        logger.debug("%s() unavailable on %s: %s", fn_name, address, result)
        return None
    if fn_name == "decimals":
        try:
            return int(result)
        except (TypeError, ValueError):
            logger.debug("decimals() on %s returned %r", address, result)
            return None
    return result


class MetadataEnricher:
    def __init__(self, caller: ContractCaller, store: MetadataStore):
        self.caller = caller
        self.store = store

    async def enrich(
        self, address: str, token_type: TokenType, generation: Optional[int] = None
    ) -> Optional[ContractMeta]:
        """
        Fetch metadata for a contract at most once per session.

        name() and symbol() are always requested, decimals() only for ERC-20.
        The calls settle independently: one revert leaves that field None and
        does not affect the others.

        Returns the stored ContractMeta, or None if another caller already
        owns this address or the session was reset meanwhile.
        """
        if generation is None:
            generation = self.store.generation
        elif generation != self.store.generation:
            return None
        if not self.store.reserve(address):
            return None

        fn_names = ["name", "symbol"]
        if token_type is TokenType.ERC20:
            fn_names.append("decimals")

        results = await asyncio.gather(
            *(self.caller.call_metadata(address, fn) for fn in fn_names),
            return_exceptions=True,
        )
        values = {fn: _settled(address, fn, r) for fn, r in zip(fn_names, results)}

        meta = ContractMeta(
            name=values["name"],
            symbol=values["symbol"],
            decimals=values.get("decimals"),
        )

        if not self.store.fill(generation, address, meta):
            logger.debug("discarding metadata for %s from stale session %s", address, generation)
            return None
        return meta
