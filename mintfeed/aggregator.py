"""
mintfeed/aggregator.py

Folds MintItems into the two collections the feed displays:
- events: every item of the session, newest first
- summaries: address -> CollSummary

Two kinds of update reach the aggregator: new items (ingest) and resolved
contract metadata (apply_metadata). Both go through _apply(), which drops
anything tagged with an older session generation and then mutates state
without awaiting, so updates never interleave.

Ordering:
- The event list is fully re-sorted after every ingest by
  (block_number, log_index, sub_index) descending. It is not an incremental
  merge, so arrival order never shows in the result.
- Summary counts are plain increments and do not depend on order.

Duplicates:
- There is no dedup by (tx_hash, log_index). Ingesting the same items twice
  doubles total_mint_events; unique_tokens is a set and does not change.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Sequence

from mintfeed.metadata import MetadataStore
from mintfeed.models import CollSummary, ContractMeta, MintItem

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


def event_order_key(item: MintItem) -> tuple:
    # tx_hash/contract only break exact key ties so the order is deterministic
    return (*item.sort_key, item.tx_hash, item.contract)


def sort_events(items: Iterable[MintItem]) -> list[MintItem]:
    """Newest block first; inside a block highest log index first."""
    return sorted(items, key=event_order_key, reverse=True)


class Aggregator:
    def __init__(self, store: Optional[MetadataStore] = None):
        self.store = store if store is not None else MetadataStore()
        self._events: list[MintItem] = []
        self._summaries: dict[str, CollSummary] = {}
        self._listeners: list[Listener] = []

    # ----------------------------
    # Read side
    # ----------------------------

    @property
    def generation(self) -> int:
        return self.store.generation

    @property
    def events(self) -> list[MintItem]:
        return list(self._events)

    @property
    def summaries(self) -> dict[str, CollSummary]:
        return dict(self._summaries)

    def summary_list(self) -> list[CollSummary]:
        """Summaries with the most minted contracts first."""
        return sorted(self._summaries.values(), key=lambda s: (-s.total_mint_events, s.address))

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, kind: str) -> None:
        for listener in list(self._listeners):
            listener(kind)

    # ----------------------------
    # Write side
    # ----------------------------

    def reset(self) -> int:
        """Start a new session: clear events, summaries and metadata together."""
        self._events = []
        self._summaries = {}
        generation = self.store.reset()
        self._notify("reset")
        return generation

    def ingest(self, items: Sequence[MintItem], generation: Optional[int] = None) -> bool:
        if not items:
            return False
        return self._apply("ingest", generation, lambda: self._fold(items))

    def apply_metadata(self, generation: int, address: str, meta: ContractMeta) -> bool:
        return self._apply("metadata", generation, lambda: self._merge_meta(address, meta))

    def _apply(self, kind: str, generation: Optional[int], update: Callable[[], bool]) -> bool:
        if generation is not None and generation != self.generation:
            logger.debug("dropping %s update from stale session %s (current %s)", kind, generation, self.generation)
            return False
        changed = update()
        if changed:
            self._notify(kind)
        return changed

    def _summary_for(self, item: MintItem) -> CollSummary:
        summary = self._summaries.get(item.contract)
        if summary is None:
            summary = CollSummary(address=item.contract, type=item.type)
            # metadata may have resolved before the first event of this contract
            meta = self.store.get(item.contract)
            if meta is not None:
                summary.merge_meta(meta)
            self._summaries[item.contract] = summary
        return summary

    def _fold(self, items: Sequence[MintItem]) -> bool:
        for item in items:
            self._summary_for(item).record(item)
        self._events = sort_events([*items, *self._events])
        return True

    def _merge_meta(self, address: str, meta: ContractMeta) -> bool:
        summary = self._summaries.get(address)
        if summary is None:
            # seeded from the store when the contract's first event arrives
            return False
        summary.merge_meta(meta)
        return True
