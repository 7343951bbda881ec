"""
mintfeed/timestamps.py

Backfills MintItem.timestamp with one block lookup per distinct block.

A single transaction can emit a TransferBatch with hundreds of ids, and
several logs usually land in the same block, so lookups are grouped by block
number rather than issued per item.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Optional, Protocol, Sequence

from mintfeed.models import MintItem

logger = logging.getLogger(__name__)


class BlockSource(Protocol):
    async def get_block_timestamp(self, block_number: int) -> Optional[int]: ...


class TimestampResolver:
    def __init__(self, blocks: BlockSource):
        self.blocks = blocks

    async def _lookup(self, block_number: int) -> Optional[int]:
        try:
            return await self.blocks.get_block_timestamp(block_number)
        except Exception as e:
            logger.debug("timestamp lookup failed for block %s: %s", block_number, e)
            return None

    async def resolve(self, items: Sequence[MintItem]) -> list[MintItem]:
        """Return items (same order) with timestamps set; failed blocks keep None."""
        block_numbers = list(dict.fromkeys(it.block_number for it in items))
        if not block_numbers:
            return []

        stamps = await asyncio.gather(*(self._lookup(bn) for bn in block_numbers))
        by_block = dict(zip(block_numbers, stamps))

        return [replace(it, timestamp=by_block[it.block_number]) for it in items]
