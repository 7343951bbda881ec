"""
mintfeed/session.py

The live session: IDLE -> SUBSCRIBING -> STREAMING -> IDLE.

start():
- refuses while the log stream is unavailable (TransportError, error message kept)
- resets the aggregator (events, summaries, metadata) and takes the new generation
- subscribes to the three transfer signatures and spawns the pump task

Each delivered log is handled in its own task:
  transaction lookup -> allow-list -> decode -> metadata kick-off
  -> timestamps (one lookup per block) -> ingest

Every task carries the generation it was started under. The aggregator
discards updates from older generations, so work that finishes after a
stop/start cannot leak into the new session.

stop() unsubscribes, cancels the pump and in-flight log tasks, and returns
to IDLE. Collected events stay visible until the next start(). A stop()
during SUBSCRIBING wins: the subscription is dropped once it lands.
The stream ending, cleanly or not, also returns the session to IDLE with
an error.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Coroutine, Optional, Protocol, Sequence

from mintfeed.abi import MINT_LOG_TOPICS
from mintfeed.aggregator import Aggregator
from mintfeed.allowlist import ContractAllowList
from mintfeed.chain import TransportError
from mintfeed.decode import decode_mint_log
from mintfeed.metadata import MetadataEnricher
from mintfeed.models import MintItem, RawLog
from mintfeed.timestamps import TimestampResolver

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"


class LogSource(Protocol):
    @property
    def available(self) -> bool: ...

    async def subscribe(self, topics: list[list[str]]) -> None: ...

    def logs(self) -> AsyncIterator[RawLog]: ...

    async def unsubscribe(self) -> None: ...


class TransactionSource(Protocol):
    async def get_transaction_to(self, tx_hash: str) -> Optional[str]: ...


class LiveSession:
    def __init__(
        self,
        stream: LogSource,
        transactions: TransactionSource,
        allowlist: ContractAllowList,
        aggregator: Aggregator,
        enricher: MetadataEnricher,
        resolver: TimestampResolver,
    ):
        self.stream = stream
        self.transactions = transactions
        self.allowlist = allowlist
        self.aggregator = aggregator
        self.enricher = enricher
        self.resolver = resolver

        self.state = SessionState.IDLE
        self.error: Optional[str] = None
        self._generation: Optional[int] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def can_start(self) -> bool:
        return self.state is SessionState.IDLE and self.stream.available

    # ----------------------------
    # Lifecycle
    # ----------------------------

    async def start(self) -> None:
        if self.state is not SessionState.IDLE:
            return
        if not self.stream.available:
            self.error = "WebSocket provider not available. Cannot start live feed."
            raise TransportError(self.error)

        self.state = SessionState.SUBSCRIBING
        self.error = None
        generation = self.aggregator.reset()
        self._generation = generation

        try:
            await self.stream.subscribe(MINT_LOG_TOPICS)
        except TransportError as e:
            if generation == self._generation:
                self._fail(str(e))
            raise

        if generation != self._generation:
            # stop() ran while subscribing
            await self.stream.unsubscribe()
            return

        self.state = SessionState.STREAMING
        self._pump_task = asyncio.create_task(self._pump(generation))
        logger.info("live session %s started", generation)

    async def stop(self) -> None:
        if self.state is SessionState.IDLE:
            return
        logger.info("stopping live session %s", self._generation)
        self.state = SessionState.IDLE
        self._generation = None

        await self.stream.unsubscribe()

        pending = [t for t in (self._pump_task, *self._tasks) if t is not None and not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._pump_task = None

    async def wait_closed(self) -> None:
        """Wait until the pump ends (stop() or transport loss)."""
        task = self._pump_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every in-flight log task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fail(self, message: str) -> None:
        logger.error("live session failed: %s", message)
        self.error = message
        self.state = SessionState.IDLE
        self._generation = None

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ----------------------------
    # Pipeline
    # ----------------------------

    async def _pump(self, generation: int) -> None:
        try:
            async for log in self.stream.logs():
                if generation != self._generation:
                    break
                self._spawn(self.handle_log(generation, log))
        except TransportError as e:
            if generation == self._generation:
                self._fail(str(e))
            return
        if generation == self._generation:
            self._fail("Log stream closed")

    async def handle_log(self, generation: int, log: RawLog) -> list[MintItem]:
        """Run one log through the pipeline; failures stay with this log."""
        try:
            tx_to = await self.transactions.get_transaction_to(log.tx_hash)
            if not self.allowlist.allows(tx_to):
                return []

            items = decode_mint_log(log)
            if items:
                await self.process_items(generation, items)
            return items
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("error processing live log tx=%s index=%s: %s", log.tx_hash, log.log_index, e)
            return []

    async def process_items(self, generation: int, items: Sequence[MintItem]) -> None:
        requested: set[str] = set()
        for item in items:
            if item.contract in requested or item.contract in self.aggregator.store:
                continue
            requested.add(item.contract)
            self._spawn(self._enrich(generation, item))

        stamped = await self.resolver.resolve(items)
        self.aggregator.ingest(stamped, generation)

    async def _enrich(self, generation: int, item: MintItem) -> None:
        meta = await self.enricher.enrich(item.contract, item.type, generation)
        if meta is not None:
            self.aggregator.apply_metadata(generation, item.contract, meta)
