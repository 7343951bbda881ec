import asyncio
from typing import Any, Optional

import pytest
from eth_abi import encode
from web3 import Web3

from mintfeed.abi import TRANSFER_BATCH_TOPIC, TRANSFER_SINGLE_TOPIC, TRANSFER_TOPIC, ZERO_TOPIC
from mintfeed.chain import TransportError
from mintfeed.models import RawLog

MINTER = Web3.to_checksum_address("0x00000000009a1e02f00e280dcfa4c81c55724212")
NFT = Web3.to_checksum_address("0x1111111111111111111111111111111111111111")
COIN = Web3.to_checksum_address("0x2222222222222222222222222222222222222222")
MULTI = Web3.to_checksum_address("0x3333333333333333333333333333333333333333")
ALICE = Web3.to_checksum_address("0xa11ce00000000000000000000000000000000001")
OPERATOR = Web3.to_checksum_address("0x0be7a70000000000000000000000000000000002")


def addr_topic(addr: str) -> str:
    return "0x" + "0" * 24 + addr[2:].lower()


def int_topic(n: int) -> str:
    return "0x" + format(n, "064x")


def tx_hash(n: int) -> str:
    return "0x" + format(n, "064x")


class LogFactory:
    """Builds RawLogs for the three transfer signatures."""

    def make(self, topics, data: bytes = b"", address: str = NFT, block: int = 100, tx: int = 1, index: int = 0) -> RawLog:
        return RawLog(
            address=address,
            topics=tuple(topics),
            data=data,
            block_number=block,
            tx_hash=tx_hash(tx),
            log_index=index,
        )

    def erc721(self, token_id: int, to: str = ALICE, address: str = NFT, **kw) -> RawLog:
        topics = [TRANSFER_TOPIC, ZERO_TOPIC, addr_topic(to), int_topic(token_id)]
        return self.make(topics, address=address, **kw)

    def erc20(self, amount: int, to: str = ALICE, address: str = COIN, **kw) -> RawLog:
        topics = [TRANSFER_TOPIC, ZERO_TOPIC, addr_topic(to)]
        return self.make(topics, encode(["uint256"], [amount]), address=address, **kw)

    def erc1155_single(self, token_id: int, value: int, to: str = ALICE, address: str = MULTI, **kw) -> RawLog:
        topics = [TRANSFER_SINGLE_TOPIC, addr_topic(OPERATOR), ZERO_TOPIC, addr_topic(to)]
        return self.make(topics, encode(["uint256", "uint256"], [token_id, value]), address=address, **kw)

    def erc1155_batch(self, ids, values, to: str = ALICE, address: str = MULTI, **kw) -> RawLog:
        topics = [TRANSFER_BATCH_TOPIC, addr_topic(OPERATOR), ZERO_TOPIC, addr_topic(to)]
        return self.make(topics, encode(["uint256[]", "uint256[]"], [list(ids), list(values)]), address=address, **kw)


class FakeChain:
    """In-memory stand-in for mintfeed.chain.Chain."""

    def __init__(self, default_to: Optional[str] = MINTER):
        self.default_to = default_to
        self.tx_to: dict[str, Any] = {}
        self.failing_blocks: set[int] = set()
        self.metadata: dict[tuple[str, str], Any] = {}
        self.block_calls: list[int] = []
        self.meta_calls: list[tuple[str, str]] = []
        self.gate: Optional[asyncio.Event] = None

    async def get_transaction_to(self, tx: str) -> Optional[str]:
        value = self.tx_to.get(tx, self.default_to)
        if isinstance(value, Exception):
            raise value
        return value

    async def get_block_timestamp(self, block_number: int) -> Optional[int]:
        self.block_calls.append(block_number)
        if block_number in self.failing_blocks:
            raise RuntimeError(f"block {block_number} unavailable")
        return 1_700_000_000 + block_number

    async def call_metadata(self, address: str, fn_name: str) -> Any:
        self.meta_calls.append((address.lower(), fn_name))
        if self.gate is not None:
            await self.gate.wait()
        defaults = {"name": "Token", "symbol": "TKN", "decimals": 18}
        value = self.metadata.get((address.lower(), fn_name), defaults[fn_name])
        if isinstance(value, Exception):
            raise value
        return value

    def calls(self, fn_name: str) -> int:
        return sum(1 for _, fn in self.meta_calls if fn == fn_name)


class FakeStream:
    """Delivers a fixed list of logs, then stays open until unsubscribed (or fails)."""

    def __init__(
        self,
        logs=(),
        available: bool = True,
        fail_subscribe: bool = False,
        fail_after: bool = False,
        end_after: bool = False,
    ):
        self.available = available
        self.fail_subscribe = fail_subscribe
        self.fail_after = fail_after
        self.end_after = end_after
        self.subscribe_gate: Optional[asyncio.Event] = None
        self.active = False
        self.pending = list(logs)
        self.subscribed_topics = None
        self.unsubscribed = 0
        self.delivered = asyncio.Event()
        self.closed = asyncio.Event()

    async def subscribe(self, topics) -> None:
        if self.fail_subscribe:
            raise TransportError("Log subscription failed: connection refused")
        if self.subscribe_gate is not None:
            await self.subscribe_gate.wait()
        self.subscribed_topics = topics
        self.active = True

    async def logs(self):
        while self.pending:
            yield self.pending.pop(0)
        self.delivered.set()
        if self.fail_after:
            raise TransportError("Log stream lost: socket closed")
        if self.end_after:
            return
        await self.closed.wait()

    async def unsubscribe(self) -> None:
        if self.active:
            self.unsubscribed += 1
        self.active = False
        self.closed.set()


@pytest.fixture
def logs() -> LogFactory:
    return LogFactory()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()
