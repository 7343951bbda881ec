"""
mintfeed/chain.py

The chain-facing collaborators, built on web3.py's async providers:
- Chain: HTTP request/response queries (transactions, blocks, contract calls)
- LogStream: websocket eth_subscribe("logs") delivering RawLog objects

Reconnection and backoff are left to the provider. Anything that prevents the
stream from being established or kept alive is raised as TransportError,
which is the only failure surfaced to the user.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3, WebSocketProvider

from mintfeed.abi import METADATA_ABI
from mintfeed.models import RawLog

logger = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """The log stream could not be established or was permanently lost."""


class Chain:
    def __init__(self, rpc_url: str):
        self.rpc_url = rpc_url
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._contracts: dict[str, Any] = {}

    async def connect(self, expected_chain_id: Optional[int] = None) -> None:
        if not await self.w3.is_connected():
            raise TransportError(f"Could not connect to RPC: {self.rpc_url}")

        if expected_chain_id is not None:
            chain_id = await self.chain_id()
            if chain_id != expected_chain_id:
                logger.warning("RPC %s reports chain id %s, expected %s", self.rpc_url, chain_id, expected_chain_id)

    async def chain_id(self) -> int:
        return int(await self.w3.eth.chain_id)

    async def get_block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def get_transaction_to(self, tx_hash: str) -> Optional[str]:
        """Destination of a transaction; None for contract creation."""
        tx = await self.w3.eth.get_transaction(tx_hash)
        return tx.get("to")

    async def get_block_timestamp(self, block_number: int) -> Optional[int]:
        block = await self.w3.eth.get_block(block_number)
        ts = block.get("timestamp")
        return int(ts) if ts else None

    def _metadata_contract(self, address: str) -> Any:
        checksum = Web3.to_checksum_address(address)
        contract = self._contracts.get(checksum)
        if contract is None:
            contract = self.w3.eth.contract(address=checksum, abi=METADATA_ABI)
            self._contracts[checksum] = contract
        return contract

    async def call_metadata(self, address: str, fn_name: str) -> Any:
        """Call name()/symbol()/decimals() on a contract; reverts propagate."""
        fn = getattr(self._metadata_contract(address).functions, fn_name)
        return await fn().call()


class LogStream:
    def __init__(self, ws_url: str):
        self.ws_url = ws_url
        self.w3: Optional[AsyncWeb3] = None
        self._subscription_id: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.w3 is not None

    async def connect(self) -> None:
        w3 = AsyncWeb3(WebSocketProvider(self.ws_url))
        try:
            await w3.provider.connect()
        except Exception as e:
            raise TransportError(f"WebSocket provider connection failed: {self.ws_url}") from e
        self.w3 = w3

    async def subscribe(self, topics: list[list[str]]) -> None:
        if self.w3 is None:
            raise TransportError("WebSocket provider not available. Cannot start live feed.")
        try:
            self._subscription_id = await self.w3.eth.subscribe("logs", {"topics": topics})
        except Exception as e:
            raise TransportError(f"Log subscription failed: {e}") from e
        logger.info("subscribed to logs (id=%s)", self._subscription_id)

    async def logs(self) -> AsyncIterator[RawLog]:
        if self.w3 is None:
            raise TransportError("WebSocket provider not available. Cannot start live feed.")
        try:
            async for message in self.w3.socket.process_subscriptions():
                if message.get("subscription") != self._subscription_id:
                    continue
                yield RawLog.from_web3(message["result"])
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Log stream lost: {e}") from e

    async def unsubscribe(self) -> None:
        if self.w3 is None or self._subscription_id is None:
            return
        sub_id, self._subscription_id = self._subscription_id, None
        try:
            await self.w3.eth.unsubscribe(sub_id)
        except Exception as e:
            logger.warning("unsubscribe %s failed: %s", sub_id, e)

    async def close(self) -> None:
        await self.unsubscribe()
        if self.w3 is not None:
            await self.w3.provider.disconnect()
            self.w3 = None
