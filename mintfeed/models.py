"""
mintfeed/models.py

Domain types shared by the pipeline:
- RawLog: a chain log as delivered by the log stream (immutable)
- MintItem: one decoded mint event (a batch log yields several)
- ContractMeta: name/symbol/decimals of a token contract, each optional
- CollSummary: running per-contract totals

Token ids and amounts are kept as base-10 strings. On-chain uint256 values
do not fit fixed-width integers on the presentation side, so they never
leave the decoder as ints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class TokenType(str, Enum):
    ERC20 = "ERC-20"
    ERC721 = "ERC-721"
    ERC1155 = "ERC-1155"


def _hex(value: Any) -> str:
    """Render bytes/HexBytes or a hex string as a lowercase 0x-prefixed string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    s = str(value).lower()
    return s if s.startswith("0x") else "0x" + s


def _quantity(value: Any) -> int:
    """JSON-RPC quantities arrive as ints (formatted) or hex strings (raw)."""
    if isinstance(value, int):
        return value
    return int(str(value), 16)


def _data_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    s = str(value or "0x")
    s = s[2:] if s.startswith("0x") else s
    return bytes.fromhex(s)


@dataclass(frozen=True)
class RawLog:
    address: str
    topics: tuple[str, ...]
    data: bytes
    block_number: int
    tx_hash: str
    log_index: int

    @classmethod
    def from_web3(cls, log: Any) -> RawLog:
        """
        Build a RawLog from a web3 LogReceipt (AttributeDict with HexBytes)
        or from a raw JSON-RPC log dict (hex strings).
        """
        return cls(
            address=str(log["address"]),
            topics=tuple(_hex(t) for t in (log.get("topics") or [])),
            data=_data_bytes(log.get("data")),
            block_number=_quantity(log["blockNumber"]),
            tx_hash=_hex(log["transactionHash"]),
            log_index=_quantity(log["logIndex"]),
        )


@dataclass(frozen=True)
class MintItem:
    block_number: int
    tx_hash: str
    log_index: int
    contract: str
    to: str
    type: TokenType
    token_id: Optional[str] = None
    amount: Optional[str] = None
    timestamp: Optional[int] = None
    # Position inside a TransferBatch log; 0 for single-value logs.
    sub_index: int = 0

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.block_number, self.log_index, self.sub_index)


@dataclass(frozen=True)
class ContractMeta:
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None


@dataclass
class CollSummary:
    address: str
    type: TokenType
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    total_mint_events: int = 0
    unique_tokens: set[str] = field(default_factory=set)

    @property
    def unique_token_count(self) -> int:
        return len(self.unique_tokens)

    @property
    def tracks_token_ids(self) -> bool:
        """ERC-20 mints carry no token id, so the unique count means nothing there."""
        return self.type is not TokenType.ERC20

    def record(self, item: MintItem) -> None:
        self.total_mint_events += 1
        if item.token_id:
            self.unique_tokens.add(item.token_id)

    def merge_meta(self, meta: ContractMeta) -> None:
        """Fill fields that are still unset; never overwrite a known value."""
        if self.name is None and meta.name is not None:
            self.name = meta.name
        if self.symbol is None and meta.symbol is not None:
            self.symbol = meta.symbol
        if self.decimals is None and meta.decimals is not None:
            self.decimals = meta.decimals
