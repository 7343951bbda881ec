"""
mintfeed/decode.py

Turns a RawLog into zero or more MintItem rows.

- ERC-721: tokenId is the integer value of topic3
- ERC-20: amount is the uint256 in data
- ERC-1155 single: (id, value) in data
- ERC-1155 batch: (ids[], values[]) in data; one MintItem per index, all
  sharing the log's block/tx/contract/recipient. Each gets sub_index=i so the
  rows stay individually addressable and keep their order inside the log.

A log that fails to decode yields [] (and a debug line); it must never stop
the feed.
"""

from __future__ import annotations

import logging

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from mintfeed.classify import MintKind, classify_topics
from mintfeed.models import MintItem, RawLog, TokenType

logger = logging.getLogger(__name__)


def topic_to_address(topic: str) -> str:
    """Low 20 bytes of a 32-byte topic, checksummed."""
    return Web3.to_checksum_address("0x" + topic[-40:])


def topic_to_int(topic: str) -> int:
    return int(topic, 16)


def _base(log: RawLog, to: str, token_type: TokenType) -> dict:
    return {
        "block_number": log.block_number,
        "tx_hash": log.tx_hash,
        "log_index": log.log_index,
        "contract": Web3.to_checksum_address(log.address),
        "to": to,
        "type": token_type,
    }


def _decode(log: RawLog, kind: MintKind) -> list[MintItem]:
    t = log.topics

    if kind is MintKind.ERC721:
        base = _base(log, topic_to_address(t[2]), TokenType.ERC721)
        return [MintItem(**base, token_id=str(topic_to_int(t[3])))]

    if kind is MintKind.ERC20:
        base = _base(log, topic_to_address(t[2]), TokenType.ERC20)
        (amount,) = decode(["uint256"], log.data)
        return [MintItem(**base, amount=str(amount))]

    if kind is MintKind.ERC1155_SINGLE:
        base = _base(log, topic_to_address(t[3]), TokenType.ERC1155)
        token_id, value = decode(["uint256", "uint256"], log.data)
        return [MintItem(**base, token_id=str(token_id), amount=str(value))]

    if kind is MintKind.ERC1155_BATCH:
        base = _base(log, topic_to_address(t[3]), TokenType.ERC1155)
        ids, values = decode(["uint256[]", "uint256[]"], log.data)
        if len(ids) != len(values):
            raise ValueError(f"TransferBatch ids/values length mismatch: {len(ids)} != {len(values)}")
        return [
            MintItem(**base, token_id=str(token_id), amount=str(value), sub_index=i)
            for i, (token_id, value) in enumerate(zip(ids, values))
        ]

    return []


def decode_mint_log(log: RawLog) -> list[MintItem]:
    """Classify and decode a log. Non-mints and malformed logs give []."""
    kind = classify_topics(log.topics, len(log.data))
    if not kind.is_mint:
        return []

    try:
        return _decode(log, kind)
    except (DecodingError, ValueError) as e:
        logger.debug(
            "dropping malformed %s log tx=%s index=%s: %s",
            kind.value, log.tx_hash, log.log_index, e,
        )
        return []
