"""
mintfeed/classify.py

Maps a log's topic list (and data length) to the kind of mint it represents.

Rules:
- Transfer with from == 0x0:
    4 topics -> ERC-721 (tokenId indexed in topic3)
    3 topics -> ERC-20  (amount in data)
    anything else is malformed
- TransferSingle with from (topic2) == 0x0 -> ERC-1155 single, recipient topic3
- TransferBatch  with from (topic2) == 0x0 -> ERC-1155 batch,  recipient topic3

classify_topics() is total: unknown or short shapes are NOT_A_MINT, never an error.
"""

from __future__ import annotations

from enum import Enum
from typing import Sequence

from mintfeed.abi import TRANSFER_BATCH_TOPIC, TRANSFER_SINGLE_TOPIC, TRANSFER_TOPIC, ZERO_TOPIC

WORD = 32


class MintKind(Enum):
    ERC20 = "erc20"
    ERC721 = "erc721"
    ERC1155_SINGLE = "erc1155_single"
    ERC1155_BATCH = "erc1155_batch"
    NOT_A_MINT = "not_a_mint"

    @property
    def is_mint(self) -> bool:
        return self is not MintKind.NOT_A_MINT


def _norm(topic: object) -> str:
    return str(topic).lower() if topic is not None else ""


def classify_topics(topics: Sequence[str], data_len: int = 0) -> MintKind:
    """Classify a log by its topic signature and shape."""
    if not topics:
        return MintKind.NOT_A_MINT

    t = [_norm(x) for x in topics]
    sig = t[0]

    if sig == TRANSFER_TOPIC:
        if len(t) < 2 or t[1] != ZERO_TOPIC:
            return MintKind.NOT_A_MINT
        if len(t) == 4:
            return MintKind.ERC721
        if len(t) == 3 and data_len >= WORD:
            return MintKind.ERC20
        return MintKind.NOT_A_MINT

    if sig == TRANSFER_SINGLE_TOPIC:
        if len(t) == 4 and t[2] == ZERO_TOPIC and data_len >= 2 * WORD:
            return MintKind.ERC1155_SINGLE
        return MintKind.NOT_A_MINT

    if sig == TRANSFER_BATCH_TOPIC:
        # two offsets + two lengths is the smallest valid (empty) encoding
        if len(t) == 4 and t[2] == ZERO_TOPIC and data_len >= 4 * WORD:
            return MintKind.ERC1155_BATCH
        return MintKind.NOT_A_MINT

    return MintKind.NOT_A_MINT
