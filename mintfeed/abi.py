"""
mintfeed/abi.py

Event signatures and the minimal ABI the pipeline needs.

Topics are derived from the canonical event signatures instead of being
pasted as opaque hashes, so a typo in a signature cannot silently stop
matching logs.
"""

from typing import Any

from eth_utils import keccak

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# 32-byte left-padded zero address, as it appears in an indexed topic.
ZERO_TOPIC = "0x" + "00" * 32


def event_topic(signature: str) -> str:
    """keccak256 of an event signature as a lowercase 0x-hex topic."""
    return "0x" + keccak(text=signature).hex()


# ERC-20 / ERC-721: Transfer(from, to, value|tokenId)
TRANSFER_TOPIC = event_topic("Transfer(address,address,uint256)")

# ERC-1155: TransferSingle(operator, from, to, id, value)
TRANSFER_SINGLE_TOPIC = event_topic("TransferSingle(address,address,address,uint256,uint256)")

# ERC-1155: TransferBatch(operator, from, to, ids, values)
TRANSFER_BATCH_TOPIC = event_topic("TransferBatch(address,address,address,uint256[],uint256[])")

# Single OR-set on topic0; anything else is filtered out client-side.
MINT_LOG_TOPICS: list[list[str]] = [[TRANSFER_TOPIC, TRANSFER_SINGLE_TOPIC, TRANSFER_BATCH_TOPIC]]

# Read-only descriptors shared by ERC-20, ERC-721 and ERC-1155 contracts that implement them.
METADATA_ABI: list[dict[str, Any]] = [
    {
        "inputs": [],
        "name": "name",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "symbol",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]
