"""
mintfeed/allowlist.py

Gate applied before any decoding: a log is only considered when the
transaction that emitted it was sent to one of the configured mint contracts.
"""

from __future__ import annotations

from typing import Iterable, Optional


class ContractAllowList:
    def __init__(self, addresses: Iterable[str]):
        self._allowed = frozenset(a.strip().lower() for a in addresses if a and a.strip())

    def __len__(self) -> int:
        return len(self._allowed)

    def allows(self, tx_to: Optional[str]) -> bool:
        """
        True when the transaction target is on the list (case-insensitive).
        Contract-creation transactions have no target and are never allowed.
        """
        if not tx_to:
            return False
        return str(tx_to).lower() in self._allowed
