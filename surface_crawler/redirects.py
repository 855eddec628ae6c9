"""
Redirect Tracker
================
Per-URL redirect chains with closed-cycle detection.

``is_loop`` only recognises chains that have already closed back on their
first hop (``chain[0] == chain[-1]``).  Longer non-repeating cycles are
not detected.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, List

logger = logging.getLogger(__name__)

MAX_CHAIN_LENGTH = 10


class RedirectTracker:
    """Records ``from → to`` redirect hops keyed by the requested URL."""

    def __init__(self, max_chain_length: int = MAX_CHAIN_LENGTH):
        self.max_chain_length = max_chain_length
        self._chains: Dict[str, Deque[str]] = {}

    def record(self, from_url: str, to_url: str) -> None:
        chain = self._chains.get(from_url)
        if chain is None:
            chain = deque(maxlen=self.max_chain_length)
            self._chains[from_url] = chain
        chain.append(to_url)
        logger.debug(f"[REDIRECT] {from_url} → {to_url} (chain length {len(chain)})")

    def is_loop(self, url: str) -> bool:
        """True if *url* sits on any chain that has closed on itself."""
        for chain in self._chains.values():
            if len(chain) >= 2 and chain[0] == chain[-1] and url in chain:
                return True
        return False

    def chain(self, from_url: str) -> List[str]:
        return list(self._chains.get(from_url, ()))

    def __len__(self) -> int:
        return len(self._chains)

    def __contains__(self, from_url: str) -> bool:
        return from_url in self._chains
