"""
Account Registry: the set of routers being watched.

One entry per lowercased address, insertion ordered. Entries are created by
discovery and mutated in place by the sampler; they are never removed, even
when the directory stops listing a router.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class TrackedAccount:
    """A router and the last balance we saw on it."""
    address: str                                # canonical casing, as first discovered
    name: str
    last_balance: int = 0                       # raw token units
    last_checked_at: Optional[datetime] = None  # None until the first successful read

    @property
    def key(self) -> str:
        return self.address.lower()


class AccountRegistry:
    """Deduplicated, insertion-ordered registry of TrackedAccount."""

    def __init__(self):
        self._accounts: dict[str, TrackedAccount] = {}
        self._lock = threading.Lock()

    def upsert(self, address: str, name: str) -> bool:
        """Add the account unless its address is already tracked. Returns True when added."""
        key = address.lower()
        with self._lock:
            if key in self._accounts:
                return False
            self._accounts[key] = TrackedAccount(address=address, name=name)
            return True

    def all(self) -> list[TrackedAccount]:
        """Snapshot in insertion order. Inserts made after the call are not included."""
        with self._lock:
            return list(self._accounts.values())

    def get(self, address: str) -> Optional[TrackedAccount]:
        with self._lock:
            return self._accounts.get(address.lower())

    def __contains__(self, address: str) -> bool:
        return self.get(address) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    def __iter__(self):
        return iter(self.all())
