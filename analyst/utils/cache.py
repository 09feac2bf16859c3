"""Keyed TTL cache for provider lookups.

Replaces the repetitive dict pattern:
    _cache = {"data": None, "timestamp": 0, "ttl": 60}

Usage:
    _team_ids = TTLCache(ttl=3600)

    hit, team_id = _team_ids.get("arsenal")
    if hit:
        return team_id

    team_id = await search()
    _team_ids.set("arsenal", team_id)
"""

import time


class TTLCache:
    """TTL-based key/value cache with a soft size cap."""

    __slots__ = ("ttl", "max_entries", "_entries")

    def __init__(self, ttl: float, max_entries: int = 1024):
        self.ttl = ttl
        self.max_entries = max_entries
        self._entries: dict[object, tuple[float, object]] = {}

    def get(self, key) -> tuple[bool, object]:
        """Return (hit, data). Expired entries are evicted on read."""
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        stored_at, data = entry
        if time.time() - stored_at >= self.ttl:
            self._entries.pop(key, None)
            return False, None
        return True, data

    def set(self, key, data: object) -> None:
        """Store data with current timestamp."""
        if len(self._entries) >= self.max_entries and key not in self._entries:
            # Drop the oldest entry
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            self._entries.pop(oldest, None)
        self._entries[key] = (time.time(), data)

    def invalidate(self, key=None) -> None:
        """Clear one key, or everything."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
