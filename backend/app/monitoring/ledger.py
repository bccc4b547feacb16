"""
ledger.py — Processed-event ledger for the monitoring loop.

Remembers which earthquakes and bulletins were already handled so a tick
never raises the same alert twice. Each kind keeps at most ``max_entries``
keys; the oldest are forgotten first.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict


class ProcessedEventLedger:
    def __init__(self, max_entries: int = 10_000):
        self._max_entries = max_entries
        self._entries: Dict[str, "OrderedDict[str, None]"] = {}

    def seen(self, kind: str, key: str) -> bool:
        return key in self._entries.get(kind, ())

    def mark(self, kind: str, key: str) -> None:
        keys = self._entries.setdefault(kind, OrderedDict())
        keys[key] = None
        keys.move_to_end(key)
        while len(keys) > self._max_entries:
            keys.popitem(last=False)

    def count(self, kind: str) -> int:
        return len(self._entries.get(kind, ()))
