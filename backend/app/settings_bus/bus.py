"""
bus.py — Named-subscriber publish/subscribe for settings changes.

    bus.subscribe("monitor", monitor.on_settings_change)
    await bus.notify_change(new_snapshot)

Every handler receives ``(new, previous)``; ``previous`` is None for the
first snapshot. Handlers may be plain functions or coroutines. The new
snapshot is stored before any handler runs, and each handler runs under
its own ``try`` so a failing subscriber neither blocks the others nor
undoes the change.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from backend.app.settings_bus.schema import SettingsSnapshot

logger = logging.getLogger(__name__)

SettingsHandler = Callable[[SettingsSnapshot, Optional[SettingsSnapshot]], Any]


class SettingsBus:
    def __init__(self, initial: Optional[SettingsSnapshot] = None):
        self._current = initial
        self._handlers: Dict[str, SettingsHandler] = {}

    @property
    def current(self) -> Optional[SettingsSnapshot]:
        return self._current

    @property
    def subscribers(self) -> List[str]:
        return list(self._handlers)

    def seed(self, snapshot: SettingsSnapshot) -> None:
        """Set the current snapshot without notifying (process start)."""
        self._current = snapshot

    def subscribe(self, name: str, handler: SettingsHandler) -> None:
        """Register ``handler`` under ``name``, replacing any previous one."""
        if name in self._handlers:
            logger.debug("Replacing settings subscriber %r", name)
        self._handlers[name] = handler

    def unsubscribe(self, name: str) -> bool:
        return self._handlers.pop(name, None) is not None

    async def notify_change(self, new: SettingsSnapshot) -> List[str]:
        """
        Record ``new`` as current and invoke every subscriber.

        Returns
        -------
        list[str]
            Names of subscribers whose handler raised.
        """
        previous = self._current
        self._current = new
        failed: List[str] = []

        for name, handler in list(self._handlers.items()):
            try:
                result = handler(new, previous)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Settings subscriber %r failed on v%d", name, new.version)
                failed.append(name)

        logger.info(
            "Settings v%d propagated to %d subscriber(s), %d failed",
            new.version, len(self._handlers), len(failed),
        )
        return failed


# ═══════════════════════════════════════════════════════════════════════════
# Diff helpers
# ═══════════════════════════════════════════════════════════════════════════

def has_changed(
    path: str,
    new: SettingsSnapshot,
    previous: Optional[SettingsSnapshot],
) -> bool:
    """
    True when the dotted attribute ``path`` (e.g. ``monitoring.check_interval``)
    differs between snapshots. Always True without a previous snapshot.
    """
    if previous is None:
        return True
    a: Any = new
    b: Any = previous
    for part in path.split("."):
        a, b = getattr(a, part), getattr(b, part)
    return a != b


def monitoring_settings_changed(new: SettingsSnapshot, previous: Optional[SettingsSnapshot]) -> bool:
    return has_changed("monitoring", new, previous)


def notification_settings_changed(new: SettingsSnapshot, previous: Optional[SettingsSnapshot]) -> bool:
    return has_changed("notifications", new, previous)
