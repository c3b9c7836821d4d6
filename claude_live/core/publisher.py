"""Differential bulk writer for the published variable set."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

logger = logging.getLogger(__name__)


class VariablePublisher:
    """
    Writes variable maps to the store in one bulk call.

    Remembers what this process last wrote so a replay of unchanged values
    costs no store traffic. A full publish rewrites everything, which also
    repairs keys another writer (e.g. an invalidation) overwrote.
    """

    def __init__(self, store: Any) -> None:
        self.store = store
        self._published: Dict[str, str] = {}
        self.writes = 0

    @property
    def published(self) -> Dict[str, str]:
        return dict(self._published)

    def diff(self, values: Mapping[str, str]) -> Dict[str, str]:
        return {k: v for k, v in values.items() if self._published.get(k) != v}

    async def publish(self, values: Mapping[str, str], full: bool = False) -> int:
        """
        Write values (all of them when full, otherwise only drifted keys).

        Returns:
            Number of keys written; 0 means no store call was made
        """
        pending = dict(values) if full else self.diff(values)
        if not pending:
            return 0
        written = await self.store.bulk_set(pending)
        self.writes += 1
        self._published.update(pending)
        logger.debug(f"[Publisher] Wrote {written}/{len(pending)} keys (full={full})")
        return written

    def remember(self, values: Mapping[str, str]) -> None:
        """Record values written by someone else on our behalf."""
        self._published.update(values)

    def forget(self) -> None:
        self._published.clear()
