"""In-process query store with bounded history."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

from bellhub.engine.models import Query

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 400


class QueryStore:
    """All known queries by id.

    Waiting and playing queries are always kept; finished and cancelled ones
    are evicted oldest ``updated_at`` first once ``limit`` is exceeded.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.limit = limit
        self._queries: dict[str, Query] = {}
        self._evict_listeners: list[Callable[[str], None]] = []

    def __len__(self) -> int:
        return len(self._queries)

    def __contains__(self, query_id: object) -> bool:
        return query_id in self._queries

    def __iter__(self) -> Iterator[Query]:
        return iter(list(self._queries.values()))

    def get(self, query_id: str) -> Query | None:
        return self._queries.get(query_id)

    def insert(self, query: Query) -> None:
        self._queries[query.id] = query

    def on_evict(self, listener: Callable[[str], None]) -> None:
        """Register a callback invoked with the id of each evicted query."""
        self._evict_listeners.append(listener)

    def retire(self) -> list[str]:
        """Trim terminal queries down to the history limit. Returns evicted ids."""
        if len(self._queries) <= self.limit:
            return []

        removable = sorted(
            (q for q in self._queries.values() if q.is_terminal),
            key=lambda q: q.updated_at,
        )
        evicted: list[str] = []
        for victim in removable:
            if len(self._queries) <= self.limit:
                break
            del self._queries[victim.id]
            evicted.append(victim.id)
            for listener in self._evict_listeners:
                listener(victim.id)

        if evicted:
            logger.debug(f"Evicted {len(evicted)} terminal queries (store size {len(self)})")
        return evicted
