"""Per-query result cache.

Results are keyed by a correlation id the cache assigns to the query and
stores in ``query.meta``, not by the query's memory address. An entry is
written once per query and never replaced.
"""

from __future__ import annotations

import logging
import uuid
from typing import Sequence

from searchdivert.models import PlatformQuery, RealizedRecord

logger = logging.getLogger(__name__)

QUERY_ID_KEY = "searchdivert.query_id"


class QueryResultCache:
    """Realized records per query, for the lifetime of one engine instance."""

    def __init__(self) -> None:
        self._entries: dict[str, list[RealizedRecord]] = {}

    @staticmethod
    def query_id(query: PlatformQuery) -> str:
        """Return the query's correlation id, assigning one on first use."""
        qid = query.meta.get(QUERY_ID_KEY)
        if not qid:
            qid = uuid.uuid4().hex[:16]
            query.meta[QUERY_ID_KEY] = qid
        return qid

    def store(self, query: PlatformQuery, records: Sequence[RealizedRecord]) -> bool:
        """Cache *records* for *query*. Returns False if an entry already exists."""
        qid = self.query_id(query)
        if qid in self._entries:
            logger.debug("Cache entry for query %s already set, keeping it", qid)
            return False
        self._entries[qid] = list(records)
        return True

    def get(self, query: PlatformQuery) -> list[RealizedRecord] | None:
        qid = query.meta.get(QUERY_ID_KEY)
        if not qid:
            return None
        return self._entries.get(qid)

    def __contains__(self, query: object) -> bool:
        if not isinstance(query, PlatformQuery):
            return False
        qid = query.meta.get(QUERY_ID_KEY)
        return bool(qid) and qid in self._entries

    def __len__(self) -> int:
        return len(self._entries)
