"""Extension points collaborators use to steer or observe diversion.

Filters transform a value and hand it on; actions are notifications whose
return values are ignored. Callbacks run in ascending priority, and in
registration order within one priority.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Filters
SKIP_QUERY_INTEGRATION = "skip_query_integration"
QUERY_POST_TYPE = "query_post_type"
SEARCHABLE_POST_TYPES = "searchable_post_types"
SEARCH_SCOPE = "search_scope"
RETURN_FIELDS = "return_fields"
CACHED_RESULTS = "cached_results"

# Actions
SEARCH_EMPTY = "search_empty"
NON_CACHED_SEARCH = "non_cached_search"
SEARCH = "search"

DEFAULT_PRIORITY = 10


class Hooks:
    """Named filter and action registry.

    Usage::

        hooks = Hooks()
        hooks.add_filter(SKIP_QUERY_INTEGRATION, lambda skip, query: query.get("admin"))
        hooks.add_action(SEARCH, lambda records, envelope, query: ...)
    """

    def __init__(self) -> None:
        self._filters: dict[str, list[tuple[int, int, Callable[..., Any]]]] = defaultdict(list)
        self._actions: dict[str, list[tuple[int, int, Callable[..., Any]]]] = defaultdict(list)
        self._seq = 0

    def _add(self, table: dict, name: str, callback: Callable[..., Any], priority: int) -> None:
        self._seq += 1
        table[name].append((priority, self._seq, callback))
        table[name].sort(key=lambda entry: (entry[0], entry[1]))

    @staticmethod
    def _remove(table: dict, name: str, callback: Callable[..., Any]) -> bool:
        entries = table.get(name, [])
        kept = [entry for entry in entries if entry[2] is not callback]
        removed = len(kept) != len(entries)
        if removed:
            table[name] = kept
        return removed

    def add_filter(
        self, name: str, callback: Callable[..., Any], priority: int = DEFAULT_PRIORITY
    ) -> None:
        self._add(self._filters, name, callback, priority)

    def remove_filter(self, name: str, callback: Callable[..., Any]) -> bool:
        return self._remove(self._filters, name, callback)

    def add_action(
        self, name: str, callback: Callable[..., Any], priority: int = DEFAULT_PRIORITY
    ) -> None:
        self._add(self._actions, name, callback, priority)

    def remove_action(self, name: str, callback: Callable[..., Any]) -> bool:
        return self._remove(self._actions, name, callback)

    def has(self, name: str) -> bool:
        return bool(self._filters.get(name) or self._actions.get(name))

    def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """Pass *value* through every filter registered under *name*."""
        for _, _, callback in list(self._filters.get(name, ())):
            value = callback(value, *args)
        return value

    def do_action(self, name: str, *args: Any) -> None:
        callbacks = list(self._actions.get(name, ()))
        if callbacks:
            logger.debug("Dispatching action %s to %d listener(s)", name, len(callbacks))
        for _, _, callback in callbacks:
            callback(*args)
