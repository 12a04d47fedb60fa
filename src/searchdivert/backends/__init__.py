"""Pluggable search index backends.

The :class:`SearchIndex` protocol is what the diversion engine calls. The
default implementation is
:class:`~searchdivert.backends.elasticsearch.ElasticsearchIndex`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from searchdivert.models import PlatformQuery, SearchEnvelope


@runtime_checkable
class SearchIndex(Protocol):
    """Protocol for search backends used by :class:`~searchdivert.engine.QueryIntegration`.

    ``query_es`` returns ``None`` (``SEARCH_FAILED``) instead of raising when
    the search could not be performed.
    """

    def elasticpress_enabled(self, query: PlatformQuery) -> bool: ...

    def format_args(self, query_vars: dict[str, Any]) -> dict[str, Any]: ...

    def query_es(
        self,
        formatted_args: dict[str, Any],
        query_vars: dict[str, Any],
        scope: Any = "current",
    ) -> SearchEnvelope | None: ...


__all__ = ["SearchIndex"]
