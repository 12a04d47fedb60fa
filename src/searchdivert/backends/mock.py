"""In-memory mock backend for testing without a search cluster."""

from __future__ import annotations

from typing import Any

from searchdivert.models import PlatformQuery, SearchEnvelope


class MockIndex:
    """A :class:`~searchdivert.backends.SearchIndex` that returns a canned envelope.

    Pass ``envelope=None`` to simulate a failed search. Every call to
    :meth:`query_es` is recorded in ``calls``.

    Usage::

        index = MockIndex(SearchEnvelope(found_documents=1, documents=(doc,)))
        envelope = index.query_es(index.format_args({"s": "x"}), {"s": "x"})
    """

    def __init__(
        self,
        envelope: SearchEnvelope | None = SearchEnvelope(),
        *,
        enabled: bool = True,
    ) -> None:
        self.envelope = envelope
        self.enabled = enabled
        self.calls: list[tuple[dict[str, Any], dict[str, Any], Any]] = []

    def elasticpress_enabled(self, query: PlatformQuery) -> bool:
        return self.enabled

    def format_args(self, query_vars: dict[str, Any]) -> dict[str, Any]:
        return {"query_vars": dict(query_vars)}

    def query_es(
        self,
        formatted_args: dict[str, Any],
        query_vars: dict[str, Any],
        scope: Any = "current",
    ) -> SearchEnvelope | None:
        self.calls.append((formatted_args, query_vars, scope))
        return self.envelope
