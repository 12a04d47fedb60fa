"""
Query diversion and result reconciliation.

:class:`QueryIntegration` sits on the host's query pipeline. For each
eligible query it runs the search against the index instead of the native
store, hands the store a query that matches nothing, and later substitutes
the search results (full records, ids, or id/parent pairs) back into the
pipeline. In multi-site deployments it also follows each result into its
origin site while the host loops over them.

Usage::

    engine = QueryIntegration(ElasticsearchIndex(config), config)
    engine.setup(pipeline)
    posts = pipeline.get_posts(PlatformQuery({"s": "kayak"}))
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol, Sequence

from searchdivert import hooks as hook_names
from searchdivert.backends import SearchIndex
from searchdivert.cache import QueryResultCache
from searchdivert.config import DivertConfig
from searchdivert.formatting import format_documents
from searchdivert.hooks import Hooks
from searchdivert.logging import bind_query_id
from searchdivert.models import (
    SEARCH_FAILED,
    Document,
    FieldShape,
    PlatformQuery,
    RealizedRecord,
    ReturnField,
)
from searchdivert.tenancy import SingleTenantDirectory, TenantDirectory, TenantSwitcher

logger = logging.getLogger(__name__)


class Host(Protocol):
    """What the engine needs from the pipeline it is attached to."""

    headers_sent: bool

    def add_interceptor(self, interceptor: Any) -> None: ...

    def send_header(self, name: str, value: str) -> None: ...

    def setup_postdata(self, record: Any) -> None: ...


def page_count(found: int, per_page: Any) -> int:
    """Number of result pages; a non-positive page size means a single page."""
    per_page = int(per_page) if per_page not in (None, "") else 0
    if per_page <= 0:
        return 1 if found else 0
    return -(-found // per_page)


class QueryIntegration:
    """Divert eligible platform queries to a search index.

    Args:
        index: Search backend.
        config: Engine configuration (defaults to ``DivertConfig.from_env()``).
        tenants: Host site directory (defaults to a single site).
        hooks: Collaborator extension points.
    """

    def __init__(
        self,
        index: SearchIndex,
        config: DivertConfig | None = None,
        *,
        tenants: TenantDirectory | None = None,
        hooks: Hooks | None = None,
    ) -> None:
        self._index = index
        self._config = config or DivertConfig.from_env()
        self._tenants = tenants or SingleTenantDirectory()
        self.hooks = hooks or Hooks()
        self.cache = QueryResultCache()
        self._switcher = TenantSwitcher(self._tenants, self.is_eligible)
        self._host: Host | None = None

    @property
    def config(self) -> DivertConfig:
        return self._config

    @property
    def switcher(self) -> TenantSwitcher:
        return self._switcher

    def setup(self, host: Host) -> bool:
        """Attach to *host* unless an indexing run is in progress."""
        if self._config.indexing:
            logger.info("Indexing in progress, query integration not attached")
            return False
        self._host = host
        host.add_interceptor(self)
        return True

    # -- Eligibility ---------------------------------------------------------

    def is_eligible(self, query: PlatformQuery) -> bool:
        if not self._index.elasticpress_enabled(query):
            return False
        return not self.hooks.apply_filters(hook_names.SKIP_QUERY_INTEGRATION, False, query)

    # -- Pipeline stages -----------------------------------------------------

    def pre_query(self, query: PlatformQuery) -> None:
        """Turn off result caching and announce the diversion in a response header."""
        if not self.is_eligible(query):
            return

        query.set("cache_results", bool(query.query.get("cache_results")))

        if self._host is not None and not self._host.headers_sent:
            self._host.send_header(self._config.search_header, "true")

    def intercept(self, request: str, query: PlatformQuery) -> str:
        """Search the index for *query* and return a native query that matches nothing.

        Returns *request* untouched when the query is not eligible or the
        search failed, so the native store answers instead.
        """
        if not self.is_eligible(query):
            return request

        bind_query_id(self.cache.query_id(query))
        try:
            return self._divert(request, query)
        finally:
            bind_query_id("")

    def patch_count_query(self, sql: str, query: PlatformQuery) -> str:
        """Drop the native row count; the totals are already on the query."""
        if query.elasticsearch_success is False or not self.is_eligible(query):
            return sql
        return ""

    def supply_fields(self, posts: Any, query: PlatformQuery) -> Any:
        """Short-circuit id and id/parent queries with the cached records."""
        if not self.is_eligible(query):
            return posts
        cached = self.cache.get(query)
        if cached is None:
            return posts
        if query.fields in (FieldShape.IDS, FieldShape.ID_PARENT):
            return cached
        return posts

    def substitute(self, posts: Any, query: PlatformQuery) -> Any:
        """Replace the (empty) native results with the cached search results."""
        if not self.is_eligible(query):
            return posts
        cached = self.cache.get(query)
        if cached is None:
            return posts
        return cached

    def loop_start(self, query: PlatformQuery) -> None:
        self._switcher.loop_start(query)

    def loop_end(self, query: PlatformQuery) -> None:
        self._switcher.loop_end(query)

    def visit_record(self, record: Any) -> None:
        setup = self._host.setup_postdata if self._host is not None else _no_setup
        self._switcher.visit_record(record, setup)

    # -- Formatting ----------------------------------------------------------

    def return_fields(self) -> tuple[ReturnField, ...]:
        fields = self.hooks.apply_filters(
            hook_names.RETURN_FIELDS, list(self._config.return_fields)
        )
        return tuple(ReturnField(name) for name in fields)

    def format(self, documents: Sequence[Document], shape: FieldShape) -> list[RealizedRecord]:
        return format_documents(
            documents,
            shape,
            current_site_id=self._tenants.current_tenant_id(),
            return_fields=self.return_fields(),
        )

    # -- Internals -----------------------------------------------------------

    def _zero_rows(self) -> str:
        return f"SELECT * FROM {self._config.posts_table} WHERE 1=0"

    def _resolve_post_type(self, query_vars: dict[str, Any], query: PlatformQuery) -> Any:
        post_type = self.hooks.apply_filters(
            hook_names.QUERY_POST_TYPE, query_vars.get("post_type", ""), query
        )
        if post_type == "any":
            post_type = None

        if not post_type:
            if not str(query_vars.get("s") or "").strip():
                post_type = self._config.default_post_type
            else:
                post_type = list(
                    self.hooks.apply_filters(
                        hook_names.SEARCHABLE_POST_TYPES,
                        list(self._config.searchable_post_types),
                    )
                )
        return post_type

    def _divert(self, request: str, query: PlatformQuery) -> str:
        if query in self.cache:
            logger.debug("Query already diverted, reusing cached results")
            return self._zero_rows()

        query_vars = dict(query.query_vars)
        post_type = self._resolve_post_type(query_vars, query)
        if not post_type:
            self.cache.store(query, [])
            logger.info("No searchable post types, returning an empty result")
            self.hooks.do_action(hook_names.SEARCH_EMPTY, [], None, query)
            return self._zero_rows()
        query_vars["post_type"] = post_type

        records = list(self.hooks.apply_filters(hook_names.CACHED_RESULTS, [], query) or [])
        envelope = None

        if not records:
            scope: Any = query_vars.get("sites") or "current"
            formatted_args = self._index.format_args(query_vars)
            scope = self.hooks.apply_filters(hook_names.SEARCH_SCOPE, scope)

            t0 = time.monotonic()
            envelope = self._index.query_es(formatted_args, query.query_vars, scope)
            elapsed = (time.monotonic() - t0) * 1000

            if envelope is SEARCH_FAILED:
                query.elasticsearch_success = False
                logger.warning(
                    "Search failed for s=%r scope=%r elapsed_ms=%.1f, falling back to native query",
                    query_vars.get("s", ""),
                    scope,
                    elapsed,
                )
                return request

            query.found_posts = envelope.found_documents
            query.max_num_pages = page_count(
                envelope.found_documents,
                query.get("posts_per_page", self._config.posts_per_page),
            )
            query.elasticsearch_success = True

            records = self.format(envelope.documents, query.fields)
            logger.info(
                "Diverted query post_type=%s s=%r scope=%r found=%d returned=%d elapsed_ms=%.1f",
                post_type,
                query_vars.get("s", ""),
                scope,
                envelope.found_documents,
                len(records),
                elapsed,
            )
            self.hooks.do_action(hook_names.NON_CACHED_SEARCH, records, envelope, query)
        else:
            logger.debug("Using %d results supplied by a cached_results filter", len(records))

        self.cache.store(query, records)
        self.hooks.do_action(hook_names.SEARCH, records, envelope, query)
        return self._zero_rows()


def _no_setup(record: Any) -> None:
    return None
