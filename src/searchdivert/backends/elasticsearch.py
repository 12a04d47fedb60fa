"""Elasticsearch backend for search diversion.

Talks to the cluster over ``httpx`` with pooled connections. One index per
site, named ``<index_prefix>-<site id>``; the search scope picks which of
them a query reads.
"""

from __future__ import annotations

import importlib.metadata
import logging
import time
from contextlib import nullcontext
from typing import Any

import httpx

from searchdivert.config import DivertConfig
from searchdivert.models import (
    SEARCH_FAILED,
    Document,
    PlatformQuery,
    SearchConnectionError,
    SearchDivertError,
    SearchEnvelope,
    SearchHTTPError,
    SearchResponseError,
)
from searchdivert.tenancy import SingleTenantDirectory, TenantDirectory

logger = logging.getLogger(__name__)

try:
    _PKG_VERSION = importlib.metadata.version("searchdivert")
except importlib.metadata.PackageNotFoundError:
    _PKG_VERSION = "dev"

_USER_AGENT = f"searchdivert/{_PKG_VERSION}"

_otel_tracer: Any = None
try:
    from opentelemetry import trace

    _otel_tracer = trace.get_tracer("searchdivert")
except ImportError:
    pass

_SEARCH_FIELDS = ["post_title^3", "post_excerpt", "post_content"]

_SORT_FIELDS = {
    "date": "post_date",
    "modified": "post_modified",
    "title": "post_title.sortable",
    "menu_order": "menu_order",
    "id": "post_id",
}

_FALSE_STRINGS = ("", "0", "false", "no")


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    if isinstance(value, str) and "," in value:
        return [part.strip() for part in value.split(",") if part.strip()]
    return [value]


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def build_search_body(
    query_vars: dict[str, Any],
    *,
    default_size: int,
    max_results: int,
) -> dict[str, Any]:
    """Translate platform query vars into a minimal Elasticsearch search body.

    Only paging, a handful of term filters, a multi-field match on the
    search term and a sort are produced.
    """
    raw_per_page = query_vars.get("posts_per_page")
    per_page = default_size if raw_per_page in (None, "") else int(raw_per_page)
    size = max_results if per_page <= 0 else per_page

    if query_vars.get("offset") not in (None, ""):
        start = int(query_vars["offset"])
    elif per_page > 0:
        start = (max(int(query_vars.get("paged") or 1), 1) - 1) * size
    else:
        start = 0

    filters: list[dict[str, Any]] = []
    post_type = query_vars.get("post_type")
    if post_type:
        filters.append({"terms": {"post_type.raw": _as_list(post_type)}})

    post_status = query_vars.get("post_status") or "publish"
    if post_status != "any":
        filters.append({"terms": {"post_status": _as_list(post_status)}})

    if query_vars.get("author") not in (None, ""):
        filters.append({"terms": {"post_author.id": _as_list(query_vars["author"])}})
    if query_vars.get("post_parent") not in (None, ""):
        filters.append({"term": {"post_parent": int(query_vars["post_parent"])}})
    if query_vars.get("post__in"):
        filters.append({"terms": {"post_id": [int(i) for i in query_vars["post__in"]]}})

    search_term = (query_vars.get("s") or "").strip()
    bool_query: dict[str, Any] = {"filter": filters}
    if search_term:
        bool_query["must"] = [
            {"multi_match": {"query": search_term, "fields": list(_SEARCH_FIELDS)}}
        ]

    order = "asc" if str(query_vars.get("order", "")).lower() == "asc" else "desc"
    orderby = query_vars.get("orderby") or ("relevance" if search_term else "date")
    if orderby == "relevance" and search_term:
        sort: list[Any] = [{"_score": {"order": order}}]
    else:
        sort = [{_SORT_FIELDS.get(orderby, "post_date"): {"order": order}}]

    return {
        "from": start,
        "size": size,
        "track_total_hits": True,
        "query": {"bool": bool_query},
        "sort": sort,
    }


def _parse_response(data: Any) -> SearchEnvelope:
    if not isinstance(data, dict) or not isinstance(data.get("hits"), dict):
        raise SearchResponseError(
            "Expected 'hits' object in Elasticsearch response", raw_body=str(data)[:2000]
        )
    hits = data["hits"]

    total = hits.get("total", 0)
    if isinstance(total, dict):
        total = total.get("value", 0)
    if not isinstance(total, int) or total < 0:
        total = 0

    raw_hits = hits.get("hits", [])
    if not isinstance(raw_hits, list):
        raw_hits = []

    documents: list[Document] = []
    for hit in raw_hits:
        source = hit.get("_source") if isinstance(hit, dict) else None
        if not isinstance(source, dict):
            logger.warning("Skipping search hit without a _source object")
            continue
        documents.append(Document.from_source(source))

    return SearchEnvelope(found_documents=total, documents=tuple(documents))


class ElasticsearchIndex:
    """Default :class:`~searchdivert.backends.SearchIndex` backed by Elasticsearch.

    Usable as a context manager; closing it releases the connection pool.
    """

    def __init__(
        self,
        config: DivertConfig,
        tenants: TenantDirectory | None = None,
        *,
        _transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._tenants = tenants or SingleTenantDirectory()

        timeout = httpx.Timeout(
            connect=config.timeout_connect,
            read=config.timeout_read,
            pool=config.timeout_pool,
            write=config.timeout_read,
        )
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": _USER_AGENT,
        }
        transport = _transport or httpx.HTTPTransport(
            retries=config.retries,
            verify=config.verify_ssl,  # type: ignore[arg-type]
        )
        self._client = httpx.Client(
            base_url=config.base_url, transport=transport, timeout=timeout, headers=headers
        )

    @property
    def config(self) -> DivertConfig:
        return self._config

    # -- SearchIndex protocol ------------------------------------------------

    def elasticpress_enabled(self, query: PlatformQuery) -> bool:
        """Queries opt in with ``ep_integrate``; search queries are in by default."""
        if "ep_integrate" in query.query_vars:
            return _truthy(query.query_vars["ep_integrate"])
        if _truthy(query.get("suppress_filters", False)):
            return False
        return self._config.integrate_search and bool(str(query.get("s") or "").strip())

    def format_args(self, query_vars: dict[str, Any]) -> dict[str, Any]:
        return build_search_body(
            query_vars,
            default_size=self._config.posts_per_page,
            max_results=self._config.max_results,
        )

    def query_es(
        self,
        formatted_args: dict[str, Any],
        query_vars: dict[str, Any],
        scope: Any = "current",
    ) -> SearchEnvelope | None:
        """Run the search; any backend error becomes ``SEARCH_FAILED``."""
        try:
            return self.search(formatted_args, scope)
        except SearchDivertError as exc:
            logger.debug("Search failed for s=%r: %s", query_vars.get("s", ""), exc)
            return SEARCH_FAILED

    # -- Raw access ----------------------------------------------------------

    def index_name(self, scope: Any = "current") -> str:
        """Resolve a search scope to an index expression.

        Accepts ``"current"``, ``"all"``, a site id, or a list of site ids.
        """
        prefix = self._config.index_prefix
        if scope == "current":
            return f"{prefix}-{self._tenants.current_tenant_id()}"
        if scope == "all":
            return f"{prefix}-*"
        if isinstance(scope, (list, tuple, set, frozenset)):
            if not scope:
                raise ValueError("search scope list must not be empty")
            return ",".join(f"{prefix}-{int(site)}" for site in scope)
        if isinstance(scope, int) or (isinstance(scope, str) and scope.strip().isdigit()):
            return f"{prefix}-{int(scope)}"
        raise ValueError(f"Unsupported search scope {scope!r}")

    def search(self, body: dict[str, Any], scope: Any = "current") -> SearchEnvelope:
        """POST *body* to the indices named by *scope*.

        Raises:
            SearchHTTPError: The cluster answered 4xx/5xx.
            SearchConnectionError: Transport failure or timeout.
            SearchResponseError: The body was not the expected JSON.
        """
        index = self.index_name(scope)
        t0 = time.monotonic()
        span = (
            _otel_tracer.start_as_current_span(
                "searchdivert.search", attributes={"search.index": index}
            )
            if _otel_tracer is not None
            else nullcontext()
        )
        with span:
            try:
                resp = self._client.post(f"/{index}/_search", json=body)
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPStatusError as exc:
                logger.warning(
                    "Elasticsearch HTTP %d index=%s elapsed_ms=%.1f",
                    exc.response.status_code,
                    index,
                    (time.monotonic() - t0) * 1000,
                )
                detail = exc.response.text[:500] if exc.response else ""
                raise SearchHTTPError(exc.response.status_code, detail) from exc
            except httpx.ConnectError as exc:
                logger.warning("Elasticsearch connect failed index=%s", index)
                raise SearchConnectionError(
                    f"Cannot connect to Elasticsearch at {self._config.base_url}: {exc}"
                ) from exc
            except httpx.TimeoutException as exc:
                logger.warning("Elasticsearch timeout index=%s", index)
                raise SearchConnectionError(
                    f"Timeout talking to Elasticsearch at {self._config.base_url}: {exc}"
                ) from exc
            except httpx.HTTPError as exc:
                logger.warning("Elasticsearch request failed index=%s: %s", index, exc)
                raise SearchConnectionError(f"Elasticsearch request failed: {exc}") from exc
            except ValueError as exc:
                raise SearchResponseError(
                    f"Elasticsearch returned invalid JSON: {exc}", raw_body=resp.text
                ) from exc

            envelope = _parse_response(data)

        logger.info(
            "Elasticsearch index=%s found=%d returned=%d elapsed_ms=%.1f",
            index,
            envelope.found_documents,
            len(envelope.documents),
            (time.monotonic() - t0) * 1000,
        )
        return envelope

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ElasticsearchIndex:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
