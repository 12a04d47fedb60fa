"""Tests for searchdivert.backends -- SearchIndex protocol and implementations.

The Elasticsearch backend runs against httpx MockTransport, so no cluster
is needed.
"""

from __future__ import annotations

import json

import httpx
import pytest

from searchdivert.backends import SearchIndex
from searchdivert.backends.elasticsearch import ElasticsearchIndex, build_search_body
from searchdivert.backends.mock import MockIndex
from searchdivert.config import DivertConfig
from searchdivert.engine import QueryIntegration
from searchdivert.models import (
    PlatformQuery,
    SearchConnectionError,
    SearchEnvelope,
    SearchHTTPError,
    SearchResponseError,
)
from searchdivert.tenancy import MultiTenantDirectory

ES_RESPONSE = {
    "took": 3,
    "hits": {
        "total": {"value": 42, "relation": "eq"},
        "hits": [
            {"_id": "5", "_source": {"post_id": 5, "post_title": "Kayak", "post_parent": 0}},
            {"_id": "9", "_source": {"post_id": 9, "post_title": "Paddle", "site_id": 2}},
        ],
    },
}


def _make_index(
    json_data: object, status: int = 200, requests: list[httpx.Request] | None = None, **kwargs
) -> ElasticsearchIndex:
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status, json=json_data)

    return ElasticsearchIndex(
        DivertConfig(base_url="http://es:9200"), _transport=httpx.MockTransport(handler), **kwargs
    )


class TestMockIndex:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(MockIndex(), SearchIndex)

    def test_records_calls(self) -> None:
        index = MockIndex()
        index.query_es({"a": 1}, {"s": "x"}, "all")
        assert index.calls == [({"a": 1}, {"s": "x"}, "all")]

    def test_failure(self) -> None:
        assert MockIndex(None).query_es({}, {}) is None


class TestBuildSearchBody:
    def test_search_term(self) -> None:
        body = build_search_body(
            {"s": "kayak", "post_type": ["post", "page"], "paged": 2, "posts_per_page": 10},
            default_size=10,
            max_results=100,
        )
        assert body["from"] == 10
        assert body["size"] == 10
        assert body["query"]["bool"]["must"][0]["multi_match"]["query"] == "kayak"
        assert {"terms": {"post_type.raw": ["post", "page"]}} in body["query"]["bool"]["filter"]
        assert {"terms": {"post_status": ["publish"]}} in body["query"]["bool"]["filter"]
        assert body["sort"] == [{"_score": {"order": "desc"}}]

    def test_browse_sorted_by_date(self) -> None:
        body = build_search_body({"post_type": "post"}, default_size=10, max_results=100)
        assert "must" not in body["query"]["bool"]
        assert body["sort"] == [{"post_date": {"order": "desc"}}]

    def test_unlimited(self) -> None:
        body = build_search_body({"posts_per_page": -1}, default_size=10, max_results=500)
        assert body["size"] == 500
        assert body["from"] == 0

    def test_offset_and_filters(self) -> None:
        body = build_search_body(
            {
                "offset": 3,
                "author": 7,
                "post_parent": 2,
                "post__in": ["4", 5],
                "orderby": "title",
                "order": "ASC",
                "post_status": "any",
            },
            default_size=10,
            max_results=100,
        )
        filters = body["query"]["bool"]["filter"]
        assert body["from"] == 3
        assert {"terms": {"post_author.id": [7]}} in filters
        assert {"term": {"post_parent": 2}} in filters
        assert {"terms": {"post_id": [4, 5]}} in filters
        assert not any("post_status" in f.get("terms", {}) for f in filters)
        assert body["sort"] == [{"post_title.sortable": {"order": "asc"}}]


class TestEnabled:
    def test_search_queries_enabled(self) -> None:
        index = _make_index(ES_RESPONSE)
        assert index.elasticpress_enabled(PlatformQuery({"s": "kayak"})) is True
        assert index.elasticpress_enabled(PlatformQuery()) is False

    def test_opt_in_and_out(self) -> None:
        index = _make_index(ES_RESPONSE)
        assert index.elasticpress_enabled(PlatformQuery({"ep_integrate": True})) is True
        assert index.elasticpress_enabled(PlatformQuery({"s": "x", "ep_integrate": "false"})) is False

    def test_suppress_filters(self) -> None:
        index = _make_index(ES_RESPONSE)
        assert index.elasticpress_enabled(PlatformQuery({"s": "x", "suppress_filters": True})) is False

    def test_search_integration_off(self) -> None:
        index = ElasticsearchIndex(DivertConfig(integrate_search=False))
        assert index.elasticpress_enabled(PlatformQuery({"s": "x"})) is False
        index.close()


class TestIndexName:
    def test_scopes(self) -> None:
        tenants = MultiTenantDirectory([1, 2, 3], current=3)
        with _make_index(ES_RESPONSE, tenants=tenants) as index:
            assert index.index_name("current") == "searchdivert-3"
            assert index.index_name("all") == "searchdivert-*"
            assert index.index_name(2) == "searchdivert-2"
            assert index.index_name("2") == "searchdivert-2"
            assert index.index_name([1, 2]) == "searchdivert-1,searchdivert-2"

    def test_bad_scope(self) -> None:
        with _make_index(ES_RESPONSE) as index:
            with pytest.raises(ValueError, match="scope"):
                index.index_name("elsewhere")


class TestElasticsearchIndex:
    def test_satisfies_protocol(self) -> None:
        with _make_index(ES_RESPONSE) as index:
            assert isinstance(index, SearchIndex)

    def test_query_es_returns_envelope(self) -> None:
        requests: list[httpx.Request] = []
        with _make_index(ES_RESPONSE, requests=requests) as index:
            envelope = index.query_es({"size": 2}, {"s": "kayak"}, "all")

        assert isinstance(envelope, SearchEnvelope)
        assert envelope.found_documents == 42
        assert [d.post_id for d in envelope.documents] == [5, 9]
        assert envelope.documents[1].site_id == 2
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/searchdivert-*/_search"
        assert json.loads(requests[0].content) == {"size": 2}

    def test_legacy_integer_total(self) -> None:
        data = {"hits": {"total": 7, "hits": []}}
        with _make_index(data) as index:
            assert index.search({}).found_documents == 7

    def test_skips_hits_without_source(self) -> None:
        data = {"hits": {"total": 1, "hits": [{"_id": "1"}]}}
        with _make_index(data) as index:
            assert index.search({}).documents == ()

    def test_http_error(self) -> None:
        with _make_index({"error": "boom"}, status=500) as index:
            with pytest.raises(SearchHTTPError, match="500"):
                index.search({})
            assert index.query_es({}, {}) is None

    def test_bad_shape(self) -> None:
        with _make_index({"unexpected": True}) as index:
            with pytest.raises(SearchResponseError, match="hits"):
                index.search({})
            assert index.query_es({}, {}) is None

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        config = DivertConfig(base_url="http://es:9200")
        with ElasticsearchIndex(config, _transport=httpx.MockTransport(handler)) as index:
            with pytest.raises(SearchConnectionError, match="Cannot connect"):
                index.search({})
            assert index.query_es({}, {}) is None

    def test_invalid_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"not json")

        config = DivertConfig(base_url="http://es:9200")
        with ElasticsearchIndex(config, _transport=httpx.MockTransport(handler)) as index:
            with pytest.raises(SearchResponseError, match="invalid JSON"):
                index.search({})

    @pytest.mark.parametrize(
        "source",
        [
            {"post_id": 5, "post_author": {"id": "n/a"}},
            {"post_id": 5, "post_author": "admin"},
            {"post_id": 5, "site_id": "main"},
            {"post_id": 5, "post_parent": "top"},
            {"post_id": 5, "comment_count": "many"},
            {"post_id": 5, "menu_order": [1]},
        ],
    )
    def test_malformed_hit_fails_search(self, source: dict) -> None:
        data = {"hits": {"total": 1, "hits": [{"_id": "5", "_source": source}]}}
        with _make_index(data) as index:
            with pytest.raises(SearchResponseError, match="malformed field"):
                index.search({})
            assert index.query_es({}, {}) is None

    def test_malformed_hit_falls_back_to_native_query(self) -> None:
        source = {"post_id": 5, "post_author": {"id": "n/a"}}
        data = {"hits": {"total": 1, "hits": [{"_source": source}]}}
        native = "SELECT SQL_CALC_FOUND_ROWS wp_posts.* FROM wp_posts WHERE 1=1"
        with _make_index(data) as index:
            engine = QueryIntegration(index, DivertConfig(base_url="http://es:9200"))
            query = PlatformQuery({"s": "kayak"})
            assert engine.intercept(native, query) == native
        assert query.elasticsearch_success is False
        assert engine.cache.get(query) is None
