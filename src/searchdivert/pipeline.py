"""Host-side query pipeline.

:class:`QueryPipeline` stands in for the platform's query execution path.
It calls every attached interceptor at fixed stages, in attachment order,
and talks to the native data store through the :class:`NativeStore` port.

Stage order for :meth:`QueryPipeline.get_posts`:

1. ``pre_query(query)``
2. native SQL built, then ``intercept(request, query)``
3. ``supply_fields(None, query)``; a non-``None`` answer skips the store
4. store fetch
5. ``patch_count_query(sql, query)``; an empty answer skips the store count
6. ``substitute(posts, query)`` for full-record queries
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Protocol, runtime_checkable

from searchdivert.engine import page_count
from searchdivert.models import FieldShape, PlatformQuery

logger = logging.getLogger(__name__)

_FOUND_ROWS_SQL = "SELECT FOUND_ROWS()"


@runtime_checkable
class NativeStore(Protocol):
    """The platform's own database."""

    def fetch(self, sql: str) -> list[Any]: ...

    def count(self, sql: str) -> int: ...


class NullStore:
    """Store that matches nothing. Keeps every statement it was sent in ``statements``."""

    def __init__(self) -> None:
        self.statements: list[str] = []

    def fetch(self, sql: str) -> list[Any]:
        self.statements.append(sql)
        return []

    def count(self, sql: str) -> int:
        self.statements.append(sql)
        return 0


@runtime_checkable
class QueryInterceptor(Protocol):
    def pre_query(self, query: PlatformQuery) -> None: ...

    def intercept(self, request: str, query: PlatformQuery) -> str: ...

    def supply_fields(self, posts: Any, query: PlatformQuery) -> Any: ...

    def patch_count_query(self, sql: str, query: PlatformQuery) -> str: ...

    def substitute(self, posts: Any, query: PlatformQuery) -> Any: ...

    def loop_start(self, query: PlatformQuery) -> None: ...

    def loop_end(self, query: PlatformQuery) -> None: ...

    def visit_record(self, record: Any) -> None: ...


def _quote(value: Any) -> str:
    return "'" + str(value).replace("'", "''") + "'"


class QueryPipeline:
    """Runs platform queries through attached interceptors and a native store."""

    def __init__(
        self,
        store: NativeStore | None = None,
        *,
        posts_table: str = "wp_posts",
        posts_per_page: int = 10,
    ) -> None:
        self._store = store or NullStore()
        self._posts_table = posts_table
        self._posts_per_page = posts_per_page
        self._interceptors: list[QueryInterceptor] = []
        self.headers: dict[str, str] = {}
        self.headers_sent = False
        self.post: Any = None

    @property
    def store(self) -> NativeStore:
        return self._store

    def add_interceptor(self, interceptor: QueryInterceptor) -> None:
        self._interceptors.append(interceptor)

    def send_header(self, name: str, value: str) -> None:
        if self.headers_sent:
            raise RuntimeError(f"Cannot send header {name}: headers already sent")
        self.headers[name] = value

    def _per_page(self, query: PlatformQuery) -> Any:
        return query.get("posts_per_page", self._posts_per_page)

    def build_request(self, query: PlatformQuery) -> str:
        """Native SQL for *query*, before any interceptor sees it."""
        shape = query.fields
        if shape is FieldShape.IDS:
            columns = f"{self._posts_table}.ID"
        elif shape is FieldShape.ID_PARENT:
            columns = f"{self._posts_table}.ID, {self._posts_table}.post_parent"
        else:
            columns = f"{self._posts_table}.*"

        where = ["1=1"]
        post_type = query.get("post_type") or "post"
        if post_type != "any":
            types = post_type if isinstance(post_type, (list, tuple)) else [post_type]
            where.append(f"post_type IN ({', '.join(_quote(t) for t in types)})")
        where.append(f"post_status = {_quote(query.get('post_status') or 'publish')}")

        search = str(query.get("s") or "").strip()
        if search:
            like = _quote(f"%{search}%")
            where.append(f"(post_title LIKE {like} OR post_content LIKE {like})")

        sql = (
            f"SELECT SQL_CALC_FOUND_ROWS {columns} FROM {self._posts_table}"
            f" WHERE {' AND '.join(where)} ORDER BY post_date DESC"
        )
        per_page = int(self._per_page(query) or 0)
        if per_page > 0:
            start = (max(int(query.get("paged") or 1), 1) - 1) * per_page
            sql += f" LIMIT {start}, {per_page}"
        return sql

    def get_posts(self, query: PlatformQuery) -> list[Any]:
        for interceptor in self._interceptors:
            interceptor.pre_query(query)

        request = self.build_request(query)
        for interceptor in self._interceptors:
            request = interceptor.intercept(request, query)

        posts: Any = None
        for interceptor in self._interceptors:
            posts = interceptor.supply_fields(posts, query)
        if posts is None:
            posts = list(self._store.fetch(request))

        if not query.get("no_found_rows", False):
            count_sql = _FOUND_ROWS_SQL
            for interceptor in self._interceptors:
                count_sql = interceptor.patch_count_query(count_sql, query)
            if count_sql:
                query.found_posts = int(self._store.count(count_sql))
                query.max_num_pages = page_count(query.found_posts, self._per_page(query))

        if query.fields is FieldShape.ALL:
            for interceptor in self._interceptors:
                posts = interceptor.substitute(posts, query)

        query.posts = list(posts)
        logger.debug(
            "get_posts returned=%d found=%d pages=%d",
            len(query.posts),
            query.found_posts,
            query.max_num_pages,
        )
        return query.posts

    def setup_postdata(self, record: Any) -> None:
        """Make *record* the current one and notify interceptors."""
        self.post = record
        for interceptor in self._interceptors:
            interceptor.visit_record(record)

    def loop(self, query: PlatformQuery) -> Iterator[Any]:
        """Iterate ``query.posts`` the way a template loop does.

        ``loop_end`` fires when the loop finishes or the caller stops early.
        """
        if not query.posts:
            return
        for interceptor in self._interceptors:
            interceptor.loop_start(query)
        try:
            for record in query.posts:
                self.setup_postdata(record)
                yield record
        finally:
            for interceptor in self._interceptors:
                interceptor.loop_end(query)
            self.post = None
