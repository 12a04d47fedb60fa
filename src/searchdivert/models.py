"""
Data models and exception hierarchy for search diversion.

Search hits, envelopes and realized records are frozen dataclasses. The
platform query is the one mutable model: the engine borrows it from the
host pipeline and annotates its output slots in place.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Mapping, Union


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SearchDivertError(Exception):
    """Base exception for all search backend errors."""


class SearchConnectionError(SearchDivertError):
    """The search cluster is unreachable (DNS, TCP, TLS, timeout)."""


class SearchHTTPError(SearchDivertError):
    """The search cluster answered with an HTTP error (4xx/5xx)."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")


class SearchResponseError(SearchDivertError):
    """The search response could not be parsed (bad JSON, unexpected schema)."""

    def __init__(self, message: str, raw_body: str = "") -> None:
        self.raw_body = raw_body[:2000]
        super().__init__(message)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class FieldShape(str, Enum):
    """Result shapes a platform query can ask for via its ``fields`` var."""

    ALL = ""
    IDS = "ids"
    ID_PARENT = "id=>parent"

    @classmethod
    def from_value(cls, value: object) -> FieldShape:
        """Map a raw ``fields`` value to a shape; anything unknown means full records."""
        for shape in cls:
            if shape.value == value:
                return shape
        return cls.ALL


class ReturnField(str, Enum):
    """Document fields that may be copied onto a full record."""

    POST_TYPE = "post_type"
    POST_AUTHOR = "post_author"
    POST_NAME = "post_name"
    POST_STATUS = "post_status"
    POST_TITLE = "post_title"
    POST_PARENT = "post_parent"
    POST_CONTENT = "post_content"
    POST_EXCERPT = "post_excerpt"
    POST_DATE = "post_date"
    POST_DATE_GMT = "post_date_gmt"
    POST_MODIFIED = "post_modified"
    POST_MODIFIED_GMT = "post_modified_gmt"
    POST_MIME_TYPE = "post_mime_type"
    COMMENT_COUNT = "comment_count"
    COMMENT_STATUS = "comment_status"
    PING_STATUS = "ping_status"
    MENU_ORDER = "menu_order"
    PERMALINK = "permalink"
    TERMS = "terms"
    POST_META = "post_meta"
    META = "meta"


DEFAULT_RETURN_FIELDS: tuple[ReturnField, ...] = tuple(ReturnField)


# ---------------------------------------------------------------------------
# Search results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Author:
    """Author block as stored in the index."""

    id: int
    display_name: str = ""
    login: str = ""


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


@dataclass(frozen=True)
class Document:
    """One indexed record, as returned in a search hit.

    ``None`` means the hit did not carry the field.
    """

    post_id: int
    post_parent: int = 0
    site_id: int | None = None
    post_author: Author | None = None
    post_type: str | None = None
    post_name: str | None = None
    post_status: str | None = None
    post_title: str | None = None
    post_content: str | None = None
    post_excerpt: str | None = None
    post_date: str | None = None
    post_date_gmt: str | None = None
    post_modified: str | None = None
    post_modified_gmt: str | None = None
    post_mime_type: str | None = None
    comment_count: int | None = None
    comment_status: str | None = None
    ping_status: str | None = None
    menu_order: int | None = None
    permalink: str | None = None
    terms: dict[str, Any] | None = None
    post_meta: dict[str, Any] | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def from_source(cls, source: Mapping[str, Any]) -> Document:
        """Build a document from an index ``_source`` mapping.

        Raises:
            SearchResponseError: If ``post_id`` is missing, or a numeric field
                (ids, counts, the author id) cannot be read as an integer.
        """
        try:
            post_id = int(source["post_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SearchResponseError(
                f"Search hit has no usable post_id: {exc}", raw_body=str(source)
            ) from exc

        try:
            author = source.get("post_author")
            if isinstance(author, Mapping):
                author = Author(
                    id=int(author.get("id", 0) or 0),
                    display_name=str(author.get("display_name", "") or ""),
                    login=str(author.get("login", "") or ""),
                )
            elif author is not None:
                author = Author(id=int(author))

            numeric = {
                "post_parent": _optional_int(source.get("post_parent")) or 0,
                "site_id": _optional_int(source.get("site_id")),
                "comment_count": _optional_int(source.get("comment_count")),
                "menu_order": _optional_int(source.get("menu_order")),
            }
        except (KeyError, TypeError, ValueError) as exc:
            raise SearchResponseError(
                f"Search hit {post_id} has a malformed field: {exc}", raw_body=str(source)
            ) from exc

        passthrough = {
            name: source.get(name)
            for name in (
                "post_type",
                "post_name",
                "post_status",
                "post_title",
                "post_content",
                "post_excerpt",
                "post_date",
                "post_date_gmt",
                "post_modified",
                "post_modified_gmt",
                "post_mime_type",
                "comment_status",
                "ping_status",
                "permalink",
                "terms",
                "post_meta",
                "meta",
            )
        }
        return cls(
            post_id=post_id,
            post_author=author,
            **numeric,
            **passthrough,
        )


@dataclass(frozen=True)
class SearchEnvelope:
    """What the search backend hands back for one diverted query."""

    found_documents: int = 0
    documents: tuple[Document, ...] = ()

    def __post_init__(self) -> None:
        if self.found_documents < 0:
            raise ValueError(f"found_documents must be >= 0, got {self.found_documents}")


# ``query_es`` returns this instead of an envelope when the search failed.
SEARCH_FAILED = None


# ---------------------------------------------------------------------------
# Realized records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FullRecord:
    """A full record rebuilt from a search hit.

    Only allow-listed fields are populated; the rest stay ``None``.
    ``elasticsearch`` marks the record as coming from the index.
    """

    id: int
    site_id: int
    post_type: str | None = None
    post_author: int | None = None
    post_name: str | None = None
    post_status: str | None = None
    post_title: str | None = None
    post_parent: int | None = None
    post_content: str | None = None
    post_excerpt: str | None = None
    post_date: str | None = None
    post_date_gmt: str | None = None
    post_modified: str | None = None
    post_modified_gmt: str | None = None
    post_mime_type: str | None = None
    comment_count: int | None = None
    comment_status: str | None = None
    ping_status: str | None = None
    menu_order: int | None = None
    permalink: str | None = None
    terms: dict[str, Any] | None = None
    post_meta: dict[str, Any] | None = None
    meta: dict[str, Any] | None = None
    elasticsearch: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class IdParentRecord:
    """Identifier plus parent identifier, for ``fields=id=>parent`` queries."""

    id: int
    post_parent: int
    elasticsearch: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


RealizedRecord = Union[FullRecord, int, IdParentRecord]


# ---------------------------------------------------------------------------
# Platform query
# ---------------------------------------------------------------------------

_QUERY_VAR_DEFAULTS: dict[str, Any] = {
    "post_type": "",
    "s": "",
    "fields": "",
    "paged": 1,
    "sites": "",
    "post_status": "",
    "cache_results": True,
}


@dataclass(eq=False)
class PlatformQuery:
    """One query issued through the host pipeline.

    Compared by identity: two queries with the same arguments are still
    distinct queries. ``elasticsearch_success`` stays ``None`` until a
    search has been attempted.
    """

    query: dict[str, Any] = field(default_factory=dict)
    default_posts_per_page: int | None = None
    query_vars: dict[str, Any] = field(default_factory=dict)
    found_posts: int = 0
    max_num_pages: int = 0
    elasticsearch_success: bool | None = None
    posts: list[Any] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.query_vars:
            defaults = dict(_QUERY_VAR_DEFAULTS)
            if self.default_posts_per_page is not None:
                defaults["posts_per_page"] = self.default_posts_per_page
            self.query_vars = {**defaults, **self.query}

    def get(self, key: str, default: Any = "") -> Any:
        return self.query_vars.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.query_vars[key] = value

    @property
    def fields(self) -> FieldShape:
        return FieldShape.from_value(self.get("fields", ""))
