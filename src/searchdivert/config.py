"""
Configuration for search diversion.

Validated once at construction. ``DivertConfig.from_env()`` reads the
``SEARCHDIVERT_*`` environment variables a single time and returns an
immutable object shared by the engine and the backend.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from searchdivert.models import DEFAULT_RETURN_FIELDS, ReturnField

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://127.0.0.1:9200"
_DEFAULT_INDEX_PREFIX = "searchdivert"
_DEFAULT_TIMEOUT_CONNECT = 5.0
_DEFAULT_TIMEOUT_READ = 25.0
_DEFAULT_TIMEOUT_POOL = 10.0
_DEFAULT_RETRIES = 2
_DEFAULT_POSTS_PER_PAGE = 10
_DEFAULT_MAX_RESULTS = 10_000
_DEFAULT_POST_TYPE = "post"
_DEFAULT_SEARCHABLE_TYPES = ("post", "page")
_DEFAULT_POSTS_TABLE = "wp_posts"
_DEFAULT_SEARCH_HEADER = "X-SearchDivert-Search"


@dataclass(frozen=True)
class DivertConfig:
    """Validated, immutable configuration for the diversion engine and its backend.

    Args:
        base_url: Elasticsearch base URL (no trailing slash).
        index_prefix: Per-site indices are named ``<prefix>-<site id>``.
        timeout_connect: TCP connect timeout in seconds.
        timeout_read: HTTP read timeout in seconds.
        timeout_pool: Connection pool acquisition timeout in seconds.
        retries: Transport-level retries on connection failure.
        verify_ssl: TLS verification (True, False, or path to CA bundle).
        posts_per_page: Page size for queries that do not set one.
        max_results: Search size used when a query asks for every result
            (``posts_per_page <= 0``).
        default_post_type: Post type searched when a non-search query sets none.
        searchable_post_types: Post types searched when a search query sets none.
        return_fields: Fields copied from a hit onto a full record.
        posts_table: Native table named in the zero-row query.
        search_header: Response header announcing a diverted query.
        integrate_search: Divert every query carrying a search term.
        indexing: An indexing run is in progress; the engine does not attach.
    """

    base_url: str = _DEFAULT_BASE_URL
    index_prefix: str = _DEFAULT_INDEX_PREFIX
    timeout_connect: float = _DEFAULT_TIMEOUT_CONNECT
    timeout_read: float = _DEFAULT_TIMEOUT_READ
    timeout_pool: float = _DEFAULT_TIMEOUT_POOL
    retries: int = _DEFAULT_RETRIES
    verify_ssl: bool | str = True
    posts_per_page: int = _DEFAULT_POSTS_PER_PAGE
    max_results: int = _DEFAULT_MAX_RESULTS
    default_post_type: str = _DEFAULT_POST_TYPE
    searchable_post_types: tuple[str, ...] = _DEFAULT_SEARCHABLE_TYPES
    return_fields: tuple[ReturnField, ...] = DEFAULT_RETURN_FIELDS
    posts_table: str = _DEFAULT_POSTS_TABLE
    search_header: str = _DEFAULT_SEARCH_HEADER
    integrate_search: bool = True
    indexing: bool = False

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not self.base_url:
            errors.append("base_url must be a non-empty string")
        if not self.index_prefix:
            errors.append("index_prefix must be a non-empty string")
        if self.timeout_connect <= 0:
            errors.append(f"timeout_connect must be > 0, got {self.timeout_connect}")
        if self.timeout_read <= 0:
            errors.append(f"timeout_read must be > 0, got {self.timeout_read}")
        if self.timeout_pool <= 0:
            errors.append(f"timeout_pool must be > 0, got {self.timeout_pool}")
        if self.retries < 0:
            errors.append(f"retries must be >= 0, got {self.retries}")
        if self.posts_per_page < 1:
            errors.append(f"posts_per_page must be >= 1, got {self.posts_per_page}")
        if self.max_results < 1:
            errors.append(f"max_results must be >= 1, got {self.max_results}")
        if not self.default_post_type:
            errors.append("default_post_type must be a non-empty string")
        if not self.posts_table:
            errors.append("posts_table must be a non-empty string")
        if not self.search_header:
            errors.append("search_header must be a non-empty string")
        for name in self.return_fields:
            if not isinstance(name, ReturnField):
                errors.append(f"return_fields entry {name!r} is not a ReturnField")

        if errors:
            raise ValueError("Invalid searchdivert configuration: " + "; ".join(errors))

    @classmethod
    def from_env(cls, **overrides: object) -> DivertConfig:
        """Build config from environment variables with optional overrides.

        Environment variables:
            SEARCHDIVERT_BASE_URL          -- Elasticsearch URL (default http://127.0.0.1:9200)
            SEARCHDIVERT_INDEX_PREFIX      -- Index name prefix (default searchdivert)
            SEARCHDIVERT_TIMEOUT_CONNECT   -- Connect timeout seconds (default 5.0)
            SEARCHDIVERT_TIMEOUT_READ      -- Read timeout seconds (default 25.0)
            SEARCHDIVERT_RETRIES           -- Transport retries (default 2)
            SEARCHDIVERT_VERIFY_SSL        -- "true", "false", or path to CA bundle
            SEARCHDIVERT_POSTS_PER_PAGE    -- Default page size (default 10)
            SEARCHDIVERT_DEFAULT_POST_TYPE -- Post type for non-search queries (default post)
            SEARCHDIVERT_SEARCHABLE_TYPES  -- Comma-separated searchable types (default post,page)
            SEARCHDIVERT_RETURN_FIELDS     -- Comma-separated full-record fields (default all)
            SEARCHDIVERT_INTEGRATE_SEARCH  -- Divert search queries (default true)
            SEARCHDIVERT_INDEXING          -- Indexing in progress, do not attach (default false)

        Explicit keyword arguments override environment variables.
        """

        def _env(key: str, default: str) -> str:
            return os.environ.get(key, default)

        def _env_float(key: str, default: float) -> float:
            raw = os.environ.get(key)
            if raw is None:
                return default
            try:
                return float(raw)
            except ValueError:
                raise ValueError(f"Environment variable {key}={raw!r} is not a valid number")

        def _env_int(key: str, default: int) -> int:
            raw = os.environ.get(key)
            if raw is None:
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"Environment variable {key}={raw!r} is not a valid integer")

        def _env_bool(key: str, default: bool) -> bool:
            raw = os.environ.get(key)
            if raw is None:
                return default
            return raw.strip().lower() in ("true", "1", "yes")

        def _env_verify(key: str, default: bool | str) -> bool | str:
            raw = os.environ.get(key)
            if raw is None:
                return default
            low = raw.strip().lower()
            if low in ("true", "1", "yes"):
                return True
            if low in ("false", "0", "no"):
                return False
            return raw

        def _env_list(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
            raw = os.environ.get(key)
            if raw is None:
                return default
            return tuple(part.strip() for part in raw.split(",") if part.strip())

        def _env_fields(key: str) -> tuple[ReturnField, ...]:
            names = _env_list(key, tuple(f.value for f in DEFAULT_RETURN_FIELDS))
            try:
                return tuple(ReturnField(name) for name in names)
            except ValueError as exc:
                raise ValueError(f"Environment variable {key}: {exc}") from exc

        kwargs: dict[str, object] = {
            "base_url": _env("SEARCHDIVERT_BASE_URL", _DEFAULT_BASE_URL).rstrip("/"),
            "index_prefix": _env("SEARCHDIVERT_INDEX_PREFIX", _DEFAULT_INDEX_PREFIX),
            "timeout_connect": _env_float("SEARCHDIVERT_TIMEOUT_CONNECT", _DEFAULT_TIMEOUT_CONNECT),
            "timeout_read": _env_float("SEARCHDIVERT_TIMEOUT_READ", _DEFAULT_TIMEOUT_READ),
            "timeout_pool": _env_float("SEARCHDIVERT_TIMEOUT_POOL", _DEFAULT_TIMEOUT_POOL),
            "retries": _env_int("SEARCHDIVERT_RETRIES", _DEFAULT_RETRIES),
            "verify_ssl": _env_verify("SEARCHDIVERT_VERIFY_SSL", True),
            "posts_per_page": _env_int("SEARCHDIVERT_POSTS_PER_PAGE", _DEFAULT_POSTS_PER_PAGE),
            "max_results": _env_int("SEARCHDIVERT_MAX_RESULTS", _DEFAULT_MAX_RESULTS),
            "default_post_type": _env("SEARCHDIVERT_DEFAULT_POST_TYPE", _DEFAULT_POST_TYPE),
            "searchable_post_types": _env_list(
                "SEARCHDIVERT_SEARCHABLE_TYPES", _DEFAULT_SEARCHABLE_TYPES
            ),
            "return_fields": _env_fields("SEARCHDIVERT_RETURN_FIELDS"),
            "posts_table": _env("SEARCHDIVERT_POSTS_TABLE", _DEFAULT_POSTS_TABLE),
            "search_header": _env("SEARCHDIVERT_SEARCH_HEADER", _DEFAULT_SEARCH_HEADER),
            "integrate_search": _env_bool("SEARCHDIVERT_INTEGRATE_SEARCH", True),
            "indexing": _env_bool("SEARCHDIVERT_INDEXING", False),
        }
        kwargs.update({k: v for k, v in overrides.items() if v is not None})

        config = cls(**kwargs)  # type: ignore[arg-type]
        logger.info(
            "searchdivert config: base_url=%s index_prefix=%s posts_per_page=%d"
            " default_post_type=%s searchable=%s indexing=%s",
            config.base_url,
            config.index_prefix,
            config.posts_per_page,
            config.default_post_type,
            ",".join(config.searchable_post_types),
            config.indexing,
        )
        return config
