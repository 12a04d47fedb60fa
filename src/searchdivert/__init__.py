"""searchdivert: divert platform queries to a search index and reconcile the results."""

from searchdivert.cache import QueryResultCache
from searchdivert.config import DivertConfig
from searchdivert.engine import QueryIntegration
from searchdivert.hooks import Hooks
from searchdivert.logging import bind_query_id, bind_request_id, configure_logging, get_request_id
from searchdivert.models import (
    SEARCH_FAILED,
    Author,
    Document,
    FieldShape,
    FullRecord,
    IdParentRecord,
    PlatformQuery,
    ReturnField,
    SearchConnectionError,
    SearchDivertError,
    SearchEnvelope,
    SearchHTTPError,
    SearchResponseError,
)
from searchdivert.pipeline import QueryPipeline
from searchdivert.tenancy import MultiTenantDirectory, SingleTenantDirectory

__version__ = "0.1.0"

__all__ = [
    "SEARCH_FAILED",
    "Author",
    "DivertConfig",
    "Document",
    "FieldShape",
    "FullRecord",
    "Hooks",
    "IdParentRecord",
    "MultiTenantDirectory",
    "PlatformQuery",
    "QueryIntegration",
    "QueryPipeline",
    "QueryResultCache",
    "ReturnField",
    "SearchConnectionError",
    "SearchDivertError",
    "SearchEnvelope",
    "SearchHTTPError",
    "SearchResponseError",
    "SingleTenantDirectory",
    "__version__",
    "bind_query_id",
    "bind_request_id",
    "configure_logging",
    "get_request_id",
]
