"""CLI entry point: python -m searchdivert 'your query'

Runs one query through the diversion engine against Elasticsearch and
prints the reconciled records as JSON.
"""

import argparse
import json
import logging
import sys

from searchdivert.backends.elasticsearch import ElasticsearchIndex
from searchdivert.config import DivertConfig
from searchdivert.engine import QueryIntegration
from searchdivert.logging import bind_request_id, configure_logging
from searchdivert.models import FieldShape, PlatformQuery
from searchdivert.pipeline import QueryPipeline


def _sites(value: str) -> object:
    if value in ("all", "current"):
        return value
    ids = [int(part) for part in value.split(",") if part.strip()]
    return ids[0] if len(ids) == 1 else ids


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="searchdivert",
        description="Run a platform query through the search index",
    )
    parser.add_argument("query", nargs="+", help="Search terms")
    parser.add_argument("--post-type", type=str, default=None, help="Restrict to a post type")
    parser.add_argument(
        "--fields",
        choices=[shape.value for shape in FieldShape if shape.value],
        default="",
        help="Return ids or id=>parent pairs instead of full records",
    )
    parser.add_argument("--sites", type=_sites, default=None, help="all, or site id(s) a,b,c")
    parser.add_argument("--per-page", type=int, default=None, help="Page size")
    parser.add_argument("--page", type=int, default=1, help="Page number")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable DEBUG-level logging to stderr"
    )
    parser.add_argument(
        "--json-log", action="store_true", help="Emit JSON log lines (default: text)"
    )

    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    configure_logging(level=level, json_format=args.json_log)
    bind_request_id()

    search = " ".join(args.query)
    query_args: dict[str, object] = {"s": search, "ep_integrate": True, "paged": args.page}
    if args.post_type:
        query_args["post_type"] = args.post_type
    if args.fields:
        query_args["fields"] = args.fields
    if args.sites is not None:
        query_args["sites"] = args.sites

    try:
        config = DivertConfig.from_env(posts_per_page=args.per_page)
        with ElasticsearchIndex(config) as index:
            engine = QueryIntegration(index, config)
            pipeline = QueryPipeline(
                posts_table=config.posts_table, posts_per_page=config.posts_per_page
            )
            if not engine.setup(pipeline):
                print("Error: indexing in progress, search is disabled", file=sys.stderr)
                sys.exit(1)
            query = PlatformQuery(query_args)
            records = pipeline.get_posts(query)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if query.elasticsearch_success is False:
        print("Error: search failed", file=sys.stderr)
        sys.exit(1)

    output = {
        "query": search,
        "found_posts": query.found_posts,
        "max_num_pages": query.max_num_pages,
        "records": [r.to_dict() if hasattr(r, "to_dict") else r for r in records],
    }
    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    main()
