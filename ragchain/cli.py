"""Command line interface for the ragchain operations.

Usage:
    ragchain create-store --store-name data/docs.store
    ragchain add-folder-to-store --store-name data/docs.store --folder-path docs --source-kind text
    ragchain answer-from-store --store-name data/docs.store --question "What is X?"
    ragchain chat-with-memory --memory-id alice --message "Hello"
    ragchain sentiment-analyzer --data "I love this product"
"""
import argparse
import json
import sys
from typing import Any, Dict, List, Optional
import structlog

from ragchain import config
from ragchain.logging_setup import configure_logging
from ragchain.operations import OperationContext, build_registry

logger = structlog.get_logger()

SOURCE_KINDS = ["text", "pdf", "url"]


def _add_store_name(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--store-name", required=True, help="Path of the vector store snapshot file"
    )


def _add_retrieval_bounds(parser: argparse.ArgumentParser, score_help: str) -> None:
    parser.add_argument(
        "--max-results",
        type=int,
        default=config.RETRIEVAL_MAX_RESULTS,
        help=f"Maximum segments to retrieve (default: {config.RETRIEVAL_MAX_RESULTS})",
    )
    parser.add_argument("--min-score", type=float, default=None, help=score_help)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one sub-command per operation."""
    parser = argparse.ArgumentParser(
        prog="ragchain",
        description="Ingest documents into vector stores and answer questions from them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage:", 1)[1],
    )
    parser.add_argument(
        "--log-level", default=config.LOG_LEVEL, help="Log level (default: %(default)s)"
    )
    commands = parser.add_subparsers(dest="operation", required=True)

    p = commands.add_parser("answer-prompt", help="Send a prompt to the chat model")
    p.add_argument("--prompt", required=True)

    p = commands.add_parser("define-prompt-template", help="Answer a filled template")
    p.add_argument("--template", required=True)
    p.add_argument("--instructions", required=True)
    p.add_argument("--dataset", default="")

    p = commands.add_parser("sentiment-analyzer", help="Classify the sentiment of text")
    p.add_argument("--data", required=True, help="Text to classify")

    p = commands.add_parser("load-document-and-answer", help="Answer from one document")
    p.add_argument("--question", required=True)
    p.add_argument("--source", required=True, help="File path or URL")
    p.add_argument("--source-kind", choices=SOURCE_KINDS, required=True)
    _add_retrieval_bounds(p, f"Minimum similarity (default: {config.DEFAULT_MIN_SCORE})")

    p = commands.add_parser("chat-with-memory", help="Chat within a persisted window")
    p.add_argument("--message", required=True)
    p.add_argument("--memory-id", required=True, help="Conversation key")
    p.add_argument("--db-file-path", help=f"SQLite file (default: {config.MEMORY_DB_PATH})")
    p.add_argument("--max-messages", type=int, default=config.MEMORY_MAX_MESSAGES)

    p = commands.add_parser("create-store", help="Create an empty store")
    _add_store_name(p)

    p = commands.add_parser("add-document-to-store", help="Add one document to a store")
    _add_store_name(p)
    p.add_argument("--source", required=True, help="File path or URL")
    p.add_argument("--source-kind", choices=SOURCE_KINDS, required=True)

    p = commands.add_parser("add-folder-to-store", help="Add a directory tree to a store")
    _add_store_name(p)
    p.add_argument("--folder-path", required=True)
    p.add_argument("--source-kind", choices=SOURCE_KINDS[:2], required=True)

    p = commands.add_parser("query-store", help="Retrieve relevant segments")
    _add_store_name(p)
    p.add_argument("--question", required=True)
    _add_retrieval_bounds(p, "Minimum similarity; 0 or unset uses the default")

    p = commands.add_parser("answer-from-store", help="Answer grounded in a store")
    _add_store_name(p)
    p.add_argument("--question", required=True)
    _add_retrieval_bounds(p, f"Minimum similarity (default: {config.DEFAULT_MIN_SCORE})")

    return parser


def operation_args(namespace: argparse.Namespace) -> Dict[str, Any]:
    """Turn parsed CLI arguments into operation input, dropping unset options."""
    args = vars(namespace).copy()
    args.pop("operation")
    args.pop("log_level")
    return {key: value for key, value in args.items() if value is not None}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ragchain command."""
    parser = build_parser()
    namespace = parser.parse_args(argv)
    configure_logging(namespace.log_level)

    registry = build_registry()
    ctx = OperationContext.from_config()

    try:
        result = registry.execute(namespace.operation, operation_args(namespace), ctx)
    except KeyboardInterrupt:
        print("\nCancelled by user.", file=sys.stderr)
        return 130

    print(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        logger.error("cli_operation_failed", operation=namespace.operation)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
