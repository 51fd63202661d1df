"""
AskGate CLI entry point.

Asks questions through the orchestrator and manages the semantic cache, the
fact store and the time-series data behind the default tool.
"""

import argparse
import asyncio
import json
import sys
from contextlib import AsyncExitStack
from pathlib import Path

from askgate import __version__
from askgate.config.logging import get_logger, setup_logging
from askgate.config.settings import Settings, load_settings
from askgate.components import AppComponents
from askgate.llm.models import Query, Response
from askgate.obs.metrics import InMemoryQueryMetrics
from askgate.rag.base import RetrievedFact


def parse_key_value(text: str) -> tuple[str, str]:
    """argparse type for ``KEY=VALUE`` metadata."""
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key, value


def _add_store_commands(subparsers, name: str, help_text: str) -> argparse.ArgumentParser:
    """Register the query/delete/clear subcommands shared by cache and facts."""
    store_parser = subparsers.add_parser(name, help=help_text)
    actions = store_parser.add_subparsers(dest="action", required=True)

    query_parser = actions.add_parser("query", help="Show the entries most similar to TEXT")
    query_parser.add_argument("text", type=str, help="Text to search for")
    query_parser.add_argument(
        "--embeddings",
        action="store_true",
        help="Include stored embeddings in the output",
    )

    delete_parser = actions.add_parser("delete", help="Delete one entry by id")
    delete_parser.add_argument("id", type=str, help="Entry id returned by 'add'")

    actions.add_parser("clear", help="Delete every entry")

    return actions


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="askgate",
        description="Answer questions from a semantic cache, stored facts, tools and an LLM",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"AskGate {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("config", help="Show current configuration")

    query_parser = subparsers.add_parser("query", help="Ask a question")
    query_parser.add_argument("question", type=str, help="The question to answer")
    query_parser.add_argument(
        "--no-cache",
        dest="use_cache",
        action="store_false",
        help="Skip the semantic cache and never cache the answer",
    )
    query_parser.add_argument(
        "--details",
        action="store_true",
        help="Print the full structured response and token counters",
    )

    cache_actions = _add_store_commands(subparsers, "cache", "Manage cached answers")
    cache_add = cache_actions.add_parser("add", help="Cache RESPONSE as the answer to FACT")
    cache_add.add_argument("fact", type=str, help="Question text")
    cache_add.add_argument("response", type=str, help="Answer text")
    cache_add.add_argument(
        "--meta",
        type=str,
        default="",
        help="Extra tags as KEY:VALUE,KEY:VALUE",
    )

    facts_actions = _add_store_commands(subparsers, "facts", "Manage facts and tool descriptors")
    facts_add = facts_actions.add_parser("add", help="Store a fact or tool descriptor")
    facts_add.add_argument("content", type=str, help="Fact text")
    facts_add.add_argument(
        "--meta",
        type=parse_key_value,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Metadata tag, repeatable (tool descriptors use --meta type=TOOL --meta name=<tool>)",
    )

    series_parser = subparsers.add_parser("series", help="Manage time-series data")
    series_actions = series_parser.add_subparsers(dest="action", required=True)
    series_add = series_actions.add_parser("add", help="Add one observation")
    series_add.add_argument("name", type=str, help="Series name")
    series_add.add_argument("timestamp", type=str, help="RFC 3339 timestamp")
    series_add.add_argument("value", type=float, help="Observed value")

    return parser


def _print_entries(entries: list[RetrievedFact], with_embeddings: bool) -> None:
    exclude = None if with_embeddings else {"embedding"}
    print(json.dumps([entry.model_dump(exclude=exclude) for entry in entries], indent=2))


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== AskGate Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nLLM Model: {settings.llm.model}")
    logger.info(f"LLM API Base: {settings.llm.api_base or 'provider default'}")
    logger.info(f"LLM API Key: {'Set' if settings.llm.api_key else 'Not set'}")
    logger.info(f"LLM Temperature: {settings.llm.temperature}")
    logger.info(f"Query Timeout: {settings.llm.timeout}s")
    logger.info(f"\nMin Confidence (context): {settings.gate.min_confidence_rag}")
    logger.info(f"Min Confidence (tool): {settings.gate.min_confidence_tool}")
    logger.info(f"Min Confidence (cache): {settings.gate.min_confidence_cache}")
    logger.info(f"\nVector DB Path: {settings.store.vector_db_path}")
    logger.info(f"Collections: cache={settings.store.cache_collection}, facts={settings.store.facts_collection}")
    logger.info(f"Embedding Model: {settings.store.embedding_model} ({settings.store.embedding_device})")
    logger.info(f"\nTool Database: {settings.tools.database_url}")

    return 0


async def cmd_query(args, settings: Settings) -> int:
    """
    Answer a question through the orchestrator.

    The whole query runs under the configured deadline; on timeout every
    in-flight model call, store call and tool subprocess is cancelled.
    """
    logger = get_logger(__name__)
    factory = AppComponents(settings)
    metrics = InMemoryQueryMetrics()

    try:
        async with AsyncExitStack() as stack:
            orchestrator = await factory.open_orchestrator(stack, metrics=metrics)
            query = Query(text=args.question, use_cache=args.use_cache, want_details=args.details)

            logger.info(f"Asking {settings.llm.model}...")
            result = await asyncio.wait_for(orchestrator.answer(query), timeout=settings.llm.timeout)

            if isinstance(result, Response):
                print(result.model_dump_json(indent=2))
                print(f"\nCounters: {json.dumps(metrics.snapshot())}")
            else:
                print(result)
            return 0

    except TimeoutError:
        logger.error(f"Query timed out after {settings.llm.timeout}s")
        return 1
    except Exception as e:
        logger.error(f"Query failed: {e}", exc_info=True)
        return 1


async def cmd_store(args, settings: Settings) -> int:
    """Run a cache or facts management action."""
    logger = get_logger(__name__)
    factory = AppComponents(settings)

    try:
        async with AsyncExitStack() as stack:
            model = await stack.enter_async_context(factory.create_embedding_model())
            if args.command == "cache":
                store = await factory.open_cache(stack, model)
            else:
                store = await factory.open_facts(stack, model)

            if args.action == "add":
                if args.command == "cache":
                    entry_id = await store.add(args.fact, args.response, args.meta)
                else:
                    entry_id = await store.add(args.content, dict(args.meta))
                print(entry_id)
            elif args.action == "query":
                _print_entries(await store.query(args.text, include_embeddings=args.embeddings), args.embeddings)
            elif args.action == "delete":
                await store.delete(args.id)
                logger.info(f"Deleted {args.id} from '{store.name}'")
            elif args.action == "clear":
                await store.clear()
                logger.info(f"Cleared '{store.name}'")
            return 0

    except Exception as e:
        logger.error(f"{args.command} {args.action} failed: {e}", exc_info=True)
        return 1


async def cmd_series(args, settings: Settings) -> int:
    """Add a time-series observation."""
    logger = get_logger(__name__)

    try:
        async with AppComponents(settings).create_timeseries_store() as timeseries:
            await timeseries.add_point(args.name, args.timestamp, args.value)
            logger.info(f"Added {args.name}={args.value} at {args.timestamp}")
            return 0
    except Exception as e:
        logger.error(f"series add failed: {e}", exc_info=True)
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        settings.log_level = args.log_level

    setup_logging(settings)

    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "query":
        return asyncio.run(cmd_query(args, settings))
    elif args.command in ("cache", "facts"):
        return asyncio.run(cmd_store(args, settings))
    elif args.command == "series":
        return asyncio.run(cmd_series(args, settings))
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
