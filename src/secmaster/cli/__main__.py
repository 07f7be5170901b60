"""CLI entry point: python -m secmaster.cli {resolve,adjudicate-pending,stats}"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

import structlog

from secmaster.adjudication.prompt import SYSTEM_PROMPT
from secmaster.config.settings import Settings, get_settings
from secmaster.db.engine import dispose_engine, get_session_factory
from secmaster.domain import SourceFeed
from secmaster.errors import PipelineAbortedError
from secmaster.logging_config import configure_logging
from secmaster.matching.config import MatchingConfig, load_matching_config
from secmaster.oracles.gemini import (
    GeminiEmbeddingOracle,
    GeminiReasoningOracle,
    create_client,
)
from secmaster.oracles.stub import HashingEmbeddingOracle
from secmaster.reporting.statistics import match_statistics
from secmaster.worker.orchestrator import RunContext, adjudicate_pending, resolve_feed_files

_FEED_PREFIXES = {
    SourceFeed.FEED_A: "feed_a",
    SourceFeed.FEED_B: "feed_b",
    SourceFeed.FEED_C: "feed_c",
}


def discover_feed_files(data_dir: Path) -> list[tuple[SourceFeed, Path]]:
    """Find ``feed_a*.csv|json`` style exports in ``data_dir``."""
    found = []
    for source, prefix in _FEED_PREFIXES.items():
        for path in sorted(data_dir.glob(f"{prefix}*")):
            if path.suffix.lower() in (".csv", ".json"):
                found.append((source, path))
    return found


def build_context(settings: Settings, config: MatchingConfig, offline: bool) -> RunContext:
    """Wire oracles and the session factory into a run context."""
    # A Gemini key turns adjudication on
    if settings.gemini_api_key and not offline:
        config.adjudication.enabled = True

    reasoning = None
    if offline:
        embedding = HashingEmbeddingOracle(dimension=config.embedding.dimension)
    else:
        if not settings.gemini_api_key:
            raise PipelineAbortedError(
                "SECMASTER_GEMINI_API_KEY is not set (use --offline for a local run)"
            )
        client = create_client(settings.gemini_api_key)
        embedding = GeminiEmbeddingOracle(
            client, config.embedding.model, config.embedding.dimension
        )
        if config.adjudication.enabled:
            reasoning = GeminiReasoningOracle(
                client,
                config.adjudication.model,
                SYSTEM_PROMPT,
                temperature=config.adjudication.temperature,
                max_output_tokens=config.adjudication.max_output_tokens,
            )

    return RunContext.create(
        config=config,
        session_factory=get_session_factory(),
        embedding_oracle=embedding,
        reasoning_oracle=reasoning,
    )


def _install_signal_handlers(ctx: RunContext) -> None:
    # Stop issuing new oracle calls; in-flight ones finish or time out
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, ctx.cancel_event.set)


async def run_resolve(args: argparse.Namespace, settings: Settings) -> dict:
    feeds = [(SourceFeed.FEED_A, Path(p)) for p in args.feed_a or []]
    feeds += [(SourceFeed.FEED_B, Path(p)) for p in args.feed_b or []]
    feeds += [(SourceFeed.FEED_C, Path(p)) for p in args.feed_c or []]
    if not feeds:
        feeds = discover_feed_files(Path(args.data_dir or settings.feed_data_dir))
    if not feeds:
        raise PipelineAbortedError("No feed files given or found")

    config = load_matching_config(settings.matching_config_path)
    ctx = build_context(settings, config, args.offline)
    _install_signal_handlers(ctx)
    summary = await resolve_feed_files(ctx, feeds)
    return summary.to_dict()


async def run_adjudicate_pending(args: argparse.Namespace, settings: Settings) -> dict:
    config = load_matching_config(settings.matching_config_path)
    ctx = build_context(settings, config, offline=False)
    _install_signal_handlers(ctx)
    summary = await adjudicate_pending(ctx)
    return summary.to_dict()


async def run_stats(args: argparse.Namespace, settings: Settings) -> dict:
    async with get_session_factory()() as session:
        return await match_statistics(session)


async def _run_command(command, args: argparse.Namespace, settings: Settings) -> dict:
    try:
        return await command(args, settings)
    finally:
        await dispose_engine()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="secmaster.cli",
        description="Securities entity resolution CLI",
    )
    subparsers = parser.add_subparsers(dest="command")

    resolve_parser = subparsers.add_parser(
        "resolve", help="Harmonize feeds, score, decide, adjudicate and persist"
    )
    resolve_parser.add_argument("--feed-a", action="append", help="Vendor A export (.csv/.json)")
    resolve_parser.add_argument("--feed-b", action="append", help="Vendor B export (.csv/.json)")
    resolve_parser.add_argument("--feed-c", action="append", help="Regulatory export (.csv/.json)")
    resolve_parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Directory scanned for feed_a*/feed_b*/feed_c* files when no feed is given",
    )
    resolve_parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the local hashing embedder and skip adjudication",
    )

    subparsers.add_parser(
        "adjudicate-pending", help="Retry adjudication of stored PENDING decisions"
    )
    subparsers.add_parser("stats", help="Print match decision statistics")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    configure_logging(json_output=settings.log_json, log_level=settings.log_level)
    log = structlog.get_logger()

    commands = {
        "resolve": run_resolve,
        "adjudicate-pending": run_adjudicate_pending,
        "stats": run_stats,
    }
    try:
        result = asyncio.run(_run_command(commands[args.command], args, settings))
    except PipelineAbortedError as e:
        log.error("command_aborted", command=args.command, reason=str(e))
        sys.exit(2)
    except (OSError, ValueError) as e:
        # Unreadable or missing feed files, bad matching config
        log.error("command_failed", command=args.command, error=str(e))
        sys.exit(3)

    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
