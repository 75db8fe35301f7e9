"""
Command line interface for the recommendation pipeline.

    caprec analyze "fix the failing unit tests"
    caprec recommend "add a prisma migration" --catalog catalog.json --session s-1
    caprec feedback 12 accepted
    caprec stats
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from caprec.catalog import InMemoryCatalog
from caprec.config import DEFAULT_DB_PATH, ENV_PREFIX, EngineConfig
from caprec.errors import CaprecError
from caprec.recommendations import RecommendationAction, RecommendationEngine
from caprec.recommendations.analyzer import analyze_prompt
from caprec.recommendations.context import scan_project
from caprec.recommendations.schemas import to_payload
from caprec.storage import SQLiteRecommendationStore

logger = logging.getLogger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def _default_db_path() -> str:
    return os.environ.get(f"{ENV_PREFIX}DB_PATH", str(DEFAULT_DB_PATH))


def _load_catalog(path: str | None) -> InMemoryCatalog:
    if path is None:
        return InMemoryCatalog()
    return InMemoryCatalog.from_json_file(path)


def _build_engine(args: argparse.Namespace) -> tuple[RecommendationEngine, SQLiteRecommendationStore]:
    store = SQLiteRecommendationStore(Path(args.db).expanduser())
    engine = RecommendationEngine(
        catalog=_load_catalog(getattr(args, "catalog", None)),
        store=store,
        config=EngineConfig.from_env(),
    )
    return engine, store


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register recommendation CLI commands."""

    # analyze
    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Show keywords, intents and technologies extracted from a prompt",
    )
    analyze_parser.add_argument("prompt", help="Prompt text")
    analyze_parser.set_defaults(func=cmd_analyze)

    # project
    project_parser = subparsers.add_parser(
        "project",
        help="Scan a project directory and suggest capabilities for its stack",
    )
    project_parser.add_argument("path", help="Project directory")
    project_parser.add_argument(
        "--catalog",
        "-c",
        help="Catalog JSON file; without it only the detected context is shown",
    )
    project_parser.set_defaults(func=cmd_project)

    # recommend
    recommend_parser = subparsers.add_parser(
        "recommend",
        help="Recommend agents and skills for a prompt",
    )
    recommend_parser.add_argument("prompt", help="Prompt text")
    recommend_parser.add_argument("--catalog", "-c", required=True, help="Catalog JSON file")
    recommend_parser.add_argument("--session", "-s", help="Session id used for deduplication")
    recommend_parser.add_argument("--project", "-p", help="Project directory")
    recommend_parser.set_defaults(func=cmd_recommend)

    # feedback
    feedback_parser = subparsers.add_parser(
        "feedback",
        help="Record the user's response to a recommendation",
    )
    feedback_parser.add_argument("recommendation_id", type=int, help="Recommendation id")
    feedback_parser.add_argument(
        "action",
        choices=[a.value for a in RecommendationAction],
        help="User action",
    )
    feedback_parser.set_defaults(func=cmd_feedback)

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show acceptance statistics")
    stats_parser.set_defaults(func=cmd_stats)

    # cleanup
    cleanup_parser = subparsers.add_parser(
        "cleanup",
        help="Delete recommendations older than a number of days",
    )
    cleanup_parser.add_argument("--days", type=int, default=90, help="Maximum age in days")
    cleanup_parser.set_defaults(func=cmd_cleanup)


def cmd_analyze(args: argparse.Namespace) -> int:
    """Print the prompt analysis."""
    _print_json(to_payload(analyze_prompt(args.prompt)))
    return 0


def cmd_project(args: argparse.Namespace) -> int:
    """Print the project context and, with a catalog, project suggestions."""
    try:
        context = scan_project(args.path)
    except CaprecError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output: dict[str, Any] = {"context": to_payload(context)}
    if args.catalog:
        engine, store = _build_engine(args)
        try:
            suggestions = asyncio.run(engine.get_recommendations_for_project(args.path))
        finally:
            store.close()
        output["recommendations"] = [to_payload(s) for s in suggestions]

    _print_json(output)
    return 0


def cmd_recommend(args: argparse.Namespace) -> int:
    """Run the prompt pipeline and print the persisted recommendations."""
    engine, store = _build_engine(args)

    async def run() -> list[Any]:
        recs = await engine.get_recommendations_for_prompt(
            args.prompt, session_id=args.session, project_path=args.project
        )
        await engine.notifier.drain()
        return recs

    try:
        recs = asyncio.run(run())
    except CaprecError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    _print_json([to_payload(r) for r in recs])
    return 0


def cmd_feedback(args: argparse.Namespace) -> int:
    """Attach a user action to a recommendation."""
    engine, store = _build_engine(args)
    try:
        asyncio.run(engine.record_feedback(args.recommendation_id, args.action))
    except CaprecError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    _print_json({"recommendation_id": args.recommendation_id, "action": args.action})
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Print aggregate acceptance statistics."""
    engine, store = _build_engine(args)
    try:
        stats = asyncio.run(engine.get_stats())
    finally:
        store.close()
    _print_json(to_payload(stats))
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    """Delete old recommendation records."""
    store = SQLiteRecommendationStore(Path(args.db).expanduser())
    try:
        removed = asyncio.run(store.cleanup_old_recommendations(args.days))
    finally:
        store.close()
    _print_json({"removed": removed, "max_age_days": args.days})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="caprec",
        description="Agent and skill recommendations for coding prompts",
    )
    parser.add_argument(
        "--db",
        default=_default_db_path(),
        help=f"SQLite database file (default: {DEFAULT_DB_PATH})",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (OSError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
