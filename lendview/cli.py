"""Command-line interface for the lending pool view layer."""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from enum import Enum
from typing import Any

from .config import load_config
from .logging_setup import configure_logging
from .services.core import LendingCore

logger = logging.getLogger(__name__)


def to_jsonable(value: Any) -> Any:
    """Dataclasses, enums and containers → JSON-compatible structures."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lendview",
        description="Portfolio, risk and event views over an on-chain lending pool",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    summary = sub.add_parser("summary", help="Portfolio summary for one account")
    summary.add_argument("account")

    events = sub.add_parser("events", help="Decoded lending pool events, newest first")
    events.add_argument("--from-block", type=int, default=None)
    events.add_argument("--to-block", type=int, default=None)

    liquidations = sub.add_parser(
        "liquidations", help="Positions in the danger band for the given accounts"
    )
    liquidations.add_argument("accounts", nargs="+")

    sub.add_parser("analytics", help="Protocol-wide TVL, utilization and rates")

    recommend = sub.add_parser("recommend", help="Yield recommendations")
    recommend.add_argument("--risk", choices=["low", "medium", "high"], default="medium")

    batch = sub.add_parser("batch-status", help="Status of a batched authorization")
    batch.add_argument("authorization_id")

    sub.add_parser("watch", help="Poll every view until interrupted")

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse and cross-check arguments. Exits with usage on a bad combination."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "events" and args.to_block is not None and args.from_block is None:
        parser.error("--to-block requires --from-block")
    return args


async def _watch(core: LendingCore) -> None:
    core.start_all()
    logger.info("Watching %d accounts; press Ctrl+C to stop", len(core.config.accounts))
    try:
        await asyncio.Event().wait()
    finally:
        await core.close()


async def _run(args: argparse.Namespace) -> Any:
    """Execute the selected command and return its result."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    core = LendingCore(config)

    try:
        if args.command == "summary":
            return await core.summarize(args.account)
        if args.command == "events":
            if args.from_block is None:
                return await core.recent_events()
            return await core.fetch_events(
                args.from_block, args.to_block if args.to_block is not None else "latest"
            )
        if args.command == "liquidations":
            return await core.liquidation_watch(args.accounts)
        if args.command == "analytics":
            return await core.protocol_analytics()
        if args.command == "recommend":
            return await core.recommend(args.risk)
        if args.command == "batch-status":
            return await core.poll_batched(args.authorization_id)
        if args.command == "watch":
            await _watch(core)
            return None
    finally:
        await core.close()

    build_parser().print_help()
    sys.exit(1)


def main() -> None:
    """Entry point."""
    args = parse_args()

    if not args.command:
        build_parser().print_help()
        sys.exit(1)

    try:
        result = asyncio.run(_run(args))
    except KeyboardInterrupt:
        return
    if result is not None:
        print(json.dumps(to_jsonable(result), indent=2))
