"""Command-line entry point for llm-race."""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from .cache import ResponseCache
from .cancellation import CancellationBroker
from .config import CACHE_ENABLED, DEFAULT_TIMEOUT, LOG_LEVEL
from .dispatch import build_messages, dispatch
from .errors import RaceError
from .models import CommandRequest, ModelRef, Target
from .output import Renderer

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Send logs to stderr so they never interleave with streamed answers."""
    level = logging.DEBUG if verbose else LOG_LEVEL.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="llm-race",
        description="Send one prompt to several LLM backends and stream the fastest answer",
    )
    parser.add_argument("prompt", nargs="+", help="prompt text")
    parser.add_argument(
        "--model",
        "-m",
        action="append",
        required=True,
        help="target as provider/model; repeat to race several models",
    )
    parser.add_argument("--system", default=None, help="optional system message")
    parser.add_argument("--id", dest="command_id", default=None, help="command identifier for cache keys")
    parser.add_argument(
        "--cache",
        action=argparse.BooleanOptionalAction,
        default=CACHE_ENABLED,
        help="serve and store responses in the local cache",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="max seconds for each backend call",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def build_request(args: argparse.Namespace) -> CommandRequest:
    text = " ".join(args.prompt)
    models = []
    for identifier in args.model:
        target = Target.parse(identifier)
        models.append(ModelRef(provider=target.provider, model=target.model))
    return CommandRequest(
        content=text,
        user_input=text,
        models=models,
        id=args.command_id,
        is_cached=args.cache,
    )


async def _run(args: argparse.Namespace, renderer: Renderer) -> int:
    request = build_request(args)
    broker = CancellationBroker()
    broker.install_signal_handler()
    try:
        outcome = await dispatch(
            request,
            build_messages(request, args.system),
            renderer,
            broker,
            cache=ResponseCache() if args.cache else None,
            timeout=args.timeout,
        )
    finally:
        broker.remove_signal_handler()

    if outcome is None:
        renderer.cancelled()
        return 130
    return 0 if outcome.successful else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(args.verbose)
    renderer = Renderer()

    try:
        return asyncio.run(_run(args, renderer))
    except KeyboardInterrupt:
        renderer.cancelled()
        return 130
    except RaceError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
