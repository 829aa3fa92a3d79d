"""Route a resolved command to the single-target path or a race."""

import asyncio
import contextlib
import logging
import time
from typing import Dict, List, Optional

from .aggregator import ResultAggregator
from .cache import ResponseCache, cache_key, model_cache_key
from .cancellation import CancellationBroker
from .errors import CancellationError
from .models import CommandRequest, RaceOutcome, RaceState, RunnerStatus, Target, TargetResult
from .output import Renderer
from .providers import open_stream
from .providers.router import StreamOpener
from .race import RaceOrchestrator
from .runner import TargetRunner

logger = logging.getLogger(__name__)


def build_messages(request: CommandRequest, system: Optional[str] = None) -> List[Dict[str, str]]:
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": request.content})
    return messages


async def dispatch(
    request: CommandRequest,
    messages: List[Dict[str, str]],
    renderer: Renderer,
    broker: CancellationBroker,
    cache: Optional[ResponseCache] = None,
    stream_opener: StreamOpener = open_stream,
    timeout: Optional[float] = None,
) -> Optional[RaceOutcome]:
    """
    Serve one request.

    More than one model selects the race; a single model streams live
    without racing. Cached responses are printed without a network call.

    Returns:
        The outcome, or None if the request was cancelled
    """
    aggregator = ResultAggregator(cache)
    targets = request.targets()
    use_cache = cache is not None and request.is_cached

    if use_cache:
        cached = _render_full_cache_hit(request, targets, cache, renderer)
        if cached is not None:
            return cached

    if not request.is_multi:
        outcome = await run_single(
            messages, targets[0], renderer, broker, stream_opener, timeout, aggregator
        )
    else:
        cached_results = []
        if use_cache and request.id:
            cached_results, targets = _split_cached_targets(request, targets, cache, renderer)
        if not targets:
            renderer.summary(len(cached_results), len(cached_results), 0.0)
            return RaceOutcome(
                results=cached_results,
                successful=len(cached_results),
                total=len(cached_results),
                elapsed=0.0,
            )
        orchestrator = RaceOrchestrator(
            renderer, broker, stream_opener, timeout, aggregator=aggregator
        )
        outcome = await orchestrator.run(messages, targets, cached=cached_results)

    if outcome is not None and use_cache:
        aggregator.persist(outcome, request)
    return outcome


async def run_single(
    messages: List[Dict[str, str]],
    target: Target,
    renderer: Renderer,
    broker: CancellationBroker,
    stream_opener: StreamOpener = open_stream,
    timeout: Optional[float] = None,
    aggregator: Optional[ResultAggregator] = None,
) -> Optional[RaceOutcome]:
    """Stream one target live. No leader selection, no summary line."""
    runner = TargetRunner(target, stream_opener, timeout)
    started = time.monotonic()
    header_shown = False

    async def consume():
        nonlocal header_shown
        async with contextlib.aclosing(runner.run(messages, broker.token)) as fragments:
            async for fragment in fragments:
                if broker.cancelled:
                    break
                if not header_shown:
                    renderer.header(target, runner.state.latency)
                    header_shown = True
                renderer.stream(fragment.text)

    task = asyncio.ensure_future(consume())
    if not broker.cancelled:
        broker.register(task)
    try:
        await task
    except CancellationError:
        return None
    except asyncio.CancelledError:
        if not broker.cancelled:
            raise
        return None

    if broker.cancelled:
        return None

    state = runner.state
    if state.status is RunnerStatus.DONE:
        if not header_shown:
            renderer.header(target)
        renderer.finished(state.elapsed)
    else:
        if not header_shown:
            renderer.header(target)
        else:
            renderer.text("")
        if state.status is RunnerStatus.ERRORED:
            renderer.failed(str(state.error) if state.error else None, state.elapsed)
        else:
            renderer.aborted(state.abort_reason)

    aggregator = aggregator or ResultAggregator()
    return aggregator.collect(RaceState(runners=[state]), time.monotonic() - started)


def _render_full_cache_hit(
    request: CommandRequest,
    targets: List[Target],
    cache: ResponseCache,
    renderer: Renderer,
) -> Optional[RaceOutcome]:
    if request.is_multi:
        responses = cache.get_many(cache_key(request.user_input, request.id, multi=True))
        if not responses or any(target.key not in responses for target in targets):
            return None
    else:
        text = cache.get(cache_key(request.user_input))
        if not isinstance(text, str):
            return None
        responses = {targets[0].key: text}

    logger.info("Showing %d cached responses", len(responses))
    results = []
    for target in targets:
        renderer.cached(target, responses[target.key])
        results.append(TargetResult(target, responses[target.key], None, 0))
    return RaceOutcome(results=results, successful=len(results), total=len(results), elapsed=0.0)


def _split_cached_targets(
    request: CommandRequest,
    targets: List[Target],
    cache: ResponseCache,
    renderer: Renderer,
):
    """Print per-model cache hits now and return the targets still to race."""
    cached_results = []
    remaining = []
    for target in targets:
        text = cache.get(model_cache_key(request.user_input, request.id, target.key))
        if isinstance(text, str):
            renderer.cached(target, text)
            cached_results.append(TargetResult(target, text, None, 0))
        else:
            remaining.append(target)

    if cached_results:
        logger.info("Showing %d cached responses, racing %d", len(cached_results), len(remaining))
    return cached_results, remaining
