"""Collect final per-target outcomes once a race has settled."""

import logging
from typing import Optional

from .cache import ResponseCache, cache_key, model_cache_key
from .models import CommandRequest, RaceOutcome, RaceState, RunnerStatus, TargetResult

logger = logging.getLogger(__name__)


class ResultAggregator:
    def __init__(self, cache: Optional[ResponseCache] = None):
        self.cache = cache

    def collect(self, race: RaceState, elapsed: float) -> RaceOutcome:
        results = []
        for state in race.runners:
            done = state.status is RunnerStatus.DONE
            if state.status is RunnerStatus.ERRORED and state.error is not None:
                error = str(state.error)
            elif state.status is RunnerStatus.ABORTED:
                error = state.abort_reason or "Request cancelled"
            else:
                error = None
            results.append(TargetResult(
                target=state.target,
                text=state.text if done else None,
                error=error,
                elapsed_ms=int(round(state.elapsed * 1000)),
            ))

        successful = sum(1 for state in race.runners if state.status is RunnerStatus.DONE)
        return RaceOutcome(
            results=results,
            successful=successful,
            total=len(results),
            elapsed=elapsed,
        )

    def persist(self, outcome: RaceOutcome, request: CommandRequest) -> bool:
        """
        Write successful responses to the cache.

        Returns True if anything was stored. Failed and aborted targets are
        never cached.
        """
        if self.cache is None or not request.is_cached:
            return False

        responses = {
            result.target.key: result.text
            for result in outcome.results
            if result.text
        }
        if not responses:
            return False

        if request.is_multi:
            key = cache_key(request.user_input, request.id, multi=True)
            self.cache.set_many(key, responses)
            if request.id:
                for target_key, text in responses.items():
                    self.cache.set(model_cache_key(request.user_input, request.id, target_key), text)
        else:
            key = cache_key(request.user_input)
            self.cache.set(key, next(iter(responses.values())))
        logger.debug("Persisted %d responses under %s", len(responses), key)
        return True
