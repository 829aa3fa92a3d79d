"""
Race orchestrator ("leaderboard").

Sends one request to several targets at once. The first target to produce
non-blank text becomes the leader and streams live; the others accumulate
silently and are printed in target order once every target has settled.
"""

import asyncio
import contextlib
import logging
import time
from typing import Callable, Dict, List, Optional

from .aggregator import ResultAggregator
from .cancellation import CancellationBroker
from .errors import CancellationError
from .models import Fragment, RaceOutcome, RaceState, RunnerState, RunnerStatus, Target, TargetResult
from .output import Renderer
from .providers import open_stream
from .providers.router import StreamOpener
from .runner import TargetRunner

logger = logging.getLogger(__name__)


class RaceOrchestrator:
    def __init__(
        self,
        renderer: Renderer,
        broker: CancellationBroker,
        stream_opener: StreamOpener = open_stream,
        timeout: Optional[float] = None,
        aggregator: Optional[ResultAggregator] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._renderer = renderer
        self._broker = broker
        self._stream_opener = stream_opener
        self._timeout = timeout
        self._aggregator = aggregator or ResultAggregator()
        self._clock = clock
        self.state: Optional[RaceState] = None

    async def run(
        self,
        messages: List[Dict[str, str]],
        targets: List[Target],
        cached: Optional[List[TargetResult]] = None,
    ) -> Optional[RaceOutcome]:
        """
        Run the race to settlement.

        Args:
            cached: Results already printed from the cache. They are placed
                ahead of the raced results and counted in the summary.

        Returns:
            The aggregated outcome, or None if the request was cancelled.
            Cancelled races print no settle-walk and no summary.
        """
        RaceState.check_targets(targets)
        runners = [
            TargetRunner(target, self._stream_opener, self._timeout, self._clock)
            for target in targets
        ]
        race = RaceState(runners=[runner.state for runner in runners])
        self.state = race
        started = self._clock()
        logger.debug("Starting race with %d models", len(runners))

        try:
            async with asyncio.TaskGroup() as group:
                for index, runner in enumerate(runners):
                    task = group.create_task(self._drive(race, index, runner, messages))
                    # Already fired: let each runner record its own abort
                    if not self._broker.cancelled:
                        self._broker.register(task)
        except ExceptionGroup as eg:
            # A defect in one runner; the group has already cancelled the rest
            raise eg.exceptions[0] from eg

        if self._broker.cancelled:
            logger.debug("Race cancelled after %d/%d settled", race.settled_count, len(runners))
            return None

        elapsed = self._clock() - started
        self._render_settled(race)
        outcome = self._aggregator.collect(race, elapsed)
        if cached:
            outcome.results = list(cached) + outcome.results
            outcome.successful += len(cached)
            outcome.total += len(cached)
        self._renderer.summary(outcome.successful, outcome.total, elapsed)
        logger.debug("Race completed - %d/%d successful", outcome.successful, outcome.total)
        return outcome

    async def _drive(
        self,
        race: RaceState,
        index: int,
        runner: TargetRunner,
        messages: List[Dict[str, str]],
    ) -> None:
        try:
            async with contextlib.aclosing(runner.run(messages, self._broker.token)) as fragments:
                async for fragment in fragments:
                    if self._broker.cancelled:
                        break
                    self._on_fragment(race, index, runner.state, fragment)
        except CancellationError:
            return
        finally:
            race.settle()

        if index == race.leader_index and not self._broker.cancelled:
            self._render_leader_end(race, runner.state)

    def _on_fragment(
        self, race: RaceState, index: int, state: RunnerState, fragment: Fragment
    ) -> None:
        if race.leader_index is None and fragment.text.strip():
            if race.claim_leader(index):
                logger.debug("Leader selected - %s", state.target.key)
                self._renderer.header(state.target, state.latency)

        if race.leader_index == index:
            self._renderer.stream(fragment.text)

    def _render_leader_end(self, race: RaceState, state: RunnerState) -> None:
        if state.status is RunnerStatus.DONE:
            self._renderer.finished(state.elapsed)
        elif state.status is RunnerStatus.ERRORED:
            self._renderer.text("")
            self._renderer.failed(str(state.error) if state.error else None, state.elapsed)
        else:
            self._renderer.text("")
            self._renderer.aborted(state.abort_reason)

        remaining = sum(1 for runner in race.runners if not runner.status.is_terminal)
        if remaining:
            self._renderer.waiting(remaining)

    def _render_settled(self, race: RaceState) -> None:
        for index, state in enumerate(race.runners):
            if index == race.leader_index:
                continue

            self._renderer.header(state.target)
            if state.status is RunnerStatus.DONE:
                if state.text:
                    self._renderer.text(state.text)
                self._renderer.finished(state.elapsed)
            elif state.status is RunnerStatus.ERRORED:
                self._renderer.failed(str(state.error) if state.error else None, state.elapsed)
            elif state.status is RunnerStatus.ABORTED:
                self._renderer.aborted(state.abort_reason)
            else:
                # Unreachable after the task group join; print what arrived
                logger.warning("%s still %s at settlement", state.target.key, state.status.value)
                self._renderer.text(state.text)
