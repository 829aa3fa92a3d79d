"""Drive one backend call end to end for a single target."""

import asyncio
import contextlib
import logging
import time
from typing import AsyncIterator, Callable, Dict, List, Optional

import httpx

from .adapters import iterate_fragments
from .cancellation import CancellationToken
from .errors import CancellationError, ProtocolError, TransportError
from .models import ErrorInfo, Fragment, RunnerState, RunnerStatus, Target
from .providers import open_stream
from .providers.router import StreamOpener

logger = logging.getLogger(__name__)


class TargetRunner:
    """
    Runs exactly one (provider, model) target and owns its RunnerState.

    Transport and protocol failures are recorded on the state and end the
    iteration quietly. Cancellation and programming errors propagate after
    the state has reached a terminal status.
    """

    def __init__(
        self,
        target: Target,
        stream_opener: StreamOpener = open_stream,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.target = target
        self.state = RunnerState(target, clock=clock)
        self._stream_opener = stream_opener
        self._timeout = timeout
        self._clock = clock

    async def run(
        self, messages: List[Dict[str, str]], token: CancellationToken
    ) -> AsyncIterator[Fragment]:
        self.state.started_at = self._clock()
        if token.cancelled:
            self._finish(RunnerStatus.ABORTED, abort_reason=token.reason)
            raise CancellationError(token.reason or "Request cancelled")

        deadline = None
        if self._timeout is not None:
            deadline = asyncio.get_running_loop().time() + self._timeout

        scope = None
        try:
            async with contextlib.AsyncExitStack() as stack:
                async with asyncio.timeout_at(deadline) as scope:
                    transport = await stack.enter_async_context(
                        self._stream_opener(self.target, messages)
                    )
                fragments = iterate_fragments(transport, self.target.family, token)
                stack.push_async_callback(fragments.aclose)

                while True:
                    token.raise_if_cancelled()
                    async with asyncio.timeout_at(deadline) as scope:
                        try:
                            fragment = await anext(fragments)
                        except StopAsyncIteration:
                            break
                    self._record(fragment)
                    yield fragment
        except TimeoutError as e:
            if scope is None or not scope.expired():
                # Raised by the transport itself, not our deadline
                self._fail(ErrorInfo(str(e) or "Request timed out", "timeout"))
                return
            reason = f"timed out after {self._timeout:g}s"
            logger.info("%s %s", self.target.key, reason)
            self._finish(RunnerStatus.ABORTED, abort_reason=reason)
            return
        except TransportError as e:
            self._fail(ErrorInfo(e.message, e.code))
            return
        except ProtocolError as e:
            self._fail(ErrorInfo(str(e)))
            return
        except httpx.HTTPError as e:
            self._fail(ErrorInfo(str(e) or type(e).__name__))
            return
        except (asyncio.CancelledError, CancellationError, GeneratorExit):
            logger.debug("%s cancelled", self.target.key)
            self._finish(RunnerStatus.ABORTED, abort_reason=token.reason)
            raise
        except Exception as e:
            self._finish(RunnerStatus.ERRORED, error=ErrorInfo(str(e) or type(e).__name__))
            raise

        self._finish(RunnerStatus.DONE)
        logger.debug(
            "%s done in %.2fs (%d chars)", self.target.key, self.state.elapsed, len(self.state.text)
        )

    def _record(self, fragment: Fragment) -> None:
        if self.state.status is RunnerStatus.PENDING:
            self.state.first_fragment_at = self._clock()
            self.state.advance(RunnerStatus.STREAMING)
        self.state.text += fragment.text

    def _fail(self, error: ErrorInfo) -> None:
        logger.warning("Model %s failed: %s", self.target.key, error)
        self._finish(RunnerStatus.ERRORED, error=error)

    def _finish(
        self,
        status: RunnerStatus,
        error: Optional[ErrorInfo] = None,
        abort_reason: Optional[str] = None,
    ) -> None:
        if self.state.status.is_terminal:
            return
        self.state.finished_at = self._clock()
        self.state.error = error
        self.state.abort_reason = abort_reason
        self.state.advance(status)
