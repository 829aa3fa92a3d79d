"""Data model shared by runners, the race orchestrator and the aggregator."""

import enum
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from pydantic import BaseModel

from .config import get_family
from .errors import ConfigurationError


@dataclass(frozen=True)
class Target:
    """One (provider, model) pair competing in a race."""

    provider: str
    model: str
    family: Optional[str] = field(default=None, compare=False)

    @property
    def key(self) -> str:
        return f"{self.provider}:{self.model}"

    @classmethod
    def create(cls, provider: str, model: str) -> "Target":
        """Build a target tagged with its provider's protocol family."""
        return cls(provider, model, get_family(provider))

    @classmethod
    def parse(cls, identifier: str) -> "Target":
        """
        Parse a "provider/model" identifier.

        Only the first slash separates the provider, so OpenRouter style
        identifiers such as "openrouter/google/gemini-2.5-pro" keep the
        vendor prefix in the model name.
        """
        if "/" not in identifier:
            raise ConfigurationError(
                f"Model identifier '{identifier}' must look like provider/model"
            )
        provider, model = identifier.split("/", 1)
        if not provider or not model:
            raise ConfigurationError(f"Invalid model identifier '{identifier}'")
        return cls.create(provider, model)

    def __str__(self) -> str:
        return f"{self.provider} ({self.model})"


@dataclass(frozen=True)
class Fragment:
    """Smallest normalized unit of streamed text."""

    text: str
    final: bool = False


class RunnerStatus(str, enum.Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    DONE = "done"
    ERRORED = "errored"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (RunnerStatus.DONE, RunnerStatus.ERRORED, RunnerStatus.ABORTED)

    @property
    def rank(self) -> int:
        if self is RunnerStatus.PENDING:
            return 0
        if self is RunnerStatus.STREAMING:
            return 1
        return 2


@dataclass
class ErrorInfo:
    """Error captured for one target, kept verbatim for display."""

    message: str
    code: Optional[Union[str, int]] = None

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} ({self.code})"


@dataclass
class RunnerState:
    """Progress of one target. Mutated only by its TargetRunner."""

    target: Target
    status: RunnerStatus = RunnerStatus.PENDING
    text: str = ""
    started_at: Optional[float] = None
    first_fragment_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[ErrorInfo] = None
    abort_reason: Optional[str] = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)

    def advance(self, status: RunnerStatus) -> None:
        """Move to a later status. Backward or post-terminal moves are defects."""
        if self.status.is_terminal or status.rank <= self.status.rank:
            raise ConfigurationError(
                f"{self.target.key}: illegal transition {self.status.value} -> {status.value}"
            )
        self.status = status

    @property
    def latency(self) -> Optional[float]:
        """Seconds from start to the first fragment, frozen once streaming."""
        if self.started_at is None or self.first_fragment_at is None:
            return None
        return self.first_fragment_at - self.started_at

    @property
    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else self.clock()
        return end - self.started_at


@dataclass
class RaceState:
    """Shared view of one race. Owned by the RaceOrchestrator."""

    runners: List[RunnerState]
    leader_index: Optional[int] = None
    settled_count: int = 0

    @staticmethod
    def check_targets(targets: List[Target]) -> None:
        """A race needs at least one target and no (provider, model) twice."""
        if not targets:
            raise ConfigurationError("A race needs at least one target")
        seen = set()
        for target in targets:
            if (target.provider, target.model) in seen:
                raise ConfigurationError(f"Duplicate target in race: {target.key}")
            seen.add((target.provider, target.model))

    def claim_leader(self, index: int) -> bool:
        """Record the leader once. Returns True only for the winning claim."""
        if self.leader_index is not None:
            return False
        self.leader_index = index
        return True

    def settle(self) -> None:
        self.settled_count += 1


@dataclass
class TargetResult:
    target: Target
    text: Optional[str]
    error: Optional[str]
    elapsed_ms: int


@dataclass
class RaceOutcome:
    results: List[TargetResult]
    successful: int
    total: int
    elapsed: float


class ModelRef(BaseModel):
    """A provider/model pair as supplied by the command resolver."""
    provider: str
    model: str


class CommandRequest(BaseModel):
    """Resolved command: what to send and which targets to send it to."""
    content: str
    user_input: str
    models: List[ModelRef]
    id: Optional[str] = None
    is_cached: bool = False

    @property
    def is_multi(self) -> bool:
        return len(self.models) > 1

    def targets(self) -> List[Target]:
        return [Target.create(m.provider, m.model) for m in self.models]
