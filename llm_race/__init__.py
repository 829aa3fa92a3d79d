"""Race one chat request across several LLM backends."""

from .cancellation import CancellationBroker, CancellationToken
from .dispatch import dispatch
from .models import CommandRequest, Fragment, Target
from .race import RaceOrchestrator
from .runner import TargetRunner

__all__ = [
    "CancellationBroker",
    "CancellationToken",
    "CommandRequest",
    "Fragment",
    "RaceOrchestrator",
    "Target",
    "TargetRunner",
    "dispatch",
]
