"""Terminal rendering for race output. The orchestrator is its only writer."""

from typing import Optional

from rich.console import Console
from rich.text import Text

from .models import Target

CROSS = "✗"


class Renderer:
    """Writes headers, streamed text and summaries to one console."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)

    def _line(self, text="", **kwargs) -> None:
        self.console.print(text, markup=False, highlight=False, emoji=False, soft_wrap=True, **kwargs)

    def header(self, target: Target, latency: Optional[float] = None) -> None:
        header = Text()
        header.append(target.provider, style="bold cyan")
        header.append(f" ({target.model}):", style="cyan")
        if latency is not None:
            header.append(f" {latency:.1f}s", style="dim")
        self._line()
        self._line(header)

    def stream(self, text: str) -> None:
        self._line(text, end="")

    def text(self, text: str) -> None:
        self._line(text)

    def finished(self, elapsed: float) -> None:
        self._line()
        self._line(Text(f"finished: {elapsed:.1f}s", style="dim"))

    def failed(self, message: Optional[str], elapsed: float) -> None:
        if message:
            self._line(Text(f"Error: {message}", style="red"))
        self._line(Text(f"{CROSS} failed: {elapsed:.1f}s", style="dim red"))

    def aborted(self, reason: Optional[str]) -> None:
        self._line(Text(reason or "Request cancelled", style="yellow"))

    def waiting(self, remaining: int) -> None:
        plural = "s" if remaining > 1 else ""
        self._line(Text(f"Waiting for {remaining} more model{plural}...", style="dim"))

    def summary(self, successful: int, total: int, elapsed: float) -> None:
        style = "green" if successful == total else "yellow"
        self._line()
        self._line(Text(f"[{successful}/{total} models responded in {elapsed:.2f}s]", style=style))

    def cancelled(self) -> None:
        self._line()
        self._line(Text("Request cancelled", style="yellow"))

    def cached(self, target: Target, text: str) -> None:
        self.header(target)
        self._line(text)
        self._line(Text("(cached)", style="dim"))
