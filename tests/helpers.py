import asyncio
import io
import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich.console import Console

from llm_race.errors import TransportError
from llm_race.output import Renderer


def make_renderer() -> Tuple[Renderer, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, highlight=False, color_system=None)
    return Renderer(console), buffer


def sse(payload: Any) -> bytes:
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n".encode("utf-8")


def text_delta(text: str) -> Dict[str, Any]:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


def chat_chunk(content: Optional[str]) -> Dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": content}}]}


class FakeEventStream:
    """Reader-style transport: raw SSE bytes, optionally delayed per chunk."""

    def __init__(self, chunks: Sequence[bytes], delays: Optional[Sequence[float]] = None):
        self.chunks = list(chunks)
        self.delays = list(delays) if delays is not None else [0.0] * len(self.chunks)
        self.closed = False
        self.reads = 0

    async def aiter_bytes(self):
        for chunk, delay in zip(self.chunks, self.delays):
            await asyncio.sleep(delay)
            self.reads += 1
            yield chunk

    async def aclose(self):
        self.closed = True


class FakeIteratorStream:
    """Async-iterator transport of decoded chat-completion events."""

    def __init__(self, events: Sequence[Any], delays: Optional[Sequence[float]] = None):
        self.events = list(events)
        self.delays = list(delays) if delays is not None else [0.0] * len(self.events)
        self.closed = False

    def __aiter__(self):
        return self._events()

    async def _events(self):
        for event, delay in zip(self.events, self.delays):
            await asyncio.sleep(delay)
            yield event

    async def aclose(self):
        self.closed = True


class DualShapeStream(FakeEventStream):
    """Satisfies both shape tests; only the byte reader carries the text."""

    def __aiter__(self):
        return self._nothing()

    async def _nothing(self):
        return
        yield


def fragments_stream(texts: Sequence[str], delays: Optional[Sequence[float]] = None) -> FakeIteratorStream:
    return FakeIteratorStream([chat_chunk(text) for text in texts], delays)


class FakeOpener:
    """
    Stream opener keyed by target key.

    Each entry is either a transport, an exception to raise when opening, or
    a (delay, transport) pair to simulate a slow connect.
    """

    def __init__(self, streams: Dict[str, Any]):
        self.streams = streams
        self.opened: List[str] = []
        self.released: List[str] = []

    def __call__(self, target, messages):
        return self._open(target, messages)

    @asynccontextmanager
    async def _open(self, target, messages):
        entry = self.streams[target.key]
        delay = 0.0
        if isinstance(entry, tuple):
            delay, entry = entry
        await asyncio.sleep(delay)
        if isinstance(entry, BaseException):
            raise entry
        self.opened.append(target.key)
        try:
            yield entry
        finally:
            self.released.append(target.key)


def transport_error(message: str = "connection refused", code: Any = None) -> TransportError:
    return TransportError(message, code=code)
