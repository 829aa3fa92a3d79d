"""
Stream adapters: turn a backend's streaming wire format into Fragments.

Two protocol families are supported:
- openai: the transport is an async iterator of JSON events shaped
  {"choices": [{"delta": {"content": "..."}}]}
- anthropic: the transport is a byte reader delivering Server-Sent Events,
  with text in {"type": "content_block_delta", "delta": {"text": "..."}}

Targets normally carry their family tag from the provider registry. Shape
sniffing is only a fallback for unregistered providers.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterator, Optional

from .cancellation import CancellationToken
from .config import ANTHROPIC_FAMILY, OPENAI_FAMILY
from .errors import ConfigurationError, ProtocolError, TransportError
from .models import Fragment

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


def is_event_stream(transport: Any) -> bool:
    """Reader-style transport: exposes an async byte iterator."""
    return callable(getattr(transport, "aiter_bytes", None))


def is_async_iterator(transport: Any) -> bool:
    return callable(getattr(transport, "__aiter__", None))


def detect_family(transport: Any) -> str:
    """
    Guess the protocol family from the transport's shape.

    A response object can satisfy both tests. The reader test must run
    first: routing an event stream through the iterator path loses text.
    """
    if is_event_stream(transport):
        return ANTHROPIC_FAMILY
    if is_async_iterator(transport):
        return OPENAI_FAMILY
    raise ConfigurationError(
        f"Cannot determine stream protocol for {type(transport).__name__}"
    )


async def iterate_fragments(
    transport: Any,
    family: Optional[str] = None,
    token: Optional[CancellationToken] = None,
) -> AsyncIterator[Fragment]:
    """Yield Fragments from a transport, releasing it however iteration ends."""
    family = family or detect_family(transport)
    if family == ANTHROPIC_FAMILY:
        fragments = _event_stream_fragments(transport, token)
    elif family == OPENAI_FAMILY:
        fragments = _iterator_fragments(transport, token)
    else:
        raise ConfigurationError(f"Unknown stream protocol family '{family}'")

    try:
        async for fragment in fragments:
            if token is not None:
                token.raise_if_cancelled()
            yield fragment
    finally:
        await fragments.aclose()
        await _release(transport)


async def _release(transport: Any) -> None:
    aclose = getattr(transport, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        # The read side is finished either way; a failing close is noise.
        logger.debug("Error releasing transport: %s", e)


async def _iterator_fragments(
    stream: Any, token: Optional[CancellationToken]
) -> AsyncIterator[Fragment]:
    async for event in stream:
        if token is not None:
            token.raise_if_cancelled()
        try:
            content = extract_delta_content(event)
        except ProtocolError as e:
            logger.warning("Dropping malformed stream event: %s", e)
            continue
        if content:
            yield Fragment(content)


def extract_delta_content(event: Any) -> Optional[str]:
    """Pull choices[0].delta.content out of a chat-completion chunk."""
    if not isinstance(event, dict):
        raise ProtocolError(f"expected a JSON object, got {type(event).__name__}")
    if isinstance(event.get("error"), dict):
        error = event["error"]
        raise TransportError(error.get("message", "Stream error"), code=error.get("code"))
    if "choices" not in event:
        raise ProtocolError(f"event without choices: {str(event)[:100]}")

    choices = event["choices"]
    if not choices:
        # Trailing usage chunks carry an empty choices list
        return None
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise ProtocolError(f"malformed choices: {str(choices)[:100]}")
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else None


async def _event_stream_fragments(
    response: Any, token: Optional[CancellationToken]
) -> AsyncIterator[Fragment]:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    async for chunk in response.aiter_bytes():
        if token is not None:
            token.raise_if_cancelled()
        buffer += decoder.decode(chunk)
        lines = buffer.split("\n")
        # Keep the last incomplete line for the next read
        buffer = lines.pop()

        for line in lines:
            payload = parse_sse_line(line)
            if payload is None:
                continue
            if payload == DONE_MARKER:
                return
            text = _event_text(payload)
            if text:
                yield Fragment(text)

    # Transport closed; flush whatever is left
    buffer += decoder.decode(b"", final=True)
    payload = parse_sse_line(buffer)
    if payload is not None and payload != DONE_MARKER:
        text = _event_text(payload)
        if text:
            yield Fragment(text)


def parse_sse_line(line: str) -> Optional[str]:
    """
    Return the data payload of one SSE line, or None if the line carries none.

    Blank lines, ":" comments and non-data fields (event, id, retry) are
    dropped.
    """
    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    return data or None


def _event_text(data: str) -> Optional[str]:
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        logger.warning("JSON parsing error in event stream: %s Data: %s", e, data[:100])
        return None

    if not isinstance(payload, dict):
        logger.warning("Unexpected event stream payload: %s", data[:100])
        return None

    if payload.get("type") == "error":
        error = payload.get("error") or {}
        raise TransportError(
            error.get("message", "Stream error"), code=error.get("type")
        )

    delta = payload.get("delta")
    if not isinstance(delta, dict):
        return None
    if payload.get("type") == "content_block_delta" or "text" in delta:
        text = delta.get("text")
        return text if isinstance(text, str) else None
    return None
