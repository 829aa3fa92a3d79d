"""OpenAI-compatible streaming client (OpenAI, DeepSeek, OpenRouter)."""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..adapters import DONE_MARKER, parse_sse_line
from ..config import get_provider
from ..errors import ConfigurationError
from .common import raise_for_status, require_api_key

logger = logging.getLogger(__name__)


class OpenAIEventStream:
    """
    Async iterator of decoded chat-completion chunks.

    Wraps a streaming httpx response. It deliberately exposes no byte-level
    reader so shape detection routes it to the iterator path.
    """

    def __init__(self, response: httpx.Response):
        self._response = response

    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        return self._events()

    async def _events(self) -> AsyncIterator[Dict[str, Any]]:
        async for line in self._response.aiter_lines():
            data = parse_sse_line(line)
            if data is None:
                continue
            if data == DONE_MARKER:
                return
            try:
                yield json.loads(data)
            except json.JSONDecodeError as e:
                logger.warning("Dropping undecodable chunk: %s Data: %s", e, data[:100])

    async def aclose(self) -> None:
        await self._response.aclose()


@asynccontextmanager
async def stream_openai_compatible(
    provider: str,
    model: str,
    messages: List[Dict[str, str]],
    timeout: float = 180.0,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[OpenAIEventStream]:
    """
    Open a streamed chat completion.

    Args:
        provider: Registered OpenAI-compatible provider key (e.g., "openai", "deepseek")
        model: Model name (e.g., "gpt-4o", "deepseek-chat")
        messages: List of message dicts with 'role' and 'content'
        timeout: Request timeout in seconds
        client: Optional client to reuse; a private one is created otherwise

    Yields:
        OpenAIEventStream over the response body
    """
    entry = get_provider(provider)
    if entry is None:
        raise ConfigurationError(f"Unknown provider '{provider}'")
    api_key = require_api_key(provider)

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    payload = {
        "model": model,
        "messages": messages,
        "stream": True,
    }

    url = f"{entry['base_url']}/chat/completions"
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=timeout)
    try:
        async with client.stream("POST", url, headers=headers, json=payload) as response:
            await raise_for_status(response, f"{entry['name']} ({model})")
            yield OpenAIEventStream(response)
    finally:
        if owns_client:
            await client.aclose()
