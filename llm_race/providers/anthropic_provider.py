"""Anthropic/Claude streaming client."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..config import ANTHROPIC_MAX_TOKENS, ANTHROPIC_VERSION, get_provider
from .common import raise_for_status, require_api_key


def to_anthropic_payload(model: str, messages: List[Dict[str, str]]) -> Dict[str, Any]:
    """Convert OpenAI-style messages, moving system messages to the top level."""
    system_parts = []
    anthropic_messages = []

    for msg in messages:
        if msg['role'] == 'system':
            system_parts.append(msg['content'])
        else:
            anthropic_messages.append({
                'role': msg['role'],
                'content': msg['content']
            })

    payload = {
        "model": model,
        "messages": anthropic_messages,
        "max_tokens": ANTHROPIC_MAX_TOKENS,
        "stream": True,
    }

    if system_parts:
        payload["system"] = "\n\n".join(system_parts)

    return payload


@asynccontextmanager
async def stream_anthropic(
    model: str,
    messages: List[Dict[str, str]],
    timeout: float = 180.0,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[httpx.Response]:
    """
    Open a streamed Messages API call.

    Args:
        model: Model name (e.g., "claude-sonnet-4-20250514")
        messages: List of message dicts with 'role' and 'content'
        timeout: Request timeout in seconds
        client: Optional client to reuse; a private one is created otherwise

    Yields:
        The raw streaming response; its body is a Server-Sent Event stream
    """
    api_key = require_api_key("anthropic")

    headers = {
        "x-api-key": api_key,
        "Content-Type": "application/json",
        "anthropic-version": ANTHROPIC_VERSION,
    }

    url = f"{get_provider('anthropic')['base_url']}/messages"
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=timeout)
    try:
        async with client.stream(
            "POST", url, headers=headers, json=to_anthropic_payload(model, messages)
        ) as response:
            await raise_for_status(response, f"Anthropic ({model})")
            yield response
    finally:
        if owns_client:
            await client.aclose()
