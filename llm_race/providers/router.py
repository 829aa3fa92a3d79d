"""
Unified provider router for streaming backend calls.

Routes a target to the client for its wire protocol:
- "openai/model-name", "deepseek/model-name" -> OpenAI-compatible API
- "openrouter/vendor/model-name" -> OpenRouter (explicit)
- "anthropic/model-name" -> Anthropic Messages API
- providers registered with register_opener() -> their own opener
- "other-provider/model-name" -> OpenRouter (fallback)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, List, Optional, Tuple

import httpx

from ..config import ANTHROPIC_FAMILY, DEFAULT_TIMEOUT, PROVIDERS
from ..models import Target
from .anthropic_provider import stream_anthropic
from .openai_provider import stream_openai_compatible

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]
StreamOpener = Callable[[Target, Messages], AsyncContextManager[Any]]

# Openers for providers outside the registry. Their transports carry no
# family tag and are decoded by shape.
_CUSTOM_OPENERS: Dict[str, StreamOpener] = {}


def register_opener(provider: str, opener: StreamOpener) -> None:
    """Route a third-party provider key to a custom stream opener."""
    _CUSTOM_OPENERS[provider] = opener


def unregister_opener(provider: str) -> None:
    _CUSTOM_OPENERS.pop(provider, None)


def parse_model_identifier(target: Target) -> Tuple[str, str]:
    """
    Decide where a target's request goes.

    Returns:
        Tuple of (route_to, model_name) where route_to is a registered
        provider key, "custom", or "openrouter" for the fallback.
    """
    if target.provider in PROVIDERS:
        return (target.provider, target.model)
    if target.provider in _CUSTOM_OPENERS:
        return ("custom", target.model)
    # Fallback to OpenRouter with the full vendor/model name
    return ("openrouter", f"{target.provider}/{target.model}")


@asynccontextmanager
async def open_stream(
    target: Target,
    messages: Messages,
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[Any]:
    """
    Open a streaming call for a target, automatically routing to its provider.

    Yields:
        A transport object for the stream adapter
    """
    route_to, model_name = parse_model_identifier(target)
    timeout = timeout or DEFAULT_TIMEOUT
    logger.debug("Opening stream for %s via %s", target.key, route_to)

    if route_to == "custom":
        opener = _CUSTOM_OPENERS[target.provider]
        async with opener(target, messages) as transport:
            yield transport
    elif PROVIDERS.get(route_to, {}).get("family") == ANTHROPIC_FAMILY:
        async with stream_anthropic(model_name, messages, timeout, client) as response:
            yield response
    else:
        async with stream_openai_compatible(route_to, model_name, messages, timeout, client) as stream:
            yield stream
