"""
Streaming LLM API clients.

This module opens streaming calls against different providers:
- OpenAI-compatible APIs (OpenAI, DeepSeek, OpenRouter)
- Anthropic/Claude (Server-Sent Events)
- Third-party providers registered at runtime

Usage:
    from llm_race.providers import open_stream

    async with open_stream(Target.parse("openai/gpt-4o"), messages) as transport:
        async for fragment in iterate_fragments(transport, target.family):
            ...
"""

from .router import open_stream, parse_model_identifier, register_opener, unregister_opener

__all__ = ["open_stream", "parse_model_identifier", "register_opener", "unregister_opener"]
