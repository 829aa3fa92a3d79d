"""Configuration for llm-race."""

import os
from dotenv import load_dotenv

load_dotenv()

# Protocol families
# "openai"    -> streamed chat completions, one JSON event per chunk
# "anthropic" -> streamed messages, raw Server-Sent Events
OPENAI_FAMILY = "openai"
ANTHROPIC_FAMILY = "anthropic"

# Registered providers. Each entry specifies:
#   - name: Display name
#   - base_url: API root (paths are appended by the provider client)
#   - api_key_env: Environment variable holding the key
#   - family: Wire protocol family used to decode the stream
PROVIDERS = {
    "openai": {
        "name": "OpenAI",
        "base_url": "https://api.openai.com/v1",
        "api_key_env": "OPENAI_API_KEY",
        "family": OPENAI_FAMILY,
    },
    "deepseek": {
        "name": "DeepSeek",
        "base_url": "https://api.deepseek.com/v1",
        "api_key_env": "DEEPSEEK_API_KEY",
        "family": OPENAI_FAMILY,
    },
    "openrouter": {
        "name": "OpenRouter",
        "base_url": "https://openrouter.ai/api/v1",
        "api_key_env": "OPENROUTER_API_KEY",
        "family": OPENAI_FAMILY,
    },
    "anthropic": {
        "name": "Anthropic",
        "base_url": "https://api.anthropic.com/v1",
        "api_key_env": "ANTHROPIC_API_KEY",
        "family": ANTHROPIC_FAMILY,
    },
}

ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_MAX_TOKENS = 8192

# Wall-clock limit for one backend call, in seconds
DEFAULT_TIMEOUT = float(os.getenv("LLM_RACE_TIMEOUT", "180"))

# Data directory for storage
DATA_DIR = os.getenv("LLM_RACE_DATA_DIR", "data")
CACHE_FILE = os.path.join(DATA_DIR, "responses.json")
CACHE_ENABLED = os.getenv("LLM_RACE_CACHE", "0").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LLM_RACE_LOG_LEVEL", "WARNING")


def get_provider(provider: str):
    """Return the registry entry for a provider, or None if unregistered."""
    return PROVIDERS.get(provider)


def get_api_key(provider: str):
    """Resolve the API key for a provider from the environment."""
    entry = PROVIDERS.get(provider)
    if entry is None:
        return None
    return os.getenv(entry["api_key_env"])


def get_family(provider: str):
    """Protocol family tag for a provider, or None for unregistered ones."""
    entry = PROVIDERS.get(provider)
    return entry["family"] if entry else None
