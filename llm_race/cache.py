"""JSON-file response cache keyed by normalized user input."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .config import CACHE_FILE

logger = logging.getLogger(__name__)


def cache_key(user_input: str, command_id: Optional[str] = None, multi: bool = False) -> str:
    """
    Key for a request's cached response.

    Multi-target requests include the command id so two commands racing
    different model sets on the same input never share an entry.
    """
    clean_input = user_input.strip()
    if multi:
        return f"{command_id or 'multi'}: {clean_input}"
    return clean_input


def model_cache_key(user_input: str, command_id: str, target_key: str) -> str:
    """Per-model key: commandId:userInput:provider:model."""
    return f"{command_id}:{user_input.strip()}:{target_key}"


class ResponseCache:
    """Loads lazily from disk and rewrites the whole file on every set."""

    def __init__(self, path: str = CACHE_FILE):
        self.path = path
        self._entries: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._entries is not None:
            return self._entries
        self._entries = {}
        if os.path.exists(self.path):
            try:
                with open(self.path, 'r') as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    self._entries = data
                else:
                    logger.warning("Ignoring cache file %s: not a JSON object", self.path)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning("Error loading cache file %s: %s", self.path, e)
        return self._entries

    def _save(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._entries, f, indent=2, ensure_ascii=False)

    def has(self, key: str) -> bool:
        return key in self._load()

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        self._load()[key] = value
        self._save()
        logger.debug("Cached response for key: %s", key)

    def set_many(self, key: str, responses: Dict[str, str]) -> None:
        """Store several model responses under one key, one entry per target."""
        self.set(key, {"multi": True, "responses": responses})

    def get_many(self, key: str) -> Optional[Dict[str, str]]:
        value = self.get(key)
        if isinstance(value, dict) and value.get("multi"):
            return value.get("responses")
        return None
