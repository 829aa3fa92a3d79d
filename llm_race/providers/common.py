"""Helpers shared by the HTTP provider clients."""

import json
import logging
from typing import Optional

import httpx

from ..config import get_api_key
from ..errors import TransportError

logger = logging.getLogger(__name__)


def require_api_key(provider: str) -> str:
    api_key = get_api_key(provider)
    if not api_key:
        raise TransportError(f"API key for '{provider}' not configured", code="missing_api_key")
    return api_key


async def raise_for_status(response: httpx.Response, label: str) -> None:
    """Turn an HTTP error status into a TransportError carrying the API message."""
    if not response.is_error:
        return
    body = (await response.aread()).decode("utf-8", errors="replace")
    logger.warning("%s API error: %s - %s", label, response.status_code, body[:500])
    raise TransportError(_error_message(body) or response.reason_phrase, code=response.status_code)


def _error_message(body: str) -> Optional[str]:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body.strip()[:200] or None
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return body.strip()[:200] or None
