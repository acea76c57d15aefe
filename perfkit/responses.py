"""
Accessors for HTTP responses.

perfkit only needs three things from a response: its status code, its
body text and how long it took.  Both ``requests.Response`` and Locust's
``ResponseContextManager`` expose these as ``status_code``, ``text`` and
``elapsed``; the helpers below also tolerate a missing response (a
connection error surfaces as ``None``) so logging code never raises.
"""

from __future__ import annotations

import json
from typing import Any

from perfkit.config import get_config


def status_of(response: Any) -> int | None:
    """Return the response status code, or ``None`` if there is no response."""
    if response is None:
        return None
    return getattr(response, "status_code", None)


def body_text(response: Any) -> str:
    """Return the response body as text, ``""`` when absent."""
    if response is None:
        return ""
    text = getattr(response, "text", None)
    return text if isinstance(text, str) else ""


def body_preview(response: Any, limit: int | None = None) -> str:
    """Return the first *limit* characters of the body (``"N/A"`` if empty)."""
    if limit is None:
        limit = get_config().BODY_PREVIEW_CHARS
    text = body_text(response)
    return text[:limit] if text else "N/A"


def decode_json(response: Any) -> Any:
    """
    Decode the body as JSON.

    Raises:
        ValueError: If the body is empty or not valid JSON.
    """
    text = body_text(response)
    if not text:
        raise ValueError("Response body is empty")
    return json.loads(text)


def safe_json(response: Any) -> Any:
    """Return the decoded body, or ``None`` if decoding fails."""
    try:
        return decode_json(response)
    except ValueError:
        return None


def response_time_ms(response: Any) -> float | None:
    """Return the elapsed request time in milliseconds, if known."""
    elapsed = getattr(response, "elapsed", None)
    if elapsed is None:
        return None
    return elapsed.total_seconds() * 1000.0
