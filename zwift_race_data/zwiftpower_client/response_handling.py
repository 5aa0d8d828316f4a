"""Shared HTTP response helpers for ZwiftPower interactions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from ..errors import UpstreamNotFoundError, UpstreamStatusError

__all__ = [
    "classify_response_status",
    "extract_error",
]


def classify_response_status(
    response: requests.Response,
    context: str,
) -> Optional[UpstreamStatusError]:
    """Return the error for a non-success status, or None when it is usable."""

    status = response.status_code
    if status < 400:
        return None

    detail = extract_error(response)

    def with_detail(message: str) -> str:
        return f"{message} | {detail}" if detail else message

    if status == 404:
        message = with_detail(f"{context} not found")
        logging.info(message)
        return UpstreamNotFoundError(message, status)

    if status in (401, 403):
        message = with_detail(
            f"{context} forbidden (status {status}); session missing or expired"
        )
        logging.warning(message)
        return UpstreamStatusError(message, status)

    message = with_detail(f"{context} request failed (status {status})")
    logging.error(message)
    return UpstreamStatusError(message, status)


def extract_error(resp: Optional[requests.Response]) -> Optional[str]:
    """Return compact string with upstream error info if present."""

    if resp is None:
        return None
    data = _safe_json(resp)
    if data is None:
        return _extract_error_text(resp)
    if not isinstance(data, dict):
        return None
    parts = _collect_error_parts(data)
    return " | ".join(parts) if parts else None


def _safe_json(resp: requests.Response) -> Optional[Any]:
    """Safely parse JSON; return None if parsing fails."""

    try:
        return resp.json()
    except ValueError as exc:
        logging.debug(
            "Failed to decode JSON from %s: %s", getattr(resp, "url", "?"), exc
        )
        return None


def _extract_error_text(resp: requests.Response) -> Optional[str]:
    """Best-effort plain-text extraction when JSON parsing fails."""

    text = getattr(resp, "text", "")
    if not isinstance(text, str):
        return None
    trimmed = " ".join(text.split())
    if not trimmed:
        return None
    return (trimmed[:297] + "...") if len(trimmed) > 300 else trimmed


def _collect_error_parts(data: Dict[str, Any]) -> List[str]:
    parts: List[str] = []
    for key in ("message", "error", "error_description"):
        value = data.get(key)
        if value:
            parts.append(str(value))
    errors = data.get("errors")
    if isinstance(errors, list):
        for err in errors:
            if isinstance(err, dict):
                code = err.get("code") or err.get("message")
                if code:
                    parts.append(str(code))
            elif err:
                parts.append(str(err))
    return parts
