"""
HTTP helpers.

The only outbound call the engine makes is handing a notification to the push relay.

Design goals:
- Small surface area (POST JSON).
- Deterministic defaults (timeout + User-Agent).
- Raise on non-2xx so callers can decide how to fail (the dispatcher logs and drops).
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "ghostnotes/0.1.0 (+https://local)"


def post_json(
    url: str,
    *,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 10,
) -> Any:
    """POST `payload` as a JSON body and return the decoded JSON response (or None).

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)

    with httpx.Client(timeout=timeout_seconds) as client:
        resp = client.post(url, json=payload, headers=request_headers)
        resp.raise_for_status()
        if not resp.content:
            return None
        return resp.json()
