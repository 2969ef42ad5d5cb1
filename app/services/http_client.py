from __future__ import annotations

"""Lightweight HTTP client util with retry.

Used by the SMS notifier to reach the gateway. Stdlib urllib only; JSON
in and out with limited retries and exponential backoff.
"""
import json
import time
import urllib.request
import urllib.error
from typing import Any, Dict, Optional


class HttpError(Exception):
    pass


def _send(req: urllib.request.Request, timeout: float) -> Dict[str, Any]:
    with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
        if resp.status >= 400:
            raise HttpError(f"HTTP {resp.status} for {req.full_url}")
        data = resp.read()
        return json.loads(data.decode("utf-8")) if data else {}


def _with_retries(
    req: urllib.request.Request, *, timeout: float, retries: int, backoff: float
) -> Dict[str, Any]:
    last_err: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            return _send(req, timeout)
        except (
            urllib.error.URLError,
            TimeoutError,
            HttpError,
            ValueError,
        ) as e:  # ValueError for JSON decode
            last_err = e
            if attempt == retries:
                break
            time.sleep(backoff * (2**attempt))
    raise HttpError(f"{req.get_method()} {req.full_url} failed: {last_err}")


def post_json(
    url: str,
    payload: Dict[str, Any],
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 5.0,
    retries: int = 2,
    backoff: float = 0.5,
) -> Dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json", **(headers or {})},
    )
    return _with_retries(req, timeout=timeout, retries=retries, backoff=backoff)
