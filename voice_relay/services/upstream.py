# voice_relay/services/upstream.py
"""
One-shot provider calls and response normalization shared by both relays.

Success responses pass through verbatim; everything else becomes a
RelayError whose JSON body carries at least an "error" message.
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import httpx

from voice_relay.core.errors import RelayError, UpstreamError, UpstreamTimeout
from voice_relay.services.relay.context import RelayResponse


def extract_error_message(payload: Any) -> Optional[str]:
    """
    Pulls a human-readable message out of a provider error body.
      {"error": {"message": "..."}}  (OpenAI, Gemini)
      {"error": "..."}
      {"message": "..."}
      "plain text"
    """
    if isinstance(payload, str):
        return payload.strip()[:500] or None
    if not isinstance(payload, dict):
        return None
    err = payload.get("error")
    if isinstance(err, dict):
        msg = err.get("message")
        if isinstance(msg, str) and msg:
            return msg
    if isinstance(err, str) and err:
        return err
    msg = payload.get("message")
    if isinstance(msg, str) and msg:
        return msg
    return None


async def send_once(
    http: httpx.AsyncClient,
    request: httpx.Request,
    *,
    timeout: float,
    provider: str,
) -> httpx.Response:
    """Single attempt; the whole exchange (upload included) is bounded by `timeout`."""
    try:
        return await asyncio.wait_for(http.send(request), timeout=timeout)
    except RelayError:
        raise
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise UpstreamTimeout(f"{provider} did not respond within {timeout:g} seconds") from e
    except httpx.RequestError as e:
        raise UpstreamError(f"Could not reach {provider}: {type(e).__name__}: {e}") from e


def relay_provider_response(response: httpx.Response, *, provider: str) -> RelayResponse:
    status = response.status_code
    ctype = response.headers.get("content-type", "")

    if response.is_success:
        if "json" in ctype.lower():
            try:
                json.loads(response.content or b"null")
            except ValueError as e:
                raise UpstreamError(f"{provider} returned an undecodable response") from e
        return RelayResponse.passthrough(status, response.content, ctype or None)

    try:
        payload: Any = response.json()
    except ValueError:
        payload = response.text
    message = extract_error_message(payload) or f"{provider} responded with HTTP {status}"
    raise UpstreamError(message, status_code=status, details=payload if payload != "" else None)
