# voice_relay/services/evaluate/gemini_client.py
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from voice_relay.core.config import Settings
from voice_relay.core.cors import CorsPolicy
from voice_relay.core.errors import (
    BadRequest,
    MissingCredential,
    RelayError,
    UnsupportedMethod,
    UpstreamError,
    UpstreamTimeout,
)
from voice_relay.schemas.evaluate import MAX_INPUT_CHARS, EvalRequest
from voice_relay.services.relay.context import RelayResponse, RequestContext
from voice_relay.services.upstream import relay_provider_response, send_once

log = logging.getLogger("evaluate")

PROVIDER = "Gemini"
GENERATE_SUFFIX = ":generateContent"
OAUTH_TOKEN_PREFIX = "ya29."


def _validation_message(exc: ValidationError) -> str:
    """First pydantic error of an EvalRequest, phrased for the caller."""
    err = exc.errors()[0]
    loc = err.get("loc") or ()
    kind = err.get("type", "")
    if not loc:
        return "Request body must be a JSON object"
    field = str(loc[0])
    if field == "input":
        if kind in ("missing", "string_too_short"):
            return "Missing input in request body"
        if kind == "string_too_long":
            return f"`input` exceeds {MAX_INPUT_CHARS} characters"
        if kind == "string_type":
            return "`input` must be a string"
    if field == "model":
        if kind == "string_type":
            return "`model` must be a string"
        return "`model` must be a plain model name such as gemini-2.0-flash"
    return f"Invalid `{field}`: {err.get('msg', 'bad value')}"


class GeminiClient:
    """
    Minimal client for Gemini's generateContent.

    - one POST per call, no retries, no endpoint guessing
    - OAuth access tokens ("ya29....") go in Authorization: Bearer,
      plain API keys in x-goog-api-key (never in the URL, so they never
      end up in logs)
    - returns the raw httpx.Response; callers decide how to relay it
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        http: httpx.AsyncClient,
        timeout: float = 60.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._http = http

    def _url(self, model: Optional[str]) -> str:
        # one path segment, whatever the caller passed
        name = quote(model or self.model, safe="")
        return f"{self.base_url}/models/{name}{GENERATE_SUFFIX}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key.strip().startswith(OAUTH_TOKEN_PREFIX):
            headers["Authorization"] = f"Bearer {self.api_key.strip()}"
        else:
            headers["x-goog-api-key"] = self.api_key
        return headers

    def _payload(self, text: str) -> Dict[str, Any]:
        return {"contents": [{"role": "user", "parts": [{"text": text}]}]}

    async def generate(self, text: str, model: Optional[str] = None) -> httpx.Response:
        request = self._http.build_request(
            "POST",
            self._url(model),
            json=self._payload(text),
            headers=self._headers(),
            timeout=self.timeout,
        )
        return await send_once(self._http, request, timeout=self.timeout, provider=PROVIDER)


class EvaluationRelay:
    """Buffered JSON relay for text evaluation; same CORS/error envelope as the upload relay."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._cors = CorsPolicy(settings.allowed_origins)

    async def handle(self, ctx: RequestContext) -> RelayResponse:
        cors = self._cors.headers_for(ctx.origin)
        if ctx.method == "OPTIONS":
            return RelayResponse.empty(204, cors)
        try:
            result = await self._evaluate(ctx)
        except UnsupportedMethod as e:
            result = RelayResponse.error(e, {"Allow": "POST, OPTIONS"})
        except (UpstreamError, UpstreamTimeout) as e:
            log.warning("[evaluate] upstream failure code=%s status=%d: %s", e.code, e.status_code, e.message)
            result = RelayResponse.error(e)
        except MissingCredential as e:
            log.error("[evaluate] %s", e.message)
            result = RelayResponse.error(e)
        except RelayError as e:
            result = RelayResponse.error(e)
        except Exception:
            log.exception("[evaluate] unexpected failure")
            result = RelayResponse.json(500, {"error": "Internal server error"})
        return result.with_headers(cors)

    async def _evaluate(self, ctx: RequestContext) -> RelayResponse:
        s = self._settings
        if ctx.method != "POST":
            raise UnsupportedMethod(f"Method {ctx.method} not allowed; use POST")
        if not s.GEMINI_KEY:
            raise MissingCredential("Gemini key not configured on server.")

        raw = await ctx.read()
        try:
            req = EvalRequest.model_validate(json.loads(raw or b"{}"))
        except ValidationError as e:
            raise BadRequest(_validation_message(e)) from e
        except ValueError as e:
            raise BadRequest("Request body must be JSON") from e

        client = GeminiClient(s.GEMINI_KEY, s.GEMINI_URL, s.GEMINI_MODEL, self._http, timeout=s.GEMINI_TIMEOUT)
        t0 = time.monotonic()
        response = await client.generate(req.input, model=req.model)
        result = relay_provider_response(response, provider=PROVIDER)
        log.info("[evaluate] model=%s chars=%d status=%d elapsed=%.2fs",
                 req.model or s.GEMINI_MODEL, len(req.input), result.status_code, time.monotonic() - t0)
        return result
