# voice_relay/services/relay/relay.py
from __future__ import annotations

import logging
import time
from typing import Optional

import httpx

from voice_relay.core.config import Settings
from voice_relay.core.cors import CorsPolicy
from voice_relay.core.errors import (
    MissingCredential,
    MissingFile,
    RelayError,
    UnsupportedMethod,
    UpstreamError,
    UpstreamTimeout,
)
from voice_relay.services.relay.context import RelayResponse, RequestContext
from voice_relay.services.relay.egress import OutboundMultipart, build_transcription_request
from voice_relay.services.relay.ingress import (
    MultipartIngress,
    NoFile,
    parse_multipart_content_type,
)
from voice_relay.services.upstream import relay_provider_response, send_once

log = logging.getLogger("relay")

PROVIDER = "Transcription provider"
ALLOW = "POST, OPTIONS"


class UploadRelay:
    """
    Streams one multipart audio upload to the transcription provider and
    relays its answer.

    client --multipart--> ingress parser --BoundedPipe--> outbound multipart --> provider
    client <------------- status + JSON (verbatim or normalized error) <-------- provider

    The provider request starts as soon as the first file part begins, so a
    recording is never held in memory as a whole. One attempt per request.
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._cors = CorsPolicy(settings.allowed_origins)

    async def handle(self, ctx: RequestContext) -> RelayResponse:
        cors = self._cors.headers_for(ctx.origin)
        # preflight short-circuit: no validation, no body
        if ctx.method == "OPTIONS":
            return RelayResponse.empty(204, cors)

        try:
            result = await self._relay(ctx)
        except UnsupportedMethod as e:
            result = RelayResponse.error(e, {"Allow": ALLOW})
        except RelayError as e:
            self._log_failure(e)
            result = RelayResponse.error(e)
        except Exception:
            log.exception("[relay] unexpected failure")
            result = RelayResponse.json(500, {"error": "Internal server error"})
        return result.with_headers(cors)

    async def _relay(self, ctx: RequestContext) -> RelayResponse:
        s = self._settings
        if ctx.method != "POST":
            raise UnsupportedMethod(f"Method {ctx.method} not allowed; use POST")
        if not s.OPENAI_KEY:
            raise MissingCredential("OpenAI key not configured on server.")
        boundary, charset = parse_multipart_content_type(ctx.content_type)

        ingress = MultipartIngress(
            ctx.body,
            boundary,
            charset=charset,
            default_filename=s.DEFAULT_FILENAME,
            pipe_chunks=s.PIPE_MAX_CHUNKS,
            max_field_bytes=s.MAX_FIELD_BYTES,
            reject_extra_files=s.REJECT_EXTRA_FILES,
        )
        t0 = time.monotonic()
        try:
            outcome = await ingress.first_file()
            if isinstance(outcome, NoFile):
                raise MissingFile("Missing file field")

            attachment = outcome.attachment
            body = OutboundMultipart(
                attachment,
                ingress.finish,
                fixed_fields={"model": s.TRANSCRIPTION_MODEL},
                forwarded=s.forwarded_fields,
            )
            request = build_transcription_request(
                self._http,
                s.TRANSCRIPTION_URL,
                body,
                api_key=s.OPENAI_KEY,
                timeout=s.TRANSCRIPTION_TIMEOUT,
            )
            try:
                response = await send_once(self._http, request, timeout=s.TRANSCRIPTION_TIMEOUT, provider=PROVIDER)
            except UpstreamError as e:
                # a broken inbound side surfaces as a broken outbound write
                if isinstance(ingress.error, RelayError):
                    raise ingress.error from e
                raise

            result = relay_provider_response(response, provider=PROVIDER)
            log.info(
                "[relay] file=%r bytes=%d fields=%s status=%d elapsed=%.2fs",
                attachment.filename,
                attachment.stream.bytes_sent,
                ",".join(body.forwarded_sent) or "-",
                result.status_code,
                time.monotonic() - t0,
            )
            return result
        except (UpstreamError, UpstreamTimeout) as e:
            log.warning(
                "[relay] upstream failure code=%s status=%d elapsed=%.2fs: %s",
                e.code, e.status_code, time.monotonic() - t0, e.message,
            )
            raise
        finally:
            await ingress.aclose()

    def _log_failure(self, e: RelayError) -> None:
        if isinstance(e, MissingCredential):
            log.error("[relay] %s", e.message)
        elif not isinstance(e, (UpstreamError, UpstreamTimeout)):
            log.info("[relay] rejected upload code=%s: %s", e.code, e.message)
