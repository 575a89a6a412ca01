# voice_relay/lifespan.py
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from voice_relay.core.config import settings
from voice_relay.services.evaluate.gemini_client import EvaluationRelay
from voice_relay.services.relay.relay import UploadRelay

log = logging.getLogger("lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not settings.OPENAI_KEY:
        log.warning("[lifespan] OPENAI_KEY is not set; /transcriptions will answer 500")
    if not settings.GEMINI_KEY:
        log.warning("[lifespan] GEMINI_KEY is not set; /evaluate will answer 500")

    # one pooled client for both providers; per-request timeouts are set on each request
    http = httpx.AsyncClient(timeout=httpx.Timeout(settings.TRANSCRIPTION_TIMEOUT))
    app.state.http_client = http
    app.state.upload_relay = UploadRelay(settings, http)
    app.state.evaluation_relay = EvaluationRelay(settings, http)
    try:
        yield
    finally:
        await http.aclose()
