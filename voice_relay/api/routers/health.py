from fastapi import APIRouter
from voice_relay.core.config import settings
from voice_relay.core.version import APP_NAME, APP_VERSION

router = APIRouter(prefix="/health", tags=["health"])

@router.get("")
async def health():
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "ok": True,
        # credential presence only, never the values
        "transcription": bool(settings.OPENAI_KEY),
        "evaluation": bool(settings.GEMINI_KEY),
    }
