from fastapi import APIRouter, Depends, Request

from voice_relay.api.deps import get_upload_relay
from voice_relay.schemas.relay import ErrorBody, TranscriptionResponse
from voice_relay.services.relay.context import RequestContext
from voice_relay.services.relay.relay import UploadRelay

router = APIRouter(tags=["transcriptions"])

# non-POST methods still reach the relay so preflights get 204 and
# everything else a JSON 405 with CORS headers
OTHER_METHODS = ["GET", "PUT", "PATCH", "DELETE", "OPTIONS"]

_responses = {
    200: {"model": TranscriptionResponse},
    400: {"model": ErrorBody},
    405: {"model": ErrorBody},
    500: {"model": ErrorBody},
    502: {"model": ErrorBody},
    504: {"model": ErrorBody},
}


async def transcribe(request: Request, relay: UploadRelay = Depends(get_upload_relay)):
    """
    multipart/form-data: one file part (any field name) plus optional
    `language`, `temperature`, `response_format`. The file is streamed to
    the provider while it is still being uploaded.
    """
    result = await relay.handle(RequestContext.from_request(request))
    return result.to_response()


router.add_api_route("/transcriptions", transcribe, methods=["POST"], responses=_responses)
router.add_api_route("/transcriptions", transcribe, methods=OTHER_METHODS, include_in_schema=False)
# path used by the existing web client
router.add_api_route("/whisper-proxy", transcribe, methods=["POST"] + OTHER_METHODS, include_in_schema=False)
