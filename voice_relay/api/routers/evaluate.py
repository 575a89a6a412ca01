from fastapi import APIRouter, Depends, Request

from voice_relay.api.deps import get_evaluation_relay
from voice_relay.schemas.evaluate import EvalRequest
from voice_relay.schemas.relay import ErrorBody
from voice_relay.services.evaluate.gemini_client import EvaluationRelay
from voice_relay.services.relay.context import RequestContext

router = APIRouter(tags=["evaluate"])

OTHER_METHODS = ["GET", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def evaluate(request: Request, relay: EvaluationRelay = Depends(get_evaluation_relay)):
    result = await relay.handle(RequestContext.from_request(request))
    return result.to_response()


router.add_api_route(
    "/evaluate",
    evaluate,
    methods=["POST"],
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": EvalRequest.model_json_schema()}},
        }
    },
    responses={400: {"model": ErrorBody}, 500: {"model": ErrorBody}, 504: {"model": ErrorBody}},
)
router.add_api_route("/evaluate", evaluate, methods=OTHER_METHODS, include_in_schema=False)
router.add_api_route("/gemini-proxy", evaluate, methods=["POST"] + OTHER_METHODS, include_in_schema=False)
