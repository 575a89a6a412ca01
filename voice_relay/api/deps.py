# voice_relay/api/deps.py
from fastapi import Request

from voice_relay.services.evaluate.gemini_client import EvaluationRelay
from voice_relay.services.relay.relay import UploadRelay


def get_upload_relay(request: Request) -> UploadRelay:
    return request.app.state.upload_relay


def get_evaluation_relay(request: Request) -> EvaluationRelay:
    return request.app.state.evaluation_relay
