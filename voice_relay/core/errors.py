# voice_relay/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class RelayError(Exception):
    """
    Terminal failure of one relayed request.

    Every subclass maps to exactly one HTTP status and a JSON body
    {"error": <message>, "code": <class name>, ...}. Nothing is retried.
    """

    status_code: int = 500

    def __init__(self, message: str, *, status_code: Optional[int] = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


# ---- local validation (never reaches the provider) -------------------------

class UnsupportedMethod(RelayError):
    status_code = 405


class MissingCredential(RelayError):
    status_code = 500


class BadContentType(RelayError):
    status_code = 400


class BadRequest(RelayError):
    status_code = 400


class MissingFile(RelayError):
    status_code = 400


class MalformedUpload(RelayError):
    status_code = 400


class ClientDisconnected(RelayError):
    status_code = 400


# ---- upstream --------------------------------------------------------------

class UpstreamTimeout(RelayError):
    status_code = 504


class UpstreamError(RelayError):
    status_code = 502
