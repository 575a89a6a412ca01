# voice_relay/services/relay/context.py
from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

from fastapi import Request
from fastapi.responses import Response
from starlette.datastructures import Headers

from voice_relay.core.errors import RelayError

JSON_MEDIA_TYPE = "application/json"


async def _empty_body() -> AsyncIterator[bytes]:
    return
    yield  # pragma: no cover


@dataclass
class RequestContext:
    """
    Everything the relays need from an inbound request.

    `body` is a lazily-consumed byte stream and may be iterated once; the
    relay owns it for the lifetime of the request.
    """

    method: str
    headers: Headers
    body: AsyncIterator[bytes] = field(default_factory=_empty_body)

    def __post_init__(self) -> None:
        self.method = (self.method or "").upper()
        if not isinstance(self.headers, Headers):
            self.headers = Headers(headers=dict(self.headers or {}))

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        return cls(method=request.method, headers=request.headers, body=request.stream())

    @property
    def origin(self) -> Optional[str]:
        return self.headers.get("origin")

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    async def read(self) -> bytes:
        chunks = []
        async for chunk in self.body:
            chunks.append(chunk)
        return b"".join(chunks)


@dataclass(frozen=True)
class RelayResponse:
    status_code: int
    body: bytes = b""
    media_type: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def json(cls, status_code: int, payload: Any, headers: Optional[Mapping[str, str]] = None) -> "RelayResponse":
        raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        return cls(status_code=status_code, body=raw, media_type=JSON_MEDIA_TYPE, headers=dict(headers or {}))

    @classmethod
    def empty(cls, status_code: int = 204, headers: Optional[Mapping[str, str]] = None) -> "RelayResponse":
        return cls(status_code=status_code, headers=dict(headers or {}))

    @classmethod
    def error(cls, exc: RelayError, headers: Optional[Mapping[str, str]] = None) -> "RelayResponse":
        return cls.json(exc.status_code, exc.to_dict(), headers)

    @classmethod
    def passthrough(cls, status_code: int, content: Union[bytes, str], media_type: Optional[str]) -> "RelayResponse":
        if isinstance(content, str):
            content = content.encode("utf-8")
        return cls(status_code=status_code, body=content, media_type=media_type or JSON_MEDIA_TYPE)

    def with_headers(self, extra: Mapping[str, str]) -> "RelayResponse":
        merged: Dict[str, str] = dict(self.headers)
        merged.update(extra)
        return dataclasses.replace(self, headers=merged)

    def to_response(self) -> Response:
        return Response(
            content=self.body,
            status_code=self.status_code,
            media_type=self.media_type,
            headers=dict(self.headers),
        )
