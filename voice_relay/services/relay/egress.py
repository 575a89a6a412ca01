# voice_relay/services/relay/egress.py
from __future__ import annotations

import os
from typing import AsyncIterator, Awaitable, Callable, Mapping, Optional, Sequence

import httpx

from voice_relay.services.relay.ingress import FileAttachment, IngressSummary

CRLF = b"\r\n"


def _quote(value: str) -> str:
    # same escaping httpx applies to multipart params
    return value.replace("\\", "\\\\").replace('"', "%22").replace("\r", "%0D").replace("\n", "%0A")


class OutboundMultipart:
    """
    Lazily-encoded multipart body for the provider request.

    Emits the file part first, streamed straight from the ingress pipe, then
    the fixed fields, then whichever optional fields the client sent. The
    optional fields are only looked up once the file is done, so fields that
    arrive after the file part in the inbound body are still forwarded.
    """

    def __init__(
        self,
        attachment: FileAttachment,
        fields_after_file: Callable[[], Awaitable[IngressSummary]],
        *,
        fixed_fields: Mapping[str, str],
        forwarded: Sequence[str] = (),
        boundary: Optional[str] = None,
    ) -> None:
        self.attachment = attachment
        self.boundary = boundary or os.urandom(16).hex()
        self._fields_after_file = fields_after_file
        self._fixed = dict(fixed_fields)
        self._forwarded = tuple(forwarded)
        self.forwarded_sent: list[str] = []

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    def _field(self, name: str, value: str) -> bytes:
        return b"".join([
            f"--{self.boundary}\r\n".encode("latin-1"),
            f'Content-Disposition: form-data; name="{_quote(name)}"\r\n\r\n'.encode("utf-8"),
            value.encode("utf-8"),
            CRLF,
        ])

    def _file_header(self) -> bytes:
        att = self.attachment
        return (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{_quote(att.filename)}"\r\n'
            f"Content-Type: {att.content_type}\r\n\r\n"
        ).encode("utf-8")

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._encode()

    async def _encode(self) -> AsyncIterator[bytes]:
        yield self._file_header()
        async for chunk in self.attachment.stream:
            yield chunk
        yield CRLF

        summary = await self._fields_after_file()
        for name, value in self._fixed.items():
            yield self._field(name, value)
        for name in self._forwarded:
            value = summary.fields.get(name)
            if value:
                self.forwarded_sent.append(name)
                yield self._field(name, value)
        yield f"--{self.boundary}--\r\n".encode("latin-1")


def build_transcription_request(
    http: httpx.AsyncClient,
    url: str,
    body: OutboundMultipart,
    *,
    api_key: str,
    timeout: float,
) -> httpx.Request:
    return http.build_request(
        "POST",
        url,
        content=body,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": body.content_type,
        },
        timeout=timeout,
    )
