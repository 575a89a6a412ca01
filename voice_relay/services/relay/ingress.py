# voice_relay/services/relay/ingress.py
"""
Incremental multipart decoding of the inbound upload.

The request body is pulled chunk by chunk inside a producer task and fed to
python-multipart's callback parser. Small form fields are buffered; the
first file part is pushed, chunk by chunk, into a BoundedPipe that the
egress side reads from while the upload is still arriving.

  ingress = MultipartIngress(ctx.body, boundary)
  ingress.start()
  outcome = await ingress.first_file()      # NoFile | OneFile
  ...stream outcome.attachment.stream...
  summary = await ingress.finish()          # all fields, discarded files
  await ingress.aclose()
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Tuple, Union

from python_multipart import MultipartParser
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header
from starlette.requests import ClientDisconnect

from voice_relay.core.errors import BadContentType, ClientDisconnected, MalformedUpload
from voice_relay.services.relay.pipe import BoundedPipe

log = logging.getLogger("relay")

FormFields = Dict[str, str]

DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"
_FILE_END = object()

# part roles
_FIELD, _FILE, _DISCARD = "field", "file", "discard"


def parse_multipart_content_type(content_type: Optional[str]) -> Tuple[bytes, str]:
    """Returns (boundary, charset) or raises BadContentType. Never reads the body."""
    if not content_type:
        raise BadContentType("This endpoint expects multipart/form-data with field `file`")
    ctype, params = parse_options_header(content_type)
    if ctype.strip().lower() != b"multipart/form-data":
        raise BadContentType("This endpoint expects multipart/form-data with field `file`")
    boundary = params.get(b"boundary")
    if not boundary:
        raise BadContentType("multipart/form-data request is missing its boundary parameter")
    charset = params.get(b"charset", b"utf-8").decode("latin-1") or "utf-8"
    return boundary, charset


def _decode(raw: bytes, charset: str) -> str:
    try:
        return raw.decode(charset, errors="replace")
    except LookupError:
        return raw.decode("latin-1")


@dataclass
class FileAttachment:
    field_name: str
    filename: str
    content_type: str
    stream: BoundedPipe


@dataclass(frozen=True)
class NoFile:
    fields: FormFields


@dataclass(frozen=True)
class OneFile:
    attachment: FileAttachment


ParseOutcome = Union[NoFile, OneFile]


@dataclass(frozen=True)
class IngressSummary:
    fields: FormFields
    discarded_files: int = 0


@dataclass
class _Part:
    name: str = ""
    role: str = _FIELD
    headers: Dict[bytes, bytes] = field(default_factory=dict)
    data: bytearray = field(default_factory=bytearray)


class MultipartIngress:
    def __init__(
        self,
        body: AsyncIterator[bytes],
        boundary: bytes,
        *,
        charset: str = "utf-8",
        default_filename: str = "recording.webm",
        pipe_chunks: int = 8,
        max_field_bytes: int = 64 * 1024,
        reject_extra_files: bool = False,
    ) -> None:
        self._body = body
        self._charset = charset
        self._default_filename = default_filename
        self._pipe_chunks = pipe_chunks
        self._max_field_bytes = max_field_bytes
        self._reject_extra_files = reject_extra_files

        self._parser = MultipartParser(boundary, {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_end": self._on_end,
        })
        self._part: Optional[_Part] = None
        self._header_name = bytearray()
        self._header_value = bytearray()
        self._pending: List[object] = []   # file chunks / _FILE_END produced by the last write()
        self._ended = False

        self._fields: FormFields = {}
        self._attachment: Optional[FileAttachment] = None
        self._discarded = 0
        self._error: Optional[BaseException] = None

        self._file_ready = asyncio.Event()
        self._finished = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # ------------------------------ lifecycle -------------------------------

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._pump())

    async def first_file(self) -> ParseOutcome:
        """Waits until a file part starts or the body ends."""
        self.start()
        await self._file_ready.wait()
        if self._attachment is not None:
            return OneFile(self._attachment)
        if self._error is not None:
            raise self._error
        return NoFile(dict(self._fields))

    async def finish(self) -> IngressSummary:
        """Waits for the whole body to be parsed; fields after the file are included."""
        self.start()
        await self._finished.wait()
        if self._error is not None:
            raise self._error
        return IngressSummary(fields=dict(self._fields), discarded_files=self._discarded)

    async def aclose(self) -> None:
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._attachment is not None and not self._attachment.stream.closed:
            self._attachment.stream.abort(ClientDisconnected("Upload was abandoned before it completed"))

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    # ------------------------------ producer --------------------------------

    async def _pump(self) -> None:
        try:
            async for chunk in self._body:
                if not chunk:
                    continue
                try:
                    self._parser.write(chunk)
                except MultipartParseError as e:
                    raise MalformedUpload(f"Malformed multipart body: {e}") from e
                await self._flush()
            await self._flush()
            if not self._ended:
                raise MalformedUpload("Upload ended before the closing multipart boundary")
            self._parser.finalize()
        except ClientDisconnect:
            self._fail(ClientDisconnected("Client disconnected before the upload completed"))
        except Exception as e:
            self._fail(e)
        finally:
            if self._discarded:
                log.info("[relay] discarded %d extra file part(s)", self._discarded)
            self._file_ready.set()
            self._finished.set()

    async def _flush(self) -> None:
        pending, self._pending = self._pending, []
        pipe = self._attachment.stream if self._attachment else None
        for item in pending:
            if item is _FILE_END:
                await pipe.close()
            else:
                await pipe.send(item)

    def _fail(self, exc: BaseException) -> None:
        self._error = exc
        if self._attachment is not None and not self._attachment.stream.closed:
            self._attachment.stream.abort(exc)

    # --------------------------- parser callbacks ---------------------------

    def _on_part_begin(self) -> None:
        self._part = _Part()
        self._header_name.clear()
        self._header_value.clear()

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._part.headers[bytes(self._header_name).lower()] = bytes(self._header_value)
        self._header_name.clear()
        self._header_value.clear()

    def _on_headers_finished(self) -> None:
        part = self._part
        _, options = parse_options_header(part.headers.get(b"content-disposition", b""))
        if b"name" not in options:
            raise MalformedUpload('Multipart part is missing the "name" in its Content-Disposition')
        part.name = _decode(options[b"name"], self._charset)

        if b"filename" not in options:
            part.role = _FIELD
            return

        if self._attachment is not None:
            if self._reject_extra_files:
                raise MalformedUpload("Only one file per upload is accepted")
            part.role = _DISCARD
            self._discarded += 1
            return

        part.role = _FILE
        filename = _decode(options[b"filename"], self._charset).strip()
        ctype = _decode(part.headers.get(b"content-type", b""), "latin-1").strip()
        self._attachment = FileAttachment(
            field_name=part.name,
            filename=filename or self._default_filename,
            content_type=ctype or DEFAULT_FILE_CONTENT_TYPE,
            stream=BoundedPipe(self._pipe_chunks),
        )
        self._file_ready.set()

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        part = self._part
        if part.role == _FILE:
            self._pending.append(data[start:end])
        elif part.role == _FIELD:
            if len(part.data) + (end - start) > self._max_field_bytes:
                raise MalformedUpload(f"Form field {part.name!r} exceeds {self._max_field_bytes} bytes")
            part.data += data[start:end]

    def _on_part_end(self) -> None:
        part = self._part
        if part.role == _FILE:
            self._pending.append(_FILE_END)
        elif part.role == _FIELD:
            self._fields[part.name] = _decode(bytes(part.data), self._charset)
        self._part = None

    def _on_end(self) -> None:
        self._ended = True
