from typing import Dict, Iterable, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from voice_relay.api.deps import get_evaluation_relay, get_upload_relay
from voice_relay.core.config import Settings
from voice_relay.main import app
from voice_relay.services.evaluate.gemini_client import EvaluationRelay
from voice_relay.services.relay.relay import UploadRelay

API = "/api"
BOUNDARY = "----relaytestboundary7MA4YWxkTrZu0gW"


def make_settings(**overrides) -> Settings:
    base = dict(
        OPENAI_KEY="sk-test",
        GEMINI_KEY="gm-test",
        ALLOWED_ORIGINS="",
        TRANSCRIPTION_URL="https://provider.test/v1/audio/transcriptions",
        GEMINI_URL="https://gemini.test/v1beta",
    )
    base.update(overrides)
    return Settings(_env_file=None, **base)


def multipart_body(parts: Iterable[Tuple], boundary: str = BOUNDARY, close: bool = True) -> bytes:
    """
    parts: ("field", name, value) or ("file", name, filename|None, content, content_type|None)
    A filename of None produces a file part whose Content-Disposition has filename="".
    """
    out = []
    for p in parts:
        out.append(f"--{boundary}\r\n".encode())
        if p[0] == "field":
            _, name, value = p
            out.append(f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode())
            out.append(value.encode() if isinstance(value, str) else value)
        else:
            _, name, filename, content, ctype = p
            out.append(f'Content-Disposition: form-data; name="{name}"; filename="{filename or ""}"\r\n'.encode())
            if ctype:
                out.append(f"Content-Type: {ctype}\r\n".encode())
            out.append(b"\r\n")
            out.append(content)
        out.append(b"\r\n")
    if close:
        out.append(f"--{boundary}--\r\n".encode())
    return b"".join(out)


def parse_outbound(request: httpx.Request) -> Dict[str, dict]:
    """Splits a captured outbound multipart body into {name: {"headers", "content"}}."""
    ctype = request.headers["content-type"]
    assert ctype.startswith("multipart/form-data; boundary=")
    boundary = ctype.split("boundary=", 1)[1].encode()
    body = request.content
    assert body.endswith(b"--" + boundary + b"--\r\n")
    parts = {}
    for chunk in body.split(b"--" + boundary)[1:-1]:
        assert chunk.startswith(b"\r\n") and chunk.endswith(b"\r\n")
        head, _, content = chunk[2:-2].partition(b"\r\n\r\n")
        disposition = head.split(b"\r\n")[0].decode()
        name = disposition.split('name="', 1)[1].split('"', 1)[0]
        parts[name] = {"headers": head.decode(), "content": content}
    return parts


class ProviderStub:
    """Records outbound requests and answers with a canned (or custom) response."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.status = 200
        self.payload: object = {"text": "hello world"}
        self.handler = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is not None:
            return await self.handler(request)
        return httpx.Response(self.status, json=self.payload)


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def relay_factory(provider):
    """
    Returns a function that points the app at fresh relays built from the
    given settings overrides and a mock provider transport, then a TestClient.
    """

    def build(**overrides) -> TestClient:
        s = make_settings(**overrides)
        http = httpx.AsyncClient(transport=httpx.MockTransport(provider))
        app.dependency_overrides[get_upload_relay] = lambda: UploadRelay(s, http)
        app.dependency_overrides[get_evaluation_relay] = lambda: EvaluationRelay(s, http)
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()


@pytest.fixture
def client(relay_factory) -> TestClient:
    return relay_factory()


def post_multipart(client: TestClient, body: bytes, boundary: str = BOUNDARY, path: str = f"{API}/transcriptions",
                   headers: Optional[dict] = None):
    h = {"Content-Type": f"multipart/form-data; boundary={boundary}"}
    h.update(headers or {})
    return client.post(path, content=body, headers=h)
