import asyncio
import os
import time

import httpx

from conftest import API, multipart_body, parse_outbound, post_multipart

URL = f"{API}/transcriptions"


def test_transcription_forwards_file_bytes_and_fixed_model(client, provider):
    audio = os.urandom(200_000)
    body = multipart_body([
        ("field", "language", "en"),
        ("field", "temperature", "0.2"),
        ("field", "response_format", "verbose_json"),
        ("field", "model", "some-other-model"),
        ("file", "file", "clip.webm", audio, "audio/webm"),
    ])
    r = post_multipart(client, body)
    assert r.status_code == 200
    assert r.json() == {"text": "hello world"}

    assert len(provider.requests) == 1
    req = provider.requests[0]
    assert req.method == "POST"
    assert str(req.url) == "https://provider.test/v1/audio/transcriptions"
    assert req.headers["authorization"] == "Bearer sk-test"

    parts = parse_outbound(req)
    assert parts["file"]["content"] == audio
    assert 'filename="clip.webm"' in parts["file"]["headers"]
    assert "Content-Type: audio/webm" in parts["file"]["headers"]
    assert parts["model"]["content"] == b"whisper-1"
    assert parts["language"]["content"] == b"en"
    assert parts["temperature"]["content"] == b"0.2"
    assert parts["response_format"]["content"] == b"verbose_json"


def test_fields_sent_after_the_file_are_still_forwarded(client, provider):
    body = multipart_body([
        ("file", "audio", "a.wav", b"RIFF....WAVEfmt ", "audio/wav"),
        ("field", "language", "es"),
    ])
    r = post_multipart(client, body)
    assert r.status_code == 200
    parts = parse_outbound(provider.requests[0])
    assert parts["file"]["content"] == b"RIFF....WAVEfmt "
    assert parts["language"]["content"] == b"es"


def test_missing_filename_and_empty_fields_use_defaults(client, provider):
    body = multipart_body([
        ("field", "language", ""),
        ("file", "file", None, b"abc", None),
    ])
    r = post_multipart(client, body)
    assert r.status_code == 200
    parts = parse_outbound(provider.requests[0])
    assert 'filename="recording.webm"' in parts["file"]["headers"]
    assert "Content-Type: application/octet-stream" in parts["file"]["headers"]
    assert "language" not in parts
    assert set(parts) == {"file", "model"}


def test_missing_file_is_400_without_calling_provider(client, provider):
    body = multipart_body([("field", "language", "en")])
    r = post_multipart(client, body)
    assert r.status_code == 400
    assert r.json()["error"] == "Missing file field"
    assert r.json()["code"] == "MissingFile"
    assert provider.requests == []


def test_non_multipart_content_type_is_rejected(client, provider):
    r = client.post(URL, json={"file": "nope"})
    assert r.status_code == 400
    assert r.json()["code"] == "BadContentType"
    assert provider.requests == []


def test_multipart_without_boundary_is_rejected(client, provider):
    r = client.post(URL, content=b"whatever", headers={"Content-Type": "multipart/form-data"})
    assert r.status_code == 400
    assert r.json()["code"] == "BadContentType"
    assert "boundary" in r.json()["error"]
    assert provider.requests == []


def test_options_preflight_is_204_without_body(client, provider):
    r = client.request("OPTIONS", URL, content=b"garbage that is never parsed")
    assert r.status_code == 204
    assert r.content == b""
    assert r.headers["access-control-allow-origin"] == "*"
    assert r.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"
    assert r.headers["access-control-allow-headers"] == "Content-Type,Authorization"
    assert provider.requests == []


def test_other_methods_are_405_with_json_body(client):
    r = client.get(URL, headers={"Origin": "https://a.example"})
    assert r.status_code == 405
    assert r.json()["code"] == "UnsupportedMethod"
    assert r.headers["allow"] == "POST, OPTIONS"
    assert r.headers["access-control-allow-origin"] == "https://a.example"


def test_missing_credential_is_500(relay_factory, provider):
    client = relay_factory(OPENAI_KEY=None)
    body = multipart_body([("file", "file", "a.webm", b"abc", None)])
    r = post_multipart(client, body)
    assert r.status_code == 500
    assert r.json() == {"error": "OpenAI key not configured on server.", "code": "MissingCredential"}
    assert provider.requests == []


def test_allow_list_echoes_only_listed_origins(relay_factory):
    client = relay_factory(ALLOWED_ORIGINS="https://a.example, https://c.example")
    body = multipart_body([("file", "file", "a.webm", b"abc", None)])

    ok = post_multipart(client, body, headers={"Origin": "https://a.example"})
    assert ok.status_code == 200
    assert ok.headers["access-control-allow-origin"] == "https://a.example"
    assert ok.headers["vary"] == "Origin"

    denied = post_multipart(client, body, headers={"Origin": "https://b.example"})
    assert "access-control-allow-origin" not in denied.headers

    # error paths carry CORS headers too
    missing = post_multipart(client, multipart_body([("field", "language", "en")]),
                             headers={"Origin": "https://c.example"})
    assert missing.status_code == 400
    assert missing.headers["access-control-allow-origin"] == "https://c.example"


def test_provider_error_status_and_message_are_relayed(client, provider):
    provider.status = 429
    provider.payload = {"error": {"message": "Rate limit reached for whisper-1", "type": "requests"}}
    r = post_multipart(client, multipart_body([("file", "file", "a.webm", b"abc", None)]))
    assert r.status_code == 429
    data = r.json()
    assert data["error"] == "Rate limit reached for whisper-1"
    assert data["code"] == "UpstreamError"
    assert data["details"] == provider.payload


def test_provider_timeout_is_bounded(relay_factory, provider):
    client = relay_factory(TRANSCRIPTION_TIMEOUT=0.3)

    async def slow(request):
        await asyncio.sleep(10)
        return httpx.Response(200, json={"text": "too late"})

    provider.handler = slow
    t0 = time.monotonic()
    r = post_multipart(client, multipart_body([("file", "file", "a.webm", b"abc", None)]))
    elapsed = time.monotonic() - t0
    assert r.status_code == 504
    assert r.json()["code"] == "UpstreamTimeout"
    assert elapsed < 5


def test_provider_unreachable_is_502(client, provider):
    async def down(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider.handler = down
    r = post_multipart(client, multipart_body([("file", "file", "a.webm", b"abc", None)]))
    assert r.status_code == 502
    assert r.json()["code"] == "UpstreamError"
    assert "connection refused" in r.json()["error"]


def test_undecodable_success_body_is_502(client, provider):
    async def broken(request):
        return httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"})

    provider.handler = broken
    r = post_multipart(client, multipart_body([("file", "file", "a.webm", b"abc", None)]))
    assert r.status_code == 502
    assert r.json()["code"] == "UpstreamError"


def test_plain_text_response_format_passes_through(client, provider):
    async def text(request):
        return httpx.Response(200, text="hello there", headers={"content-type": "text/plain; charset=utf-8"})

    provider.handler = text
    body = multipart_body([
        ("field", "response_format", "text"),
        ("file", "file", "a.webm", b"abc", None),
    ])
    r = post_multipart(client, body)
    assert r.status_code == 200
    assert r.text == "hello there"
    assert r.headers["content-type"].startswith("text/plain")


def test_extra_file_parts_are_discarded(client, provider):
    body = multipart_body([
        ("file", "file", "first.webm", b"first-bytes", None),
        ("file", "file2", "second.webm", b"second-bytes", None),
        ("field", "language", "fr"),
    ])
    r = post_multipart(client, body)
    assert r.status_code == 200
    parts = parse_outbound(provider.requests[0])
    assert parts["file"]["content"] == b"first-bytes"
    assert 'filename="first.webm"' in parts["file"]["headers"]
    assert b"second-bytes" not in provider.requests[0].content
    assert parts["language"]["content"] == b"fr"


def test_extra_file_parts_can_be_rejected(relay_factory, provider):
    client = relay_factory(REJECT_EXTRA_FILES=True)
    body = multipart_body([
        ("file", "file", "first.webm", b"first-bytes", None),
        ("file", "file2", "second.webm", b"second-bytes", None),
    ])
    r = post_multipart(client, body)
    assert r.status_code == 400
    assert r.json()["code"] == "MalformedUpload"


def test_truncated_upload_is_malformed(client):
    body = multipart_body([("file", "file", "a.webm", b"abc" * 1000, None)], close=False)
    r = post_multipart(client, body[:-10])
    assert r.status_code == 400
    assert r.json()["code"] == "MalformedUpload"


def test_part_without_name_is_malformed(client, provider):
    body = (
        b"--BOUND\r\n"
        b"Content-Disposition: form-data; filename=\"a.webm\"\r\n\r\n"
        b"abc\r\n"
        b"--BOUND--\r\n"
    )
    r = post_multipart(client, body, boundary="BOUND")
    assert r.status_code == 400
    assert r.json()["code"] == "MalformedUpload"
    assert provider.requests == []


def test_legacy_path_is_an_alias(client, provider):
    body = multipart_body([("file", "file", "a.webm", b"abc", None)])
    r = post_multipart(client, body, path=f"{API}/whisper-proxy")
    assert r.status_code == 200
    assert len(provider.requests) == 1
