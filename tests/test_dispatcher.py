from __future__ import annotations

import base64
import io
import json
import re

import httpx
import pytest

from optidash import (
    Optidash,
    OptidashAPIError,
    OptidashAuthError,
    OptidashHTTPError,
    OptidashIOError,
    OptidashNetworkError,
    OptidashParseError,
    OptidashRateLimitError,
    OptidashTimeoutError,
)
from optidash.dispatcher import Completion


def _client(handler, **kwargs) -> Optidash:
    return Optidash("test-key", transport=httpx.MockTransport(handler), **kwargs)


def _recorder() -> tuple[list[tuple], object]:
    calls: list[tuple] = []

    def callback(*args):
        calls.append(args)

    return calls, callback


def _meta_response(meta: dict | str | None, content: bytes = b"", status: int = 200) -> httpx.Response:
    headers = {}
    if meta is not None:
        headers["x-optidash-meta"] = meta if isinstance(meta, str) else json.dumps(meta)
    return httpx.Response(status, headers=headers, content=content)


def test_fetch_to_json_round_trip() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content.decode())
        captured["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"success": True, "output": {"url": "https://x/y.jpg"}})

    calls, callback = _recorder()
    result = _client(handler).fetch("https://example.com/a.jpg").resize({"width": 100}).to_json(callback)

    assert calls == [(None, {"success": True, "output": {"url": "https://x/y.jpg"}})]
    assert result.ok
    assert captured["url"] == "https://api.optidash.ai/1.0/fetch"
    assert captured["body"] == {"url": "https://example.com/a.jpg", "resize": {"width": 100}}
    assert captured["auth"] == "Basic " + base64.b64encode(b"test-key:").decode()


def test_to_json_failure_keeps_body_as_metadata() -> None:
    body = {"success": False, "message": "bad input"}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json=body)

    calls, callback = _recorder()
    _client(handler).fetch("https://example.com/a.jpg").to_json(callback)

    assert len(calls) == 1
    error, metadata = calls[0]
    assert isinstance(error, OptidashAPIError)
    assert str(error) == "bad input"
    assert error.status_code == 400
    assert metadata == body


def test_to_json_rejects_unparsable_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>")

    result = _client(handler).fetch("https://example.com/a.jpg").to_json()

    assert isinstance(result.error, OptidashParseError)
    assert str(result.error) == "Unable to parse JSON response from the Optidash API"
    assert result.error.status_code == 200
    assert result.metadata == {}


def test_to_json_server_error_without_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, content=b"Bad Gateway")

    result = _client(handler).fetch("https://example.com/a.jpg").to_json()

    assert type(result.error) is OptidashHTTPError
    assert result.error.status_code == 502


def test_auth_and_rate_limit_statuses_are_classified() -> None:
    def unauthorized(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"success": False, "message": "Invalid API key"})

    def limited(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "3"}, json={"success": False, "message": "Slow down"})

    auth = _client(unauthorized).fetch("https://example.com/a.jpg").to_json()
    rate = _client(limited).fetch("https://example.com/a.jpg").to_json()

    assert isinstance(auth.error, OptidashAuthError)
    assert auth.error.message == "Invalid API key"
    assert isinstance(rate.error, OptidashRateLimitError)
    assert rate.error.retry_after == 3.0


def test_upload_sends_multipart_with_file_and_data(tmp_path) -> None:
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"JPEGDATA")
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["content"] = request.content
        captured["content_type"] = request.headers["content-type"]
        return httpx.Response(200, json={"success": True})

    result = _client(handler).upload(str(source)).optimize({"compression": "medium"}).to_json()

    assert result.ok
    assert captured["url"] == "https://api.optidash.ai/1.0/upload"
    assert str(captured["content_type"]).startswith("multipart/form-data")
    content = captured["content"]
    assert b'name="file"; filename="photo.jpg"' in content
    assert b"JPEGDATA" in content
    assert b'name="data"' in content
    assert b'{"optimize": {"compression": "medium"}}' in content


def test_upload_open_stream_uses_its_basename(tmp_path) -> None:
    source = tmp_path / "photo.png"
    source.write_bytes(b"\x89PNGDATA")
    captured: dict[str, bytes] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["content"] = request.content
        return httpx.Response(200, json={"success": True})

    with open(source, "rb") as handle:
        result = _client(handler).upload(handle).to_json()
        assert not handle.closed

    assert result.ok
    assert b'name="file"; filename="photo.png"' in captured["content"]
    assert b"\x89PNGDATA" in captured["content"]
    assert str(tmp_path).encode() not in captured["content"]


def test_upload_bytes_gets_distinct_random_filenames() -> None:
    filenames: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        match = re.search(rb'name="file"; filename="([0-9a-f]+)"', request.content)
        assert match is not None
        filenames.append(match.group(1).decode())
        return httpx.Response(200, json={"success": True})

    _client(handler).upload(b"\x89PNG").to_json()
    _client(handler).upload(b"\x89PNG").to_json()

    assert len(filenames) == 2
    assert all(len(name) == 16 for name in filenames)
    assert filenames[0] != filenames[1]


def test_upload_missing_file_reports_through_callback(tmp_path) -> None:
    sent: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(200, json={"success": True})

    calls, callback = _recorder()
    _client(handler).upload(str(tmp_path / "missing.jpg")).to_json(callback)

    assert sent == []
    assert len(calls) == 1
    assert isinstance(calls[0][0], OptidashIOError)
    assert isinstance(calls[0][0].cause, FileNotFoundError)


def test_to_buffer_round_trip() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["binary"] = request.headers.get("x-optidash-binary")
        captured["body"] = json.loads(request.content.decode())
        return _meta_response({"success": True}, content=bytes([1, 2, 3]))

    calls, callback = _recorder()
    client = _client(handler).fetch("https://example.com/a.jpg")
    result = client.to_buffer(callback)

    assert calls == [(None, {"success": True}, b"\x01\x02\x03")]
    error, metadata, payload = result
    assert error is None and metadata == {"success": True} and payload == b"\x01\x02\x03"
    assert captured["binary"] == "1"
    assert captured["body"] == {"url": "https://example.com/a.jpg", "response": {"mode": "binary"}}
    assert "response" not in client.options.request


def test_to_buffer_without_meta_header_has_empty_metadata() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return _meta_response(None, content=b"abc")

    result = _client(handler).fetch("https://example.com/a.jpg").to_buffer()

    assert result.error is None
    assert result.metadata == {}
    assert result.payload == b"abc"


def test_to_file_path_is_complete_when_callback_fires(tmp_path) -> None:
    destination = tmp_path / "out.jpg"
    seen_on_disk: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return _meta_response({"success": True, "output": {"width": 10}}, content=b"x" * 70000)

    def callback(error, metadata):
        seen_on_disk.append(destination.read_bytes())
        assert error is None
        assert metadata == {"success": True, "output": {"width": 10}}

    _client(handler).fetch("https://example.com/a.jpg").to_file(str(destination), callback)

    assert seen_on_disk == [b"x" * 70000]


def test_to_file_stream_is_flushed_and_left_open() -> None:
    destination = io.BytesIO()

    def handler(request: httpx.Request) -> httpx.Response:
        return _meta_response({"success": True}, content=b"image-bytes")

    result = _client(handler).fetch("https://example.com/a.jpg").to_file(destination)

    assert result.ok
    assert not destination.closed
    assert destination.getvalue() == b"image-bytes"


def test_failed_meta_skips_the_body(tmp_path) -> None:
    destination = tmp_path / "out.jpg"
    meta = {"success": False, "message": "Unsupported format"}

    def handler(request: httpx.Request) -> httpx.Response:
        return _meta_response(meta, content=b"should not be written", status=400)

    calls, callback = _recorder()
    _client(handler).fetch("https://example.com/a.txt").to_file(str(destination), callback)

    assert len(calls) == 1
    assert isinstance(calls[0][0], OptidashAPIError)
    assert str(calls[0][0]) == "Unsupported format"
    assert calls[0][1] == meta
    assert not destination.exists()


def test_malformed_meta_header_is_a_parse_error(tmp_path) -> None:
    destination = tmp_path / "out.jpg"

    def handler(request: httpx.Request) -> httpx.Response:
        return _meta_response("{not json", content=b"bytes")

    result = _client(handler).fetch("https://example.com/a.jpg").to_file(str(destination))

    assert isinstance(result.error, OptidashParseError)
    assert str(result.error) == "Unable to parse JSON response from the Optidash API"
    assert not destination.exists()


def test_binary_error_status_reads_json_body_for_metadata() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "Internal failure"})

    result = _client(handler).fetch("https://example.com/a.jpg").to_buffer()

    assert type(result.error) is OptidashHTTPError
    assert result.error.message == "Internal failure"
    assert result.metadata == {"message": "Internal failure"}
    assert result.payload is None


def test_destination_write_error_carries_metadata() -> None:
    class BrokenSink:
        def write(self, data: bytes) -> int:
            raise OSError("disk full")

    def handler(request: httpx.Request) -> httpx.Response:
        return _meta_response({"success": True}, content=b"abc")

    calls, callback = _recorder()
    _client(handler).fetch("https://example.com/a.jpg").to_file(BrokenSink(), callback)

    assert len(calls) == 1
    error, metadata = calls[0]
    assert isinstance(error, OptidashIOError)
    assert "disk full" in str(error)
    assert metadata == {"success": True}


def test_network_and_timeout_errors_reach_callback() -> None:
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    network_calls, network_cb = _recorder()
    timeout_calls, timeout_cb = _recorder()
    _client(refused).fetch("https://example.com/a.jpg").to_buffer(network_cb)
    _client(slow).fetch("https://example.com/a.jpg").to_json(timeout_cb)

    assert len(network_calls) == 1
    assert isinstance(network_calls[0][0], OptidashNetworkError)
    assert isinstance(network_calls[0][0].cause, httpx.ConnectError)
    assert len(timeout_calls) == 1
    assert isinstance(timeout_calls[0][0], OptidashTimeoutError)


def test_proxy_and_tls_settings_reach_the_http_client(monkeypatch) -> None:
    captured: list[dict[str, object]] = []
    real_client = httpx.Client

    def recording_client(**kwargs):
        captured.append(dict(kwargs))
        kwargs.pop("proxy", None)
        return real_client(**kwargs)

    monkeypatch.setattr(httpx, "Client", recording_client)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.headers.get("x-optidash-binary"):
            return _meta_response({"success": True}, content=b"1")
        return httpx.Response(200, json={"success": True})

    _client(handler).fetch("https://example.com/a.jpg").proxy("http://proxy.local:3128").to_json()
    _client(handler, verify_ssl=False).upload(b"raw").proxy("http://proxy.local:3128").to_buffer()
    _client(handler).fetch("https://example.com/a.jpg").to_json()

    assert [kwargs.get("proxy") for kwargs in captured] == [
        "http://proxy.local:3128",
        "http://proxy.local:3128",
        None,
    ]
    assert [kwargs["verify"] for kwargs in captured] == [True, False, True]


def test_callback_exceptions_propagate_after_a_single_call() -> None:
    calls: list[tuple] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True})

    def callback(error, metadata):
        calls.append((error, metadata))
        raise OSError("callback failed")

    with pytest.raises(OSError, match="callback failed"):
        _client(handler).fetch("https://example.com/a.jpg").to_json(callback)
    assert len(calls) == 1


def test_completion_keeps_the_first_outcome() -> None:
    completion = Completion()
    delivered: list[object] = []

    assert completion.resolve(OptidashNetworkError("socket closed")) is True
    assert completion.resolve(None, {"success": True}) is False

    first, _ = completion.deliver(delivered.append)
    second, _ = completion.deliver(delivered.append)

    assert first is second
    assert isinstance(first.error, OptidashNetworkError)
    assert delivered == [first]


def test_completion_without_outcome_is_an_error() -> None:
    with pytest.raises(RuntimeError):
        Completion().result
