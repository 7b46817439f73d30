from __future__ import annotations

import asyncio

import httpx
import pytest
import requests

from tufguard.errors import TransportError
from tufguard.transport import HttpxAsyncTransport, RequestsTransport


class _FakeStreamResponse:
    def __init__(
        self,
        *,
        status_code: int,
        chunks: list[bytes] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.chunks = list(chunks or [])
        self.headers = dict(headers or {})
        self.closed = False

    def iter_content(self, chunk_size: int) -> list[bytes]:
        _ = chunk_size
        return self.chunks

    def close(self) -> None:
        self.closed = True


class _FakeSession:
    def __init__(self, outcome: _FakeStreamResponse | Exception) -> None:
        self.outcome = outcome
        self.headers: dict[str, str] = {}
        self.calls: list[dict[str, object]] = []

    def get(
        self,
        url: str,
        *,
        headers: dict[str, str],
        timeout: float,
        stream: bool,
    ) -> _FakeStreamResponse:
        self.calls.append({"url": url, "headers": headers, "timeout": timeout, "stream": stream})
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_requests_transport_returns_body_and_headers() -> None:
    response = _FakeStreamResponse(
        status_code=200,
        chunks=[b'{"packages":', b"{}}"],
        headers={"Last-Modified": "Tue, 01 Oct 2024 10:00:00 GMT"},
    )
    session = _FakeSession(response)
    transport = RequestsTransport(session=session, timeout_seconds=5.0)  # type: ignore[arg-type]

    result = transport.get(
        "https://repo.example.org/packages.json",
        {"headers": {"If-Modified-Since": "yesterday"}},
    )

    assert result.status_code == 200
    assert result.body == b'{"packages":{}}'
    assert result.header("last-modified") == "Tue, 01 Oct 2024 10:00:00 GMT"
    assert session.calls[0]["headers"] == {"If-Modified-Since": "yesterday"}
    assert session.calls[0]["timeout"] == 5.0
    assert session.calls[0]["stream"] is True
    assert session.headers["User-Agent"].startswith("tufguard/")
    assert response.closed is True


def test_requests_transport_maps_http_errors_to_status_codes() -> None:
    response = _FakeStreamResponse(status_code=404)
    transport = RequestsTransport(session=_FakeSession(response))  # type: ignore[arg-type]

    with pytest.raises(TransportError) as excinfo:
        transport.get("https://repo.example.org/p2/missing.json")

    assert excinfo.value.status_code == 404
    assert response.closed is True


def test_requests_transport_wraps_connection_errors() -> None:
    session = _FakeSession(requests.ConnectionError("connection reset"))
    transport = RequestsTransport(session=session)  # type: ignore[arg-type]

    with pytest.raises(TransportError) as excinfo:
        transport.get("https://repo.example.org/packages.json")

    assert excinfo.value.status_code is None


def test_requests_transport_aborts_past_expected_length() -> None:
    response = _FakeStreamResponse(status_code=200, chunks=[b"12345", b"67890"])
    transport = RequestsTransport(session=_FakeSession(response))  # type: ignore[arg-type]

    with pytest.raises(TransportError, match="exceeded expected length"):
        transport.get("https://repo.example.org/packages.json", {"max_bytes": 6})


def test_requests_transport_passes_through_not_modified() -> None:
    transport = RequestsTransport(
        session=_FakeSession(_FakeStreamResponse(status_code=304))  # type: ignore[arg-type]
    )

    result = transport.get("https://repo.example.org/packages.json")

    assert result.status_code == 304
    assert result.body == b""


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_httpx_transport_returns_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b'{"packages":{}}', headers={"Last-Modified": "now"})

    async def run() -> None:
        transport = HttpxAsyncTransport(client=_mock_client(handler))
        try:
            result = await transport.get(
                "https://repo.example.org/packages.json",
                {"headers": {"If-Modified-Since": "yesterday"}, "timeout": 2.0},
            )
        finally:
            await transport.aclose()

        assert result.status_code == 200
        assert result.body == b'{"packages":{}}'
        assert result.header("Last-Modified") == "now"

    asyncio.run(run())

    assert seen[0].headers["If-Modified-Since"] == "yesterday"


def test_httpx_transport_maps_status_and_network_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/missing.json":
            return httpx.Response(404)
        raise httpx.ConnectError("connection refused", request=request)

    async def run() -> tuple[TransportError, TransportError]:
        transport = HttpxAsyncTransport(client=_mock_client(handler))
        errors: list[TransportError] = []
        for path in ("/missing.json", "/packages.json"):
            try:
                await transport.get(f"https://repo.example.org{path}")
            except TransportError as exc:
                errors.append(exc)
        await transport.aclose()
        return errors[0], errors[1]

    not_found, refused = asyncio.run(run())

    assert not_found.status_code == 404
    assert refused.status_code is None


def test_httpx_transport_aborts_past_expected_length() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"0123456789")

    async def run() -> None:
        transport = HttpxAsyncTransport(client=_mock_client(handler))
        try:
            await transport.get("https://repo.example.org/packages.json", {"max_bytes": 4})
        finally:
            await transport.aclose()

    with pytest.raises(TransportError, match="exceeded expected length"):
        asyncio.run(run())


def test_httpx_transport_creates_client_on_first_request(monkeypatch) -> None:
    built: list[httpx.AsyncClient] = []
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"{}")

    def counting_client(**kwargs) -> httpx.AsyncClient:
        client = real_client(transport=httpx.MockTransport(handler), **kwargs)
        built.append(client)
        return client

    monkeypatch.setattr(httpx, "AsyncClient", counting_client)

    idle = HttpxAsyncTransport()
    asyncio.run(idle.aclose())
    assert built == []

    async def run() -> bytes:
        transport = HttpxAsyncTransport(user_agent="tufguard/test")
        try:
            return (await transport.get("https://repo.example.org/packages.json")).body
        finally:
            await transport.aclose()

    assert asyncio.run(run()) == b"{}"
    assert len(built) == 1
    assert built[0].headers["User-Agent"] == "tufguard/test"
    assert built[0].is_closed
