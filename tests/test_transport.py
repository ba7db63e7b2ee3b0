"""
Tests for HttpxTransport against a mocked httpx backend.

Test plan:
- 2xx JSON body returned as-is, request carries JSON and extra headers
- Non-2xx with a JSON-RPC body returned with the HTTP status as code
- Non-2xx without a JSON-RPC body raises HTTPStatusError
- Connection errors propagate
- aclose() releases the client and a later call opens a new one
"""

import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

from ton_mixer.transport import HttpxTransport, JsonRpcTransport

URL = "https://node.example/api/v2/jsonRPC"
PAYLOAD = {"jsonrpc": "2.0", "id": 1, "method": "runGetMethod", "params": {}}


class TestHttpxTransport:
    def test_implements_protocol(self) -> None:
        assert isinstance(HttpxTransport(), JsonRpcTransport)

    @pytest.mark.asyncio
    async def test_success(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=URL, method="POST", json={"ok": True, "result": {}})
        transport = HttpxTransport(headers={"X-API-Key": "secret"})
        try:
            assert await transport.post_json(URL, PAYLOAD) == {"ok": True, "result": {}}
        finally:
            await transport.aclose()

        request = httpx_mock.get_request()
        assert request is not None
        assert request.headers["X-API-Key"] == "secret"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == PAYLOAD

    @pytest.mark.asyncio
    async def test_error_body_kept(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=URL, method="POST", status_code=500, json={"ok": False, "error": "boom"}
        )
        transport = HttpxTransport()
        try:
            body = await transport.post_json(URL, PAYLOAD)
        finally:
            await transport.aclose()
        assert body == {"ok": False, "error": "boom", "code": 500}

    @pytest.mark.asyncio
    async def test_error_body_code_not_overwritten(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=URL, method="POST", status_code=429, json={"ok": False, "error": "rate", "code": 429}
        )
        transport = HttpxTransport()
        try:
            body = await transport.post_json(URL, PAYLOAD)
        finally:
            await transport.aclose()
        assert body["code"] == 429

    @pytest.mark.asyncio
    async def test_html_error_page_raises(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=URL, method="POST", status_code=502, text="<html>bad gateway</html>")
        transport = HttpxTransport()
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await transport.post_json(URL, PAYLOAD)
        finally:
            await transport.aclose()

    @pytest.mark.asyncio
    async def test_non_rpc_json_error_raises(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=URL, method="POST", status_code=404, json={"detail": "nope"})
        transport = HttpxTransport()
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await transport.post_json(URL, PAYLOAD)
        finally:
            await transport.aclose()

    @pytest.mark.asyncio
    async def test_connection_error(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        transport = HttpxTransport()
        try:
            with pytest.raises(httpx.ConnectError):
                await transport.post_json(URL, PAYLOAD)
        finally:
            await transport.aclose()

    @pytest.mark.asyncio
    async def test_aclose_resets_client(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=URL, method="POST", json={"ok": True})
        httpx_mock.add_response(url=URL, method="POST", json={"ok": True})
        transport = HttpxTransport()
        await transport.post_json(URL, PAYLOAD)
        await transport.aclose()
        await transport.aclose()
        assert await transport.post_json(URL, PAYLOAD) == {"ok": True}
        await transport.aclose()
