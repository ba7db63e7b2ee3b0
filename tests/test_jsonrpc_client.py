"""
Tests for ToncenterClient — canned JSON-RPC responses, no network.

Uses a FakeTransport that returns pre-built response dicts,
exercising the parsing logic in jsonrpc_client.py.

Test plan:
- Seqno: numeric stack parsed, uninitialized wallet → 0, non-zero exit
  code → REJECTED, server error classified, malformed stack → UNKNOWN
- Submit: base64 and hex hashes decoded, node refusal → REJECTED,
  unavailable backend → BACKEND_UNAVAILABLE, missing hash → UNKNOWN
- Requests: method names and params, base64 BoC
- Transport: exceptions propagate to the caller
"""

import base64
from typing import Any

import pytest
from pytoniq_core import Address

from ton_mixer.client import LedgerClient
from ton_mixer.errors import LedgerErrorCode
from ton_mixer.jsonrpc_client import DEFAULT_TONCENTER_URL, ToncenterClient

WALLET = Address((0, b"\x33" * 32))
TX_HASH = bytes(range(32))

# ---------------------------------------------------------------------------
# Fake transports
# ---------------------------------------------------------------------------


class FakeTransport:
    """Returns a canned JSON-RPC response for testing."""

    def __init__(self, response: dict[str, Any]) -> None:
        self._response = response
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((url, payload))
        return self._response


class ErrorTransport:
    """Raises an exception on post_json to simulate transport failures."""

    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        raise self._exc


# ---------------------------------------------------------------------------
# Canned responses
# ---------------------------------------------------------------------------


def _get_method(exit_code: int, stack: list[Any]) -> dict[str, Any]:
    return {
        "ok": True,
        "result": {"@type": "smc.runResult", "gas_used": 484, "stack": stack, "exit_code": exit_code},
        "jsonrpc": "2.0",
        "id": 1,
    }


SEQNO_OK = _get_method(0, [["num", "0x1a"]])
SEQNO_UNINIT = _get_method(-13, [])
SEQNO_EXIT_11 = _get_method(11, [])
SEQNO_BAD_STACK = _get_method(0, [["cell", {"bytes": ""}]])
SERVER_UNAVAILABLE = {"ok": False, "error": "LITE_SERVER_NETWORK timeout", "code": 503}

SUBMIT_OK = {
    "ok": True,
    "result": {"@type": "raw.extMessageInfo", "hash": base64.b64encode(TX_HASH).decode()},
    "jsonrpc": "2.0",
    "id": 2,
}
SUBMIT_HEX = {"ok": True, "result": {"hash": TX_HASH.hex()}}
SUBMIT_URLSAFE = {"ok": True, "result": {"hash": base64.urlsafe_b64encode(b"\xfb" * 32).decode()}}
SUBMIT_REFUSED = {
    "ok": False,
    "error": "LITE_SERVER_UNKNOWN: cannot apply external message to current state",
    "code": 500,
}
SUBMIT_NO_HASH = {"ok": True, "result": {"@type": "ok"}}
SUBMIT_BAD_HASH = {"ok": True, "result": {"hash": "not-a-hash"}}


class TestProtocol:
    def test_implements_ledger_client(self) -> None:
        client = ToncenterClient(transport=FakeTransport(SEQNO_OK))
        assert isinstance(client, LedgerClient)
        assert client.url == DEFAULT_TONCENTER_URL


class TestGetSeqno:
    @pytest.mark.asyncio
    async def test_parses_stack(self) -> None:
        transport = FakeTransport(SEQNO_OK)
        result = await ToncenterClient("http://node/jsonRPC", transport).get_seqno(WALLET)
        assert result.found is True
        assert result.seqno == 26

        url, payload = transport.calls[0]
        assert url == "http://node/jsonRPC"
        assert payload["method"] == "runGetMethod"
        assert payload["params"] == {
            "address": "0:" + "33" * 32,
            "method": "seqno",
            "stack": [],
        }

    @pytest.mark.asyncio
    async def test_uninitialized_wallet_is_zero(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SEQNO_UNINIT)).get_seqno(WALLET)
        assert result.found is True
        assert result.seqno == 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_code(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SEQNO_EXIT_11)).get_seqno(WALLET)
        assert result.found is False
        assert result.error_code == LedgerErrorCode.REJECTED
        assert "11" in (result.detail or "")

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SERVER_UNAVAILABLE)).get_seqno(WALLET)
        assert result.found is False
        assert result.error_code == LedgerErrorCode.BACKEND_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_malformed_stack(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SEQNO_BAD_STACK)).get_seqno(WALLET)
        assert result.found is False
        assert result.error_code == LedgerErrorCode.UNKNOWN

    @pytest.mark.asyncio
    async def test_missing_result(self) -> None:
        result = await ToncenterClient(transport=FakeTransport({"ok": True})).get_seqno(WALLET)
        assert result.found is False
        assert result.error_code == LedgerErrorCode.UNKNOWN


class TestSendBoc:
    @pytest.mark.asyncio
    async def test_base64_hash(self) -> None:
        transport = FakeTransport(SUBMIT_OK)
        result = await ToncenterClient(transport=transport).send_boc(b"\xb5\xee\x9c\x72")
        assert result.accepted is True
        assert result.tx_hash == TX_HASH

        _, payload = transport.calls[0]
        assert payload["method"] == "sendBocReturnHash"
        assert payload["params"] == {"boc": "te6ccg=="}

    @pytest.mark.asyncio
    async def test_hex_hash(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SUBMIT_HEX)).send_boc(b"x")
        assert result.tx_hash == TX_HASH

    @pytest.mark.asyncio
    async def test_urlsafe_hash(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SUBMIT_URLSAFE)).send_boc(b"x")
        assert result.tx_hash == b"\xfb" * 32

    @pytest.mark.asyncio
    async def test_refused(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SUBMIT_REFUSED)).send_boc(b"x")
        assert result.accepted is False
        assert result.tx_hash is None
        assert result.error_code == LedgerErrorCode.REJECTED
        assert "cannot apply external message" in (result.detail or "")

    @pytest.mark.asyncio
    async def test_unavailable(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SERVER_UNAVAILABLE)).send_boc(b"x")
        assert result.accepted is False
        assert result.error_code == LedgerErrorCode.BACKEND_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_no_hash(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SUBMIT_NO_HASH)).send_boc(b"x")
        assert result.accepted is True
        assert result.tx_hash is None
        assert "no hash" in (result.detail or "")

    @pytest.mark.asyncio
    async def test_malformed_hash(self) -> None:
        result = await ToncenterClient(transport=FakeTransport(SUBMIT_BAD_HASH)).send_boc(b"x")
        assert result.accepted is True
        assert result.tx_hash is None
        assert "malformed" in (result.detail or "")


class TestTransportErrors:
    @pytest.mark.asyncio
    async def test_seqno_propagates(self) -> None:
        client = ToncenterClient(transport=ErrorTransport(ConnectionError("refused")))
        with pytest.raises(ConnectionError):
            await client.get_seqno(WALLET)

    @pytest.mark.asyncio
    async def test_submit_propagates(self) -> None:
        client = ToncenterClient(transport=ErrorTransport(TimeoutError("slow")))
        with pytest.raises(TimeoutError):
            await client.send_boc(b"x")
