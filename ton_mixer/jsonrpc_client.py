"""
Toncenter JSON-RPC client — real network implementation of LedgerClient.

Translates JSON-RPC runGetMethod / sendBocReturnHash responses into
SeqnoResult / SubmitResult. Uses an injectable transport
(JsonRpcTransport) so the HTTP layer can be swapped for test fakes
without changing parsing logic.

No retry loops. No secrets. No cell logic beyond base64 of the BoC.

Response conventions (toncenter API v2):
    - Success: {"ok": true, "result": {...}, "id": ..., "jsonrpc": "2.0"}
    - Error:   {"ok": false, "error": "...", "code": 500, ...}
    - runGetMethod result: {"exit_code": 0, "stack": [["num", "0x1a"]], ...}
    - sendBocReturnHash result: {"hash": "<base64 message hash>", ...}
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pytoniq_core import Address

from ton_mixer.cells import raw_address
from ton_mixer.client import SeqnoResult, SubmitResult
from ton_mixer.errors import LedgerErrorCode, classify_ledger_error
from ton_mixer.transport import HttpxTransport, JsonRpcTransport

DEFAULT_TONCENTER_URL = "https://testnet.toncenter.com/api/v2/jsonRPC"

# TVM exit code for a get-method on an account with no code yet.
EXIT_CODE_UNINITIALIZED = -13

# JSON-RPC request ID counter (simple, no thread-safety needed for async)
_REQUEST_ID = 0


def _next_request_id() -> int:
    global _REQUEST_ID
    _REQUEST_ID += 1
    return _REQUEST_ID


class ToncenterClient:
    """Toncenter JSON-RPC client implementing the LedgerClient protocol.

    Args:
        url: The JSON-RPC endpoint URL.
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
    """

    def __init__(
        self,
        url: str = DEFAULT_TONCENTER_URL,
        transport: JsonRpcTransport | None = None,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    @property
    def transport(self) -> JsonRpcTransport:
        return self._transport

    # -----------------------------------------------------------------
    # LedgerClient protocol methods
    # -----------------------------------------------------------------

    async def get_seqno(self, address: Address) -> SeqnoResult:
        """Run the wallet's ``seqno`` get-method.

        Transport exceptions propagate to the caller (the gateway
        retries them).
        """
        payload = {
            "jsonrpc": "2.0",
            "id": _next_request_id(),
            "method": "runGetMethod",
            "params": {
                "address": raw_address(address),
                "method": "seqno",
                "stack": [],
            },
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_seqno_response(response)

    async def send_boc(self, boc: bytes) -> SubmitResult:
        """Submit a serialized envelope and return its message hash.

        Transport exceptions propagate to the caller (the gateway
        retries them).
        """
        payload = {
            "jsonrpc": "2.0",
            "id": _next_request_id(),
            "method": "sendBocReturnHash",
            "params": {"boc": base64.b64encode(boc).decode("ascii")},
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_submit_response(response)


# =====================================================================
# Response parsing (pure functions, no I/O)
# =====================================================================


def _error_fields(response: dict[str, Any]) -> tuple[str, str]:
    detail = str(response.get("error") or "unknown server error")
    code = response.get("code")
    error_code = classify_ledger_error(code if isinstance(code, int) else None, detail)
    return str(error_code), detail


def _parse_stack_int(entry: Any) -> int | None:
    """Decode a ``["num", "0x.."]`` stack entry."""
    if not isinstance(entry, (list, tuple)) or len(entry) != 2 or entry[0] != "num":
        return None
    try:
        return int(str(entry[1]), 16)
    except ValueError:
        return None


def _parse_seqno_response(response: dict[str, Any]) -> SeqnoResult:
    """Parse a runGetMethod(seqno) response into SeqnoResult.

    Handles:
        - Successful call with a numeric stack entry
        - Uninitialized wallet (exit code -13) → seqno 0
        - Non-zero exit codes and server-level errors
        - Missing/malformed fields (found=False with detail)
    """
    if not response.get("ok", False):
        error_code, detail = _error_fields(response)
        return SeqnoResult(found=False, error_code=error_code, detail=detail)

    result = response.get("result")
    if not isinstance(result, dict):
        return SeqnoResult(
            found=False,
            error_code=str(LedgerErrorCode.UNKNOWN),
            detail="no result in runGetMethod response",
        )

    exit_code = result.get("exit_code", 0)
    if exit_code == EXIT_CODE_UNINITIALIZED:
        return SeqnoResult(found=True, seqno=0)
    if exit_code != 0:
        return SeqnoResult(
            found=False,
            error_code=str(LedgerErrorCode.REJECTED),
            detail=f"seqno get-method exited with code {exit_code}",
        )

    stack = result.get("stack")
    seqno = _parse_stack_int(stack[0]) if isinstance(stack, list) and stack else None
    if seqno is None or seqno < 0:
        return SeqnoResult(
            found=False,
            error_code=str(LedgerErrorCode.UNKNOWN),
            detail=f"unexpected seqno stack: {stack!r}",
        )
    return SeqnoResult(found=True, seqno=seqno)


def _decode_hash(value: str) -> bytes | None:
    if len(value) == 64:
        try:
            return bytes.fromhex(value)
        except ValueError:
            pass
    altchars = b"-_" if ("-" in value or "_" in value) else None
    try:
        raw = base64.b64decode(value, altchars=altchars, validate=True)
    except (binascii.Error, ValueError):
        return None
    return raw if len(raw) == 32 else None


def _parse_submit_response(response: dict[str, Any]) -> SubmitResult:
    """Parse a sendBocReturnHash response into SubmitResult.

    Handles:
        - Accepted message with a base64 (or hex) hash
        - Server-level errors (ok == false)
        - Missing/malformed hash: the node took the message, so it is
          still accepted (and its seqno spent), with tx_hash None
    """
    if not response.get("ok", False):
        error_code, detail = _error_fields(response)
        return SubmitResult(accepted=False, error_code=error_code, detail=detail)

    result = response.get("result")
    raw_hash = result.get("hash") if isinstance(result, dict) else None
    if not isinstance(raw_hash, str):
        return SubmitResult(accepted=True, detail="no hash in sendBocReturnHash response")

    tx_hash = _decode_hash(raw_hash)
    if tx_hash is None:
        return SubmitResult(accepted=True, detail=f"malformed message hash: {raw_hash!r}")
    return SubmitResult(accepted=True, tx_hash=tx_hash)
