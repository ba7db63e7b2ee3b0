"""
HTTP surface — FastAPI application for the mixer operations.

Routes (all under ``/mixer``):
    POST /fork            → {hex, base64}
    POST /spread          → {hex, base64}   body: [{account, amount}, ...]
    POST /collect         → {hex, base64}   body: {mode, jetton_wallet?, amount?}
    GET  /collect/modes   → collect mode names and values
    GET  /op_codes        → {spread, collect, fork}

Failures are returned as ``{status: "error", message}``:
    ValidationError / EncodingError / bad request body  → 400
    SequenceCollisionError                              → 409
    SigningError / SerializationError / ConfigError     → 500
    TransportError                                      → 502
    anything else                                       → 500 (no trace)

The app never owns secrets directly; it receives a LedgerGateway that
already holds the wallet. ``app_factory`` wires the real collaborators
from environment settings for uvicorn.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Protocol

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from ton_mixer.cells import raw_address
from ton_mixer.config import DEFAULT_CORS_ORIGINS, Settings, load_environment
from ton_mixer.errors import (
    EncodingError,
    MixerError,
    SequenceCollisionError,
    TransportError,
    ValidationError,
)
from ton_mixer.gateway import LedgerGateway, RetryPolicy
from ton_mixer.jsonrpc_client import ToncenterClient
from ton_mixer.messages import SpreadEntry
from ton_mixer.models import (
    CollectModesResponse,
    CollectPayload,
    OpcodesResponse,
    ResponseEnvelope,
    SpreadWalletPayload,
    TxHashResponse,
)
from ton_mixer.opcodes import OPCODES, collect_modes
from ton_mixer.transport import HttpxTransport
from ton_mixer.wallet import Ed25519Wallet

log = structlog.get_logger()

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]
CORS_HEADERS = ["Content-Type"]
GZIP_MINIMUM_SIZE = 500


class _Closeable(Protocol):
    async def aclose(self) -> None: ...


def status_for(exc: MixerError) -> int:
    """HTTP status for a domain error."""
    if isinstance(exc, (ValidationError, EncodingError)):
        return 400
    if isinstance(exc, SequenceCollisionError):
        return 409
    if isinstance(exc, TransportError):
        return 502
    return 500


def _error_response(status_code: int, message: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ResponseEnvelope.error(message).model_dump(mode="json"),
    )


def create_app(
    gateway: LedgerGateway,
    settings: Settings | None = None,
    *,
    resources: Iterable[_Closeable] = (),
) -> FastAPI:
    """Create the FastAPI application around an injected gateway.

    Args:
        gateway: Performs fork/spread/collect against the ledger.
        settings: Process settings; only CORS origins are read here.
        resources: Objects closed with ``aclose()`` on shutdown.
    """
    cleanup = list(resources)

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info(
            "mixer_api_started",
            contract=raw_address(gateway.contract),
            wallet=raw_address(gateway.wallet.address),
            key_id=gateway.wallet.key_id,
        )
        yield
        for resource in cleanup:
            await resource.aclose()

    from ton_mixer import __version__

    app = FastAPI(
        title="TON Mixer",
        version=__version__,
        description="Fork, spread and collect against a mixer contract",
        lifespan=_lifespan,
    )

    @app.exception_handler(MixerError)
    async def _mixer_error(request: Request, exc: MixerError) -> JSONResponse:
        status_code = status_for(exc)
        event = log.error if status_code >= 500 else log.warning
        event(
            "mixer_request_failed",
            path=request.url.path,
            status=status_code,
            code=exc.code,
            error=exc.message,
        )
        return _error_response(status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        log.warning("mixer_request_invalid", path=request.url.path, errors=len(errors))
        return _error_response(400, errors)

    # Never leak stack traces to clients
    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            method=request.method,
            exc_info=True,
        )
        return _error_response(500, "internal server error")

    origins = list(settings.cors_origins if settings else DEFAULT_CORS_ORIGINS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )
    app.add_middleware(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)

    app.include_router(_mixer_router(gateway))
    return app


def _mixer_router(gateway: LedgerGateway) -> APIRouter:
    router = APIRouter(prefix="/mixer")

    @router.post("/fork", response_model=TxHashResponse)
    async def fork() -> TxHashResponse:
        tx = await gateway.fork()
        return TxHashResponse(**tx.to_dict())

    @router.post("/spread", response_model=TxHashResponse)
    async def spread(wallets: list[SpreadWalletPayload]) -> TxHashResponse:
        entries = [SpreadEntry.from_payload(w.account, w.amount) for w in wallets]
        tx = await gateway.spread(entries)
        return TxHashResponse(**tx.to_dict())

    @router.post("/collect", response_model=TxHashResponse)
    async def collect(payload: CollectPayload) -> TxHashResponse:
        tx = await gateway.collect(payload.mode, payload.jetton_wallet, payload.amount)
        return TxHashResponse(**tx.to_dict())

    @router.get("/collect/modes", response_model=CollectModesResponse)
    async def modes() -> CollectModesResponse:
        return CollectModesResponse(**collect_modes())

    @router.get("/op_codes", response_model=OpcodesResponse)
    async def op_codes() -> OpcodesResponse:
        return OpcodesResponse(**OPCODES.to_dict())

    return router


def build_app(settings: Settings) -> FastAPI:
    """Wire the real wallet, ledger client and gateway from settings."""
    wallet = Ed25519Wallet.from_mnemonic(
        settings.wallet_mnemonic,
        wallet_id=settings.wallet_id,
        workchain=settings.wallet_workchain,
    )
    headers = {"X-API-Key": settings.toncenter_api_key} if settings.toncenter_api_key else None
    transport = HttpxTransport(timeout=settings.request_timeout, headers=headers)
    client = ToncenterClient(settings.toncenter_url, transport)
    gateway = LedgerGateway(
        client,
        wallet,
        settings.mixer_contract,
        retry=RetryPolicy(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            timeout=settings.request_timeout,
        ),
    )
    return create_app(gateway, settings, resources=[transport])


def app_factory() -> FastAPI:
    """uvicorn factory: ``uvicorn ton_mixer.api:app_factory --factory``."""
    load_environment()
    return build_app(Settings.from_env())
