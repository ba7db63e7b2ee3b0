"""
Ledger gateway — orchestrates one mixer operation end to end.

One call to fork()/spread()/collect() does:
    1. Validate input and build the payload cell (no network).
    2. Take the wallet's lock.
    3. Fetch the wallet seqno (bounded, retried).
    4. Pick the next seqno via the WalletSequencer.
    5. Build and sign the envelope.
    6. Submit it (bounded, retried).
    7. Record the seqno, release the lock.
    8. Return the message hash as hex + base64.

Sequence numbers:
    The chain only advances a wallet's seqno once a message executes,
    which can be seconds after submission. Two requests that fetch the
    seqno in that window would reuse it and one would be dropped. The
    sequencer therefore serializes fetch→submit per wallet and remembers
    the last submitted seqno until its envelope expires, handing out
    max(chain seqno, last submitted + 1).

    The lock is per process. Run a single worker process per wallet.

Retries:
    Every network call is bounded by ``RetryPolicy.timeout`` and retried
    on transport failures (and "node unavailable" replies) up to
    ``max_retries`` more times, waiting base_delay, 2*base_delay, ...
    A node that answers "rejected" is not retried.

Side effects:
    Each successful call submits a real, state-changing transaction. It is
    not idempotent.
"""

from __future__ import annotations

import asyncio
import base64
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, TypeVar

import structlog
from pytoniq_core import Address, Cell

from ton_mixer.cells import raw_address
from ton_mixer.client import LedgerClient, SubmitResult
from ton_mixer.envelope import EXPIRY_SECONDS, create_external_signed_message
from ton_mixer.errors import (
    LedgerErrorCode,
    MixerError,
    SequenceCollisionError,
    SubmissionRejectedError,
    TransportError,
    classify_connection_error,
    classify_timeout,
)
from ton_mixer.messages import CollectMessage, ForkMessage, SpreadEntry, SpreadMessage
from ton_mixer.wallet import WalletSigner

log = structlog.get_logger()

T = TypeVar("T")

# Attached values, in nano.
FORK_VALUE = 5_000_000
SPREAD_FEE = 5_000_000
COLLECT_VALUE = 50_000_000

_RETRYABLE_CODES = {str(LedgerErrorCode.BACKEND_UNAVAILABLE), str(LedgerErrorCode.TIMEOUT)}


# =========================================================================
# Value types
# =========================================================================


@dataclass(frozen=True)
class TxHash:
    """A submitted message hash in two text encodings."""

    hex: str
    base64: str

    @classmethod
    def from_bytes(cls, raw: bytes) -> TxHash:
        return cls(hex=raw.hex(), base64=base64.b64encode(raw).decode("ascii"))

    def to_dict(self) -> dict[str, str]:
        return {"hex": self.hex, "base64": self.base64}


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff.

    Attributes:
        max_retries: Additional attempts after the first one.
        base_delay: Seconds before the first retry; doubles each time.
        timeout: Seconds allowed for each individual attempt.
    """

    max_retries: int = 2
    base_delay: float = 1.0
    timeout: float = 30.0

    def delay(self, retry: int) -> float:
        """Backoff before retry number ``retry`` (0-indexed)."""
        return self.base_delay * (2**retry)


class _RetryableReply(Exception):
    """The node answered, but with an error worth retrying."""

    def __init__(self, error_code: str | None, detail: str | None) -> None:
        super().__init__(detail or error_code or "retryable ledger reply")
        self.error_code = error_code


# =========================================================================
# WalletSequencer
# =========================================================================


class WalletSequencer:
    """Per-wallet lock and seqno bookkeeping.

    ``lock(address)`` must be held from seqno fetch until the submission
    has been recorded.
    """

    def __init__(self) -> None:
        self._locks: dict[Address, asyncio.Lock] = {}
        # address → (last submitted seqno, its envelope's valid_until)
        self._pending: dict[Address, tuple[int, int]] = {}

    def lock(self, address: Address) -> asyncio.Lock:
        if address not in self._locks:
            self._locks[address] = asyncio.Lock()
        return self._locks[address]

    def last_submitted(self, address: Address, now: int) -> int | None:
        """Last seqno submitted for ``address`` whose envelope is still live."""
        pending = self._pending.get(address)
        if pending is None or now > pending[1]:
            return None
        return pending[0]

    def next_seqno(self, address: Address, chain_seqno: int, now: int) -> int:
        last = self.last_submitted(address, now)
        if last is None:
            return chain_seqno
        return max(chain_seqno, last + 1)

    def record(self, address: Address, seqno: int, valid_until: int, now: int) -> None:
        """Remember a submitted seqno.

        Raises:
            SequenceCollisionError: If ``seqno`` is not above the last
                live submission for this wallet.
        """
        last = self.last_submitted(address, now)
        if last is not None and seqno <= last:
            raise SequenceCollisionError(
                f"seqno {seqno} for {raw_address(address)} already used (last {last})"
            )
        self._pending[address] = (seqno, valid_until)


# =========================================================================
# LedgerGateway
# =========================================================================


def _unix_now() -> int:
    return int(time.time())


class LedgerGateway:
    """Fork, spread and collect against the mixer contract.

    Args:
        client: Ledger client for seqno reads and submission.
        wallet: Wallet that signs and pays for every message.
        contract: Mixer contract address.
        retry: Retry/timeout policy for network calls.
        sequencer: Shared seqno bookkeeping. One per process.
        now_fn: Unix-seconds clock. Inject for deterministic tests.
        sleep_fn: Awaitable sleep used for backoff. Inject for tests.
    """

    def __init__(
        self,
        client: LedgerClient,
        wallet: WalletSigner,
        contract: Address,
        *,
        retry: RetryPolicy | None = None,
        sequencer: WalletSequencer | None = None,
        now_fn: Callable[[], int] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._client = client
        self._wallet = wallet
        self._contract = contract
        self._retry = retry or RetryPolicy()
        self._sequencer = sequencer or WalletSequencer()
        self._now = now_fn or _unix_now
        self._sleep = sleep_fn or asyncio.sleep

    @property
    def contract(self) -> Address:
        return self._contract

    @property
    def wallet(self) -> WalletSigner:
        return self._wallet

    @property
    def sequencer(self) -> WalletSequencer:
        return self._sequencer

    # -----------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------

    async def fork(self) -> TxHash:
        """Reset the mixer contract's state."""
        payload = ForkMessage(timestamp=self._now()).build()
        return await self._invoke("fork", payload, FORK_VALUE)

    async def spread(self, entries: Sequence[SpreadEntry]) -> TxHash:
        """Send each entry's amount to its account in one message.

        The attached value is the spread total plus SPREAD_FEE.
        """
        message = SpreadMessage.from_entries(entries, self._now())
        return await self._invoke("spread", message.build(), message.amount + SPREAD_FEE)

    async def collect(
        self,
        mode: int,
        jetton_wallet: str | None = None,
        amount: float | int | None = None,
    ) -> TxHash:
        """Reclaim funds under ``mode`` (see CollectMode)."""
        message = CollectMessage.from_payload(mode, self._now(), jetton_wallet, amount)
        return await self._invoke("collect", message.build(), COLLECT_VALUE)

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    async def _invoke(self, operation: str, payload: Cell, value: int) -> TxHash:
        address = self._wallet.address
        async with self._sequencer.lock(address):
            chain_seqno = await self._with_retries("get_seqno", self._fetch_seqno)
            now = self._now()
            seqno = self._sequencer.next_seqno(address, chain_seqno, now)
            boc = create_external_signed_message(
                self._wallet, seqno, self._contract, value, now, payload
            )
            result = await self._with_retries("send_boc", lambda: self._submit(boc))
            self._sequencer.record(address, seqno, now + EXPIRY_SECONDS, now)

        if result.tx_hash is None:
            log.error(
                "mixer_tx_hash_missing",
                operation=operation,
                wallet=raw_address(address),
                seqno=seqno,
                detail=result.detail,
            )
            raise TransportError(
                f"{operation}: node accepted message without a hash ({result.detail})"
            )
        tx = TxHash.from_bytes(result.tx_hash)
        log.info(
            "mixer_tx_submitted",
            operation=operation,
            wallet=raw_address(address),
            seqno=seqno,
            chain_seqno=chain_seqno,
            value=value,
            tx_hash=tx.hex,
        )
        return tx

    async def _fetch_seqno(self) -> int:
        result = await self._client.get_seqno(self._wallet.address)
        if result.found and result.seqno is not None:
            return result.seqno
        if result.error_code in _RETRYABLE_CODES:
            raise _RetryableReply(result.error_code, result.detail)
        raise TransportError(f"cannot read wallet seqno: {result.detail or result.error_code}")

    async def _submit(self, boc: bytes) -> SubmitResult:
        result = await self._client.send_boc(boc)
        if result.accepted:
            return result
        if result.error_code in _RETRYABLE_CODES:
            raise _RetryableReply(result.error_code, result.detail)
        raise SubmissionRejectedError(
            f"message rejected: {result.detail or result.error_code}",
            LedgerErrorCode(result.error_code)
            if result.error_code in set(LedgerErrorCode)
            else LedgerErrorCode.UNKNOWN,
        )

    async def _with_retries(self, what: str, call: Callable[[], Awaitable[T]]) -> T:
        retry = 0
        while True:
            try:
                return await asyncio.wait_for(call(), timeout=self._retry.timeout)
            except MixerError:
                raise
            except Exception as exc:
                if isinstance(exc, asyncio.TimeoutError):
                    error_code = classify_timeout()
                elif isinstance(exc, _RetryableReply):
                    error_code = LedgerErrorCode(exc.error_code)
                else:
                    error_code = classify_connection_error(str(exc))
                if retry >= self._retry.max_retries:
                    log.error(
                        "ledger_call_failed",
                        call=what,
                        attempts=retry + 1,
                        error_code=str(error_code),
                        error=str(exc),
                    )
                    raise TransportError(
                        f"{what} failed after {retry + 1} attempts ({error_code}): {exc}"
                    ) from exc
                delay = self._retry.delay(retry)
                log.warning(
                    "ledger_call_retry",
                    call=what,
                    attempt=retry + 1,
                    delay=delay,
                    error_code=str(error_code),
                    error=str(exc),
                )
                await self._sleep(delay)
                retry += 1
