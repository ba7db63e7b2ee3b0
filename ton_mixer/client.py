"""
Ledger client protocol — the network boundary.

Defines the interface the gateway depends on, not a concrete
implementation. This keeps the gateway testable and keeps HTTP calls
out of envelope logic.

Concrete implementations:
    - ToncenterClient (JSON-RPC over HTTP)
    - FakeLedgerClient (tests)

The protocol has exactly two methods:
    - get_seqno(wallet_address) → SeqnoResult
    - send_boc(boc_bytes) → SubmitResult

Both return boring frozen dataclasses. No exceptions for "expected"
failures (the node answered with an error) — those are captured in the
result objects. Transport exceptions propagate; the gateway retries them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from pytoniq_core import Address

# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class SeqnoResult:
    """Result of reading a wallet's current sequence number.

    Attributes:
        found: Whether the node returned a sequence number.
        seqno: The wallet's next expected seqno. None unless found.
        error_code: LedgerErrorCode value when found is False.
        detail: Human-readable detail for diagnostics.
    """

    found: bool
    seqno: int | None = None
    error_code: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class SubmitResult:
    """Result of submitting a serialized envelope.

    Attributes:
        accepted: Whether the node accepted the message for broadcast.
            True does NOT mean the transaction executed.
        tx_hash: Raw message hash bytes. None if the node rejected it or
            returned no hash.
        error_code: LedgerErrorCode value when accepted is False.
        detail: Human-readable detail for diagnostics.
    """

    accepted: bool
    tx_hash: bytes | None = None
    error_code: str | None = None
    detail: str | None = None


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerClient(Protocol):
    """Interface for ledger network operations.

    Methods are async because network I/O is inherently asynchronous.
    """

    async def get_seqno(self, address: Address) -> SeqnoResult:
        """Read the wallet's current sequence number.

        Never raises for node-side errors — those are captured in the
        result. Transport failures propagate.
        """
        ...

    async def send_boc(self, boc: bytes) -> SubmitResult:
        """Submit a serialized external message.

        Never raises for node-side errors — those are captured in the
        result. Transport failures propagate.
        """
        ...
