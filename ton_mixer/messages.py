"""
Mixer contract message bodies.

Each message is a single cell that starts with the operation's opcode
and the request timestamp (used as query_id):

    fork:     opcode:uint32 query_id:uint64
    spread:   opcode:uint32 query_id:uint64 total:uint64 mode:uint8
              has_payload:bit ^payload
    collect:  opcode:uint32 query_id:uint64 mode:uint8
              [jetton_wallet:MsgAddress amount:Coins]   (mode 3 only)

Spread payload is a linked list of cells. Folding the entries in input
order, each new cell stores (address, coins) and references the previous
cell as its only child; the innermost cell is empty. The root therefore
holds the LAST entry, and a reader walking from the root sees the entries
in reverse input order. The contract consumes the list in that order.

All request validation (addresses, amounts, collect modes) happens here,
before any cell is built, so the HTTP layer only reports typed errors.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Sequence

import structlog
from pytoniq_core import Address, Cell, begin_cell

from ton_mixer.cells import building, ensure_consumed, parse_address, parsing
from ton_mixer.errors import (
    CellOverflowError,
    EncodingError,
    InvalidModeError,
    MissingJettonFieldsError,
    ValidationError,
)
from ton_mixer.opcodes import OPCODES, CollectMode

log = structlog.get_logger()

NANO_PER_UNIT = 10**9

UINT64_MAX = (1 << 64) - 1

# The only spread mode the contract currently implements.
SPREAD_MODE_DEFAULT = 0

# Deepest cell tree the network accepts in an external message (config param 43).
MAX_MESSAGE_DEPTH = 512

# transfer + signed wallet body + external message sit above the spread root.
_ENVELOPE_DEPTH = 3

# The payload list is one level per entry; the spread root adds one more.
MAX_SPREAD_ENTRIES = MAX_MESSAGE_DEPTH - _ENVELOPE_DEPTH - 1


def to_nano(amount: float | int | str | Decimal) -> int:
    """Convert a human amount to nano units, rounding half away from zero.

    The decimal text of the number is used so that 1.15 becomes
    1_150_000_000 rather than a float artefact.

    Raises:
        ValidationError: If the amount is negative, NaN, infinite or not
            a number.
    """
    if isinstance(amount, bool):
        raise ValidationError(f"amount must be a number, got {amount!r}")
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValidationError(f"amount must be finite, got {amount!r}")
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValidationError(f"amount must be a number, got {amount!r}") from exc
    if not value.is_finite():
        raise ValidationError(f"amount must be finite, got {amount!r}")
    if value < 0:
        raise ValidationError(f"amount must be non-negative, got {amount!r}")
    return int((value * NANO_PER_UNIT).to_integral_value(rounding=ROUND_HALF_UP))


def from_nano(nano: int) -> Decimal:
    return Decimal(nano) / NANO_PER_UNIT


# =========================================================================
# Fork
# =========================================================================


@dataclass(frozen=True)
class ForkMessage:
    """Reset the mixer contract's state."""

    timestamp: int

    def build(self) -> Cell:
        with building("fork message"):
            return (
                begin_cell()
                .store_uint(OPCODES.fork, 32)
                .store_uint(self.timestamp, 64)
                .end_cell()
            )

    @classmethod
    def parse(cls, cell: Cell) -> ForkMessage:
        body = cell.begin_parse()
        with parsing("fork message"):
            op = body.load_uint(32)
            if op != OPCODES.fork:
                raise EncodingError(f"not a fork message: opcode 0x{op:08x}")
            message = cls(timestamp=body.load_uint(64))
        ensure_consumed(body, "fork message")
        return message


# =========================================================================
# Spread
# =========================================================================


@dataclass(frozen=True)
class SpreadEntry:
    """One recipient of a spread: account and nano amount."""

    account: Address
    amount: int

    @classmethod
    def from_payload(cls, account: str, amount: float | int | str | Decimal) -> SpreadEntry:
        """Build an entry from a human-readable request item.

        Raises:
            InvalidAddressError: If ``account`` is not a valid address.
            ValidationError: If ``amount`` is not a valid amount.
        """
        return cls(account=parse_address(account), amount=to_nano(amount))


def build_spread_payload(entries: Sequence[SpreadEntry]) -> Cell:
    """Fold entries into the linked payload list (last entry at the root)."""
    payload = Cell.empty()
    with building("spread payload"):
        for entry in entries:
            payload = (
                begin_cell()
                .store_ref(payload)
                .store_address(entry.account)
                .store_coins(entry.amount)
                .end_cell()
            )
    return payload


def decode_spread_payload(payload: Cell) -> list[SpreadEntry]:
    """Walk the linked payload list from the root.

    Returns:
        Entries in wire order, i.e. reverse of the order they were added.
    """
    entries: list[SpreadEntry] = []
    node = payload
    while node.refs or len(node.bits):
        body = node.begin_parse()
        with parsing("spread entry"):
            tail = body.load_ref()
            account = body.load_address()
            if not isinstance(account, Address):
                raise EncodingError("spread entry without an account address")
            entries.append(SpreadEntry(account=account, amount=body.load_coins()))
        ensure_consumed(body, "spread entry")
        node = tail
    return entries


@dataclass(frozen=True)
class SpreadMessage:
    """Split ``amount`` nano between the accounts in ``data``."""

    mode: int
    timestamp: int
    amount: int
    data: Cell

    @classmethod
    def from_entries(
        cls,
        entries: Sequence[SpreadEntry],
        timestamp: int,
        *,
        mode: int = SPREAD_MODE_DEFAULT,
    ) -> SpreadMessage:
        """Build a spread message whose total is the sum of entry amounts.

        Raises:
            ValidationError: If there are no entries.
            CellOverflowError: If the list is too deep for an external message.
            EncodingError: If the total does not fit in uint64.
        """
        if not entries:
            raise ValidationError("spread needs at least one entry")
        if len(entries) > MAX_SPREAD_ENTRIES:
            raise CellOverflowError(
                f"spread supports at most {MAX_SPREAD_ENTRIES} entries, got {len(entries)}"
            )
        total = sum(entry.amount for entry in entries)
        if total > UINT64_MAX:
            raise EncodingError(f"spread total {total} does not fit in uint64")
        return cls(
            mode=mode,
            timestamp=timestamp,
            amount=total,
            data=build_spread_payload(entries),
        )

    def build(self) -> Cell:
        with building("spread message"):
            return (
                begin_cell()
                .store_uint(OPCODES.spread, 32)
                .store_uint(self.timestamp, 64)
                .store_uint(self.amount, 64)
                .store_uint(self.mode, 8)
                .store_maybe_ref(self.data)
                .end_cell()
            )

    @classmethod
    def parse(cls, cell: Cell) -> SpreadMessage:
        body = cell.begin_parse()
        with parsing("spread message"):
            op = body.load_uint(32)
            if op != OPCODES.spread:
                raise EncodingError(f"not a spread message: opcode 0x{op:08x}")
            timestamp = body.load_uint(64)
            amount = body.load_uint(64)
            mode = body.load_uint(8)
            data = body.load_maybe_ref()
        ensure_consumed(body, "spread message")
        return cls(mode=mode, timestamp=timestamp, amount=amount, data=data or Cell.empty())


# =========================================================================
# Collect
# =========================================================================


@dataclass(frozen=True)
class CollectMessage:
    """Reclaim funds from the mixer under a collect mode.

    ``jetton_wallet`` and ``amount`` (nano) are required for mode 3 and
    ignored for modes 0-2.
    """

    mode: int
    timestamp: int
    jetton_wallet: Address | None = None
    amount: int | None = None

    @classmethod
    def from_payload(
        cls,
        mode: int,
        timestamp: int,
        jetton_wallet: str | None = None,
        amount: float | int | str | Decimal | None = None,
    ) -> CollectMessage:
        """Validate a human-readable collect request.

        Raises:
            InvalidModeError: If ``mode`` is not a CollectMode.
            MissingJettonFieldsError: If mode 3 lacks a field.
            InvalidAddressError: If the mode 3 jetton wallet is malformed.
            ValidationError: If the mode 3 amount is invalid.
        """
        _check_mode(mode)
        if mode != CollectMode.GIVEN_JETTON_BALANCE:
            return cls(mode=mode, timestamp=timestamp)
        if jetton_wallet is None:
            raise MissingJettonFieldsError("in collection mode 3 field `jetton_wallet` is required")
        if amount is None:
            raise MissingJettonFieldsError("in collection mode 3 field `amount` is required")
        return cls(
            mode=mode,
            timestamp=timestamp,
            jetton_wallet=parse_address(jetton_wallet),
            amount=to_nano(amount),
        )

    def build(self) -> Cell:
        """Build the collect body.

        Raises:
            InvalidModeError: If ``mode`` is outside 0-3.
            MissingJettonFieldsError: If mode 3 lacks wallet or amount.
        """
        _check_mode(self.mode)
        with building("collect message"):
            builder = (
                begin_cell()
                .store_uint(OPCODES.collect, 32)
                .store_uint(self.timestamp, 64)
                .store_uint(self.mode, 8)
            )
            if self.mode != CollectMode.GIVEN_JETTON_BALANCE:
                log.debug("collect_to_contract_target", mode=self.mode)
                return builder.end_cell()
            if self.jetton_wallet is None or self.amount is None:
                raise MissingJettonFieldsError("jetton wallet and amount are required for mode 3")
            return builder.store_address(self.jetton_wallet).store_coins(self.amount).end_cell()

    @classmethod
    def parse(cls, cell: Cell) -> CollectMessage:
        body = cell.begin_parse()
        with parsing("collect message"):
            op = body.load_uint(32)
            if op != OPCODES.collect:
                raise EncodingError(f"not a collect message: opcode 0x{op:08x}")
            timestamp = body.load_uint(64)
            mode = body.load_uint(8)
            jetton_wallet = None
            amount = None
            if mode == CollectMode.GIVEN_JETTON_BALANCE:
                jetton_wallet = body.load_address()
                amount = body.load_coins()
        ensure_consumed(body, "collect message")
        return cls(mode=mode, timestamp=timestamp, jetton_wallet=jetton_wallet, amount=amount)


def _check_mode(mode: int) -> None:
    if isinstance(mode, bool) or mode not in set(CollectMode):
        raise InvalidModeError(f"invalid collect mode {mode!r}: expected one of 0, 1, 2, 3")
