"""
Error boundary around pytoniq-core's cells, addresses and bags of cells.

Cells are built with ``begin_cell()...end_cell()`` and read with
``Cell.begin_parse()``; this module only turns the library's exceptions
into the service's error taxonomy:

    bit overflow / cell depth      → CellOverflowError
    integer out of range           → EncodingError
    reading past the end of a cell → CellUnderflowError
    malformed address text         → InvalidAddressError
    malformed bag of cells         → SerializationError
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from pytoniq_core import Address, AddressError, Cell, CellError, Slice
from pytoniq_core.boc.deserialize import BocError
from pytoniq_core.boc.slice import SliceError
from pytoniq_core.boc.tvm_bitarray import (
    TvmBitarrayOverflowException,
    TvmBitarrayUnderflowException,
)

from ton_mixer.errors import (
    CellOverflowError,
    CellUnderflowError,
    EncodingError,
    InvalidAddressError,
    SerializationError,
)

ADDRESS_HASH_BYTES = 32


def parse_address(text: str) -> Address:
    """Parse a raw (``wc:hex``) or friendly (base64/base64url) address.

    Raises:
        InvalidAddressError: If the text is not a well-formed address.
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidAddressError("address must be a non-empty string")
    text = text.strip()
    try:
        address = Address(text)
    except (AddressError, ValueError, IndexError) as exc:
        raise InvalidAddressError(f"invalid address {text!r}: {exc}") from exc
    if len(address.hash_part) != ADDRESS_HASH_BYTES:
        raise InvalidAddressError(
            f"address hash must be {ADDRESS_HASH_BYTES} bytes, got {len(address.hash_part)}: {text!r}"
        )
    if not -128 <= address.wc <= 127:
        raise InvalidAddressError(f"workchain out of int8 range: {address.wc}")
    return address


def raw_address(address: Address) -> str:
    return address.to_str(is_user_friendly=False)


@contextmanager
def building(what: str) -> Iterator[None]:
    """Map builder failures while laying out ``what``."""
    try:
        yield
    except (TvmBitarrayOverflowException, CellError) as exc:
        raise CellOverflowError(f"{what} does not fit in a cell: {exc}") from exc
    except OverflowError as exc:
        raise EncodingError(f"{what}: value out of range: {exc}") from exc


@contextmanager
def parsing(what: str) -> Iterator[None]:
    """Map reader failures while decoding ``what``."""
    try:
        yield
    except (TvmBitarrayUnderflowException, IndexError) as exc:
        raise CellUnderflowError(f"{what} is truncated") from exc
    except (SliceError, ValueError) as exc:
        raise EncodingError(f"{what} is malformed: {exc}") from exc


def ensure_consumed(body: Slice, what: str) -> None:
    if body.remaining_bits or body.remaining_refs:
        raise EncodingError(
            f"{what} has {body.remaining_bits} trailing bits and "
            f"{body.remaining_refs} trailing refs"
        )


def to_boc(cell: Cell) -> bytes:
    """Serialize a cell graph as a bag of cells with a CRC-32C trailer."""
    try:
        return cell.to_boc(hash_crc32=True)
    except Exception as exc:
        raise SerializationError(f"failed to serialize cell: {exc}") from exc


def from_boc(data: bytes) -> list[Cell]:
    """Deserialize the root cells of a bag of cells.

    Raises:
        SerializationError: If the bytes are not a valid bag of cells.
    """
    if not isinstance(data, (bytes, bytearray)):
        raise SerializationError(f"bag of cells must be bytes, got {type(data).__name__}")
    try:
        return Cell.from_boc(bytes(data))
    except BocError as exc:
        raise SerializationError(f"invalid bag of cells: {exc}") from exc
    except Exception as exc:
        raise SerializationError(f"unreadable bag of cells: {exc}") from exc
