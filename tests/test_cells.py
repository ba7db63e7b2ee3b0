"""
Tests for the pytoniq-core error boundary.

Test plan:
- Raw and friendly addresses parse to the same account
- Bounceable and non-bounceable forms compare equal
- Bad checksum, short hash, bad workchain and garbage are rejected
- Builder overflow / out-of-range integers map to the service errors
- Reading past the end of a cell maps to CellUnderflowError
- Garbage bytes are rejected as a bag of cells
"""

import pytest
from pytoniq_core import begin_cell

from ton_mixer.cells import (
    building,
    ensure_consumed,
    from_boc,
    parse_address,
    parsing,
    raw_address,
    to_boc,
)
from ton_mixer.errors import (
    CellOverflowError,
    CellUnderflowError,
    EncodingError,
    InvalidAddressError,
    SerializationError,
    ValidationError,
)

RAW = "0:83dfd552e63729b472fcbcc8c45ebcc6691702558b68ec7527e1ba403a0f31a8"
FRIENDLY = "EQCD39VS5jcptHL8vMjEXrzGaRcCVYto7HUn4bpAOg8xqB2N"


class TestParseAddress:
    def test_raw(self) -> None:
        addr = parse_address(RAW)
        assert addr.wc == 0
        assert addr.hash_part.hex() == RAW.split(":")[1]
        assert raw_address(addr) == RAW

    def test_raw_masterchain(self) -> None:
        addr = parse_address("-1:" + "ab" * 32)
        assert addr.wc == -1
        assert raw_address(addr) == "-1:" + "ab" * 32

    def test_friendly_known_vector(self) -> None:
        addr = parse_address(FRIENDLY)
        assert raw_address(addr) == RAW
        assert addr.to_str() == FRIENDLY

    def test_surrounding_whitespace(self) -> None:
        assert parse_address(f"  {RAW}\n") == parse_address(RAW)

    def test_presentation_flags_do_not_affect_equality(self) -> None:
        addr = parse_address(RAW)
        non_bounceable = addr.to_str(is_bounceable=False)
        assert non_bounceable != FRIENDLY
        assert parse_address(non_bounceable) == addr

    def test_bad_checksum(self) -> None:
        broken = FRIENDLY[:-2] + ("AA" if FRIENDLY[-2:] != "AA" else "BB")
        with pytest.raises(InvalidAddressError):
            parse_address(broken)

    @pytest.mark.parametrize(
        "text",
        ["", "   ", "hello", "0:" + "zz" * 32, FRIENDLY[:-1], "!" * 48],
    )
    def test_malformed(self, text: str) -> None:
        with pytest.raises(InvalidAddressError):
            parse_address(text)

    def test_short_hash(self) -> None:
        with pytest.raises(InvalidAddressError, match="32 bytes"):
            parse_address("0:1234")

    def test_workchain_range(self) -> None:
        with pytest.raises(InvalidAddressError, match="workchain"):
            parse_address("200:" + "00" * 32)

    def test_not_a_string(self) -> None:
        with pytest.raises(InvalidAddressError):
            parse_address(None)  # type: ignore[arg-type]

    def test_is_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            parse_address("nope")


class TestBuilding:
    def test_bit_overflow(self) -> None:
        with pytest.raises(CellOverflowError, match="payload"):
            with building("payload"):
                begin_cell().store_bytes(b"\x00" * 128).end_cell()

    def test_value_out_of_range(self) -> None:
        with pytest.raises(EncodingError, match="seqno"):
            with building("seqno"):
                begin_cell().store_uint(2**32, 32)

    def test_unrelated_errors_pass_through(self) -> None:
        with pytest.raises(KeyError):
            with building("payload"):
                raise KeyError("x")


class TestParsing:
    def test_underflow(self) -> None:
        body = begin_cell().store_uint(7, 8).end_cell().begin_parse()
        with pytest.raises(CellUnderflowError, match="header"):
            with parsing("header"):
                body.load_uint(32)

    def test_missing_ref(self) -> None:
        body = begin_cell().store_uint(7, 8).end_cell().begin_parse()
        with pytest.raises(CellUnderflowError):
            with parsing("payload"):
                body.load_ref()

    def test_trailing_data(self) -> None:
        body = begin_cell().store_uint(7, 16).end_cell().begin_parse()
        body.load_uint(8)
        with pytest.raises(EncodingError, match="trailing"):
            ensure_consumed(body, "message")

    def test_fully_consumed(self) -> None:
        body = begin_cell().store_uint(7, 8).end_cell().begin_parse()
        body.load_uint(8)
        ensure_consumed(body, "message")


class TestBagOfCells:
    def test_roundtrip_keeps_hash(self) -> None:
        leaf = begin_cell().store_uint(1, 1).end_cell()
        cell = begin_cell().store_uint(0xDEADBEEF, 32).store_ref(leaf).end_cell()
        (root,) = from_boc(to_boc(cell))
        assert root.hash == cell.hash

    def test_garbage(self) -> None:
        with pytest.raises(SerializationError):
            from_boc(b"\x00\x01\x02\x03")

    def test_not_bytes(self) -> None:
        with pytest.raises(SerializationError):
            from_boc("b5ee9c72")  # type: ignore[arg-type]
