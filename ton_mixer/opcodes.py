"""
Operation codes and collect modes for the mixer contract.

An opcode is the CRC-32 (zlib polynomial) of the operation name, read as
an unsigned 32-bit integer. The contract computes the same value from the
same names, so these are part of the wire protocol and must never change.
"""

from __future__ import annotations

import zlib
from dataclasses import dataclass
from enum import IntEnum

OP_SPREAD = "op::spread"
OP_COLLECT = "op::collect"
OP_FORK = "op::fork"


def opcode(name: str) -> int:
    """Derive the 32-bit opcode for an operation name."""
    return zlib.crc32(name.encode("utf-8")) & 0xFFFFFFFF


@dataclass(frozen=True)
class MixerOpcodes:
    """The three opcodes the mixer contract dispatches on."""

    spread: int
    collect: int
    fork: int

    @classmethod
    def default(cls) -> MixerOpcodes:
        return cls(
            spread=opcode(OP_SPREAD),
            collect=opcode(OP_COLLECT),
            fork=opcode(OP_FORK),
        )

    def to_dict(self) -> dict[str, int]:
        return {"spread": self.spread, "collect": self.collect, "fork": self.fork}


OPCODES = MixerOpcodes.default()


class CollectMode(IntEnum):
    """Fund-disposition policy for a collect operation.

    Modes 0-2 send TON to the target address stored in the contract.
    Mode 3 sends a given jetton amount and needs the jetton wallet.
    """

    CURRENT_MESSAGE_TON_BALANCE = 0
    ALL_TON_BALANCE = 1
    AVAILABLE_TON_BALANCE = 2
    GIVEN_JETTON_BALANCE = 3


def collect_modes() -> dict[str, int]:
    """Name → value table for every collect mode, lowercase names."""
    return {mode.name.lower(): mode.value for mode in CollectMode}
