"""
Request and response models for the HTTP surface.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class ResponseStatus(StrEnum):
    ERROR = "error"


class ResponseEnvelope(BaseModel):
    """``{status, message}`` body returned for every failed request."""

    status: ResponseStatus
    message: Any

    @classmethod
    def error(cls, message: Any) -> ResponseEnvelope:
        return cls(status=ResponseStatus.ERROR, message=message)


class SpreadWalletPayload(BaseModel):
    """One spread recipient; ``amount`` in whole currency units."""

    account: str
    amount: float


class CollectPayload(BaseModel):
    """Collect request; jetton fields are only read for mode 3."""

    mode: int
    jetton_wallet: str | None = None
    amount: float | None = None


class TxHashResponse(BaseModel):
    hex: str
    base64: str


class OpcodesResponse(BaseModel):
    spread: int
    collect: int
    fork: int


class CollectModesResponse(BaseModel):
    current_message_ton_balance: int
    all_ton_balance: int
    available_ton_balance: int
    given_jetton_balance: int
