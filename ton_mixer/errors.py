"""
Error taxonomy for the mixer service, plus ledger error classification.

Every failure the service can report derives from ``MixerError`` and
carries a machine-readable ``code``. The HTTP layer maps the families
below onto status codes; nothing below the HTTP layer knows about HTTP.

Families:
    - ValidationError: bad client input (address, mode, amount). 4xx.
    - EncodingError: payload cannot be laid out in cells. 4xx.
    - SigningError / SerializationError: envelope construction. 5xx.
    - TransportError: ledger node unreachable after retries. 5xx.

Ledger node replies are classified coarsely: most refusals map to
REJECTED, and unknown codes default to UNKNOWN rather than guessing.
"""

from __future__ import annotations

from enum import StrEnum

# =========================================================================
# Exception hierarchy
# =========================================================================


class MixerError(Exception):
    """Base class for all mixer failures."""

    code = "MIXER_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(MixerError):
    """Missing or malformed environment configuration."""

    code = "CONFIG_ERROR"


class ValidationError(MixerError):
    """Client input rejected before any cell is built."""

    code = "VALIDATION_ERROR"


class InvalidAddressError(ValidationError):
    """Account identifier could not be parsed."""

    code = "INVALID_ADDRESS"


class EncodingError(MixerError):
    """A value or payload cannot be encoded into cells."""

    code = "ENCODING_ERROR"


class CellOverflowError(EncodingError):
    """Bits, references or depth exceed a cell's structural limits."""

    code = "CELL_OVERFLOW"


class CellUnderflowError(EncodingError):
    """A read went past the end of a cell's data or references."""

    code = "CELL_UNDERFLOW"


class InvalidModeError(EncodingError, ValidationError):
    """Collect mode outside the supported set."""

    code = "INVALID_MODE"


class MissingJettonFieldsError(EncodingError, ValidationError):
    """Mode 3 collect without both jetton wallet and amount."""

    code = "MISSING_JETTON_FIELDS"


class SigningError(MixerError):
    """The wallet could not sign an external body."""

    code = "SIGNING_ERROR"


class SerializationError(MixerError):
    """A cell graph could not be serialized or parsed as a bag of cells."""

    code = "SERIALIZATION_ERROR"


class TransportError(MixerError):
    """The ledger node could not be reached within the retry budget."""

    code = "TRANSPORT_ERROR"


class SubmissionRejectedError(TransportError):
    """The ledger node answered but refused the message."""

    code = "SUBMISSION_REJECTED"

    def __init__(self, message: str, error_code: LedgerErrorCode | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code or LedgerErrorCode.UNKNOWN


class SequenceCollisionError(MixerError):
    """Two submissions for one wallet would share a sequence number."""

    code = "SEQNO_COLLISION"


# =========================================================================
# Ledger reply classification
# =========================================================================


class LedgerErrorCode(StrEnum):
    """Coarse categories for ledger node failures."""

    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    REJECTED = "REJECTED"
    UNKNOWN = "UNKNOWN"


# Node-side HTTP codes that mean "the node is there but won't take it".
_REJECTED_CODES = {400, 401, 403, 404, 405, 409, 422}

# Substrings in node error text that identify a refused message.
_REJECTED_MARKERS = (
    "exitcode",
    "cannot apply external message",
    "duplicate message",
    "invalid signature",
    "seqno",
    "failed to unpack",
)

_UNAVAILABLE_CODES = {502, 503, 504}


def classify_ledger_error(code: int | None, message: str | None) -> LedgerErrorCode:
    """Map a ledger node error reply to a LedgerErrorCode.

    Args:
        code: Numeric error code from the reply (HTTP-like). None when
            the reply carried no code.
        message: Error text from the reply. None when absent.

    Returns:
        LedgerErrorCode. UNKNOWN for anything not recognized.
    """
    text = (message or "").lower()
    if any(marker in text for marker in _REJECTED_MARKERS):
        return LedgerErrorCode.REJECTED
    if code is None:
        return LedgerErrorCode.UNKNOWN
    if code in _REJECTED_CODES:
        return LedgerErrorCode.REJECTED
    if code in _UNAVAILABLE_CODES:
        return LedgerErrorCode.BACKEND_UNAVAILABLE
    if code == 408:
        return LedgerErrorCode.TIMEOUT
    return LedgerErrorCode.UNKNOWN


def classify_connection_error(detail: str | None = None) -> LedgerErrorCode:
    """Classify a failure where the node never answered.

    Returns:
        Always BACKEND_UNAVAILABLE.
    """
    return LedgerErrorCode.BACKEND_UNAVAILABLE


def classify_timeout() -> LedgerErrorCode:
    """Classify a call that hit its timeout.

    Returns:
        Always TIMEOUT.
    """
    return LedgerErrorCode.TIMEOUT
