"""
Signed external envelope construction.

Wraps a payload cell into the message a wallet contract accepts from
outside the chain:

    1. transfer     internal message: wallet → destination, value, ^payload
    2. body         wallet_id:uint32 valid_until:uint32 seqno:uint32 op:uint8
                    (send_mode:uint8 ^transfer)
    3. signed body  signature:bits512 followed by the body's bits and refs
                    (signature = Ed25519 over the body's representation hash)
    4. external     ext_in_msg_info$10 src:addr_none dest:wallet import_fee:0
                    init:(Maybe ^StateInit) body:^signed
    5. bytes        bag of cells with CRC-32C

The wallet StateInit rides along only while the wallet is undeployed,
which is when its sequence number is still 0.

valid_until is ``now + EXPIRY_SECONDS``; together with the seqno it makes
the envelope replay-safe. Envelopes are built fresh for every request and
are never cached.

Failures are typed and never swallowed: signing raises SigningError,
serialization raises SerializationError, layout problems raise
EncodingError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from pytoniq_core import Address, Cell, begin_cell

from ton_mixer.cells import building, from_boc, parsing, to_boc
from ton_mixer.errors import EncodingError, SigningError
from ton_mixer.wallet import WalletSigner

EXPIRY_SECONDS = 60

# Pay transfer fees separately from the value, ignore action errors.
SEND_MODE_DEFAULT = 3

# v4 wallets: op 0 is a plain transfer.
WALLET_OP_TRANSFER = 0

SIGNATURE_BYTES = 64


# =========================================================================
# Building blocks
# =========================================================================


def build_transfer(
    destination: Address,
    value: int,
    body: Cell | None = None,
    *,
    bounce: bool = True,
) -> Cell:
    """Build the internal transfer message (int_msg_info$0)."""
    with building("transfer message"):
        return (
            begin_cell()
            .store_bit(0)               # int_msg_info$0
            .store_bit(1)               # ihr_disabled
            .store_bit(bool(bounce))
            .store_bit(0)               # bounced
            .store_address(None)        # src, filled in by the wallet
            .store_address(destination)
            .store_coins(value)
            .store_bit(0)               # no extra currencies
            .store_coins(0)             # ihr_fee
            .store_coins(0)             # fwd_fee
            .store_uint(0, 64)          # created_lt
            .store_uint(0, 32)          # created_at
            .store_bit(0)               # no state_init
            .store_maybe_ref(body)
            .end_cell()
        )


def build_external_body(
    wallet_id: int,
    seqno: int,
    valid_until: int,
    messages: Sequence[Cell],
    *,
    send_mode: int = SEND_MODE_DEFAULT,
) -> Cell:
    """Build the unsigned wallet body carrying up to four messages."""
    if not 1 <= len(messages) <= 4:
        raise EncodingError(f"a wallet body carries 1-4 messages, got {len(messages)}")
    with building("wallet body"):
        builder = (
            begin_cell()
            .store_uint(wallet_id, 32)
            .store_uint(valid_until, 32)
            .store_uint(seqno, 32)
            .store_uint(WALLET_OP_TRANSFER, 8)
        )
        for message in messages:
            builder.store_uint(send_mode, 8).store_ref(message)
        return builder.end_cell()


def sign_external_body(wallet: WalletSigner, body: Cell) -> Cell:
    """Prefix ``body`` with the wallet's signature over its hash.

    Raises:
        SigningError: If the wallet fails or returns a malformed signature.
    """
    try:
        signature = wallet.sign(body.hash)
    except Exception as exc:
        raise SigningError(f"wallet {wallet.key_id[:16]} failed to sign: {exc}") from exc
    if len(signature) != SIGNATURE_BYTES:
        raise SigningError(
            f"signature must be {SIGNATURE_BYTES} bytes, got {len(signature)}"
        )
    with building("signed wallet body"):
        return begin_cell().store_bytes(signature).store_cell(body).end_cell()


def wrap_signed_body(
    wallet_address: Address,
    signed_body: Cell,
    state_init: Cell | None = None,
) -> Cell:
    """Wrap a signed body into an inbound external message."""
    with building("external message"):
        builder = (
            begin_cell()
            .store_uint(0b10, 2)        # ext_in_msg_info$10
            .store_address(None)        # src
            .store_address(wallet_address)
            .store_coins(0)             # import_fee
        )
        if state_init is None:
            builder.store_bit(0)
        else:
            builder.store_bit(1).store_bit(1).store_ref(state_init)
        return builder.store_bit(1).store_ref(signed_body).end_cell()


# =========================================================================
# Envelope
# =========================================================================


def create_external_signed_message(
    wallet: WalletSigner,
    seqno: int,
    destination: Address,
    value: int,
    now: int,
    payload: Cell,
    *,
    bounce: bool = True,
) -> bytes:
    """Build the serialized, signed envelope for one payload.

    Args:
        wallet: Signing wallet (also the external message destination).
        seqno: The wallet's next sequence number. At 0 the wallet's
            StateInit is attached so the first message deploys it.
        destination: Contract that receives the transfer.
        value: Nano amount attached to the transfer.
        now: Unix time of construction; expiry is ``now + 60``.
        payload: Message body for the destination contract.
        bounce: Bounce flag of the transfer.

    Returns:
        Bag-of-cells bytes, ready for submission.

    Raises:
        EncodingError: If a field does not fit its layout.
        SigningError: If signing fails.
        SerializationError: If the cell graph cannot be serialized.
    """
    transfer = build_transfer(destination, value, payload, bounce=bounce)
    body = build_external_body(
        wallet.wallet_id, seqno, now + EXPIRY_SECONDS, [transfer]
    )
    signed = sign_external_body(wallet, body)
    state_init = wallet.state_init if seqno == 0 else None
    external = wrap_signed_body(wallet.address, signed, state_init)
    return to_boc(external)


# =========================================================================
# Inspection
# =========================================================================


@dataclass(frozen=True)
class EnvelopeView:
    """Decoded fields of a single-transfer external envelope.

    Attributes:
        wallet_address: Destination of the external message (the wallet).
        wallet_id: Subwallet id.
        valid_until: Expiry as Unix time.
        seqno: Sequence number.
        send_mode: Send mode of the transfer.
        destination: Transfer destination (the contract).
        value: Nano value attached to the transfer.
        bounce: Transfer bounce flag.
        payload: Transfer body, or None.
        signature: 64-byte signature.
        signed_hash: Hash of the unsigned body the signature covers.
        state_init: Attached StateInit, or None.
        depth: Depth of the external message's cell tree.
    """

    wallet_address: Address
    wallet_id: int
    valid_until: int
    seqno: int
    send_mode: int
    destination: Address
    value: int
    bounce: bool
    payload: Cell | None
    signature: bytes
    signed_hash: bytes
    state_init: Cell | None
    depth: int


def decode_external_message(data: bytes) -> EnvelopeView:
    """Parse an envelope produced by ``create_external_signed_message``.

    Raises:
        SerializationError: If the bytes are not a bag of cells.
        EncodingError: If the cells do not have the envelope layout.
    """
    roots = from_boc(data)
    if len(roots) != 1:
        raise EncodingError(f"envelope must have one root, got {len(roots)}")
    root = roots[0]

    external = root.begin_parse()
    with parsing("external message"):
        if external.load_uint(2) != 0b10:
            raise EncodingError("not an inbound external message")
        external.load_address()
        wallet_address = external.load_address()
        if not isinstance(wallet_address, Address):
            raise EncodingError("external message has no destination")
        external.load_coins()
        state_init = None
        if external.load_bit():
            if not external.load_bit():
                raise EncodingError("inline StateInit is not supported")
            state_init = external.load_ref()
        if not external.load_bit():
            raise EncodingError("inline external body is not supported")
        signed = external.load_ref()

    body = signed.begin_parse()
    with parsing("signed wallet body"):
        signature = body.load_bytes(SIGNATURE_BYTES)
        unsigned = begin_cell().store_slice(body).end_cell()
        wallet_id = body.load_uint(32)
        valid_until = body.load_uint(32)
        seqno = body.load_uint(32)
        body.load_uint(8)
        send_mode = body.load_uint(8)
        transfer = body.load_ref().begin_parse()

    with parsing("transfer message"):
        if transfer.load_bit():
            raise EncodingError("transfer is not an internal message")
        transfer.load_bit()
        bounce = transfer.load_bool()
        transfer.load_bit()
        transfer.load_address()
        destination = transfer.load_address()
        if not isinstance(destination, Address):
            raise EncodingError("transfer has no destination")
        value = transfer.load_coins()
        transfer.load_bit()
        transfer.load_coins()
        transfer.load_coins()
        transfer.load_uint(64)
        transfer.load_uint(32)
        if transfer.load_bit():
            raise EncodingError("transfer StateInit is not supported")
        payload = transfer.load_maybe_ref()

    return EnvelopeView(
        wallet_address=wallet_address,
        wallet_id=wallet_id,
        valid_until=valid_until,
        seqno=seqno,
        send_mode=send_mode,
        destination=destination,
        value=value,
        bounce=bounce,
        payload=payload,
        signature=signature,
        signed_hash=unsigned.hash,
        state_init=state_init,
        depth=root.get_depth(),
    )
