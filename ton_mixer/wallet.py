"""
Wallet protocol — the secrets boundary.

The envelope builder never sees private keys. It hands the wallet a
32-byte cell hash and gets a 64-byte Ed25519 signature back, plus the
public facts it needs to address the external message.

The service signs from a v4r2 wallet. Its address is not configured: it
is the hash of the wallet's StateInit, i.e. the v4r2 contract code plus
an initial data cell (seqno 0, subwallet id, public key, no plugins).
The same StateInit deploys the wallet with its first message.

Concrete implementations:
    - Ed25519Wallet (from a raw seed or a 24-word mnemonic)
    - FakeWallet (tests)

The wallet also exposes ``key_id`` for logs — the public key in hex,
never a secret.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from pytoniq_core import Address, Cell
from pytoniq_core.tlb.account import StateInit
from pytoniq_core.tlb.custom.wallet import WalletV4Data

from ton_mixer.errors import ConfigError

# Default subwallet id for v3/v4 wallets on workchain 0.
DEFAULT_WALLET_ID = 698983191

DEFAULT_WORKCHAIN = 0

# Wallet v4r2 contract code; its cell hash is
# feb5ff6820e2ff0d9483e7e0d62c817d846789fb4ae580c878866d959dabd5c0.
WALLET_V4R2_CODE = Cell.one_from_boc(
    "B5EE9C72410214010002D4000114FF00F4A413F4BCF2C80B010201200203020148040504F8F28308D71820D3"
    "1FD31FD31F02F823BBF264ED44D0D31FD31FD3FFF404D15143BAF2A15151BAF2A205F901541064F910F2A3F8"
    "0024A4C8CB1F5240CB1F5230CBFF5210F400C9ED54F80F01D30721C0009F6C519320D74A96D307D402FB00E8"
    "30E021C001E30021C002E30001C0039130E30D03A4C8CB1F12CB1FCBFF1011121302E6D001D0D3032171B092"
    "5F04E022D749C120925F04E002D31F218210706C7567BD22821064737472BDB0925F05E003FA403020FA4401"
    "C8CA07CBFFC9D0ED44D0810140D721F404305C810108F40A6FA131B3925F07E005D33FC8258210706C7567BA"
    "923830E30D03821064737472BA925F06E30D06070201200809007801FA00F40430F8276F2230500AA121BEF2"
    "E0508210706C7567831EB17080185004CB0526CF1658FA0219F400CB6917CB1F5260CB3F20C98040FB000600"
    "8A5004810108F45930ED44D0810140D720C801CF16F400C9ED540172B08E23821064737472831EB170801850"
    "05CB055003CF1623FA0213CB6ACB1FCB3FC98040FB00925F03E20201200A0B0059BD242B6F6A2684080A06B9"
    "0FA0218470D4080847A4937D29910CE6903E9FF9837812801B7810148987159F31840201580C0D0011B8C97E"
    "D44D0D70B1F8003DB29DFB513420405035C87D010C00B23281F2FFF274006040423D029BE84C600201200E0F"
    "0019ADCE76A26840206B90EB85FFC00019AF1DF6A26840106B90EB858FC0006ED207FA00D4D422F90005C8CA"
    "0715CBFFC9D077748018C8CB05CB0222CF165005FA0214CB6B12CCCCC973FB00C84014810108F451F2A70200"
    "70810108D718FA00D33FC8542047810108F451F2A782106E6F746570748018C8CB05CB025006CF165004FA02"
    "14CB6A12CB1FCB3FC973FB0002006C810108D718FA00D33F305224810108F459F2A782106473747270748018"
    "C8CB05CB025005CF165003FA0213CB6ACB1F12CB3FC973FB00000AF400C9ED54696225E5"
)


def wallet_v4r2_state_init(public_key: bytes, wallet_id: int = DEFAULT_WALLET_ID) -> Cell:
    """StateInit cell of a fresh v4r2 wallet owned by ``public_key``."""
    data = WalletV4Data(seqno=0, wallet_id=wallet_id, public_key=public_key).serialize()
    return StateInit(code=WALLET_V4R2_CODE, data=data).serialize()


def wallet_v4r2_address(
    public_key: bytes,
    wallet_id: int = DEFAULT_WALLET_ID,
    workchain: int = DEFAULT_WORKCHAIN,
) -> Address:
    return Address((workchain, wallet_v4r2_state_init(public_key, wallet_id).hash))


@runtime_checkable
class WalletSigner(Protocol):
    """Interface for the wallet that signs external messages.

    Properties:
        address: On-chain address of the wallet contract.
        wallet_id: Subwallet id stored in every external body.
        public_key: 32-byte Ed25519 public key.
        key_id: Public identifier (hex public key), safe for logging.
        state_init: StateInit cell that deploys the wallet, or None.
    """

    @property
    def address(self) -> Address:
        ...

    @property
    def wallet_id(self) -> int:
        ...

    @property
    def public_key(self) -> bytes:
        ...

    @property
    def key_id(self) -> str:
        ...

    @property
    def state_init(self) -> Cell | None:
        ...

    def sign(self, message: bytes) -> bytes:
        """Sign ``message`` and return a 64-byte signature.

        Raises:
            Exception: Any failure; the envelope builder wraps it in
                SigningError.
        """
        ...


class Ed25519Wallet:
    """v4r2 wallet backed by an in-process Ed25519 key.

    Args:
        private_key: The signing key.
        wallet_id: Subwallet id. Defaults to DEFAULT_WALLET_ID.
        workchain: Workchain the wallet lives in.
    """

    def __init__(
        self,
        private_key: Ed25519PrivateKey,
        *,
        wallet_id: int = DEFAULT_WALLET_ID,
        workchain: int = DEFAULT_WORKCHAIN,
    ) -> None:
        self._private_key = private_key
        self._public_key = private_key.public_key().public_bytes(
            Encoding.Raw, PublicFormat.Raw
        )
        self._wallet_id = wallet_id
        self._state_init = wallet_v4r2_state_init(self._public_key, wallet_id)
        self._address = Address((workchain, self._state_init.hash))

    @classmethod
    def from_seed(
        cls,
        seed: bytes,
        *,
        wallet_id: int = DEFAULT_WALLET_ID,
        workchain: int = DEFAULT_WORKCHAIN,
    ) -> Ed25519Wallet:
        """Build a wallet from a 32-byte Ed25519 seed."""
        if len(seed) != 32:
            raise ConfigError(f"wallet seed must be 32 bytes, got {len(seed)}")
        return cls(
            Ed25519PrivateKey.from_private_bytes(seed),
            wallet_id=wallet_id,
            workchain=workchain,
        )

    @classmethod
    def from_mnemonic(
        cls,
        mnemonic: str,
        *,
        wallet_id: int = DEFAULT_WALLET_ID,
        workchain: int = DEFAULT_WORKCHAIN,
    ) -> Ed25519Wallet:
        """Derive the key from a wallet mnemonic phrase.

        Raises:
            ConfigError: If the phrase cannot be turned into a key.
        """
        words = mnemonic.split()
        if not words:
            raise ConfigError("wallet mnemonic is empty")

        from pytoniq_core.crypto.keys import mnemonic_to_private_key

        try:
            _, private_key = mnemonic_to_private_key(words)
        except Exception as exc:
            raise ConfigError(f"wallet mnemonic rejected: {type(exc).__name__}") from exc
        # The secret key is seed || public key; the seed is the first half.
        return cls.from_seed(
            bytes(private_key[:32]),
            wallet_id=wallet_id,
            workchain=workchain,
        )

    @property
    def address(self) -> Address:
        return self._address

    @property
    def wallet_id(self) -> int:
        return self._wallet_id

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def key_id(self) -> str:
        return self._public_key.hex()

    @property
    def state_init(self) -> Cell:
        return self._state_init

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)
