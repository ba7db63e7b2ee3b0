"""
ton_mixer — HTTP gateway that signs and submits mixer contract messages.

The package is layered bottom-up:
    cells                  pytoniq-core error boundary (cells, addresses, BoC)
    opcodes / messages     mixer payload encoders
    wallet / envelope      v4r2 wallet, signing and the external message wrapper
    client / transport / jsonrpc_client   ledger network boundary
    gateway                seqno sequencing, retries, orchestration
    api                    FastAPI surface
"""

from ton_mixer.cells import parse_address
from ton_mixer.errors import MixerError
from ton_mixer.gateway import LedgerGateway, RetryPolicy, TxHash, WalletSequencer
from ton_mixer.messages import CollectMessage, ForkMessage, SpreadEntry, SpreadMessage
from ton_mixer.opcodes import OPCODES, CollectMode, opcode
from ton_mixer.wallet import Ed25519Wallet

__version__ = "0.1.0"

__all__ = [
    "CollectMessage",
    "CollectMode",
    "Ed25519Wallet",
    "ForkMessage",
    "LedgerGateway",
    "MixerError",
    "OPCODES",
    "RetryPolicy",
    "SpreadEntry",
    "SpreadMessage",
    "TxHash",
    "WalletSequencer",
    "__version__",
    "opcode",
    "parse_address",
]
