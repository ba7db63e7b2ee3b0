"""
Environment configuration.

Loaded once at process start; everything else receives a Settings
instance. Entry points call ``load_environment()`` first so a local
``.env`` file fills in variables the process environment does not set.
Secrets stay in Settings and are never logged; the mnemonic and API key
are excluded from ``repr``.

Variables:
    PORT                    listening port (default 8080)
    WALLET_MNEMONIC         wallet mnemonic phrase (required)
    WALLET_ID               subwallet id (default 698983191)
    WALLET_WORKCHAIN        wallet workchain (default 0)
    MIXER_CONTRACT          mixer contract address (required)
    TONCENTER_URL           JSON-RPC endpoint (default testnet)
    TONCENTER_API_KEY       API key header, optional
    MIXER_REQUEST_TIMEOUT   seconds per network attempt (default 30)
    MIXER_MAX_RETRIES       extra attempts per network call (default 2)
    MIXER_RETRY_BASE_DELAY  first backoff in seconds (default 1.0)
    MIXER_CORS_ORIGINS      comma-separated allowed origins
    MIXER_WORKERS           server worker processes (default 1)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, Mapping, TypeVar

from dotenv import find_dotenv, load_dotenv
from pytoniq_core import Address

from ton_mixer.cells import parse_address
from ton_mixer.errors import ConfigError, InvalidAddressError
from ton_mixer.jsonrpc_client import DEFAULT_TONCENTER_URL
from ton_mixer.wallet import DEFAULT_WALLET_ID, DEFAULT_WORKCHAIN

T = TypeVar("T")

DEFAULT_PORT = 8080
DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://localhost:3001")


def load_environment(dotenv_path: str | os.PathLike[str] | None = None) -> bool:
    """Load a ``.env`` file into ``os.environ`` without overriding set variables.

    Without a path the file is searched for from the working directory
    upwards.

    Returns:
        True if a file was found and read.
    """
    if dotenv_path is None:
        dotenv_path = find_dotenv(usecwd=True)
    return load_dotenv(dotenv_path, override=False)


def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigError(f"environment variable {name} is required")
    return value


def _parsed(env: Mapping[str, str], name: str, default: T, parse: Callable[[str], T]) -> T:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return parse(raw)
    except ValueError as exc:
        raise ConfigError(f"environment variable {name} is malformed: {raw!r}") from exc


def _address(env: Mapping[str, str], name: str) -> Address:
    try:
        return parse_address(_required(env, name))
    except InvalidAddressError as exc:
        raise ConfigError(f"environment variable {name}: {exc.message}") from exc


@dataclass(frozen=True)
class Settings:
    """Static process configuration."""

    wallet_mnemonic: str = field(repr=False)
    mixer_contract: Address
    port: int = DEFAULT_PORT
    wallet_id: int = DEFAULT_WALLET_ID
    wallet_workchain: int = DEFAULT_WORKCHAIN
    toncenter_url: str = DEFAULT_TONCENTER_URL
    toncenter_api_key: str | None = field(default=None, repr=False)
    request_timeout: float = 30.0
    max_retries: int = 2
    retry_base_delay: float = 1.0
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    workers: int = 1

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Read settings from ``env`` (defaults to ``os.environ``).

        Raises:
            ConfigError: If a required variable is missing or malformed.
        """
        env = os.environ if env is None else env
        origins = env.get("MIXER_CORS_ORIGINS", "").strip()
        settings = cls(
            wallet_mnemonic=_required(env, "WALLET_MNEMONIC"),
            mixer_contract=_address(env, "MIXER_CONTRACT"),
            port=_parsed(env, "PORT", DEFAULT_PORT, int),
            wallet_id=_parsed(env, "WALLET_ID", DEFAULT_WALLET_ID, int),
            wallet_workchain=_parsed(env, "WALLET_WORKCHAIN", DEFAULT_WORKCHAIN, int),
            toncenter_url=env.get("TONCENTER_URL", "").strip() or DEFAULT_TONCENTER_URL,
            toncenter_api_key=env.get("TONCENTER_API_KEY", "").strip() or None,
            request_timeout=_parsed(env, "MIXER_REQUEST_TIMEOUT", 30.0, float),
            max_retries=_parsed(env, "MIXER_MAX_RETRIES", 2, int),
            retry_base_delay=_parsed(env, "MIXER_RETRY_BASE_DELAY", 1.0, float),
            cors_origins=(
                tuple(o.strip() for o in origins.split(",") if o.strip())
                if origins
                else DEFAULT_CORS_ORIGINS
            ),
            workers=_parsed(env, "MIXER_WORKERS", 1, int),
        )
        if not 0 < settings.port < 65536:
            raise ConfigError(f"PORT out of range: {settings.port}")
        if not 0 <= settings.wallet_id < 2**32:
            raise ConfigError(f"WALLET_ID out of uint32 range: {settings.wallet_id}")
        if settings.wallet_workchain not in (0, -1):
            raise ConfigError(f"WALLET_WORKCHAIN must be 0 or -1, got {settings.wallet_workchain}")
        if settings.request_timeout <= 0:
            raise ConfigError("MIXER_REQUEST_TIMEOUT must be positive")
        if settings.max_retries < 0:
            raise ConfigError("MIXER_MAX_RETRIES must be non-negative")
        if settings.workers < 1:
            raise ConfigError("MIXER_WORKERS must be at least 1")
        return settings
