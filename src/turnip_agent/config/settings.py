"""Configuration management for the token launch agent."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.constants import (
    DEFAULT_DEV_BUY_SOL,
    DEFAULT_POOL,
    DEFAULT_SLIPPAGE_PCT,
    PRIORITY_FEE_SOL,
    PUMPPORTAL_API_URL,
    PUMP_FUN_URL,
)


DEFAULT_CONFIG_FILE = Path("config/app.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
NETWORK_ENV_VAR = "TURNIP_NETWORK"


class Network(str, Enum):
    """Solana clusters the agent can target."""

    MAINNET = "mainnet-beta"
    DEVNET = "devnet"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested = os.getenv(NETWORK_ENV_VAR)
    if not requested:
        rpc_section = base_section.get("rpc")
        if isinstance(rpc_section, dict):
            requested = cast(Optional[str], rpc_section.get("network"))
    requested = (requested or Network.MAINNET.value).lower()

    if requested in data and requested != "default":
        merged = _deep_merge(base_section, cast(Dict[str, Any], data[requested]))
        rpc_section = dict(merged.get("rpc") or {})
        rpc_section.setdefault("network", requested)
        merged["rpc"] = rpc_section
        return merged
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    return _select_profile(payload), path


def helius_rpc_url(network: Network, api_key: str) -> str:
    """Build the Helius RPC endpoint for ``network``."""

    host = "mainnet" if network == Network.MAINNET else "devnet"
    return f"https://{host}.helius-rpc.com/?api-key={api_key.strip()}"


class RPCConfig(BaseModel):
    """RPC configuration for the Solana node used to broadcast and confirm."""

    network: Network = Field(default=Network.MAINNET)
    primary_url: Optional[AnyHttpUrl] = None
    helius_api_key: Optional[str] = None
    request_timeout: float = Field(default=30.0, ge=1.0, le=120.0)
    commitment: str = Field(default="confirmed")

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _parse_request_timeout(cls, value):
        if isinstance(value, str):
            return float(value)
        return value

    @property
    def endpoint(self) -> str:
        if self.helius_api_key:
            return helius_rpc_url(self.network, self.helius_api_key)
        if self.primary_url is not None:
            return str(self.primary_url)
        if self.network == Network.DEVNET:
            return "https://api.devnet.solana.com"
        return "https://api.mainnet-beta.solana.com"


class PumpPortalConfig(BaseModel):
    """Endpoints and fixed request parameters for the PumpPortal API."""

    base_url: AnyHttpUrl = Field(default=PUMPPORTAL_API_URL)
    http_timeout: float = Field(default=30.0, ge=1.0, le=120.0)
    priority_fee: float = Field(default=PRIORITY_FEE_SOL, ge=0.0)
    pool: str = Field(default=DEFAULT_POOL)
    display_base_url: str = Field(default=PUMP_FUN_URL)

    @property
    def api_root(self) -> str:
        return str(self.base_url).rstrip("/")


class TradingConfig(BaseModel):
    """Defaults applied when a caller leaves trade parameters unset."""

    default_slippage: float = Field(default=DEFAULT_SLIPPAGE_PCT, ge=0.0)
    dev_buy_amount: float = Field(default=DEFAULT_DEV_BUY_SOL)


class BroadcastConfig(BaseModel):
    """Submission and confirmation behaviour."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=0.5, ge=0.0)
    max_delay_seconds: float = Field(default=4.0, ge=0.0)
    skip_preflight: bool = False
    node_max_retries: int = Field(default=3, ge=0)
    confirm_poll_seconds: float = Field(default=0.5, gt=0.0)


class WalletConfig(BaseModel):
    """Wallet and signer configuration."""

    private_key: Optional[str] = None
    keypair_path: Optional[Path] = None


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    rpc: RPCConfig = Field(default_factory=RPCConfig)
    pumpportal: PumpPortalConfig = Field(default_factory=PumpPortalConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    broadcast: BroadcastConfig = Field(default_factory=BroadcastConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    config_file: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, path = _load_toml_config()
            if path is not None:
                payload = {**payload, "config_file": path}
            return payload

        # Runtime environment variables win over static config file defaults.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _apply_flat_env_aliases(self) -> "AppConfig":
        if not self.wallet.private_key:
            key = os.getenv("WALLET_PRIVATE_KEY")
            if key:
                self.wallet.private_key = key.strip()
        if not self.rpc.helius_api_key:
            helius_key = os.getenv("HELIUS_API_KEY")
            if helius_key:
                self.rpc.helius_api_key = helius_key.strip()
        network = os.getenv(NETWORK_ENV_VAR)
        if network:
            self.rpc.network = Network(network.lower())
        return self


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "BroadcastConfig",
    "MonitoringConfig",
    "Network",
    "PumpPortalConfig",
    "RPCConfig",
    "TradingConfig",
    "WalletConfig",
    "get_app_config",
    "helius_rpc_url",
]
