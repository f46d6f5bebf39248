"""Wallet helpers for turning a persisted secret into a signing identity."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..config.settings import WalletConfig, get_app_config
from .errors import InvalidKeyFormat


@dataclass(slots=True, frozen=True)
class WalletIdentity:
    """Read-only wrapper around the deployer keypair."""

    keypair: Keypair
    address: str

    @property
    def public_key(self) -> Pubkey:
        return self.keypair.pubkey()

    @classmethod
    def from_keypair(cls, keypair: Keypair) -> "WalletIdentity":
        return cls(keypair=keypair, address=str(keypair.pubkey()))

    @classmethod
    def from_base58(cls, secret: str) -> "WalletIdentity":
        try:
            keypair = Keypair.from_bytes(base58.b58decode(secret.strip()))
        except Exception as exc:  # noqa: BLE001 - base58 and solders raise unrelated types
            raise InvalidKeyFormat("Invalid wallet private key. Must be base58 encoded.") from exc
        return cls.from_keypair(keypair)

    def __repr__(self) -> str:
        return f"WalletIdentity(address={self.address!r})"


def _read_keypair_file(path: Path) -> bytes:
    try:
        with path.expanduser().open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        raise InvalidKeyFormat(f"Unable to read keypair file {path}") from exc
    if not isinstance(data, list):
        raise InvalidKeyFormat(f"Keypair file {path} must contain a JSON array of bytes")
    try:
        return bytes(data)
    except (TypeError, ValueError) as exc:
        raise InvalidKeyFormat(f"Keypair file {path} contains non-byte values") from exc


def load_wallet(config: Optional[WalletConfig] = None) -> WalletIdentity:
    """Build the wallet identity from configuration.

    A base58 ``private_key`` takes precedence over ``keypair_path``. Raises
    :class:`InvalidKeyFormat` when neither is usable.
    """

    cfg = config or get_app_config().wallet
    if cfg.private_key:
        return WalletIdentity.from_base58(cfg.private_key)
    if cfg.keypair_path:
        secret_key = _read_keypair_file(Path(cfg.keypair_path))
        try:
            keypair = Keypair.from_bytes(secret_key)
        except Exception as exc:  # noqa: BLE001
            raise InvalidKeyFormat(f"Keypair file {cfg.keypair_path} is not a valid ed25519 keypair") from exc
        return WalletIdentity.from_keypair(keypair)
    raise InvalidKeyFormat("Wallet configuration error - set WALLET_PRIVATE_KEY or wallet.keypair_path")


__all__ = ["WalletIdentity", "load_wallet"]
