"""Data models passed between pipeline stages and returned to callers."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class TradeAction(str, Enum):
    """Actions understood by the PumpPortal trade-local endpoint."""

    CREATE = "create"
    BUY = "buy"
    SELL = "sell"


@dataclass(slots=True, frozen=True)
class TokenMetadata:
    """Metadata for a single deployment attempt.

    ``image`` may be raw bytes or a base64 string; :meth:`image_bytes`
    normalizes both.
    """

    name: str
    symbol: str
    description: str
    image: Union[bytes, str]
    twitter: Optional[str] = None
    telegram: Optional[str] = None
    website: Optional[str] = None

    def image_bytes(self) -> bytes:
        if isinstance(self.image, (bytes, bytearray)):
            return bytes(self.image)
        # Line-wrapped (RFC 2045) and newline-terminated encodings are accepted.
        compact = "".join(self.image.split())
        try:
            return base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Token image is neither raw bytes nor valid base64") from exc

    def social_links(self) -> Dict[str, str]:
        links = {"twitter": self.twitter, "telegram": self.telegram, "website": self.website}
        return {key: value for key, value in links.items() if value}


@dataclass(slots=True, frozen=True)
class UnsignedTransactionEnvelope:
    """Base64 transaction returned by the trade API, not yet signed."""

    action: TradeAction
    payload: str


@dataclass(slots=True)
class SignedTransaction:
    """Serialized transaction ready for a single broadcast call."""

    action: TradeAction
    raw: bytes
    signature: str
    broadcast_attempted: bool = False


class IpfsUploadResponse(BaseModel):
    """Response body of ``POST /ipfs``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    metadata_uri: Optional[str] = Field(default=None, alias="metadataUri")


def _check_closed(success: bool, error: Optional[str], required: Dict[str, Any], optional: Dict[str, Any]) -> None:
    if success:
        missing = [name for name, value in required.items() if not value]
        if missing or error is not None:
            raise ValueError(f"Success result requires {', '.join(required)} and no error")
    else:
        populated = [name for name, value in {**required, **optional}.items() if value is not None]
        if not error or populated:
            raise ValueError("Failure result carries an error message only")


@dataclass(slots=True, frozen=True)
class DeploymentResult:
    """Outcome of a token creation pipeline."""

    success: bool
    mint: Optional[str] = None
    signature: Optional[str] = None
    metadata_uri: Optional[str] = None
    pump_url: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        _check_closed(
            self.success,
            self.error,
            {"mint": self.mint, "signature": self.signature, "pump_url": self.pump_url},
            {"metadata_uri": self.metadata_uri},
        )

    @classmethod
    def succeeded(cls, *, mint: str, signature: str, pump_url: str, metadata_uri: Optional[str] = None) -> "DeploymentResult":
        return cls(True, mint=mint, signature=signature, metadata_uri=metadata_uri, pump_url=pump_url)

    @classmethod
    def failed(cls, error: str) -> "DeploymentResult":
        return cls(False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "success": self.success,
            "mint": self.mint,
            "signature": self.signature,
            "metadataUri": self.metadata_uri,
            "pumpUrl": self.pump_url,
            "error": self.error,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(slots=True, frozen=True)
class TradeResult:
    """Outcome of a buy or sell pipeline."""

    success: bool
    action: Optional[TradeAction] = None
    mint: Optional[str] = None
    signature: Optional[str] = None
    pump_url: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        _check_closed(
            self.success,
            self.error,
            {"mint": self.mint, "signature": self.signature, "pump_url": self.pump_url},
            {},
        )

    @classmethod
    def succeeded(cls, *, action: TradeAction, mint: str, signature: str, pump_url: str) -> "TradeResult":
        return cls(True, action=action, mint=mint, signature=signature, pump_url=pump_url)

    @classmethod
    def failed(cls, error: str, action: Optional[TradeAction] = None) -> "TradeResult":
        return cls(False, action=action, error=error)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "success": self.success,
            "mint": self.mint,
            "signature": self.signature,
            "pumpUrl": self.pump_url,
            "error": self.error,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(slots=True, frozen=True)
class GeneratedImage:
    """Image produced by the generation collaborator."""

    base64: str
    prompt: str
    url: str = ""
    revised_prompt: Optional[str] = None
    file_path: Optional[str] = None


@dataclass(slots=True)
class LaunchOptions:
    """Inputs of the combined generate-then-deploy flow."""

    prompt: str
    name: str
    ticker: str
    description: Optional[str] = None
    twitter: Optional[str] = None
    telegram: Optional[str] = None
    website: Optional[str] = None
    dev_buy_amount: Optional[float] = None
    slippage: Optional[float] = None
    generate_options: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class LaunchedToken:
    mint: str
    name: str
    ticker: str
    signature: str
    pump_url: str
    metadata_uri: Optional[str] = None


@dataclass(slots=True, frozen=True)
class LaunchResult:
    """Outcome of :meth:`TurnipAgent.launch`.

    ``image`` is populated whenever generation succeeded, including when the
    deployment afterwards failed, so the caller can retry without paying for
    a new image.
    """

    success: bool
    image: Optional[GeneratedImage] = None
    token: Optional[LaunchedToken] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.success and (self.token is None or self.image is None or self.error is not None):
            raise ValueError("Successful launch requires image and token and no error")
        if not self.success and (self.token is not None or not self.error):
            raise ValueError("Failed launch carries an error and no token")


__all__ = [
    "DeploymentResult",
    "GeneratedImage",
    "IpfsUploadResponse",
    "LaunchOptions",
    "LaunchResult",
    "LaunchedToken",
    "SignedTransaction",
    "TokenMetadata",
    "TradeAction",
    "TradeResult",
    "UnsignedTransactionEnvelope",
]
