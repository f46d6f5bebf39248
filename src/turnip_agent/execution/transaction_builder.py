"""Requests unsigned pump.fun transactions from the PumpPortal trade API."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..config.settings import PumpPortalConfig, get_app_config
from ..models.schemas import TradeAction, UnsignedTransactionEnvelope
from ..monitoring.logger import get_logger
from ..utils.constants import DEFAULT_DEV_BUY_SOL, DEFAULT_SLIPPAGE_PCT
from .errors import RemoteBuildFailure

NO_RESPONSE_MESSAGE = "No response from PumpPortal API"


def _default(value: Optional[float], fallback: float) -> float:
    # Only an unset value falls back; an explicit 0 is a real request.
    return fallback if value is None else value


class TransactionRequestBuilder:
    """Builds ``trade-local`` requests for create, buy and sell actions.

    Amounts are forwarded as given. PumpPortal and the on-chain program
    decide whether they are valid.
    """

    def __init__(
        self,
        config: Optional[PumpPortalConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config or get_app_config().pumpportal
        self._client = client or httpx.AsyncClient(timeout=self._config.http_timeout)
        self._owns_client = client is None
        self._logger = get_logger(__name__)

    def build_payload(
        self,
        owner: str,
        action: TradeAction,
        *,
        mint: str,
        amount: Optional[float] = None,
        slippage: Optional[float] = None,
        name: Optional[str] = None,
        symbol: Optional[str] = None,
        metadata_uri: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "publicKey": owner,
            "action": action.value,
            "mint": mint,
            "denominatedInSol": "false" if action == TradeAction.SELL else "true",
            "amount": _default(amount, DEFAULT_DEV_BUY_SOL),
            "slippage": _default(slippage, DEFAULT_SLIPPAGE_PCT),
            "priorityFee": self._config.priority_fee,
            "pool": self._config.pool,
        }
        if action == TradeAction.CREATE:
            payload["tokenMetadata"] = {"name": name, "symbol": symbol, "uri": metadata_uri}
        return payload

    async def request(self, payload: Dict[str, Any]) -> UnsignedTransactionEnvelope:
        action = TradeAction(payload["action"])
        url = f"{self._config.api_root}/trade-local"
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            self._logger.warning("trade-local %s request failed: %s", action.value, exc)
            raise RemoteBuildFailure(f"PumpPortal {action.value} request failed: {exc}") from exc

        body = response.text.strip()
        if not body:
            raise RemoteBuildFailure(NO_RESPONSE_MESSAGE)
        self._logger.debug("Received %s transaction envelope (%d chars)", action.value, len(body))
        return UnsignedTransactionEnvelope(action=action, payload=body)

    async def build_create(
        self,
        owner: str,
        *,
        mint: str,
        name: str,
        symbol: str,
        metadata_uri: str,
        amount: Optional[float] = None,
        slippage: Optional[float] = None,
    ) -> UnsignedTransactionEnvelope:
        payload = self.build_payload(
            owner,
            TradeAction.CREATE,
            mint=mint,
            amount=amount,
            slippage=slippage,
            name=name,
            symbol=symbol,
            metadata_uri=metadata_uri,
        )
        return await self.request(payload)

    async def build_trade(
        self,
        owner: str,
        action: TradeAction,
        *,
        mint: str,
        amount: float,
        slippage: Optional[float] = None,
    ) -> UnsignedTransactionEnvelope:
        if action == TradeAction.CREATE:
            raise ValueError("Use build_create for token creation")
        payload = self.build_payload(owner, action, mint=mint, amount=amount, slippage=slippage)
        return await self.request(payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["NO_RESPONSE_MESSAGE", "TransactionRequestBuilder"]
