"""High level agent combining image generation with pump.fun deployment."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import httpx
from solana.rpc.async_api import AsyncClient

from .config.settings import AppConfig, get_app_config
from .execution.metadata import MetadataUploader
from .execution.pipeline import DeploymentOrchestrator, TradeOrchestrator
from .execution.signer import TransactionSigner
from .execution.solana_client import BackoffPolicy, Broadcaster, ConfirmationPoller
from .execution.transaction_builder import TransactionRequestBuilder
from .execution.wallet import WalletIdentity, load_wallet
from .models.schemas import (
    DeploymentResult,
    GeneratedImage,
    LaunchedToken,
    LaunchOptions,
    LaunchResult,
    TokenMetadata,
    TradeResult,
)
from .monitoring import bootstrap_observability
from .monitoring.logger import get_logger
from .monitoring.metrics import METRICS


class ImageGenerator(Protocol):
    """Image and completion collaborator used by :class:`TurnipAgent`."""

    async def generate(self, prompt: str, **options: Any) -> GeneratedImage:
        """Render ``prompt`` and return the encoded image."""

    async def enhance_prompt(self, prompt: str) -> str:
        """Return a more detailed version of ``prompt``."""


def default_description(name: str) -> str:
    return f"{name} - AI-generated art token"


class TurnipAgent:
    """Generates art, launches it as a token and trades it.

    The wallet identity is decoded once here; an invalid key raises
    :class:`~turnip_agent.execution.errors.InvalidKeyFormat` and no agent is
    built.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        wallet: Optional[WalletIdentity] = None,
        image_generator: Optional[ImageGenerator] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rpc_client: Optional[AsyncClient] = None,
        backoff: Optional[BackoffPolicy] = None,
    ) -> None:
        self._config = config or get_app_config()
        bootstrap_observability(self._config)
        self._wallet = wallet or load_wallet(self._config.wallet)
        self._image_generator = image_generator
        self._owned_http = http_client is None
        self._owned_rpc = rpc_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._config.pumpportal.http_timeout)
        self._rpc = rpc_client or AsyncClient(self._config.rpc.endpoint, timeout=self._config.rpc.request_timeout)
        self._logger = get_logger(__name__)

        builder = TransactionRequestBuilder(self._config.pumpportal, client=self._http)
        shared = dict(
            wallet=self._wallet,
            builder=builder,
            signer=TransactionSigner(self._wallet),
            broadcaster=Broadcaster(self._rpc, policy=backoff, config=self._config.broadcast),
            poller=ConfirmationPoller(self._rpc, config=self._config.broadcast, rpc_config=self._config.rpc),
            display_base_url=self._config.pumpportal.display_base_url,
        )
        self._deployer = DeploymentOrchestrator(
            uploader=MetadataUploader(self._config.pumpportal, client=self._http),
            **shared,
        )
        self._trader = TradeOrchestrator(**shared)

    @property
    def wallet_address(self) -> str:
        return self._wallet.address

    def _require_generator(self) -> ImageGenerator:
        if self._image_generator is None:
            raise RuntimeError("No image generator configured for this agent")
        return self._image_generator

    async def generate(self, prompt: str, **options: Any) -> GeneratedImage:
        return await self._require_generator().generate(prompt, **options)

    async def enhance_prompt(self, prompt: str) -> str:
        return await self._require_generator().enhance_prompt(prompt)

    async def deploy(
        self,
        image: GeneratedImage,
        name: str,
        ticker: str,
        *,
        description: Optional[str] = None,
        twitter: Optional[str] = None,
        telegram: Optional[str] = None,
        website: Optional[str] = None,
        dev_buy_amount: Optional[float] = None,
        slippage: Optional[float] = None,
    ) -> DeploymentResult:
        """Deploy a token using a previously generated image.

        Unset amounts fall back to the configured defaults; an explicit ``0``
        is kept.
        """

        metadata = TokenMetadata(
            name=name,
            symbol=ticker,
            description=description or default_description(name),
            image=image.base64,
            twitter=twitter,
            telegram=telegram,
            website=website,
        )
        trading = self._config.trading
        return await self._deployer.deploy(
            metadata,
            dev_buy_amount=trading.dev_buy_amount if dev_buy_amount is None else dev_buy_amount,
            slippage=trading.default_slippage if slippage is None else slippage,
        )

    async def launch(self, options: LaunchOptions) -> LaunchResult:
        """Generate an image and deploy it in one call. Never raises."""

        try:
            image = await self.generate(options.prompt, **options.generate_options)
        except Exception as exc:  # noqa: BLE001 - surfaced as a failed launch
            self._logger.warning("Image generation for %s failed: %s", options.ticker, exc)
            return LaunchResult(success=False, error=str(exc) or "Unknown error")

        deployment = await self.deploy(
            image,
            options.name,
            options.ticker,
            description=options.description,
            twitter=options.twitter,
            telegram=options.telegram,
            website=options.website,
            dev_buy_amount=options.dev_buy_amount,
            slippage=options.slippage,
        )
        if not deployment.success:
            # The image is handed back so the caller can retry the deployment alone.
            return LaunchResult(success=False, image=image, error=deployment.error)

        return LaunchResult(
            success=True,
            image=image,
            token=LaunchedToken(
                mint=deployment.mint,
                name=options.name,
                ticker=options.ticker,
                signature=deployment.signature,
                pump_url=deployment.pump_url,
                metadata_uri=deployment.metadata_uri,
            ),
        )

    async def buy_token(self, mint: str, sol_amount: float, slippage: Optional[float] = None) -> TradeResult:
        return await self._trader.buy(
            mint,
            sol_amount,
            self._config.trading.default_slippage if slippage is None else slippage,
        )

    async def sell_token(self, mint: str, token_amount: float, slippage: Optional[float] = None) -> TradeResult:
        return await self._trader.sell(
            mint,
            token_amount,
            self._config.trading.default_slippage if slippage is None else slippage,
        )

    async def health_check(self) -> Dict[str, Any]:
        """Report whether the RPC node and the image generator are reachable.

        Never raises. ``pipelines`` carries the outcome counters recorded so
        far in this process.
        """

        try:
            rpc_ok = bool(await self._rpc.is_connected())
        except Exception as exc:  # noqa: BLE001 - reported as unreachable
            self._logger.warning("RPC health check failed: %s", exc)
            rpc_ok = False

        generator_ok = False
        if self._image_generator is not None:
            try:
                await self._image_generator.enhance_prompt("test")
                generator_ok = True
            except Exception as exc:  # noqa: BLE001 - reported as unreachable
                self._logger.warning("Image generator health check failed: %s", exc)

        return {
            "rpc": rpc_ok,
            "image_generator": generator_ok,
            "wallet": self.wallet_address,
            "pipelines": METRICS.snapshot()["counters"],
        }

    async def aclose(self) -> None:
        if self._owned_http:
            await self._http.aclose()
        if self._owned_rpc:
            await self._rpc.close()

    async def __aenter__(self) -> "TurnipAgent":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = ["ImageGenerator", "TurnipAgent", "default_description"]
