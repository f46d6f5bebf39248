"""State machines that sequence the deployment and trade stages.

Every stage failure is caught here and turned into a failure result; no
pipeline exception reaches the caller. Nothing is retried at this level.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from solders.keypair import Keypair

from ..config.settings import get_app_config
from ..models.schemas import DeploymentResult, TokenMetadata, TradeAction, TradeResult
from ..monitoring.logger import correlation_scope, get_logger, new_correlation_id
from ..monitoring.metrics import METRICS
from .errors import PipelineError, UnknownError
from .metadata import MetadataUploader
from .signer import TransactionSigner
from .solana_client import Broadcaster, ConfirmationPoller
from .transaction_builder import TransactionRequestBuilder
from .wallet import WalletIdentity


class PipelineState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    BUILDING = "building"
    SIGNING = "signing"
    BROADCASTING = "broadcasting"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({PipelineState.SUCCEEDED, PipelineState.FAILED})


@dataclass(slots=True)
class PipelineRun:
    """Per-invocation state; never shared between concurrent calls."""

    action: TradeAction
    correlation_id: str
    state: PipelineState = PipelineState.IDLE
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    error: Optional[PipelineError] = None
    entered_at: float = field(default_factory=time.perf_counter)

    def advance(self, state: PipelineState) -> float:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Pipeline {self.correlation_id} already finished as {self.state.value}")
        now = time.perf_counter()
        elapsed = now - self.entered_at
        self.state = state
        self.history.append(state)
        self.entered_at = now
        return elapsed


TransitionHook = Callable[[PipelineRun, PipelineState], None]


class _Orchestrator:
    def __init__(
        self,
        *,
        wallet: WalletIdentity,
        builder: TransactionRequestBuilder,
        signer: TransactionSigner,
        broadcaster: Broadcaster,
        poller: ConfirmationPoller,
        display_base_url: Optional[str] = None,
        on_transition: Optional[TransitionHook] = None,
    ) -> None:
        self._wallet = wallet
        self._builder = builder
        self._signer = signer
        self._broadcaster = broadcaster
        self._poller = poller
        base = display_base_url or get_app_config().pumpportal.display_base_url
        self._display_base_url = base.rstrip("/") + "/"
        self._on_transition = on_transition
        self._logger = get_logger(__name__)

    def display_url(self, mint: str) -> str:
        return f"{self._display_base_url}{mint}"

    def _start(self, action: TradeAction) -> PipelineRun:
        run = PipelineRun(action=action, correlation_id=new_correlation_id(action.value))
        METRICS.increment(f"pipeline.{action.value}.started")
        return run

    def _advance(self, run: PipelineRun, state: PipelineState) -> None:
        previous = run.state
        elapsed = run.advance(state)
        if previous != PipelineState.IDLE:
            METRICS.observe(f"pipeline.{run.action.value}.{previous.value}.seconds", elapsed)
        self._logger.debug("Pipeline %s: %s -> %s", run.action.value, previous.value, state.value)
        self._notify(run, state)

    def _notify(self, run: PipelineRun, state: PipelineState) -> None:
        if self._on_transition is None:
            return
        try:
            self._on_transition(run, state)
        except Exception:  # noqa: BLE001 - observers never change the pipeline outcome
            METRICS.increment("pipeline.hook_errors")
            self._logger.exception("Transition hook failed on %s -> %s", run.action.value, state.value)

    def _fail(self, run: PipelineRun, exc: Exception) -> str:
        error = exc if isinstance(exc, PipelineError) else UnknownError.from_exception(exc)
        failed_stage = run.state
        run.error = error
        self._advance(run, PipelineState.FAILED)
        METRICS.increment(f"pipeline.{run.action.value}.failed")
        METRICS.increment(f"pipeline.failures.{error.kind}")
        self._logger.warning(
            "%s pipeline failed while %s: %s",
            run.action.value,
            failed_stage.value,
            error,
            exc_info=not isinstance(exc, PipelineError),
        )
        return str(error) or "Unknown error"

    def _succeed(self, run: PipelineRun) -> None:
        self._advance(run, PipelineState.SUCCEEDED)
        METRICS.increment(f"pipeline.{run.action.value}.succeeded")


class DeploymentOrchestrator(_Orchestrator):
    """Runs upload, build, sign, broadcast and confirm for a token launch."""

    def __init__(
        self,
        *,
        uploader: MetadataUploader,
        mint_factory: Callable[[], Keypair] = Keypair,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._uploader = uploader
        self._mint_factory = mint_factory

    async def deploy(
        self,
        metadata: TokenMetadata,
        *,
        dev_buy_amount: Optional[float] = None,
        slippage: Optional[float] = None,
    ) -> DeploymentResult:
        run = self._start(TradeAction.CREATE)
        with correlation_scope(run.correlation_id):
            try:
                self._advance(run, PipelineState.UPLOADING)
                metadata_uri = await self._uploader.upload(metadata)

                # A failed attempt's mint is discarded with its run.
                mint = self._mint_factory()
                mint_address = str(mint.pubkey())

                self._advance(run, PipelineState.BUILDING)
                envelope = await self._builder.build_create(
                    self._wallet.address,
                    mint=mint_address,
                    name=metadata.name,
                    symbol=metadata.symbol,
                    metadata_uri=metadata_uri,
                    amount=dev_buy_amount,
                    slippage=slippage,
                )

                self._advance(run, PipelineState.SIGNING)
                signed = self._signer.sign(envelope, mint)

                self._advance(run, PipelineState.BROADCASTING)
                signature = await self._broadcaster.broadcast(signed)

                self._advance(run, PipelineState.CONFIRMING)
                await self._poller.confirm(signature)
            except Exception as exc:  # noqa: BLE001 - converted into a failure result
                return DeploymentResult.failed(self._fail(run, exc))

            self._succeed(run)
            self._logger.info("Deployed %s (%s) at %s", metadata.name, metadata.symbol, mint_address)
            return DeploymentResult.succeeded(
                mint=mint_address,
                signature=signature,
                metadata_uri=metadata_uri,
                pump_url=self.display_url(mint_address),
            )


class TradeOrchestrator(_Orchestrator):
    """Buy and sell against an existing bonding curve."""

    async def buy(self, mint: str, sol_amount: float, slippage: Optional[float] = None) -> TradeResult:
        return await self._trade(TradeAction.BUY, mint, sol_amount, slippage)

    async def sell(self, mint: str, token_amount: float, slippage: Optional[float] = None) -> TradeResult:
        return await self._trade(TradeAction.SELL, mint, token_amount, slippage)

    async def _trade(
        self,
        action: TradeAction,
        mint: str,
        amount: float,
        slippage: Optional[float],
    ) -> TradeResult:
        run = self._start(action)
        with correlation_scope(run.correlation_id):
            try:
                self._advance(run, PipelineState.BUILDING)
                envelope = await self._builder.build_trade(
                    self._wallet.address,
                    action,
                    mint=mint,
                    amount=amount,
                    slippage=slippage,
                )

                self._advance(run, PipelineState.SIGNING)
                signed = self._signer.sign(envelope)

                self._advance(run, PipelineState.BROADCASTING)
                signature = await self._broadcaster.broadcast(signed)

                self._advance(run, PipelineState.CONFIRMING)
                await self._poller.confirm(signature)
            except Exception as exc:  # noqa: BLE001 - converted into a failure result
                return TradeResult.failed(self._fail(run, exc), action=action)

            self._succeed(run)
            self._logger.info("%s of %s confirmed: %s", action.value, mint, signature)
            return TradeResult.succeeded(
                action=action,
                mint=mint,
                signature=signature,
                pump_url=self.display_url(mint),
            )


__all__ = [
    "DeploymentOrchestrator",
    "PipelineRun",
    "PipelineState",
    "TradeOrchestrator",
]
