"""Solana RPC submission with retry policy, and confirmation polling."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.signature import Signature
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import BroadcastConfig, RPCConfig, get_app_config
from ..models.schemas import SignedTransaction
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .errors import BroadcastFailure, ConfirmationTimeout, OnChainExecutionFailure

RETRYABLE_ERRORS = (RPCException, SolanaRpcException, httpx.HTTPError)

Sleeper = Callable[[float], Awaitable[Any]]


@dataclass(slots=True, frozen=True)
class BackoffPolicy:
    """Exponential backoff for broadcast attempts.

    The n-th retry waits ``min(base_delay * 2 ** (n - 1), max_delay)``.
    """

    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 4.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("BackoffPolicy needs at least one attempt")

    @classmethod
    def from_config(cls, config: BroadcastConfig) -> "BackoffPolicy":
        return cls(
            attempts=config.max_attempts,
            base_delay=config.base_delay_seconds,
            max_delay=config.max_delay_seconds,
        )

    def retrying(self, sleep: Sleeper, before_sleep: Optional[Callable[[RetryCallState], None]] = None) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.base_delay, min=0, max=self.max_delay),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            sleep=sleep,
            before_sleep=before_sleep,
            reraise=True,
        )


class Broadcaster:
    """Submits signed transactions to the configured RPC node."""

    def __init__(
        self,
        client: AsyncClient,
        *,
        policy: Optional[BackoffPolicy] = None,
        config: Optional[BroadcastConfig] = None,
        preflight: Optional[bool] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._config = config or get_app_config().broadcast
        self._client = client
        self._policy = policy or BackoffPolicy.from_config(self._config)
        self._preflight = (not self._config.skip_preflight) if preflight is None else preflight
        self._sleep = sleep
        self._logger = get_logger(__name__)

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    def tx_opts(self) -> TxOpts:
        return TxOpts(
            skip_preflight=not self._preflight,
            preflight_commitment=Commitment("confirmed"),
            max_retries=self._config.node_max_retries,
        )

    def _log_retry(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        METRICS.increment("broadcast.retries")
        self._logger.warning(
            "Broadcast attempt %d/%d rejected: %s",
            state.attempt_number,
            self._policy.attempts,
            exc,
        )

    async def broadcast(self, transaction: SignedTransaction) -> str:
        """Send ``transaction`` and return its signature.

        Once the node accepts the transaction it cannot be withdrawn, even if
        confirmation later fails.
        """

        if transaction.broadcast_attempted:
            raise BroadcastFailure(f"Transaction {transaction.signature} was already broadcast")
        transaction.broadcast_attempted = True
        opts = self.tx_opts()
        try:
            async for attempt in self._policy.retrying(self._sleep, self._log_retry):
                with attempt:
                    response = await self._client.send_raw_transaction(transaction.raw, opts=opts)
        except RETRYABLE_ERRORS as exc:
            METRICS.increment("broadcast.exhausted")
            raise BroadcastFailure(
                f"Broadcast failed after {self._policy.attempts} attempt(s): {exc}"
            ) from exc
        signature = str(response.value)
        self._logger.info("Submitted %s transaction: %s", transaction.action.value, signature)
        return signature


def describe_onchain_error(err: Any) -> str:
    to_json = getattr(err, "to_json", None)
    if callable(to_json):
        return to_json()
    return str(err)


class ConfirmationPoller:
    """Waits for a signature to reach the target commitment level.

    The wait is bounded only by the RPC client's own confirmation timeout.
    """

    def __init__(
        self,
        client: AsyncClient,
        *,
        commitment: Optional[str] = None,
        config: Optional[BroadcastConfig] = None,
        rpc_config: Optional[RPCConfig] = None,
    ) -> None:
        self._config = config or get_app_config().broadcast
        if commitment is None:
            commitment = (rpc_config or get_app_config().rpc).commitment
        self._commitment = commitment
        self._client = client
        self._logger = get_logger(__name__)

    async def confirm(self, signature: str) -> None:
        try:
            response = await self._client.confirm_transaction(
                Signature.from_string(signature),
                commitment=Commitment(self._commitment),
                sleep_seconds=self._config.confirm_poll_seconds,
            )
        except UnconfirmedTxError as exc:
            raise ConfirmationTimeout(
                f"Transaction {signature} was not {self._commitment} before the node timeout: {exc}",
                signature,
            ) from exc
        except RETRYABLE_ERRORS as exc:
            raise ConfirmationTimeout(f"Could not confirm transaction {signature}: {exc}", signature) from exc

        statuses = getattr(response, "value", None) or []
        status = statuses[0] if statuses else None
        if status is None:
            raise ConfirmationTimeout(f"No status returned for transaction {signature}", signature)
        if status.err is not None:
            message = f"Transaction failed: {describe_onchain_error(status.err)}"
            self._logger.warning("Transaction %s landed with an error: %s", signature, message)
            raise OnChainExecutionFailure(message, signature)
        self._logger.info("Transaction %s reached %s", signature, self._commitment)


__all__ = ["BackoffPolicy", "Broadcaster", "ConfirmationPoller", "describe_onchain_error"]
