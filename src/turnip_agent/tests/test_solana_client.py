from __future__ import annotations

import asyncio

import httpx
import pytest
from solana.rpc.core import RPCException, UnconfirmedTxError
from solders.keypair import Keypair

from turnip_agent.config.settings import BroadcastConfig
from turnip_agent.execution.errors import BroadcastFailure, ConfirmationTimeout, OnChainExecutionFailure
from turnip_agent.execution.signer import TransactionSigner
from turnip_agent.execution.solana_client import BackoffPolicy, Broadcaster, ConfirmationPoller
from turnip_agent.models.schemas import TradeAction, UnsignedTransactionEnvelope
from turnip_agent.monitoring.metrics import METRICS


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def signed_buy(wallet, make_envelope):
    envelope = UnsignedTransactionEnvelope(TradeAction.BUY, make_envelope(wallet.public_key))
    return TransactionSigner(wallet).sign(envelope)


def _signature() -> str:
    return str(Keypair().sign_message(b"turnip"))


def test_broadcast_returns_signature_with_expected_opts(rpc_factory, signed_buy) -> None:
    client = rpc_factory()
    broadcaster = Broadcaster(client, config=BroadcastConfig(), sleep=RecordingSleep())

    signature = asyncio.run(broadcaster.broadcast(signed_buy))

    assert signature == signed_buy.signature
    raw, opts = client.sent[0]
    assert raw == signed_buy.raw
    assert opts.skip_preflight is False
    assert opts.preflight_commitment == "confirmed"
    assert opts.max_retries == 3


def test_broadcast_retries_with_backoff_then_succeeds(rpc_factory, signed_buy) -> None:
    client = rpc_factory(send_errors=[RPCException("blockhash not found"), httpx.ConnectError("reset")])
    sleep = RecordingSleep()
    policy = BackoffPolicy(attempts=3, base_delay=1.0, max_delay=1.5)

    signature = asyncio.run(Broadcaster(client, policy=policy, config=BroadcastConfig(), sleep=sleep).broadcast(signed_buy))

    assert signature == signed_buy.signature
    assert len(client.sent) == 3
    assert sleep.delays == [1.0, 1.5]
    assert METRICS.get("broadcast.retries") == 2


def test_broadcast_exhausts_budget(rpc_factory, signed_buy) -> None:
    client = rpc_factory(send_errors=[RPCException("rejected")] * 5)
    policy = BackoffPolicy(attempts=2, base_delay=0.0, max_delay=0.0)

    with pytest.raises(BroadcastFailure, match="2 attempt"):
        asyncio.run(Broadcaster(client, policy=policy, config=BroadcastConfig(), sleep=RecordingSleep()).broadcast(signed_buy))
    assert len(client.sent) == 2


def test_unexpected_errors_are_not_retried(rpc_factory, signed_buy) -> None:
    client = rpc_factory(send_errors=[KeyError("boom")])

    with pytest.raises(KeyError):
        asyncio.run(Broadcaster(client, config=BroadcastConfig(), sleep=RecordingSleep()).broadcast(signed_buy))
    assert len(client.sent) == 1


def test_signed_transaction_is_broadcast_once(rpc_factory, signed_buy) -> None:
    broadcaster = Broadcaster(rpc_factory(), config=BroadcastConfig(), sleep=RecordingSleep())
    asyncio.run(broadcaster.broadcast(signed_buy))

    with pytest.raises(BroadcastFailure, match="already broadcast"):
        asyncio.run(broadcaster.broadcast(signed_buy))


def test_preflight_toggle(rpc_factory) -> None:
    broadcaster = Broadcaster(rpc_factory(), config=BroadcastConfig(), preflight=False)

    assert broadcaster.tx_opts().skip_preflight is True


def test_backoff_policy_requires_an_attempt() -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(attempts=0)


def test_confirmation_success(rpc_factory) -> None:
    client = rpc_factory()
    poller = ConfirmationPoller(client, commitment="confirmed", config=BroadcastConfig(confirm_poll_seconds=0.1))
    signature = _signature()

    asyncio.run(poller.confirm(signature))

    tx_sig, commitment, sleep_seconds = client.confirmed[0]
    assert str(tx_sig) == signature
    assert commitment == "confirmed"
    assert sleep_seconds == 0.1


def test_onchain_error_is_reported(rpc_factory) -> None:
    client = rpc_factory(onchain_err={"InstructionError": [2, {"Custom": 6002}]})
    poller = ConfirmationPoller(client, commitment="confirmed", config=BroadcastConfig())
    signature = _signature()

    with pytest.raises(OnChainExecutionFailure) as excinfo:
        asyncio.run(poller.confirm(signature))
    assert str(excinfo.value).startswith("Transaction failed:")
    assert "6002" in str(excinfo.value)
    assert excinfo.value.signature == signature


def test_node_timeout_is_confirmation_timeout(rpc_factory) -> None:
    client = rpc_factory(confirm_error=UnconfirmedTxError("Unable to confirm transaction"))
    poller = ConfirmationPoller(client, commitment="confirmed", config=BroadcastConfig())
    signature = _signature()

    with pytest.raises(ConfirmationTimeout) as excinfo:
        asyncio.run(poller.confirm(signature))
    assert signature in str(excinfo.value)


def test_missing_status_is_confirmation_timeout(rpc_factory) -> None:
    poller = ConfirmationPoller(rpc_factory(status_missing=True), commitment="confirmed", config=BroadcastConfig())

    with pytest.raises(ConfirmationTimeout):
        asyncio.run(poller.confirm(_signature()))
