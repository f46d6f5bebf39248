from __future__ import annotations

import base64
import json
from types import SimpleNamespace
from typing import Callable, List, Optional

import httpx
import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from turnip_agent.execution.wallet import WalletIdentity
from turnip_agent.monitoring.metrics import METRICS


def build_unsigned_envelope(payer: Pubkey, *extra_signers: Pubkey) -> str:
    accounts = [AccountMeta(payer, True, True)]
    accounts.extend(AccountMeta(signer, True, True) for signer in extra_signers)
    instruction = Instruction(Pubkey.new_unique(), bytes([1]), accounts)
    message = MessageV0.try_compile(payer, [instruction], [], Hash.new_unique())
    unsigned = VersionedTransaction.populate(message, [Signature.default()] * (1 + len(extra_signers)))
    return base64.b64encode(bytes(unsigned)).decode()


@pytest.fixture(autouse=True)
def _reset_metrics():
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def wallet() -> WalletIdentity:
    return WalletIdentity.from_keypair(Keypair())


@pytest.fixture
def make_envelope() -> Callable[..., str]:
    """Return a factory producing base64 unsigned transactions like PumpPortal does."""

    return build_unsigned_envelope


class FakePortal:
    """``httpx.MockTransport`` handler standing in for the PumpPortal API."""

    def __init__(
        self,
        *,
        metadata_uri: Optional[str] = "https://ipfs.io/ipfs/QmTurnip",
        upload_status: int = 200,
        trade_body: Optional[str] = None,
        trade_status: int = 200,
    ) -> None:
        self.metadata_uri = metadata_uri
        self.upload_status = upload_status
        self.trade_body = trade_body
        self.trade_status = trade_status
        self.uploads: list = []
        self.trades: list = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        if request.url.path.endswith("/ipfs"):
            self.uploads.append(request.content)
            body = {"metadataUri": self.metadata_uri} if self.metadata_uri else {}
            return httpx.Response(self.upload_status, json=body)
        if request.url.path.endswith("/trade-local"):
            payload = json.loads(request.content)
            self.trades.append(payload)
            if self.trade_body is not None or self.trade_status != 200:
                return httpx.Response(self.trade_status, text=self.trade_body or "")
            owner = Pubkey.from_string(payload["publicKey"])
            signers = [Pubkey.from_string(payload["mint"])] if payload["action"] == "create" else []
            return httpx.Response(200, text=build_unsigned_envelope(owner, *signers))
        return httpx.Response(404, text="not found")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def portal_factory() -> Callable[..., FakePortal]:
    return FakePortal

class FakeRpcClient:
    """Records calls the way ``solana.rpc.async_api.AsyncClient`` would receive them."""

    def __init__(
        self,
        *,
        send_errors: Optional[List[Exception]] = None,
        confirm_error: Optional[Exception] = None,
        onchain_err: object = None,
        status_missing: bool = False,
        healthy: object = True,
    ) -> None:
        self.send_errors = list(send_errors or [])
        self.confirm_error = confirm_error
        self.onchain_err = onchain_err
        self.status_missing = status_missing
        self.healthy = healthy
        self.sent: list = []
        self.confirmed: list = []
        self.closed = False

    async def send_raw_transaction(self, txn: bytes, opts=None):
        self.sent.append((txn, opts))
        if self.send_errors:
            raise self.send_errors.pop(0)
        signed = VersionedTransaction.from_bytes(txn)
        return SimpleNamespace(value=signed.signatures[0])

    async def confirm_transaction(self, tx_sig, commitment=None, sleep_seconds=0.5, last_valid_block_height=None):
        self.confirmed.append((tx_sig, commitment, sleep_seconds))
        if self.confirm_error is not None:
            raise self.confirm_error
        if self.status_missing:
            return SimpleNamespace(value=[None])
        return SimpleNamespace(value=[SimpleNamespace(err=self.onchain_err)])

    async def is_connected(self) -> bool:
        if isinstance(self.healthy, Exception):
            raise self.healthy
        return bool(self.healthy)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def rpc_factory() -> Callable[..., FakeRpcClient]:
    return FakeRpcClient
