from __future__ import annotations

import json
from pathlib import Path

import base58
import pytest
from solders.keypair import Keypair

from turnip_agent.config.settings import WalletConfig
from turnip_agent.execution.errors import InvalidKeyFormat
from turnip_agent.execution.wallet import WalletIdentity, load_wallet


def test_wallet_from_base58_secret_derives_address() -> None:
    keypair = Keypair()
    secret = base58.b58encode(bytes(keypair)).decode()

    identity = WalletIdentity.from_base58(secret)

    assert identity.address == str(keypair.pubkey())
    assert identity.public_key == keypair.pubkey()


@pytest.mark.parametrize("secret", ["not-base58-0OIl", "3mJr7AoUXx2Wqd", ""])
def test_wallet_rejects_malformed_secret(secret: str) -> None:
    with pytest.raises(InvalidKeyFormat):
        WalletIdentity.from_base58(secret)


def test_wallet_repr_does_not_leak_secret() -> None:
    keypair = Keypair()
    identity = WalletIdentity.from_keypair(keypair)

    rendered = repr(identity)

    assert identity.address in rendered
    assert base58.b58encode(bytes(keypair)).decode() not in rendered


def test_load_wallet_prefers_private_key(tmp_path: Path) -> None:
    primary = Keypair()
    other = Keypair()
    keypair_file = tmp_path / "id.json"
    keypair_file.write_text(json.dumps(list(bytes(other))))

    identity = load_wallet(
        WalletConfig(private_key=base58.b58encode(bytes(primary)).decode(), keypair_path=keypair_file)
    )

    assert identity.address == str(primary.pubkey())


def test_load_wallet_reads_keypair_file(tmp_path: Path) -> None:
    keypair = Keypair()
    keypair_file = tmp_path / "id.json"
    keypair_file.write_text(json.dumps(list(bytes(keypair))))

    identity = load_wallet(WalletConfig(keypair_path=keypair_file))

    assert identity.address == str(keypair.pubkey())


def test_load_wallet_without_source_is_fatal() -> None:
    with pytest.raises(InvalidKeyFormat):
        load_wallet(WalletConfig())


def test_load_wallet_rejects_non_array_file(tmp_path: Path) -> None:
    keypair_file = tmp_path / "id.json"
    keypair_file.write_text(json.dumps({"secret": "abc"}))

    with pytest.raises(InvalidKeyFormat):
        load_wallet(WalletConfig(keypair_path=keypair_file))
