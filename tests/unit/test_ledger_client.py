"""Unit tests for the Solana JSON-RPC ledger client."""

import base64
import json

import base58
import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import Transaction

from app.clients.ledger_client import (
    LedgerClient,
    build_transfer_transaction,
    load_custodial_keypair,
)
from app.core.config import LedgerConfig
from app.core.errors import LedgerError

BLOCKHASH = str(Hash.default())


def _ledger(handler, **overrides) -> tuple[LedgerClient, list[dict]]:
    """Ledger client whose HTTP calls go to ``handler``; returns the call log."""
    calls: list[dict] = []

    def recording(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        calls.append(payload)
        return handler(payload)

    settings = {"private_key": "unused", "confirm_poll_interval_seconds": 0.0, **overrides}
    config = LedgerConfig(**settings)
    client = LedgerClient(config)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return client, calls


def _result(payload, value):
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": value})


def test_load_custodial_keypair_round_trip():
    keypair = Keypair()
    secret = base58.b58encode(bytes(keypair)).decode()
    assert load_custodial_keypair(f" {secret}\n").pubkey() == keypair.pubkey()


def test_load_custodial_keypair_rejects_wrong_length():
    with pytest.raises(ValueError):
        load_custodial_keypair(base58.b58encode(b"\x01" * 32).decode())


def test_load_custodial_keypair_rejects_non_base58():
    with pytest.raises(ValueError):
        load_custodial_keypair("0OIl-not-base58")


def test_build_transfer_transaction_is_signed_by_payer():
    payer = Keypair()
    recipient = Keypair().pubkey()
    tx = build_transfer_transaction(payer, recipient, 10_000_000, Hash.default())
    tx.verify()
    assert tx.message.account_keys[0] == payer.pubkey()
    assert recipient in tx.message.account_keys


@pytest.mark.asyncio
async def test_get_balance():
    client, calls = _ledger(lambda p: _result(p, {"context": {"slot": 1}, "value": 2_500_000}))

    assert await client.get_balance(Keypair().pubkey()) == 2_500_000
    assert calls[0]["method"] == "getBalance"
    assert calls[0]["params"][1] == {"commitment": "confirmed"}
    await client.close()


@pytest.mark.asyncio
async def test_rpc_error_body_raises_ledger_error():
    def handler(payload):
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": payload["id"], "error": {"code": -32602, "message": "Invalid param"}},
        )

    client, _ = _ledger(handler)
    with pytest.raises(LedgerError) as exc_info:
        await client.get_balance(Keypair().pubkey())
    assert "Invalid param" in exc_info.value.message


@pytest.mark.asyncio
async def test_http_error_status_raises_ledger_error():
    client, _ = _ledger(lambda p: httpx.Response(503, text="unavailable"))
    with pytest.raises(LedgerError):
        await client.get_latest_blockhash()


@pytest.mark.asyncio
async def test_read_calls_retry_connection_failures():
    attempts = {"n": 0}

    def handler(payload):
        attempts["n"] += 1
        if attempts["n"] < 2:
            raise httpx.ConnectError("refused")
        return _result(payload, {"context": {"slot": 1}, "value": {"blockhash": BLOCKHASH}})

    client, _ = _ledger(handler)
    assert await client.get_latest_blockhash() == Hash.default()
    assert attempts["n"] == 2


@pytest.mark.asyncio
async def test_send_transaction_is_never_retried():
    attempts = {"n": 0}

    def handler(payload):
        attempts["n"] += 1
        raise httpx.ConnectError("refused")

    client, _ = _ledger(handler)
    tx = build_transfer_transaction(Keypair(), Keypair().pubkey(), 1, Hash.default())
    with pytest.raises(LedgerError):
        await client.send_transaction(tx)
    assert attempts["n"] == 1


@pytest.mark.asyncio
async def test_confirm_transaction_polls_until_commitment():
    statuses = iter(
        [
            None,
            {"slot": 5, "confirmations": 0, "err": None, "confirmationStatus": "processed"},
            {"slot": 5, "confirmations": 1, "err": None, "confirmationStatus": "confirmed"},
        ]
    )
    client, calls = _ledger(lambda p: _result(p, {"context": {"slot": 5}, "value": [next(statuses)]}))

    await client.confirm_transaction("sig")
    assert [c["method"] for c in calls] == ["getSignatureStatuses"] * 3


@pytest.mark.asyncio
async def test_confirm_transaction_raises_on_chain_error():
    status = {"slot": 5, "err": {"InstructionError": [0, "Custom"]}, "confirmationStatus": "processed"}
    client, _ = _ledger(lambda p: _result(p, {"context": {"slot": 5}, "value": [status]}))

    with pytest.raises(LedgerError) as exc_info:
        await client.confirm_transaction("sig")
    assert "failed on-chain" in exc_info.value.message


@pytest.mark.asyncio
async def test_confirm_transaction_times_out():
    client, _ = _ledger(
        lambda p: _result(p, {"context": {"slot": 5}, "value": [None]}),
        confirm_timeout_seconds=0.05,
        confirm_poll_interval_seconds=0.01,
    )

    with pytest.raises(LedgerError) as exc_info:
        await client.confirm_transaction("sig")
    assert "not confirmed" in exc_info.value.message


@pytest.mark.asyncio
async def test_transfer_submits_signed_transaction_and_confirms():
    payer = Keypair()
    recipient = Keypair().pubkey()
    sent: list[Transaction] = []

    def handler(payload):
        method = payload["method"]
        if method == "getLatestBlockhash":
            return _result(payload, {"context": {"slot": 1}, "value": {"blockhash": BLOCKHASH}})
        if method == "sendTransaction":
            tx = Transaction.from_bytes(base64.b64decode(payload["params"][0]))
            sent.append(tx)
            return _result(payload, str(tx.signatures[0]))
        return _result(
            payload,
            {"context": {"slot": 2}, "value": [{"err": None, "confirmationStatus": "finalized"}]},
        )

    client, calls = _ledger(handler)
    signature = await client.transfer(payer, recipient, 10_000_000)

    assert [c["method"] for c in calls] == [
        "getLatestBlockhash",
        "sendTransaction",
        "getSignatureStatuses",
    ]
    assert signature == str(sent[0].signatures[0])
    assert sent[0].message.account_keys[0] == payer.pubkey()


@pytest.mark.asyncio
async def test_health_check():
    client, _ = _ledger(lambda p: _result(p, "ok"))
    assert await client.health_check() is True

    failing, _ = _ledger(lambda p: httpx.Response(500))
    assert await failing.health_check() is False
