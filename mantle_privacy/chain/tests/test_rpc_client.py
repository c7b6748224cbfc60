"""Unit tests for the JSON-RPC client using an httpx mock transport."""

import json

import httpx
import pytest

from mantle_privacy.chain.abi import (
    DEPOSIT_TOPIC,
    GET_ROOT_SIGNATURE,
    IS_NULLIFIER_USED_SIGNATURE,
    WITHDRAW_SIGNATURE,
    encode_uint,
    encode_dynamic_bytes_pair,
    function_selector,
)
from mantle_privacy.chain.rpc import ContractEventSource, JsonRpcChainClient
from mantle_privacy.privacy_protocol.encoding import to_hex
from mantle_privacy.privacy_protocol.exceptions import (
    ChainError,
    ChainTimeout,
    TransactionReverted,
)

POOL = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
RELAYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def _client(handler) -> JsonRpcChainClient:
    transport = httpx.MockTransport(handler)
    return JsonRpcChainClient(
        "http://rpc.test",
        pool_address=POOL,
        relayer_address=RELAYER,
        client=httpx.AsyncClient(transport=transport),
    )


def _reply(request: httpx.Request, result=None, error=None) -> httpx.Response:
    body = json.loads(request.content)
    payload = {"jsonrpc": "2.0", "id": body["id"]}
    if error is not None:
        payload["error"] = error
    else:
        payload["result"] = result
    return httpx.Response(200, json=payload)


@pytest.mark.trio
async def test_get_root_and_nullifier_calls() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        data = body["params"][0]["data"]
        if data.startswith(to_hex(function_selector(GET_ROOT_SIGNATURE))):
            return _reply(request, to_hex(encode_uint(777)))
        if data.startswith(to_hex(function_selector(IS_NULLIFIER_USED_SIGNATURE))):
            return _reply(request, to_hex(encode_uint(1)))
        return _reply(request, to_hex(encode_uint(0)))

    async with _client(handler) as client:
        assert await client.get_root() == 777
        assert await client.is_nullifier_used(5) is True
        assert await client.is_known_root(5) is False

    assert all(b["method"] == "eth_call" for b in seen)
    assert all(b["params"][0]["to"] == POOL for b in seen)


@pytest.mark.trio
async def test_submit_withdraw_sends_transaction() -> None:
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        captured.update(body)
        return _reply(request, "0x" + "12" * 32)

    async with _client(handler) as client:
        tx_hash = await client.submit_withdraw(list(range(8)), 1, 2, RELAYER, 3)

    assert tx_hash == "0x" + "12" * 32
    assert captured["method"] == "eth_sendTransaction"
    tx = captured["params"][0]
    assert tx["from"] == RELAYER
    assert tx["data"].startswith(to_hex(function_selector(WITHDRAW_SIGNATURE)))
    assert len(tx["data"]) == 2 + 8 + 12 * 64


@pytest.mark.trio
async def test_revert_reason_is_decoded() -> None:
    reason = b"Nullifier already used"
    revert = bytes.fromhex("08c379a0") + encode_uint(32) + encode_uint(len(reason))
    revert += reason + b"\x00" * (-len(reason) % 32)

    def handler(request: httpx.Request) -> httpx.Response:
        return _reply(
            request,
            error={"code": 3, "message": "execution reverted", "data": to_hex(revert)},
        )

    async with _client(handler) as client:
        with pytest.raises(TransactionReverted) as info:
            await client.submit_withdraw([0] * 8, 1, 2, RELAYER, 3)
    assert info.value.reason == "Nullifier already used"


@pytest.mark.trio
async def test_rpc_errors_are_typed() -> None:
    def failing(request: httpx.Request) -> httpx.Response:
        return _reply(request, error={"code": -32000, "message": "header not found"})

    def timing_out(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    async with _client(failing) as client:
        with pytest.raises(ChainError, match="header not found"):
            await client.block_number()
    async with _client(timing_out) as client:
        with pytest.raises(ChainTimeout):
            await client.block_number()
    async with _client(server_error) as client:
        with pytest.raises(ChainError):
            await client.block_number()


@pytest.mark.trio
async def test_missing_addresses() -> None:
    async with JsonRpcChainClient(
        "http://rpc.test",
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: None)),
    ) as client:
        with pytest.raises(ChainError, match="pool address"):
            await client.get_root()
        with pytest.raises(ChainError, match="relayer"):
            await client.submit_withdraw([0] * 8, 1, 2, RELAYER, 3)


@pytest.mark.trio
async def test_contract_event_source_decodes_and_orders() -> None:
    announcer = "0x55649E01B5Df198D18D95b5cc5051630cfD45564"

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body["method"] == "eth_blockNumber":
            return _reply(request, "0x10")
        query = body["params"][0]
        if query["address"] == announcer:
            return _reply(request, [])
        log = {
            "address": POOL,
            "topics": [DEPOSIT_TOPIC, to_hex(encode_uint(9))],
            "data": to_hex(encode_uint(0) + encode_uint(1) + encode_uint(2)),
            "blockNumber": "0x3",
            "transactionHash": "0x01",
            "logIndex": "0x0",
        }
        removed = dict(log, removed=True, logIndex="0x1")
        return _reply(request, [removed, log])

    async with _client(handler) as client:
        source = ContractEventSource(client, announcer, POOL)
        assert await source.latest_block() == 16
        events = await source.fetch_events(1, 16)

    assert len(events) == 1
    assert events[0].commitment == 9


def test_bytes_pair_helper_pads_to_words() -> None:
    assert len(encode_dynamic_bytes_pair(b"", b"")) == 4 * 32
