"""JSON-RPC access to the announcer and shielded pool contracts."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from ..privacy_protocol.exceptions import ChainError, ChainTimeout, TransactionReverted
from .abi import (
    ANNOUNCEMENT_TOPIC,
    DEPOSIT_TOPIC,
    GET_ROOT_SIGNATURE,
    IS_KNOWN_ROOT_SIGNATURE,
    IS_NULLIFIER_USED_SIGNATURE,
    WITHDRAW_SIGNATURE,
    WITHDRAWAL_TOPIC,
    decode_bool,
    decode_revert_reason,
    decode_uint,
    encode_address,
    encode_call,
    encode_uint,
)
from .events import ChainEvent, decode_log, event_sort_key

logger = logging.getLogger(__name__)

DEFAULT_RPC_TIMEOUT = 30.0


class PoolChain(Protocol):
    """Read and write access to the shielded pool used by withdrawals."""

    async def get_root(self) -> int:
        ...

    async def is_known_root(self, root: int) -> bool:
        ...

    async def is_nullifier_used(self, nullifier_hash: int) -> bool:
        ...

    async def submit_withdraw(
        self,
        proof: Sequence[int],
        root: int,
        nullifier_hash: int,
        recipient: str,
        amount: int,
    ) -> str:
        ...

    async def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        ...


class EventSource(Protocol):
    """Ordered stream of tracked events by block range."""

    async def latest_block(self) -> int:
        ...

    async def fetch_events(self, from_block: int, to_block: int) -> List[ChainEvent]:
        ...


class JsonRpcChainClient:
    """
    Thin async JSON-RPC client.

    Writes go through ``eth_sendTransaction`` from a relayer account that the
    node holds unlocked; no signing happens in this process.
    """

    def __init__(
        self,
        rpc_url: str,
        pool_address: Optional[str] = None,
        relayer_address: Optional[str] = None,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.pool_address = pool_address
        self.relayer_address = relayer_address
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "JsonRpcChainClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def request(self, method: str, params: Sequence[Any] = ()) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": list(params),
        }
        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            raise ChainTimeout(f"{method} timed out") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ChainError(f"{method} failed: {exc}") from exc

        error = body.get("error")
        if error:
            reason = decode_revert_reason(error.get("data"))
            message = str(error.get("message", ""))
            if reason is not None or "revert" in message.lower():
                raise TransactionReverted(reason or message)
            raise ChainError(f"{method} error {error.get('code')}: {message}")
        return body.get("result")

    def _require_pool(self) -> str:
        if not self.pool_address:
            raise ChainError("pool address is not configured")
        return self.pool_address

    async def _call(self, data: str) -> str:
        return await self.request(
            "eth_call", [{"to": self._require_pool(), "data": data}, "latest"]
        )

    async def block_number(self) -> int:
        return int(await self.request("eth_blockNumber"), 16)

    async def get_logs(
        self, address: str, topics: Sequence[Any], from_block: int, to_block: int
    ) -> List[Dict[str, Any]]:
        return await self.request(
            "eth_getLogs",
            [
                {
                    "address": address,
                    "topics": list(topics),
                    "fromBlock": hex(from_block),
                    "toBlock": hex(to_block),
                }
            ],
        ) or []

    async def get_root(self) -> int:
        return decode_uint(await self._call(encode_call(GET_ROOT_SIGNATURE)))

    async def is_known_root(self, root: int) -> bool:
        data = encode_call(IS_KNOWN_ROOT_SIGNATURE, [encode_uint(root)])
        return decode_bool(await self._call(data))

    async def is_nullifier_used(self, nullifier_hash: int) -> bool:
        data = encode_call(IS_NULLIFIER_USED_SIGNATURE, [encode_uint(nullifier_hash)])
        return decode_bool(await self._call(data))

    async def submit_withdraw(
        self,
        proof: Sequence[int],
        root: int,
        nullifier_hash: int,
        recipient: str,
        amount: int,
    ) -> str:
        if not self.relayer_address:
            raise ChainError("relayer address is not configured")
        words = [encode_uint(p) for p in proof]
        words += [
            encode_uint(root),
            encode_uint(nullifier_hash),
            encode_address(recipient),
            encode_uint(amount),
        ]
        tx = {
            "from": self.relayer_address,
            "to": self._require_pool(),
            "data": encode_call(WITHDRAW_SIGNATURE, words),
        }
        tx_hash = await self.request("eth_sendTransaction", [tx])
        logger.info("Submitted withdrawal tx %s", tx_hash)
        return tx_hash

    async def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.request("eth_getTransactionReceipt", [tx_hash])


class ContractEventSource:
    """Fetch announcer and pool events through eth_getLogs."""

    def __init__(
        self,
        client: JsonRpcChainClient,
        announcer_address: Optional[str],
        pool_address: Optional[str],
    ) -> None:
        self._client = client
        self._announcer = announcer_address
        self._pool = pool_address

    async def latest_block(self) -> int:
        return await self._client.block_number()

    async def fetch_events(self, from_block: int, to_block: int) -> List[ChainEvent]:
        raw_logs: List[Dict[str, Any]] = []
        if self._announcer:
            raw_logs += await self._client.get_logs(
                self._announcer, [ANNOUNCEMENT_TOPIC], from_block, to_block
            )
        if self._pool:
            raw_logs += await self._client.get_logs(
                self._pool, [[DEPOSIT_TOPIC, WITHDRAWAL_TOPIC]], from_block, to_block
            )
        events = [decode_log(log) for log in raw_logs if not log.get("removed")]
        events.sort(key=event_sort_key)
        return events
