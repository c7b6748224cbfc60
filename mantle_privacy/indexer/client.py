"""Async client for the indexer query API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..chain.events import AnnouncementEvent
from ..privacy_protocol.encoding import to_bytes
from ..privacy_protocol.exceptions import ChainTimeout, CommitmentNotIndexed, PrivacyProtocolError
from ..privacy_protocol.pool.merkle import SiblingPath

logger = logging.getLogger(__name__)


class IndexerClientError(PrivacyProtocolError):
    """Indexer API returned an unexpected response."""

    retryable = True


def _announcement_from_json(data: Dict[str, Any]) -> AnnouncementEvent:
    return AnnouncementEvent(
        scheme_id=int(data["schemeId"]),
        stealth_address=data["stealthAddress"],
        caller=data["caller"],
        ephemeral_public_key=to_bytes(data["ephemeralPubKey"]),
        metadata=to_bytes(data["metadata"]),
        block_number=int(data["blockNumber"]),
        transaction_hash=data["transactionHash"],
        log_index=int(data["logIndex"]),
    )


class IndexerClient:
    """
    Talks to a running indexer. Also serves as the withdrawal path source.

    Example:
        >>> async with IndexerClient("http://localhost:3001") as client:
        ...     path = await client.get_path(commitment)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "IndexerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            return await self._client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise ChainTimeout(f"indexer request {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise IndexerClientError(f"indexer request {path} failed: {exc}") from exc

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._get(path, params)
        if response.status_code != 200:
            raise IndexerClientError(f"{path} returned HTTP {response.status_code}")
        return response.json()

    async def health(self) -> Dict[str, Any]:
        return await self._get_json("/health")

    async def status(self) -> Dict[str, Any]:
        return await self._get_json("/api/status")

    async def get_merkle_root(self) -> int:
        return int((await self._get_json("/api/merkle-root"))["root"])

    async def get_path(self, commitment: int) -> SiblingPath:
        response = await self._get(f"/api/merkle-path/{commitment}")
        if response.status_code == 404:
            raise CommitmentNotIndexed(f"commitment {commitment} is not indexed")
        if response.status_code != 200:
            raise IndexerClientError(f"merkle-path returned HTTP {response.status_code}")
        return SiblingPath.from_dict(response.json())

    async def is_nullifier_spent(self, nullifier_hash: int) -> bool:
        data = await self._get_json(f"/api/nullifier/{nullifier_hash}")
        return bool(data["used"])

    async def get_announcements(
        self,
        from_block: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AnnouncementEvent]:
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if from_block is not None:
            params["fromBlock"] = from_block
        rows = await self._get_json("/api/announcements", params)
        return [_announcement_from_json(row) for row in rows]

    async def iter_all_announcements(self, from_block: Optional[int] = None, page_size: int = 500):
        offset = 0
        while True:
            page = await self.get_announcements(from_block, page_size, offset)
            for announcement in page:
                yield announcement
            if len(page) < page_size:
                return
            offset += page_size
