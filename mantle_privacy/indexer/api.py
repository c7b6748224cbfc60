"""Read-only HTTP query service over the indexer state."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Annotated, Any, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect

from ..chain.events import announcement_to_dict, deposit_to_dict, withdrawal_to_dict
from ..privacy_protocol.encoding import is_address, parse_field_element
from ..privacy_protocol.exceptions import CommitmentNotIndexed, ValidationError
from .feed import EventFeed, make_message, status_data
from .state import IndexerState

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000

Limit = Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)]
Offset = Annotated[int, Query(ge=0)]


def _parse_field_param(value: str, name: str) -> int:
    try:
        return parse_field_element(value, name)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_app(state: IndexerState, ingestor=None, feed: Optional[EventFeed] = None) -> FastAPI:
    """
    Build the query API bound to one IndexerState.

    Every handler reads a single IndexerView so a response never mixes two
    tree states. All 256-bit values are rendered as decimal strings.
    ``/ws`` pushes every committed range through ``feed``; a new feed is
    registered as a state listener when none is given.
    """
    app = FastAPI(title="Mantle Privacy Indexer")
    if feed is None:
        feed = EventFeed()
        state.add_listener(feed.publish_range)
    app.state.feed = feed

    @app.get("/health")
    def health() -> dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/status")
    def status() -> dict[str, Any]:
        view = state.view()
        counts = state.store.counts()
        return {
            "lastBlockScanned": str(view.last_block_scanned),
            "announcementCount": counts["announcements"],
            "depositCount": counts["deposits"],
            "withdrawalCount": counts["withdrawals"],
            "leafCount": view.tree.size,
            "merkleRoot": str(view.tree.root),
            "treeHash": state.hasher.name,
            "lastError": getattr(ingestor, "last_error", None),
        }

    @app.get("/api/merkle-root")
    def merkle_root() -> dict[str, Any]:
        view = state.view()
        return {"root": str(view.tree.root), "leafCount": view.tree.size}

    @app.get("/api/merkle-path/{commitment}")
    def merkle_path(commitment: str) -> dict[str, Any]:
        value = _parse_field_param(commitment, "commitment")
        try:
            path = state.view().get_path_for_commitment(value)
        except CommitmentNotIndexed:
            raise HTTPException(status_code=404, detail="Commitment not found in tree")
        return path.to_dict()

    @app.get("/api/nullifier/{nullifier_hash}")
    def nullifier(nullifier_hash: str) -> dict[str, Any]:
        value = _parse_field_param(nullifier_hash, "nullifierHash")
        used = state.view().is_nullifier_spent(value)
        withdrawal = state.store.find_withdrawal(value) if used else None
        return {
            "nullifierHash": str(value),
            "used": used,
            "withdrawal": withdrawal_to_dict(withdrawal) if withdrawal else None,
        }

    @app.get("/api/announcements")
    def announcements(
        limit: Limit = 100,
        offset: Offset = 0,
        from_block: Annotated[Optional[int], Query(alias="fromBlock", ge=0)] = None,
        stealth_address: Annotated[Optional[str], Query(alias="stealthAddress")] = None,
    ) -> list[dict[str, Any]]:
        if stealth_address is not None and not is_address(stealth_address):
            raise HTTPException(status_code=400, detail="invalid stealthAddress")
        rows = state.store.list_announcements(stealth_address, from_block, limit, offset)
        return [announcement_to_dict(a) for a in rows]

    @app.get("/api/announcements/{stealth_address}")
    def announcements_for(stealth_address: str) -> list[dict[str, Any]]:
        if not is_address(stealth_address):
            raise HTTPException(status_code=400, detail="invalid stealthAddress")
        rows = state.store.list_announcements(stealth_address, limit=MAX_PAGE_SIZE)
        return [announcement_to_dict(a) for a in rows]

    @app.get("/api/deposits")
    def deposits(limit: Limit = 100, offset: Offset = 0) -> list[dict[str, Any]]:
        return [deposit_to_dict(d) for d in state.store.list_deposits(limit, offset)]

    @app.get("/api/withdrawals")
    def withdrawals(limit: Limit = 100, offset: Offset = 0) -> list[dict[str, Any]]:
        return [withdrawal_to_dict(w) for w in state.store.list_withdrawals(limit, offset)]

    @app.websocket("/ws")
    async def events(websocket: WebSocket) -> None:
        await websocket.accept()
        subscription = feed.subscribe()
        logger.info("Feed client connected (%d total)", len(feed))
        try:
            await websocket.send_json(
                make_message(
                    "connected",
                    status_data(state.view()),
                    message="Connected to Mantle Privacy Indexer",
                )
            )
            while True:
                await websocket.send_json(await subscription.get())
        except WebSocketDisconnect:
            pass
        finally:
            feed.unsubscribe(subscription)
            logger.info("Feed client disconnected (%d left)", len(feed))

    return app


def serve_in_thread(app: FastAPI, host: str, port: int) -> tuple[uvicorn.Server, threading.Thread]:
    """Run uvicorn beside the trio ingestor. Call ``server.should_exit = True`` to stop."""
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))
    thread = threading.Thread(target=server.run, name="indexer-api", daemon=True)
    thread.start()
    logger.info("Query API listening on http://%s:%d", host, port)
    return server, thread
