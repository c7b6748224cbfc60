"""Resumable chain event ingestion loop."""

from __future__ import annotations

import logging
from typing import Optional

import trio

from ..chain.rpc import EventSource
from ..privacy_protocol.exceptions import (
    ChainError,
    ConsistencyError,
    LivenessError,
    TreeFull,
    ValidationError,
)
from .state import IndexerState, RangeResult

logger = logging.getLogger(__name__)

DEFAULT_BLOCKS_PER_SCAN = 1000
DEFAULT_SCAN_INTERVAL = 5.0


class ChainEventIngestor:
    """
    Single writer that advances the indexer cursor range by range.

    Each range [cursor + 1, min(cursor + blocks_per_scan, head)] is fetched,
    validated and committed as a unit. Errors leave the cursor where it was,
    so the same range is retried on the next tick.
    """

    def __init__(
        self,
        state: IndexerState,
        source: EventSource,
        blocks_per_scan: int = DEFAULT_BLOCKS_PER_SCAN,
        scan_interval: float = DEFAULT_SCAN_INTERVAL,
    ) -> None:
        if blocks_per_scan < 1:
            raise ValueError("blocks_per_scan must be >= 1")
        self.state = state
        self.source = source
        self.blocks_per_scan = blocks_per_scan
        self.scan_interval = scan_interval
        self.last_error: Optional[str] = None

    async def scan_once(self) -> Optional[RangeResult]:
        """Process one range. Returns None when already at the chain head."""
        latest = await self.source.latest_block()
        from_block = self.state.last_block_scanned + 1
        if from_block > latest:
            return None
        to_block = min(from_block + self.blocks_per_scan - 1, latest)

        events = await self.source.fetch_events(from_block, to_block)
        result = self.state.apply_range(from_block, to_block, events)
        logger.info(
            "Scanned blocks %d-%d: %s new rows, %d new leaves",
            from_block,
            to_block,
            result.inserted,
            result.new_leaves,
        )
        return result

    async def catch_up(self) -> int:
        """Scan until the cursor reaches the head. Returns ranges processed."""
        ranges = 0
        while await self.scan_once() is not None:
            ranges += 1
        return ranges

    async def run(self, task_status=trio.TASK_STATUS_IGNORED) -> None:
        """Periodic scan loop. Only TreeFull (and cancellation) stops it."""
        logger.info(
            "Ingestor starting from block %d (blocks_per_scan=%d, interval=%.1fs)",
            self.state.last_block_scanned + 1,
            self.blocks_per_scan,
            self.scan_interval,
        )
        task_status.started()
        while True:
            try:
                await self.catch_up()
                self.last_error = None
            except TreeFull:
                logger.critical("Merkle tree is full; stopping ingestion")
                raise
            except (ChainError, LivenessError, ConsistencyError, ValidationError) as exc:
                self.last_error = str(exc)
                logger.warning(
                    "Scan failed at block %d, will retry: %s",
                    self.state.last_block_scanned + 1,
                    exc,
                )
            await trio.sleep(self.scan_interval)
