"""
End-to-end walkthrough on the in-memory mock chain.

Used by ``mantle-privacy demo`` and by the scenario tests.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from .adapters.mock_chain import MockAnnouncer, MockChain, MockProver, MockShieldedPool
from .indexer.ingestor import ChainEventIngestor
from .indexer.state import IndexerState, LocalPathSource
from .indexer.store import IndexerStore
from .privacy_protocol.config import TREE_DEPTH
from .privacy_protocol.exceptions import NullifierAlreadyUsed
from .privacy_protocol.factory import get_tree_hasher
from .privacy_protocol.pool import encode_note, generate_deposit_note
from .privacy_protocol.stealth import (
    StealthKeys,
    generate_keypair,
    generate_stealth_address,
    generate_stealth_meta_address,
    scan_announcements,
)
from .withdraw.orchestrator import WithdrawalOrchestrator

logger = logging.getLogger(__name__)

DEMO_AMOUNT = 10**18


async def run_demo(
    deposits: int = 5,
    depth: int = TREE_DEPTH,
    tree_hash: Optional[str] = None,
    echo: Callable[[str], Any] = print,
) -> Dict[str, Any]:
    hasher = get_tree_hasher(prefer=tree_hash)
    chain = MockChain()
    announcer = MockAnnouncer(chain)
    pool = MockShieldedPool(chain, hasher, depth=depth)
    store = IndexerStore(":memory:")
    state = IndexerState(store, hasher=hasher, depth=depth, start_block=1)
    ingestor = ChainEventIngestor(state, chain, blocks_per_scan=100, scan_interval=0.1)

    try:
        echo(f"\n[1] Recipient keys ({hasher.name} tree, depth {depth})")
        viewing = generate_keypair()
        spending = generate_keypair()
        meta = generate_stealth_meta_address(viewing.public_key, spending.public_key)
        echo(f"    meta-address: {meta.encode()[:32]}...")

        echo("[2] Sender derives a stealth address and announces it")
        info = generate_stealth_address(meta)
        announcer.announce(
            info.scheme_id, info.stealth_address, info.ephemeral_public_key, info.metadata
        )
        echo(f"    stealth address: {info.stealth_address} (view tag {info.view_tag})")

        echo(f"[3] {deposits} deposits of {DEMO_AMOUNT} into the pool")
        notes = [generate_deposit_note(DEMO_AMOUNT) for _ in range(deposits)]
        for deposit_note in notes:
            pool.deposit(deposit_note.commitment, deposit_note.amount)

        echo("[4] Indexer catches up")
        await ingestor.catch_up()
        view = state.view()
        echo(f"    leaves: {view.tree.size}, root matches contract: {view.tree.root == pool.current_root()}")

        echo("[5] Recipient scans announcements")
        keys = StealthKeys.from_private_keys(viewing.private_key, spending.private_key)
        report = scan_announcements(keys, store.list_announcements(limit=1000))
        echo(f"    matches: {len(report.matches)} of {report.scanned}")

        target = notes[min(3, len(notes) - 1)]
        echo(f"[6] Withdraw note at leaf {view.tree.index_of(target.commitment)} to the stealth address")
        orchestrator = WithdrawalOrchestrator(
            pool,
            LocalPathSource(state),
            MockProver(hasher),
            hasher,
            confirm_timeout=5.0,
            poll_interval=0.01,
        )
        result = await orchestrator.withdraw(encode_note(target), info.stealth_address)
        echo(f"    confirmed in {result.tx_hash[:18]}... at block {result.block_number}")
        await ingestor.catch_up()

        echo("[7] Second withdrawal of the same note")
        double_spend_rejected = False
        try:
            await orchestrator.withdraw(encode_note(target), info.stealth_address)
        except NullifierAlreadyUsed:
            double_spend_rejected = True
            echo("    rejected: nullifier already used")

        return {
            "leaves": state.view().tree.size,
            "root": state.view().tree.root,
            "contract_root": pool.current_root(),
            "matches": len(report.matches),
            "withdrawn": 1,
            "double_spend_rejected": double_spend_rejected,
            "stealth_address": info.stealth_address,
        }
    finally:
        store.close()
