"""Unit tests for the SQLite indexer store."""

import pytest

from mantle_privacy.chain.events import AnnouncementEvent, DepositEvent, WithdrawalEvent
from mantle_privacy.indexer.store import IndexerStore

STEALTH = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
CALLER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
RECIPIENT = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


def _announcement(block: int, log_index: int = 0, address: str = STEALTH) -> AnnouncementEvent:
    return AnnouncementEvent(
        scheme_id=1,
        stealth_address=address,
        caller=CALLER,
        ephemeral_public_key=b"\x02" + bytes([block]) * 32,
        metadata=b"\x11",
        block_number=block,
        transaction_hash=f"0x{block:064x}",
        log_index=log_index,
    )


def _deposit(leaf_index: int, commitment: int) -> DepositEvent:
    return DepositEvent(
        commitment=commitment,
        leaf_index=leaf_index,
        amount=10**18,
        timestamp=1_700_000_000 + leaf_index,
        block_number=leaf_index + 1,
        transaction_hash=f"0x{leaf_index + 100:064x}",
        log_index=0,
    )


def _withdrawal(nullifier_hash: int, block: int) -> WithdrawalEvent:
    return WithdrawalEvent(
        recipient=RECIPIENT,
        nullifier_hash=nullifier_hash,
        amount=10**18,
        timestamp=1_700_000_100,
        block_number=block,
        transaction_hash=f"0x{block + 500:064x}",
        log_index=0,
    )


@pytest.fixture
def store():
    store = IndexerStore(":memory:")
    yield store
    store.close()


def test_cursor_initialisation(store):
    assert store.get_cursor() is None
    assert store.init_cursor(9) == 9
    # a second init keeps the stored value
    assert store.init_cursor(0) == 9


def test_commit_range_advances_cursor(store):
    store.init_cursor(-1)
    counts = store.commit_range(
        5,
        announcements=[_announcement(2)],
        deposits=[_deposit(0, 11), _deposit(1, 22)],
        withdrawals=[_withdrawal(7, 4)],
    )
    assert counts == {"announcements": 1, "deposits": 2, "withdrawals": 1}
    assert store.get_cursor() == 5
    assert store.counts() == {"announcements": 1, "deposits": 2, "withdrawals": 1}


def test_replaying_a_range_inserts_nothing(store):
    store.commit_range(5, [_announcement(2)], [_deposit(0, 11)], [_withdrawal(7, 4)])
    counts = store.commit_range(5, [_announcement(2)], [_deposit(0, 11)], [_withdrawal(7, 4)])
    assert counts == {"announcements": 0, "deposits": 0, "withdrawals": 0}
    assert store.counts() == {"announcements": 1, "deposits": 1, "withdrawals": 1}


def test_events_round_trip_through_rows(store):
    announcement = _announcement(3, log_index=2)
    deposit = _deposit(0, 2**250 + 1)
    withdrawal = _withdrawal(2**200, 6)
    store.commit_range(6, [announcement], [deposit], [withdrawal])

    assert store.list_announcements() == [announcement]
    assert store.load_deposits() == [deposit]
    assert store.list_withdrawals() == [withdrawal]
    assert store.load_nullifiers() == {2**200}
    assert store.find_withdrawal(2**200) == withdrawal
    assert store.find_withdrawal(1) is None


def test_announcement_filters(store):
    other = "0x" + "11" * 20
    store.commit_range(
        10,
        [_announcement(2), _announcement(4, address=other), _announcement(6)],
    )
    assert [a.block_number for a in store.list_announcements(from_block=3)] == [4, 6]
    assert [a.block_number for a in store.list_announcements(STEALTH.lower())] == [2, 6]
    assert [a.block_number for a in store.list_announcements(limit=1, offset=1)] == [4]


def test_deposits_are_ordered_by_leaf(store):
    store.commit_range(3, deposits=[_deposit(1, 22), _deposit(0, 11), _deposit(2, 33)])
    assert [d.leaf_index for d in store.load_deposits()] == [0, 1, 2]
    assert [d.commitment for d in store.list_deposits(limit=2)] == [11, 22]


def test_file_backed_store_survives_reopen(tmp_path):
    path = str(tmp_path / "nested" / "indexer.db")
    first = IndexerStore(path)
    first.commit_range(4, deposits=[_deposit(0, 11)])
    first.close()

    second = IndexerStore(path)
    try:
        assert second.get_cursor() == 4
        assert [d.commitment for d in second.load_deposits()] == [11]
    finally:
        second.close()
