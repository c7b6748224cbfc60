"""HTTP tests for the indexer query API."""

import pytest
import trio
from fastapi.testclient import TestClient

from mantle_privacy.adapters.mock_chain import (
    MockAnnouncer,
    MockChain,
    MockShieldedPool,
    mock_proof_calldata,
)
from mantle_privacy.indexer.api import create_app
from mantle_privacy.indexer.ingestor import ChainEventIngestor
from mantle_privacy.indexer.state import IndexerState
from mantle_privacy.indexer.store import IndexerStore
from mantle_privacy.privacy_protocol.encoding import address_to_int
from mantle_privacy.privacy_protocol.pool.hashing import KeccakFieldHasher
from mantle_privacy.privacy_protocol.pool.merkle import SiblingPath, verify_sibling_path

HASHER = KeccakFieldHasher()
STEALTH = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
RECIPIENT = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
COMMITMENTS = [1111, 2222, 3333]
NULLIFIER_HASH = 424242


@pytest.fixture
def indexed():
    chain = MockChain()
    pool = MockShieldedPool(chain, HASHER, depth=4)
    announcer = MockAnnouncer(chain)

    announcer.announce(1, STEALTH, b"\x02" + b"\x07" * 32, b"\x5c")
    for commitment in COMMITMENTS:
        pool.deposit(commitment, 5)
    root = pool.current_root()
    signals = [root, NULLIFIER_HASH, address_to_int(RECIPIENT), 5]
    pool.withdraw(mock_proof_calldata(signals), root, NULLIFIER_HASH, RECIPIENT, 5)

    store = IndexerStore(":memory:")
    state = IndexerState(store, hasher=HASHER, depth=4, start_block=1)
    ingestor = ChainEventIngestor(state, chain)
    trio.run(ingestor.catch_up)
    yield pool, state, TestClient(create_app(state, ingestor))
    store.close()


def test_health(indexed):
    _, _, client = indexed
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_status_reports_counts_and_root(indexed):
    pool, state, client = indexed
    body = client.get("/api/status").json()
    assert body["lastBlockScanned"] == str(state.last_block_scanned)
    assert body["announcementCount"] == 1
    assert body["depositCount"] == 3
    assert body["withdrawalCount"] == 1
    assert body["leafCount"] == 3
    assert body["merkleRoot"] == str(pool.current_root())
    assert body["treeHash"] == "keccak"
    assert body["lastError"] is None


def test_merkle_root(indexed):
    pool, _, client = indexed
    assert client.get("/api/merkle-root").json() == {
        "root": str(pool.current_root()),
        "leafCount": 3,
    }


@pytest.mark.parametrize("form", [str, hex])
def test_merkle_path_accepts_decimal_and_hex(indexed, form):
    pool, _, client = indexed
    response = client.get(f"/api/merkle-path/{form(2222)}")
    assert response.status_code == 200
    path = SiblingPath.from_dict(response.json())
    assert path.leaf_index == 1
    assert verify_sibling_path(path, HASHER)
    assert pool.known_root(path.root)


def test_merkle_path_errors(indexed):
    _, _, client = indexed
    assert client.get("/api/merkle-path/9999").status_code == 404
    assert client.get("/api/merkle-path/not-a-number").status_code == 400


def test_nullifier_lookup(indexed):
    _, _, client = indexed
    spent = client.get(f"/api/nullifier/{NULLIFIER_HASH}").json()
    assert spent["used"] is True
    assert spent["nullifierHash"] == str(NULLIFIER_HASH)
    assert spent["withdrawal"]["recipient"] == RECIPIENT
    assert spent["withdrawal"]["amount"] == "5"

    unspent = client.get("/api/nullifier/1").json()
    assert unspent == {"nullifierHash": "1", "used": False, "withdrawal": None}
    assert client.get("/api/nullifier/xyz").status_code == 400


def test_announcements(indexed):
    _, _, client = indexed
    rows = client.get("/api/announcements").json()
    assert len(rows) == 1
    assert rows[0]["stealthAddress"] == STEALTH
    assert rows[0]["metadata"] == "0x5c"

    assert client.get("/api/announcements", params={"fromBlock": 2}).json() == []
    assert len(client.get(f"/api/announcements/{STEALTH.lower()}").json()) == 1
    assert client.get("/api/announcements/0x1234").status_code == 400
    assert client.get("/api/announcements", params={"stealthAddress": "nope"}).status_code == 400


def test_deposits_and_withdrawals_pages(indexed):
    _, _, client = indexed
    deposits = client.get("/api/deposits", params={"limit": 2, "offset": 1}).json()
    assert [d["commitment"] for d in deposits] == ["2222", "3333"]
    assert [d["leafIndex"] for d in deposits] == [1, 2]

    withdrawals = client.get("/api/withdrawals").json()
    assert [w["nullifierHash"] for w in withdrawals] == [str(NULLIFIER_HASH)]


def test_page_size_is_bounded(indexed):
    _, _, client = indexed
    assert client.get("/api/deposits", params={"limit": 0}).status_code == 422
    assert client.get("/api/deposits", params={"limit": 5000}).status_code == 422
    assert client.get("/api/withdrawals", params={"offset": -1}).status_code == 422
