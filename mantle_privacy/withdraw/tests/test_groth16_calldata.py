"""Tests for Groth16 proof handling and the snarkjs prover wrapper."""

import json
import sys
from pathlib import Path

import pytest

from mantle_privacy.privacy_protocol.exceptions import ProofGenerationError, ProofTimeout
from mantle_privacy.privacy_protocol.pool.commitments import build_note
from mantle_privacy.privacy_protocol.pool.hashing import KeccakFieldHasher
from mantle_privacy.privacy_protocol.pool.merkle import IncrementalMerkleReplica
from mantle_privacy.withdraw.prover import (
    Groth16Proof,
    SnarkjsProver,
    check_calldata,
    check_public_signals,
)
from mantle_privacy.withdraw.witness import build_witness

RECIPIENT = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"

SNARKJS_PROOF = {
    "pi_a": ["1", "2", "1"],
    "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
    "pi_c": ["7", "8", "1"],
    "protocol": "groth16",
}

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script prover")


@pytest.fixture
def witness():
    note = build_note(5, 6, 10)
    tree = IncrementalMerkleReplica(hasher=KeccakFieldHasher(), depth=3)
    tree.insert(note.commitment)
    return build_witness(note, tree.get_sibling_path(0), RECIPIENT)


@pytest.fixture
def assets(tmp_path):
    wasm = tmp_path / "withdraw.wasm"
    zkey = tmp_path / "withdraw_final.zkey"
    wasm.write_bytes(b"\x00asm")
    zkey.write_bytes(b"zkey")
    return wasm, zkey


def _fake_snarkjs(tmp_path, body: str):
    script = tmp_path / "snarkjs"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(0o755)
    return str(script)


class TestGroth16Proof:
    def test_calldata_swaps_b_coordinates(self):
        proof = Groth16Proof.from_snarkjs(SNARKJS_PROOF, ["9", "10", "11", "12"])
        assert proof.to_calldata() == [1, 2, 4, 3, 6, 5, 7, 8]
        assert proof.public_signals == (9, 10, 11, 12)

    def test_malformed_snarkjs_output(self):
        with pytest.raises(ProofGenerationError):
            Groth16Proof.from_snarkjs({"pi_a": ["1"]}, [])
        with pytest.raises(ProofGenerationError):
            Groth16Proof.from_snarkjs(SNARKJS_PROOF, ["x"])

    def test_calldata_length(self):
        check_calldata(list(range(8)))
        with pytest.raises(ProofGenerationError):
            check_calldata(list(range(7)))

    def test_public_signals_must_match_witness(self, witness):
        good = Groth16Proof((1, 2), ((3, 4), (5, 6)), (7, 8), witness.public_signals())
        check_public_signals(good, witness)
        bad = Groth16Proof((1, 2), ((3, 4), (5, 6)), (7, 8), (0, 0, 0, 0))
        with pytest.raises(ProofGenerationError):
            check_public_signals(bad, witness)


class TestSnarkjsProver:
    @pytest.mark.trio
    async def test_missing_assets(self, tmp_path, witness):
        prover = SnarkjsProver(tmp_path / "absent.wasm", tmp_path / "absent.zkey")
        with pytest.raises(ProofGenerationError, match="wasm"):
            await prover.prove(witness)

    @pytest.mark.trio
    async def test_missing_binary(self, tmp_path, assets, witness):
        wasm, zkey = assets
        prover = SnarkjsProver(wasm, zkey, snarkjs=str(tmp_path / "no-such-snarkjs"))
        with pytest.raises(ProofGenerationError, match="cannot run"):
            await prover.prove(witness)

    @posix_only
    @pytest.mark.trio
    async def test_reads_proof_written_by_subprocess(self, tmp_path, assets, witness):
        public = json.dumps([str(s) for s in witness.public_signals()])
        script = _fake_snarkjs(
            tmp_path,
            f"echo '{json.dumps(SNARKJS_PROOF)}' > \"$6\"\necho '{public}' > \"$7\"\n",
        )
        proof = await SnarkjsProver(*assets, snarkjs=script).prove(witness)
        assert proof.public_signals == witness.public_signals()
        assert proof.to_calldata()[:4] == [1, 2, 4, 3]

    @posix_only
    @pytest.mark.trio
    async def test_signal_mismatch_is_rejected(self, tmp_path, assets, witness):
        script = _fake_snarkjs(
            tmp_path,
            f"echo '{json.dumps(SNARKJS_PROOF)}' > \"$6\"\necho '[\"1\",\"2\",\"3\",\"4\"]' > \"$7\"\n",
        )
        with pytest.raises(ProofGenerationError, match="public signals"):
            await SnarkjsProver(*assets, snarkjs=script).prove(witness)

    @posix_only
    @pytest.mark.trio
    async def test_failing_prover_reports_stderr(self, tmp_path, assets, witness):
        script = _fake_snarkjs(tmp_path, "echo 'constraint doesnt match' >&2\nexit 1\n")
        with pytest.raises(ProofGenerationError, match="constraint doesnt match"):
            await SnarkjsProver(*assets, snarkjs=script).prove(witness)

    @posix_only
    @pytest.mark.trio
    async def test_slow_prover_times_out(self, tmp_path, assets, witness):
        script = _fake_snarkjs(tmp_path, "sleep 5\n")
        prover = SnarkjsProver(*assets, snarkjs=script, timeout=0.2)
        with pytest.raises(ProofTimeout):
            await prover.prove(witness)

    @posix_only
    @pytest.mark.trio
    async def test_scratch_files_are_removed(self, tmp_path, assets, witness):
        public = json.dumps([str(s) for s in witness.public_signals()])
        seen = tmp_path / "input_seen"
        script = _fake_snarkjs(
            tmp_path,
            f"echo \"$3\" > {seen}\n"
            f"echo '{json.dumps(SNARKJS_PROOF)}' > \"$6\"\necho '{public}' > \"$7\"\n",
        )
        await SnarkjsProver(*assets, snarkjs=script).prove(witness)
        input_path = Path(seen.read_text().strip())
        assert input_path.name == "input.json"
        assert not input_path.parent.exists()


class TestLocalVerification:
    @pytest.fixture
    def proof(self, witness):
        return Groth16Proof.from_snarkjs(SNARKJS_PROOF, witness.public_signals())

    def test_snarkjs_json_round_trip(self, proof):
        exported = proof.to_snarkjs()
        assert exported["pi_b"][2] == ["1", "0"]
        assert Groth16Proof.from_snarkjs(exported, proof.public_signals) == proof

    @pytest.mark.trio
    async def test_no_verification_key_skips_check(self, assets, proof):
        assert await SnarkjsProver(*assets).verify(proof)

    @pytest.mark.trio
    async def test_missing_verification_key(self, tmp_path, assets, proof):
        prover = SnarkjsProver(*assets, vkey_path=tmp_path / "absent_vkey.json")
        with pytest.raises(ProofGenerationError, match="verification key"):
            await prover.verify(proof)

    @posix_only
    @pytest.mark.trio
    async def test_accepted_proof(self, tmp_path, assets, proof):
        vkey = tmp_path / "verification_key.json"
        vkey.write_text("{}")
        seen = tmp_path / "seen_proof.json"
        script = _fake_snarkjs(
            tmp_path,
            f"[ \"$2\" = verify ] || exit 3\n[ \"$3\" = {vkey} ] || exit 4\n"
            f"cp \"$5\" {seen}\necho 'OK!'\n",
        )
        prover = SnarkjsProver(*assets, vkey_path=vkey, snarkjs=script)
        assert await prover.verify(proof)
        assert json.loads(seen.read_text())["pi_a"][:2] == ["1", "2"]

    @posix_only
    @pytest.mark.trio
    async def test_rejected_proof(self, tmp_path, assets, proof):
        vkey = tmp_path / "verification_key.json"
        vkey.write_text("{}")
        script = _fake_snarkjs(tmp_path, "echo 'Invalid proof'\nexit 1\n")
        prover = SnarkjsProver(*assets, vkey_path=vkey, snarkjs=script)
        assert not await prover.verify(proof)
