"""
Test CLI commands.

Most commands run in-process through click's CliRunner; the version check
goes through a real interpreter the way a user would invoke it.
"""

import json
import subprocess
import sys

import pytest
from click.testing import CliRunner

from mantle_privacy import __version__
from mantle_privacy.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def keys(runner):
    result = runner.invoke(main, ["keys", "generate", "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def test_cli_version_subprocess():
    result = subprocess.run(
        [sys.executable, "-m", "mantle_privacy.cli", "--version"],
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert result.returncode == 0
    assert __version__ in result.stdout


def test_keys_generate(keys):
    assert set(keys) == {
        "viewingPrivateKey",
        "viewingPublicKey",
        "spendingPrivateKey",
        "spendingPublicKey",
        "metaAddress",
    }
    assert keys["metaAddress"].startswith("st:mnt:0x")


def test_meta_address_from_public_keys(runner, keys):
    result = runner.invoke(
        main, ["stealth", "meta-address", keys["viewingPublicKey"], keys["spendingPublicKey"]]
    )
    assert result.exit_code == 0
    assert result.output.strip() == keys["metaAddress"]


def test_meta_address_pair_format(runner, keys):
    result = runner.invoke(
        main,
        [
            "stealth",
            "meta-address",
            keys["viewingPublicKey"],
            keys["spendingPublicKey"],
            "--format",
            "pair",
        ],
    )
    assert result.exit_code == 0
    assert result.output.strip() == f"{keys['viewingPublicKey']}:{keys['spendingPublicKey']}"

    sent = runner.invoke(main, ["stealth", "send", result.output.strip(), "--json"])
    assert sent.exit_code == 0


def test_send_then_check(runner, keys):
    sent = runner.invoke(main, ["stealth", "send", keys["metaAddress"], "--json"])
    assert sent.exit_code == 0, sent.output
    announcement = json.loads(sent.output)
    assert announcement["schemeId"] == 1

    check_args = [
        "stealth",
        "check",
        "--viewing-key",
        keys["viewingPrivateKey"],
        "--spending-key",
        keys["spendingPrivateKey"],
        "--ephemeral-key",
        announcement["ephemeralPubKey"],
    ]
    owned = runner.invoke(main, check_args + ["--address", announcement["stealthAddress"], "--show-key"])
    assert owned.exit_code == 0
    assert "stealthPrivateKey" in owned.output

    foreign = runner.invoke(main, check_args + ["--address", "0x" + "00" * 20])
    assert foreign.exit_code == 1


def test_send_rejects_bad_meta_address(runner):
    result = runner.invoke(main, ["stealth", "send", "st:mnt:0x1234"])
    assert result.exit_code == 1


def test_note_new_and_inspect(runner, tmp_path):
    output = tmp_path / "note.json"
    created = runner.invoke(main, ["note", "new", "--amount", "1000", "--output", str(output)])
    assert created.exit_code == 0, created.output
    assert output.exists()

    commitment = json.loads(output.read_text())["commitment"]
    from_file = runner.invoke(main, ["note", "inspect", str(output)])
    assert from_file.exit_code == 0
    assert commitment in from_file.output

    token = next(
        line.split(": ", 1)[1] for line in created.output.splitlines() if line.startswith("token: ")
    )
    from_token = runner.invoke(main, ["note", "inspect", token])
    assert from_token.exit_code == 0
    assert commitment in from_token.output


def test_note_inspect_rejects_garbage(runner):
    result = runner.invoke(main, ["note", "inspect", "definitely-not-a-note"])
    assert result.exit_code == 1
    assert "Invalid note" in result.output


def test_note_new_rejects_negative_amount(runner):
    assert runner.invoke(main, ["note", "new", "--amount", "-1"]).exit_code == 1


def test_demo(runner):
    result = runner.invoke(main, ["demo", "--deposits", "4", "--depth", "4", "--tree-hash", "keccak"])
    assert result.exit_code == 0, result.output
    assert "Demo complete" in result.output
    assert "leaves: 4" in result.output
    assert "rejected: nullifier already used" in result.output
