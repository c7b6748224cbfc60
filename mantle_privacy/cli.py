"""
Command-Line Interface for the Mantle privacy toolkit

Key generation, stealth payments, deposit notes, withdrawals and the indexer.
"""

import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

import click
import trio

from mantle_privacy import __version__
from mantle_privacy.privacy_protocol.exceptions import (
    ConfirmationPending,
    NullifierAlreadyUsed,
    PrivacyProtocolError,
)
from mantle_privacy.privacy_protocol.factory import get_tree_hasher
from mantle_privacy.privacy_protocol.encoding import to_hex
from mantle_privacy.privacy_protocol.pool import (
    encode_note,
    generate_deposit_note,
    note_to_json,
    parse_note,
)
from mantle_privacy.privacy_protocol.stealth import (
    StealthKeys,
    check_stealth_address,
    compress_public_key,
    compute_stealth_private_key,
    derive_public_key,
    generate_keypair,
    generate_stealth_address,
    generate_stealth_meta_address,
    parse_stealth_meta_address,
    scan_announcements,
)

logger = logging.getLogger("mantle_privacy.cli")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _fail(message, code=1):
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(code)


def _read_note_argument(value):
    """A note argument is a token, JSON text or a path to a file holding either."""
    if os.path.isfile(value):
        return Path(value).read_text(encoding="utf-8").strip()
    return value


def _load_settings(config):
    from mantle_privacy.indexer.settings import load_settings

    try:
        return load_settings(config)
    except PrivacyProtocolError as e:
        _fail(f"Configuration error: {e}")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    help="Logging level (default: WARNING)",
)
def main(log_level):
    """
    Mantle privacy toolkit

    ERC-5564 stealth addresses and a Poseidon shielded pool with
    Groth16 withdrawals.

    ⚠️  DRAFT - REQUIRES CRYPTO REVIEW BEFORE PRODUCTION USE
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# KEYS
# ============================================================================


META_FORMAT_OPTION = click.option(
    "--format",
    "meta_format",
    type=click.Choice(["st", "pair"]),
    default="st",
    show_default=True,
    help="Meta-address form: st:mnt:0x<view><spend> or the SDK's 0x<view>:0x<spend>",
)


def _encode_meta(meta, meta_format):
    return meta.encode_pair() if meta_format == "pair" else meta.encode()


@main.group()
def keys():
    """Stealth key management."""


@keys.command("generate")
@click.option("--json", "as_json", is_flag=True, help="Print keys as JSON")
@META_FORMAT_OPTION
def keys_generate(as_json, meta_format):
    """Generate a viewing and a spending keypair plus the meta-address."""
    viewing = generate_keypair()
    spending = generate_keypair()
    meta = generate_stealth_meta_address(viewing.public_key, spending.public_key)
    payload = {
        "viewingPrivateKey": to_hex(viewing.private_key),
        "viewingPublicKey": to_hex(viewing.compressed_public_key),
        "spendingPrivateKey": to_hex(spending.private_key),
        "spendingPublicKey": to_hex(spending.compressed_public_key),
        "metaAddress": _encode_meta(meta, meta_format),
    }
    if as_json:
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo(click.style("Stealth keys", fg="cyan", bold=True))
    for name, value in payload.items():
        click.echo(f"  {name}: {value}")
    click.echo(click.style("\n⚠️  Keep the private keys secret. Share only the meta-address.", fg="yellow"))


# ============================================================================
# STEALTH
# ============================================================================


@main.group()
def stealth():
    """Stealth address derivation and scanning."""


@stealth.command("meta-address")
@click.argument("viewing_public_key")
@click.argument("spending_public_key")
@META_FORMAT_OPTION
def stealth_meta_address(viewing_public_key, spending_public_key, meta_format):
    """Encode a meta-address from two public keys."""
    try:
        meta = generate_stealth_meta_address(viewing_public_key, spending_public_key)
    except PrivacyProtocolError as e:
        _fail(str(e))
    click.echo(_encode_meta(meta, meta_format))


@stealth.command("send")
@click.argument("meta_address")
@click.option("--json", "as_json", is_flag=True, help="Print the announcement as JSON")
def stealth_send(meta_address, as_json):
    """Derive a one-time stealth address for a recipient."""
    try:
        info = generate_stealth_address(parse_stealth_meta_address(meta_address))
    except PrivacyProtocolError as e:
        _fail(str(e))

    payload = {
        "schemeId": info.scheme_id,
        "stealthAddress": info.stealth_address,
        "ephemeralPubKey": to_hex(info.ephemeral_public_key),
        "metadata": to_hex(info.metadata),
        "viewTag": info.view_tag,
    }
    if as_json:
        click.echo(json.dumps(payload, indent=2))
        return
    click.echo(click.style("✓ Stealth address derived", fg="green"))
    for name, value in payload.items():
        click.echo(f"  {name}: {value}")
    click.echo("\nPublish schemeId, stealthAddress, ephemeralPubKey and metadata through the announcer.")


@stealth.command("check")
@click.option("--viewing-key", required=True, help="Viewing private key (hex)")
@click.option("--spending-key", required=True, help="Spending private key (hex)")
@click.option("--ephemeral-key", required=True, help="Announced ephemeral public key (hex)")
@click.option("--address", required=True, help="Announced stealth address")
@click.option("--show-key", is_flag=True, help="Print the recovered one-time private key")
def stealth_check(viewing_key, spending_key, ephemeral_key, address, show_key):
    """Check whether an announced address belongs to these keys."""
    try:
        stealth_key = compute_stealth_private_key(viewing_key, spending_key, ephemeral_key)
        owned = check_stealth_address(stealth_key, address)
    except PrivacyProtocolError as e:
        _fail(str(e))

    if not owned:
        click.echo(click.style("✗ Not addressed to these keys", fg="yellow"))
        sys.exit(1)
    click.echo(click.style(f"✓ {address} belongs to these keys", fg="green"))
    if show_key:
        click.echo(f"  stealthPrivateKey: {to_hex(stealth_key)}")


@stealth.command("scan")
@click.option("--viewing-key", required=True, help="Viewing private key (hex)")
@click.option("--spending-key", help="Spending private key (hex); omit for watch-only scanning")
@click.option("--spending-public-key", help="Spending public key for watch-only scanning")
@click.option("--indexer-url", default=None, help="Indexer base URL (default: settings)")
@click.option("--from-block", type=int, default=None, help="Only scan announcements from this block")
@click.option("--config", type=click.Path(), default=None, help="YAML settings file")
def stealth_scan(viewing_key, spending_key, spending_public_key, indexer_url, from_block, config):
    """Scan indexed announcements for payments to these keys."""
    from mantle_privacy.indexer.client import IndexerClient

    try:
        if spending_key:
            scan_keys = StealthKeys.from_private_keys(viewing_key, spending_key)
        elif spending_public_key:
            scan_keys = StealthKeys(
                viewing_private_key=derive_public_key(viewing_key).private_key,
                spending_public_key=compress_public_key(spending_public_key),
            )
        else:
            _fail("one of --spending-key or --spending-public-key is required")
    except PrivacyProtocolError as e:
        _fail(str(e))

    url = indexer_url or _load_settings(config).indexer_url

    async def _collect():
        async with IndexerClient(url) as client:
            return [a async for a in client.iter_all_announcements(from_block)]

    try:
        announcements = trio.run(_collect)
    except PrivacyProtocolError as e:
        _fail(f"Indexer unavailable: {e}")

    report = scan_announcements(scan_keys, announcements)
    click.echo(f"Scanned {report.scanned} announcements, {len(report.rejected)} rejected")
    if not report.matches:
        click.echo(click.style("No payments found", fg="yellow"))
        return
    click.echo(click.style(f"✓ {len(report.matches)} payment(s) found", fg="green"))
    for match in report.matches:
        line = f"  {match.stealth_address} (block {match.announcement.block_number})"
        if match.stealth_private_key is not None:
            line += f" key={to_hex(match.stealth_private_key)}"
        click.echo(line)


# ============================================================================
# NOTES
# ============================================================================


@main.group()
def note():
    """Shielded pool deposit notes."""


@note.command("new")
@click.option("--amount", type=int, required=True, help="Deposit amount in base units")
@click.option("--output", type=click.Path(), help="Write the note JSON to this file")
def note_new(amount, output):
    """Create a fresh deposit note."""
    try:
        new_note = generate_deposit_note(amount)
    except PrivacyProtocolError as e:
        _fail(str(e))

    if output:
        Path(output).write_text(note_to_json(new_note), encoding="utf-8")
        click.echo(click.style(f"✓ Note saved to: {output}", fg="green"))
    click.echo(f"commitment: {new_note.commitment}")
    click.echo(f"nullifierHash: {new_note.nullifier_hash}")
    click.echo(f"amount: {new_note.amount}")
    click.echo(f"token: {encode_note(new_note)}")
    click.echo(click.style("\n⚠️  Anyone holding this note can withdraw the deposit.", fg="yellow"))


@note.command("inspect")
@click.argument("note_value")
def note_inspect(note_value):
    """Validate a note (token, JSON, or file) and print its public parts."""
    try:
        parsed = parse_note(_read_note_argument(note_value))
    except PrivacyProtocolError as e:
        _fail(f"Invalid note: {e}")
    click.echo(click.style("✓ Note is valid", fg="green"))
    click.echo(f"  commitment: {parsed.commitment}")
    click.echo(f"  nullifierHash: {parsed.nullifier_hash}")
    click.echo(f"  amount: {parsed.amount}")


# ============================================================================
# WITHDRAW
# ============================================================================


@main.command()
@click.option("--note", "note_value", required=True, help="Note token, JSON, or file")
@click.option("--recipient", required=True, help="Recipient address")
@click.option("--config", type=click.Path(), default=None, help="YAML settings file")
def withdraw(note_value, recipient, config):
    """Withdraw a deposit note through the relayer."""
    from mantle_privacy.chain.rpc import JsonRpcChainClient
    from mantle_privacy.indexer.client import IndexerClient
    from mantle_privacy.withdraw.orchestrator import WithdrawalOrchestrator
    from mantle_privacy.withdraw.prover import SnarkjsProver

    settings = _load_settings(config)

    async def _withdraw():
        async with JsonRpcChainClient(
            settings.rpc_url,
            pool_address=settings.pool_address,
            relayer_address=settings.relayer_address,
            timeout=settings.rpc_timeout,
        ) as chain, IndexerClient(settings.indexer_url, timeout=settings.rpc_timeout) as paths:
            orchestrator = WithdrawalOrchestrator(
                chain,
                paths,
                SnarkjsProver(
                    settings.circuit_wasm,
                    settings.circuit_zkey,
                    settings.circuit_vkey or None,
                    timeout=settings.prove_timeout,
                ),
                get_tree_hasher(prefer=settings.tree_hash),
                confirm_timeout=settings.confirm_timeout,
            )
            return await orchestrator.withdraw(_read_note_argument(note_value), recipient)

    try:
        result = trio.run(_withdraw)
    except ConfirmationPending as e:
        click.echo(click.style(f"⚠️  Submitted but not yet confirmed: {e.tx_hash}", fg="yellow"))
        sys.exit(2)
    except NullifierAlreadyUsed:
        _fail("This note has already been withdrawn")
    except PrivacyProtocolError as e:
        _fail(f"Withdrawal failed: {e}")

    click.echo(click.style("✓ Withdrawal confirmed", fg="green"))
    click.echo(f"  tx: {result.tx_hash}")
    click.echo(f"  recipient: {result.recipient}")
    click.echo(f"  amount: {result.amount}")


# ============================================================================
# INDEXER
# ============================================================================


@main.group()
def indexer():
    """Chain event indexer and query API."""


@indexer.command("run")
@click.option("--config", type=click.Path(), default=None, help="YAML settings file")
@click.option("--port", type=int, default=None, help="API port (overrides settings)")
def indexer_run(config, port):
    """Scan the chain and serve the query API."""
    from mantle_privacy.chain.rpc import ContractEventSource, JsonRpcChainClient
    from mantle_privacy.indexer.api import create_app, serve_in_thread
    from mantle_privacy.indexer.ingestor import ChainEventIngestor
    from mantle_privacy.indexer.state import IndexerState
    from mantle_privacy.indexer.store import IndexerStore

    settings = _load_settings(config)
    if port is not None:
        settings = replace(settings, port=port).validate()

    store = IndexerStore(settings.database_path)
    try:
        state = IndexerState(
            store,
            hasher=get_tree_hasher(prefer=settings.tree_hash),
            start_block=settings.start_block,
        )
    except PrivacyProtocolError as e:
        store.close()
        _fail(f"Cannot restore indexer state: {e}")

    client = JsonRpcChainClient(settings.rpc_url, timeout=settings.rpc_timeout)
    ingestor = ChainEventIngestor(
        state,
        ContractEventSource(client, settings.announcer_address, settings.pool_address),
        blocks_per_scan=settings.blocks_per_scan,
        scan_interval=settings.scan_interval,
    )

    async def _ingest():
        async with client:
            await ingestor.run()

    app = create_app(state, ingestor)
    server, thread = serve_in_thread(app, settings.host, settings.port)
    click.echo(click.style(f"✓ Indexer running, API on port {settings.port}", fg="green"))
    try:
        trio.run(_ingest)
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
    except PrivacyProtocolError as e:
        _fail(f"Indexer stopped: {e}")
    finally:
        server.should_exit = True
        thread.join(timeout=5)
        store.close()


@indexer.command("status")
@click.option("--indexer-url", default=None, help="Indexer base URL (default: settings)")
@click.option("--config", type=click.Path(), default=None, help="YAML settings file")
def indexer_status(indexer_url, config):
    """Print the status of a running indexer."""
    from mantle_privacy.indexer.client import IndexerClient

    url = indexer_url or _load_settings(config).indexer_url

    async def _status():
        async with IndexerClient(url) as client:
            return await client.status()

    try:
        status = trio.run(_status)
    except PrivacyProtocolError as e:
        _fail(f"Indexer unavailable: {e}")
    click.echo(json.dumps(status, indent=2))


# ============================================================================
# DEMO
# ============================================================================


@main.command()
@click.option("--deposits", type=click.IntRange(1, 64), default=5, help="Number of deposits (default: 5)")
@click.option("--depth", type=click.IntRange(2, 32), default=20, help="Merkle tree depth (default: 20)")
@click.option(
    "--tree-hash",
    type=click.Choice(["poseidon", "keccak"]),
    default=None,
    help="Tree node hash (default: feature flag)",
)
def demo(deposits, depth, tree_hash):
    """
    End-to-end run on an in-memory chain.

    Sends a stealth payment, makes deposits, indexes them, withdraws one
    note to the stealth address and shows the double spend being refused.
    """
    from mantle_privacy.demo import run_demo

    click.echo("\n" + "=" * 70)
    click.echo(click.style("Mantle Privacy Demo (mock chain)", fg="cyan", bold=True))
    click.echo("=" * 70)
    try:
        summary = trio.run(run_demo, deposits, depth, tree_hash, click.echo)
    except PrivacyProtocolError as e:
        _fail(f"Demo failed: {e}")

    click.echo("\n" + "=" * 70)
    click.echo(click.style("✓ Demo complete", fg="green"))
    click.echo(f"  leaves: {summary['leaves']}  withdrawn: {summary['withdrawn']}")
    click.echo("=" * 70 + "\n")


if __name__ == "__main__":
    main()
