"""
Deposit note serialization.

Two formats are supported:
    - JSON with decimal-string fields (secret, nullifier, commitment,
      nullifierHash, amount), the format wallets save after a deposit
    - a compact CBOR token ``mantle-note-v1-<hex>`` for copy/paste

Parsing always recomputes the commitment and nullifier hash; a note whose
stored values disagree with its secrets is rejected as malformed.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping

try:
    import cbor2
except ImportError:
    raise ImportError("cbor2 is required for note encoding. Install with: pip install cbor2")

from ..config import NOTE_TOKEN_PREFIX, NOTE_VERSION
from ..encoding import parse_field_element
from ..exceptions import MalformedNote, ValidationError
from .commitments import DepositNote, build_note

_REQUIRED_FIELDS = ("secret", "nullifier", "amount")
_JSON_FIELDS = ("secret", "nullifier", "commitment", "nullifierHash", "amount")


def note_to_dict(note: DepositNote) -> Dict[str, str]:
    return {
        "secret": str(note.secret),
        "nullifier": str(note.nullifier),
        "commitment": str(note.commitment),
        "nullifierHash": str(note.nullifier_hash),
        "amount": str(note.amount),
    }


def note_to_json(note: DepositNote, indent: int = 2) -> str:
    return json.dumps(note_to_dict(note), indent=indent)


def note_from_mapping(data: Mapping[str, Any]) -> DepositNote:
    """
    Validate a note mapping and rebuild the note from its secrets.

    Raises:
        MalformedNote: On missing fields, non-field values, or stored
            commitment/nullifier hash that do not match the secrets.
    """
    if not isinstance(data, Mapping):
        raise MalformedNote("note must be a JSON object")

    version = data.get("version", NOTE_VERSION)
    if version != NOTE_VERSION:
        raise MalformedNote(f"unsupported note version: {version!r}")

    missing = [name for name in _REQUIRED_FIELDS if name not in data]
    if missing:
        raise MalformedNote(f"note is missing fields: {', '.join(missing)}")

    try:
        secret = parse_field_element(data["secret"], "secret")
        nullifier = parse_field_element(data["nullifier"], "nullifier")
        amount = parse_field_element(data["amount"], "amount")
        note = build_note(secret, nullifier, amount)
    except ValidationError as exc:
        raise MalformedNote(str(exc)) from exc

    stored_hash = data.get("nullifierHash", data.get("nullifier_hash"))
    checks = (("commitment", data.get("commitment"), note.commitment),
              ("nullifierHash", stored_hash, note.nullifier_hash))
    for name, stored, computed in checks:
        if stored is None:
            continue
        try:
            stored_value = parse_field_element(stored, name)
        except ValidationError as exc:
            raise MalformedNote(str(exc)) from exc
        if stored_value != computed:
            raise MalformedNote(f"{name} does not match the note secrets")

    return note


def note_from_json(text: str) -> DepositNote:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedNote(f"note is not valid JSON: {exc.msg}") from exc
    return note_from_mapping(data)


def encode_note(note: DepositNote) -> str:
    payload = cbor2.dumps(
        {
            "v": NOTE_VERSION,
            "s": note.secret.to_bytes(32, "big"),
            "n": note.nullifier.to_bytes(32, "big"),
            "a": note.amount,
        }
    )
    return NOTE_TOKEN_PREFIX + payload.hex()


def decode_note(token: str) -> DepositNote:
    if not isinstance(token, str) or not token.startswith(NOTE_TOKEN_PREFIX):
        raise MalformedNote("note token has an unknown prefix")
    try:
        payload = bytes.fromhex(token[len(NOTE_TOKEN_PREFIX):])
        data = cbor2.loads(payload)
    except (ValueError, cbor2.CBORDecodeError) as exc:
        raise MalformedNote("note token is not valid CBOR hex") from exc

    if not isinstance(data, dict):
        raise MalformedNote("note token must decode to a map")
    return note_from_mapping(
        {
            "version": data.get("v"),
            "secret": data.get("s"),
            "nullifier": data.get("n"),
            "amount": data.get("a"),
        }
    )


def parse_note(value: Any) -> DepositNote:
    """Accept a DepositNote, a token, a JSON string or a mapping."""
    if isinstance(value, DepositNote):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(NOTE_TOKEN_PREFIX):
            return decode_note(text)
        return note_from_json(text)
    if isinstance(value, Mapping):
        return note_from_mapping(value)
    raise MalformedNote(f"cannot parse note from {type(value).__name__}")
