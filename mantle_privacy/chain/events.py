"""Typed chain events and log decoding."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union

from ..privacy_protocol.encoding import to_bytes, to_hex
from ..privacy_protocol.exceptions import UnknownEvent, ValidationError
from .abi import (
    ANNOUNCEMENT_TOPIC,
    DEPOSIT_TOPIC,
    WITHDRAWAL_TOPIC,
    decode_dynamic_bytes,
    split_words,
    topic_to_address,
    topic_to_int,
)


@dataclass(frozen=True)
class EventKey:
    """Idempotency key of a log: (transaction hash, log index)."""

    transaction_hash: str
    log_index: int


@dataclass(frozen=True)
class AnnouncementEvent:
    scheme_id: int
    stealth_address: str
    caller: str
    ephemeral_public_key: bytes
    metadata: bytes
    block_number: int
    transaction_hash: str
    log_index: int

    @property
    def key(self) -> EventKey:
        return EventKey(self.transaction_hash, self.log_index)

    @property
    def view_tag(self):
        return self.metadata[0] if self.metadata else None


@dataclass(frozen=True)
class DepositEvent:
    commitment: int
    leaf_index: int
    amount: int
    timestamp: int
    block_number: int
    transaction_hash: str
    log_index: int

    @property
    def key(self) -> EventKey:
        return EventKey(self.transaction_hash, self.log_index)


@dataclass(frozen=True)
class WithdrawalEvent:
    recipient: str
    nullifier_hash: int
    amount: int
    timestamp: int
    block_number: int
    transaction_hash: str
    log_index: int

    @property
    def key(self) -> EventKey:
        return EventKey(self.transaction_hash, self.log_index)


ChainEvent = Union[AnnouncementEvent, DepositEvent, WithdrawalEvent]


def _hex_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


def _log_position(log: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "block_number": _hex_int(log["blockNumber"]),
        "transaction_hash": str(log["transactionHash"]).lower(),
        "log_index": _hex_int(log["logIndex"]),
    }


def _decode_announcement(log: Mapping[str, Any]) -> AnnouncementEvent:
    topics = log["topics"]
    raw = to_bytes(log["data"], "log data")
    return AnnouncementEvent(
        scheme_id=topic_to_int(topics[1]),
        stealth_address=topic_to_address(topics[2]),
        caller=topic_to_address(topics[3]),
        ephemeral_public_key=decode_dynamic_bytes(raw, 0),
        metadata=decode_dynamic_bytes(raw, 32),
        **_log_position(log),
    )


def _decode_deposit(log: Mapping[str, Any]) -> DepositEvent:
    words = split_words(log["data"])
    if len(words) < 3:
        raise ValidationError("deposit log data too short")
    return DepositEvent(
        commitment=topic_to_int(log["topics"][1]),
        leaf_index=words[0],
        amount=words[1],
        timestamp=words[2],
        **_log_position(log),
    )


def _decode_withdrawal(log: Mapping[str, Any]) -> WithdrawalEvent:
    words = split_words(log["data"])
    if len(words) < 3:
        raise ValidationError("withdrawal log data too short")
    return WithdrawalEvent(
        recipient=topic_to_address(log["topics"][1]),
        nullifier_hash=words[0],
        amount=words[1],
        timestamp=words[2],
        **_log_position(log),
    )


_DECODERS = {
    ANNOUNCEMENT_TOPIC: (_decode_announcement, 4),
    DEPOSIT_TOPIC: (_decode_deposit, 2),
    WITHDRAWAL_TOPIC: (_decode_withdrawal, 2),
}


def decode_log(log: Mapping[str, Any]) -> ChainEvent:
    """
    Decode a JSON-RPC log object into a typed event.

    Raises:
        UnknownEvent: If topic0 is not a tracked event.
        ValidationError: If the log is structurally malformed.
    """
    topics = log.get("topics") or []
    if not topics:
        raise UnknownEvent("log has no topics")
    topic0 = str(topics[0]).lower()
    entry = _DECODERS.get(topic0)
    if entry is None:
        raise UnknownEvent(f"unknown event topic {topic0}")
    decoder, topic_count = entry
    if len(topics) < topic_count:
        raise ValidationError(f"log for {topic0} has {len(topics)} topics")
    try:
        return decoder(log)
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"malformed log: {exc}") from exc


def event_sort_key(event: ChainEvent):
    return (event.block_number, event.log_index)


def announcement_to_dict(event: AnnouncementEvent) -> Dict[str, Any]:
    return {
        "schemeId": event.scheme_id,
        "stealthAddress": event.stealth_address,
        "caller": event.caller,
        "ephemeralPubKey": to_hex(event.ephemeral_public_key),
        "metadata": to_hex(event.metadata),
        "blockNumber": event.block_number,
        "transactionHash": event.transaction_hash,
        "logIndex": event.log_index,
    }


def deposit_to_dict(event: DepositEvent) -> Dict[str, Any]:
    return {
        "commitment": str(event.commitment),
        "leafIndex": event.leaf_index,
        "amount": str(event.amount),
        "timestamp": event.timestamp,
        "blockNumber": event.block_number,
        "transactionHash": event.transaction_hash,
        "logIndex": event.log_index,
    }


def withdrawal_to_dict(event: WithdrawalEvent) -> Dict[str, Any]:
    return {
        "recipient": event.recipient,
        "nullifierHash": str(event.nullifier_hash),
        "amount": str(event.amount),
        "timestamp": event.timestamp,
        "blockNumber": event.block_number,
        "transactionHash": event.transaction_hash,
        "logIndex": event.log_index,
    }
