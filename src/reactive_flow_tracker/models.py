#!/usr/bin/env python3
"""Data models for the Reactive flow tracker.

This module provides immutable data classes for the tracking request, the
five-stage flow status, and the upstream payloads returned by the block
explorers and the Reactive Network RPC. Upstream payloads are parsed through
``from_api`` constructors that reject malformed input with ``ValueError``,
so no loosely shaped JSON travels past the network boundary.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from web3 import Web3

HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")

# Stage order is significant: a stage may only leave pending once the
# previous one has succeeded.
STAGES: tuple[str, ...] = (
    "origin_transaction",
    "event_emission",
    "reactive_capture",
    "callback_transaction",
    "destination_execution",
)

STAGE_LABELS: dict[str, str] = {
    "origin_transaction": "originTransaction",
    "event_emission": "eventEmission",
    "reactive_capture": "reactiveCapture",
    "callback_transaction": "callbackTransaction",
    "destination_execution": "destinationExecution",
}


def parse_quantity(value: Any, name: str) -> int:
    """Parse an integer that upstream APIs may send as int, hex or decimal string.

    Etherscan encodes a zero log index as the bare prefix ``"0x"``.
    """
    match value:
        case bool():
            raise ValueError(f"{name} must be a number, got {value!r}")
        case int():
            return value
        case "0x" | "0X":
            return 0
        case str() if value[:2].lower() == "0x":
            try:
                return int(value, 16)
            except ValueError:
                raise ValueError(f"{name} is not valid hex: {value!r}") from None
        case str() if value.isdigit():
            return int(value)
        case _:
            raise ValueError(f"{name} must be a number, got {value!r}")


def _require_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"missing or invalid '{key}' field")
    return value


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _optional_quantity(data: Mapping[str, Any], key: str) -> int | None:
    value = data.get(key)
    return None if value in (None, "") else parse_quantity(value, key)


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be an object, got {type(data).__name__}")
    return data


@dataclass(frozen=True, slots=True)
class FlowRequest:
    """Input to one tracking session.

    Attributes:
        origin_tx_hash: Hash of the transaction on the origin chain
        watched_address: Reactive contract address watched on the Reactive Network
        target_event_signature: Topic-0 of the event expected in the origin logs
        origin_chain_id: Chain ID of the origin ledger
        destination_chain_id: Chain ID of the destination ledger
    """

    origin_tx_hash: str
    watched_address: str
    target_event_signature: str
    origin_chain_id: int
    destination_chain_id: int

    def __post_init__(self) -> None:
        """Validate the request."""
        if not HASH_PATTERN.match(self.origin_tx_hash or ""):
            raise ValueError(f"Invalid origin transaction hash: {self.origin_tx_hash}")

        if not HASH_PATTERN.match(self.target_event_signature or ""):
            raise ValueError(
                f"Invalid target event signature: {self.target_event_signature}. "
                "Expected a 32-byte topic (0x + 64 hex characters)"
            )

        if not Web3.is_address(self.watched_address):
            raise ValueError(f"Invalid watched contract address: {self.watched_address}")

        checksummed = Web3.to_checksum_address(self.watched_address)
        if checksummed != self.watched_address:
            object.__setattr__(self, "watched_address", checksummed)

        for name in ("origin_chain_id", "destination_chain_id"):
            chain_id = getattr(self, name)
            if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
                raise ValueError(f"{name} must be a positive integer, got {chain_id!r}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "originTxHash": self.origin_tx_hash,
            "watchedAddress": self.watched_address,
            "targetEventSignature": self.target_event_signature,
            "originChainId": self.origin_chain_id,
            "destinationChainId": self.destination_chain_id,
        }


@dataclass(frozen=True, slots=True)
class LogEntry:
    """A single event log emitted by a transaction."""

    address: str
    topics: tuple[str, ...]
    data: str
    block_number: int | None
    log_index: int | None
    transaction_hash: str | None
    timestamp: int | None = None

    @property
    def topic0(self) -> str | None:
        return self.topics[0] if self.topics else None

    @classmethod
    def from_api(cls, raw: Any) -> "LogEntry":
        data = _require_mapping(raw, "log entry")
        topics = data.get("topics", [])
        if not isinstance(topics, list) or not all(isinstance(t, str) for t in topics):
            raise ValueError("'topics' must be a list of strings")
        return cls(
            address=_optional_str(data, "address") or "",
            topics=tuple(topics),
            data=_optional_str(data, "data") or "0x",
            block_number=_optional_quantity(data, "blockNumber"),
            log_index=_optional_quantity(data, "logIndex"),
            transaction_hash=_optional_str(data, "transactionHash"),
            timestamp=_optional_quantity(data, "timeStamp"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "topics": list(self.topics),
            "data": self.data,
            "blockNumber": self.block_number,
            "logIndex": self.log_index,
            "transactionHash": self.transaction_hash,
            "timeStamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class TransactionReceipt:
    """Receipt of a mined transaction as returned by the explorer proxy API.

    Attributes:
        transaction_hash: Hash of the transaction
        succeeded: True when the receipt status is 1
        block_number: Block the transaction was mined in
        from_address: Sender of the transaction
        to_address: Recipient (None for contract creation)
        timestamp: Unix timestamp, only present when the explorer supplies it
        logs: Logs embedded in the receipt
    """

    transaction_hash: str
    succeeded: bool
    block_number: int
    from_address: str | None = None
    to_address: str | None = None
    timestamp: int | None = None
    logs: tuple[LogEntry, ...] = ()

    @classmethod
    def from_api(cls, raw: Any) -> "TransactionReceipt":
        data = _require_mapping(raw, "transaction receipt")
        if data.get("status") is None:
            raise ValueError("receipt has no 'status' field")
        raw_logs = data.get("logs") or []
        if not isinstance(raw_logs, list):
            raise ValueError("'logs' must be a list")
        return cls(
            transaction_hash=_require_str(data, "transactionHash"),
            succeeded=parse_quantity(data["status"], "status") == 1,
            block_number=parse_quantity(data.get("blockNumber"), "blockNumber"),
            from_address=_optional_str(data, "from"),
            to_address=_optional_str(data, "to"),
            timestamp=_optional_quantity(data, "timeStamp"),
            logs=tuple(LogEntry.from_api(log) for log in raw_logs),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "status": 1 if self.succeeded else 0,
            "blockNumber": self.block_number,
            "from": self.from_address,
            "to": self.to_address,
            "timeStamp": self.timestamp,
            "logCount": len(self.logs),
        }


@dataclass(frozen=True, slots=True)
class OriginTransaction:
    """Verified origin transaction together with its resolved block timestamp."""

    receipt: TransactionReceipt
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {**self.receipt.to_dict(), "timeStamp": self.timestamp}


@dataclass(frozen=True, slots=True)
class AddressMapping:
    """Mapping of a watched address to its Reactive VM."""

    rvm_id: str

    @classmethod
    def from_api(cls, raw: Any) -> "AddressMapping":
        data = _require_mapping(raw, "address mapping")
        return cls(rvm_id=_require_str(data, "rvmId"))

    def to_dict(self) -> dict[str, Any]:
        return {"rvmId": self.rvm_id}


@dataclass(frozen=True, slots=True)
class ReactiveTransaction:
    """A transaction executed inside a Reactive VM.

    ``ref_tx`` is the back-reference to the origin-chain transaction whose
    event triggered this execution.
    """

    hash: str
    time: int
    number: int | None = None
    ref_tx: str | None = None
    ref_chain_id: int | None = None
    ref_event_index: int | None = None
    status: int | None = None

    @classmethod
    def from_api(cls, raw: Any) -> "ReactiveTransaction":
        data = _require_mapping(raw, "reactive transaction")
        if data.get("time") is None:
            raise ValueError("missing 'time' field")
        return cls(
            hash=_require_str(data, "hash"),
            time=parse_quantity(data["time"], "time"),
            number=_optional_quantity(data, "number"),
            ref_tx=_optional_str(data, "refTx"),
            ref_chain_id=_optional_quantity(data, "refChainId"),
            ref_event_index=_optional_quantity(data, "refEventIndex"),
            status=_optional_quantity(data, "status"),
        )

    def references(self, tx_hash: str) -> bool:
        """Return True if this transaction was triggered by ``tx_hash``."""
        return self.ref_tx is not None and self.ref_tx.lower() == tx_hash.lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "time": self.time,
            "number": self.number,
            "refTx": self.ref_tx,
            "refChainId": self.ref_chain_id,
            "refEventIndex": self.ref_event_index,
            "status": self.status,
        }


@dataclass(frozen=True, slots=True)
class ReactiveCapture:
    """Result of the capture stage: the RVM and its matching transaction."""

    rvm_id: str
    transaction: ReactiveTransaction

    def to_dict(self) -> dict[str, Any]:
        return {"rvmId": self.rvm_id, "transaction": self.transaction.to_dict()}


@dataclass(frozen=True, slots=True)
class CallbackTransaction:
    """A callback the Reactive Network submitted to a destination chain."""

    tx_hash: str
    chain_id: int | None = None
    status: int | None = None

    @classmethod
    def from_api(cls, raw: Any) -> "CallbackTransaction":
        data = _require_mapping(raw, "callback transaction")
        return cls(
            tx_hash=_require_str(data, "txHash"),
            chain_id=_optional_quantity(data, "chainId"),
            status=_optional_quantity(data, "status"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"txHash": self.tx_hash, "chainId": self.chain_id, "status": self.status}


class StepState(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StepStatus:
    """State of one stage of the flow.

    ``data`` is only set on success and ``error`` only on error.
    """

    state: StepState
    timestamp: float
    data: Any = None
    error: str | None = None

    def __post_init__(self) -> None:
        match self.state:
            case StepState.PENDING if self.data is not None or self.error is not None:
                raise ValueError("A pending step carries neither data nor error")
            case StepState.SUCCESS if self.data is None or self.error is not None:
                raise ValueError("A successful step must carry data and no error")
            case StepState.ERROR if not self.error or self.data is not None:
                raise ValueError("A failed step must carry an error message and no data")

    @classmethod
    def pending(cls, timestamp: float) -> "StepStatus":
        return cls(state=StepState.PENDING, timestamp=timestamp)

    @classmethod
    def succeeded(cls, data: Any, timestamp: float) -> "StepStatus":
        return cls(state=StepState.SUCCESS, timestamp=timestamp, data=data)

    @classmethod
    def failed(cls, error: str, timestamp: float) -> "StepStatus":
        return cls(state=StepState.ERROR, timestamp=timestamp, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {"status": self.state.value}
        if self.data is not None:
            result["data"] = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        if self.error is not None:
            result["error"] = self.error
        result["timestamp"] = self.timestamp
        return result


@dataclass(frozen=True, slots=True)
class FlowStatus:
    """Immutable snapshot of the five verification stages.

    New snapshots are produced with ``advance``, which refuses any
    transition that would break the left-to-right ordering of stages.
    """

    origin_transaction: StepStatus
    event_emission: StepStatus
    reactive_capture: StepStatus
    callback_transaction: StepStatus
    destination_execution: StepStatus

    @classmethod
    def initial(cls, timestamp: float) -> "FlowStatus":
        """Create a flow status with every stage pending."""
        return cls(**{stage: StepStatus.pending(timestamp) for stage in STAGES})

    def step(self, stage: str) -> StepStatus:
        if stage not in STAGES:
            raise KeyError(f"Unknown stage: {stage}")
        return getattr(self, stage)

    def advance(self, stage: str, step: StepStatus) -> "FlowStatus":
        """Return a new status with ``stage`` moved out of pending.

        Raises:
            ValueError: If the transition violates stage ordering
        """
        index = STAGES.index(stage)
        if step.state is StepState.PENDING:
            raise ValueError(f"Cannot move {stage} back to pending")
        if self.step(stage).state is not StepState.PENDING:
            raise ValueError(f"Stage {stage} has already completed")
        if index > 0 and self.step(STAGES[index - 1]).state is not StepState.SUCCESS:
            raise ValueError(f"Stage {stage} cannot run before {STAGES[index - 1]} succeeds")
        return replace(self, **{stage: step})

    def payload(self, stage: str) -> Any:
        """Return the data of a succeeded stage."""
        step = self.step(stage)
        if step.state is not StepState.SUCCESS:
            raise ValueError(f"Stage {stage} has not succeeded")
        return step.data

    @property
    def is_complete(self) -> bool:
        return all(self.step(stage).state is StepState.SUCCESS for stage in STAGES)

    @property
    def failed_stage(self) -> str | None:
        return next(
            (stage for stage in STAGES if self.step(stage).state is StepState.ERROR),
            None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {STAGE_LABELS[stage]: self.step(stage).to_dict() for stage in STAGES}
