#!/usr/bin/env python3
"""Tests for the data models."""

import pytest

from reactive_flow_tracker.models import (
    STAGES,
    CallbackTransaction,
    FlowRequest,
    FlowStatus,
    LogEntry,
    ReactiveTransaction,
    StepState,
    StepStatus,
    TransactionReceipt,
    parse_quantity,
)

TX_HASH = "0x" + "ab" * 32
TOPIC = "0x" + "cd" * 32
ADDRESS = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"


def make_request(**overrides):
    values = dict(
        origin_tx_hash=TX_HASH,
        watched_address=ADDRESS,
        target_event_signature=TOPIC,
        origin_chain_id=11155111,
        destination_chain_id=84532,
    )
    values.update(overrides)
    return FlowRequest(**values)


class TestFlowRequest:
    """Tests for FlowRequest validation."""

    def test_valid_request(self):
        request = make_request()

        assert request.origin_tx_hash == TX_HASH
        assert request.watched_address == ADDRESS
        assert request.origin_chain_id == 11155111

    def test_watched_address_is_checksummed(self):
        request = make_request(watched_address=ADDRESS.lower())

        assert request.watched_address == ADDRESS

    def test_invalid_tx_hash(self):
        with pytest.raises(ValueError, match="Invalid origin transaction hash"):
            make_request(origin_tx_hash="0x1234")

    def test_invalid_topic(self):
        with pytest.raises(ValueError, match="Invalid target event signature"):
            make_request(target_event_signature="Ping(address,uint256)")

    def test_invalid_address(self):
        with pytest.raises(ValueError, match="Invalid watched contract address"):
            make_request(watched_address="not-an-address")

    @pytest.mark.parametrize("chain_id", [0, -1, True, "1"])
    def test_invalid_chain_id(self, chain_id):
        with pytest.raises(ValueError, match="must be a positive integer"):
            make_request(origin_chain_id=chain_id)

    def test_request_is_immutable(self):
        request = make_request()

        with pytest.raises(AttributeError):
            request.origin_chain_id = 1


class TestParseQuantity:
    """Tests for numeric parsing of upstream fields."""

    @pytest.mark.parametrize(
        "value,expected",
        [(5, 5), ("0x1", 1), ("0x", 0), ("0x10", 16), ("1700000000", 1_700_000_000)],
    )
    def test_accepted_forms(self, value, expected):
        assert parse_quantity(value, "field") == expected

    @pytest.mark.parametrize("value", [None, "abc", "0xzz", 1.5, True])
    def test_rejected_forms(self, value):
        with pytest.raises(ValueError):
            parse_quantity(value, "field")


class TestUpstreamSchemas:
    """Tests for parsing explorer and RPC payloads."""

    def test_receipt_from_api(self):
        receipt = TransactionReceipt.from_api({
            "transactionHash": TX_HASH,
            "status": "0x1",
            "blockNumber": "0x64",
            "from": "0xsender",
            "to": None,
            "logs": [{"topics": [TOPIC], "data": "0x", "logIndex": "0x"}],
        })

        assert receipt.succeeded is True
        assert receipt.block_number == 100
        assert receipt.timestamp is None
        assert receipt.logs[0].topic0 == TOPIC
        assert receipt.logs[0].log_index == 0

    def test_reverted_receipt(self):
        receipt = TransactionReceipt.from_api({
            "transactionHash": TX_HASH, "status": "0x0", "blockNumber": "0x1"
        })

        assert receipt.succeeded is False

    def test_receipt_without_status_is_rejected(self):
        with pytest.raises(ValueError, match="status"):
            TransactionReceipt.from_api({"transactionHash": TX_HASH, "blockNumber": "0x1"})

    def test_receipt_must_be_object(self):
        with pytest.raises(ValueError, match="must be an object"):
            TransactionReceipt.from_api("Max rate limit reached")

    def test_log_with_bad_topics_is_rejected(self):
        with pytest.raises(ValueError, match="topics"):
            LogEntry.from_api({"topics": "0x00"})

    def test_log_without_topics_has_no_topic0(self):
        assert LogEntry.from_api({"data": "0x"}).topic0 is None

    def test_reactive_transaction_from_api(self):
        tx = ReactiveTransaction.from_api({
            "hash": "0xrvm",
            "time": "0x6553f100",
            "number": "0x2",
            "refTx": TX_HASH.upper().replace("0X", "0x"),
            "refChainId": 11155111,
        })

        assert tx.time == 0x6553F100
        assert tx.number == 2
        assert tx.references(TX_HASH)
        assert not tx.references("0x" + "00" * 32)

    def test_reactive_transaction_requires_time(self):
        with pytest.raises(ValueError, match="time"):
            ReactiveTransaction.from_api({"hash": "0xrvm"})

    def test_callback_requires_tx_hash(self):
        with pytest.raises(ValueError, match="txHash"):
            CallbackTransaction.from_api({"chainId": 1})


class TestStepStatus:
    """Tests for the payload/error exclusivity of StepStatus."""

    def test_constructors(self):
        assert StepStatus.pending(1.0).state is StepState.PENDING
        assert StepStatus.succeeded({"ok": True}, 2.0).data == {"ok": True}
        assert StepStatus.failed("boom", 3.0).error == "boom"

    def test_success_requires_data(self):
        with pytest.raises(ValueError):
            StepStatus(state=StepState.SUCCESS, timestamp=1.0)

    def test_error_requires_message(self):
        with pytest.raises(ValueError):
            StepStatus(state=StepState.ERROR, timestamp=1.0, error="")

    def test_pending_carries_nothing(self):
        with pytest.raises(ValueError):
            StepStatus(state=StepState.PENDING, timestamp=1.0, error="early")

    def test_to_dict(self):
        assert StepStatus.failed("boom", 3.0).to_dict() == {
            "status": "error", "error": "boom", "timestamp": 3.0
        }
        assert StepStatus.succeeded(CallbackTransaction(tx_hash="0xCB"), 4.0).to_dict() == {
            "status": "success",
            "data": {"txHash": "0xCB", "chainId": None, "status": None},
            "timestamp": 4.0,
        }


class TestFlowStatus:
    """Tests for stage ordering in FlowStatus."""

    def test_initial_status_is_pending(self):
        status = FlowStatus.initial(10.0)

        for stage in STAGES:
            assert status.step(stage).state is StepState.PENDING
            assert status.step(stage).timestamp == 10.0
        assert not status.is_complete
        assert status.failed_stage is None

    def test_advance_returns_new_snapshot(self):
        status = FlowStatus.initial(0.0)
        advanced = status.advance("origin_transaction", StepStatus.succeeded("r", 1.0))

        assert status.origin_transaction.state is StepState.PENDING
        assert advanced.origin_transaction.state is StepState.SUCCESS
        assert advanced.payload("origin_transaction") == "r"

    def test_cannot_skip_a_stage(self):
        status = FlowStatus.initial(0.0)

        with pytest.raises(ValueError, match="cannot run before"):
            status.advance("event_emission", StepStatus.succeeded("e", 1.0))

    def test_nothing_runs_after_an_error(self):
        status = FlowStatus.initial(0.0).advance(
            "origin_transaction", StepStatus.failed("not found", 1.0)
        )

        assert status.failed_stage == "origin_transaction"
        with pytest.raises(ValueError):
            status.advance("event_emission", StepStatus.failed("x", 2.0))

    def test_stage_completes_once(self):
        status = FlowStatus.initial(0.0).advance(
            "origin_transaction", StepStatus.succeeded("r", 1.0)
        )

        with pytest.raises(ValueError, match="already completed"):
            status.advance("origin_transaction", StepStatus.failed("x", 2.0))

    def test_cannot_return_to_pending(self):
        with pytest.raises(ValueError, match="back to pending"):
            FlowStatus.initial(0.0).advance("origin_transaction", StepStatus.pending(1.0))

    def test_payload_of_unfinished_stage(self):
        with pytest.raises(ValueError, match="has not succeeded"):
            FlowStatus.initial(0.0).payload("origin_transaction")

    def test_complete_flow(self):
        status = FlowStatus.initial(0.0)
        for index, stage in enumerate(STAGES):
            status = status.advance(stage, StepStatus.succeeded(stage, float(index)))

        assert status.is_complete
        assert list(status.to_dict()) == [
            "originTransaction",
            "eventEmission",
            "reactiveCapture",
            "callbackTransaction",
            "destinationExecution",
        ]
