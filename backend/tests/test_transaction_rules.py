"""
Validation of proposed transactions, batches, approval limits and the
status state machine.
"""

from types import SimpleNamespace

import pytest

from conftest import make_item
from devtrack.errors import NotFoundError, RuleViolation, ViolationKind
from devtrack.models import TransactionStatus
from devtrack.services import transaction_rules as rules
from devtrack.services.transaction_rules import (
    AdjustmentRequest,
    CycleCountRequest,
    IssueRequest,
    ReceiptRequest,
    ReturnRequest,
    TransactionRequest,
    TransferRequest,
    build_request,
    validate_request,
)

S = TransactionStatus


def _kind(excinfo):
    return excinfo.value.kind


# =============================================================================
# RECEIPT / RETURN
# =============================================================================


class TestReceipt:

    def test_valid(self, db_session, item, warehouse):
        validate_request(ReceiptRequest(item.id, 50, destination_location_id=warehouse.id))

    @pytest.mark.parametrize("quantity", [0, -5])
    def test_quantity_must_be_positive(self, db_session, item, warehouse, quantity):
        with pytest.raises(RuleViolation) as exc:
            validate_request(ReceiptRequest(item.id, quantity, destination_location_id=warehouse.id))
        assert _kind(exc) is ViolationKind.INVALID_QUANTITY

    def test_quantity_limit(self, db_session, item, warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(ReceiptRequest(item.id, 1_000_001, destination_location_id=warehouse.id))
        assert _kind(exc) is ViolationKind.QUANTITY_EXCEEDS_LIMIT

    def test_unknown_item(self, db_session, warehouse):
        with pytest.raises(NotFoundError):
            validate_request(ReceiptRequest(424242, 5, destination_location_id=warehouse.id))

    def test_unknown_destination(self, db_session, item):
        with pytest.raises(NotFoundError):
            validate_request(ReceiptRequest(item.id, 5, destination_location_id=424242))

    def test_destination_must_receive(self, db_session, item, quarantine):
        with pytest.raises(RuleViolation) as exc:
            validate_request(ReceiptRequest(item.id, 5, destination_location_id=quarantine.id))
        assert _kind(exc) is ViolationKind.LOCATION_CANNOT_RECEIVE

    def test_return_follows_receipt_rules(self, db_session, item, warehouse, quarantine):
        validate_request(ReturnRequest(item.id, 2, destination_location_id=warehouse.id))
        with pytest.raises(RuleViolation) as exc:
            validate_request(ReturnRequest(item.id, 2, destination_location_id=quarantine.id))
        assert _kind(exc) is ViolationKind.LOCATION_CANNOT_RECEIVE


# =============================================================================
# ISSUE / TRANSFER
# =============================================================================


class TestIssue:

    def test_within_available(self, db_session, item, warehouse):
        validate_request(IssueRequest(item.id, 100, source_location_id=warehouse.id))

    def test_more_than_available(self, db_session, item, warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(IssueRequest(item.id, 101, source_location_id=warehouse.id))
        assert _kind(exc) is ViolationKind.INSUFFICIENT_STOCK
        assert "Available: 100" in exc.value.message

    def test_reserved_stock_is_not_available(self, db_session, warehouse):
        reserved = make_item(db_session, warehouse, "PN-R", "96385074", current_stock=100, reserved_stock=30)
        with pytest.raises(RuleViolation) as exc:
            validate_request(IssueRequest(reserved.id, 71, source_location_id=warehouse.id))
        assert _kind(exc) is ViolationKind.INSUFFICIENT_STOCK

    def test_nothing_available_elsewhere(self, db_session, item, second_warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(IssueRequest(item.id, 1, source_location_id=second_warehouse.id))
        assert _kind(exc) is ViolationKind.INSUFFICIENT_STOCK


class TestTransfer:

    def test_valid(self, db_session, item, warehouse, second_warehouse):
        validate_request(TransferRequest(item.id, 40, warehouse.id, second_warehouse.id))

    def test_same_location(self, db_session, item, warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(TransferRequest(item.id, 5, warehouse.id, warehouse.id))
        assert _kind(exc) is ViolationKind.SAME_LOCATION

    def test_insufficient_at_source(self, db_session, item, warehouse, second_warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(TransferRequest(item.id, 500, warehouse.id, second_warehouse.id))
        assert _kind(exc) is ViolationKind.INSUFFICIENT_STOCK

    def test_destination_must_receive(self, db_session, item, warehouse, quarantine):
        with pytest.raises(RuleViolation) as exc:
            validate_request(TransferRequest(item.id, 5, warehouse.id, quarantine.id))
        assert _kind(exc) is ViolationKind.LOCATION_CANNOT_RECEIVE


# =============================================================================
# ADJUSTMENT / CYCLE COUNT
# =============================================================================


class TestAdjustment:

    def _adj(self, item, location, quantity, reason="Damaged in storage"):
        return AdjustmentRequest(item.id, quantity, source_location_id=location.id, adjustment_reason=reason)

    def test_reason_checked_first(self, db_session, item, warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(self._adj(item, warehouse, 0, reason="  "))
        assert _kind(exc) is ViolationKind.REASON_REQUIRED

    def test_zero_quantity(self, db_session, item, warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(self._adj(item, warehouse, 0))
        assert _kind(exc) is ViolationKind.INVALID_QUANTITY

    def test_negative_within_available(self, db_session, item, warehouse):
        validate_request(self._adj(item, warehouse, -100))

    def test_negative_below_zero(self, db_session, item, warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(self._adj(item, warehouse, -101))
        assert _kind(exc) is ViolationKind.WOULD_GO_NEGATIVE

    def test_more_than_double_current_is_unreasonable(self, db_session, item, warehouse):
        validate_request(self._adj(item, warehouse, 200))
        with pytest.raises(RuleViolation) as exc:
            validate_request(self._adj(item, warehouse, 201))
        assert _kind(exc) is ViolationKind.UNREASONABLE_ADJUSTMENT

    def test_ceiling_applies_when_stock_is_zero(self, db_session, warehouse):
        empty = make_item(db_session, warehouse, "PN-E", "96385074", current_stock=0)
        validate_request(self._adj(empty, warehouse, 10_000))
        with pytest.raises(RuleViolation) as exc:
            validate_request(self._adj(empty, warehouse, 10_001))
        assert _kind(exc) is ViolationKind.UNREASONABLE_ADJUSTMENT

    def test_bulk_ceiling_override(self, db_session, warehouse):
        big = make_item(db_session, warehouse, "PN-B", "96385074", current_stock=10_000)
        with pytest.raises(RuleViolation):
            validate_request(self._adj(big, warehouse, 12_000))
        validate_request(self._adj(big, warehouse, 12_000), adjustment_ceiling=1_000_000)

    def test_unknown_location(self, db_session, item):
        req = AdjustmentRequest(item.id, 5, source_location_id=424242, adjustment_reason="Found")
        with pytest.raises(NotFoundError):
            validate_request(req)


class TestCycleCount:

    def test_zero_count_is_valid(self, db_session, item, warehouse):
        validate_request(CycleCountRequest(item.id, 0, source_location_id=warehouse.id))

    def test_negative_count(self, db_session, item, warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(CycleCountRequest(item.id, -1, source_location_id=warehouse.id))
        assert _kind(exc) is ViolationKind.INVALID_QUANTITY

    def test_count_below_reserved(self, db_session, warehouse):
        held = make_item(db_session, warehouse, "PN-R", "96385074", current_stock=10, reserved_stock=8)
        with pytest.raises(RuleViolation) as exc:
            validate_request(CycleCountRequest(held.id, 2, source_location_id=warehouse.id))
        assert _kind(exc) is ViolationKind.INVALID_STOCK_LEVEL
        validate_request(CycleCountRequest(held.id, 8, source_location_id=warehouse.id))

    def test_item_must_be_at_location(self, db_session, item, second_warehouse):
        with pytest.raises(RuleViolation) as exc:
            validate_request(CycleCountRequest(item.id, 5, source_location_id=second_warehouse.id))
        assert _kind(exc) is ViolationKind.ITEM_NOT_AT_LOCATION


class TestRequests:

    def test_build_request_by_name(self):
        req = build_request("cycle_count", inventory_item_id=1, quantity=4, source_location_id=2)
        assert isinstance(req, CycleCountRequest)
        assert req.transaction_type.value == "CYCLE_COUNT"

    def test_unknown_type_rejected_by_dispatch(self):
        class Bogus(TransactionRequest):
            transaction_type = "BOGUS"

        with pytest.raises(ValueError):
            validate_request(Bogus(1, 1))


# =============================================================================
# BATCHES
# =============================================================================


class TestBatch:

    def test_too_large(self):
        batch = [ReceiptRequest(i, 1, destination_location_id=1) for i in range(101)]
        with pytest.raises(RuleViolation) as exc:
            rules.validate_batch(batch)
        assert _kind(exc) is ViolationKind.BATCH_TOO_LARGE
        assert exc.value.message == "Batch size cannot exceed 100 transactions"

    def test_hundred_is_allowed(self):
        rules.validate_batch([ReceiptRequest(i, 1, destination_location_id=1) for i in range(100)])

    def test_duplicate_item_location(self):
        batch = [IssueRequest(1, 1, source_location_id=1), IssueRequest(1, 2, source_location_id=1)]
        with pytest.raises(RuleViolation) as exc:
            rules.validate_batch(batch)
        assert _kind(exc) is ViolationKind.DUPLICATE_IN_BATCH

    def test_problems_reported_together(self):
        batch = [IssueRequest(1, 0, source_location_id=1), IssueRequest(1, 2, source_location_id=1)]
        with pytest.raises(RuleViolation) as exc:
            rules.validate_batch(batch)
        assert exc.value.message == (
            "Multiple transactions for the same item and location combination; "
            "All transactions must have positive quantity"
        )

    def test_validate_each_uses_bulk_ceiling(self, db_session, warehouse):
        big = make_item(db_session, warehouse, "PN-B", "96385074", current_stock=10_000)
        rules.validate_batch(
            [AdjustmentRequest(big.id, 12_000, source_location_id=warehouse.id, adjustment_reason="Recount")],
            validate_each=True,
        )


# =============================================================================
# APPROVAL LIMITS
# =============================================================================


class TestApprovalLimit:

    def _tx(self, quantity, unit_cost_cents):
        return SimpleNamespace(quantity=quantity, unit_cost_cents=unit_cost_cents)

    def test_at_limit(self):
        rules.validate_approval_limit(self._tx(100, 1000), "CLERK")

    def test_over_limit(self):
        with pytest.raises(RuleViolation) as exc:
            rules.validate_approval_limit(self._tx(101, 1000), "CLERK")
        assert _kind(exc) is ViolationKind.EXCEEDS_APPROVAL_LIMIT

    def test_higher_role_allows_more(self):
        rules.validate_approval_limit(self._tx(101, 1000), "manager")

    def test_negative_quantity_uses_magnitude(self):
        with pytest.raises(RuleViolation):
            rules.validate_approval_limit(self._tx(-101, 1000), "CLERK")

    def test_missing_cost_counts_as_zero(self):
        rules.validate_approval_limit(self._tx(1_000_000, None), "CLERK")

    def test_unknown_role(self):
        with pytest.raises(RuleViolation) as exc:
            rules.validate_approval_limit(self._tx(1, 1), "intern")
        assert _kind(exc) is ViolationKind.UNKNOWN_ROLE


# =============================================================================
# STATE MACHINE
# =============================================================================


class TestStateMachine:

    @pytest.mark.parametrize(
        "current,new",
        [
            (S.PENDING, S.APPROVED),
            (S.PENDING, S.CANCELLED),
            (S.APPROVED, S.PROCESSING),
            (S.APPROVED, S.CANCELLED),
            (S.PROCESSING, S.COMPLETED),
            (S.PROCESSING, S.FAILED),
            (S.FAILED, S.PENDING),
        ],
    )
    def test_allowed(self, current, new):
        assert rules.can_transition(current, new)

    @pytest.mark.parametrize(
        "current,new",
        [
            (S.PENDING, S.COMPLETED),
            (S.PENDING, S.PROCESSING),
            (S.COMPLETED, S.PENDING),
            (S.COMPLETED, S.CANCELLED),
            (S.CANCELLED, S.PENDING),
            (S.FAILED, S.COMPLETED),
            (S.PROCESSING, S.CANCELLED),
        ],
    )
    def test_rejected(self, current, new):
        assert not rules.can_transition(current, new)
        with pytest.raises(RuleViolation) as exc:
            rules.validate_state_transition(current, new)
        assert _kind(exc) is ViolationKind.INVALID_STATE_TRANSITION
        assert exc.value.message == f"Invalid state transition from {current.value} to {new.value}"

    @pytest.mark.parametrize("status", [S.COMPLETED, S.PROCESSING, S.CANCELLED])
    def test_locked_statuses(self, status):
        with pytest.raises(RuleViolation) as exc:
            rules.validate_modification(SimpleNamespace(status=status))
        assert _kind(exc) is ViolationKind.TRANSACTION_LOCKED

    @pytest.mark.parametrize("status", [S.PENDING, S.APPROVED, S.FAILED])
    def test_modifiable_statuses(self, status):
        rules.validate_modification(SimpleNamespace(status=status))
