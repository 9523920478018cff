"""
Transaction lifecycle: approve, process, cancel, retry, modify and bulk processing.
"""

import pytest

from devtrack.errors import NotFoundError, RuleViolation, ViolationKind
from devtrack.models import InventoryItem, InventoryTransaction, TransactionStatus
from devtrack.services import lifecycle_service, transaction_service
from devtrack.services.transaction_rules import CycleCountRequest, IssueRequest, ReceiptRequest
from devtrack.validation import ValidationError

S = TransactionStatus


def _pending(request):
    return transaction_service.record_transaction(request, "clerk1", workflow="pending")


def _stock(session, item_id):
    session.expire_all()
    return session.get(InventoryItem, item_id).current_stock


@pytest.fixture
def pending_receipt(db_session, item, warehouse):
    return _pending(ReceiptRequest(item.id, 20, destination_location_id=warehouse.id, unit_cost_cents=1000))


@pytest.fixture
def pending_issue(db_session, item, warehouse):
    return _pending(IssueRequest(item.id, 80, source_location_id=warehouse.id))


# =============================================================================
# HAPPY PATH
# =============================================================================


class TestApproveAndProcess:

    def test_full_workflow(self, db_session, item, pending_receipt):
        approved = lifecycle_service.approve(pending_receipt.id, "manager1")
        assert approved.status is S.APPROVED
        assert approved.approved_by == "manager1"
        assert approved.approved_at is not None
        assert _stock(db_session, item.id) == 100

        done = lifecycle_service.process(pending_receipt.id, "operator1")
        assert done.status is S.COMPLETED
        assert done.processed_by == "operator1"
        assert _stock(db_session, item.id) == 120

    def test_approval_within_role_limit(self, db_session, pending_receipt):
        # 20 x $10.00 = $200.00
        tx = lifecycle_service.approve(pending_receipt.id, "clerk2", role="clerk")
        assert tx.status is S.APPROVED

    def test_approval_over_role_limit(self, db_session, item, warehouse):
        big = _pending(ReceiptRequest(item.id, 200, destination_location_id=warehouse.id, unit_cost_cents=1000))
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.approve(big.id, "clerk2", role="CLERK")
        assert exc.value.kind is ViolationKind.EXCEEDS_APPROVAL_LIMIT
        db_session.rollback()
        assert lifecycle_service.get_transaction(big.id).status is S.PENDING

    def test_cannot_process_pending(self, db_session, pending_receipt):
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.process(pending_receipt.id, "operator1")
        assert exc.value.kind is ViolationKind.INVALID_STATE_TRANSITION

    def test_cannot_approve_twice(self, db_session, pending_receipt):
        lifecycle_service.approve(pending_receipt.id, "manager1")
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.approve(pending_receipt.id, "manager1")
        assert exc.value.kind is ViolationKind.INVALID_STATE_TRANSITION

    def test_unknown_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            lifecycle_service.approve(999, "manager1")


# =============================================================================
# FAILURE AND RETRY
# =============================================================================


class TestFailure:

    def test_stock_drained_before_processing(self, db_session, item, warehouse, pending_issue):
        lifecycle_service.approve(pending_issue.id, "manager1")
        # Another movement takes stock in between
        transaction_service.record_transaction(IssueRequest(item.id, 50, source_location_id=warehouse.id), "clerk2")

        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.process(pending_issue.id, "operator1")
        assert exc.value.kind is ViolationKind.INSUFFICIENT_STOCK

        failed = lifecycle_service.get_transaction(pending_issue.id)
        assert failed.status is S.FAILED
        assert "Failed: Insufficient stock" in failed.notes
        assert _stock(db_session, item.id) == 50

    def test_count_below_new_reservation(self, db_session, item, warehouse):
        count = _pending(CycleCountRequest(item.id, 30, source_location_id=warehouse.id))
        lifecycle_service.approve(count.id, "manager1")
        item.reserved_stock = 40
        db_session.commit()

        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.process(count.id, "operator1")
        assert exc.value.kind is ViolationKind.INVALID_STOCK_LEVEL
        assert lifecycle_service.get_transaction(count.id).status is S.FAILED
        assert _stock(db_session, item.id) == 100

    def test_retry_returns_to_pending(self, db_session, item, warehouse, pending_issue):
        lifecycle_service.approve(pending_issue.id, "manager1")
        transaction_service.record_transaction(IssueRequest(item.id, 50, source_location_id=warehouse.id), "clerk2")
        with pytest.raises(RuleViolation):
            lifecycle_service.process(pending_issue.id, "operator1")

        retried = lifecycle_service.retry(pending_issue.id, "manager1")
        assert retried.status is S.PENDING
        assert retried.approved_by is None
        assert retried.processed_at is None
        assert "Retry requested by manager1" in retried.notes

    def test_retry_only_from_failed(self, db_session, pending_receipt):
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.retry(pending_receipt.id, "manager1")
        assert exc.value.kind is ViolationKind.INVALID_STATE_TRANSITION


# =============================================================================
# CANCEL
# =============================================================================


class TestCancel:

    def test_cancel_pending(self, db_session, item, pending_receipt):
        tx = lifecycle_service.cancel(pending_receipt.id, "Duplicate entry", "manager1")
        assert tx.status is S.CANCELLED
        assert tx.notes.endswith("Cancelled: Duplicate entry")
        assert _stock(db_session, item.id) == 100

    def test_cancel_approved(self, db_session, pending_receipt):
        lifecycle_service.approve(pending_receipt.id, "manager1")
        assert lifecycle_service.cancel(pending_receipt.id, "Supplier recall", "manager1").status is S.CANCELLED

    def test_cannot_cancel_completed(self, db_session, item, warehouse):
        done = transaction_service.record_transaction(
            ReceiptRequest(item.id, 1, destination_location_id=warehouse.id), "clerk1"
        )
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.cancel(done.id, "Too late", "manager1")
        assert exc.value.kind is ViolationKind.INVALID_STATE_TRANSITION

    def test_cannot_cancel_twice(self, db_session, pending_receipt):
        lifecycle_service.cancel(pending_receipt.id, "first", "manager1")
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.cancel(pending_receipt.id, "second", "manager1")
        assert exc.value.kind is ViolationKind.INVALID_STATE_TRANSITION


# =============================================================================
# MODIFY
# =============================================================================


class TestModify:

    def test_modify_pending(self, db_session, pending_issue):
        tx = lifecycle_service.modify(pending_issue.id, {"quantity": 60, "reference_number": "WO-7"}, "clerk1")
        assert tx.quantity == 60
        assert tx.reference_number == "WO-7"
        assert tx.status is S.PENDING

    def test_modified_request_is_revalidated(self, db_session, pending_issue):
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.modify(pending_issue.id, {"quantity": 500}, "clerk1")
        assert exc.value.kind is ViolationKind.INSUFFICIENT_STOCK
        db_session.rollback()
        assert lifecycle_service.get_transaction(pending_issue.id).quantity == 80

    def test_notes_edit_keeps_approval(self, db_session, pending_issue):
        lifecycle_service.approve(pending_issue.id, "manager1")
        tx = lifecycle_service.modify(pending_issue.id, {"notes": "Rush order"}, "clerk1")
        assert tx.status is S.APPROVED
        assert tx.approved_by == "manager1"

    def test_quantity_edit_withdraws_approval(self, db_session, item, warehouse):
        small = _pending(ReceiptRequest(item.id, 1, destination_location_id=warehouse.id, unit_cost_cents=100))
        lifecycle_service.approve(small.id, "clerk2", role="CLERK")

        tx = lifecycle_service.modify(small.id, {"quantity": 9000}, "clerk1")
        assert tx.status is S.PENDING
        assert tx.approved_by is None
        assert tx.approved_at is None

        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.process(small.id, "operator1")
        assert exc.value.kind is ViolationKind.INVALID_STATE_TRANSITION
        db_session.rollback()

        # $9,000.00 is over the clerk ceiling
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.approve(small.id, "clerk2", role="CLERK")
        assert exc.value.kind is ViolationKind.EXCEEDS_APPROVAL_LIMIT
        db_session.rollback()
        assert _stock(db_session, item.id) == 100

    def test_unchanged_values_keep_approval(self, db_session, pending_issue):
        lifecycle_service.approve(pending_issue.id, "manager1")
        tx = lifecycle_service.modify(pending_issue.id, {"quantity": 80}, "clerk1")
        assert tx.status is S.APPROVED

    def test_completed_is_locked(self, db_session, item, warehouse):
        done = transaction_service.record_transaction(
            ReceiptRequest(item.id, 1, destination_location_id=warehouse.id), "clerk1"
        )
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.modify(done.id, {"quantity": 2}, "clerk1")
        assert exc.value.kind is ViolationKind.TRANSACTION_LOCKED

    def test_cancelled_is_locked(self, db_session, pending_issue):
        lifecycle_service.cancel(pending_issue.id, "no longer needed", "manager1")
        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.modify(pending_issue.id, {"quantity": 2}, "clerk1")
        assert exc.value.kind is ViolationKind.TRANSACTION_LOCKED

    def test_unknown_field(self, db_session, pending_issue):
        with pytest.raises(ValidationError):
            lifecycle_service.modify(pending_issue.id, {"status": "COMPLETED"}, "clerk1")


# =============================================================================
# BULK PROCESS / QUERIES
# =============================================================================


class TestBulkProcess:

    def test_processes_all(self, db_session, item, warehouse, pending_receipt, pending_issue):
        for tx in (pending_receipt, pending_issue):
            lifecycle_service.approve(tx.id, "manager1")

        done = lifecycle_service.bulk_process([pending_receipt.id, pending_issue.id], "operator1")

        assert [tx.status for tx in done] == [S.COMPLETED, S.COMPLETED]
        assert _stock(db_session, item.id) == 40

    def test_stops_at_first_failure(self, db_session, item, warehouse, pending_receipt):
        lifecycle_service.approve(pending_receipt.id, "manager1")
        still_pending = _pending(IssueRequest(item.id, 10, source_location_id=warehouse.id))

        with pytest.raises(RuleViolation) as exc:
            lifecycle_service.bulk_process([pending_receipt.id, still_pending.id], "operator1")

        assert exc.value.message.startswith(f"Transaction {still_pending.id}:")
        assert type(exc.value) is RuleViolation
        assert lifecycle_service.get_transaction(pending_receipt.id).status is S.COMPLETED
        assert _stock(db_session, item.id) == 120

    def test_missing_transaction_stays_not_found(self, db_session, pending_receipt):
        lifecycle_service.approve(pending_receipt.id, "manager1")

        with pytest.raises(NotFoundError) as exc:
            lifecycle_service.bulk_process([pending_receipt.id, 424242], "operator1")

        assert exc.value.status_code == 404
        assert exc.value.kind is ViolationKind.NOT_FOUND
        assert exc.value.message == "Transaction 424242: Transaction 424242 not found"


def test_transactions_by_status(db_session, item, warehouse, pending_receipt):
    transaction_service.record_transaction(ReceiptRequest(item.id, 1, destination_location_id=warehouse.id), "clerk1")
    pending = lifecycle_service.transactions_by_status("PENDING")
    assert [tx.id for tx in pending] == [pending_receipt.id]
    assert len(lifecycle_service.transactions_by_status(S.COMPLETED, item_id=item.id)) == 1
    assert InventoryTransaction.query.count() == 2
