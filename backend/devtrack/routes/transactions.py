# Overview: Flask API routes for inventory transactions; parses input and returns JSON responses.

# backend/devtrack/routes/transactions.py
"""
Inventory transaction routes.

Recording:
- POST /api/transactions/<type>      type is receipt, issue, transfer,
                                     adjustment, cycle-count or return
  Body carries the request fields plus an optional "workflow":
  "direct" (default, COMPLETED immediately) or "pending".
- POST /api/transactions/bulk        direct path, one commit per entry

Lifecycle:
- POST /api/transactions/<id>/approve | process | cancel | retry
- PUT  /api/transactions/<id>        modify a transaction not yet processing
- POST /api/transactions/bulk-process

Approval checks the value against the X-User-Role limit; approving without
a role header is rejected as UnknownRole.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_actor
from ..errors import RuleViolation, ViolationKind
from ..extensions import db
from ..models import InventoryTransaction, TransactionType
from ..services import lifecycle_service, transaction_service
from ..services.transaction_rules import build_request
from ..time_utils import parse_iso_datetime
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_transaction,
    validate_payload,
)

REQUEST_POLICY = ModelValidationPolicy(
    writable_fields={
        "inventory_item_id", "quantity", "source_location_id", "destination_location_id",
        "unit_cost_cents", "reference_number", "reference_type", "adjustment_reason", "notes",
    },
    required_on_create={"inventory_item_id", "quantity"},
)

MODIFY_POLICY = ModelValidationPolicy(
    writable_fields=set(lifecycle_service.MODIFIABLE_FIELDS),
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _transaction_type(slug: str) -> TransactionType:
    try:
        return TransactionType(slug.replace("-", "_").upper())
    except ValueError:
        raise ValidationError(f"Unknown transaction type: {slug}")


def _request_from_payload(tx_type: TransactionType, payload: dict):
    fields = validate_payload(model=InventoryTransaction, payload=payload, policy=REQUEST_POLICY, partial=False)
    enforce_rules_transaction(fields)
    return build_request(tx_type, **fields)


def _error(e: Exception):
    db.session.rollback()
    if isinstance(e, RuleViolation):
        return e.to_dict(), e.status_code
    if isinstance(e, ValidationError):
        return {"error": str(e)}, 400
    current_app.logger.exception("Transaction request failed")
    return {"error": "Unexpected error"}, 500


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@transactions_bp.get("")
@require_actor
def list_transactions():
    """
    Query params (all optional):
    - status, transaction_type, item_id, location_id, limit
    """
    try:
        rows = transaction_service.list_transactions(
            status=(request.args.get("status") or "").upper() or None,
            tx_type=(request.args.get("transaction_type") or "").upper() or None,
            item_id=request.args.get("item_id", type=int),
            location_id=request.args.get("location_id", type=int),
            limit=min(request.args.get("limit", 200, type=int), 1000),
        )
    except ValueError as e:
        return {"error": str(e)}, 400
    return {"transactions": [tx.to_dict() for tx in rows]}


@transactions_bp.get("/pending")
@require_actor
def pending_transactions():
    return {"transactions": [tx.to_dict() for tx in transaction_service.pending_transactions()]}


@transactions_bp.get("/summary")
@require_actor
def transaction_summary():
    """Query params: start, end (ISO-8601, optional)."""
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return {"error": "start and end must be ISO-8601 datetimes"}, 400
    return transaction_service.transaction_summary(start, end)


@transactions_bp.get("/number/<string:transaction_number>")
@require_actor
def get_by_number(transaction_number: str):
    try:
        tx = transaction_service.get_by_number(transaction_number)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return tx.to_dict()


@transactions_bp.get("/<int:transaction_id>")
@require_actor
def get_transaction(transaction_id: int):
    try:
        tx = lifecycle_service.get_transaction(transaction_id)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return tx.to_dict()


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------

@transactions_bp.post("/bulk")
@require_actor
def bulk_record():
    """
    Request body:
    {
        "transactions": [{"transaction_type": str, ...request fields}, ...]
    }
    """
    data = request.get_json(silent=True) or {}
    entries = data.get("transactions")
    if not isinstance(entries, list) or not entries:
        return {"error": "transactions must be a non-empty list"}, 400

    try:
        requests = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ValidationError("Each transaction must be an object")
            entry = dict(entry)
            tx_type = _transaction_type(str(entry.pop("transaction_type", "")))
            requests.append(_request_from_payload(tx_type, entry))
        recorded = transaction_service.bulk_record(requests, g.actor_id)
    except Exception as e:
        return _error(e)

    return {"transactions": [tx.to_dict() for tx in recorded]}, 201


@transactions_bp.post("/bulk-process")
@require_actor
def bulk_process():
    """Request body: {"transaction_ids": [int, ...]}"""
    data = request.get_json(silent=True) or {}
    ids = data.get("transaction_ids")
    if not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
        return {"error": "transaction_ids must be a list of integers"}, 400

    try:
        processed = lifecycle_service.bulk_process(ids, g.actor_id)
    except Exception as e:
        return _error(e)

    return {"transactions": [tx.to_dict() for tx in processed]}, 200


@transactions_bp.post("/<string:tx_type>")
@require_actor
def record_transaction(tx_type: str):
    payload = dict(request.get_json(silent=True) or {})
    workflow = payload.pop("workflow", transaction_service.WORKFLOW_DIRECT)

    try:
        req = _request_from_payload(_transaction_type(tx_type), payload)
        tx = transaction_service.record_transaction(
            req,
            g.actor_id,
            workflow=workflow,
            if_match=request.headers.get("If-Match"),
        )
    except Exception as e:
        return _error(e)

    return tx.to_dict(), 201


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@transactions_bp.post("/<int:transaction_id>/approve")
@require_actor
def approve(transaction_id: int):
    try:
        if g.actor_role is None:
            raise RuleViolation(ViolationKind.UNKNOWN_ROLE, "X-User-Role is required to approve transactions")
        tx = lifecycle_service.approve(transaction_id, g.actor_id, role=g.actor_role)
    except Exception as e:
        return _error(e)
    return tx.to_dict(), 200


@transactions_bp.post("/<int:transaction_id>/process")
@require_actor
def process(transaction_id: int):
    try:
        tx = lifecycle_service.process(transaction_id, g.actor_id)
    except Exception as e:
        return _error(e)
    return tx.to_dict(), 200


@transactions_bp.post("/<int:transaction_id>/cancel")
@require_actor
def cancel(transaction_id: int):
    """Request body: {"reason": str}"""
    data = request.get_json(silent=True) or {}
    try:
        tx = lifecycle_service.cancel(transaction_id, data.get("reason"), g.actor_id)
    except Exception as e:
        return _error(e)
    return tx.to_dict(), 200


@transactions_bp.post("/<int:transaction_id>/retry")
@require_actor
def retry(transaction_id: int):
    try:
        tx = lifecycle_service.retry(transaction_id, g.actor_id)
    except Exception as e:
        return _error(e)
    return tx.to_dict(), 200


@transactions_bp.put("/<int:transaction_id>")
@require_actor
def modify(transaction_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        changes = validate_payload(model=InventoryTransaction, payload=payload, policy=MODIFY_POLICY, partial=True)
        enforce_rules_transaction(changes)
        tx = lifecycle_service.modify(transaction_id, changes, g.actor_id)
    except Exception as e:
        return _error(e)
    return tx.to_dict(), 200
