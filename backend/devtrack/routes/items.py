# Overview: Flask API routes for inventory items; parses input and returns JSON responses.

# backend/devtrack/routes/items.py
"""
Inventory item routes.

CONCURRENCY: GET /api/items/<id> returns an ETag header. PUT, DELETE and
POST .../stock honor If-Match; a stale tag answers 409 and nothing is written.

All routes require an upstream-authenticated actor (X-User-Id).
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_actor
from ..errors import RuleViolation
from ..extensions import db
from ..models import InventoryItem
from ..services import item_service
from ..services.concurrency import compute_etag
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "part_number", "barcode", "description", "category", "unit_of_measure",
        "current_stock", "reserved_stock", "minimum_stock", "maximum_stock",
        "standard_cost_cents", "selling_price_cents", "location_id", "supplier_id", "notes",
    },
    required_on_create={"part_number", "barcode", "description", "location_id"},
)

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(item_service.UPDATABLE_ITEM_FIELDS),
)

items_bp = Blueprint("items", __name__, url_prefix="/api/items")


def _with_etag(item: InventoryItem, status: int = 200):
    return item.to_dict(), status, {"ETag": f'"{compute_etag(item)}"'}


@items_bp.get("")
@require_actor
def list_items():
    """
    Query params:
    - search: str (optional) - matches part number, description or barcode
    - include_inactive: bool (optional)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    items = item_service.list_items(search=request.args.get("search"), include_inactive=include_inactive)
    return {"items": [i.to_dict() for i in items]}


@items_bp.get("/<int:item_id>")
@require_actor
def get_item(item_id: int):
    try:
        item = item_service.get_item(item_id)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return _with_etag(item)


@items_bp.get("/barcode/<path:barcode>")
@require_actor
def get_item_by_barcode(barcode: str):
    try:
        item = item_service.get_item_by_barcode(barcode)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return _with_etag(item)


@items_bp.post("")
@require_actor
def create_item():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=ITEM_CREATE_POLICY, partial=False)
        item = item_service.create_item(patch, g.actor_id)
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except RuleViolation as e:
        db.session.rollback()
        return e.to_dict(), e.status_code

    return _with_etag(item, 201)


@items_bp.put("/<int:item_id>")
@require_actor
def update_item(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=ITEM_UPDATE_POLICY, partial=True)
        item = item_service.update_item(item_id, patch, g.actor_id, if_match=request.headers.get("If-Match"))
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except RuleViolation as e:
        db.session.rollback()
        return e.to_dict(), e.status_code

    return _with_etag(item)


@items_bp.delete("/<int:item_id>")
@require_actor
def deactivate_item(item_id: int):
    """Soft delete: the item is deactivated, never removed."""
    try:
        item = item_service.deactivate_item(item_id, g.actor_id, if_match=request.headers.get("If-Match"))
    except RuleViolation as e:
        db.session.rollback()
        return e.to_dict(), e.status_code

    return item.to_dict(), 200


@items_bp.post("/<int:item_id>/stock")
@require_actor
def update_stock(item_id: int):
    """
    Direct stock change outside the transaction workflow.

    Request body:
    {
        "change": int (signed),
        "reason": str
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        change = data["change"]
        if not isinstance(change, int) or isinstance(change, bool):
            raise ValidationError("change must be an integer")
        item = item_service.update_stock(
            item_id,
            change,
            data.get("reason"),
            g.actor_id,
            if_match=request.headers.get("If-Match"),
        )
    except KeyError as e:
        return {"error": f"Missing required field: {e}"}, 400
    except ValidationError as e:
        return {"error": str(e)}, 400
    except RuleViolation as e:
        db.session.rollback()
        return e.to_dict(), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Stock update failed for item %s", item_id)
        return {"error": "Unexpected error"}, 500

    return _with_etag(item)


@items_bp.post("/scan")
@require_actor
def record_scan():
    """
    Request body:
    {
        "barcode": str,
        "confidence": int (optional, default 100)
    }
    """
    data = request.get_json(silent=True) or {}
    barcode = data.get("barcode")
    if not barcode:
        return {"error": "Missing required field: 'barcode'"}, 400

    confidence = data.get("confidence", 100)
    if not isinstance(confidence, int) or isinstance(confidence, bool):
        return {"error": "confidence must be an integer"}, 400

    try:
        item = item_service.record_barcode_scan(barcode, g.actor_id, confidence=confidence)
    except RuleViolation as e:
        db.session.rollback()
        return e.to_dict(), e.status_code

    return _with_etag(item)


@items_bp.get("/low-stock")
@require_actor
def low_stock():
    threshold = request.args.get("threshold", type=int)
    items = item_service.low_stock_items(threshold=threshold)
    return {"items": [i.to_dict() for i in items]}


@items_bp.get("/<int:item_id>/reorder-point")
@require_actor
def reorder_point(item_id: int):
    try:
        point = item_service.calculate_reorder_point(item_id)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return {"item_id": item_id, "reorder_point": point}


@items_bp.get("/valuation")
@require_actor
def valuation():
    return item_service.inventory_valuation()
