# Overview: Flask API routes for locations; parses input and returns JSON responses.

# backend/devtrack/routes/locations.py
"""
Location hierarchy routes.

Hierarchy rules (no cycles, depth limit, parent/child type table) are
enforced by location_service on create and on every parent or type change.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_actor
from ..errors import HierarchyInvariantError, RuleViolation
from ..extensions import db
from ..models import Location
from ..services import item_service, location_service
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "name", "description", "location_type", "parent_location_id",
        "max_capacity", "is_active", "notes",
    },
    required_on_create={"code", "name", "location_type"},
)

locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_actor
def list_locations():
    """
    Query params:
    - location_type: str (optional)
    - include_inactive: bool (optional)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    try:
        locations = location_service.list_locations(
            location_type=request.args.get("location_type"),
            include_inactive=include_inactive,
        )
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"locations": [loc.to_dict() for loc in locations]}


@locations_bp.get("/tree")
@require_actor
def location_tree():
    try:
        return {"tree": location_service.build_hierarchy()}
    except HierarchyInvariantError:
        current_app.logger.exception("Location hierarchy is corrupt")
        return {"error": "Location hierarchy is inconsistent"}, 500


@locations_bp.get("/capacity")
@require_actor
def capacity_report():
    return {"locations": location_service.capacity_report()}


@locations_bp.get("/<int:location_id>")
@require_actor
def get_location(location_id: int):
    try:
        location = location_service.get_location(location_id)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return location.to_dict()


@locations_bp.post("")
@require_actor
def create_location():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=False)
        patch.pop("is_active", None)
        location = location_service.create_location(actor=g.actor_id, **patch)
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except RuleViolation as e:
        db.session.rollback()
        return e.to_dict(), e.status_code

    return location.to_dict(), 201


@locations_bp.put("/<int:location_id>")
@require_actor
def update_location(location_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=True)
        location = location_service.update_location(location_id, patch, actor=g.actor_id)
    except ValidationError as e:
        db.session.rollback()
        return {"error": str(e)}, 400
    except RuleViolation as e:
        db.session.rollback()
        return e.to_dict(), e.status_code

    return location.to_dict(), 200


@locations_bp.delete("/<int:location_id>")
@require_actor
def delete_location(location_id: int):
    try:
        location_service.delete_location(location_id)
    except RuleViolation as e:
        db.session.rollback()
        return e.to_dict(), e.status_code

    return {"ok": True}, 200


@locations_bp.post("/validate-parent")
@require_actor
def validate_parent():
    """
    Dry-run a parent assignment.

    Request body:
    {
        "location_id": int | null,
        "parent_location_id": int | null,
        "location_type": str (optional, needed for unsaved locations)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        child_type = data.get("location_type")
        location_service.validate_parent_assignment(
            data.get("location_id"),
            data.get("parent_location_id"),
            child_type=location_service.coerce_location_type(child_type) if child_type else None,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except RuleViolation as e:
        return {"valid": False, **e.to_dict()}, e.status_code

    return {"valid": True}, 200


@locations_bp.get("/<int:location_id>/ancestors")
@require_actor
def location_ancestors(location_id: int):
    try:
        chain = location_service.ancestors(location_id)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return {"ancestors": [loc.to_dict() for loc in chain]}


@locations_bp.get("/<int:location_id>/descendants")
@require_actor
def location_descendants(location_id: int):
    try:
        below = location_service.descendants(location_id)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    return {"descendants": [loc.to_dict() for loc in below]}


@locations_bp.get("/<int:location_id>/capacity")
@require_actor
def location_capacity(location_id: int):
    try:
        return location_service.capacity_utilization(location_id)
    except RuleViolation as e:
        return e.to_dict(), e.status_code


@locations_bp.get("/<int:location_id>/items")
@require_actor
def location_items(location_id: int):
    try:
        location_service.get_location(location_id)
    except RuleViolation as e:
        return e.to_dict(), e.status_code
    items = item_service.items_at_location(location_id)
    return {"items": [i.to_dict() for i in items]}
