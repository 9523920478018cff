# Overview: Service-layer operations for the location hierarchy; encapsulates business logic and database work.

"""
DeviceTrack Location Hierarchy Service

================================================================================
PURPOSE: Keep the tree of storage locations acyclic, shallow and well-typed
================================================================================

PARENT ASSIGNMENT RULES (checked in this order):
1. SelfParent          a location cannot be its own parent
2. (root)              no parent is always legal
3. ParentNotFound      the proposed parent must exist
4. CircularReference   walking up from the parent must never reach the
                       location itself (or revisit a node)
5. DepthExceeded       the parent chain (parent plus its ancestors) plus the
                       height of the subtree being moved must be shorter
                       than max_hierarchy_depth, so no node ever lands on
                       level 6 or deeper
6. IncompatibleType    the child's type must be allowed under the parent's
                       type (rules.DEFAULT_LOCATION_CHILDREN)

WALKS:
Every walk is iterative and keyed by a visited set. Parent walks are also
capped at max_hierarchy_hops; hitting the cap means the stored tree is
corrupt and raises HierarchyInvariantError (a 500, not a user error).
================================================================================
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..errors import HierarchyInvariantError, NotFoundError, RuleViolation, ViolationKind
from ..extensions import db
from ..models import InventoryItem, Location, LocationType
from ..rules import RulesConfig, current_rules
from ..validation import ValidationError


NO_CAPACITY_NOTE = "Location has no capacity limit set"


def coerce_location_type(value) -> LocationType:
    if isinstance(value, LocationType):
        return value
    try:
        return LocationType(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(t.value for t in LocationType)
        raise ValidationError(f"Invalid location_type '{value}'. Must be one of: {allowed}")


def get_location(location_id: int) -> Location:
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFoundError(f"Location {location_id} not found")
    return location


def get_location_by_code(code: str) -> Location:
    location = Location.query.filter_by(code=code).first()
    if location is None:
        raise NotFoundError(f"Location '{code}' not found")
    return location


def list_locations(
    *,
    location_type: LocationType | str | None = None,
    include_inactive: bool = False,
) -> list[Location]:
    q = Location.query
    if location_type is not None:
        q = q.filter_by(location_type=coerce_location_type(location_type))
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Location.code.asc()).all()


def _parent_chain(
    start: Location,
    location_id: Optional[int],
    rules: RulesConfig,
) -> list[Location]:
    """
    Locations from start up to its root, inclusive.

    Raises CircularReference if location_id (or any already-visited node)
    shows up on the way.
    """
    visited: set[int] = {location_id} if location_id is not None else set()
    chain: list[Location] = []
    current: Optional[Location] = start
    hops = 0

    while current is not None:
        if current.id in visited:
            raise RuleViolation(
                ViolationKind.CIRCULAR_REFERENCE,
                "Circular reference detected in location hierarchy",
            )
        visited.add(current.id)
        chain.append(current)

        if current.parent_location_id is None:
            break

        hops += 1
        if hops > rules.max_hierarchy_hops:
            raise HierarchyInvariantError(
                f"Parent walk from location {start.id} exceeded {rules.max_hierarchy_hops} hops"
            )
        current = db.session.get(Location, current.parent_location_id)

    return chain


def _subtree_height(location_id: int, rules: RulesConfig) -> int:
    """Levels below location_id (0 for a leaf), walked breadth-first."""
    visited: set[int] = {location_id}
    frontier = [location_id]
    height = 0

    while True:
        children = Location.query.filter(Location.parent_location_id.in_(frontier)).all()
        frontier = [child.id for child in children if child.id not in visited]
        if not frontier:
            return height
        visited.update(frontier)
        height += 1
        if height > rules.max_hierarchy_hops:
            raise HierarchyInvariantError(
                f"Subtree walk from location {location_id} exceeded {rules.max_hierarchy_hops} levels"
            )


def validate_type_compatibility(
    child_type: LocationType,
    parent_type: LocationType,
    *,
    rules: RulesConfig | None = None,
) -> None:
    rules = rules or current_rules()
    allowed = rules.location_children.get(parent_type)
    if allowed is not None and child_type not in allowed:
        raise RuleViolation(
            ViolationKind.INCOMPATIBLE_TYPE,
            f"Location type '{child_type.value}' is not compatible as a child of '{parent_type.value}'",
        )


def validate_parent_assignment(
    location_id: Optional[int],
    proposed_parent_id: Optional[int],
    *,
    child_type: LocationType | None = None,
    rules: RulesConfig | None = None,
) -> None:
    """
    Check that location_id may sit under proposed_parent_id.

    location_id is None when validating a location that is not saved yet;
    pass child_type in that case so the type table can be checked.

    Raises:
        RuleViolation: SelfParent, CircularReference, DepthExceeded, IncompatibleType
        NotFoundError: ParentNotFound
        HierarchyInvariantError: stored tree exceeds the hop cap
    """
    rules = rules or current_rules()

    if proposed_parent_id is not None and proposed_parent_id == location_id:
        raise RuleViolation(ViolationKind.SELF_PARENT, "Location cannot be its own parent")

    if proposed_parent_id is None:
        return

    parent = db.session.get(Location, proposed_parent_id)
    if parent is None:
        raise NotFoundError(
            f"Parent location {proposed_parent_id} does not exist",
            kind=ViolationKind.PARENT_NOT_FOUND,
        )

    chain = _parent_chain(parent, location_id, rules)
    height = _subtree_height(location_id, rules) if location_id is not None else 0

    if len(chain) + height >= rules.max_hierarchy_depth:
        raise RuleViolation(
            ViolationKind.DEPTH_EXCEEDED,
            f"Maximum hierarchy depth ({rules.max_hierarchy_depth} levels) would be exceeded",
        )

    if child_type is None and location_id is not None:
        existing = db.session.get(Location, location_id)
        if existing is not None:
            child_type = existing.location_type

    if child_type is not None:
        validate_type_compatibility(child_type, parent.location_type, rules=rules)


def _item_counts() -> dict[int, int]:
    rows = (
        db.session.query(InventoryItem.location_id, func.count(InventoryItem.id))
        .group_by(InventoryItem.location_id)
        .all()
    )
    return {location_id: count for location_id, count in rows}


def item_count_at(location_id: int) -> int:
    return InventoryItem.query.filter_by(location_id=location_id).count()


def build_hierarchy() -> list[dict]:
    """
    Every root location as a nested tree.

    Children are ordered by code. Each node carries its 0-based level, the
    display path from the root and the number of items stored directly at
    that location.
    """
    locations = Location.query.order_by(Location.code.asc()).all()
    counts = _item_counts()

    children_of: dict[Optional[int], list[Location]] = defaultdict(list)
    for loc in locations:
        children_of[loc.parent_location_id].append(loc)

    roots: list[dict] = []
    visited: set[int] = set()
    # (location, level, parent path, list the node is appended to)
    stack = [(loc, 0, "", roots) for loc in reversed(children_of[None])]

    while stack:
        loc, level, parent_path, siblings = stack.pop()
        if loc.id in visited:
            raise HierarchyInvariantError(f"Location {loc.id} reached twice while building hierarchy")
        visited.add(loc.id)

        path = f"{parent_path} > {loc.display_name()}" if parent_path else loc.display_name()
        kids = children_of.get(loc.id, [])
        node = {
            "id": loc.id,
            "code": loc.code,
            "name": loc.name,
            "location_type": loc.location_type.value,
            "level": level,
            "is_active": loc.is_active,
            "path": path,
            "item_count": counts.get(loc.id, 0),
            "child_count": len(kids),
            "children": [],
        }
        siblings.append(node)

        for child in reversed(kids):
            stack.append((child, level + 1, path, node["children"]))

    return roots


def ancestors(location_id: int, *, rules: RulesConfig | None = None) -> list[Location]:
    """Parent chain of a location, nearest parent first (the location itself excluded)."""
    rules = rules or current_rules()
    location = get_location(location_id)
    if location.parent_location_id is None:
        return []
    parent = db.session.get(Location, location.parent_location_id)
    if parent is None:
        return []
    return _parent_chain(parent, location.id, rules)


def descendants(location_id: int) -> list[Location]:
    """All locations below location_id, breadth-first."""
    get_location(location_id)

    result: list[Location] = []
    visited: set[int] = {location_id}
    queue: deque[int] = deque([location_id])

    while queue:
        current_id = queue.popleft()
        children = (
            Location.query.filter_by(parent_location_id=current_id)
            .order_by(Location.code.asc())
            .all()
        )
        for child in children:
            if child.id in visited:
                continue
            visited.add(child.id)
            result.append(child)
            queue.append(child.id)

    return result


def capacity_utilization(location_id: int) -> dict:
    location = get_location(location_id)
    item_count = item_count_at(location_id)

    if not location.max_capacity:
        return {
            "location_id": location.id,
            "item_count": item_count,
            "max_capacity": location.max_capacity,
            "utilization_percent": 0.0,
            "note": NO_CAPACITY_NOTE,
        }

    return {
        "location_id": location.id,
        "item_count": item_count,
        "max_capacity": location.max_capacity,
        "utilization_percent": round(item_count / location.max_capacity * 100, 2),
        "note": None,
    }


def capacity_report() -> list[dict]:
    """Capacity utilization of every active location."""
    return [capacity_utilization(loc.id) for loc in list_locations()]


def validate_deletion(location_id: int) -> None:
    get_location(location_id)

    if Location.query.filter_by(parent_location_id=location_id).first() is not None:
        raise RuleViolation(ViolationKind.HAS_CHILDREN, "Cannot delete location that has child locations")

    if InventoryItem.query.filter_by(location_id=location_id).first() is not None:
        raise RuleViolation(ViolationKind.HAS_ITEMS, "Cannot delete location that contains inventory items")


def _validate_capacity(max_capacity) -> None:
    if max_capacity is not None and max_capacity < 0:
        raise ValidationError("max_capacity must be >= 0")


def create_location(
    *,
    code: str,
    name: str,
    location_type: LocationType | str = LocationType.WAREHOUSE,
    parent_location_id: int | None = None,
    description: str | None = None,
    max_capacity: int | None = None,
    notes: str | None = None,
    actor: str | None = None,
) -> Location:
    """
    Create a location, standalone or under a parent.

    Raises:
        RuleViolation(DuplicateCode) or any parent assignment violation
    """
    loc_type = coerce_location_type(location_type)
    _validate_capacity(max_capacity)

    if Location.query.filter_by(code=code).first() is not None:
        raise RuleViolation(ViolationKind.DUPLICATE_CODE, f"Location code '{code}' already exists")

    validate_parent_assignment(None, parent_location_id, child_type=loc_type)

    location = Location(
        code=code,
        name=name,
        description=description,
        location_type=loc_type,
        parent_location_id=parent_location_id,
        max_capacity=max_capacity,
        notes=notes,
        is_active=True,
        created_by=actor,
    )
    db.session.add(location)
    db.session.commit()

    current_app.logger.info("Created location %s (%s)", location.code, location.id)
    return location


UPDATABLE_LOCATION_FIELDS = {
    "code", "name", "description", "location_type", "parent_location_id",
    "max_capacity", "is_active", "notes",
}


def update_location(location_id: int, changes: dict, *, actor: str | None = None) -> Location:
    """
    Update a location; hierarchy rules are re-checked when the parent or
    the type changes.
    """
    location = get_location(location_id)

    unknown = set(changes) - UPDATABLE_LOCATION_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    new_type = coerce_location_type(changes["location_type"]) if "location_type" in changes else location.location_type
    new_parent = changes.get("parent_location_id", location.parent_location_id)

    if "max_capacity" in changes:
        _validate_capacity(changes["max_capacity"])

    if "code" in changes and changes["code"] != location.code:
        clash = Location.query.filter(Location.code == changes["code"], Location.id != location.id).first()
        if clash is not None:
            raise RuleViolation(ViolationKind.DUPLICATE_CODE, f"Location code '{changes['code']}' already exists")

    if new_parent != location.parent_location_id or new_type != location.location_type:
        validate_parent_assignment(location.id, new_parent, child_type=new_type)

    if new_type != location.location_type:
        for child in Location.query.filter_by(parent_location_id=location.id).all():
            validate_type_compatibility(child.location_type, new_type)

    for key, value in changes.items():
        if key == "location_type":
            value = new_type
        setattr(location, key, value)
    location.updated_by = actor

    db.session.commit()
    return location


def delete_location(location_id: int) -> None:
    validate_deletion(location_id)
    location = get_location(location_id)
    db.session.delete(location)
    db.session.commit()
    current_app.logger.info("Deleted location %s", location_id)
