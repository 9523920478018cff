"""
Location hierarchy integrity: cycles, depth limit, parent/child type table,
capacity and deletion guards.
"""

import pytest

from conftest import make_item, make_location
from devtrack.errors import HierarchyInvariantError, NotFoundError, RuleViolation, ViolationKind
from devtrack.models import Location, LocationType
from devtrack.services import location_service
from devtrack.validation import ValidationError

WH = LocationType.WAREHOUSE
PF = LocationType.PRODUCTION_FLOOR


def _nested_chain(session, levels):
    """levels locations, each under the previous, alternating compatible types."""
    chain = []
    parent = None
    for n in range(levels):
        parent = make_location(session, f"L{n + 1}", WH if n % 2 == 0 else PF, parent=parent)
        chain.append(parent)
    return chain


# =============================================================================
# CREATE / PARENT ASSIGNMENT
# =============================================================================


class TestCreateLocation:

    def test_create_root(self, db_session):
        loc = location_service.create_location(code="WH-A", name="Warehouse A", location_type="warehouse", actor="u1")
        assert loc.id is not None
        assert loc.location_type is WH
        assert loc.parent_location_id is None
        assert loc.created_by == "u1"

    def test_create_under_compatible_parent(self, db_session, warehouse):
        loc = location_service.create_location(
            code="PF-A", name="Floor A", location_type=PF, parent_location_id=warehouse.id
        )
        assert loc.parent_location_id == warehouse.id

    def test_duplicate_code(self, db_session, warehouse):
        with pytest.raises(RuleViolation) as exc:
            location_service.create_location(code="WH-01", name="Again", location_type=WH)
        assert exc.value.kind is ViolationKind.DUPLICATE_CODE

    def test_unknown_type(self, db_session):
        with pytest.raises(ValidationError):
            location_service.create_location(code="X", name="X", location_type="SPACESHIP")

    def test_missing_parent(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            location_service.create_location(code="X", name="X", location_type=WH, parent_location_id=99999)
        assert exc.value.kind is ViolationKind.PARENT_NOT_FOUND

    def test_incompatible_child_type(self, db_session, warehouse):
        with pytest.raises(RuleViolation) as exc:
            location_service.create_location(
                code="QA-X", name="Hold", location_type=LocationType.QUARANTINE, parent_location_id=warehouse.id
            )
        assert exc.value.kind is ViolationKind.INCOMPATIBLE_TYPE

    def test_leaf_types_accept_no_children(self, db_session, quarantine):
        with pytest.raises(RuleViolation) as exc:
            location_service.create_location(
                code="WH-X", name="X", location_type=WH, parent_location_id=quarantine.id
            )
        assert exc.value.kind is ViolationKind.INCOMPATIBLE_TYPE

    def test_other_accepts_warehouse(self, db_session):
        other = make_location(db_session, "OT-1", LocationType.OTHER)
        loc = location_service.create_location(code="WH-X", name="X", location_type=WH, parent_location_id=other.id)
        assert loc.parent_location_id == other.id


class TestDepthLimit:

    def test_fifth_level_allowed(self, db_session):
        chain = _nested_chain(db_session, 4)
        loc = location_service.create_location(code="L5", name="L5", location_type=WH, parent_location_id=chain[-1].id)
        assert loc.id is not None

    def test_sixth_level_rejected(self, db_session):
        chain = _nested_chain(db_session, 5)
        with pytest.raises(RuleViolation) as exc:
            location_service.create_location(code="L6", name="L6", location_type=PF, parent_location_id=chain[-1].id)
        assert exc.value.kind is ViolationKind.DEPTH_EXCEEDED

    def test_moving_subtree_counts_its_height(self, db_session):
        _, _, _, l4 = _nested_chain(db_session, 4)
        x = make_location(db_session, "X", WH)
        y = make_location(db_session, "Y", PF, parent=x)
        make_location(db_session, "Z", WH, parent=y)

        with pytest.raises(RuleViolation) as exc:
            location_service.update_location(x.id, {"parent_location_id": l4.id})
        assert exc.value.kind is ViolationKind.DEPTH_EXCEEDED
        db_session.rollback()
        assert db_session.get(Location, x.id).parent_location_id is None

    def test_moving_subtree_that_fits(self, db_session):
        _, l2, _, _ = _nested_chain(db_session, 4)
        x = make_location(db_session, "X", WH)
        make_location(db_session, "Y", PF, parent=x)

        moved = location_service.update_location(x.id, {"parent_location_id": l2.id})
        assert moved.parent_location_id == l2.id
        levels = {}
        stack = list(location_service.build_hierarchy())
        while stack:
            node = stack.pop()
            levels[node["code"]] = node["level"]
            stack.extend(node["children"])
        assert levels["Y"] == 3

    def test_corrupt_tree_hits_hop_cap(self, db_session):
        # Inserted directly, bypassing the depth rule
        chain = _nested_chain(db_session, 12)
        with pytest.raises(HierarchyInvariantError):
            location_service.validate_parent_assignment(None, chain[-1].id, child_type=WH)


class TestCycles:

    def test_self_parent(self, db_session, warehouse):
        with pytest.raises(RuleViolation) as exc:
            location_service.validate_parent_assignment(warehouse.id, warehouse.id)
        assert exc.value.kind is ViolationKind.SELF_PARENT

    def test_direct_cycle(self, db_session):
        root, child = _nested_chain(db_session, 2)
        with pytest.raises(RuleViolation) as exc:
            location_service.update_location(root.id, {"parent_location_id": child.id})
        assert exc.value.kind is ViolationKind.CIRCULAR_REFERENCE

    def test_indirect_cycle(self, db_session):
        root, _, grandchild = _nested_chain(db_session, 3)
        with pytest.raises(RuleViolation) as exc:
            location_service.validate_parent_assignment(root.id, grandchild.id)
        assert exc.value.kind is ViolationKind.CIRCULAR_REFERENCE

    def test_rejected_update_leaves_row_unchanged(self, db_session):
        root, child = _nested_chain(db_session, 2)
        with pytest.raises(RuleViolation):
            location_service.update_location(root.id, {"parent_location_id": child.id})
        db_session.rollback()
        assert db_session.get(Location, root.id).parent_location_id is None

    def test_clearing_parent_is_allowed(self, db_session):
        _, child = _nested_chain(db_session, 2)
        updated = location_service.update_location(child.id, {"parent_location_id": None})
        assert updated.parent_location_id is None


class TestUpdateLocation:

    def test_type_change_must_keep_children_compatible(self, db_session):
        root, _ = _nested_chain(db_session, 2)
        with pytest.raises(RuleViolation) as exc:
            location_service.update_location(root.id, {"location_type": LocationType.QUARANTINE})
        assert exc.value.kind is ViolationKind.INCOMPATIBLE_TYPE

    def test_rename(self, db_session, warehouse):
        updated = location_service.update_location(warehouse.id, {"name": "Renamed"}, actor="u2")
        assert updated.name == "Renamed"
        assert updated.updated_by == "u2"

    def test_code_clash(self, db_session, warehouse, second_warehouse):
        with pytest.raises(RuleViolation) as exc:
            location_service.update_location(second_warehouse.id, {"code": "WH-01"})
        assert exc.value.kind is ViolationKind.DUPLICATE_CODE

    def test_unknown_field(self, db_session, warehouse):
        with pytest.raises(ValidationError):
            location_service.update_location(warehouse.id, {"created_at": "2020-01-01"})


# =============================================================================
# QUERIES
# =============================================================================


class TestHierarchyQueries:

    def test_build_hierarchy(self, db_session):
        root, floor, store = _nested_chain(db_session, 3)
        make_item(db_session, floor)
        lone = make_location(db_session, "ZZ-ROOT", LocationType.TRANSIT)

        tree = location_service.build_hierarchy()

        assert [n["code"] for n in tree] == ["L1", "ZZ-ROOT"]
        top = tree[0]
        assert top["level"] == 0
        assert top["child_count"] == 1
        mid = top["children"][0]
        assert mid["code"] == "L2"
        assert mid["level"] == 1
        assert mid["item_count"] == 1
        assert mid["path"] == "L1 (Location L1) > L2 (Location L2)"
        assert mid["children"][0]["level"] == 2
        assert tree[1]["id"] == lone.id
        assert tree[1]["children"] == []

    def test_ancestors_nearest_first(self, db_session):
        chain = _nested_chain(db_session, 4)
        assert [loc.code for loc in location_service.ancestors(chain[-1].id)] == ["L3", "L2", "L1"]
        assert location_service.ancestors(chain[0].id) == []

    def test_descendants_breadth_first(self, db_session):
        root, floor, store = _nested_chain(db_session, 3)
        site = make_location(db_session, "CS-1", LocationType.CUSTOMER_SITE, parent=root)
        codes = [loc.code for loc in location_service.descendants(root.id)]
        assert codes == ["CS-1", "L2", "L3"]

    def test_list_by_type(self, db_session, warehouse, quarantine):
        result = location_service.list_locations(location_type="QUARANTINE")
        assert [loc.code for loc in result] == ["QA-01"]

    def test_list_hides_inactive(self, db_session, warehouse):
        make_location(db_session, "OLD", is_active=False)
        assert [loc.code for loc in location_service.list_locations()] == ["WH-01"]
        assert len(location_service.list_locations(include_inactive=True)) == 2


class TestCapacity:

    def test_utilization_percent(self, db_session):
        loc = make_location(db_session, "CAP-1", max_capacity=4)
        make_item(db_session, loc)
        report = location_service.capacity_utilization(loc.id)
        assert report["item_count"] == 1
        assert report["utilization_percent"] == 25.0
        assert report["note"] is None

    def test_no_capacity_set(self, db_session, item, warehouse):
        report = location_service.capacity_utilization(warehouse.id)
        assert report["utilization_percent"] == 0.0
        assert report["note"] == location_service.NO_CAPACITY_NOTE


# =============================================================================
# DELETION
# =============================================================================


class TestDeletion:

    def test_blocked_by_children(self, db_session):
        root, _ = _nested_chain(db_session, 2)
        with pytest.raises(RuleViolation) as exc:
            location_service.delete_location(root.id)
        assert exc.value.kind is ViolationKind.HAS_CHILDREN

    def test_blocked_by_items(self, db_session, item, warehouse):
        with pytest.raises(RuleViolation) as exc:
            location_service.delete_location(warehouse.id)
        assert exc.value.kind is ViolationKind.HAS_ITEMS

    def test_empty_location_deleted(self, db_session, second_warehouse):
        location_id = second_warehouse.id
        location_service.delete_location(location_id)
        assert db_session.get(Location, location_id) is None

    def test_missing_location(self, db_session):
        with pytest.raises(NotFoundError):
            location_service.delete_location(12345)
