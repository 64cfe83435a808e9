# tests/unit/test_hierarchy_service.py
"""
Unit tests for NAMASTE parent/child walks and the cycle guard.
"""

import pytest

from app.repositories.terminology_repository import NamasteRepository
from app.services.errors import NotFoundError, ValidationError
from app.services.hierarchy_service import HierarchyService

from conftest import add_namaste


@pytest.fixture
def tree(db):
    add_namaste(db, "NAM000", "Tridosha Vikara")
    add_namaste(db, "NAM001", "Vata Prakopa", parent_code="NAM000", level=1)
    add_namaste(db, "NAM002", "Pitta Prakopa", parent_code="NAM000", level=1)
    add_namaste(db, "NAM010", "Vata Jwara", parent_code="NAM001", level=2)
    return db


@pytest.fixture
def hierarchy(db) -> HierarchyService:
    return HierarchyService(NamasteRepository(db))


class TestWalks:
    def test_hierarchy_of_middle_node(self, tree, hierarchy):
        result = hierarchy.hierarchy("NAM001")

        assert result.current.code == "NAM001"
        assert result.parent.code == "NAM000"
        assert [c.code for c in result.children] == ["NAM010"]
        assert [s.code for s in result.siblings] == ["NAM002"]
        assert [a.code for a in result.ancestors] == ["NAM000"]
        assert [d.code for d in result.descendants] == ["NAM010"]

    def test_ancestors_root_first(self, tree, hierarchy):
        leaf = NamasteRepository(tree).get_active("NAM010")
        assert [a.code for a in hierarchy.ancestors(leaf)] == ["NAM000", "NAM001"]

    def test_descendants_breadth_first(self, tree, hierarchy):
        assert [d.code for d in hierarchy.descendants("NAM000")] == ["NAM002", "NAM001", "NAM010"]

    def test_unknown_code(self, tree, hierarchy):
        with pytest.raises(NotFoundError):
            hierarchy.hierarchy("NAM404")

    def test_walks_stop_on_stored_cycle(self, db, hierarchy):
        add_namaste(db, "CYC001", "Cycle A", parent_code="CYC002")
        add_namaste(db, "CYC002", "Cycle B", parent_code="CYC001")

        result = hierarchy.hierarchy("CYC001")

        assert [a.code for a in result.ancestors] == ["CYC002"]
        assert [d.code for d in result.descendants] == ["CYC002"]


class TestCycleGuard:
    def test_self_parent_rejected(self, tree, hierarchy):
        with pytest.raises(ValidationError):
            hierarchy.ensure_no_cycle("NAM001", "NAM001")

    def test_descendant_as_parent_rejected(self, tree, hierarchy):
        with pytest.raises(ValidationError):
            hierarchy.ensure_no_cycle("NAM000", "NAM010")

    def test_valid_parent_accepted(self, tree, hierarchy):
        hierarchy.ensure_no_cycle("NAM002", "NAM001")
        hierarchy.ensure_no_cycle("NAM002", None)

    def test_unrelated_stored_cycle_does_not_block(self, db, hierarchy):
        add_namaste(db, "CYC001", "Cycle A", parent_code="CYC002")
        add_namaste(db, "CYC002", "Cycle B", parent_code="CYC001")

        hierarchy.ensure_no_cycle("NAM005", "CYC001")
