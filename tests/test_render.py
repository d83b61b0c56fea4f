"""Tests for tree rendering and expansion state."""

import pytest

from orgbook.models import EntityKind, EntityRecord
from orgbook.render import ExpansionState, iter_visible, node_label, render_forest
from orgbook.tree import build_entity_forest


def record(record_id, name, kind=EntityKind.COMPANY, parent_id=None) -> EntityRecord:
    return EntityRecord(id=record_id, display_name=name, kind=kind, parent_id=parent_id)


@pytest.fixture
def forest():
    return build_entity_forest([
        record("g", "Acme Group", EntityKind.GROUP),
        record("1", "Acme Foods", parent_id="g"),
        record("2", "Dairy", EntityKind.DIVISION, parent_id="1"),
        record("3", "Frozen", EntityKind.DIVISION, parent_id="1"),
        record("4", "Bolt Motors"),
    ])


class TestExpansionState:
    """Tests for ExpansionState."""

    def test_toggle(self):
        """Test flipping a node."""
        state = ExpansionState()
        assert state.toggle("1") is True
        assert "1" in state
        assert state.toggle("1") is False
        assert "1" not in state

    def test_expand_all_only_parents(self, forest):
        """Test that leaves are not recorded as expanded."""
        state = ExpansionState()
        state.expand_all(forest)
        assert state.keys() == {"1"}

    def test_survives_rebuild(self, forest):
        """Test that state keyed by id applies to a fresh forest."""
        state = ExpansionState(["1"])
        rebuilt = build_entity_forest([
            record("1", "Acme Foods renamed"),
            record("2", "Dairy", EntityKind.DIVISION, parent_id="1"),
        ])
        assert [node.key for _, node in iter_visible(rebuilt, state)] == ["1", "2"]

    def test_prune(self, forest):
        """Test that vanished ids are forgotten."""
        state = ExpansionState(["1", "gone"])
        state.prune(forest)
        assert list(state) == ["1"]


class TestRendering:
    """Tests for text rendering."""

    def test_node_label_shows_group(self, forest):
        """Test that a grouped company shows its group."""
        assert node_label(forest[0]) == "🏢 Acme Foods [Company] (Group: Acme Group)"

    def test_render_full_forest(self, forest):
        """Test connectors for a fully expanded forest."""
        assert render_forest(forest) == [
            "├─ 🏢 Acme Foods [Company] (Group: Acme Group)",
            "│  ├─ 🏪 Dairy [Division]",
            "│  └─ 🏪 Frozen [Division]",
            "└─ 🏢 Bolt Motors [Company]",
        ]

    def test_render_collapsed(self, forest):
        """Test that collapsed nodes show their hidden child count."""
        lines = render_forest(forest, ExpansionState())
        assert lines == [
            "├─ 🏢 Acme Foods [Company] (Group: Acme Group) (+2)",
            "└─ 🏢 Bolt Motors [Company]",
        ]

    def test_iter_visible_respects_expansion(self, forest):
        """Test that only expanded nodes show children."""
        assert [n.key for _, n in iter_visible(forest, set())] == ["1", "4"]
        assert [n.key for _, n in iter_visible(forest)] == ["1", "2", "3", "4"]
