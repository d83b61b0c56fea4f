"""Tests for Orgbook TUI application."""

import json
import threading

import pytest
from click.testing import CliRunner
from textual.widgets import DataTable, Tree

from orgbook.backend import BackendError
from orgbook.cli import cli
from orgbook.config import API_BASE_URL_ENV, CONFIG_PATH_ENV, OrgbookConfig, ViewState
from orgbook.models import (
    AssociationLink,
    AuditLog,
    Contact,
    ContactKind,
    EntityKind,
    EntityRecord,
    Industry,
    Person,
)
from orgbook.tree import build_entity_forest


ENTITIES = [
    EntityRecord(id="1", display_name="Acme Group", kind=EntityKind.GROUP),
    EntityRecord(id="2", display_name="Acme Foods", kind=EntityKind.COMPANY, parent_id="1"),
    EntityRecord(id="3", display_name="Dairy", kind=EntityKind.DIVISION, parent_id="2"),
    EntityRecord(id="4", display_name="Bolt Motors", kind=EntityKind.COMPANY),
]


class FakeClient:
    """In-memory stand-in for BackendClient."""

    def __init__(self, fail_companies: bool = False):
        self.fail_companies = fail_companies
        self.phone_gate: threading.Event | None = None
        self.phone_returned = threading.Event()
        self.closed = False

    def list_entities(self):
        if self.fail_companies:
            raise BackendError("backend down", status_code=503)
        return list(ENTITIES)

    def list_industries(self):
        return [
            Industry(id=1, name="Textiles", category="Main Industry"),
            Industry(id=2, name="Yarn", category="sub", parent_id=1),
        ]

    def list_persons(self):
        return [Person(id=5, display_name="Sara Ali", designation="CEO", attached_companies=[2])]

    def company_names(self):
        return {2: "Acme Foods", 4: "Bolt Motors"}

    def person_names(self):
        return {5: "Sara Ali"}

    def list_contacts(self, kind, search=""):
        if kind is ContactKind.PHONE:
            if self.phone_gate is not None:
                self.phone_gate.wait(5)
            self.phone_returned.set()
            return [Contact(id=1, kind=kind, label="0300 1234567")]
        return [Contact(id=7, kind=kind, label="info@acme.test")]

    def get_contact(self, kind, contact_id):
        return Contact(
            id=contact_id,
            kind=kind,
            label="info@acme.test",
            associations=[
                AssociationLink(association_id=1, company_id=2, departments=["Sales"]),
                AssociationLink(association_id=2, person_id=5),
            ],
        )

    def get_recent_audit_logs(self, limit=50):
        return [
            AuditLog(
                id=1,
                table_name="companies",
                record_id="2",
                field_name="legal_name",
                action_type="UPDATE",
                old_value="Old",
                new_value="New",
                user_name="admin",
                timestamp="2026-01-17T10:00:00",
            )
        ]

    def close(self):
        self.closed = True


async def wait_until(pilot, condition, timeout: float = 5.0) -> None:
    """Let the app run until a condition holds."""
    for _ in range(int(timeout / 0.05)):
        if condition():
            return
        await pilot.pause(0.05)
    raise AssertionError("Condition not met before timeout")


def top_labels(tree: Tree) -> list[str]:
    return [str(node.label) for node in tree.root.children]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
    monkeypatch.delenv(API_BASE_URL_ENV, raising=False)
    return path


class TestDashboardCommand:
    """Tests for the dashboard command."""

    def test_dashboard_command_exists(self) -> None:
        """Test that dashboard command is registered."""
        runner = CliRunner()
        result = runner.invoke(cli, ["dashboard", "--help"])
        assert result.exit_code == 0
        assert "interactive TUI dashboard" in result.output

    def test_dashboard_help_shows_shortcuts(self) -> None:
        """Test that help shows keyboard shortcuts."""
        runner = CliRunner()
        result = runner.invoke(cli, ["dashboard", "--help"])
        assert "Keyboard shortcuts" in result.output
        assert "Quit" in result.output
        assert "Expand all" in result.output


class TestTUIModule:
    """Tests for TUI module imports."""

    def test_import_orgbook_app(self) -> None:
        """Test that OrgbookApp can be imported."""
        from orgbook.tui import OrgbookApp
        assert OrgbookApp is not None

    def test_app_class_attributes(self) -> None:
        """Test OrgbookApp has required attributes."""
        from orgbook.tui import OrgbookApp
        assert hasattr(OrgbookApp, "TITLE")
        assert hasattr(OrgbookApp, "BINDINGS")
        assert hasattr(OrgbookApp, "CSS")

    def test_app_bindings(self) -> None:
        """Test OrgbookApp has expected key bindings."""
        from orgbook.tui import OrgbookApp
        binding_keys = [b.key for b in OrgbookApp.BINDINGS]
        for key in ("q", "r", "/", "e", "c", "?"):
            assert key in binding_keys


class TestLabels:
    """Tests for tree labels and the detail panel."""

    def test_tree_label_has_no_brackets(self) -> None:
        """Test that labels avoid markup brackets."""
        from orgbook.tui.app import tree_label

        forest = build_entity_forest(ENTITIES)
        label = tree_label(forest[0])

        assert label == "🏢 Acme Foods  · Acme Group"
        assert "[" not in label

    def test_describe_entity(self) -> None:
        """Test the detail text for a grouped company."""
        from orgbook.tui.app import describe_entity

        text = describe_entity(build_entity_forest(ENTITIES)[0])

        assert "Type: Company" in text
        assert "Group: Acme Group" in text
        assert "Children: 1" in text


class TestDashboard:
    """Tests driving the dashboard with a fake backend."""

    @pytest.mark.asyncio
    async def test_loads_company_tree(self) -> None:
        """Test that the company tree shows roots without the group."""
        from orgbook.tui import OrgbookApp

        app = OrgbookApp(config=OrgbookConfig(), client=FakeClient())
        async with app.run_test(size=(120, 40)) as pilot:
            tree = app.query_one("#company-tree", Tree)
            await wait_until(pilot, lambda: len(tree.root.children) == 2)

            assert top_labels(tree) == ["🏢 Acme Foods  · Acme Group", "🏢 Bolt Motors"]
            assert not tree.root.children[0].is_expanded

    @pytest.mark.asyncio
    async def test_expand_and_collapse_all(self) -> None:
        """Test that expansion is tracked by id across re-renders."""
        from orgbook.tui import OrgbookApp

        app = OrgbookApp(config=OrgbookConfig(), client=FakeClient())
        async with app.run_test(size=(120, 40)) as pilot:
            tree = app.query_one("#company-tree", Tree)
            await wait_until(pilot, lambda: len(tree.root.children) == 2)

            app.action_expand_all()
            await pilot.pause()
            assert app.company_expansion.keys() == {"2"}
            assert tree.root.children[0].is_expanded

            app.action_collapse_all()
            await pilot.pause()
            assert len(app.company_expansion) == 0
            assert not tree.root.children[0].is_expanded

    @pytest.mark.asyncio
    async def test_user_toggle_survives_rebuild(self) -> None:
        """Test that expanding a node by hand is remembered across a reload."""
        from orgbook.tui import OrgbookApp

        app = OrgbookApp(config=OrgbookConfig(), client=FakeClient())
        async with app.run_test(size=(120, 40)) as pilot:
            tree = app.query_one("#company-tree", Tree)
            await wait_until(pilot, lambda: len(tree.root.children) == 2)

            tree.root.children[0].expand()
            await wait_until(pilot, lambda: "2" in app.company_expansion)

            app._render_company_tree()
            await pilot.pause()
            assert app.company_expansion.keys() == {"2"}
            assert tree.root.children[0].is_expanded

            tree.root.children[0].collapse()
            await wait_until(pilot, lambda: len(app.company_expansion) == 0)
            app._render_company_tree()
            await pilot.pause()
            assert not tree.root.children[0].is_expanded

    @pytest.mark.asyncio
    async def test_search_filters_tree(self) -> None:
        """Test that a search keeps matches and their ancestors expanded."""
        from orgbook.tui import OrgbookApp

        app = OrgbookApp(config=OrgbookConfig(), client=FakeClient())
        async with app.run_test(size=(120, 40)) as pilot:
            tree = app.query_one("#company-tree", Tree)
            await wait_until(pilot, lambda: len(tree.root.children) == 2)

            app.company_search = "dairy"
            app._render_company_tree()
            await pilot.pause()

            assert top_labels(tree) == ["🏢 Acme Foods  · Acme Group"]
            assert tree.root.children[0].is_expanded
            assert str(tree.root.children[0].children[0].label) == "🏪 Dairy"
            # Searching does not change the stored expansion
            assert len(app.company_expansion) == 0

    @pytest.mark.asyncio
    async def test_restores_view_state(self) -> None:
        """Test that saved expansion and tab are applied on launch."""
        from orgbook.tui import OrgbookApp

        config = OrgbookConfig(
            view_state=ViewState(active_tab="tab-industries", expanded_companies=["2"]),
        )
        app = OrgbookApp(config=config, client=FakeClient())
        async with app.run_test(size=(120, 40)) as pilot:
            tree = app.query_one("#company-tree", Tree)
            await wait_until(pilot, lambda: len(tree.root.children) == 2)

            assert tree.root.children[0].is_expanded
            assert app.query_one("#main-tabs").active == "tab-industries"

    @pytest.mark.asyncio
    async def test_quit_saves_view_state(self, isolated_config) -> None:
        """Test that quitting persists expansion and search."""
        from orgbook.tui import OrgbookApp

        client = FakeClient()
        app = OrgbookApp(config=OrgbookConfig(), client=client)
        async with app.run_test(size=(120, 40)) as pilot:
            tree = app.query_one("#company-tree", Tree)
            await wait_until(pilot, lambda: len(tree.root.children) == 2)
            app.company_expansion.expand("2")
            app.action_quit()
            await pilot.pause()

        saved = json.loads(isolated_config.read_text())
        assert saved["view_state"]["expanded_companies"] == ["2"]
        assert saved["view_state"]["active_tab"] == "tab-companies"
        assert client.closed

    @pytest.mark.asyncio
    async def test_load_failure_is_reported(self) -> None:
        """Test that a failing fetch leaves the tree empty and the app running."""
        from orgbook.tui import OrgbookApp

        app = OrgbookApp(config=OrgbookConfig(), client=FakeClient(fail_companies=True))
        async with app.run_test(size=(120, 40)) as pilot:
            table = app.query_one("#persons-table", DataTable)
            await wait_until(pilot, lambda: table.row_count == 1)

            assert app.company_forest == []
            assert app.is_running

    @pytest.mark.asyncio
    async def test_tables_populated(self) -> None:
        """Test the persons, industries and audit views."""
        from orgbook.tui import OrgbookApp

        app = OrgbookApp(config=OrgbookConfig(), client=FakeClient())
        async with app.run_test(size=(120, 40)) as pilot:
            persons = app.query_one("#persons-table", DataTable)
            audit = app.query_one("#audit-table", DataTable)
            industries = app.query_one("#industry-tree", Tree)
            await wait_until(
                pilot,
                lambda: persons.row_count == 1 and audit.row_count == 1 and industries.root.children,
            )

            assert persons.get_row_at(0)[5] == "Acme Foods"
            assert audit.get_row_at(0)[5] == "Old → New"
            assert top_labels(industries) == ["🏷️ Textiles  (Main Industry)"]

    @pytest.mark.asyncio
    async def test_contact_associations(self) -> None:
        """Test that a contact's links are shown with names."""
        from orgbook.tui import OrgbookApp

        app = OrgbookApp(config=OrgbookConfig(), client=FakeClient())
        async with app.run_test(size=(120, 40)) as pilot:
            contacts = app.query_one("#contacts-table", DataTable)
            await wait_until(pilot, lambda: contacts.row_count == 1)

            app.load_contact_detail(ContactKind.PHONE, 1)
            associations = app.query_one("#associations-table", DataTable)
            await wait_until(pilot, lambda: associations.row_count == 2)

            assert associations.get_row_at(0)[1] == "Acme Foods"
            assert associations.get_row_at(0)[3] == "Sales"
            assert associations.get_row_at(1)[2] == "Sara Ali"
            assert associations.get_row_at(1)[4] == "person"

    @pytest.mark.asyncio
    async def test_superseded_fetch_is_discarded(self) -> None:
        """Test that switching contact kinds drops the slower earlier fetch."""
        from orgbook.tui import OrgbookApp

        client = FakeClient()
        client.phone_gate = threading.Event()
        app = OrgbookApp(config=OrgbookConfig(), client=client)
        async with app.run_test(size=(120, 40)) as pilot:
            contacts = app.query_one("#contacts-table", DataTable)

            # The phone fetch started on mount is still blocked
            app.contact_kind = ContactKind.EMAIL
            app.load_contacts(ContactKind.EMAIL)
            await wait_until(pilot, lambda: contacts.row_count == 1)

            client.phone_gate.set()
            await wait_until(pilot, client.phone_returned.is_set)
            await pilot.pause(0.2)

            assert contacts.row_count == 1
            assert contacts.get_row_at(0)[1] == "info@acme.test"
