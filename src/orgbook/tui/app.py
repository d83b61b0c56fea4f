"""Main Orgbook TUI application."""

import logging
from typing import Optional

import httpx
from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Input,
    Markdown,
    Select,
    Static,
    TabbedContent,
    TabPane,
    Tree,
)
from textual.worker import get_current_worker

from orgbook.backend import BackendClient, BackendError
from orgbook.config import AVAILABLE_TABS, OrgbookConfig
from orgbook.models import AuditLog, Contact, ContactKind, Person
from orgbook.render import INDUSTRY_ICON, KIND_ICONS, ExpansionState
from orgbook.tree import (
    EntityNode,
    build_entity_forest,
    build_industry_forest,
    filter_forest,
    find_node,
)


logger = logging.getLogger(__name__)

DEBOUNCE_MS = 300  # Milliseconds to wait before filtering

CONTACT_OPTIONS = [
    ("📱 Phones", ContactKind.PHONE.value),
    ("✉️ Emails", ContactKind.EMAIL.value),
    ("📍 Locations", ContactKind.LOCATION.value),
]

HELP_TEXT = """
# Orgbook Help

## Keys

| Key | Action |
|-----|--------|
| `q` | Quit (saves expanded nodes and active tab) |
| `r` | Refresh the active tab |
| `/` | Search companies |
| `e` | Expand all companies |
| `c` | Collapse all companies |
| `?` | Show this help |

## Companies

Groups are not shown as tree nodes. A company that belongs to a group shows
the group's name next to its own. Searching keeps every match together with
the companies above it.

## Contacts

Pick phones, emails or locations, then select a row to see which companies
and persons it is associated with. Use `orgbook contacts link` on the
command line to change associations.
"""


def tree_label(node: EntityNode) -> str:
    """Tree label without square brackets, which Textual reads as markup."""
    if node.kind is None:
        category = getattr(node.record, "category", None)
        suffix = f"  ({category})" if category else ""
        return f"{INDUSTRY_ICON} {node.display_name}{suffix}"
    label = f"{KIND_ICONS[node.kind]} {node.display_name}"
    if node.aggregator_name:
        label += f"  · {node.aggregator_name}"
    return label


def describe_entity(node: EntityNode) -> str:
    """Plain-text details for the company panel."""
    record = node.record
    lines = [node.display_name, "", f"ID:   {record.id}", f"Type: {node.kind.value}"]
    if node.aggregator_name:
        lines.append(f"Group: {node.aggregator_name}")
    if record.legal_name:
        lines.append(f"Legal name: {record.legal_name}")
    if record.other_names:
        lines.append(f"Other names: {record.other_names}")
    if node.children:
        lines.append(f"Children: {len(node.children)}")
    for key, value in record.attributes.items():
        if value not in (None, "", [], {}):
            lines.append(f"{key}: {value}")
    return "\n".join(lines)


class HelpScreen(ModalScreen):
    """Help screen."""

    CSS = """
    HelpScreen {
        align: center middle;
    }

    #help-dialog {
        width: 70;
        height: 80%;
        padding: 1 2;
        background: $surface;
        border: solid $primary;
    }

    #help-scroll {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("escape", "close", "Close"),
        Binding("q", "close", "Close"),
    ]

    def compose(self) -> ComposeResult:
        with Vertical(id="help-dialog"):
            with VerticalScroll(id="help-scroll"):
                yield Markdown(HELP_TEXT)
            yield Button("Close", id="close-btn")

    @on(Button.Pressed, "#close-btn")
    def on_close(self) -> None:
        self.dismiss()

    def action_close(self) -> None:
        self.dismiss()


class OrgbookApp(App):
    """Dashboard for browsing the business-relationship backend."""

    TITLE = "Orgbook"
    SUB_TITLE = "Business Relationship Admin"

    CSS = """
    Screen {
        layout: vertical;
    }

    #main-tabs {
        height: 1fr;
    }

    #company-layout {
        height: 1fr;
    }

    #company-sidebar {
        width: 60%;
    }

    #company-search {
        margin: 0 0 1 0;
    }

    #company-tree, #industry-tree {
        height: 1fr;
    }

    #company-detail {
        width: 40%;
        padding: 1 2;
        border-left: solid $primary;
    }

    #contact-kind {
        width: 30;
    }

    #contacts-table {
        height: 2fr;
    }

    #associations-table {
        height: 1fr;
        border-top: solid $primary;
    }

    DataTable {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit", show=True),
        Binding("r", "refresh", "Refresh", show=True),
        Binding("/", "search", "Search", show=True),
        Binding("e", "expand_all", "Expand All", show=True),
        Binding("c", "collapse_all", "Collapse All", show=True),
        Binding("?", "help", "Help", show=True),
    ]

    _search_debounce_timer: object | None = None  # Timer object for cancellation
    _pending_search: str = ""

    def __init__(
        self,
        config: Optional[OrgbookConfig] = None,
        client: Optional[BackendClient] = None,
    ):
        super().__init__()
        self._config = config or OrgbookConfig.load()
        self.client = client or BackendClient.from_config(self._config)
        self.theme = self._config.theme

        self.company_forest: list[EntityNode] = []
        self.industry_forest: list[EntityNode] = []
        self.company_search = ""
        self.company_expansion = ExpansionState()
        self.industry_expansion = ExpansionState()
        self.contact_kind = ContactKind.PHONE
        self._company_names: Optional[dict[int, str]] = None
        self._person_names: Optional[dict[int, str]] = None

        # Restore view state from config
        vs = self._config.view_state
        self._initial_tab = self._config.default_tab
        if vs:
            self.company_search = vs.company_search
            self.company_expansion = ExpansionState(vs.expanded_companies)
            self.industry_expansion = ExpansionState(vs.expanded_industries)
            if vs.active_tab:
                self._initial_tab = vs.active_tab
        if self._initial_tab not in dict(AVAILABLE_TABS):
            self._initial_tab = AVAILABLE_TABS[0][0]

    def compose(self) -> ComposeResult:
        yield Header()

        with TabbedContent(initial=self._initial_tab, id="main-tabs"):
            with TabPane("Companies", id="tab-companies"):
                with Horizontal(id="company-layout"):
                    with Vertical(id="company-sidebar"):
                        yield Input(
                            value=self.company_search,
                            placeholder="🔍 Search name, legal name, other names or group...",
                            id="company-search",
                        )
                        yield Tree("🏢 Companies", id="company-tree")
                    yield Static("Select a company", id="company-detail", markup=False)
            with TabPane("Industries", id="tab-industries"):
                yield Tree(f"{INDUSTRY_ICON} Industries", id="industry-tree")
            with TabPane("Persons", id="tab-persons"):
                yield DataTable(id="persons-table")
            with TabPane("Contacts", id="tab-contacts"):
                with Vertical():
                    yield Select(
                        CONTACT_OPTIONS,
                        value=self.contact_kind.value,
                        id="contact-kind",
                        allow_blank=False,
                    )
                    yield DataTable(id="contacts-table")
                    yield DataTable(id="associations-table")
            with TabPane("Audit Log", id="tab-audit"):
                yield DataTable(id="audit-table")

        yield Footer()

    def on_mount(self) -> None:
        for tree_id in ("#company-tree", "#industry-tree"):
            tree = self.query_one(tree_id, Tree)
            tree.show_root = False
            tree.root.expand()

        persons_table = self.query_one("#persons-table", DataTable)
        persons_table.add_columns("ID", "Name", "Designation", "Department", "City", "Companies")
        persons_table.cursor_type = "row"

        contacts_table = self.query_one("#contacts-table", DataTable)
        contacts_table.add_columns("ID", "Contact", "Description", "Status", "Links")
        contacts_table.cursor_type = "row"

        associations_table = self.query_one("#associations-table", DataTable)
        associations_table.add_columns("Association", "Company", "Person", "Departments", "Scope")
        associations_table.cursor_type = "row"

        audit_table = self.query_one("#audit-table", DataTable)
        audit_table.add_column("When", width=20)
        audit_table.add_column("Action", width=8)
        audit_table.add_column("Table", width=16)
        audit_table.add_column("Record", width=10)
        audit_table.add_column("Field", width=16)
        audit_table.add_column("Change", width=40)
        audit_table.add_column("User", width=16)
        audit_table.cursor_type = "row"

        self.load_companies()
        self.load_industries()
        self.load_persons()
        self.load_contacts(self.contact_kind)
        self.load_audit()

    def on_unmount(self) -> None:
        self.client.close()

    def _report_failure(self, what: str, error: Exception) -> None:
        """Log a failed fetch and show it, unless the fetch was superseded."""
        logger.error("Loading %s failed: %s", what, error)
        if not get_current_worker().is_cancelled:
            self.call_from_thread(
                self.notify,
                f"Could not load {what}: {error}",
                severity="error",
            )

    # -- Companies ------------------------------------------------------------

    @work(exclusive=True, thread=True, group="companies")
    def load_companies(self) -> None:
        """Fetch the org chart in the background."""
        worker = get_current_worker()
        try:
            records = self.client.list_entities()
        except (BackendError, httpx.HTTPError) as e:
            self._report_failure("companies", e)
            return
        if worker.is_cancelled:
            logger.debug("Discarding superseded company fetch")
            return
        forest = build_entity_forest(records)
        self.call_from_thread(self._show_companies, forest)

    def _show_companies(self, forest: list[EntityNode]) -> None:
        self.company_forest = forest
        self.company_expansion.prune(forest)
        self._render_company_tree()

    def _render_company_tree(self) -> None:
        """Rebuild the company tree from the forest and the search term."""
        tree = self.query_one("#company-tree", Tree)
        visible = filter_forest(self.company_forest, self.company_search)
        # Matches are only useful if they can be seen
        expanded = None if self.company_search else self.company_expansion

        tree.clear()
        self._add_nodes(tree.root, visible, expanded)

        if self.company_search:
            tree.root.label = f"🏢 Companies matching '{self.company_search}'"
        else:
            tree.root.label = "🏢 Companies"
        if not visible:
            tree.root.add_leaf("No matching companies" if self.company_search else "No companies")

    def _add_nodes(self, parent, nodes: list[EntityNode], expanded: Optional[ExpansionState]) -> None:
        for node in nodes:
            if node.children:
                # add(expand=...) posts no NodeExpanded, so rebuilds leave the saved state alone
                is_open = expanded is None or node.key in expanded
                branch = parent.add(tree_label(node), data=node.key, expand=is_open)
                self._add_nodes(branch, node.children, expanded)
            else:
                parent.add_leaf(tree_label(node), data=node.key)

    @on(Input.Changed, "#company-search")
    def filter_companies(self, event: Input.Changed) -> None:
        """Filter the company tree with debouncing."""
        self._pending_search = event.value.strip()

        if self._search_debounce_timer is not None:
            self._search_debounce_timer.stop()

        self._search_debounce_timer = self.set_timer(
            DEBOUNCE_MS / 1000,
            self._execute_debounced_search,
        )

    def _execute_debounced_search(self) -> None:
        self._search_debounce_timer = None
        self.company_search = self._pending_search
        self._render_company_tree()

    @on(Input.Submitted, "#company-search")
    def on_search_submitted(self, event: Input.Submitted) -> None:
        if self._search_debounce_timer is not None:
            self._search_debounce_timer.stop()
            self._search_debounce_timer = None
        self.company_search = event.value.strip()
        self._render_company_tree()
        self.query_one("#company-tree", Tree).focus()

    @on(Tree.NodeExpanded, "#company-tree")
    def on_company_expanded(self, event: Tree.NodeExpanded) -> None:
        if not self.company_search and event.node.data:
            self.company_expansion.expand(event.node.data)

    @on(Tree.NodeCollapsed, "#company-tree")
    def on_company_collapsed(self, event: Tree.NodeCollapsed) -> None:
        if not self.company_search and event.node.data:
            self.company_expansion.collapse(event.node.data)

    @on(Tree.NodeHighlighted, "#company-tree")
    def on_company_highlighted(self, event: Tree.NodeHighlighted) -> None:
        detail = self.query_one("#company-detail", Static)
        node = find_node(self.company_forest, event.node.data) if event.node.data else None
        detail.update(describe_entity(node) if node else "Select a company")

    # -- Industries -----------------------------------------------------------

    @work(exclusive=True, thread=True, group="industries")
    def load_industries(self) -> None:
        """Fetch the industry tree in the background."""
        worker = get_current_worker()
        try:
            industries = self.client.list_industries()
        except (BackendError, httpx.HTTPError) as e:
            self._report_failure("industries", e)
            return
        if worker.is_cancelled:
            return
        forest = build_industry_forest(industries)
        self.call_from_thread(self._show_industries, forest)

    def _show_industries(self, forest: list[EntityNode]) -> None:
        self.industry_forest = forest
        self.industry_expansion.prune(forest)
        tree = self.query_one("#industry-tree", Tree)
        tree.clear()
        self._add_nodes(tree.root, forest, self.industry_expansion)
        if not forest:
            tree.root.add_leaf("No industries")

    @on(Tree.NodeExpanded, "#industry-tree")
    def on_industry_expanded(self, event: Tree.NodeExpanded) -> None:
        if event.node.data:
            self.industry_expansion.expand(event.node.data)

    @on(Tree.NodeCollapsed, "#industry-tree")
    def on_industry_collapsed(self, event: Tree.NodeCollapsed) -> None:
        if event.node.data:
            self.industry_expansion.collapse(event.node.data)

    # -- Persons --------------------------------------------------------------

    @work(exclusive=True, thread=True, group="persons")
    def load_persons(self) -> None:
        worker = get_current_worker()
        try:
            people = self.client.list_persons()
            if self._company_names is None:
                self._company_names = self.client.company_names()
        except (BackendError, httpx.HTTPError) as e:
            self._report_failure("persons", e)
            return
        if worker.is_cancelled:
            return
        self._person_names = {person.id: person.display_name for person in people}
        self.call_from_thread(self._show_persons, people)

    def _show_persons(self, people: list[Person]) -> None:
        table = self.query_one("#persons-table", DataTable)
        table.clear()
        names = self._company_names or {}
        for person in people:
            companies = ", ".join(names.get(cid, f"#{cid}") for cid in person.attached_companies)
            table.add_row(
                str(person.id),
                person.display_name,
                person.designation or "",
                person.department or "",
                person.base_city or "",
                companies,
                key=str(person.id),
            )

    # -- Contacts -------------------------------------------------------------

    @on(Select.Changed, "#contact-kind")
    def on_contact_kind_changed(self, event: Select.Changed) -> None:
        if event.value is Select.BLANK or event.value == self.contact_kind.value:
            return
        self.contact_kind = ContactKind(event.value)
        self.query_one("#associations-table", DataTable).clear()
        self.load_contacts(self.contact_kind)

    @work(exclusive=True, thread=True, group="contacts")
    def load_contacts(self, kind: ContactKind) -> None:
        """Fetch one kind of contact; switching kinds cancels the previous fetch."""
        worker = get_current_worker()
        try:
            items = self.client.list_contacts(kind)
        except (BackendError, httpx.HTTPError) as e:
            self._report_failure(kind.value, e)
            return
        if worker.is_cancelled:
            logger.debug("Discarding superseded %s fetch", kind.value)
            return
        self.call_from_thread(self._show_contacts, items)

    def _show_contacts(self, items: list[Contact]) -> None:
        table = self.query_one("#contacts-table", DataTable)
        table.clear()
        for item in items:
            table.add_row(
                str(item.id),
                item.label,
                item.description or "",
                item.is_active or "",
                str(len(item.associations)),
                key=str(item.id),
            )

    @on(DataTable.RowSelected, "#contacts-table")
    def on_contact_selected(self, event: DataTable.RowSelected) -> None:
        if event.row_key.value is None:
            return
        self.load_contact_detail(self.contact_kind, int(event.row_key.value))

    @work(exclusive=True, thread=True, group="contact-detail")
    def load_contact_detail(self, kind: ContactKind, contact_id: int) -> None:
        worker = get_current_worker()
        try:
            contact = self.client.get_contact(kind, contact_id)
            if self._company_names is None:
                self._company_names = self.client.company_names()
            if self._person_names is None:
                self._person_names = self.client.person_names()
        except (BackendError, httpx.HTTPError) as e:
            self._report_failure(f"{kind.value} {contact_id}", e)
            return
        if worker.is_cancelled:
            return
        self.call_from_thread(self._show_associations, contact)

    def _show_associations(self, contact: Contact) -> None:
        table = self.query_one("#associations-table", DataTable)
        table.clear()
        companies = self._company_names or {}
        people = self._person_names or {}
        for link in contact.associations:
            table.add_row(
                "" if link.association_id is None else str(link.association_id),
                "" if link.company_id is None else companies.get(link.company_id, f"#{link.company_id}"),
                "" if link.person_id is None else people.get(link.person_id, f"#{link.person_id}"),
                ", ".join(link.department_set()),
                link.scope.value,
            )

    # -- Audit ----------------------------------------------------------------

    @work(exclusive=True, thread=True, group="audit")
    def load_audit(self) -> None:
        worker = get_current_worker()
        try:
            logs = self.client.get_recent_audit_logs()
        except (BackendError, httpx.HTTPError) as e:
            self._report_failure("audit log", e)
            return
        if worker.is_cancelled:
            return
        self.call_from_thread(self._show_audit, logs)

    def _show_audit(self, logs: list[AuditLog]) -> None:
        table = self.query_one("#audit-table", DataTable)
        table.clear()
        for entry in logs:
            change = ""
            if entry.old_value is not None or entry.new_value is not None:
                change = f"{entry.old_value or ''} → {entry.new_value or ''}"
            table.add_row(
                entry.timestamp,
                entry.action_type.value,
                entry.table_name,
                entry.record_id,
                entry.field_name or "",
                change,
                entry.user_name or entry.user_id or "",
            )

    # -- Actions --------------------------------------------------------------

    def _save_view_state(self) -> None:
        """Save current view state to config."""
        active_tab = self.query_one("#main-tabs", TabbedContent).active
        # Saved onto the file contents so an environment URL override is not persisted
        stored = OrgbookConfig.load(apply_env=False)
        stored.save_view_state(
            active_tab=active_tab or None,
            company_search=self.company_search,
            expanded_companies=self.company_expansion.keys(),
            expanded_industries=self.industry_expansion.keys(),
        )

    def action_quit(self) -> None:
        """Quit the application, saving view state."""
        try:
            self._save_view_state()
        except OSError as e:
            logger.warning("Could not save view state: %s", e)
        self.exit()

    def action_refresh(self) -> None:
        """Reload the data behind the active tab."""
        active = self.query_one("#main-tabs", TabbedContent).active
        if active == "tab-companies":
            self.load_companies()
        elif active == "tab-industries":
            self.load_industries()
        elif active == "tab-persons":
            self._company_names = None
            self.load_persons()
        elif active == "tab-contacts":
            self.load_contacts(self.contact_kind)
        elif active == "tab-audit":
            self.load_audit()
        self.notify("Refreshing...")

    def action_search(self) -> None:
        self.query_one("#main-tabs", TabbedContent).active = "tab-companies"
        self.query_one("#company-search", Input).focus()

    def action_expand_all(self) -> None:
        self.company_expansion.expand_all(self.company_forest)
        self._render_company_tree()

    def action_collapse_all(self) -> None:
        self.company_expansion.collapse_all()
        self._render_company_tree()

    def action_help(self) -> None:
        self.push_screen(HelpScreen())
