"""Click CLI for Orgbook."""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click
import httpx
from trogon import tui

from orgbook import __version__
from orgbook.associations import apply_plan, reconcile
from orgbook.backend import BackendClient, BackendError
from orgbook.config import (
    API_BASE_URL_ENV,
    EXPORT_FORMAT_OPTIONS,
    OrgbookConfig,
)
from orgbook.export import export_forest
from orgbook.logs import configure_logging
from orgbook.models import (
    AssociationLink,
    AuditAction,
    AuditLogFilters,
    ContactKind,
    EntityKind,
    EntityRecord,
    Person,
    RecordDecodeError,
)
from orgbook.render import ExpansionState, render_forest
from orgbook.tree import (
    build_entity_forest,
    build_industry_forest,
    category_for_level,
    filter_forest,
    iter_nodes,
)


CONTACT_CHOICES = {
    "phones": ContactKind.PHONE,
    "emails": ContactKind.EMAIL,
    "locations": ContactKind.LOCATION,
}

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def get_client(config: OrgbookConfig) -> BackendClient:
    """Get a backend client for the configured API."""
    return BackendClient.from_config(config)


@contextmanager
def backend_errors() -> Iterator[None]:
    """Turn backend and network failures into a CLI error exit."""
    try:
        yield
    except BackendError as e:
        click.echo(f"Error: {e.detail}", err=True)
        raise SystemExit(1)
    except httpx.HTTPError as e:
        click.echo(f"Error: Could not reach the backend: {e}", err=True)
        raise SystemExit(1)


@tui()
@click.group()
@click.version_option(version=__version__, prog_name="orgbook")
@click.option("--api-url", envvar=API_BASE_URL_ENV, help="Backend base URL")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging level (default from config)",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write logs to this file",
)
@click.pass_context
def cli(
    ctx: click.Context,
    api_url: Optional[str],
    log_level: Optional[str],
    log_file: Optional[Path],
) -> None:
    """Orgbook - business relationship administration.

    Browse and edit companies, industries, persons and their contact
    details on an Orgbook backend.

    Quick start:
        orgbook dashboard            Launch interactive TUI dashboard
        orgbook tui                  Launch command explorer (Trogon)
        orgbook companies tree       Show the org chart
        orgbook contacts show phones 12
    """
    config = OrgbookConfig.load()
    if api_url:
        config.api_base_url = api_url
    configure_logging(log_level or config.log_level, log_file)
    ctx.obj = config


@cli.command()
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Log file (default: ~/.orgbook/orgbook.log)",
)
@click.pass_obj
def dashboard(config: OrgbookConfig, log_file: Optional[Path]) -> None:
    """Launch the interactive TUI dashboard.

    Terminal UI for browsing the relationship database:
    - Company org chart with search
    - Industry tree
    - Persons and contact methods
    - Audit trail

    Keyboard shortcuts:
        q - Quit
        r - Refresh
        / - Search
        e - Expand all
        c - Collapse all
        ? - Help
    """
    from orgbook.tui import OrgbookApp

    log_path = log_file or OrgbookConfig.get_config_path().parent / "orgbook.log"
    configure_logging(config.log_level, log_path, console=False)
    app = OrgbookApp(config=config)
    app.run()


# =============================================================================
# Companies Commands - Org chart of companies, groups and divisions
# =============================================================================


@cli.group()
def companies() -> None:
    """Browse and manage companies, groups and divisions."""
    pass


@companies.command("tree")
@click.option("--search", "-s", default="", help="Only show matches and their ancestors")
@click.option("--collapsed", is_flag=True, help="Show top-level entries only")
@click.pass_obj
def companies_tree(config: OrgbookConfig, search: str, collapsed: bool) -> None:
    """Show the company hierarchy as a tree.

    Groups are not shown as nodes; companies belonging to a group are
    labelled with its name instead.
    """
    with backend_errors(), get_client(config) as client:
        records = client.list_entities()

    forest = build_entity_forest(records)
    visible = filter_forest(forest, search)

    if not visible:
        click.echo("No matching companies." if search else "No companies found.")
        return

    click.echo("\n🏢 Companies")
    click.echo("=" * 50)
    expanded = ExpansionState() if collapsed else None
    for line in render_forest(visible, expanded):
        click.echo(f"  {line}")

    shown = sum(1 for _ in iter_nodes(visible))
    total = sum(1 for _ in iter_nodes(forest))
    summary = f"\nTotal: {total} entries"
    if search:
        summary += f" ({shown} shown for '{search}')"
    click.echo(summary)


@companies.command("list")
@click.option("--search", "-s", default="", help="Search term")
@click.option(
    "--kind", "-k",
    type=click.Choice([kind.value for kind in EntityKind]),
    default=EntityKind.COMPANY.value,
    help="Entity type to list",
)
@click.pass_obj
def companies_list(config: OrgbookConfig, search: str, kind: str) -> None:
    """List companies, groups or divisions as a flat table."""
    entity_kind = EntityKind(kind)
    with backend_errors(), get_client(config) as client:
        if entity_kind is EntityKind.GROUP:
            records = client.list_groups()
        elif entity_kind is EntityKind.DIVISION:
            records = client.list_divisions()
        elif search:
            records = client.search_companies(search)
        else:
            records = client.list_all_companies()

    # Groups and divisions have no search endpoint
    if search and entity_kind is not EntityKind.COMPANY:
        records = [record for record in records if search.lower() in record.display_name.lower()]

    label = f"{kind.lower()}s" if entity_kind is not EntityKind.COMPANY else "companies"
    if not records:
        click.echo(f"No {label} found.")
        return

    for record in records:
        click.echo(f"  [{record.id}] {record.display_name} ({record.kind.value})")
    click.echo(f"\nTotal: {len(records)} {label}")


@companies.command("show")
@click.argument("record_id")
@click.pass_obj
def companies_show(config: OrgbookConfig, record_id: str) -> None:
    """Show details of a company, group or division.

    RECORD_ID: Backend record id
    """
    with backend_errors(), get_client(config) as client:
        record = client.get_entity(record_id)
        group_name = client.get_group_name(record.parent_id) if record.parent_id else None

    click.echo(f"\n{record.display_name}")
    click.echo("=" * len(record.display_name))
    click.echo(f"  ID:    {record.id}")
    click.echo(f"  Type:  {record.kind.value}")
    if group_name:
        click.echo(f"  Group: {group_name}")
    elif record.parent_id:
        click.echo(f"  Parent: {record.parent_id}")
    if record.legal_name:
        click.echo(f"  Legal name:  {record.legal_name}")
    if record.other_names:
        click.echo(f"  Other names: {record.other_names}")

    details = {k: v for k, v in record.attributes.items() if v not in (None, "", [], {})}
    if details:
        click.echo("\n  Details:")
        for key, value in details.items():
            click.echo(f"    {key}: {value}")


@companies.command("export")
@click.option(
    "--format", "-f", "fmt",
    type=click.Choice([value for value, _ in EXPORT_FORMAT_OPTIONS]),
    help="Output format (default from config)",
)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Output file (default: stdout)")
@click.option("--search", "-s", default="", help="Export only matches and their ancestors")
@click.pass_obj
def companies_export(
    config: OrgbookConfig,
    fmt: Optional[str],
    output: Optional[Path],
    search: str,
) -> None:
    """Export the org chart as YAML or JSON."""
    with backend_errors(), get_client(config) as client:
        records = client.list_entities()

    forest = filter_forest(build_entity_forest(records), search)
    content = export_forest(
        forest,
        fmt=fmt or config.export_format,
        output_path=output,
        source=config.api_base_url,
        search=search,
    )

    if output:
        click.echo(f"✓ Exported {sum(1 for _ in iter_nodes(forest))} entries to {output}")
    else:
        click.echo(content, nl=False)


@companies.command("add")
@click.argument("name")
@click.option(
    "--kind", "-k",
    type=click.Choice([kind.value for kind in EntityKind]),
    default=EntityKind.COMPANY.value,
    help="Entity type",
)
@click.option("--parent", "-p", "parent_id", help="Parent record id (company or group)")
@click.option("--legal-name", help="Registered legal name")
@click.option("--other-names", help="Alternative names, comma separated")
@click.pass_obj
def companies_add(
    config: OrgbookConfig,
    name: str,
    kind: str,
    parent_id: Optional[str],
    legal_name: Optional[str],
    other_names: Optional[str],
) -> None:
    """Add a company, group or division.

    NAME: Display name
    """
    if not name.strip():
        click.echo("Error: Name is required.", err=True)
        raise SystemExit(1)

    record = EntityRecord(
        id="",
        display_name=name.strip(),
        kind=EntityKind(kind),
        parent_id=parent_id,
        legal_name=legal_name,
        other_names=other_names,
    )
    with backend_errors(), get_client(config) as client:
        created = client.create_entity(record)

    new_id = created.get("record_id")
    suffix = f" (id {new_id})" if new_id is not None else ""
    click.echo(f"✓ Added {kind.lower()}: {record.display_name}{suffix}")


@companies.command("edit")
@click.argument("record_id")
@click.option("--name", "-n", help="New display name")
@click.option("--parent", "-p", "parent_id", help="New parent record id")
@click.option("--legal-name", help="Registered legal name")
@click.option("--other-names", help="Alternative names, comma separated")
@click.pass_obj
def companies_edit(
    config: OrgbookConfig,
    record_id: str,
    name: Optional[str],
    parent_id: Optional[str],
    legal_name: Optional[str],
    other_names: Optional[str],
) -> None:
    """Change a company, group or division.

    Fields that are not given keep their current value.

    RECORD_ID: Backend record id
    """
    if all(value is None for value in (name, parent_id, legal_name, other_names)):
        click.echo("Error: Nothing to change.", err=True)
        raise SystemExit(1)
    if name is not None and not name.strip():
        click.echo("Error: Name cannot be empty.", err=True)
        raise SystemExit(1)
    if parent_id == record_id:
        click.echo("Error: A record cannot be its own parent.", err=True)
        raise SystemExit(1)

    with backend_errors(), get_client(config) as client:
        record = client.get_entity(record_id)
        if name is not None:
            record.display_name = name.strip()
        if parent_id is not None:
            record.parent_id = parent_id
        if legal_name is not None:
            record.legal_name = legal_name
        if other_names is not None:
            record.other_names = other_names
        client.update_entity(record)

    click.echo(f"✓ Updated {record.kind.value.lower()}: {record.display_name}")


@companies.command("remove")
@click.argument("record_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def companies_remove(config: OrgbookConfig, record_id: str, yes: bool) -> None:
    """Remove a company, group or division and everything below it.

    RECORD_ID: Backend record id
    """
    with backend_errors(), get_client(config) as client:
        record = client.get_entity(record_id)
        if not yes:
            click.confirm(
                f"Remove {record.kind.value.lower()} '{record.display_name}' and all its children?",
                abort=True,
            )
        client.delete_entity(record.kind, record.id)

    click.echo(f"✓ Removed {record.kind.value.lower()}: {record.display_name}")


# =============================================================================
# Industries Commands
# =============================================================================


@cli.group()
def industries() -> None:
    """Browse and manage the industry tree."""
    pass


@industries.command("tree")
@click.option("--search", "-s", default="", help="Only show matches and their ancestors")
@click.pass_obj
def industries_tree(config: OrgbookConfig, search: str) -> None:
    """Show industries as a tree."""
    with backend_errors(), get_client(config) as client:
        forest = build_industry_forest(client.list_industries())

    visible = filter_forest(forest, search)
    if not visible:
        click.echo("No matching industries." if search else "No industries found.")
        return

    click.echo("\n🏷️  Industries")
    click.echo("=" * 50)
    for line in render_forest(visible):
        click.echo(f"  {line}")


@industries.command("add")
@click.argument("name")
@click.option("--parent", "-p", "parent_id", type=int, help="Parent industry id")
@click.pass_obj
def industries_add(config: OrgbookConfig, name: str, parent_id: Optional[int]) -> None:
    """Add an industry, optionally below an existing one.

    NAME: Industry name
    """
    with backend_errors(), get_client(config) as client:
        category = category_for_level(0)
        if parent_id is not None:
            forest = build_industry_forest(client.list_industries())
            depth = next(
                (depth for depth, node in iter_nodes(forest) if node.key == str(parent_id)),
                None,
            )
            if depth is None:
                click.echo(f"Error: Industry {parent_id} not found.", err=True)
                raise SystemExit(1)
            category = category_for_level(depth + 1)
        client.create_industry(name, category=category, parent_id=parent_id)

    click.echo(f"✓ Added industry: {name} ({category})")


@industries.command("rename")
@click.argument("industry_id", type=int)
@click.argument("name")
@click.pass_obj
def industries_rename(config: OrgbookConfig, industry_id: int, name: str) -> None:
    """Rename an industry."""
    if not name.strip():
        click.echo("Error: Name is required.", err=True)
        raise SystemExit(1)
    with backend_errors(), get_client(config) as client:
        client.rename_industry(industry_id, name.strip())
    click.echo(f"✓ Renamed industry {industry_id} to {name.strip()}")


@industries.command("move")
@click.argument("industry_id", type=int)
@click.option("--parent", "-p", "parent_id", type=int, help="New parent id (omit for top level)")
@click.pass_obj
def industries_move(config: OrgbookConfig, industry_id: int, parent_id: Optional[int]) -> None:
    """Move an industry under another one, or to the top level."""
    if parent_id == industry_id:
        click.echo("Error: An industry cannot be its own parent.", err=True)
        raise SystemExit(1)
    with backend_errors(), get_client(config) as client:
        client.move_industry(industry_id, parent_id)
    target = f"under {parent_id}" if parent_id is not None else "to top level"
    click.echo(f"✓ Moved industry {industry_id} {target}")


@industries.command("remove")
@click.argument("industry_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def industries_remove(config: OrgbookConfig, industry_id: int, yes: bool) -> None:
    """Remove an industry."""
    if not yes:
        click.confirm(f"Remove industry {industry_id}?", abort=True)
    with backend_errors(), get_client(config) as client:
        client.delete_industry(industry_id)
    click.echo(f"✓ Removed industry {industry_id}")


# =============================================================================
# Persons Commands
# =============================================================================


@cli.group()
def persons() -> None:
    """Browse and manage persons."""
    pass


def person_options(func):
    """Options shared by persons add and persons edit."""
    for option in reversed([
        click.option("--full-name", help="Full legal name"),
        click.option("--gender", help="Gender"),
        click.option("--designation", help="Job title"),
        click.option("--department", help="Department"),
        click.option("--city", "base_city", help="Base city"),
        click.option(
            "--company", "-c", "companies", type=int, multiple=True,
            help="Attached company id (repeatable, replaces the current list)",
        ),
    ]):
        func = option(func)
    return func


def _apply_person_options(person: Person, options: dict) -> None:
    for field_name in ("full_name", "gender", "designation", "department", "base_city"):
        value = options.get(field_name)
        if value is not None:
            setattr(person, field_name, value)
    if options.get("companies"):
        person.attached_companies = list(options["companies"])


@persons.command("list")
@click.option("--search", "-s", default="", help="Search term")
@click.pass_obj
def persons_list(config: OrgbookConfig, search: str) -> None:
    """List persons."""
    with backend_errors(), get_client(config) as client:
        people = client.search_persons(search) if search else client.list_persons()

    if not people:
        click.echo("No persons found.")
        return

    for person in people:
        extra = ", ".join(filter(None, [person.designation, person.base_city]))
        suffix = f" - {extra}" if extra else ""
        click.echo(f"  [{person.id}] {person.display_name}{suffix}")
    click.echo(f"\nTotal: {len(people)} persons")


@persons.command("show")
@click.argument("person_id", type=int)
@click.pass_obj
def persons_show(config: OrgbookConfig, person_id: int) -> None:
    """Show details of a person."""
    with backend_errors(), get_client(config) as client:
        person = client.get_person(person_id)
        company_names = client.company_names() if person.attached_companies else {}

    click.echo(f"\n{person.display_name}")
    click.echo("=" * len(person.display_name))
    for label, value in [
        ("Full name", person.full_name),
        ("Gender", person.gender),
        ("Status", person.living_status),
        ("Profession", person.professional_status),
        ("Department", person.department),
        ("Designation", person.designation),
        ("City", person.base_city),
    ]:
        if value:
            click.echo(f"  {label}: {value}")
    if person.attached_companies:
        click.echo("  Companies:")
        for company_id in person.attached_companies:
            click.echo(f"    - {company_names.get(company_id, f'#{company_id}')}")


@persons.command("add")
@click.argument("name")
@person_options
@click.pass_obj
def persons_add(config: OrgbookConfig, name: str, **options) -> None:
    """Add a person.

    NAME: Print name, as shown in lists
    """
    if not name.strip() or not (options.get("full_name") or "").strip():
        click.echo("Error: Name and --full-name are required.", err=True)
        raise SystemExit(1)

    person = Person(id=0, display_name=name.strip())
    _apply_person_options(person, options)
    with backend_errors(), get_client(config) as client:
        created = client.create_person(person.to_payload())

    new_id = created.get("record_id")
    suffix = f" (id {new_id})" if new_id is not None else ""
    click.echo(f"✓ Added person: {person.display_name}{suffix}")


@persons.command("edit")
@click.argument("person_id", type=int)
@click.option("--name", "-n", help="New print name")
@person_options
@click.pass_obj
def persons_edit(config: OrgbookConfig, person_id: int, name: Optional[str], **options) -> None:
    """Change a person. Fields that are not given keep their value."""
    if name is None and not any(options.values()):
        click.echo("Error: Nothing to change.", err=True)
        raise SystemExit(1)
    if name is not None and not name.strip():
        click.echo("Error: Name cannot be empty.", err=True)
        raise SystemExit(1)

    with backend_errors(), get_client(config) as client:
        person = client.get_person(person_id)
        if name is not None:
            person.display_name = name.strip()
        _apply_person_options(person, options)
        client.update_person(person_id, person.to_payload())

    click.echo(f"✓ Updated person: {person.display_name}")


# =============================================================================
# Contacts Commands - Phones, emails, locations and their associations
# =============================================================================


@cli.group()
def contacts() -> None:
    """Browse contact methods and edit their associations."""
    pass


def _contact_kind(name: str) -> ContactKind:
    return CONTACT_CHOICES[name]


def _describe_link(link: AssociationLink, companies: dict[int, str], people: dict[int, str]) -> str:
    parts = []
    if link.company_id is not None:
        parts.append(f"🏢 {companies.get(link.company_id, f'#{link.company_id}')}")
    if link.person_id is not None:
        parts.append(f"👤 {people.get(link.person_id, f'#{link.person_id}')}")
    if link.departments:
        parts.append(f"[{', '.join(link.department_set())}]")
    return " ".join(parts) or "(no company or person)"


def _load_links(path: Path, kind: ContactKind) -> list[AssociationLink]:
    """Read a JSON array of associations, exiting on a malformed file."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError("expected a JSON array")
        # Ids in the file are ignored; identity is the company/person pair
        links = [AssociationLink.from_api({**item, "association_id": None}) for item in raw]
        for link in links:
            link.to_payload(kind)
    except (ValueError, TypeError, RecordDecodeError) as e:
        click.echo(f"Error: Invalid associations file: {e}", err=True)
        raise SystemExit(1)
    return links


@contacts.command("list")
@click.argument("kind", type=click.Choice(list(CONTACT_CHOICES)))
@click.option("--search", "-s", default="", help="Search term")
@click.pass_obj
def contacts_list(config: OrgbookConfig, kind: str, search: str) -> None:
    """List phones, emails or locations."""
    with backend_errors(), get_client(config) as client:
        items = client.list_contacts(_contact_kind(kind), search)

    if not items:
        click.echo(f"No {kind} found.")
        return

    for item in items:
        status = f" ({item.is_active})" if item.is_active else ""
        click.echo(f"  [{item.id}] {item.label}{status}")
    click.echo(f"\nTotal: {len(items)} {kind}")


@contacts.command("show")
@click.argument("kind", type=click.Choice(list(CONTACT_CHOICES)))
@click.argument("contact_id", type=int)
@click.pass_obj
def contacts_show(config: OrgbookConfig, kind: str, contact_id: int) -> None:
    """Show a contact and what it is associated with."""
    with backend_errors(), get_client(config) as client:
        contact = client.get_contact(_contact_kind(kind), contact_id)
        company_names = client.company_names() if contact.associations else {}
        person_names = client.person_names() if contact.associations else {}

    click.echo(f"\n{contact.label}")
    click.echo("=" * len(contact.label))
    if contact.description:
        click.echo(f"  {contact.description}")
    if contact.is_active:
        click.echo(f"  Status: {contact.is_active}")

    if not contact.associations:
        click.echo("\n  No associations.")
        return

    click.echo(f"\n  Associations ({len(contact.associations)}):")
    for link in contact.associations:
        click.echo(f"    [{link.association_id}] {_describe_link(link, company_names, person_names)}")


def _contact_fields(
    kind: ContactKind,
    value: Optional[str],
    description: Optional[str],
    status: Optional[str],
) -> dict:
    fields = {}
    if value is not None:
        fields[kind.label_field] = value
    if description is not None:
        fields["description"] = description
    if status is not None:
        fields["is_active"] = status
    return fields


@contacts.command("add")
@click.argument("kind", type=click.Choice(list(CONTACT_CHOICES)))
@click.argument("value")
@click.option("--description", "-d", help="Free-text description")
@click.option("--status", type=click.Choice(["Active", "Inactive"]), help="Active or Inactive")
@click.option(
    "--links", "-l", "links_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON array of associations to create with it",
)
@click.pass_obj
def contacts_add(
    config: OrgbookConfig,
    kind: str,
    value: str,
    description: Optional[str],
    status: Optional[str],
    links_file: Optional[Path],
) -> None:
    """Add a phone number, email address or location.

    VALUE: The number, address or location name
    """
    if not value.strip():
        click.echo("Error: Value is required.", err=True)
        raise SystemExit(1)

    contact_kind = _contact_kind(kind)
    links = _load_links(links_file, contact_kind) if links_file else []
    fields = _contact_fields(contact_kind, value.strip(), description, status)
    with backend_errors(), get_client(config) as client:
        created = client.create_contact(contact_kind, fields, links)

    new_id = created.get(contact_kind.id_field)
    suffix = f" (id {new_id})" if new_id is not None else ""
    click.echo(f"✓ Added {contact_kind.record_key}: {value.strip()}{suffix}")
    if links:
        click.echo(f"  with {len(links)} association(s)")


@contacts.command("edit")
@click.argument("kind", type=click.Choice(list(CONTACT_CHOICES)))
@click.argument("contact_id", type=int)
@click.option("--value", "-v", help="New number, address or location name")
@click.option("--description", "-d", help="Free-text description")
@click.option("--status", type=click.Choice(["Active", "Inactive"]), help="Active or Inactive")
@click.pass_obj
def contacts_edit(
    config: OrgbookConfig,
    kind: str,
    contact_id: int,
    value: Optional[str],
    description: Optional[str],
    status: Optional[str],
) -> None:
    """Change a contact's own fields. Use 'contacts link' for associations."""
    contact_kind = _contact_kind(kind)
    changes = _contact_fields(contact_kind, value, description, status)
    if not changes:
        click.echo("Error: Nothing to change.", err=True)
        raise SystemExit(1)

    with backend_errors(), get_client(config) as client:
        contact = client.get_contact(contact_kind, contact_id)
        # The backend replaces the record, so unchanged fields are sent too
        fields = _contact_fields(contact_kind, contact.label, contact.description, contact.is_active)
        fields.update(changes)
        client.update_contact(contact_kind, contact_id, fields)

    click.echo(f"✓ Updated {contact_kind.record_key} {contact_id}: {fields[contact_kind.label_field]}")


@contacts.command("remove")
@click.argument("kind", type=click.Choice(list(CONTACT_CHOICES)))
@click.argument("contact_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def contacts_remove(config: OrgbookConfig, kind: str, contact_id: int, yes: bool) -> None:
    """Remove a contact and its associations."""
    contact_kind = _contact_kind(kind)
    with backend_errors(), get_client(config) as client:
        contact = client.get_contact(contact_kind, contact_id)
        if not yes:
            click.confirm(f"Remove {contact_kind.record_key} '{contact.label}'?", abort=True)
        client.delete_contact(contact_kind, contact_id)

    click.echo(f"✓ Removed {contact_kind.record_key}: {contact.label}")


@contacts.command("link")
@click.argument("kind", type=click.Choice(list(CONTACT_CHOICES)))
@click.argument("contact_id", type=int)
@click.option(
    "--file", "-f", "links_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="JSON array of {company_id, person_id, departments}",
)
@click.option("--dry-run", is_flag=True, help="Show the changes without applying them")
@click.pass_obj
def contacts_link(
    config: OrgbookConfig,
    kind: str,
    contact_id: int,
    links_file: Path,
    dry_run: bool,
) -> None:
    """Replace a contact's associations with the ones in a file.

    Only the differences are sent: links that disappeared are deleted, new
    company/person pairs are created and pairs whose departments changed are
    updated. Requests are sent one by one; a failure does not stop the rest.
    """
    contact_kind = _contact_kind(kind)
    after = _load_links(links_file, contact_kind)

    with backend_errors(), get_client(config) as client:
        contact = client.get_contact(contact_kind, contact_id)
        plan = reconcile(contact.associations, after)

        click.echo(f"🔗 {contact.label}: {plan}")
        for link in plan.to_delete:
            click.echo(f"  - delete {link.key} (association {link.association_id})")
        for link in plan.to_update:
            click.echo(f"  ~ update {link.key} -> {list(link.department_set())}")
        for link in plan.to_create:
            click.echo(f"  + create {link.key} {list(link.department_set())}")
        for link in plan.skipped:
            click.echo(click.style(f"  ! skipped {link.key}: no association id", fg="yellow"))

        if plan.is_empty:
            click.echo("Nothing to change.")
            return
        if dry_run:
            click.echo("Dry run - no changes sent.")
            return

        result = apply_plan(client, contact_kind, contact_id, plan)

    if not result.ok:
        click.echo(f"Error: {result.first_failure}", err=True)
        click.echo(f"{result}", err=True)
        raise SystemExit(1)
    click.echo(f"✓ {result}")


# =============================================================================
# Audit Commands
# =============================================================================


@cli.group()
def audit() -> None:
    """Inspect the audit trail."""
    pass


def _echo_audit_logs(logs: list) -> None:
    if not logs:
        click.echo("No audit entries.")
        return
    icons = {AuditAction.CREATE: "➕", AuditAction.UPDATE: "✏️", AuditAction.DELETE: "❌"}
    for entry in logs:
        who = entry.user_name or entry.user_id or "system"
        change = ""
        if entry.action_type is AuditAction.UPDATE and entry.field_name:
            change = f" {entry.field_name}: {entry.old_value!r} → {entry.new_value!r}"
        click.echo(
            f"  {entry.timestamp} {icons[entry.action_type]} "
            f"{entry.table_name}#{entry.record_id}{change} by {who}"
        )


@audit.command("recent")
@click.option("--limit", "-l", default=50, help="Number of entries")
@click.pass_obj
def audit_recent(config: OrgbookConfig, limit: int) -> None:
    """Show the most recent changes."""
    with backend_errors(), get_client(config) as client:
        logs = client.get_recent_audit_logs(limit)
    _echo_audit_logs(logs)


@audit.command("record")
@click.argument("table_name")
@click.argument("record_id")
@click.pass_obj
def audit_record(config: OrgbookConfig, table_name: str, record_id: str) -> None:
    """Show the history of one record."""
    with backend_errors(), get_client(config) as client:
        logs = client.get_audit_logs_for_record(table_name, record_id)
    _echo_audit_logs(logs)


@audit.command("list")
@click.option("--table", "table_name", help="Filter by table")
@click.option("--action", type=click.Choice([a.value for a in AuditAction]), help="Filter by action")
@click.option("--user", "user_id", help="Filter by user id")
@click.option("--field", "field_name", help="Filter by field name")
@click.option("--skip", type=int, help="Entries to skip")
@click.option("--limit", "-l", type=int, help="Maximum entries")
@click.pass_obj
def audit_list(
    config: OrgbookConfig,
    table_name: Optional[str],
    action: Optional[str],
    user_id: Optional[str],
    field_name: Optional[str],
    skip: Optional[int],
    limit: Optional[int],
) -> None:
    """Search the audit trail."""
    filters = AuditLogFilters(
        table_name=table_name,
        action_type=AuditAction(action) if action else None,
        user_id=user_id,
        field_name=field_name,
        skip=skip,
        limit=limit,
    )
    with backend_errors(), get_client(config) as client:
        logs = client.get_audit_logs(filters)
    _echo_audit_logs(logs)


# =============================================================================
# Config Commands
# =============================================================================


@cli.group("config")
def config_group() -> None:
    """Show and change persistent settings."""
    pass


@config_group.command("show")
@click.pass_obj
def config_show(config: OrgbookConfig) -> None:
    """Show the current settings."""
    click.echo(f"Config file: {OrgbookConfig.get_config_path()}")
    click.echo(f"  api_base_url:  {config.api_base_url}")
    click.echo(f"  max_retries:   {config.max_retries}")
    click.echo(f"  retry_delay:   {config.retry_delay}")
    click.echo(f"  timeout:       {config.timeout}")
    click.echo(f"  theme:         {config.theme}")
    click.echo(f"  default_tab:   {config.default_tab}")
    click.echo(f"  export_format: {config.export_format}")
    click.echo(f"  log_level:     {config.log_level}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Change a setting.

    KEY: Setting name, e.g. api_base_url
    """
    # Overrides from the command line and environment are not persisted
    config = OrgbookConfig.load(apply_env=False)
    try:
        config.set_value(key, value)
    except KeyError:
        click.echo(f"Error: Unknown setting '{key}'.", err=True)
        raise SystemExit(1)
    except ValueError as e:
        click.echo(f"Error: Invalid value for {key}: {e}", err=True)
        raise SystemExit(1)
    config.save()
    click.echo(f"✓ {key} = {getattr(config, key)}")


@config_group.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def config_reset(yes: bool) -> None:
    """Reset all settings to defaults."""
    if not yes:
        click.confirm("Reset all settings to defaults?", abort=True)
    config = OrgbookConfig()
    config.save()
    click.echo("✓ Settings reset")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
