"""Reconcile edited contact associations against the persisted set.

A phone number, email or location links to companies and persons through
association records. The edit form works on an in-memory copy; on save we
diff that copy against what was loaded and issue one request per change.

Identity of a link is its company/person pair. Department tags are compared
as sets, so reordering them is not a change.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

import httpx

from orgbook.backend.errors import BackendError
from orgbook.models import AssociationLink, ContactKind

if TYPE_CHECKING:
    from orgbook.backend.client import BackendClient


logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    """Kinds of association change."""

    DELETE = "delete"
    UPDATE = "update"
    CREATE = "create"


@dataclass
class ReconcilePlan:
    """Changes needed to turn the persisted links into the edited ones."""

    to_create: list[AssociationLink] = field(default_factory=list)
    to_update: list[AssociationLink] = field(default_factory=list)
    to_delete: list[AssociationLink] = field(default_factory=list)
    skipped: list[AssociationLink] = field(default_factory=list)  # Persisted links missing an id

    @property
    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_delete)

    @property
    def total(self) -> int:
        return len(self.to_create) + len(self.to_update) + len(self.to_delete)

    def __str__(self) -> str:
        parts = [
            f"Create: {len(self.to_create)}",
            f"Update: {len(self.to_update)}",
            f"Delete: {len(self.to_delete)}",
        ]
        if self.skipped:
            parts.append(f"Skipped: {len(self.skipped)}")
        return " | ".join(parts)


def reconcile(
    before: Iterable[AssociationLink],
    after: Iterable[AssociationLink],
) -> ReconcilePlan:
    """Diff two association snapshots.

    Args:
        before: Links as loaded from the backend, each with an association_id.
        after: Links as edited; new links have no association_id.

    Returns:
        A ReconcilePlan. Deletes carry the persisted link, updates carry the
        edited departments with the persisted association_id, creates carry
        the edited link.
    """
    # Later duplicates of a key replace earlier ones
    initial = {link.key: link for link in before}
    current = {link.key: link for link in after}

    plan = ReconcilePlan()

    for key, link in initial.items():
        if key in current:
            continue
        if link.association_id is None:
            logger.warning(
                "Skipping delete of association %s: persisted link has no association_id",
                key,
            )
            plan.skipped.append(link)
            continue
        plan.to_delete.append(link)

    for key, link in current.items():
        existing = initial.get(key)
        if existing is None:
            plan.to_create.append(link)
            continue
        if existing.department_set() == link.department_set():
            continue
        if existing.association_id is None:
            logger.warning(
                "Skipping update of association %s: persisted link has no association_id",
                key,
            )
            plan.skipped.append(existing)
            continue
        plan.to_update.append(
            AssociationLink(
                association_id=existing.association_id,
                company_id=link.company_id,
                person_id=link.person_id,
                departments=list(link.departments or []),
            )
        )

    return plan


@dataclass
class OperationFailure:
    """One association request that did not go through."""

    kind: OperationKind
    key: str
    error: str

    def __str__(self) -> str:
        return f"Failed to {self.kind.value} association {self.key}: {self.error}"


@dataclass
class ApplyResult:
    """Outcome of applying a plan, one entry per operation."""

    applied: list[tuple[OperationKind, str]] = field(default_factory=list)
    failed: list[OperationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def first_failure(self) -> Optional[OperationFailure]:
        return self.failed[0] if self.failed else None

    def __str__(self) -> str:
        parts = [f"Applied: {len(self.applied)}"]
        if self.failed:
            parts.append(f"Failed: {len(self.failed)}")
        return " | ".join(parts)


def apply_plan(
    client: "BackendClient",
    kind: ContactKind,
    contact_id: int,
    plan: ReconcilePlan,
) -> ApplyResult:
    """Send a plan to the backend, one request at a time.

    Deletes go first, then updates, then creates. A failing request is
    logged and recorded; the remaining requests still run and nothing that
    already succeeded is rolled back.
    """
    result = ApplyResult()

    operations = (
        [(OperationKind.DELETE, link) for link in plan.to_delete]
        + [(OperationKind.UPDATE, link) for link in plan.to_update]
        + [(OperationKind.CREATE, link) for link in plan.to_create]
    )

    for op, link in operations:
        try:
            if op is OperationKind.DELETE:
                client.delete_association(kind, link.association_id)
            elif op is OperationKind.UPDATE:
                client.update_association(kind, link.association_id, link)
            else:
                client.create_association(kind, contact_id, link)
        # ValueError: a link the contact kind cannot encode
        except (BackendError, httpx.HTTPError, ValueError) as e:
            failure = OperationFailure(kind=op, key=link.key, error=str(e))
            logger.error(
                "%s association %s on %s %s failed: %s",
                op.value,
                link.key,
                kind.value,
                contact_id,
                e,
            )
            result.failed.append(failure)
            continue
        result.applied.append((op, link.key))

    return result
