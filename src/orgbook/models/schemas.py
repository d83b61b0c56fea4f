"""SQLModel schemas for records served by the business-relationship backend.

None of these are table models: the backend owns storage, we only decode
its JSON payloads and encode request bodies.
"""

from contextlib import contextmanager
from enum import Enum
from typing import Any, ClassVar, Iterator, Optional

from sqlmodel import Field, SQLModel


class RecordDecodeError(ValueError):
    """Raised when a backend payload cannot be decoded into a record."""


@contextmanager
def decoding(what: str, data: Any) -> Iterator[None]:
    """Re-raise any error from decoding ``data`` as RecordDecodeError.

    Covers missing keys, bad int conversions, non-dict payloads and pydantic
    validation failures (a ValueError subclass).
    """
    try:
        yield
    except RecordDecodeError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise RecordDecodeError(f"Invalid {what}: {data!r}") from e


class EntityRole(str, Enum):
    """Role an entity kind plays when building the org chart."""

    AGGREGATOR = "aggregator"  # Labels its children, never nested
    HIERARCHY = "hierarchy"  # Takes part in parent/child nesting


class EntityKind(str, Enum):
    """Kinds of organisational entity records."""

    COMPANY = "Company"
    GROUP = "Group"
    DIVISION = "Division"

    @property
    def role(self) -> EntityRole:
        return ENTITY_ROLES[self]

    @property
    def collection_path(self) -> str:
        return ENTITY_COLLECTIONS[self]


ENTITY_ROLES: dict[EntityKind, EntityRole] = {
    EntityKind.COMPANY: EntityRole.HIERARCHY,
    EntityKind.GROUP: EntityRole.AGGREGATOR,
    EntityKind.DIVISION: EntityRole.HIERARCHY,
}

ENTITY_COLLECTIONS: dict[EntityKind, str] = {
    EntityKind.COMPANY: "/companies/",
    EntityKind.GROUP: "/groups/",
    EntityKind.DIVISION: "/divisions/",
}


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise RecordDecodeError(f"Expected an integer id, got {value!r}") from e


class EntityRecord(SQLModel):
    """A company, group or division as returned by the list endpoints."""

    # Wire fields mapped onto named attributes; everything else lands in attributes
    WIRE_FIELDS: ClassVar[tuple[str, ...]] = (
        "record_id",
        "company_group_print_name",
        "group_print_name",
        "company_group_data_type",
        "parent_id",
        "legal_name",
        "other_names",
        "children",
    )

    id: str
    display_name: str
    kind: EntityKind
    parent_id: Optional[str] = None
    legal_name: Optional[str] = None
    other_names: Optional[str] = None
    attributes: dict = Field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict, default_kind: Optional[EntityKind] = None) -> "EntityRecord":
        """Decode one entity record from backend JSON.

        Args:
            data: Record dict using backend field names.
            default_kind: Kind to assume when the payload omits it, e.g. when
                the record came from a kind-specific endpoint.

        Raises:
            RecordDecodeError: If the id is missing, the kind is unknown or
                a field has the wrong type.
        """
        with decoding("entity record", data):
            record_id = data.get("record_id")
            if record_id is None or record_id == "":
                raise RecordDecodeError(f"Entity record without record_id: {data!r}")

            raw_kind = data.get("company_group_data_type") or default_kind
            try:
                kind = EntityKind(raw_kind)
            except ValueError as e:
                raise RecordDecodeError(
                    f"Unknown entity type {raw_kind!r} for record {record_id}"
                ) from e

            return cls(
                id=str(record_id),
                display_name=data.get("company_group_print_name") or data.get("group_print_name") or "",
                kind=kind,
                parent_id=_optional_str(data.get("parent_id")),
                legal_name=data.get("legal_name") or None,
                other_names=data.get("other_names") or None,
                attributes={k: v for k, v in data.items() if k not in cls.WIRE_FIELDS},
            )

    def to_payload(self) -> dict:
        """Encode as a create/update request body."""
        payload = dict(self.attributes)
        payload.update(
            {
                "company_group_print_name": self.display_name,
                "company_group_data_type": self.kind.value,
                "parent_id": self.parent_id,
                "legal_name": self.legal_name or "",
                "other_names": self.other_names or "",
            }
        )
        return payload

    def searchable_fields(self) -> tuple[Optional[str], ...]:
        return (self.display_name, self.legal_name, self.other_names)


class Industry(SQLModel):
    """An industry category; industries nest through parent_id."""

    id: int
    name: str
    category: Optional[str] = None
    parent_id: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict) -> "Industry":
        with decoding("industry", data):
            industry_id = _optional_int(data.get("id"))
            if industry_id is None:
                raise RecordDecodeError(f"Industry without id: {data!r}")
            return cls(
                id=industry_id,
                name=data.get("industry_name") or "",
                category=data.get("category"),
                parent_id=_optional_int(data.get("parent_id")),
            )

    @property
    def display_name(self) -> str:
        return self.name

    def to_payload(self) -> dict:
        return {
            "industry_name": self.name,
            "category": self.category,
            "parent_id": self.parent_id,
        }

    def searchable_fields(self) -> tuple[Optional[str], ...]:
        return (self.name,)


class Person(SQLModel):
    """A person record."""

    id: int
    display_name: str
    full_name: Optional[str] = None
    gender: Optional[str] = None
    living_status: Optional[str] = None
    professional_status: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    base_city: Optional[str] = None
    attached_companies: list[int] = Field(default_factory=list)
    attributes: dict = Field(default_factory=dict)

    WIRE_FIELDS: ClassVar[tuple[str, ...]] = (
        "record_id",
        "person_print_name",
        "full_name",
        "gender",
        "living_status",
        "professional_status",
        "department",
        "designation",
        "base_city",
        "attached_companies",
    )

    @classmethod
    def from_api(cls, data: dict) -> "Person":
        with decoding("person", data):
            person_id = _optional_int(data.get("record_id"))
            if person_id is None:
                raise RecordDecodeError(f"Person without record_id: {data!r}")
            return cls(
                id=person_id,
                display_name=data.get("person_print_name") or data.get("full_name") or "",
                full_name=data.get("full_name"),
                gender=data.get("gender"),
                living_status=data.get("living_status"),
                professional_status=data.get("professional_status"),
                department=data.get("department"),
                designation=data.get("designation"),
                base_city=data.get("base_city"),
                attached_companies=[_optional_int(c) for c in data.get("attached_companies") or []],
                attributes={k: v for k, v in data.items() if k not in cls.WIRE_FIELDS},
            )

    def to_payload(self) -> dict:
        """Encode as a create/update request body."""
        payload = dict(self.attributes)
        payload.update(
            {
                "person_print_name": self.display_name,
                "full_name": self.full_name or "",
                "gender": self.gender or "",
                "living_status": self.living_status or "",
                "professional_status": self.professional_status or "",
                "department": self.department or "",
                "designation": self.designation or "",
                "base_city": self.base_city or "",
                "attached_companies": list(self.attached_companies),
            }
        )
        return payload


class AssociationScope(str, Enum):
    """What a contact association is attached to."""

    COMPANY = "company"
    PERSON = "person"
    COMPANY_PERSON = "company_person"
    DEPARTMENT = "department"


class AssociationLink(SQLModel):
    """A many-to-many link from a contact method to a company and/or person."""

    association_id: Optional[int] = None
    company_id: Optional[int] = None
    person_id: Optional[int] = None
    departments: Optional[list[str]] = None

    @classmethod
    def from_api(cls, data: dict) -> "AssociationLink":
        with decoding("association", data):
            departments = data.get("departments")
            # Email associations carry a single department string
            if departments is None and data.get("department"):
                departments = data["department"]
            return cls(
                association_id=_optional_int(data.get("association_id")),
                company_id=_optional_int(data.get("company_id")),
                person_id=_optional_int(data.get("person_id")),
                departments=_departments(departments),
            )

    @property
    def key(self) -> str:
        """Identity of the link: the company/person pair."""
        company = "" if self.company_id is None else str(self.company_id)
        person = "" if self.person_id is None else str(self.person_id)
        return f"{company}-{person}"

    @property
    def scope(self) -> AssociationScope:
        if self.company_id is not None and self.person_id is not None:
            return AssociationScope.COMPANY_PERSON
        if self.company_id is not None:
            return AssociationScope.COMPANY
        if self.person_id is not None:
            return AssociationScope.PERSON
        return AssociationScope.DEPARTMENT

    def department_set(self) -> tuple[str, ...]:
        """Departments as a sorted, de-duplicated tuple."""
        return tuple(sorted(set(self.departments or ())))

    def to_payload(self, kind: Optional["ContactKind"] = None) -> dict:
        """Request body for create/update; absent fields are omitted.

        Email associations take a single ``department`` string, the other
        contact kinds a ``departments`` list.

        Raises:
            ValueError: If an email association has more than one department.
        """
        payload: dict[str, Any] = {}
        if self.company_id is not None:
            payload["company_id"] = self.company_id
        if self.person_id is not None:
            payload["person_id"] = self.person_id
        if self.departments is None:
            return payload

        if kind is ContactKind.EMAIL:
            departments = self.department_set()
            if len(departments) > 1:
                raise ValueError(
                    f"Email association {self.key} takes one department, got {list(departments)}"
                )
            payload["department"] = departments[0] if departments else None
        else:
            payload["departments"] = list(self.departments)
        return payload


def _departments(value: Any) -> Optional[list[str]]:
    """Normalise a departments field: a bare string is one department."""
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)) or not all(isinstance(d, str) for d in value):
        raise RecordDecodeError(f"Departments must be a list of names, got {value!r}")
    return list(value)


class ContactKind(str, Enum):
    """Contact methods that carry associations, keyed by URL segment."""

    PHONE = "cell-phones"
    EMAIL = "emails"
    LOCATION = "locations"

    @property
    def path(self) -> str:
        return f"/{self.value}"

    @property
    def id_field(self) -> str:
        return CONTACT_FIELDS[self][0]

    @property
    def label_field(self) -> str:
        return CONTACT_FIELDS[self][1]

    @property
    def record_key(self) -> str:
        """Key wrapping the record in a create request."""
        return CONTACT_FIELDS[self][2]


CONTACT_FIELDS: dict[ContactKind, tuple[str, str, str]] = {
    ContactKind.PHONE: ("phone_id", "phone_number", "phone"),
    ContactKind.EMAIL: ("email_id", "email_address", "email"),
    ContactKind.LOCATION: ("location_id", "location_name", "location"),
}


class Contact(SQLModel):
    """A phone number, email address or physical location."""

    id: int
    kind: ContactKind
    label: str
    description: Optional[str] = None
    is_active: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    associations: list[AssociationLink] = Field(default_factory=list)
    attributes: dict = Field(default_factory=dict)

    @classmethod
    def from_api(cls, kind: ContactKind, data: dict) -> "Contact":
        with decoding(f"{kind.value} record", data):
            contact_id = _optional_int(data.get(kind.id_field))
            if contact_id is None:
                raise RecordDecodeError(f"{kind.value} record without {kind.id_field}: {data!r}")
            known = {
                kind.id_field,
                kind.label_field,
                "description",
                "is_active",
                "created_at",
                "updated_at",
                "associations",
            }
            return cls(
                id=contact_id,
                kind=kind,
                label=data.get(kind.label_field) or "",
                description=data.get("description"),
                is_active=data.get("is_active"),
                created_at=data.get("created_at"),
                updated_at=data.get("updated_at"),
                associations=[AssociationLink.from_api(a) for a in data.get("associations") or []],
                attributes={k: v for k, v in data.items() if k not in known},
            )


class AuditAction(str, Enum):
    """Kinds of audited change."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditLog(SQLModel):
    """One field-level change recorded by the backend."""

    id: int
    table_name: str
    record_id: str
    field_name: Optional[str] = None
    action_type: AuditAction
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    timestamp: str

    @classmethod
    def from_api(cls, data: dict) -> "AuditLog":
        with decoding("audit log entry", data):
            return cls(
                id=int(data["id"]),
                table_name=data["table_name"],
                record_id=str(data["record_id"]),
                field_name=data.get("field_name"),
                action_type=AuditAction(data["action_type"]),
                old_value=_optional_str(data.get("old_value")),
                new_value=_optional_str(data.get("new_value")),
                user_id=_optional_str(data.get("user_id")),
                user_name=data.get("user_name"),
                timestamp=str(data["timestamp"]),
            )


class AuditLogFilters(SQLModel):
    """Query filters for the audit log endpoint."""

    table_name: Optional[str] = None
    record_id: Optional[str] = None
    action_type: Optional[AuditAction] = None
    field_name: Optional[str] = None
    user_id: Optional[str] = None
    skip: Optional[int] = None
    limit: Optional[int] = None

    def to_params(self) -> dict:
        """Query parameters with unset filters dropped."""
        params = {}
        for name, value in self.model_dump().items():
            if value is None:
                continue
            params[name] = value.value if isinstance(value, Enum) else str(value)
        return params
