"""Data models for Orgbook."""

from .schemas import (
    AssociationLink,
    AssociationScope,
    AuditAction,
    AuditLog,
    AuditLogFilters,
    Contact,
    ContactKind,
    EntityKind,
    EntityRecord,
    EntityRole,
    Industry,
    Person,
    RecordDecodeError,
)

__all__ = [
    "AssociationLink",
    "AssociationScope",
    "AuditAction",
    "AuditLog",
    "AuditLogFilters",
    "Contact",
    "ContactKind",
    "EntityKind",
    "EntityRecord",
    "EntityRole",
    "Industry",
    "Person",
    "RecordDecodeError",
]
