"""Shared enums."""

from enum import Enum


class ConflictType(str, Enum):
    """Kinds of resource conflict reported by the setup API."""

    EMAIL_EXISTS = "email_exists"
    DOMAIN_EXISTS = "domain_exists"
    SUBDOMAIN_EXISTS = "subdomain_exists"
    ORGANIZATION_EXISTS = "organization_exists"
    OTHER = "other"

    @classmethod
    def parse(cls, value: "ConflictType | str | None") -> "ConflictType":
        """Parse a tag, mapping anything unknown to OTHER."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER

    @property
    def recoverable(self) -> bool:
        return self is not ConflictType.OTHER
