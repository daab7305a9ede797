"""User model."""

import re
from dataclasses import dataclass, field, fields, replace
from enum import Enum


class Role(str, Enum):
    """Closed set of roles; the value is also the storage-key segment."""

    ADMIN = "admin"
    CUSTOMER = "customer"

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        """Return the matching role, raising ValueError for unknown values."""
        return value if isinstance(value, cls) else cls(str(value))


ADMIN_ROLES = frozenset({Role.ADMIN})

EMAIL_RE = re.compile(r"^[^<>()\[\]\\.,;:\s@\"]+(\.[^<>()\[\]\\.,;:\s@\"]+)*@([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}$")


def is_email_ok(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


# attribute name -> field name in the stored hash
_RECORD_FIELDS = {
    "id": "id",
    "email": "email",
    "firstname": "firstname",
    "lastname": "lastname",
    "role": "role",
    "salt": "salt",
    "hashed_password": "hashedPassword",
    "url_token": "urlToken",
    "created_on": "createdOn",
    "updated_on": "updatedOn",
}


@dataclass
class User:
    """Application user, as kept under `user:<role>:<id>`."""

    id: str
    email: str
    firstname: str
    lastname: str
    role: Role
    salt: str = field(default="", repr=False)
    hashed_password: str = field(default="", repr=False)
    url_token: str = field(default="", repr=False)
    created_on: int = 0
    updated_on: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def to_record(self) -> dict[str, str]:
        """Flatten to the string field-map stored in the user hash."""
        record = {}
        for attr in fields(self):
            value = getattr(self, attr.name)
            if value is None:
                continue
            record[_RECORD_FIELDS[attr.name]] = value.value if isinstance(value, Role) else str(value)
        return record

    @classmethod
    def from_record(cls, record: dict[str, str]) -> "User":
        """Build a user from a stored hash; timestamps come back as ints."""
        values = {attr: record.get(name) for attr, name in _RECORD_FIELDS.items() if name in record}
        values["role"] = Role.parse(values["role"])
        values["created_on"] = int(values.get("created_on") or 0)
        if values.get("updated_on"):
            values["updated_on"] = int(values["updated_on"])
        return cls(**values)

    def public_dict(self, *, include_created: bool = True) -> dict:
        """Camel-cased view without hash, salt or url token."""
        data = {
            "id": self.id,
            "email": self.email,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "role": self.role.value,
        }
        if include_created:
            data["createdOn"] = self.created_on
        if self.updated_on is not None:
            data["updatedOn"] = self.updated_on
        return data

    def with_changes(self, **changes) -> "User":
        return replace(self, **changes)
