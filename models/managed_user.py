"""Staff accounts scoped to a company, stored in ``managedUsers``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from werkzeug.security import check_password_hash, generate_password_hash

MANAGED_USERS = "managedUsers"
MANAGED_USER_STATUSES = ("active", "inactive")

PERMISSION_NAMES = (
    "dashboard",
    "invoices",
    "quotes",
    "clients",
    "products",
    "suppliers",
    "stockManagement",
    "supplierManagement",
    "hrManagement",
    "reports",
    "settings",
    "projectManagement",
)


def hash_credential(password: str) -> str:
    """Return the salted hash stored in a managed user's ``passwordHash``."""

    return generate_password_hash(password)


def normalize_permissions(raw: Mapping[str, Any] | None) -> dict[str, bool]:
    """Return every known permission as a boolean, defaulting to ``False``."""

    raw = raw or {}
    return {name: bool(raw.get(name, False)) for name in PERMISSION_NAMES}


@dataclass
class ManagedUser:
    """A company-scoped staff account."""

    id: str
    email: str
    entreprise_id: str
    password_hash: str = ""
    name: str = ""
    status: str = "inactive"
    permissions: dict[str, bool] = field(default_factory=dict)
    last_login: Optional[str] = None

    @classmethod
    def from_document(cls, key: str, data: Mapping[str, Any]) -> "ManagedUser":
        email = (data.get("email") or "").strip().lower()
        return cls(
            id=key,
            email=email,
            entreprise_id=data.get("entrepriseId") or "",
            password_hash=data.get("passwordHash") or "",
            name=data.get("name") or email.split("@")[0],
            status=data.get("status") or "inactive",
            permissions=normalize_permissions(data.get("permissions")),
            last_login=data.get("lastLogin"),
        )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def check_password(self, password: str) -> bool:
        """Verify a password against the stored hash."""

        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)
