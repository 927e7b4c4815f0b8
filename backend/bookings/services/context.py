from __future__ import annotations

from dataclasses import dataclass

from accounts.models import User


@dataclass(frozen=True)
class Requester:
    """The authenticated caller, passed explicitly into every booking operation."""

    user_id: int
    role: str
    is_superuser: bool = False

    @classmethod
    def from_user(cls, user) -> "Requester":
        return cls(
            user_id=user.pk,
            role=getattr(user, "role", ""),
            is_superuser=bool(getattr(user, "is_superuser", False)),
        )

    @property
    def is_staff_role(self) -> bool:
        return self.is_superuser or self.role in User.STAFF_ROLES
