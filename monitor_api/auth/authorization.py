"""Caller identity: role normalized once at the access-control boundary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = "admin"  # Sees and manages every pharmacy
    USER = "user"  # Only the granted pharmacies

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Role":
        """``"admin"``, ``"ADMIN"`` and ``" Admin "`` are all administrators.

        Anything else (including missing) is a site-restricted user.
        """
        if raw is not None and raw.strip().lower() == cls.ADMIN.value:
            return cls.ADMIN
        return cls.USER


SYSTEM_USER_ID = "system"


@dataclass(frozen=True)
class Caller:
    """Opaque principal handed in by the transport layer.

    Attributes:
        user_id: Stable user identifier (used for grants and audit)
        role: Normalized role
    """
    user_id: str
    role: Role = Role.USER

    @property
    def is_administrator(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def from_raw(cls, user_id: str, raw_role: Optional[str]) -> "Caller":
        return cls(user_id=user_id, role=Role.parse(raw_role))

    @classmethod
    def system(cls) -> "Caller":
        """Principal used by the scheduled alert check."""
        return cls(user_id=SYSTEM_USER_ID, role=Role.ADMIN)
