"""
Core value types for role-based access control.

Roles and actions are closed enumerations. Anything that enters the system as
free text (token claims, request bodies, stored documents) is normalized here
so the evaluator only ever compares enum members.
"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Action(str, Enum):
    """Actions a rule can grant on a feature."""
    READ = "Read"
    WRITE = "Write"
    DELETE = "Delete"
    EXPORT = "Export"

    @classmethod
    def _missing_(cls, value):
        # Accept "write", " WRITE " etc. from external payloads
        if isinstance(value, str):
            wanted = value.strip().lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
        return None


class Role(str, Enum):
    """
    Known principal roles.

    OTHER is the escape value for any role name the system does not know;
    the original label travels alongside it on the Principal.
    """
    ADMIN = "Admin"
    LEAD_PLANNER = "Lead Planner"
    ASSISTANT = "Assistant"
    OTHER = "Other"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Role":
        """
        Normalize a free-form role name.

        Comparison is case-insensitive and ignores spaces, underscores and
        hyphens, so "lead planner", "Lead_Planner" and "leadPlanner" all map
        to LEAD_PLANNER. Unknown names map to OTHER.
        """
        if not raw:
            return cls.OTHER
        collapsed = "".join(ch for ch in raw.lower() if ch not in " _-")
        return _ROLE_ALIASES.get(collapsed, cls.OTHER)


_ROLE_ALIASES: dict[str, Role] = {
    "admin": Role.ADMIN,
    "leadplanner": Role.LEAD_PLANNER,
    "planner": Role.LEAD_PLANNER,
    "assistant": Role.ASSISTANT,
}

# The single role that bypasses rule lookup in the evaluator
SUPER_ROLE = Role.ADMIN

# Role -> name of the grant column on a rule. Covers every Role member;
# OTHER has no column and is therefore never granted anything.
_RULE_KEYS: dict[Role, Optional[str]] = {
    Role.ADMIN: "admin",
    Role.LEAD_PLANNER: "lead_planner",
    Role.ASSISTANT: "assistant",
    Role.OTHER: None,
}

ROLE_KEYS: tuple[str, ...] = tuple(key for key in _RULE_KEYS.values() if key is not None)


def role_rule_key(role: Role) -> Optional[str]:
    """Return the grant column a role reads on a PermissionRule, or None."""
    return _RULE_KEYS[role]


class Principal(BaseModel):
    """
    Resolved identity of the caller.

    Produced by the authentication collaborator; this service never
    authenticates anyone itself.
    """
    id: str = Field(..., min_length=1)
    name: str = ""
    role: Role
    role_label: Optional[str] = Field(None, description="Original role name when role is OTHER")
    session_valid: bool = True

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_claims(cls, principal_id: str, role: Optional[str], name: str = "") -> "Principal":
        parsed = Role.parse(role)
        return cls(
            id=principal_id,
            name=name,
            role=parsed,
            role_label=role if parsed is Role.OTHER else None,
        )

    @property
    def is_super(self) -> bool:
        return self.role is SUPER_ROLE


class AccessDecision(BaseModel):
    """Outcome of a single access check. Never persisted or cached."""
    allowed: bool
    reason: str
