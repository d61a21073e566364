"""
Access rule and audit log models.

One AccessRule row per feature. Grants are stored per role column as JSON
lists of action names, so a rule document round-trips unchanged through the
API and through PermissionRule.
"""
from typing import Any, Dict
from sqlalchemy import String, JSON, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class AccessRule(Base, TimestampMixin):
    """
    Permission matrix row.

    Examples:
    - feature="Leads", module="Sales", available_actions=["Read", "Write", "Delete"],
      admin=["Read", "Write", "Delete"], lead_planner=["Read", "Write"], assistant=["Read"]
    """
    __tablename__ = "access_rules"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    feature: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    module: Mapped[str] = mapped_column(String(50), nullable=False, default="General", index=True)
    available_actions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Grant columns, one per known role
    admin: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    lead_planner: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    assistant: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Bumped on every write; only checked when a caller sends expected_version
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AccessRule(id={self.id}, feature={self.feature!r}, module={self.module!r})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for rule administration.

    Tracks who changed the matrix, what they changed, and from where.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor (principal id from the token)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
