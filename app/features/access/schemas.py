"""
Pydantic schemas for access rules.

PermissionRule is the wire and evaluation shape of a rule; the create/update
schemas are what administrators send. Grant lists are validated against the
rule's available actions wherever a full rule is assembled.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.features.access.types import Action, Role, ROLE_KEYS, role_rule_key


def _dedupe(actions: List[Action]) -> List[Action]:
    seen: list[Action] = []
    for action in actions:
        if action not in seen:
            seen.append(action)
    return seen


def grant_violations(available: List[Action], grants: Dict[str, List[Action]]) -> List[str]:
    """List human-readable violations of granted-within-available for a rule."""
    allowed = set(available)
    problems = []
    for key, granted in grants.items():
        extra = [a.value for a in granted if a not in allowed]
        if extra:
            problems.append(f"{key} grants {extra} which are not available on this rule")
    return problems


# ============================================================================
# Rule Schemas
# ============================================================================

class RuleGrants(BaseModel):
    """Granted actions per role column."""
    admin: List[Action] = Field(default_factory=list)
    lead_planner: List[Action] = Field(default_factory=list)
    assistant: List[Action] = Field(default_factory=list)

    @field_validator("admin", "lead_planner", "assistant")
    @classmethod
    def unique_actions(cls, v: List[Action]) -> List[Action]:
        return _dedupe(v)

    def grants_by_key(self) -> Dict[str, List[Action]]:
        return {key: getattr(self, key) for key in ROLE_KEYS}


class PermissionRule(RuleGrants):
    """
    One row of the permission matrix.

    Examples:
    - feature="Leads", module="Sales", available_actions=[Read, Write, Delete], assistant=[Read]
    - feature="Dashboard", module="General", available_actions=[Read]
    """
    id: Optional[str] = None
    feature: str = Field(..., min_length=1, max_length=100)
    module: str = Field("General", min_length=1, max_length=50)
    available_actions: List[Action] = Field(..., min_length=1)
    version: int = 1
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("available_actions")
    @classmethod
    def unique_available(cls, v: List[Action]) -> List[Action]:
        return _dedupe(v)

    @model_validator(mode="after")
    def grants_within_available(self) -> "PermissionRule":
        problems = grant_violations(self.available_actions, self.grants_by_key())
        if problems:
            raise ValueError("; ".join(problems))
        return self

    def granted(self, role: Role) -> frozenset[Action]:
        """Actions granted to a role on this rule (empty for roles without a column)."""
        key = role_rule_key(role)
        if key is None:
            return frozenset()
        return frozenset(getattr(self, key))


class RuleCreate(RuleGrants):
    """Schema for creating a new rule."""
    feature: str = Field(..., min_length=1, max_length=100, description="Unique feature name")
    module: str = Field("General", min_length=1, max_length=50, description="Grouping tag (Sales, Inventory, ...)")
    available_actions: List[Action] = Field(default_factory=lambda: [Action.READ], min_length=1)

    @field_validator("feature", "module")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def grants_within_available(self) -> "RuleCreate":
        problems = grant_violations(self.available_actions, self.grants_by_key())
        if problems:
            raise ValueError("; ".join(problems))
        return self


class RuleUpdate(BaseModel):
    """
    Partial update of a rule.

    Only fields that are set are applied. expected_version is optional; when
    given, the update is rejected if the stored rule has moved on.
    """
    module: Optional[str] = Field(None, min_length=1, max_length=50)
    available_actions: Optional[List[Action]] = Field(None, min_length=1)
    admin: Optional[List[Action]] = None
    lead_planner: Optional[List[Action]] = None
    assistant: Optional[List[Action]] = None
    expected_version: Optional[int] = Field(None, ge=1)


class RuleBatchItem(RuleUpdate):
    """One modified rule in a bulk save."""
    id: str


class BulkSaveRequest(BaseModel):
    rules: List[RuleBatchItem] = Field(..., min_length=1)


class BulkSaveFailure(BaseModel):
    id: str
    feature: Optional[str] = None
    error: str


class BulkSaveResponse(BaseModel):
    """Aggregate outcome of a bulk save; partial failures are listed, not hidden."""
    success: bool
    message: str
    saved: List[PermissionRule] = []
    failed: List[BulkSaveFailure] = []


class LastModified(BaseModel):
    by: str = "System"
    at: Optional[datetime] = None


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if the caller may perform an action on a feature."""
    feature: str = Field(..., min_length=1, description="Feature name")
    action: Action = Field(Action.READ, description="Action")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    allowed: bool
    reason: str


class NavigationEntry(BaseModel):
    """A menu entry with its access verdict already applied."""
    label: str
    feature: Optional[str] = None
    href: Optional[str] = None
    external: bool = False
    inert: bool = False
    locked: bool = False
    tooltip: Optional[str] = None
    children: List["NavigationEntry"] = []


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
