"""
Access rule API routes.

Provides endpoints for reading and administering the permission matrix,
checking a single permission, and reading the rule audit log.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.access.dependencies import (
    client_info,
    create_audit_log,
    get_rule_service,
    get_rules,
    require_access,
)
from app.features.access.evaluator import decide
from app.features.access.models import AuditLog
from app.features.access.schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    BulkSaveRequest,
    BulkSaveResponse,
    LastModified,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionRule,
    RuleCreate,
    RuleUpdate,
)
from app.features.access.service import RuleAdministrationService, last_modified
from app.features.access.types import Action, Principal
from app.features.users.dependencies import get_current_principal
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

RuleService = Annotated[RuleAdministrationService, Depends(get_rule_service)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


# ============================================================================
# Rule Routes
# ============================================================================

@router.get("", response_model=List[PermissionRule])
async def list_rules(
    _principal: CurrentPrincipal,
    rules: Annotated[List[PermissionRule], Depends(get_rules)],
):
    """List the whole permission matrix. Every authenticated principal may read it."""
    return rules


@router.get("/last-modified", response_model=LastModified)
async def get_last_modified(
    _principal: CurrentPrincipal,
    rules: Annotated[List[PermissionRule], Depends(get_rules)],
):
    """Who changed the matrix last, and when."""
    return last_modified(rules)


@router.post("", response_model=PermissionRule, status_code=status.HTTP_201_CREATED)
async def create_rule(
    rule: RuleCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    principal: CurrentPrincipal,
    service: RuleService,
):
    """Create a rule for a new feature."""
    created = await service.create_rule(principal, rule)

    background_tasks.add_task(
        create_audit_log,
        user_id=principal.id,
        action="create",
        resource_type="access_rule",
        resource_id=created.id,
        details=rule.model_dump(mode="json"),
        **client_info(request),
    )

    return created


@router.post("/bulk", response_model=BulkSaveResponse)
async def bulk_save_rules(
    batch: BulkSaveRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    principal: CurrentPrincipal,
    service: RuleService,
):
    """Save several modified rules at once. Partial failures are listed in the response."""
    result = await service.bulk_save(principal, batch.rules)

    if result.saved:
        background_tasks.add_task(
            create_audit_log,
            user_id=principal.id,
            action="bulk_update",
            resource_type="access_rule",
            details={
                "saved": [rule.feature for rule in result.saved],
                "failed": [failure.model_dump() for failure in result.failed],
            },
            **client_info(request),
        )

    return result


@router.post("/reset", response_model=List[PermissionRule])
async def reset_rules(
    background_tasks: BackgroundTasks,
    request: Request,
    principal: CurrentPrincipal,
    service: RuleService,
):
    """Restore the factory default matrix. Every existing rule is replaced."""
    rules = await service.reset_defaults(principal)

    background_tasks.add_task(
        create_audit_log,
        user_id=principal.id,
        action="reset",
        resource_type="access_rule",
        details={"count": len(rules)},
        **client_info(request),
    )

    return rules


@router.put("/{rule_id}", response_model=PermissionRule)
async def update_rule(
    rule_id: str,
    rule_update: RuleUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    principal: CurrentPrincipal,
    service: RuleService,
):
    """Update a rule. Send expected_version to reject the write if someone else saved first."""
    updated = await service.update_rule(principal, rule_id, rule_update)

    background_tasks.add_task(
        create_audit_log,
        user_id=principal.id,
        action="update",
        resource_type="access_rule",
        resource_id=rule_id,
        details={"feature": updated.feature, **rule_update.model_dump(mode="json", exclude_unset=True)},
        **client_info(request),
    )

    return updated


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    principal: CurrentPrincipal,
    service: RuleService,
):
    """Delete a rule. The feature becomes denied to every non-admin role."""
    deleted = await service.delete_rule(principal, rule_id)

    background_tasks.add_task(
        create_audit_log,
        user_id=principal.id,
        action="delete",
        resource_type="access_rule",
        resource_id=rule_id,
        details={"feature": deleted.feature},
        **client_info(request),
    )

    return None


# ============================================================================
# Permission Check
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check_request: PermissionCheckRequest,
    principal: CurrentPrincipal,
    rules: Annotated[List[PermissionRule], Depends(get_rules)],
):
    """Check if the current principal may perform an action on a feature."""
    decision = decide(principal, check_request.feature, check_request.action, rules)
    return PermissionCheckResponse(allowed=decision.allowed, reason=decision.reason)


# ============================================================================
# Audit Logs
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    _principal: Annotated[Principal, Depends(require_access(config.AUDIT_LOG_FEATURE, Action.READ))],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
):
    """List audit logs with optional filtering."""
    stmt = select(AuditLog)

    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    # Get total count
    count_stmt = select(func.count()).select_from(stmt.subquery())
    total_result = await db.execute(count_stmt)
    total = total_result.scalar() or 0

    # Get paginated results
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    logs = result.scalars().all()

    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages,
    )
