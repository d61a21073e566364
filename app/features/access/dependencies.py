"""
FastAPI dependencies for access checks and audit logging.

Implements:
- Loading the current rule set per request (never cached across requests)
- require_access(feature, action) route protection
- Audit logging helpers for rule administration
"""
from typing import Annotated, Any, Dict, List, Optional
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, get_db
from app.features.access.evaluator import decide
from app.features.access.models import AuditLog
from app.features.access.schemas import PermissionRule
from app.features.access.service import RuleAdministrationService, SqlRuleStore
from app.features.access.types import Action, Principal
from app.features.users.dependencies import get_current_principal
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Rule Loading
# ============================================================================

async def get_rules(db: Annotated[AsyncSession, Depends(get_db)]) -> List[PermissionRule]:
    """Current rule set, read fresh from the store for this request."""
    return await SqlRuleStore(db).list()


async def get_rule_service(db: Annotated[AsyncSession, Depends(get_db)]) -> RuleAdministrationService:
    return RuleAdministrationService(SqlRuleStore(db))


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_access(feature: str, action: Action = Action.READ):
    """
    FastAPI dependency to require an action on a feature.

    Usage:
        @router.post("/deals")
        async def create_deal(
            principal: Principal = Depends(require_access("Pipeline", Action.WRITE))
        ):
            # Caller may write to the pipeline
            pass

    Args:
        feature: Feature name as it appears on the rule
        action: Action required

    Returns:
        Dependency function that returns the current principal if allowed

    Raises:
        HTTPException: 403 if the principal is denied
    """
    async def access_dependency(
        principal: Annotated[Principal, Depends(get_current_principal)],
        rules: Annotated[List[PermissionRule], Depends(get_rules)],
    ) -> Principal:
        decision = decide(principal, feature, action, rules)
        if not decision.allowed:
            log.debug(f"Principal {principal.id} denied {action.value} on {feature}: {decision.reason}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {action.value} on {feature}",
            )
        return principal

    return access_dependency


# ============================================================================
# Audit Logging
# ============================================================================

def client_info(request: Request) -> Dict[str, Optional[str]]:
    """IP address and user agent of the caller, for audit entries."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def create_audit_log(
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    db: Optional[AsyncSession] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Runs as a background task after the response, when the request's own
    session is already closed, so a fresh session is opened unless one is
    passed in.

    Args:
        user_id: Principal performing the action
        action: Action performed (e.g., "create", "update", "delete", "reset")
        resource_type: Type of resource (e.g., "access_rule")
        resource_id: ID of the resource
        details: Additional details
        ip_address: Client IP address
        user_agent: Client user agent

    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent[:255] if user_agent else None,
    )

    if db is not None:
        db.add(audit_log)
        await db.commit()
        await db.refresh(audit_log)
    else:
        async with AsyncSessionLocal() as session:
            session.add(audit_log)
            await session.commit()
            await session.refresh(audit_log)

    log.info(f"Audit: user={user_id} action={action} resource={resource_type}:{resource_id}")

    return audit_log
