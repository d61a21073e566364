"""
Current-user routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends

from app.features.access.dependencies import get_rules
from app.features.access.navigation import build_navigation
from app.features.access.schemas import PermissionRule
from app.features.access.types import Principal
from app.features.users.dependencies import get_current_principal
from app.features.users.schemas import NavigationResponse, PrincipalResponse


router = APIRouter(tags=["users"])


@router.get("/me", response_model=PrincipalResponse)
async def get_current_user_profile(
    principal: Annotated[Principal, Depends(get_current_principal)]
):
    """Get the authenticated principal."""
    return PrincipalResponse(
        id=principal.id,
        name=principal.name,
        role=principal.role.value,
        role_label=principal.role_label,
        is_super=principal.is_super,
    )


@router.get("/me/navigation", response_model=NavigationResponse)
async def get_navigation(
    principal: Annotated[Principal, Depends(get_current_principal)],
    rules: Annotated[list[PermissionRule], Depends(get_rules)],
):
    """Dashboard navigation with every entry resolved against the current rules."""
    return NavigationResponse(items=build_navigation(principal, rules))
