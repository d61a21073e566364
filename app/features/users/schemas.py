"""
Pydantic schemas for the current-user endpoints.
"""
from pydantic import BaseModel

from app.features.access.schemas import NavigationEntry


class PrincipalResponse(BaseModel):
    """Who the caller is, as resolved from their token."""
    id: str
    name: str
    role: str
    role_label: str | None = None
    is_super: bool = False


class NavigationResponse(BaseModel):
    items: list[NavigationEntry]
