from uuid import uuid4

from app.features.access.types import Principal
from app.features.users.auth import issue_token


def auth_headers(role: str, principal_id: str | None = None, name: str = "") -> dict[str, str]:
    # Sign a bearer token the API accepts for the given role.
    token = issue_token(principal_id or uuid4().hex, role, name=name or role)
    return {"Authorization": f"Bearer {token}"}


def principal(role: str, principal_id: str | None = None) -> Principal:
    # Resolve a principal the same way the API does from token claims.
    return Principal.from_claims(principal_id or uuid4().hex, role, name=role)
