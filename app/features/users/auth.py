"""
Authentication utilities for bearer token verification.

Tokens are issued by the identity service and signed with JWT_SECRET. We
only verify them and read the claims we need:
- sub: principal id
- name: display name (optional)
- role: role name as stored by the identity service
"""
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import HTTPException, status

from app.core import config
from app.features.access.types import Principal


def verify_jwt_token(token: str) -> dict:
    """
    Verify a bearer token and return its payload.

    Args:
        token: JWT token from Authorization header

    Returns:
        Decoded JWT payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_exp": True, "require": ["sub"]},
        )
        return payload

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def principal_from_payload(payload: dict) -> Principal:
    """Build the caller's Principal from verified claims."""
    principal_id = payload.get("sub")
    if not principal_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return Principal.from_claims(str(principal_id), payload.get("role"), payload.get("name") or "")


def issue_token(
    principal_id: str,
    role: str,
    name: str = "",
    expires_in: Optional[timedelta] = timedelta(hours=12),
) -> str:
    """Sign a token with the local secret. Used by the seed script and tests."""
    claims = {"sub": principal_id, "role": role, "name": name}
    if expires_in is not None:
        claims["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
