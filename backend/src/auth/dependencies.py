# pyright: reportMissingTypeStubs=false
"""
Authentication dependencies for FastAPI.

Resolves the bearer token to an active user and exposes it to route handlers
as a ``UserContext``. Handlers pass ``UserContext.actor`` into the services.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.database import get_db
from services.authorization import Actor
from services.jwt_service import jwt_service, TokenPayload
from models import User, UserRole

logger = logging.getLogger(__name__)


class UserContext:
    """Authenticated user context extracted from JWT token."""

    def __init__(
        self,
        user_id: int,
        email: str,
        role: str,
        name: str,
    ):
        self.user_id = user_id
        self.email = email
        self.role = role  # "patient", "provider" or "admin"
        self.name = name

    @property
    def actor(self) -> Actor:
        return Actor(id=self.user_id, role=UserRole(self.role))

    def __repr__(self) -> str:
        return f"UserContext(user_id={self.user_id}, role='{self.role}')"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None

    return jwt_service.verify_token(credentials.credentials)


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> UserContext:
    """Get authenticated user context from JWT token."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    user_id = payload.user_id
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is deactivated"
        )

    # The stored role wins over the token claim
    if user.role != payload.role:
        logger.warning(f"Token role mismatch for user {user.id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token no longer valid"
        )

    return UserContext(
        user_id=user.id,
        email=user.email,
        role=user.role,
        name=user.full_name,
    )
