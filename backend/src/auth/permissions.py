# pyright: reportMissingTypeStubs=false
from fastapi import Depends, HTTPException, status

from auth.dependencies import UserContext, get_current_user


def require_roles(*roles: str):
    """
    Dependency that ensures the user holds one of ``roles``.

    Args:
        roles: Accepted role names ("patient", "provider", "admin")

    Returns:
        Dependency function that can be used with FastAPI Depends()
    """
    def dependency(current_user: UserContext = Depends(get_current_user)) -> UserContext:
        if current_user.role in roles:
            return current_user

        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied: {' or '.join(roles)} role required"
        )

    return dependency


def require_patient():
    """Dependency that ensures the user is a patient."""
    return require_roles("patient")


def require_provider():
    """Dependency that ensures the user is a provider."""
    return require_roles("provider")
