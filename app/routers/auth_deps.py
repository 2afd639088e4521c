"""
RBAC Dependencies.
Resolves the caller from a bearer token and guards endpoints by role.
"""
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from typing import Callable, List, Optional
from app.core.exceptions import AccessDeniedError
from app.database import get_db
from app.models.appraisal import Appraisal
from app.models.user import User, UserRole
from app.services import auth as auth_service
from app.schemas.auth import TokenData

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """
    Extracts and validates the current user from the JWT token.
    """
    payload = auth_service.decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="TOKEN_EXPIRED",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = TokenData(email=payload.get("sub"), role=payload.get("role"))
    if token_data.email is None:
        logger.warning("Authentication failed: Missing subject (email) in token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing subject in token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.email == token_data.email).first()
    if user is None:
        logger.warning(f"Authentication failed: User {token_data.email} not found in database")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        logger.warning(f"Authentication failed: User {token_data.email} is inactive")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive"
        )
    return user


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the user has one of the allowed roles.

    Usage:
        @router.delete("/{appraisal_id}")
        def delete(user: User = Depends(require_role([UserRole.ADMIN]))):
            ...
    """
    def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=(
                    f"User role '{current_user.role.value}' is not authorized to access this route. "
                    f"Required roles: {', '.join(r.value for r in allowed_roles)}"
                )
            )
        return current_user
    return role_checker


def can_view_employee_records(user: User, employee: Optional[User]) -> bool:
    """
    Visibility of an employee's appraisals and reviews:
    - ADMIN, HR: everyone
    - MANAGER: employees of their own department (everyone if unassigned)
    - anyone: themselves
    """
    if employee is not None and user.id == employee.id:
        return True
    if user.sees_all_appraisals:
        return True
    if user.role == UserRole.MANAGER:
        if not user.department:
            return True
        return employee is not None and employee.department == user.department
    return False


def check_appraisal_access(user: User, appraisal: Appraisal):
    """Raises AccessDeniedError if the user may not see this appraisal."""
    if not can_view_employee_records(user, appraisal.employee):
        raise AccessDeniedError("Not authorized to view this appraisal")


def require_manager():
    """Roles allowed to open appraisals."""
    return require_role([UserRole.ADMIN, UserRole.HR, UserRole.MANAGER])


def require_admin():
    return require_role([UserRole.ADMIN])
