# binwahab/core/auth_dependencies.py
from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from binwahab.core.database import get_db
from binwahab.models.users import User, UserRole
from binwahab.services.auth_service import AuthService


security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    user = AuthService.validate_access_token(db, credentials.credentials)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory restricting a route to some roles.
    Admins pass every check.

    - require_role([UserRole.ADMIN])  # admin only
    """
    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role == UserRole.ADMIN:
            return current_user

        if current_user.role not in allowed_roles:
            raise HTTPException(
                status.HTTP_403_FORBIDDEN,
                f"Role '{current_user.role.value}' not authorized. Required: {[r.value for r in allowed_roles]}"
            )
        return current_user

    return role_checker


require_admin = require_role([UserRole.ADMIN])
