# binwahab/services/auth_service.py
import logging
from typing import Optional

from sqlalchemy.orm import Session

from binwahab.core.exceptions import ConflictException
from binwahab.core.security import SecurityUtils
from binwahab.models.users import User, UserRole
from binwahab.schemas.users import PasswordLogin, TokenResponse, UserOut, UserRegister

logger = logging.getLogger(__name__)


class AuthService:

    @staticmethod
    def register(db: Session, data: UserRegister, role: UserRole = UserRole.CUSTOMER) -> User:
        email = data.email.lower()
        if db.query(User).filter(User.email == email).first():
            raise ConflictException("Email already registered", code="EMAIL_TAKEN")

        user = User(
            email=email,
            name=data.name,
            password_hash=SecurityUtils.hash_password(data.password),
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"User registered: {user.id}")
        return user

    @staticmethod
    def authenticate(db: Session, data: PasswordLogin) -> Optional[User]:
        user = db.query(User).filter(User.email == data.email.lower()).first()
        if not user or not SecurityUtils.verify_password(data.password, user.password_hash):
            logger.warning(f"Failed login for {data.email}")
            return None
        return user

    @staticmethod
    def issue_token(user: User) -> TokenResponse:
        token, expires_at = SecurityUtils.create_access_token(
            {"sub": str(user.id), "role": user.role.value}
        )
        return TokenResponse(
            access_token=token,
            expires_at=expires_at,
            user=UserOut.model_validate(user),
        )

    @staticmethod
    def validate_access_token(db: Session, token: str) -> Optional[User]:
        payload = SecurityUtils.verify_access_token(token)
        if not payload:
            return None

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            return None

        return db.get(User, user_id)
