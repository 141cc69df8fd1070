from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from binwahab.core.auth_dependencies import get_current_user
from binwahab.core.database import get_db
from binwahab.models.users import User
from binwahab.schemas.users import PasswordLogin, TokenResponse, UserOut, UserRegister
from binwahab.services.auth_service import AuthService


auth_router = APIRouter(prefix="/auth", tags=["Authentication"])


@auth_router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(data: UserRegister, db: Session = Depends(get_db)):
    user = AuthService.register(db, data)
    return AuthService.issue_token(user)


@auth_router.post("/login", response_model=TokenResponse)
def login(data: PasswordLogin, db: Session = Depends(get_db)):
    user = AuthService.authenticate(db, data)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return AuthService.issue_token(user)


@auth_router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user
