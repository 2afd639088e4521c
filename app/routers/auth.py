import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.exceptions import AuthenticationError
from app.core.limiter import limiter
from app.database import get_db
from app.models.user import User
from app.routers.auth_deps import get_current_user
from app.schemas.auth import LoginRequest, Token, UserResponse
from app.services import auth as auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, credentials: LoginRequest, db: Session = Depends(get_db)):
    user = auth_service.authenticate_user(db, credentials.email, credentials.password)
    if user is None:
        logger.info(f"Failed login for {credentials.email}")
        raise AuthenticationError("Incorrect email or password")

    logger.info(f"User {user.id} logged in", extra={"user_id": user.id})
    return Token(
        access_token=auth_service.issue_token_for(user),
        token_type="bearer",
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=UserResponse)
def read_me(current_user: User = Depends(get_current_user)):
    return current_user
