"""
Kerbi - Authentication Router
Handles user registration, login, session verification and password changes.
"""
from uuid import uuid4
from typing import Optional
import logging
import re

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_ledger
from ..models.db_models import UserDB
from ..auth import hash_password, verify_password, create_access_token, get_current_user
from ..services.entitlement import EntitlementLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


SPECIAL_CHARACTERS = r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]"


def password_problems(password: str) -> list:
    """Unmet password requirements; empty when the password is acceptable."""
    problems = []
    if len(password) < 8:
        problems.append("at least 8 characters")
    if not re.search(r"[A-Z]", password):
        problems.append("an uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("a lowercase letter")
    if not re.search(r"\d", password):
        problems.append("a number")
    if not re.search(SPECIAL_CHARACTERS, password):
        problems.append("a special character")
    return problems


def _validate_password(v: str) -> str:
    problems = password_problems(v)
    if problems:
        raise ValueError(f"Password must contain {', '.join(problems)}")
    return v


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        return _validate_password(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str


class MessageResponse(BaseModel):
    message: str


class ChangePasswordRequest(BaseModel):
    """Request model for changing password."""
    current_password: str
    new_password: str
    confirm_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password_strength(cls, v):
        return _validate_password(v)

    @field_validator('confirm_password')
    @classmethod
    def passwords_match(cls, v, info):
        if 'new_password' in info.data and v != info.data['new_password']:
            raise ValueError('Passwords do not match')
        return v


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    created_at: Optional[str] = None


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    ledger: EntitlementLedger = Depends(get_ledger),
):
    """
    Register a new user account and its entitlement record.
    """
    existing_email = db.query(UserDB).filter(UserDB.email == request.email).first()
    if existing_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    full_name = request.full_name or " ".join(
        part for part in (request.first_name, request.last_name) if part
    ) or None

    user = UserDB(
        id=str(uuid4()),
        email=request.email,
        full_name=full_name,
        password_hash=hash_password(request.password)
    )
    db.add(user)
    db.commit()

    ledger.upsert_profile(user.id, first_name=request.first_name, last_name=request.last_name)

    logger.info(f"User registered: {request.email}")
    return TokenResponse(access_token=create_access_token(user.id, user.email), user_id=user.id)


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate user and return JWT token.
    """
    user = db.query(UserDB).filter(UserDB.email == request.email).first()

    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(f"User logged in: {request.email}")
    return TokenResponse(access_token=create_access_token(user.id, user.email), user_id=user.id)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: UserDB = Depends(get_current_user)):
    """
    Get current authenticated user info.
    """
    return UserResponse(
        id=current_user.id,
        email=current_user.email,
        full_name=current_user.full_name,
        created_at=current_user.created_at.isoformat() if current_user.created_at else None,
    )


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Change password for the signed-in user.
    """
    if not verify_password(request.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect"
        )

    current_user.password_hash = hash_password(request.new_password)
    db.commit()

    logger.info(f"Password changed for user: {current_user.email}")
    return MessageResponse(message="Password changed successfully")
