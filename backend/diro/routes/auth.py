from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, EmailStr, Field

from ..config import settings
from ..database import get_db
from ..errors import AuthenticationError, ConflictError, ValidationError
from ..schemas import LocalCredential, User
from ..utils import security


logger = logging.getLogger(__name__)

router = APIRouter()
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

ALGORITHM = "HS256"


class RegisterRequest(BaseModel):
    name: str = Field(min_length=2, max_length=80)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    role: Literal["creator", "brand"] = "creator"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    role: Literal["creator", "brand", "admin"] | None = None


class GoogleLoginRequest(BaseModel):
    credential: str = Field(min_length=1)
    role: Literal["creator", "brand"] = "creator"


class Token(BaseModel):
    access_token: str
    token_type: str
    user: dict[str, Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def create_access_token(user: User) -> str:
    expires_at = _now() + timedelta(minutes=settings.jwt_expire_minutes)
    token_payload = {"sub": user.id, "role": user.role.value, "exp": int(expires_at.timestamp())}
    return jwt.encode(token_payload, settings.effective_jwt_secret, algorithm=ALGORITHM)


def _issue(user: User) -> Token:
    return Token(access_token=create_access_token(user), token_type="bearer", user=user.public_dict())


def _new_user_row(name: str, email: str, role: str) -> dict[str, Any]:
    return {
        "name": name.strip(),
        "email": email,
        "role": role,
        "can_create_campaign": False,
        "is_active": True,
        "available_balance": 0,
        "pending_balance": 0,
        "withdrawable_balance": 0,
    }


def _find_accounts(email: str, role: str | None = None) -> list[dict[str, Any]]:
    db = get_db()
    query = db.table("users").select("*").eq("email", email)
    if role:
        query = query.eq("role", role)
    return query.execute().data or []


def load_user(user_id: str) -> User | None:
    db = get_db()
    res = db.table("users").select("*").eq("id", user_id).limit(1).execute()
    if not res.data:
        return None
    return User.from_row(res.data[0])


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest):
    email = _normalize_email(request.email)
    if _find_accounts(email, request.role):
        raise ConflictError(f"An account with this email already exists for role {request.role}")

    row = _new_user_row(request.name, email, request.role)
    row.update({"auth_provider": "local", "password_hash": security.hash_password(request.password)})

    db = get_db()
    created = db.table("users").insert(row).execute()
    if not created.data:
        raise RuntimeError("Failed to create user.")

    user = User.from_row(created.data[0])
    logger.info(f"Registered {user.role.value} {user.id}")
    return _issue(user)


@router.post("/login", response_model=Token)
def login(request: LoginRequest):
    accounts = _find_accounts(_normalize_email(request.email), request.role)
    if len(accounts) > 1:
        raise ValidationError("Several accounts use this email, specify a role", fields=["role"])
    if not accounts:
        raise AuthenticationError("Invalid email or password")

    user = User.from_row(accounts[0])
    if not user.compare_password(request.password):
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("Account is disabled")
    return _issue(user)


@router.post("/google", response_model=Token)
def google_login(request: GoogleLoginRequest):
    claims = security.verify_google_credential(request.credential)
    email = _normalize_email(claims["email"])
    external_id = str(claims["sub"])

    accounts = _find_accounts(email, request.role)
    if accounts:
        user = User.from_row(accounts[0])
        if isinstance(user.credential, LocalCredential):
            raise ConflictError("This account signs in with a password")
        if user.credential.external_id != external_id:
            raise AuthenticationError("Google account does not match this user")
        if not user.is_active:
            raise AuthenticationError("Account is disabled")
        return _issue(user)

    row = _new_user_row(claims.get("name") or email.split("@")[0], email, request.role)
    row.update({"auth_provider": security.GOOGLE_PROVIDER, "external_id": external_id})

    db = get_db()
    created = db.table("users").insert(row).execute()
    if not created.data:
        raise RuntimeError("Failed to create user.")

    user = User.from_row(created.data[0])
    logger.info(f"Registered {user.role.value} {user.id} via {security.GOOGLE_PROVIDER}")
    return _issue(user)


def _user_from_token(token: str) -> User:
    try:
        payload = jwt.decode(token, settings.effective_jwt_secret, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except JWTError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")

    user = load_user(user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")
    return user


def get_current_user(token: str | None = Depends(oauth2_scheme)) -> User:
    if not token:
        raise AuthenticationError("No token provided")
    return _user_from_token(token)


def get_optional_user(token: str | None = Depends(oauth2_scheme)) -> User | None:
    if not token:
        return None
    try:
        return _user_from_token(token)
    except AuthenticationError:
        return None
