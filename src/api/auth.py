"""
Authentication: JWT bearer tokens and role checks.

Tokens carry the user id; organization and role are always read from the
database so role changes apply without re-login.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from api.rate_limit import limiter
from api.schemas import AccessToken, LoginRequest, ProfileResponse, RegisterRequest
from config.settings import get_settings
from db import get_db, Role, User
from services import OrganizationService
from utils.validators import validate_password

ALGORITHM = "HS256"
TOKEN_LIFETIME = timedelta(days=7)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

bearer = HTTPBearer(auto_error=False)

router = APIRouter(prefix="/auth", tags=["auth"])


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user_id: str) -> str:
    issued = datetime.now(timezone.utc)
    claims = {"sub": user_id, "iat": issued, "exp": issued + TOKEN_LIFETIME}
    return jwt.encode(claims, get_settings().jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Claims of a valid token, None when it is malformed, forged or expired."""
    try:
        return jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def _credentials_error(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _issue(user: User) -> AccessToken:
    return AccessToken(access_token=create_access_token(user.id), user=user.to_dict())


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token to a user, or answer 401."""
    if credentials is None:
        raise _credentials_error("Not authenticated")

    claims = decode_token(credentials.credentials)
    if not claims or not claims.get("sub"):
        raise _credentials_error("Invalid or expired token")

    user = db.query(User).filter(User.id == claims["sub"]).first()
    if user is None:
        raise _credentials_error("User not found")

    # Keys the rate limiter and request logs by user
    request.state.user_id = user.id

    from middleware.error_handler import set_user_context
    set_user_context(user_id=user.id, email=user.email, username=user.name)

    return user


async def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """Current user, if they administer their organization."""
    if current_user.role not in (Role.ADMIN, Role.SUPERADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization administrator role required",
        )
    return current_user


@router.post("/register", response_model=AccessToken, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Create an organization and its first administrator."""
    ok, reason = validate_password(body.password)
    if not ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=reason)

    if db.query(User).filter(User.email == body.email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    organization = OrganizationService(db).create_organization(body.organization_name)
    admin = User(
        email=body.email,
        password_hash=hash_password(body.password),
        name=body.name,
        organization_id=organization.id,
        role=Role.ADMIN,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)

    return _issue(admin)


@router.post("/login", response_model=AccessToken)
@limiter.limit("10/minute")
async def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email).first()
    if user is None or not verify_password(body.password, user.password_hash):
        raise _credentials_error("Incorrect email or password")
    return _issue(user)


@router.get("/me", response_model=ProfileResponse)
async def me(current_user: User = Depends(get_current_user)):
    return current_user.to_dict()
