"""Bearer JWT authentication and role checks for FastAPI."""

import time
import uuid
from dataclasses import dataclass

import bcrypt
import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings

_bearer_scheme = HTTPBearer(auto_error=False)

ROLES = ("user", "admin", "master")
STAFF_ROLES = ("admin", "master")

# bcrypt only reads the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72
BCRYPT_ROUNDS = 10


@dataclass(frozen=True)
class AuthUser:
    """Authenticated caller extracted from an access token."""

    user_id: uuid.UUID
    role: str
    claims: dict

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_master(self) -> bool:
        return self.role == "master"


def create_access_token(user_id: uuid.UUID | str, role: str = "user", expires_in: int | None = None) -> str:
    """Issue a signed access token for ``user_id`` with ``role``."""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    settings = get_settings()
    now = int(time.time())
    ttl = expires_in if expires_in is not None else settings.jwt_expiry_minutes * 60
    claims = {"sub": str(user_id), "role": role, "iat": now, "exp": now + ttl}
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return pyjwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def hash_password(password: str) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password longer than {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def verify_password(password: str, password_hash: str | None) -> bool:
    """False for accounts without a password and for anything bcrypt rejects."""
    encoded = password.encode("utf-8")
    if not password_hash or len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("ascii"))
    except ValueError:
        return False


def decode_access_token(token: str) -> AuthUser:
    """Verify and decode an access token.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    settings = get_settings()
    options = {"require": ["sub", "role", "exp", "iat"]}
    kwargs = {}
    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        options["verify_aud"] = False

    try:
        payload = pyjwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options=options,
            **kwargs,
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    role = payload.get("role")
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid role claim")

    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid sub claim")

    return AuthUser(user_id=user_id, role=role, claims=payload)


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser:
    """FastAPI dependency that extracts and validates the bearer token.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    user = decode_access_token(credentials.credentials)

    # Picked up by the exception handlers for log context
    request.state.user_id = str(user.user_id)
    return user


async def require_admin(user: AuthUser = Depends(require_auth)) -> AuthUser:
    """Allow admins and masters."""
    if not user.is_staff:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_master(user: AuthUser = Depends(require_auth)) -> AuthUser:
    """Allow masters only."""
    if not user.is_master:
        raise HTTPException(status_code=403, detail="Master access required")
    return user
