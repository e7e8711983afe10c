"""Account routes: signup, login and the caller's profile."""

from fastapi import APIRouter, Depends

from app.core.auth import AuthUser, require_auth
from app.db.base import get_session_factory
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UserOut
from app.services.auth_service import AuthService

router = APIRouter()


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(payload: RegisterRequest):
    return await AuthService(get_session_factory()).register(payload)


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest):
    return await AuthService(get_session_factory()).login(payload)


@router.get("/me", response_model=UserOut)
async def me(user: AuthUser = Depends(require_auth)):
    return await AuthService(get_session_factory()).get_user(user.user_id)
