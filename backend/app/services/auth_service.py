"""AuthService — account signup and password login.

Signup always creates a plain ``user``; staff roles are only granted by
seeding or by a master.
"""

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import create_access_token, hash_password, verify_password
from app.core.exceptions import AuthenticationError, ConflictError, NotFoundError
from app.db.models.user import User
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UserOut

logger = structlog.get_logger(__name__)

EMAIL_IN_USE_MESSAGE = "Email já está em uso"
INVALID_CREDENTIALS_MESSAGE = "Credenciais inválidas"


class AuthService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def register(self, payload: RegisterRequest) -> TokenResponse:
        """Create an account and log it in.

        Raises:
            ConflictError: the email is already registered
        """
        async with self.session_factory() as session:
            taken = await session.scalar(select(User.id).where(User.email == payload.email))
            if taken is not None:
                raise ConflictError(EMAIL_IN_USE_MESSAGE)

            user = User(
                name=payload.name,
                email=payload.email,
                role="user",
                company_id=payload.company,
                password_hash=hash_password(payload.password),
            )
            session.add(user)
            try:
                await session.commit()
            except IntegrityError:
                # Concurrent signup with the same email
                await session.rollback()
                raise ConflictError(EMAIL_IN_USE_MESSAGE)

        logger.info("user_registered", user_id=str(user.id))
        return self._token_for(user)

    async def login(self, payload: LoginRequest) -> TokenResponse:
        """Exchange email and password for an access token.

        Raises:
            AuthenticationError: unknown email or wrong password (same message for both)
        """
        async with self.session_factory() as session:
            result = await session.execute(select(User).where(User.email == payload.email))
            user = result.scalar_one_or_none()

        if user is None or not verify_password(payload.password, user.password_hash):
            logger.warning("login_failed", known_account=user is not None)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        logger.info("user_logged_in", user_id=str(user.id))
        return self._token_for(user)

    async def get_user(self, user_id: uuid.UUID) -> User:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("Usuário não encontrado")
        return user

    @staticmethod
    def _token_for(user: User) -> TokenResponse:
        return TokenResponse(
            access_token=create_access_token(user.id, user.role),
            user=UserOut.model_validate(user),
        )
