"""
Magic-link authentication lifecycle.

Flow:
1. request_magic_link: find-or-create the user, store sha256(token), email the raw token
2. verify_magic_link: consume the link once, mint a signed credential, store sha256(credential)
3. validate_session: check signature, then check a live session row still backs it
4. logout: delete the session row (idempotent)

Neither raw tokens nor raw credentials are ever persisted.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from common_grounds.config import Settings
from common_grounds.db.models import MagicLink, Session, User
from common_grounds.exceptions import (
    EmailDeliveryError,
    InvalidTokenError,
    NotFoundError,
    SessionExpiredError,
    ValidationError,
)
from common_grounds.services.email import EmailService
from common_grounds.services.security import (
    SessionClaims,
    create_session_token,
    decode_session_token,
    generate_token,
    sha256_hex,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


@dataclass(frozen=True)
class LoginResult:
    user: User
    access_token: str
    expires_in: int


class AuthService:
    """Issues, validates and retires magic links and sessions."""

    def __init__(self, settings: Settings, email_service: EmailService):
        self.settings = settings
        self.email_service = email_service

    @property
    def session_lifetime(self) -> timedelta:
        return timedelta(minutes=self.settings.jwt_expire_minutes)

    def normalize_email(self, email: str) -> str:
        """
        Lowercase and trim, then enforce syntax and the institution domain.

        Raises:
            ValidationError: If the address is malformed or off-domain
        """
        normalized = email.strip().lower()
        domain = self.settings.allowed_email_domain.lower()
        if not EMAIL_RE.match(normalized):
            raise ValidationError("Invalid email address")
        if not normalized.endswith(f"@{domain}"):
            raise ValidationError(f"Only @{domain} emails are allowed")
        return normalized

    # =========================================================================
    # MAGIC LINKS
    # =========================================================================

    async def request_magic_link(self, db: AsyncSession, email: str) -> None:
        """
        Create a login link for `email` and send it.

        The link row is only committed once the email has been handed to the
        provider; a delivery failure rolls everything back.
        """
        normalized = self.normalize_email(email)
        user = await self._get_or_create_user(db, normalized)

        token = generate_token(32)
        db.add(
            MagicLink(
                user_id=user.id,
                token_hash=sha256_hex(token),
                expires_at=datetime.now(timezone.utc)
                + timedelta(minutes=self.settings.magic_link_expire_minutes),
                used=False,
            )
        )
        await db.flush()

        try:
            await self.email_service.send_magic_link(normalized, token)
        except EmailDeliveryError:
            await db.rollback()
            raise

        await db.commit()

    async def _get_or_create_user(self, db: AsyncSession, email: str) -> User:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is not None:
            return user

        user = User(email=email, email_verified=False)
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent first request for the same email
            await db.rollback()
            result = await db.execute(select(User).where(User.email == email))
            return result.scalar_one()

        logger.info("New user created: %s", email)
        return user

    async def verify_magic_link(self, db: AsyncSession, token: str) -> LoginResult:
        """
        Consume a magic link and open a session.

        The used flag flips in one conditional UPDATE, so concurrent
        verifications of the same token cannot both succeed.

        Raises:
            InvalidTokenError: Link unknown, expired or already used
        """
        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(MagicLink)
            .where(
                MagicLink.token_hash == sha256_hex(token),
                MagicLink.used.is_(False),
                MagicLink.expires_at > now,
            )
            .values(used=True)
            .returning(MagicLink.user_id)
            .execution_options(synchronize_session=False)
        )
        user_id = result.scalar_one_or_none()
        if user_id is None:
            await db.rollback()
            raise InvalidTokenError()

        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(email_verified=True)
            .execution_options(synchronize_session=False)
        )
        user = (
            await db.execute(
                select(User).where(User.id == user_id).execution_options(populate_existing=True)
            )
        ).scalar_one()

        access_token = create_session_token(
            user.id,
            user.email,
            secret_key=self.settings.jwt_secret_key,
            algorithm=self.settings.jwt_algorithm,
            expires_in=self.session_lifetime,
        )
        db.add(
            Session(
                user_id=user.id,
                token_hash=sha256_hex(access_token),
                expires_at=now + self.session_lifetime,
                last_used_at=now,
            )
        )
        await db.commit()

        logger.info("User logged in: %s", user.email)
        return LoginResult(
            user=user,
            access_token=access_token,
            expires_in=int(self.session_lifetime.total_seconds()),
        )

    # =========================================================================
    # SESSIONS
    # =========================================================================

    async def validate_session(self, db: AsyncSession, token: str) -> SessionClaims:
        """
        Check a bearer credential and refresh its session.

        A valid signature is not enough: the session row must still exist and
        be unexpired, which is what makes logout effective.

        Raises:
            InvalidTokenError: Malformed or foreign credential
            SessionExpiredError: Expired credential or no live session row
        """
        claims = decode_session_token(
            token,
            secret_key=self.settings.jwt_secret_key,
            algorithm=self.settings.jwt_algorithm,
        )

        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(Session)
            .where(Session.token_hash == sha256_hex(token), Session.expires_at > now)
            .values(last_used_at=now)
            .returning(Session.user_id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            await db.rollback()
            raise SessionExpiredError()

        await db.commit()
        return claims

    async def logout(self, db: AsyncSession, token: str) -> None:
        """Delete the session backing `token`. Already-gone sessions are fine."""
        await db.execute(delete(Session).where(Session.token_hash == sha256_hex(token)))
        await db.commit()

    async def get_current_user(self, db: AsyncSession, user_id: UUID) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def purge_expired(self, db: AsyncSession) -> tuple[int, int]:
        """Delete expired magic links and sessions. Returns (links, sessions) removed."""
        now = datetime.now(timezone.utc)
        links = await db.execute(delete(MagicLink).where(MagicLink.expires_at <= now))
        sessions = await db.execute(delete(Session).where(Session.expires_at <= now))
        await db.commit()
        return links.rowcount or 0, sessions.rowcount or 0
