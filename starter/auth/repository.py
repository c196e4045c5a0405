"""Repository for auth users and refresh token persistence."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session, joinedload, sessionmaker

from starter.auth.models import (
    AuthUser,
    RefreshTokenRecord,
    Role,
    StoredRefreshToken,
)
from starter.auth.tables import RefreshTokenRow, UserRow


class AuthRepository:
    """SQLAlchemy-backed user directory and refresh token store.

    Each call runs in its own session and transaction, so the repository can
    be shared across request threads.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        """Store session factory used for every operation."""
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def find_user_by_email_or_username(
        self, email: str, username: str
    ) -> AuthUser | None:
        """Return any user matching ``email`` or ``username``."""
        stmt = (
            select(UserRow)
            .where(or_(UserRow.email == email, UserRow.username == username))
            .limit(1)
        )
        with self._session() as session:
            row = session.execute(stmt).scalars().first()
            return AuthUser.model_validate(row) if row else None

    def get_user_by_email(self, email: str) -> AuthUser | None:
        """Get user by email as stored."""
        with self._session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalars().first()
            return AuthUser.model_validate(row) if row else None

    def get_user_by_id(self, user_id: str) -> AuthUser | None:
        """Get user by id."""
        with self._session() as session:
            row = session.get(UserRow, user_id)
            return AuthUser.model_validate(row) if row else None

    def create_user(self, user: AuthUser) -> AuthUser:
        """Insert a new user and return it with database-maintained fields.

        Raises ``sqlalchemy.exc.IntegrityError`` when email or username is taken.
        """
        row = UserRow(
            id=user.id,
            email=user.email,
            username=user.username,
            password_hash=user.password_hash,
            first_name=user.first_name,
            last_name=user.last_name,
            role=str(user.role),
            is_active=user.is_active,
        )
        with self._session() as session, session.begin():
            session.add(row)
            session.flush()
            session.refresh(row)
            return AuthUser.model_validate(row)

    def update_user_role(self, user_id: str, role: Role) -> AuthUser | None:
        """Persist new role and return the updated user, or ``None`` if missing."""
        with self._session() as session, session.begin():
            row = session.get(UserRow, user_id)
            if row is None:
                return None
            row.role = str(role)
            session.flush()
            session.refresh(row)
            return AuthUser.model_validate(row)

    def set_user_active(self, user_id: str, is_active: bool) -> bool:
        """Enable or disable an account; return whether the user exists."""
        with self._session() as session, session.begin():
            result = session.execute(
                update(UserRow)
                .where(UserRow.id == user_id)
                .values(is_active=is_active)
            )
            return (result.rowcount or 0) > 0

    def save_refresh_token(self, record: RefreshTokenRecord) -> None:
        """Persist an issued refresh token."""
        with self._session() as session, session.begin():
            session.add(
                RefreshTokenRow(
                    token=record.token,
                    user_id=record.user_id,
                    expires_at=record.expires_at,
                )
            )

    def get_refresh_token(self, token: str) -> StoredRefreshToken | None:
        """Get refresh token record together with its owner."""
        stmt = (
            select(RefreshTokenRow)
            .options(joinedload(RefreshTokenRow.user))
            .where(RefreshTokenRow.token == token)
        )
        with self._session() as session:
            row = session.execute(stmt).scalars().first()
            if row is None:
                return None
            return StoredRefreshToken(
                record=RefreshTokenRecord.model_validate(row),
                user=AuthUser.model_validate(row.user),
            )

    def rotate_refresh_token(
        self, old_token: str, new_record: RefreshTokenRecord
    ) -> bool:
        """Replace ``old_token`` with ``new_record`` in a single transaction.

        Returns ``False`` without writing when ``old_token`` was already gone,
        which is how a concurrent or repeated rotation loses.
        """
        with self._session() as session, session.begin():
            result = session.execute(
                delete(RefreshTokenRow).where(RefreshTokenRow.token == old_token)
            )
            if (result.rowcount or 0) != 1:
                return False
            session.add(
                RefreshTokenRow(
                    token=new_record.token,
                    user_id=new_record.user_id,
                    expires_at=new_record.expires_at,
                )
            )
            return True

    def delete_refresh_token(self, token: str) -> int:
        """Delete one refresh token; return number of removed rows."""
        with self._session() as session, session.begin():
            result = session.execute(
                delete(RefreshTokenRow).where(RefreshTokenRow.token == token)
            )
            return result.rowcount or 0

    def delete_refresh_tokens_for_user(self, user_id: str) -> int:
        """Delete every refresh token owned by ``user_id``."""
        with self._session() as session, session.begin():
            result = session.execute(
                delete(RefreshTokenRow).where(RefreshTokenRow.user_id == user_id)
            )
            return result.rowcount or 0

    def delete_expired_refresh_tokens(self, now: datetime) -> int:
        """Delete refresh tokens whose expiry is at or before ``now``."""
        with self._session() as session, session.begin():
            result = session.execute(
                delete(RefreshTokenRow).where(RefreshTokenRow.expires_at <= now)
            )
            return result.rowcount or 0
