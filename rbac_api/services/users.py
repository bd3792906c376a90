"""Credential store: persistence of user records."""
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import undefer

from ..core.exceptions import ConflictError, InternalError
from ..models.base import utcnow
from ..models.user import SECRET_FIELDS, User

LOOKUP_FIELDS = {"id", "email", "google_id", "password_reset_token", "verify_email_token"}


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Single-document reads and writes against the ``users`` table.

    Every read goes through ``_select`` and therefore never sees users with
    ``active = False``. Secret columns stay unloaded unless a caller names
    them in ``include``; touching an unloaded one raises.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _select(self, include: Iterable[str] = ()):
        stmt = select(User).where(User.active.is_not(False))
        include = tuple(include)
        if include:
            unknown = set(include) - set(SECRET_FIELDS)
            if unknown:
                raise ValueError(f"Cannot include unknown fields: {sorted(unknown)}")
            stmt = stmt.options(*(undefer(getattr(User, name)) for name in include))
            stmt = stmt.execution_options(populate_existing=True)
        return stmt

    async def find_by_field(
        self,
        field: str,
        value,
        include: Iterable[str] = (),
    ) -> Optional[User]:
        """Find one active user where ``field == value``."""
        if field not in LOOKUP_FIELDS:
            raise ValueError(f"Lookup by '{field}' is not supported")
        if value is None:
            return None
        if field == "email":
            value = normalize_email(value)

        stmt = self._select(include).where(getattr(User, field) == value)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: str, include: Iterable[str] = ()) -> Optional[User]:
        return await self.find_by_field("id", user_id, include)

    async def find_by_email(self, email: str, include: Iterable[str] = ()) -> Optional[User]:
        return await self.find_by_field("email", email, include)

    async def reload(self, user: User) -> Optional[User]:
        """Fetch a fresh instance of ``user`` with every secret column unloaded."""
        user_id = user.id
        self.session.expunge(user)
        return await self.find_by_id(user_id)

    async def find_by_token_digest(
        self,
        field: str,
        digest: str,
        expires_field: Optional[str] = None,
    ) -> Optional[User]:
        """Look a user up by an ephemeral token digest, optionally unexpired only."""
        stmt = self._select().where(getattr(User, field) == digest)
        if expires_field:
            stmt = stmt.where(getattr(User, expires_field) > utcnow())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **fields) -> User:
        """Insert a new user; email clashes (active or not) become ``ConflictError``."""
        fields["email"] = normalize_email(fields["email"])
        user = User(**fields)
        user.validate(password_required=True)

        self.session.add(user)
        await self._commit()
        return user

    async def save(self, user: User, validate: bool = True) -> User:
        """Persist changes to ``user``.

        ``validate=False`` skips model checks for internal bookkeeping writes
        (token slots, flags) that do not touch user-supplied fields.
        """
        if validate:
            user.email = normalize_email(user.email)
            user.validate()
        await self._commit()
        return user

    async def rotate_refresh_token(
        self,
        user_id: str,
        expected_hash: Optional[str],
        new_hash: str,
        session_id: str,
    ) -> bool:
        """Replace the stored refresh hash only if it still equals ``expected_hash``.

        Returns False when another request rotated or revoked it first.
        """
        stmt = (
            update(User)
            .where(
                User.id == user_id,
                User.active.is_not(False),
                User.refresh_token_hash == expected_hash,
            )
            .values(refresh_token_hash=new_hash, session_id=session_id, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1

    async def list_active(self, offset: int = 0, limit: int = 10) -> List[User]:
        stmt = self._select().order_by(User.created_at, User.id).offset(offset).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_active(self) -> int:
        stmt = select(func.count(User.id)).where(User.active.is_not(False))
        return await self.session.scalar(stmt) or 0

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            # sqlite: "UNIQUE constraint failed"; postgres: "violates unique constraint"
            if "unique" in str(exc.orig).lower():
                raise ConflictError("A user with that email already exists") from exc
            raise InternalError("Could not save user record") from exc
