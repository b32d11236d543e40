"""
Stores
======
Async CRUD over the application tables. Each call runs in its own short
session; multi-row changes that must land together share one session.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .database import session_scope
from .models import Content, GameAccount, Role, TesterRequest, TesterRequestStatus, UserRole


class GameAccountStore:
    """Links between website users and game accounts."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_by_user(self, user_id: str) -> Optional[GameAccount]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(select(GameAccount).where(GameAccount.user_id == user_id))
            return result.scalar_one_or_none()

    async def get_by_username(self, game_username: str) -> Optional[GameAccount]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(GameAccount).where(GameAccount.game_username == game_username.lower())
            )
            return result.scalar_one_or_none()

    async def create(self, user_id: str, game_username: str) -> GameAccount:
        account = GameAccount(user_id=user_id, game_username=game_username.lower())
        async with session_scope(self._session_factory) as session:
            session.add(account)
            await session.flush()
            await session.refresh(account)
        return account

    async def delete(self, account_id: str) -> None:
        async with session_scope(self._session_factory) as session:
            await session.execute(delete(GameAccount).where(GameAccount.id == account_id))


class ContentStore:
    """Published and draft content items."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list(
        self,
        content_types: Optional[Sequence[str]] = None,
        published: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Content], int]:
        """Return one page of items plus the total matching count."""
        filters = []
        if content_types:
            filters.append(Content.type.in_(list(content_types)))
        if published is not None:
            filters.append(Content.published == published)

        if published:
            order = (Content.published_at.desc(), Content.created_at.desc())
        else:
            order = (Content.created_at.desc(),)

        async with session_scope(self._session_factory) as session:
            total = await session.scalar(select(func.count()).select_from(Content).where(*filters))
            result = await session.execute(
                select(Content).where(*filters).order_by(*order).limit(limit).offset(offset)
            )
            return list(result.scalars().all()), int(total or 0)

    async def get(self, id_or_slug: str) -> Optional[Content]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(Content).where(or_(Content.id == id_or_slug, Content.slug == id_or_slug))
            )
            return result.scalars().first()

    async def get_by_slug(self, slug: str) -> Optional[Content]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(select(Content).where(Content.slug == slug))
            return result.scalar_one_or_none()

    async def create(self, fields: Dict[str, Any]) -> Content:
        """Raises IntegrityError when the slug is already used."""
        content = Content(**fields)
        async with session_scope(self._session_factory) as session:
            session.add(content)
            await session.flush()
            await session.refresh(content)
        return content

    async def update(self, content_id: str, changes: Dict[str, Any]) -> Optional[Content]:
        """Apply ``changes``; None when the item does not exist."""
        async with session_scope(self._session_factory) as session:
            content = await session.get(Content, content_id)
            if content is None:
                return None
            if changes.get("published") and not content.published and content.published_at is None:
                content.published_at = datetime.now(timezone.utc)
            for key, value in changes.items():
                setattr(content, key, value)
            await session.flush()
            await session.refresh(content)
            return content

    async def delete(self, content_id: str) -> bool:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(delete(Content).where(Content.id == content_id))
            return result.rowcount > 0


class UserRoleStore:
    """Portal roles keyed by directory user id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, user_id: str) -> Optional[UserRole]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(select(UserRole).where(UserRole.user_id == user_id))
            return result.scalar_one_or_none()

    async def get_or_create(self, user_id: str) -> UserRole:
        """Return the user's role row, creating the default ``user`` role if missing."""
        existing = await self.get(user_id)
        if existing is not None:
            return existing
        try:
            async with session_scope(self._session_factory) as session:
                user_role = UserRole(user_id=user_id, role=Role.USER.value, allowed_envs=[])
                session.add(user_role)
                await session.flush()
                await session.refresh(user_role)
                return user_role
        except IntegrityError:
            # Created concurrently
            return await self.get(user_id)

    async def upsert(self, user_id: str, role: str, allowed_envs: List[str]) -> UserRole:
        async with session_scope(self._session_factory) as session:
            user_role = await _upsert_role(session, user_id, role, allowed_envs)
            await session.flush()
            await session.refresh(user_role)
            return user_role

    async def list_all(self) -> List[UserRole]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(select(UserRole).order_by(UserRole.created_at.desc()))
            return list(result.scalars().all())


class TesterRequestStore:
    """Tester access requests and their review."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, request_id: str) -> Optional[TesterRequest]:
        async with session_scope(self._session_factory) as session:
            return await session.get(TesterRequest, request_id)

    async def get_by_user(self, user_id: str) -> Optional[TesterRequest]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(select(TesterRequest).where(TesterRequest.user_id == user_id))
            return result.scalar_one_or_none()

    async def submit(self, user_id: str, email: str, reason: Optional[str], replace_id: Optional[str] = None) -> TesterRequest:
        """Create a pending request, removing ``replace_id`` in the same transaction."""
        async with session_scope(self._session_factory) as session:
            if replace_id is not None:
                await session.execute(delete(TesterRequest).where(TesterRequest.id == replace_id))
            request = TesterRequest(user_id=user_id, email=email, reason=reason)
            session.add(request)
            await session.flush()
            await session.refresh(request)
            return request

    async def list(self, status: Optional[str] = None) -> List[TesterRequest]:
        """Pending requests oldest first; the full history newest first."""
        query = select(TesterRequest)
        if status is not None:
            query = query.where(TesterRequest.status == status).order_by(TesterRequest.created_at.asc())
        else:
            query = query.order_by(TesterRequest.created_at.desc())
        async with session_scope(self._session_factory) as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def review(
        self,
        request_id: str,
        reviewer_id: str,
        approved: bool,
        allowed_envs: List[str],
    ) -> Optional[TesterRequest]:
        """
        Record the decision. Approval grants the ``tester`` role in the same
        transaction. Returns None when the request does not exist.
        """
        async with session_scope(self._session_factory) as session:
            request = await session.get(TesterRequest, request_id)
            if request is None:
                return None
            request.status = (TesterRequestStatus.APPROVED if approved else TesterRequestStatus.DENIED).value
            request.reviewed_by = reviewer_id
            request.reviewed_at = datetime.now(timezone.utc)
            if approved:
                await _upsert_role(session, request.user_id, Role.TESTER.value, allowed_envs)
            await session.flush()
            await session.refresh(request)
            return request


async def _upsert_role(session: AsyncSession, user_id: str, role: str, allowed_envs: List[str]) -> UserRole:
    result = await session.execute(select(UserRole).where(UserRole.user_id == user_id))
    user_role = result.scalar_one_or_none()
    if user_role is None:
        user_role = UserRole(user_id=user_id, role=role, allowed_envs=list(allowed_envs))
        session.add(user_role)
    else:
        user_role.role = role
        user_role.allowed_envs = list(allowed_envs)
    return user_role
