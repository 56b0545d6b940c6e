"""Job-state store backed by SQLAlchemy.

The worker, the HTTP layer and the retention sweeper all read and write
generated-video records through this module. There is at most one record
per lead: every write is an INSERT ... ON CONFLICT (lead_id) DO UPDATE, so
concurrent writers never produce duplicates.
"""

import logging
import secrets
import string
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional, Protocol, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vslgen.exceptions import PersistenceError
from vslgen.models import Campaign, GeneratedVideo, Lead
from vslgen.models.generated_video import VIDEO_STATUSES

logger = logging.getLogger(__name__)

SLUG_ALPHABET = string.ascii_letters + string.digits + "_-"
SLUG_LENGTH = 11
SLUG_ATTEMPTS = 3


def generate_slug(length: int = SLUG_LENGTH) -> str:
    """Random URL-safe public identifier."""
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def _as_uuid(value: uuid.UUID | str) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _is_slug_collision(error: BaseException | None) -> bool:
    """True when an integrity error comes from the unique_slug constraint."""
    return isinstance(error, IntegrityError) and "unique_slug" in str(error.orig)


@dataclass(frozen=True)
class VideoPaths:
    """Storage keys of a completed video's artifacts."""

    video_path: Optional[str] = None
    preview_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    background_path: Optional[str] = None


@dataclass(frozen=True)
class StatusCounts:
    """Per-status record counts for one campaign."""

    completed: int = 0
    processing: int = 0
    pending: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.completed + self.processing + self.pending + self.failed


class VideoStore(Protocol):
    """What the worker and HTTP layer need from the job-state store."""

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]: ...

    async def get_leads_for_campaign(
        self, campaign_id: str, lead_ids: Optional[Sequence[str]] = None
    ) -> list[Lead]: ...

    async def upsert_video_record(
        self,
        lead_id: str,
        campaign_id: str,
        status: str,
        *,
        slug: Optional[str] = None,
        paths: Optional[VideoPaths] = None,
        error_message: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> str: ...

    async def delete_video_record(self, lead_id: str) -> bool: ...

    async def count_by_status(self, campaign_id: str) -> StatusCounts: ...


class SqlVideoStore:
    """SQLAlchemy implementation for PostgreSQL (production) and SQLite (tests)."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], retention_days: int = 30):
        self._session_maker = session_maker
        self.retention_days = retention_days

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_maker() as session:
            try:
                yield session
            except (SQLAlchemyError, OSError) as e:
                # Connection failures from the driver can surface as plain OSError
                await session.rollback()
                raise PersistenceError(f"Job state store error: {e}") from e

    def _insert(self, session: AsyncSession):
        dialect = session.bind.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(GeneratedVideo)
        if dialect == "sqlite":
            return sqlite.insert(GeneratedVideo)
        raise PersistenceError(f"Unsupported database dialect: {dialect}")

    # -------------------------------------------------------------------------
    # Campaigns and leads
    # -------------------------------------------------------------------------

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        try:
            key = _as_uuid(campaign_id)
        except ValueError:
            return None
        async with self._session() as session:
            return await session.get(Campaign, key)

    async def get_leads_for_campaign(
        self, campaign_id: str, lead_ids: Optional[Sequence[str]] = None
    ) -> list[Lead]:
        try:
            campaign_key = _as_uuid(campaign_id)
        except ValueError:
            return []

        query = select(Lead).where(Lead.campaign_id == campaign_key).order_by(Lead.created_at, Lead.id)
        if lead_ids is not None:
            keys = []
            for lead_id in lead_ids:
                try:
                    keys.append(_as_uuid(lead_id))
                except ValueError:
                    logger.warning(f"[STORE] Ignoring invalid lead id: {lead_id!r}")
            if not keys:
                return []
            query = query.where(Lead.id.in_(keys))

        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def delete_lead(self, lead_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(delete(Lead).where(Lead.id == _as_uuid(lead_id)))
            await session.commit()
            return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Video records
    # -------------------------------------------------------------------------

    async def upsert_video_record(
        self,
        lead_id: str,
        campaign_id: str,
        status: str,
        *,
        slug: Optional[str] = None,
        paths: Optional[VideoPaths] = None,
        error_message: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> str:
        """Insert or overwrite the lead's record. Returns the slug written.

        Without an explicit ``slug`` a fresh one is generated; without
        ``expires_at`` the retention window restarts from now.
        """
        if status not in VIDEO_STATUSES:
            raise ValueError(f"Unknown video status: {status}")
        paths = paths or VideoPaths()
        expires_at = expires_at or datetime.now(timezone.utc) + timedelta(days=self.retention_days)
        attempts = 1 if slug else SLUG_ATTEMPTS

        for attempt in range(attempts):
            current_slug = slug or generate_slug()
            values = {
                "lead_id": _as_uuid(lead_id),
                "campaign_id": _as_uuid(campaign_id),
                "unique_slug": current_slug,
                "status": status,
                "video_path": paths.video_path,
                "preview_path": paths.preview_path,
                "thumbnail_path": paths.thumbnail_path,
                "background_path": paths.background_path,
                "error_message": error_message,
                "expires_at": expires_at,
            }
            try:
                async with self._session() as session:
                    stmt = self._insert(session).values(id=uuid.uuid4(), **values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["lead_id"],
                        set_={**values, "updated_at": func.now()},
                    )
                    await session.execute(stmt)
                    await session.commit()
                return current_slug
            except PersistenceError as e:
                # Only a slug collision is worth another attempt
                if _is_slug_collision(e.__cause__) and attempt < attempts - 1:
                    logger.warning(f"[STORE] Slug collision for lead {lead_id}, retrying")
                    continue
                raise
        raise PersistenceError(f"Could not allocate a unique slug for lead {lead_id}")

    async def get_video_record(self, lead_id: str) -> Optional[GeneratedVideo]:
        async with self._session() as session:
            result = await session.execute(
                select(GeneratedVideo).where(GeneratedVideo.lead_id == _as_uuid(lead_id))
            )
            return result.scalar_one_or_none()

    async def delete_video_record(self, lead_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(GeneratedVideo).where(GeneratedVideo.lead_id == _as_uuid(lead_id))
            )
            await session.commit()
            return result.rowcount > 0

    async def count_by_status(self, campaign_id: str) -> StatusCounts:
        try:
            campaign_key = _as_uuid(campaign_id)
        except ValueError:
            return StatusCounts()

        async with self._session() as session:
            result = await session.execute(
                select(GeneratedVideo.status, func.count())
                .where(GeneratedVideo.campaign_id == campaign_key)
                .group_by(GeneratedVideo.status)
            )
            counts = {status: count for status, count in result.all()}

        return StatusCounts(
            completed=counts.get("completed", 0),
            processing=counts.get("processing", 0),
            pending=counts.get("pending", 0),
            failed=counts.get("failed", 0),
        )

    # -------------------------------------------------------------------------
    # Retention queries
    # -------------------------------------------------------------------------

    async def list_expired(self, now: Optional[datetime] = None) -> list[GeneratedVideo]:
        """Records whose expiry has passed."""
        now = now or datetime.now(timezone.utc)
        async with self._session() as session:
            result = await session.execute(
                select(GeneratedVideo)
                .where(GeneratedVideo.expires_at.is_not(None), GeneratedVideo.expires_at < now)
                .order_by(GeneratedVideo.expires_at)
            )
            return list(result.scalars().all())

    async def list_legacy(self, cutoff: datetime) -> list[GeneratedVideo]:
        """Records without an expiry created before ``cutoff``."""
        async with self._session() as session:
            result = await session.execute(
                select(GeneratedVideo)
                .where(GeneratedVideo.expires_at.is_(None), GeneratedVideo.created_at < cutoff)
                .order_by(GeneratedVideo.created_at)
            )
            return list(result.scalars().all())

    async def list_oldest_completed(self, limit: int = 50) -> list[GeneratedVideo]:
        async with self._session() as session:
            result = await session.execute(
                select(GeneratedVideo)
                .where(GeneratedVideo.status == "completed")
                .order_by(GeneratedVideo.created_at, GeneratedVideo.id)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def set_missing_expirations(self) -> int:
        """Give records without an expiry one, counted from their creation."""
        retention = timedelta(days=self.retention_days)
        async with self._session() as session:
            result = await session.execute(
                select(GeneratedVideo).where(GeneratedVideo.expires_at.is_(None))
            )
            records = list(result.scalars().all())
            for record in records:
                record.expires_at = record.created_at + retention
            await session.commit()
        if records:
            logger.info(f"[STORE] Set expiration for {len(records)} existing videos")
        return len(records)

    async def delete_record(self, record_id: uuid.UUID) -> bool:
        async with self._session() as session:
            result = await session.execute(delete(GeneratedVideo).where(GeneratedVideo.id == record_id))
            await session.commit()
            return result.rowcount > 0
