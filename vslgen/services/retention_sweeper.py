"""Periodic deletion of expired or excess generated videos.

Runs on its own timer next to the job worker. It only touches records that
are past their expiry or the oldest completed ones, never a record a job is
currently producing (those carry a fresh expiry and are not completed).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from vslgen.config import Settings, get_settings
from vslgen.exceptions import PersistenceError
from vslgen.models import GeneratedVideo
from vslgen.services.storage_service import StorageService
from vslgen.services.video_store import SqlVideoStore

logger = logging.getLogger(__name__)

# Free this much more than the overage so the next sweep is not immediate
STORAGE_HEADROOM = 1.2
STORAGE_BATCH_SIZE = 50


@dataclass
class SweepReport:
    """Counts from one sweep."""

    expired: int = 0
    legacy: int = 0
    over_limit: int = 0
    errors: int = 0
    freed_bytes: int = 0
    expirations_set: int = 0

    @property
    def deleted(self) -> int:
        return self.expired + self.legacy + self.over_limit

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "expired": self.expired,
            "legacy": self.legacy,
            "over_limit": self.over_limit,
            "deleted": self.deleted,
            "errors": self.errors,
            "freed_mb": round(self.freed_bytes / (1024 * 1024), 2),
            "expirations_set": self.expirations_set,
        }


class RetentionSweeper:
    """Deletes video records and files by age and by total storage."""

    def __init__(
        self,
        store: SqlVideoStore,
        storage: StorageService,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.storage = storage
        self.settings = settings or get_settings()
        self._task: Optional[asyncio.Task] = None

    async def _delete(self, record: GeneratedVideo) -> int:
        """Delete one record, its files and (optionally) its lead. Returns bytes freed."""
        size = self.storage.record_size(record)
        kinds = await asyncio.to_thread(self.storage.delete_files_for_record, record)
        await self.store.delete_record(record.id)
        if self.settings.retention_delete_leads and record.lead_id:
            await self.store.delete_lead(str(record.lead_id))
        logger.info(
            f"[RETENTION] Deleted video {record.unique_slug} (files: {', '.join(kinds) or 'none'})"
        )
        return size

    async def _delete_all(self, records: list[GeneratedVideo], report: SweepReport, kind: str) -> None:
        for record in records:
            try:
                report.freed_bytes += await self._delete(record)
            except (PersistenceError, OSError) as e:
                report.errors += 1
                logger.error(f"[RETENTION] Failed to delete video {record.id}: {e}")
                continue
            setattr(report, kind, getattr(report, kind) + 1)

    async def sweep_expired(self, report: SweepReport, now: Optional[datetime] = None) -> None:
        records = await self.store.list_expired(now)
        if records:
            logger.info(f"[RETENTION] Found {len(records)} expired videos")
        await self._delete_all(records, report, "expired")

    async def sweep_legacy(self, report: SweepReport, now: Optional[datetime] = None) -> None:
        """Records created before expiries existed, older than the retention window."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.settings.video_retention_days)
        records = await self.store.list_legacy(cutoff)
        if records:
            logger.info(f"[RETENTION] Found {len(records)} legacy videos")
        await self._delete_all(records, report, "legacy")

    async def enforce_storage_cap(self, report: SweepReport) -> None:
        """Delete oldest completed videos until usage is back under the cap."""
        limit = self.settings.max_storage_mb * 1024 * 1024
        usage = await asyncio.to_thread(self.storage.get_storage_usage)
        if usage <= limit:
            logger.debug(f"[RETENTION] Storage {usage / 1024 / 1024:.2f}MB within limit")
            return

        target = (usage - limit) * STORAGE_HEADROOM
        logger.warning(
            f"[RETENTION] Storage {usage / 1024 / 1024:.2f}MB exceeds "
            f"{self.settings.max_storage_mb}MB, freeing {target / 1024 / 1024:.2f}MB"
        )

        freed = 0
        for record in await self.store.list_oldest_completed(STORAGE_BATCH_SIZE):
            if freed >= target:
                break
            try:
                size = await self._delete(record)
            except (PersistenceError, OSError) as e:
                report.errors += 1
                logger.error(f"[RETENTION] Failed to delete video {record.id}: {e}")
                continue
            freed += size
            report.over_limit += 1
        report.freed_bytes += freed

    async def run_once(self, startup: bool = False) -> SweepReport:
        """One sweep. The startup pass also backfills expiries and removes legacy records."""
        report = SweepReport()
        phases = []
        if startup:
            phases.append(("expirations", None))
        phases.append(("expired", self.sweep_expired))
        if startup:
            phases.append(("legacy", self.sweep_legacy))
        phases.append(("storage", self.enforce_storage_cap))

        for name, phase in phases:
            try:
                if phase is None:
                    report.expirations_set = await self.store.set_missing_expirations()
                else:
                    await phase(report)
            except PersistenceError as e:
                report.errors += 1
                logger.error(f"[RETENTION] {name} phase failed: {e.message}")

        logger.info(f"[RETENTION] Sweep complete: {report.to_dict()}")
        return report

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="vslgen-retention-sweeper")
            logger.info(
                f"[RETENTION] Scheduler started (every {self.settings.cleanup_interval_seconds}s, "
                f"retention {self.settings.video_retention_days} days, "
                f"max storage {self.settings.max_storage_mb}MB)"
            )

    async def _run(self) -> None:
        await asyncio.sleep(self.settings.cleanup_startup_delay_seconds)
        startup = True
        while True:
            try:
                await self.run_once(startup=startup)
            except Exception:
                logger.exception("[RETENTION] Sweep crashed")
            startup = False
            await asyncio.sleep(self.settings.cleanup_interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[RETENTION] Scheduler stopped")
