"""In-process FIFO job queue with a single cooperative worker.

Jobs live only in memory; what happened to each lead is recorded in the
job-state store. One worker drains the queue at a time, strictly in enqueue
order, reusing one renderer session for the whole drain.
"""

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Callable, Iterable, Optional, Protocol

from vslgen.config import Settings, get_settings
from vslgen.exceptions import PersistenceError
from vslgen.render.compositor import Compositor
from vslgen.render.pipeline import GenerationJob, PipelineResult, PipelineStage, VideoPipeline
from vslgen.services.page_capture import PageCapture
from vslgen.services.storage_service import StorageService
from vslgen.services.video_store import VideoPaths, VideoStore

logger = logging.getLogger(__name__)


class Pipeline(Protocol):
    async def generate(self, job: GenerationJob) -> PipelineResult: ...


SessionFactory = Callable[[], AsyncContextManager[Pipeline]]


def _store_error(error: Exception) -> str:
    if isinstance(error, PersistenceError):
        return error.message
    return str(error) or error.__class__.__name__


def default_session_factory(storage: StorageService, settings: Optional[Settings] = None) -> SessionFactory:
    """One browser per drain, shared by every job in it."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def session() -> AsyncIterator[Pipeline]:
        async with PageCapture(settings) as capture:
            yield VideoPipeline(capture, Compositor(settings), storage, settings)

    return session


@dataclass
class JobOutcome:
    """What happened to one job.

    ``result`` is the pipeline outcome; ``persisted`` says whether the final
    status reached the store. A successful video with a failed status write
    is reported as such, not as a failed video.
    """

    lead_id: str
    result: PipelineResult
    persisted: bool = True
    persistence_error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.result.success


class JobQueue:
    """Pending jobs plus the busy flag of the single worker."""

    def __init__(self, store: VideoStore, session_factory: SessionFactory):
        self.store = store
        self.session_factory = session_factory
        self._pending: deque[GenerationJob] = deque()
        self._busy = False
        self._worker: Optional[asyncio.Task] = None
        self.stats = {"completed": 0, "failed": 0, "persistence_errors": 0}

    @property
    def is_processing(self) -> bool:
        return self._busy

    @property
    def size(self) -> int:
        return len(self._pending)

    def pending_for_campaign(self, campaign_id: str) -> int:
        return sum(1 for job in self._pending if job.campaign_id == str(campaign_id))

    def position_of_campaign(self, campaign_id: str) -> Optional[int]:
        """1-based position of the campaign's first queued job."""
        for index, job in enumerate(self._pending, start=1):
            if job.campaign_id == str(campaign_id):
                return index
        return None

    def enqueue_many(self, jobs: Iterable[GenerationJob]) -> int:
        """Append jobs and make sure a worker is draining. Returns the count added."""
        added = 0
        for job in jobs:
            self._pending.append(job)
            added += 1
        if added:
            logger.info(f"[QUEUE] Enqueued {added} jobs (queue size: {self.size})")
            self._ensure_worker()
        return added

    def _ensure_worker(self) -> None:
        # Check-and-set happens without an await, so only one worker starts
        if self._busy:
            return
        self._busy = True
        self._worker = asyncio.create_task(self._drain(), name="vslgen-job-worker")

    async def _drain(self) -> None:
        try:
            while self._pending:
                await self._drain_session()
        finally:
            self._busy = False
            logger.info(f"[QUEUE] Worker idle ({self.stats})")

    async def _drain_session(self) -> None:
        try:
            async with self.session_factory() as pipeline:
                while self._pending:
                    job = self._pending.popleft()
                    await self.process_job(pipeline, job)
        except Exception as e:
            # process_job never raises, so this is the session failing to start or close
            logger.exception(f"[QUEUE] Renderer session failed: {e}")
            while self._pending:
                job = self._pending.popleft()
                await self._record_outcome(
                    job,
                    self._failure(job, f"Renderer session failed: {e}"),
                    slug=None,
                )

    async def process_job(self, pipeline: Pipeline, job: GenerationJob) -> JobOutcome:
        """Run one job and record its status before and after. Never raises."""
        slug = None
        try:
            slug = await self.store.upsert_video_record(job.lead_id, job.campaign_id, "processing")
        except Exception as e:
            self.stats["persistence_errors"] += 1
            logger.error(
                f"[QUEUE] Lead {job.lead_id}: could not record processing status: {_store_error(e)}"
            )

        try:
            result = await pipeline.generate(job)
        except Exception as e:
            logger.exception(f"[QUEUE] Lead {job.lead_id}: unexpected pipeline error")
            result = self._failure(job, str(e) or e.__class__.__name__)

        return await self._record_outcome(job, result, slug)

    async def _record_outcome(
        self, job: GenerationJob, result: PipelineResult, slug: Optional[str]
    ) -> JobOutcome:
        self.stats["completed" if result.success else "failed"] += 1
        try:
            if result.success:
                await self.store.upsert_video_record(
                    job.lead_id,
                    job.campaign_id,
                    "completed",
                    slug=slug,
                    paths=VideoPaths(
                        video_path=result.video_path,
                        preview_path=result.preview_path,
                        thumbnail_path=result.thumbnail_path,
                        background_path=result.background_path,
                    ),
                )
                logger.info(f"[QUEUE] Lead {job.lead_id}: completed")
            else:
                await self.store.upsert_video_record(
                    job.lead_id,
                    job.campaign_id,
                    "failed",
                    slug=slug,
                    error_message=result.error,
                )
                logger.warning(f"[QUEUE] Lead {job.lead_id}: failed: {result.error}")
        except Exception as e:
            # Any store failure is a status-write failure, never a video failure
            self.stats["persistence_errors"] += 1
            message = _store_error(e)
            outcome = "completed" if result.success else "failed"
            logger.error(
                f"[QUEUE] Lead {job.lead_id}: video {outcome} but status write failed: {message}"
            )
            return JobOutcome(job.lead_id, result, persisted=False, persistence_error=message)
        return JobOutcome(job.lead_id, result)

    @staticmethod
    def _failure(job: GenerationJob, error: str) -> PipelineResult:
        return PipelineResult(
            lead_id=job.lead_id,
            success=False,
            stage=PipelineStage.FAILED,
            error=error,
        )

    async def wait_idle(self) -> None:
        """Wait for the current drain to finish."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def shutdown(self) -> None:
        """Drop queued jobs and cancel the worker."""
        dropped = len(self._pending)
        self._pending.clear()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        if dropped:
            logger.warning(f"[QUEUE] Shutdown dropped {dropped} queued jobs")
