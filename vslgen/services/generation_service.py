"""Entry points the HTTP layer uses to start generation and report progress."""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from vslgen.exceptions import CampaignNotFoundError, MissingIntroVideoError, NoLeadsError
from vslgen.render.pipeline import GenerationJob
from vslgen.render.style import resolve_style
from vslgen.services.job_queue import JobQueue
from vslgen.services.video_store import VideoStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CampaignStatus:
    completed: int
    processing: int
    pending: int
    failed: int
    total: int
    queue_position: Optional[int]
    is_processing: bool


async def enqueue_generation(
    store: VideoStore,
    queue: JobQueue,
    campaign_id: str,
    lead_ids: Optional[Sequence[str]] = None,
) -> int:
    """Queue one job per selected lead of a campaign. Returns the number queued.

    The campaign's style is resolved once here and carried by every job.
    """
    campaign = await store.get_campaign(campaign_id)
    if campaign is None:
        raise CampaignNotFoundError(campaign_id)
    if not campaign.intro_video_path:
        raise MissingIntroVideoError()

    leads = await store.get_leads_for_campaign(campaign_id, lead_ids)
    if not leads:
        raise NoLeadsError()

    style = resolve_style(campaign.style_config())
    jobs = [
        GenerationJob(
            lead_id=str(lead.id),
            campaign_id=str(campaign.id),
            website_url=lead.website_url,
            intro_video_path=campaign.intro_video_path,
            secondary_video_path=campaign.secondary_video_path,
            style=style,
        )
        for lead in leads
    ]
    queued = queue.enqueue_many(jobs)
    logger.info(f"[GENERATION] Campaign {campaign_id}: queued {queued} leads")
    return queued


async def get_status(store: VideoStore, queue: JobQueue, campaign_id: str) -> CampaignStatus:
    """Store counts plus jobs still waiting in memory for this campaign."""
    counts = await store.count_by_status(campaign_id)
    queued = queue.pending_for_campaign(campaign_id)
    pending = counts.pending + queued
    return CampaignStatus(
        completed=counts.completed,
        processing=counts.processing,
        pending=pending,
        failed=counts.failed,
        total=counts.completed + counts.processing + pending + counts.failed,
        queue_position=queue.position_of_campaign(campaign_id),
        is_processing=queue.is_processing,
    )
