"""Video generation endpoints."""

import logging

from fastapi import APIRouter, status

from vslgen.api.deps import Queue, Store
from vslgen.schemas.generation import GenerateRequest, GenerateResponse, GenerationStatusResponse
from vslgen.services import generation_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/generate/{campaign_id}",
    response_model=GenerateResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_videos(
    campaign_id: str,
    store: Store,
    queue: Queue,
    request: GenerateRequest | None = None,
) -> GenerateResponse:
    """
    Queue video generation for a campaign's leads.

    Generation runs in the background; poll the status endpoint for progress.
    Re-queuing a lead overwrites its previous video.
    """
    lead_ids = request.lead_ids if request else None
    queued = await generation_service.enqueue_generation(store, queue, campaign_id, lead_ids)
    return GenerateResponse(queued=queued, queue_size=queue.size)


@router.get("/status/{campaign_id}", response_model=GenerationStatusResponse)
async def get_generation_status(campaign_id: str, store: Store, queue: Queue) -> GenerationStatusResponse:
    result = await generation_service.get_status(store, queue, campaign_id)
    return GenerationStatusResponse(
        completed=result.completed,
        processing=result.processing,
        pending=result.pending,
        failed=result.failed,
        total=result.total,
        queue_position=result.queue_position,
        is_processing=result.is_processing,
    )
