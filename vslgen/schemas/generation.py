from pydantic import BaseModel


class GenerateRequest(BaseModel):
    lead_ids: list[str] | None = None  # All campaign leads when omitted


class GenerateResponse(BaseModel):
    success: bool = True
    queued: int
    queue_size: int


class GenerationStatusResponse(BaseModel):
    completed: int
    processing: int
    pending: int
    failed: int
    total: int
    queue_position: int | None
    is_processing: bool
