from typing import Annotated

from fastapi import Depends, Request

from vslgen.services.job_queue import JobQueue
from vslgen.services.video_store import VideoStore


def get_store(request: Request) -> VideoStore:
    return request.app.state.store


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


Store = Annotated[VideoStore, Depends(get_store)]
Queue = Annotated[JobQueue, Depends(get_job_queue)]
