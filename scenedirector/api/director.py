# scenedirector/api/director.py
"""
Director API route handlers.

Utterances can be slow (model latency plus retries), so the REST entry point
queues a job and returns at once; poll /status/{job_id} for the resulting
session event. Viewers see the outcome through the WebSocket broadcast.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from cachetools import TTLCache
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from ..session import SceneSession
from .scene import get_session
from .schemas import DirectorJobResponse, DirectorRequestAPI, DirectorStatusResponse


logger = logging.getLogger(__name__)

router = APIRouter()

# TTL-evicted job tracking: at most 256 entries for 1 hour each.
jobs: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=256, ttl=3600)


async def run_director_job(job_id: str, session: SceneSession, utterance: str) -> None:
    """Background task: model call plus apply, recorded on the job."""
    logger.info("[*] Starting director job %s", job_id)
    jobs[job_id]["status"] = "running"

    try:
        event = await session.submit_utterance(utterance)
    except Exception as e:
        jobs[job_id]["status"] = "failed"
        jobs[job_id]["error"] = str(e)
        logger.exception("[-] Director job %s failed: %s", job_id, e)
        return

    jobs[job_id]["status"] = "completed"
    jobs[job_id]["event"] = event.to_wire()
    logger.info("[+] Director job %s finished with status %s", job_id, event.status)


@router.post("/", response_model=DirectorJobResponse)
async def create_director_job(
    request: DirectorRequestAPI,
    background_tasks: BackgroundTasks,
    session: SceneSession = Depends(get_session),
):
    job_id = str(uuid.uuid4())[:8]
    jobs[job_id] = {
        "status": "queued",
        "utterance": request.utterance,
        "event": None,
        "error": None,
    }

    background_tasks.add_task(run_director_job, job_id, session, request.utterance)
    logger.info("[*] Queued director job %s: %s", job_id, request.utterance[:50])

    return DirectorJobResponse(job_id=job_id, status="queued")


@router.get("/status/{job_id}", response_model=DirectorStatusResponse)
async def get_director_status(job_id: str):
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job not found")

    job = jobs[job_id]
    return DirectorStatusResponse(
        job_id=job_id,
        status=job["status"],
        event=job.get("event"),
        error=job.get("error"),
    )
