"""On-demand strain, WHOOP profile data, and the live strain stream."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from strainwatch.dependencies import AppServices, AppSettings
from strainwatch.models.users import StrainRead
from strainwatch.streaming.sse import sample_stream

router = APIRouter(prefix="/users/{user_id}", tags=["strain"])


@router.get("/strain", response_model=StrainRead)
async def current_strain(user_id: str, services: AppServices) -> Any:
    """Take a sample right now; it is also forwarded and broadcast like a polled one.

    401 when not authenticated, 404 when WHOOP has no cycle yet, 502 when
    WHOOP is unreachable.
    """
    sample = await services.collector.collect(user_id)
    services.scheduler.deliver(sample)
    return sample.to_dict()


@router.get("/profile")
async def whoop_profile(user_id: str, services: AppServices) -> dict:
    credential = await services.vault.get(user_id)
    return await services.whoop.fetch_profile(credential.access_token)


@router.get("/body")
async def whoop_body_measurement(user_id: str, services: AppServices) -> dict:
    credential = await services.vault.get(user_id)
    return await services.whoop.fetch_body_measurement(credential.access_token)


@router.get("/strain/stream")
async def strain_stream(
    user_id: str, request: Request, services: AppServices, settings: AppSettings
) -> StreamingResponse:
    """Server-Sent Events stream of every sample published for the user."""
    if await services.vault.get_raw(user_id) is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    return StreamingResponse(
        sample_stream(
            services.hub,
            user_id,
            request.is_disconnected,
            heartbeat_seconds=settings.stream_heartbeat_seconds,
            retry_millis=settings.stream_retry_millis,
            queue_size=settings.stream_queue_size,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-store",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
