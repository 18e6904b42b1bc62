"""Enable, disable and inspect background strain polling for a user.

The enabled flag is persisted on the credential so the schedule is resumed
at the next process start.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from strainwatch.dependencies import AppServices, Services
from strainwatch.errors import CredentialNotFound
from strainwatch.models.users import PollingStatus

router = APIRouter(prefix="/users/{user_id}/polling", tags=["polling"])


def _status(services: Services, user_id: str, enabled: bool) -> PollingStatus:
    entry = services.scheduler.entry(user_id)
    return PollingStatus(
        user_id=user_id,
        enabled=enabled,
        active=entry is not None,
        interval_seconds=services.scheduler.interval_seconds,
        cycles=entry.cycles if entry else 0,
        started_at=entry.started_at if entry else None,
        last_sample_at=entry.last_sample_at if entry else None,
        last_error=entry.last_error if entry else None,
    )


@router.get("", response_model=PollingStatus)
async def polling_status(user_id: str, services: AppServices) -> Any:
    credential = await services.vault.get_raw(user_id)
    return _status(services, user_id, bool(credential and credential.polling_enabled))


@router.post("", response_model=PollingStatus)
async def enable_polling(user_id: str, services: AppServices) -> Any:
    # CredentialNotFound surfaces as 401 through the app's exception handlers
    await services.vault.set(user_id, create=False, polling_enabled=True)
    services.scheduler.start_user_polling(user_id)
    return _status(services, user_id, True)


@router.delete("", response_model=PollingStatus)
async def disable_polling(user_id: str, services: AppServices) -> Any:
    services.scheduler.stop_user_polling(user_id)
    try:
        await services.vault.set(user_id, create=False, polling_enabled=False)
    except CredentialNotFound:
        pass
    return _status(services, user_id, False)
