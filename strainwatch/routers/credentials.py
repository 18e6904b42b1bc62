"""Credential registration and disconnect.

The OAuth handshake itself happens elsewhere; it hands the resulting token
pair to ``PUT /users/{user_id}/credentials``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Response

from strainwatch.credentials.models import Credential, now_ms
from strainwatch.dependencies import AppServices
from strainwatch.errors import StrainwatchError
from strainwatch.models.users import CredentialCreate, CredentialRead

router = APIRouter(prefix="/users/{user_id}/credentials", tags=["credentials"])
logger = logging.getLogger("strainwatch.routers.credentials")


def _read_model(credential: Credential) -> CredentialRead:
    return CredentialRead(
        user_id=credential.user_id,
        expires_at=credential.expires_at,
        expired=credential.is_expired(),
        polling_enabled=credential.polling_enabled,
        updated_at=credential.updated_at,
        refreshed_at=credential.refreshed_at,
    )


@router.get("", response_model=CredentialRead)
async def get_credential(user_id: str, services: AppServices) -> Any:
    credential = await services.vault.get_raw(user_id)
    if credential is None:
        raise HTTPException(status_code=404, detail="No credential stored")
    return _read_model(credential)


@router.put("", response_model=CredentialRead)
async def store_credential(user_id: str, body: CredentialCreate, services: AppServices) -> Any:
    expires_at = body.expires_at
    if body.expires_in is not None:
        expires_at = now_ms() + body.expires_in * 1000

    credential = await services.vault.set(
        user_id,
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        expires_at=expires_at,
        polling_enabled=body.polling_enabled,
    )
    logger.info("Credential stored for user %s", user_id)
    if credential.polling_enabled:
        services.scheduler.start_user_polling(user_id)
    else:
        services.scheduler.stop_user_polling(user_id)
    return _read_model(credential)


@router.delete("", status_code=204)
async def disconnect(user_id: str, services: AppServices) -> Response:
    """Stop polling, revoke WHOOP access, and forget the credential.

    Revocation reads the raw record: refreshing a token only to revoke it
    would be a pointless round trip, and may fail for a dead grant.
    """
    services.scheduler.stop_user_polling(user_id)

    credential = await services.vault.get_raw(user_id)
    if credential is None:
        raise HTTPException(status_code=404, detail="No credential stored")

    try:
        await services.whoop.revoke_access(credential.access_token)
    except StrainwatchError as exc:
        logger.warning("WHOOP revoke failed for user %s: %s", user_id, exc)

    await services.vault.delete(user_id)
    logger.info("User %s disconnected", user_id)
    return Response(status_code=204)
