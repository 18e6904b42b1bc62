"""WHOOP webhook handler.

WHOOP notifies us when a workout, sleep or recovery is created, updated or
deleted.  For updates we fetch the full object with the user's vault token
and forward it to the analytics sink; for deletions we forward a deletion
record.  Unknown event types are acknowledged and ignored.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Header, HTTPException, Request

from strainwatch.dependencies import AppServices, AppSettings
from strainwatch.errors import AuthError, StrainwatchError, UpstreamError
from strainwatch.whoop.signature import verify_signature

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger("strainwatch.webhooks")

# event type -> (sink category, WhoopClient fetch method)
_UPDATE_EVENTS: dict[str, tuple[str, str]] = {
    "workout.updated": ("workout", "fetch_workout"),
    "sleep.updated": ("sleep", "fetch_sleep"),
    "recovery.updated": ("recovery", "fetch_recovery"),
}
# event type -> (sink category, id field of the deletion record)
_DELETE_EVENTS: dict[str, tuple[str, str]] = {
    "workout.deleted": ("workout_deleted", "workout_id"),
    "sleep.deleted": ("sleep_deleted", "sleep_id"),
    "recovery.deleted": ("recovery_deleted", "cycle_id"),
}


@router.post("/whoop")
async def whoop_webhook(
    request: Request,
    services: AppServices,
    settings: AppSettings,
    signature: str | None = Header(default=None, alias="X-WHOOP-Signature"),
    timestamp: str | None = Header(default=None, alias="X-WHOOP-Signature-Timestamp"),
) -> dict:
    body = await request.body()
    if not verify_signature(timestamp, body, signature, settings.whoop_client_secret):
        logger.warning("Rejected WHOOP webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not JSON")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Body is not a JSON object")

    event_type: str = event.get("type", "")
    user_id = str(event.get("user_id", ""))
    object_id = str(event.get("id", ""))
    received_at = datetime.now(timezone.utc).isoformat()

    if event_type in _UPDATE_EVENTS:
        category, fetch_name = _UPDATE_EVENTS[event_type]
        try:
            credential = await services.vault.get(user_id)
            data = await getattr(services.whoop, fetch_name)(object_id, credential.access_token)
            await services.sink.forward(
                category, {**data, "user_id": user_id, "webhook_received_at": received_at}
            )
        except AuthError as exc:
            logger.warning("Cannot process %s for user %s: %s", event_type, user_id, exc)
            raise HTTPException(status_code=401, detail="Not authenticated")
        except UpstreamError as exc:
            if exc.status_code != 404:
                logger.error("Failed to process %s %s for user %s: %s", event_type, object_id, user_id, exc)
                raise HTTPException(status_code=500, detail=f"Failed to process {event_type}")
            # object deleted on WHOOP before the lookup
            logger.info("Skipping %s %s for user %s: no longer on WHOOP", event_type, object_id, user_id)
            return {"message": f"{event_type} object not found"}
        except StrainwatchError as exc:
            logger.error("Failed to process %s %s for user %s: %s", event_type, object_id, user_id, exc)
            raise HTTPException(status_code=500, detail=f"Failed to process {event_type}")
        logger.info("Processed %s %s for user %s", event_type, object_id, user_id)
        return {"message": f"{event_type} processed"}

    if event_type in _DELETE_EVENTS:
        category, id_field = _DELETE_EVENTS[event_type]
        try:
            await services.sink.forward(
                category, {id_field: object_id, "user_id": user_id, "deleted_at": received_at}
            )
        except StrainwatchError as exc:
            logger.error("Failed to forward %s %s for user %s: %s", event_type, object_id, user_id, exc)
            raise HTTPException(status_code=500, detail=f"Failed to process {event_type}")
        logger.info("Processed %s %s for user %s", event_type, object_id, user_id)
        return {"message": f"{event_type} processed"}

    logger.info("Received WHOOP webhook of type %s for user %s", event_type, user_id)
    return {"message": "Webhook received"}
