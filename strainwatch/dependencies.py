"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, Request

from strainwatch.config import Settings, get_settings
from strainwatch.credentials.vault import TokenVault
from strainwatch.polling.collector import StrainCollector
from strainwatch.polling.scheduler import PollScheduler
from strainwatch.services.sink import AnalyticsSink
from strainwatch.streaming.hub import BroadcastHub
from strainwatch.whoop.client import WhoopClient


@dataclass
class Services:
    """Long-lived collaborators built once per process in the app lifespan."""

    vault: TokenVault
    whoop: WhoopClient
    sink: AnalyticsSink
    hub: BroadcastHub
    collector: StrainCollector
    scheduler: PollScheduler
    http_client: httpx.AsyncClient | None = None


def get_services(request: Request) -> Services:
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


# Annotated shortcuts for route signatures
AppServices = Annotated[Services, Depends(get_services)]
AppSettings = Annotated[Settings, Depends(get_settings)]
