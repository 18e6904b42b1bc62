"""Fixtures for HTTP-level tests: a full app wired to in-memory collaborators."""

from __future__ import annotations

import json
import os
from typing import Iterator

# Settings are read when strainwatch.main is imported
os.environ["WHOOP_CLIENT_ID"] = "test-client-id"
os.environ["WHOOP_CLIENT_SECRET"] = "test-client-secret"
os.environ["VAULT_SECRET"] = "test-vault-secret"
os.environ["CREDENTIAL_BACKEND"] = "memory"
os.environ["SINK_URI"] = ""

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from strainwatch.credentials import CredentialCipher, MemoryCredentialStore, TokenVault
from strainwatch.dependencies import Services
from strainwatch.main import create_app
from strainwatch.polling import PollScheduler, StrainCollector
from strainwatch.services.sink import AnalyticsSink
from strainwatch.streaming import BroadcastHub
from strainwatch.whoop import WhoopClient

CLIENT_SECRET = "test-client-secret"
USER_ID = "10129"
SINK_URI = "https://sink.test/records"

CYCLE = {
    "id": 93845,
    "user_id": 10129,
    "start": "2026-10-18T06:25:14.059Z",
    "end": None,
    "score_state": "SCORED",
    "score": {
        "strain": 11.8,
        "kilojoule": 8288.297,
        "average_heart_rate": 68,
        "max_heart_rate": 141,
    },
}


class FakeWhoopApi:
    """Mock transport handler standing in for api.prod.whoop.com."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.cycles: list[dict] = [CYCLE]
        self.token_status = 200
        self.token_body: dict = {
            "access_token": "at-refreshed",
            "refresh_token": "rt-refreshed",
            "expires_in": 3600,
        }

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/oauth/oauth2/token":
            return httpx.Response(self.token_status, json=self.token_body)
        if path == "/developer/v1/cycle":
            return httpx.Response(200, json={"records": self.cycles, "next_token": None})
        if path == "/developer/v1/user/profile/basic":
            return httpx.Response(
                200, json={"user_id": 10129, "email": "jo@example.com", "first_name": "Jo", "last_name": "Doe"}
            )
        if path == "/developer/v1/user/measurement/body":
            return httpx.Response(
                200, json={"height_meter": 1.8, "weight_kilogram": 80.0, "max_heart_rate": 190}
            )
        if path.startswith("/developer/v1/activity/workout/"):
            return httpx.Response(200, json={"id": path.rsplit("/", 1)[-1], "sport_id": 1})
        if path == "/developer/v1/user/access":
            return httpx.Response(204)
        return httpx.Response(404)


class FakeSinkApi:
    def __init__(self) -> None:
        self.records: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.records.extend(json.loads(request.content)["records"])
        return httpx.Response(200)


@pytest.fixture
def whoop_api() -> FakeWhoopApi:
    return FakeWhoopApi()


@pytest.fixture
def sink_api() -> FakeSinkApi:
    return FakeSinkApi()


@pytest.fixture
def services(whoop_api: FakeWhoopApi, sink_api: FakeSinkApi) -> Services:
    whoop = WhoopClient(
        "test-client-id",
        CLIENT_SECRET,
        api_base="https://whoop.test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(whoop_api)),
    )
    vault = TokenVault(MemoryCredentialStore(), CredentialCipher(key=bytes(range(32))), whoop)
    sink = AnalyticsSink(
        SINK_URI,
        "sink-token",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(sink_api)),
    )
    hub = BroadcastHub()
    collector = StrainCollector(vault, whoop)
    scheduler = PollScheduler(collector, sink, hub, interval_seconds=3600)
    return Services(
        vault=vault, whoop=whoop, sink=sink, hub=hub, collector=collector, scheduler=scheduler
    )


@pytest.fixture
def app(services: Services) -> FastAPI:
    return create_app(services)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
