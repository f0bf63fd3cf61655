import uuid
from datetime import datetime, timezone

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient

from app.clients.batch_lookup import DeviceClient, UserClient
from app.config.settings import Settings
from app.main import create_app
from app.storage.energy_store import EnergyUsageStore

DEVICE_SERVICE_URL = "http://devices.test/api/v1/devices"
USER_SERVICE_URL = "http://users.test/api/v1/users"

# 2026-03-01 12:00:00 UTC, an exact hour boundary
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeDirectory:
    """Serves the device and user batch endpoints from in-memory tables."""

    def __init__(self):
        self.devices: dict[str, str] = {}
        self.users: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.fail_devices = False
        self.fail_users = False

    def add_device(self, device_id: str, owner_id: str):
        self.devices[device_id] = owner_id

    def add_user(
        self,
        user_id: str,
        threshold: float,
        alerting: bool = True,
        email: str = "owner@example.com",
    ):
        self.users[user_id] = {
            "id": user_id,
            "firstName": "Ada",
            "lastName": "Owner",
            "email": email,
            "alerting": alerting,
            "energyAlertingThreshold": threshold,
        }

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        raw_ids = request.url.params.get("ids", "")
        ids = [i for i in raw_ids.split(",") if i]

        if request.url.path.endswith("/devices/batch"):
            if self.fail_devices:
                raise httpx.ConnectError("device service unreachable", request=request)
            body = [
                {"id": i, "name": f"meter-{i}", "userId": self.devices[i]}
                for i in ids
                if i in self.devices
            ]
            return httpx.Response(200, json=body)

        if request.url.path.endswith("/users/batch"):
            if self.fail_users:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(200, json=[self.users[i] for i in ids if i in self.users])

        return httpx.Response(404)


@pytest.fixture
def redis_client():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())


@pytest.fixture
def energy_store(redis_client):
    return EnergyUsageStore(redis_client, retention_seconds=86400)


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def http_client(directory):
    return httpx.AsyncClient(transport=httpx.MockTransport(directory.handler))


@pytest.fixture
def device_client(http_client):
    return DeviceClient(DEVICE_SERVICE_URL, http_client, timeout_seconds=2)


@pytest.fixture
def user_client(http_client):
    return UserClient(USER_SERVICE_URL, http_client, timeout_seconds=2)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        device_service_url=DEVICE_SERVICE_URL,
        user_service_url=USER_SERVICE_URL,
        scheduler_enabled=False,
    )


@pytest.fixture
def client(settings, redis_client, http_client):
    app = create_app(settings, redis_client=redis_client, http_client=http_client)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def unique_id():
    return uuid.uuid4().hex[:8]
