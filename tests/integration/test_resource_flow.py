"""
Integration tests for the resource access layer against an in-memory API.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest
from pydantic import BaseModel

from resource_access import (
    AsyncFetch,
    CrudMessages,
    ServiceRegistry,
    create_access_layer,
)
from resource_access.app.validation import model_validator
from shared.config import ServiceConfig
from shared.errors import AuthenticationError, ServiceError, ValidationError


class PrintJob(BaseModel):
    id: int
    name: str
    copies: int = 1
    status: str = "queued"


class PrintJobCreate(BaseModel):
    name: str
    copies: int = 1


class PrintJobUpdate(BaseModel):
    name: Optional[str] = None
    copies: Optional[int] = None
    status: Optional[str] = None


class FakePrintJobsApi:
    """Stateful stand-in for the dashboard's jobs endpoints."""

    def __init__(self):
        self.jobs: Dict[int, Dict[str, Any]] = {}
        self.next_id = 1
        self.requests: List[httpx.Request] = []
        self.valid_token = "operator-token"

    def _ok(self, data: Any, status_code: int = 200) -> httpx.Response:
        return httpx.Response(status_code, json={"success": True, "data": data})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401, json={"message": "Session expired"})

        parts = request.url.path.strip("/").split("/")[1:]
        if parts == ["jobs"] and request.method == "GET":
            jobs = list(self.jobs.values())
            status = request.url.params.get("status")
            if status:
                jobs = [job for job in jobs if job["status"] == status]
            return self._ok({"items": jobs, "total": len(jobs)})

        if parts == ["jobs"] and request.method == "POST":
            payload = json.loads(request.content)
            job = {"id": self.next_id, "status": "queued", "copies": 1, **payload}
            self.jobs[job["id"]] = job
            self.next_id += 1
            return self._ok(job, status_code=201)

        if len(parts) == 2 and parts[0] == "jobs":
            job_id = int(parts[1])
            if job_id not in self.jobs:
                return httpx.Response(404, json={"message": f"Job {job_id} not found"})
            if request.method == "GET":
                return self._ok(self.jobs[job_id])
            if request.method == "PUT":
                self.jobs[job_id].update(json.loads(request.content))
                return self._ok(self.jobs[job_id])
            if request.method == "DELETE":
                del self.jobs[job_id]
                return httpx.Response(204)

        return httpx.Response(404, json={"message": "Not found"})

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)


class RecordingNotifier:

    def __init__(self):
        self.messages: List[str] = []

    def success(self, title: str, description: str) -> None:
        self.messages.append(description)

    def error(self, title: str, description: str) -> None:
        self.messages.append(f"error: {description}")


class TestResourceFlow:
    """End-to-end flows through the access layer."""

    @pytest.fixture
    def api(self):
        return FakePrintJobsApi()

    @pytest.fixture
    def logged_out(self):
        return []

    @pytest.fixture
    def layer(self, api, logged_out):
        config = ServiceConfig(api_base_url="http://printops.test/api", retry_base_delay=0.0)
        layer = create_access_layer(
            config=config,
            registry=ServiceRegistry(),
            on_unauthenticated=lambda: logged_out.append(True),
            transport=httpx.MockTransport(api)
        )
        layer.transport.auth_store.set_auth_data(api.valid_token, {"id": 3, "name": "Operator"})
        return layer

    @pytest.fixture
    def notifier(self):
        return RecordingNotifier()

    @pytest.fixture
    def jobs(self, layer, notifier):
        return layer.crud(
            "jobs",
            entity_model=PrintJob,
            notifier=notifier,
            validator=model_validator(PrintJobCreate),
            update_validator=model_validator(PrintJobUpdate),
            related_keys=["dashboard"],
            messages=CrudMessages(create_success="Job queued")
        )

    @pytest.mark.asyncio
    async def test_job_lifecycle(self, api, jobs, notifier):
        assert await jobs.list_items() == []

        created = await jobs.create({"name": "Spring catalogue", "copies": 500})
        assert created == PrintJob(id=1, name="Spring catalogue", copies=500)

        # seeded detail, no round trip
        assert await jobs.detail(1) == created
        assert api.count("GET", "/api/jobs/1") == 0

        items = await jobs.list_items()
        assert [item["name"] for item in items] == ["Spring catalogue"]
        assert api.count("GET", "/api/jobs") == 2

        updated = await jobs.update(1, PrintJobUpdate(status="printing"))
        assert updated.status == "printing"
        assert (await jobs.detail(1)).status == "printing"

        await jobs.delete(1)
        assert await jobs.list_items() == []
        assert notifier.messages == ["Job queued", "Updated successfully", "Deleted successfully"]

    @pytest.mark.asyncio
    async def test_invalid_payload_never_sent(self, api, jobs, notifier):
        with pytest.raises(ValidationError):
            await jobs.create({"copies": 2})

        assert api.count("POST", "/api/jobs") == 0
        assert notifier.messages[0].startswith("error:")

    @pytest.mark.asyncio
    async def test_missing_job_is_not_retried(self, api, jobs):
        with pytest.raises(ServiceError) as exc_info:
            await jobs.detail(99)

        assert exc_info.value.status == 404
        assert api.count("GET", "/api/jobs/99") == 1

    @pytest.mark.asyncio
    async def test_expired_session_logs_out(self, api, layer, jobs, logged_out):
        api.valid_token = "rotated"

        with pytest.raises(AuthenticationError):
            await jobs.list()

        assert logged_out == [True]
        assert not layer.transport.auth_store.is_authenticated()

    @pytest.mark.asyncio
    async def test_async_fetch_over_client(self, api, layer, jobs):
        await jobs.create({"name": "Poster"})
        client = layer.registry.get("jobs")

        async def queued_count(token):
            envelope = await client.find_many({"status": "queued"})
            return envelope.data["total"]

        async with AsyncFetch(queued_count, cache_key="dashboard:queued", retry_delay=0.0) as fetch:
            state = await fetch.load()

        assert state.data == 1

    @pytest.mark.asyncio
    async def test_registry_reports_clients(self, layer, jobs):
        await jobs.list()

        status = await layer.registry.get_health_status()
        metrics = layer.registry.get_all_metrics()

        assert status.status == "healthy"
        assert metrics["jobs"].request_count == 1
