"""
Unit tests for the CRUD hook factory.
"""

import asyncio

import httpx
import pytest
from typing import Optional
from pydantic import BaseModel

from resource_access.app.adapters.models import CacheConfig, FormData
from resource_access.app.adapters.resource_client import ResourceClient
from resource_access.app.caching.query_cache import QueryCache, make_query_key
from resource_access.app.hooks.crud import CrudHooks, create_crud_hooks
from resource_access.app.hooks.notifications import CrudMessages
from resource_access.app.validation import Result, model_validator
from shared.errors import ServiceError, ValidationError

from conftest import envelope


class JobCreate(BaseModel):
    name: str
    copies: int = 1


class JobUpdate(BaseModel):
    name: Optional[str] = None


class TestCrudHooks:
    """Test cases for CrudHooks."""

    @pytest.fixture
    def query_cache(self, clock):
        return QueryCache(clock=clock)

    @pytest.fixture
    def hooks(self, transport, query_cache, notifier):
        return CrudHooks(
            "jobs",
            "/jobs",
            transport=transport,
            query_cache=query_cache,
            notifier=notifier,
            related_keys=["dashboard"],
            cache_config=CacheConfig(ttl=60.0)
        )

    def test_requires_client_or_transport(self):
        with pytest.raises(ValueError):
            CrudHooks("jobs", "/jobs")

    def test_uses_given_client(self, transport):
        client = ResourceClient("jobs", transport, base_path="/print-jobs")
        hooks = create_crud_hooks("jobs", "/ignored", client=client)

        assert hooks.client is client

    @pytest.mark.asyncio
    async def test_list_cached_in_query_cache(self, hooks, handler):
        handler.add("GET", "/api/jobs", envelope({"items": [{"id": 1}], "total": 1}))

        first = await hooks.list({"page": 1})
        items = await hooks.list_items({"page": 1})

        assert first == {"items": [{"id": 1}], "total": 1}
        assert items == [{"id": 1}]
        assert len(handler.calls("GET", "/api/jobs")) == 1

    @pytest.mark.asyncio
    async def test_items_extractor(self, transport, handler):
        hooks = CrudHooks("jobs", "/jobs", transport=transport, items_extractor=lambda data: data["rows"])
        handler.add("GET", "/api/jobs", envelope({"rows": [{"id": 2}]}))

        assert await hooks.list_items() == [{"id": 2}]

    def test_extract_items_shapes(self, hooks):
        assert hooks.extract_items(None) == []
        assert hooks.extract_items([{"id": 1}]) == [{"id": 1}]
        assert hooks.extract_items({"other": 1}) == []

    @pytest.mark.asyncio
    async def test_detail_disabled_or_missing_id(self, hooks, handler):
        assert await hooks.detail(5, enabled=False) is None
        assert await hooks.detail(None) is None
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_create_seeds_detail_and_refreshes_list(self, hooks, handler, notifier):
        lists = iter([envelope([{"id": 1}]), envelope([{"id": 1}, {"id": 2}])])
        handler.add("GET", "/api/jobs", lambda request: next(lists))
        handler.add("POST", "/api/jobs", envelope({"id": 2, "name": "Flyer"}, status_code=201))

        await hooks.list()
        created = await hooks.create(JobCreate(name="Flyer"))
        detail = await hooks.detail(2)
        refreshed = await hooks.list()

        assert created == {"id": 2, "name": "Flyer"}
        assert detail == created
        assert handler.calls("GET", "/api/jobs/2") == []
        assert refreshed == [{"id": 1}, {"id": 2}]
        assert len(handler.calls("GET", "/api/jobs")) == 2
        assert notifier.successes == [("Success", "Created successfully")]

    @pytest.mark.asyncio
    async def test_list_in_flight_during_create_is_refetched(self, hooks, handler):
        server_jobs = [{"id": 1}]
        started = asyncio.Event()
        release = asyncio.Event()

        async def list_jobs(request):
            snapshot = list(server_jobs)
            if not started.is_set():
                started.set()
                await release.wait()
            return envelope(snapshot)

        def create_job(request):
            server_jobs.append({"id": 2})
            return envelope({"id": 2}, status_code=201)

        handler.add("GET", "/api/jobs", list_jobs)
        handler.add("POST", "/api/jobs", create_job)

        pending = asyncio.create_task(hooks.list())
        await started.wait()
        await hooks.create(JobCreate(name="Flyer"))
        release.set()

        assert await pending == [{"id": 1}]
        assert await hooks.list() == [{"id": 1}, {"id": 2}]
        assert len(handler.calls("GET", "/api/jobs")) == 2

    @pytest.mark.asyncio
    async def test_mutating_a_result_leaves_client_cache_intact(self, hooks, handler):
        handler.add("GET", "/api/jobs", envelope([{"id": 1, "name": "Poster"}]))

        items = await hooks.list()
        items[0]["name"] = "Edited"
        items.append({"id": 99})
        cached = await hooks.client.find_many()

        assert cached.data == [{"id": 1, "name": "Poster"}]
        assert len(handler.calls("GET", "/api/jobs")) == 1

    @pytest.mark.asyncio
    async def test_update_replaces_detail(self, hooks, handler, query_cache):
        handler.add("GET", "/api/jobs/42", envelope({"id": 42, "name": "Old"}))
        handler.add("PUT", "/api/jobs/42", envelope({"id": 42, "name": "New"}))
        handler.add("GET", "/api/jobs", envelope([]))

        await hooks.list()
        assert (await hooks.detail(42))["name"] == "Old"

        await hooks.update(42, JobUpdate(name="New"))

        assert (await hooks.detail(42))["name"] == "New"
        assert len(handler.calls("GET", "/api/jobs/42")) == 1
        assert query_cache.peek(hooks.list_key()).stale is True

    @pytest.mark.asyncio
    async def test_mutation_marks_related_keys_stale(self, hooks, handler, query_cache):
        dashboard_key = make_query_key("dashboard", "summary", {})
        query_cache.set_data(dashboard_key, {"open_jobs": 1})
        handler.add("DELETE", "/api/jobs/3", httpx.Response(204))

        await hooks.delete(3)

        assert query_cache.peek(dashboard_key).stale is True

    @pytest.mark.asyncio
    async def test_delete_removes_detail(self, hooks, handler, query_cache, notifier):
        handler.add("GET", "/api/jobs/3", envelope({"id": 3}))
        handler.add("DELETE", "/api/jobs/3", httpx.Response(204))

        await hooks.detail(3)
        await hooks.delete(3)

        assert query_cache.peek(hooks.detail_key(3)) is None
        assert notifier.successes == [("Success", "Deleted successfully")]

    @pytest.mark.asyncio
    async def test_failed_mutation_notifies_and_raises(self, hooks, handler, notifier):
        handler.add("POST", "/api/jobs", httpx.Response(
            422,
            json={"message": "Invalid job", "errors": {"name": ["Name already used"]}}
        ))

        with pytest.raises(ServiceError):
            await hooks.create(JobCreate(name="Dup"))

        assert notifier.errors == [("Error", "Name already used")]
        assert notifier.successes == []

    @pytest.mark.asyncio
    async def test_validator_blocks_dispatch(self, transport, handler, notifier):
        hooks = CrudHooks(
            "jobs",
            "/jobs",
            transport=transport,
            notifier=notifier,
            validator=model_validator(JobCreate)
        )

        with pytest.raises(ValidationError) as exc_info:
            await hooks.create({"copies": "many"})

        assert set(exc_info.value.errors) == {"name", "copies"}
        assert handler.requests == []
        assert notifier.errors[0][0] == "Invalid data"

    @pytest.mark.asyncio
    async def test_update_uses_its_own_validator(self, transport, handler, notifier):
        hooks = CrudHooks(
            "jobs",
            "/jobs",
            transport=transport,
            notifier=notifier,
            validator=model_validator(JobCreate),
            update_validator=model_validator(JobUpdate)
        )
        handler.add("PUT", "/api/jobs/4", envelope({"id": 4, "name": "Renamed"}))

        updated = await hooks.update(4, {"name": "Renamed"})

        assert updated == {"id": 4, "name": "Renamed"}
        assert handler.json_body() == {"name": "Renamed"}

    @pytest.mark.asyncio
    async def test_validator_value_is_sent(self, transport, handler, notifier):
        hooks = CrudHooks(
            "jobs",
            "/jobs",
            transport=transport,
            notifier=notifier,
            validator=lambda data: Result.success({**data, "copies": 2})
        )
        handler.add("POST", "/api/jobs", envelope({"id": 1}))

        await hooks.create({"name": "Card"})

        assert handler.json_body() == {"name": "Card", "copies": 2}

    @pytest.mark.asyncio
    async def test_custom_messages(self, transport, handler, notifier):
        hooks = CrudHooks(
            "jobs",
            "/jobs",
            transport=transport,
            notifier=notifier,
            messages=CrudMessages(create_success="Job queued")
        )
        handler.add("POST", "/api/jobs", envelope({"id": 1}))

        await hooks.create({"name": "Card"})

        assert notifier.successes == [("Success", "Job queued")]

    @pytest.mark.asyncio
    async def test_upload_not_retried(self, hooks, handler, notifier):
        handler.add("POST", "/api/jobs/upload", httpx.Response(500))

        with pytest.raises(ServiceError):
            await hooks.upload(FormData(files={"file": ("jobs.csv", b"id\n")}))

        assert len(handler.calls("POST", "/api/jobs/upload")) == 1
        assert notifier.errors == [("Error", "Request failed with status 500")]

    @pytest.mark.asyncio
    async def test_upload_invalidates(self, hooks, handler, query_cache):
        handler.add("GET", "/api/jobs", envelope([]))
        handler.add("POST", "/api/jobs/import", envelope({"imported": 3}))

        await hooks.list()
        result = await hooks.upload(FormData(files={"file": ("jobs.csv", b"id\n")}), sub_path="/import")
        await hooks.list()

        assert result == {"imported": 3}
        assert len(handler.calls("GET", "/api/jobs")) == 2

    @pytest.mark.asyncio
    async def test_download(self, hooks, handler, notifier):
        handler.add("GET", "/api/jobs/download", httpx.Response(
            200,
            content=b"%PDF",
            headers={"Content-Disposition": "attachment; filename=jobs.pdf"}
        ))

        downloaded = await hooks.download()

        assert downloaded.filename == "jobs.pdf"
        assert downloaded.content == b"%PDF"
        assert notifier.successes == [("Success", "Downloaded successfully")]
