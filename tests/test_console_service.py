"""Tests for the console workflow and the job registry."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from massive_action_api.core.errors import ValidationError
from massive_action_api.services.console import (
    INVALID_IDS,
    MISSING_ACTION_FIELDS,
    MISSING_SELECTION,
    SCHEMA_UNAVAILABLE,
    ConsoleService,
    DerivedForm,
)
from massive_action_api.services.job_registry import JobRegistry

from .conftest import OutboundRecorder


@pytest.fixture
def service(settings, outbound: OutboundRecorder) -> ConsoleService:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(outbound))
    return ConsoleService.from_settings(http_client, settings, headers={"Session-Token": "tok"})


class TestDeriveForm:
    """Tests for parameter form derivation."""

    @pytest.mark.asyncio
    async def test_fields_and_initial_values(self, service):
        form = await service.derive_form("Computer", [1, 2], "MassiveAction:update")
        assert form.error is None
        assert [field.name for field in form.fields] == ["value", "field"]
        assert form.values == {"field": "0", "value": ""}

    @pytest.mark.asyncio
    async def test_incomplete_selection_fetches_nothing(self, service, outbound):
        assert await service.derive_form("Computer", [], "MassiveAction:update") == DerivedForm()
        assert await service.derive_form("Computer", [1], None) == DerivedForm()
        assert outbound.requests == []

    @pytest.mark.asyncio
    async def test_unavailable_subform_disables_the_form(self, service, outbound):
        outbound.subform_status = 500
        form = await service.derive_form("Computer", [1], "MassiveAction:update")
        assert form.fields == []
        assert form.values == {}
        assert form.error == SCHEMA_UNAVAILABLE


class TestPrepareJob:
    """Tests for console-side validation and composition."""

    @pytest.mark.asyncio
    async def test_missing_selection(self, service):
        with pytest.raises(ValidationError, match=MISSING_SELECTION):
            service.prepare_job(None, [1], "MassiveAction:update", DerivedForm())
        with pytest.raises(ValidationError, match=MISSING_SELECTION):
            service.prepare_job("Computer", [], "MassiveAction:update", DerivedForm(), has_ids_input=False)

    @pytest.mark.asyncio
    async def test_no_valid_ids(self, service):
        with pytest.raises(ValidationError, match=INVALID_IDS):
            service.prepare_job("Computer", [], "MassiveAction:update", DerivedForm())

    @pytest.mark.asyncio
    async def test_required_action_fields(self, service):
        form = await service.derive_form("Computer", [1], "MassiveAction:update")
        with pytest.raises(ValidationError, match=MISSING_ACTION_FIELDS):
            service.prepare_job("Computer", [1], "MassiveAction:update", form, values={"field": "comment"})

    @pytest.mark.asyncio
    async def test_values_override_defaults(self, service):
        form = await service.derive_form("Computer", [1, 2, 3], "MassiveAction:update")
        job = service.prepare_job(
            "Computer",
            [1, 2, 3],
            "MassiveAction:update",
            form,
            values={"field": "comment", "value": "Audited"},
            batch_size=2,
        )
        assert job.action_data == {"field": "comment", "value": "Audited"}
        assert job.chunks == [[1, 2], [3]]

    @pytest.mark.asyncio
    async def test_run_forwards_the_session(self, service, outbound):
        form = await service.derive_form("Computer", [1, 2, 3], "MassiveAction:update")
        job = service.prepare_job(
            "Computer", [1, 2, 3], "MassiveAction:update", form,
            values={"field": "comment", "value": "x"}, batch_size=2,
        )
        await service.run(job, concurrency=2)

        assert job.ok == 3
        process_requests = [r for r in outbound.requests if r.url.path.endswith("/process_action")]
        assert len(process_requests) == 2
        assert all(r.headers["Session-Token"] == "tok" for r in process_requests)
        assert str(process_requests[0].url).startswith(
            "http://glpi.test/plugins/massive_action_api/api.php/process_action"
        )


class TestJobRegistry:
    """Tests for in-process job bookkeeping."""

    @pytest.mark.asyncio
    async def test_start_get_and_wait(self, service):
        registry = JobRegistry()
        form = await service.derive_form("Computer", [1], "MassiveAction:update")
        job = service.prepare_job(
            "Computer", [1], "MassiveAction:update", form, values={"field": "a", "value": "b"}
        )
        registry.start(job, service.run(job))

        assert registry.get(job.id) is job
        assert await registry.wait(job.id) is job
        assert job.status == "completed"
        assert registry.list() == [job]
        assert registry.list(status="running") == []

    @pytest.mark.asyncio
    async def test_cancel(self, service):
        registry = JobRegistry()
        job = service.engine.create_job("Computer", [1, 2], "MassiveAction:update")
        registry.start(job, service.run(job))
        assert registry.cancel(job.id) is job
        await registry.wait(job.id)
        assert job.status == "cancelled"
        assert registry.cancel("missing") is None

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_jobs(self):
        registry = JobRegistry()
        never = asyncio.Event()

        async def handler(request):
            await never.wait()
            return httpx.Response(200, json={})

        from massive_action_api.services.batch_engine import BatchEngine

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        engine = BatchEngine(client, "http://bridge.test/process_action")
        job = engine.create_job("Computer", [1], "MassiveAction:update")
        registry.start(job, engine.execute(job))
        await asyncio.sleep(0.01)

        await asyncio.wait_for(registry.shutdown(), timeout=2)
        assert job.status == "cancelled"

    @pytest.mark.asyncio
    async def test_finished_jobs_are_pruned(self, service):
        registry = JobRegistry(max_finished=1)
        jobs = []
        for _ in range(3):
            job = service.engine.create_job("Computer", [1], "MassiveAction:update")
            registry.start(job, service.run(job))
            await registry.wait(job.id)
            jobs.append(job)

        assert registry.get(jobs[0].id) is None
        assert registry.get(jobs[2].id) is jobs[2]
