"""
Tests for job and task orchestration
"""

import asyncio

import pytest

from renderfarm.backend.memory import InMemoryResourceClient
from renderfarm.core.errors import (
    BackendError,
    JobCreationError,
    JobNotFoundError,
    TaskCreationError,
)
from renderfarm.core.models import AllocationState, JobPhase, NodeState
from renderfarm.orchestration.jobs import JobOrchestrator
from renderfarm.orchestration.pools import PoolLifecycleManager


async def steady_rendering_pool(backend, config, pool_id="render-1", nodes=2):
    pools = PoolLifecycleManager(backend, config)
    await pools.create_rendering_pool(pool_id, dedicated_nodes=nodes)
    assert await pools.await_desired_pool_state(pool_id, AllocationState.STEADY, timeout=1.0)
    return pools


class TestJobCreation:

    @pytest.fixture
    def jobs(self, backend, config):
        return JobOrchestrator(backend, config)

    @pytest.mark.asyncio
    async def test_create_job_on_steady_pool(self, jobs, backend, config):
        await steady_rendering_pool(backend, config)

        job_id = await jobs.create_job("job-1", "render-1")

        assert job_id == "job-1"
        assert backend.jobs["job-1"].pool_id == "render-1"
        assert jobs.phase("job-1") == JobPhase.CREATED

    @pytest.mark.asyncio
    async def test_missing_pool_rejected(self, jobs):
        with pytest.raises(JobCreationError, match="does not exist"):
            await jobs.create_job("job-1", "ghost")

    @pytest.mark.asyncio
    async def test_resizing_pool_rejected(self, config):
        backend = InMemoryResourceClient(allocation_polls=None)
        jobs = JobOrchestrator(backend, config)
        await PoolLifecycleManager(backend, config).create_rendering_pool("render-1")

        with pytest.raises(JobCreationError, match="not steady"):
            await jobs.create_job("job-1", "render-1")
        assert "create_job" not in backend.calls

    @pytest.mark.asyncio
    async def test_same_job_on_same_pool_is_reused(self, jobs, backend, config):
        await steady_rendering_pool(backend, config)
        await jobs.create_job("job-1", "render-1")

        assert await jobs.create_job("job-1", "render-1") == "job-1"
        assert backend.calls.count("create_job") == 1

    @pytest.mark.asyncio
    async def test_same_job_on_other_pool_rejected(self, jobs, backend, config):
        await steady_rendering_pool(backend, config, "render-1")
        await steady_rendering_pool(backend, config, "render-2")
        await jobs.create_job("job-1", "render-1")

        with pytest.raises(JobCreationError) as exc_info:
            await jobs.create_job("job-1", "render-2")
        assert exc_info.value.data["existing_pool_id"] == "render-1"

    @pytest.mark.asyncio
    async def test_backend_rejection_wrapped(self, jobs, backend, config):
        await steady_rendering_pool(backend, config)
        backend.failures["create_job"] = BackendError("throttled")

        with pytest.raises(JobCreationError) as exc_info:
            await jobs.create_job("job-1", "render-1")
        assert isinstance(exc_info.value.cause, BackendError)


class TestRenderingTasks:

    @pytest.fixture
    def jobs(self, backend, config):
        return JobOrchestrator(backend, config)

    @pytest.mark.asyncio
    async def test_one_task_per_node(self, jobs, backend, config):
        await steady_rendering_pool(backend, config, nodes=3)
        await jobs.create_job("job-1", "render-1")

        assert await jobs.add_rendering_tasks("10.0.1.4", "job-1") is True

        tasks = backend.tasks["job-1"]
        assert len(tasks) == 3
        assert {task.node_id for task in tasks.values()} == set(backend.nodes["render-1"])
        assert jobs.phase("job-1") == JobPhase.TASKS_ADDED
        assert backend.jobs["job-1"].task_ids == list(tasks)

    @pytest.mark.asyncio
    async def test_command_line_carries_turn_server(self, jobs, backend, config):
        await steady_rendering_pool(backend, config, nodes=1)
        await jobs.create_job("job-1", "render-1")

        await jobs.add_rendering_tasks("10.0.1.4", "job-1")

        task = next(iter(backend.tasks["job-1"].values()))
        assert "-turnServerIp 10.0.1.4" in task.command_line
        assert config.rendering_task_script in task.command_line
        assert config.signaling_server_url in task.command_line

    @pytest.mark.asyncio
    async def test_unusable_nodes_skipped(self, jobs, backend, config):
        await steady_rendering_pool(backend, config, nodes=3)
        await jobs.create_job("job-1", "render-1")
        backend.nodes["render-1"]["tvm-render-1-0"].state = NodeState.UNUSABLE

        await jobs.add_rendering_tasks("10.0.1.4", "job-1")

        node_ids = {task.node_id for task in backend.tasks["job-1"].values()}
        assert node_ids == {"tvm-render-1-1", "tvm-render-1-2"}

    @pytest.mark.asyncio
    async def test_no_available_nodes(self, jobs, backend, config):
        await steady_rendering_pool(backend, config, nodes=0)
        await jobs.create_job("job-1", "render-1")

        with pytest.raises(TaskCreationError, match="no available nodes"):
            await jobs.add_rendering_tasks("10.0.1.4", "job-1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("address", ["", "turn.example.com", "300.1.1.1"])
    async def test_invalid_turn_server_ip(self, jobs, backend, config, address):
        await steady_rendering_pool(backend, config)
        await jobs.create_job("job-1", "render-1")

        with pytest.raises(TaskCreationError):
            await jobs.add_rendering_tasks(address, "job-1")
        assert backend.tasks["job-1"] == {}

    @pytest.mark.asyncio
    async def test_unknown_job(self, jobs):
        with pytest.raises(TaskCreationError, match="does not exist"):
            await jobs.add_rendering_tasks("10.0.1.4", "ghost")

    @pytest.mark.asyncio
    async def test_backend_rejection_wrapped(self, jobs, backend, config):
        await steady_rendering_pool(backend, config)
        await jobs.create_job("job-1", "render-1")
        backend.failures["add_tasks"] = BackendError("too many tasks")

        with pytest.raises(TaskCreationError) as exc_info:
            await jobs.add_rendering_tasks("10.0.1.4", "job-1")
        assert exc_info.value.data["task_count"] == 2


class TestMonitorTasks:

    async def prepared_job(self, backend, config, nodes=2):
        await steady_rendering_pool(backend, config, nodes=nodes)
        jobs = JobOrchestrator(backend, config)
        await jobs.create_job("job-1", "render-1")
        if nodes:
            await jobs.add_rendering_tasks("10.0.1.4", "job-1")
        return jobs

    @pytest.mark.asyncio
    async def test_all_tasks_succeed(self, backend, config):
        jobs = await self.prepared_job(backend, config)

        assert await jobs.monitor_tasks("job-1", timeout=1.0) is True
        assert jobs.phase("job-1") == JobPhase.COMPLETED

    @pytest.mark.asyncio
    async def test_one_failed_task_fails_job(self, backend, config):
        jobs = await self.prepared_job(backend, config, nodes=3)
        backend.exit_codes["tvm-render-1-1"] = 1

        assert await jobs.monitor_tasks("job-1", timeout=1.0) is False
        assert jobs.phase("job-1") == JobPhase.PARTIALLY_FAILED

    @pytest.mark.asyncio
    async def test_failed_task_does_not_stop_monitoring(self, backend, config):
        jobs = await self.prepared_job(backend, config, nodes=2)
        backend.exit_codes["tvm-render-1-0"] = 3

        await jobs.monitor_tasks("job-1", timeout=1.0)

        tasks = backend.tasks["job-1"]
        assert all(task.is_completed for task in tasks.values())

    @pytest.mark.asyncio
    async def test_stalled_task_times_out(self, backend, config):
        jobs = await self.prepared_job(backend, config)
        backend.stalled_nodes.add("tvm-render-1-1")

        assert await jobs.monitor_tasks("job-1", timeout=0.1) is False
        assert jobs.phase("job-1") == JobPhase.TIMED_OUT

    @pytest.mark.asyncio
    async def test_empty_job_is_not_success(self, backend, config):
        jobs = await self.prepared_job(backend, config, nodes=0)

        assert await jobs.monitor_tasks("job-1", timeout=1.0) is False
        assert jobs.phase("job-1") == JobPhase.PARTIALLY_FAILED

    @pytest.mark.asyncio
    async def test_cancellation(self, backend, config):
        jobs = await self.prepared_job(backend, config)
        backend.stalled_nodes.update(backend.nodes["render-1"])
        cancel = asyncio.Event()

        async def cancel_soon():
            await asyncio.sleep(0.05)
            cancel.set()

        canceller = asyncio.create_task(cancel_soon())
        result = await jobs.monitor_tasks("job-1", timeout=5.0, cancel_event=cancel)
        await canceller

        assert result is False
        assert jobs.phase("job-1") == JobPhase.CANCELLED

    @pytest.mark.asyncio
    async def test_unknown_job(self, backend, config):
        jobs = JobOrchestrator(backend, config)

        with pytest.raises(JobNotFoundError):
            await jobs.monitor_tasks("ghost", timeout=1.0)

    @pytest.mark.asyncio
    async def test_task_listing_failure_wrapped(self, backend, config):
        jobs = await self.prepared_job(backend, config)
        backend.failures["list_tasks"] = ConnectionError("batch endpoint reset")

        with pytest.raises(BackendError) as exc_info:
            await jobs.monitor_tasks("job-1", timeout=1.0)

        assert isinstance(exc_info.value.cause, ConnectionError)
        assert exc_info.value.data == {"operation": "list_tasks", "job_id": "job-1"}


class TestJobDeletion:

    @pytest.mark.asyncio
    async def test_delete_job_and_tasks(self, backend, config):
        await steady_rendering_pool(backend, config)
        jobs = JobOrchestrator(backend, config)
        await jobs.create_job("job-1", "render-1")
        await jobs.add_rendering_tasks("10.0.1.4", "job-1")

        assert await jobs.delete_job("job-1") is True
        assert "job-1" not in backend.jobs
        assert "job-1" not in backend.tasks
        assert jobs.phase("job-1") is None

    @pytest.mark.asyncio
    async def test_delete_unknown_job_is_noop(self, backend, config):
        jobs = JobOrchestrator(backend, config)

        assert await jobs.delete_job("ghost") is False
