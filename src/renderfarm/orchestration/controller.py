"""
Render farm controller

Composes capacity planning, pool lifecycle, job orchestration and action
dispatch over one backend, and runs the coordinated pool -> job -> tasks flow.
"""

import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from .capacity import CapacityPlanner
from .jobs import JobOrchestrator
from .pools import PoolLifecycleManager
from ..backend.contracts import ResourceClient
from ..core.config import RenderFarmConfig
from ..core.errors import RenderFarmError
from ..core.models import AllocationState
from ..core.polling import Timeout
from ..dispatch.batch import ActionBatchDispatcher, MessageChannel

logger = logging.getLogger(__name__)


class ProvisioningResult(BaseModel):
    """Outcome of a coordinated provisioning flow"""
    pool_id: str
    job_id: Optional[str] = None
    stage: str
    success: bool = False
    turn_server_ips: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None


class RenderFarmController:
    """Facade over the four orchestration components"""

    def __init__(
        self,
        backend: ResourceClient,
        channel: Optional[MessageChannel] = None,
        config: Optional[RenderFarmConfig] = None
    ):
        self.config = config or RenderFarmConfig()
        self.backend = backend
        self.planner = CapacityPlanner(backend, self.config)
        self.pools = PoolLifecycleManager(backend, self.config)
        self.jobs = JobOrchestrator(backend, self.config)
        self.dispatcher = ActionBatchDispatcher(channel) if channel else None

    async def provision_turn_pool(
        self,
        pool_id: str,
        dedicated_nodes: Optional[int] = None,
        timeout: Optional[Timeout] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> ProvisioningResult:
        """Create (or reuse) a TURN pool, size it and return its trusted IPs once steady"""
        timeout = self.config.pool_timeout if timeout is None else timeout
        result = ProvisioningResult(pool_id=pool_id, stage="create_pool")

        try:
            pool = await self.pools.create_turn_pool(pool_id, dedicated_nodes)
            if dedicated_nodes is not None and pool.target_dedicated_nodes != dedicated_nodes:
                result.stage = "resize_pool"
                await self.pools.resize_pool(pool_id, dedicated_nodes)

            result.stage = "await_pool"
            if not await self.pools.await_desired_pool_state(pool_id, AllocationState.STEADY, timeout, cancel_event):
                result.error = f"TURN pool {pool_id} did not become steady in time"
                return result

            result.turn_server_ips = await self.pools.turn_server_ips(pool_id)
        except RenderFarmError as e:
            logger.error(f"TURN pool provisioning failed at {result.stage}: {e}")
            result.error = e.message
            result.error_code = e.code.value
            return result

        result.stage = "ready"
        result.success = bool(result.turn_server_ips)
        if not result.success:
            result.error = f"TURN pool {pool_id} has no usable nodes"
        return result

    async def configure_rendering_pool(
        self,
        pool_id: str,
        job_id: str,
        turn_server_ip: str,
        dedicated_nodes: Optional[int] = None,
        pool_timeout: Optional[Timeout] = None,
        task_timeout: Optional[Timeout] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> ProvisioningResult:
        """
        Provision a rendering pool and configure its nodes for a TURN server

        Stops at the first stage that fails or times out. Created resources are
        left in place; teardown() removes them idempotently.
        """
        pool_timeout = self.config.pool_timeout if pool_timeout is None else pool_timeout
        task_timeout = self.config.task_timeout if task_timeout is None else task_timeout
        result = ProvisioningResult(pool_id=pool_id, stage="create_pool")

        try:
            pool = await self.pools.create_rendering_pool(pool_id, dedicated_nodes)
            if dedicated_nodes is not None and pool.target_dedicated_nodes != dedicated_nodes:
                result.stage = "resize_pool"
                await self.pools.resize_pool(pool_id, dedicated_nodes)

            result.stage = "await_pool"
            steady = await self.pools.await_desired_pool_state(
                pool_id, AllocationState.STEADY, pool_timeout, cancel_event
            )
            if not steady:
                result.error = f"Rendering pool {pool_id} did not become steady in time"
                return result

            result.stage = "create_job"
            result.job_id = await self.jobs.create_job(job_id, pool_id)

            result.stage = "add_tasks"
            await self.jobs.add_rendering_tasks(turn_server_ip, job_id)

            result.stage = "monitor_tasks"
            if not await self.jobs.monitor_tasks(job_id, task_timeout, cancel_event):
                result.error = f"Configuration tasks of job {job_id} did not all succeed"
                return result
        except RenderFarmError as e:
            logger.error(f"Rendering pool provisioning failed at {result.stage}: {e}")
            result.error = e.message
            result.error_code = e.code.value
            return result

        result.stage = "ready"
        result.success = True
        logger.info(f"Rendering pool {pool_id} configured for TURN server {turn_server_ip}")
        return result

    async def teardown(self, pool_id: str, job_id: Optional[str] = None) -> None:
        """Delete the job (if any) and then the pool; absent resources are skipped"""
        if job_id:
            await self.jobs.delete_job(job_id)
        await self.pools.delete_pool(pool_id)
