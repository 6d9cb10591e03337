"""
Job and task orchestration

A job is bound to one steady pool; one configuration task per usable node
points the node at the TURN server. Monitoring waits for every task and
succeeds only if all of them exited with 0.
"""

import asyncio
import ipaddress
import logging
from typing import Dict, List, Optional

from ..backend.contracts import ResourceClient, backend_call
from ..core.config import RenderFarmConfig
from ..core.errors import JobCreationError, JobNotFoundError, TaskCreationError
from ..core.models import Job, JobPhase, RenderTask, TaskSpec
from ..core.polling import Timeout, wait_until

logger = logging.getLogger(__name__)


class JobOrchestrator:
    """Job lifecycle: created -> tasks added -> monitoring -> completed | partially failed | timed out"""

    def __init__(self, backend: ResourceClient, config: Optional[RenderFarmConfig] = None):
        self.backend = backend
        self.config = config or RenderFarmConfig()
        self.phases: Dict[str, JobPhase] = {}

    def phase(self, job_id: str) -> Optional[JobPhase]:
        return self.phases.get(job_id)

    async def _find_job(self, job_id: str) -> Optional[Job]:
        return await backend_call("get_job", self.backend.get_job(job_id), job_id=job_id)

    async def create_job(self, job_id: str, pool_id: str) -> str:
        """Create a job bound to a steady pool and return its id"""
        pool = await backend_call("get_pool", self.backend.get_pool(pool_id), pool_id=pool_id)
        if pool is None:
            raise JobCreationError(
                f"Cannot create job {job_id}: pool {pool_id} does not exist",
                data={"job_id": job_id, "pool_id": pool_id}
            )
        if not pool.is_steady:
            raise JobCreationError(
                f"Cannot create job {job_id}: pool {pool_id} is {pool.allocation_state.value}, not steady",
                data={"job_id": job_id, "pool_id": pool_id}
            )

        existing = await self._find_job(job_id)
        if existing is not None:
            if existing.pool_id == pool_id:
                logger.info(f"Job {job_id} already exists on pool {pool_id}, reusing it")
                self.phases.setdefault(job_id, JobPhase.CREATED)
                return existing.id
            raise JobCreationError(
                f"Job {job_id} already exists on pool {existing.pool_id}",
                data={"job_id": job_id, "pool_id": pool_id, "existing_pool_id": existing.pool_id}
            )

        try:
            job = await self.backend.create_job(job_id, pool_id)
        except Exception as e:
            logger.error(f"Backend rejected creation of job {job_id}: {e}")
            raise JobCreationError(
                f"Backend rejected creation of job {job_id}: {e}",
                data={"job_id": job_id, "pool_id": pool_id},
                cause=e
            ) from e

        self.phases[job.id] = JobPhase.CREATED
        logger.info(f"Created job {job.id} on pool {pool_id}")
        return job.id

    def _build_command(self, turn_server_ip: str) -> str:
        return self.config.rendering_task_command.format(
            script=self.config.rendering_task_script,
            turn_server_ip=turn_server_ip,
            signaling_server_url=self.config.signaling_server_url
        )

    async def add_rendering_tasks(self, turn_server_ip: str, job_id: str) -> bool:
        """Enqueue one configuration task per usable node of the job's pool"""
        try:
            ipaddress.ip_address(turn_server_ip)
        except ValueError as e:
            raise TaskCreationError(
                f"Invalid TURN server IP {turn_server_ip!r}",
                data={"job_id": job_id},
                cause=e
            ) from e

        job = await self._find_job(job_id)
        if job is None:
            raise TaskCreationError(f"Job {job_id} does not exist", data={"job_id": job_id})

        nodes = await backend_call("list_nodes", self.backend.list_nodes(job.pool_id), pool_id=job.pool_id)
        usable = [node for node in nodes if node.state.is_usable]
        skipped = len(nodes) - len(usable)
        if skipped:
            logger.warning(f"Skipping {skipped} node(s) of pool {job.pool_id} that are not idle or running")
        if not usable:
            raise TaskCreationError(
                f"Pool {job.pool_id} has no available nodes for job {job_id}",
                data={"job_id": job_id, "pool_id": job.pool_id}
            )

        command_line = self._build_command(turn_server_ip)
        specs = [
            TaskSpec(task_id=f"{job_id}-{node.id}", command_line=command_line, node_id=node.id)
            for node in usable
        ]

        try:
            await self.backend.add_tasks(job_id, specs)
        except Exception as e:
            logger.error(f"Backend rejected tasks for job {job_id}: {e}")
            raise TaskCreationError(
                f"Backend rejected tasks for job {job_id}: {e}",
                data={"job_id": job_id, "task_count": len(specs)},
                cause=e
            ) from e

        self.phases[job_id] = JobPhase.TASKS_ADDED
        logger.info(f"Added {len(specs)} rendering task(s) to job {job_id} (TURN server {turn_server_ip})")
        return True

    async def monitor_tasks(
        self,
        job_id: str,
        timeout: Timeout,
        cancel_event: Optional[asyncio.Event] = None
    ) -> bool:
        """
        Wait for every task in the job to complete

        Returns True only if all tasks completed with exit code 0 within the
        timeout. A failed task does not stop monitoring; the remaining tasks
        are still awaited and the aggregate result is False.
        """
        if await self._find_job(job_id) is None:
            raise JobNotFoundError(job_id)

        self.phases[job_id] = JobPhase.MONITORING
        latest: List[RenderTask] = []
        reported = set()

        async def all_completed() -> bool:
            nonlocal latest
            latest = await backend_call("list_tasks", self.backend.list_tasks(job_id), job_id=job_id)
            for task in latest:
                if task.is_completed and not task.succeeded and task.id not in reported:
                    reported.add(task.id)
                    logger.warning(f"Task {task.id} of job {job_id} exited with code {task.exit_code}")
            return all(task.is_completed for task in latest)

        finished = await wait_until(
            all_completed,
            timeout,
            self.config.poll_interval,
            cancel_event=cancel_event,
            description=f"tasks of job {job_id} to complete"
        )

        if not finished:
            cancelled = cancel_event is not None and cancel_event.is_set()
            self.phases[job_id] = JobPhase.CANCELLED if cancelled else JobPhase.TIMED_OUT
            return False

        if not latest:
            logger.warning(f"Job {job_id} has no tasks to monitor")
            self.phases[job_id] = JobPhase.PARTIALLY_FAILED
            return False

        failed = [task.id for task in latest if not task.succeeded]
        if failed:
            logger.error(f"{len(failed)} of {len(latest)} task(s) of job {job_id} failed")
            self.phases[job_id] = JobPhase.PARTIALLY_FAILED
            return False

        self.phases[job_id] = JobPhase.COMPLETED
        logger.info(f"All {len(latest)} task(s) of job {job_id} completed successfully")
        return True

    async def delete_job(self, job_id: str) -> bool:
        """Delete the job and its tasks; unknown ids are a no-op returning False"""
        deleted = await backend_call("delete_job", self.backend.delete_job(job_id), job_id=job_id)
        self.phases.pop(job_id, None)
        if deleted:
            logger.info(f"Deleted job {job_id}")
        else:
            logger.debug(f"Job {job_id} already absent")
        return deleted
