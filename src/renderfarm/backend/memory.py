"""
In-memory resource client

Simulates a batch backend that converges over successive status reads:
pools settle to steady after a number of reads, nodes start and then
receive an IP, and tasks run to completion with a per-node exit code.
Used for local dry runs and by the test-suite; supports failure injection.
"""

import itertools
import logging
from typing import Dict, List, Optional, Set, Tuple

from .contracts import ResourceClient
from ..core.errors import BackendError, ErrorCode
from ..core.models import (
    AllocationState,
    ComputeNode,
    Job,
    NodeState,
    Pool,
    PoolSpec,
    RenderTask,
    TaskSpec,
    TaskState,
)

logger = logging.getLogger(__name__)


class InMemoryResourceClient(ResourceClient):
    """
    Batch backend simulation

    Args:
        allocation_polls: status reads of a resizing pool before it turns
            steady; None keeps it resizing forever
        node_start_polls: status reads of a starting node before it is idle
        task_polls: task list reads before a task completes; None never completes
    """

    def __init__(
        self,
        allocation_polls: Optional[int] = 1,
        node_start_polls: int = 0,
        task_polls: Optional[int] = 2,
        reachable: bool = True
    ):
        self.allocation_polls = allocation_polls
        self.node_start_polls = node_start_polls
        self.task_polls = task_polls
        self.reachable = reachable

        self.pools: Dict[str, Pool] = {}
        self.nodes: Dict[str, Dict[str, ComputeNode]] = {}
        self.jobs: Dict[str, Job] = {}
        self.tasks: Dict[str, Dict[str, RenderTask]] = {}

        # Scenario knobs
        self.exit_codes: Dict[str, int] = {}  # node_id -> exit code
        self.stalled_nodes: Set[str] = set()  # tasks on these nodes never finish
        self.failures: Dict[str, Exception] = {}  # operation -> exception to raise

        self.calls: List[str] = []

        self._pool_serial = itertools.count(1)
        self._pool_subnets: Dict[str, int] = {}
        self._allocation_countdown: Dict[str, Optional[int]] = {}
        self._node_countdown: Dict[Tuple[str, str], int] = {}
        self._task_countdown: Dict[Tuple[str, str], Optional[int]] = {}

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    # Simulation helpers

    def _settle_pool(self, pool: Pool) -> None:
        """Bring node membership in line with the target and mark steady"""
        members = self.nodes.setdefault(pool.id, {})
        subnet = self._pool_subnets[pool.id]

        while len(members) > pool.target_dedicated_nodes:
            node_id = list(members)[-1]
            del members[node_id]
            self._node_countdown.pop((pool.id, node_id), None)

        index = 0
        while len(members) < pool.target_dedicated_nodes:
            node_id = f"tvm-{pool.id}-{index}"
            index += 1
            if node_id in members:
                continue
            node = ComputeNode(id=node_id, pool_id=pool.id, state=NodeState.STARTING)
            members[node_id] = node
            if self.node_start_polls > 0:
                self._node_countdown[(pool.id, node_id)] = self.node_start_polls
            else:
                self._start_node(node, subnet, len(members))

        pool.current_dedicated_nodes = len(members)
        pool.allocation_state = AllocationState.STEADY
        self._allocation_countdown.pop(pool.id, None)

    def _start_node(self, node: ComputeNode, subnet: int, host: int) -> None:
        node.state = NodeState.IDLE
        node.ip_address = f"10.0.{subnet}.{host + 3}"

    def _begin_allocation(self, pool: Pool) -> None:
        pool.allocation_state = AllocationState.RESIZING
        if self.allocation_polls is not None and self.allocation_polls <= 0:
            self._settle_pool(pool)
        else:
            self._allocation_countdown[pool.id] = self.allocation_polls

    def _advance_pool(self, pool: Pool) -> None:
        if pool.allocation_state != AllocationState.RESIZING:
            return
        remaining = self._allocation_countdown.get(pool.id)
        if remaining is None:
            return
        remaining -= 1
        if remaining <= 0:
            self._settle_pool(pool)
        else:
            self._allocation_countdown[pool.id] = remaining

    def _advance_node(self, node: ComputeNode) -> None:
        key = (node.pool_id, node.id)
        if key not in self._node_countdown:
            return
        self._node_countdown[key] -= 1
        if self._node_countdown[key] <= 0:
            del self._node_countdown[key]
            host = list(self.nodes[node.pool_id]).index(node.id) + 1
            self._start_node(node, self._pool_subnets[node.pool_id], host)

    def _advance_task(self, task: RenderTask) -> None:
        if task.state == TaskState.COMPLETED:
            return
        key = (task.job_id, task.id)
        remaining = self._task_countdown.get(key)
        if remaining is None or task.node_id in self.stalled_nodes:
            task.state = TaskState.RUNNING
            return
        remaining -= 1
        if remaining <= 0:
            task.state = TaskState.COMPLETED
            task.exit_code = self.exit_codes.get(task.node_id, 0)
            del self._task_countdown[key]
        else:
            task.state = TaskState.RUNNING
            self._task_countdown[key] = remaining

    # ResourceClient

    async def ping(self) -> None:
        self._check("ping")
        if not self.reachable:
            raise BackendError("Batch account unreachable", code=ErrorCode.BACKEND_UNAVAILABLE)

    async def list_pools(self) -> List[Pool]:
        self._check("list_pools")
        return [pool.model_copy(deep=True) for pool in self.pools.values()]

    async def get_pool(self, pool_id: str) -> Optional[Pool]:
        self._check("get_pool")
        pool = self.pools.get(pool_id)
        if pool is None:
            return None
        self._advance_pool(pool)
        return pool.model_copy(deep=True)

    async def create_pool(self, spec: PoolSpec) -> Pool:
        self._check("create_pool")
        if spec.pool_id in self.pools:
            raise BackendError(f"Pool {spec.pool_id} already exists", data={"pool_id": spec.pool_id})

        pool = Pool(
            id=spec.pool_id,
            kind=spec.kind,
            vm_size=spec.vm_size,
            target_dedicated_nodes=spec.target_dedicated_nodes,
        )
        self.pools[pool.id] = pool
        self.nodes[pool.id] = {}
        self._pool_subnets[pool.id] = next(self._pool_serial)
        self._begin_allocation(pool)
        logger.debug(f"Simulated pool {pool.id} created with target {pool.target_dedicated_nodes}")
        return pool.model_copy(deep=True)

    async def resize_pool(self, pool_id: str, target_dedicated_nodes: int) -> None:
        self._check("resize_pool")
        pool = self.pools.get(pool_id)
        if pool is None:
            raise BackendError(f"Pool {pool_id} does not exist", code=ErrorCode.POOL_NOT_FOUND)
        pool.target_dedicated_nodes = target_dedicated_nodes
        self._begin_allocation(pool)

    async def delete_pool(self, pool_id: str) -> bool:
        self._check("delete_pool")
        if self.pools.pop(pool_id, None) is None:
            return False
        self.nodes.pop(pool_id, None)
        self._allocation_countdown.pop(pool_id, None)
        for key in [key for key in self._node_countdown if key[0] == pool_id]:
            del self._node_countdown[key]
        return True

    async def list_nodes(self, pool_id: str) -> List[ComputeNode]:
        self._check("list_nodes")
        return [node.model_copy(deep=True) for node in self.nodes.get(pool_id, {}).values()]

    async def get_node(self, pool_id: str, node_id: str) -> Optional[ComputeNode]:
        self._check("get_node")
        node = self.nodes.get(pool_id, {}).get(node_id)
        if node is None:
            return None
        self._advance_node(node)
        return node.model_copy(deep=True)

    async def create_job(self, job_id: str, pool_id: str) -> Job:
        self._check("create_job")
        if job_id in self.jobs:
            raise BackendError(f"Job {job_id} already exists", data={"job_id": job_id})
        if pool_id not in self.pools:
            raise BackendError(f"Pool {pool_id} does not exist", code=ErrorCode.POOL_NOT_FOUND)
        job = Job(id=job_id, pool_id=pool_id)
        self.jobs[job_id] = job
        self.tasks[job_id] = {}
        return job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> Optional[Job]:
        self._check("get_job")
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def delete_job(self, job_id: str) -> bool:
        self._check("delete_job")
        if self.jobs.pop(job_id, None) is None:
            return False
        for task_id in self.tasks.pop(job_id, {}):
            self._task_countdown.pop((job_id, task_id), None)
        return True

    async def add_tasks(self, job_id: str, tasks: List[TaskSpec]) -> None:
        self._check("add_tasks")
        job = self.jobs.get(job_id)
        if job is None:
            raise BackendError(f"Job {job_id} does not exist", code=ErrorCode.JOB_NOT_FOUND)

        job_tasks = self.tasks[job_id]
        duplicates = [spec.task_id for spec in tasks if spec.task_id in job_tasks]
        if duplicates:
            raise BackendError(f"Tasks already exist: {', '.join(duplicates)}", data={"job_id": job_id})

        for spec in tasks:
            job_tasks[spec.task_id] = RenderTask(
                id=spec.task_id,
                job_id=job_id,
                command_line=spec.command_line,
                node_id=spec.node_id,
            )
            self._task_countdown[(job_id, spec.task_id)] = self.task_polls
            job.task_ids.append(spec.task_id)

    async def list_tasks(self, job_id: str) -> List[RenderTask]:
        self._check("list_tasks")
        snapshot = []
        for task in self.tasks.get(job_id, {}).values():
            self._advance_task(task)
            snapshot.append(task.model_copy(deep=True))
        return snapshot
