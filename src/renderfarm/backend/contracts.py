"""
Resource client contract consumed by the controller

Implementations own all backend state. Identifiers are passed by value; the
controller never holds live backend objects across a poll.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, List, Optional, TypeVar

from ..core.errors import BackendError, RenderFarmError
from ..core.models import ComputeNode, Job, Pool, PoolSpec, RenderTask, TaskSpec

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def backend_call(operation: str, call: Awaitable[T], **context: Any) -> T:
    """
    Await a resource client call, wrapping foreign failures in BackendError

    Errors that are already RenderFarmError pass through unchanged.
    """
    try:
        return await call
    except RenderFarmError:
        raise
    except Exception as e:
        logger.error(f"Backend {operation} failed: {e}")
        raise BackendError(
            f"Backend {operation} failed: {e}",
            data={"operation": operation, **context},
            cause=e
        ) from e


class ResourceClient(ABC):
    """Pool, job and task operations against a batch backend"""

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the backend or its credentials are unreachable"""

    @abstractmethod
    async def list_pools(self) -> List[Pool]:
        """All pools, including ones still being provisioned"""

    @abstractmethod
    async def get_pool(self, pool_id: str) -> Optional[Pool]:
        """Current snapshot of a pool, or None if absent"""

    @abstractmethod
    async def create_pool(self, spec: PoolSpec) -> Pool:
        """Request a new pool"""

    @abstractmethod
    async def resize_pool(self, pool_id: str, target_dedicated_nodes: int) -> None:
        """Request a new dedicated node count"""

    @abstractmethod
    async def delete_pool(self, pool_id: str) -> bool:
        """Delete a pool; False if it was already absent"""

    @abstractmethod
    async def list_nodes(self, pool_id: str) -> List[ComputeNode]:
        pass

    @abstractmethod
    async def get_node(self, pool_id: str, node_id: str) -> Optional[ComputeNode]:
        pass

    @abstractmethod
    async def create_job(self, job_id: str, pool_id: str) -> Job:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    async def delete_job(self, job_id: str) -> bool:
        """Delete a job and its tasks; False if it was already absent"""

    @abstractmethod
    async def add_tasks(self, job_id: str, tasks: List[TaskSpec]) -> None:
        pass

    @abstractmethod
    async def list_tasks(self, job_id: str) -> List[RenderTask]:
        pass
