"""
Pool lifecycle management

Creates, resizes and deletes TURN relay and rendering pools, and drives them
toward a desired allocation or node state with bounded polling.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Union

from ..backend.contracts import ResourceClient, backend_call
from ..core.config import RenderFarmConfig
from ..core.errors import (
    InvalidCapacityError,
    NodeNotFoundError,
    PoolCreationError,
    PoolNotFoundError,
)
from ..core.models import (
    AllocationState,
    ComputeNode,
    NodeState,
    Pool,
    PoolKind,
    PoolPhase,
    PoolSpec,
)
from ..core.polling import Timeout, wait_until

logger = logging.getLogger(__name__)


class PoolLifecycleManager:
    """
    Pool lifecycle: requested -> provisioning (resizing) -> steady | failed

    Concurrent calls for the same pool id must be serialized by the caller;
    different pools are independent and share no lock.
    """

    def __init__(self, backend: ResourceClient, config: Optional[RenderFarmConfig] = None):
        self.backend = backend
        self.config = config or RenderFarmConfig()
        self.phases: Dict[str, PoolPhase] = {}

    def phase(self, pool_id: str) -> Optional[PoolPhase]:
        """Controller-side phase of a pool, None if never seen"""
        return self.phases.get(pool_id)

    def _check_capacity(self, pool_id: str, dedicated_nodes: int) -> None:
        lower = max(self.config.min_pool_nodes, 0)
        if dedicated_nodes < lower or dedicated_nodes > self.config.max_pool_nodes:
            raise InvalidCapacityError(
                f"Requested {dedicated_nodes} dedicated nodes for pool {pool_id}, "
                f"allowed range is {lower}..{self.config.max_pool_nodes}",
                data={"pool_id": pool_id, "dedicated_nodes": dedicated_nodes}
            )

    def _spec_for(self, pool_id: str, kind: PoolKind, dedicated_nodes: Optional[int]) -> PoolSpec:
        if kind == PoolKind.TURN_RELAY:
            vm_size = self.config.turn_pool_vm_size
            image = self.config.turn_pool_image
            default_nodes = self.config.turn_pool_initial_nodes
        else:
            vm_size = self.config.rendering_pool_vm_size
            image = self.config.rendering_pool_image
            default_nodes = self.config.rendering_pool_initial_nodes

        nodes = default_nodes if dedicated_nodes is None else dedicated_nodes
        self._check_capacity(pool_id, nodes)
        return PoolSpec(pool_id=pool_id, kind=kind, vm_size=vm_size, image=image, target_dedicated_nodes=nodes)

    async def _find_pool(self, pool_id: str) -> Optional[Pool]:
        return await backend_call("get_pool", self.backend.get_pool(pool_id), pool_id=pool_id)

    async def _create_pool(self, pool_id: str, kind: PoolKind, dedicated_nodes: Optional[int]) -> Pool:
        spec = self._spec_for(pool_id, kind, dedicated_nodes)

        existing = await self._find_pool(pool_id)
        if existing is not None:
            if existing.kind == kind and not existing.is_failed:
                logger.info(f"Pool {pool_id} already exists ({existing.allocation_state.value}), reusing it")
                if self.phases.get(pool_id) in (None, PoolPhase.FAILED):
                    self.phases[pool_id] = PoolPhase.STEADY if existing.is_steady else PoolPhase.PROVISIONING
                return existing
            self.phases[pool_id] = PoolPhase.FAILED
            raise PoolCreationError(
                f"Pool {pool_id} already exists as a {existing.kind.value} pool in state "
                f"{existing.state.value}",
                data={"pool_id": pool_id, "resize_error": existing.resize_error}
            )

        self.phases[pool_id] = PoolPhase.REQUESTED
        try:
            pool = await self.backend.create_pool(spec)
        except Exception as e:
            self.phases[pool_id] = PoolPhase.FAILED
            logger.error(f"Backend rejected creation of {kind.value} pool {pool_id}: {e}")
            raise PoolCreationError(
                f"Backend rejected creation of pool {pool_id}: {e}",
                data={"pool_id": pool_id, "kind": kind.value},
                cause=e
            ) from e

        self.phases[pool_id] = PoolPhase.PROVISIONING
        logger.info(
            f"Requested {kind.value} pool {pool_id} ({spec.vm_size}, "
            f"{spec.target_dedicated_nodes} dedicated nodes)"
        )
        return pool

    async def create_turn_pool(self, pool_id: str, dedicated_nodes: Optional[int] = None) -> Pool:
        """Create a TURN relay pool, or return the existing healthy one"""
        return await self._create_pool(pool_id, PoolKind.TURN_RELAY, dedicated_nodes)

    async def create_rendering_pool(self, pool_id: str, dedicated_nodes: Optional[int] = None) -> Pool:
        """Create a rendering pool, or return the existing healthy one"""
        return await self._create_pool(pool_id, PoolKind.RENDERING, dedicated_nodes)

    async def get_pool(self, pool_id: str) -> Pool:
        pool = await self._find_pool(pool_id)
        if pool is None:
            raise PoolNotFoundError(pool_id)
        return pool

    async def resize_pool(self, pool_id: str, desired_dedicated_nodes: int) -> None:
        """Request a new dedicated node count; nothing changes if the count is invalid"""
        self._check_capacity(pool_id, desired_dedicated_nodes)

        pool = await self.get_pool(pool_id)
        if pool.target_dedicated_nodes == desired_dedicated_nodes:
            logger.debug(f"Pool {pool_id} already targets {desired_dedicated_nodes} nodes")
            return

        await backend_call(
            "resize_pool",
            self.backend.resize_pool(pool_id, desired_dedicated_nodes),
            pool_id=pool_id,
            dedicated_nodes=desired_dedicated_nodes
        )
        self.phases[pool_id] = PoolPhase.RESIZING
        logger.info(
            f"Resizing pool {pool_id} from {pool.target_dedicated_nodes} "
            f"to {desired_dedicated_nodes} dedicated nodes"
        )

    async def await_desired_pool_state(
        self,
        pool: Union[Pool, str],
        desired_state: AllocationState,
        timeout: Timeout,
        cancel_event: Optional[asyncio.Event] = None
    ) -> bool:
        """
        Poll until the pool's allocation state equals desired_state

        Returns False on timeout or cancellation; never raises for either.
        A pool that times out on its way to steady is marked failed. Raises
        PoolNotFoundError if the pool disappears.
        """
        pool_id = pool.id if isinstance(pool, Pool) else pool

        async def reached() -> bool:
            snapshot = await self.get_pool(pool_id)
            return snapshot.allocation_state == desired_state

        converged = await wait_until(
            reached,
            timeout,
            self.config.poll_interval,
            cancel_event=cancel_event,
            description=f"pool {pool_id} to become {desired_state.value}"
        )

        if desired_state == AllocationState.STEADY:
            cancelled = cancel_event is not None and cancel_event.is_set()
            if converged:
                self.phases[pool_id] = PoolPhase.STEADY
            elif not cancelled:
                self.phases[pool_id] = PoolPhase.FAILED
        return converged

    async def await_desired_node_state(
        self,
        node: ComputeNode,
        desired_state: NodeState,
        timeout: Timeout,
        cancel_event: Optional[asyncio.Event] = None
    ) -> bool:
        """Same contract as await_desired_pool_state, for a single node"""
        pool_id, node_id = node.pool_id, node.id

        async def reached() -> bool:
            snapshot = await backend_call(
                "get_node", self.backend.get_node(pool_id, node_id), pool_id=pool_id, node_id=node_id
            )
            if snapshot is None:
                raise NodeNotFoundError(pool_id, node_id)
            return snapshot.state == desired_state

        return await wait_until(
            reached,
            timeout,
            self.config.poll_interval,
            cancel_event=cancel_event,
            description=f"node {node_id} in pool {pool_id} to become {desired_state.value}"
        )

    async def list_nodes(self, pool_id: str) -> List[ComputeNode]:
        return await backend_call("list_nodes", self.backend.list_nodes(pool_id), pool_id=pool_id)

    async def turn_server_ips(self, pool_id: str) -> List[str]:
        """IPs of nodes that are idle or running; other IPs are not trusted yet"""
        nodes = await self.list_nodes(pool_id)
        return [node.trusted_ip for node in nodes if node.trusted_ip]

    async def delete_pool(self, pool_id: str, missing_ok: bool = True) -> bool:
        """
        Delete a pool

        Jobs bound to the pool are not touched. Returns False when the pool was
        already absent, or raises PoolNotFoundError if missing_ok is False.
        """
        deleted = await backend_call("delete_pool", self.backend.delete_pool(pool_id), pool_id=pool_id)
        self.phases.pop(pool_id, None)
        if not deleted:
            if not missing_ok:
                raise PoolNotFoundError(pool_id)
            logger.debug(f"Pool {pool_id} already absent")
            return False

        logger.info(f"Deleted pool {pool_id}")
        return True
