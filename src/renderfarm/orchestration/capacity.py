"""
Capacity planning over the current pool inventory
"""

import logging
from typing import List, Optional

from ..backend.contracts import ResourceClient, backend_call
from ..core.config import RenderFarmConfig, NUMERIC_FIELDS
from ..core.errors import ConfigurationError
from ..core.models import Pool, PoolKind, PoolState

logger = logging.getLogger(__name__)


class CapacityPlanner:
    """
    Decides whether more rendering clients can be admitted

    Capacity is computed from target node counts, so pools whose resize has
    been requested but not yet observed as complete already count.
    """

    def __init__(self, backend: ResourceClient, config: Optional[RenderFarmConfig] = None):
        self.backend = backend
        self.config = config or RenderFarmConfig()

    async def list_pools(self) -> List[Pool]:
        """All known pools, pending ones included"""
        return await backend_call("list_pools", self.backend.list_pools())

    async def max_rendering_slot_capacity(self) -> int:
        pools = await self.list_pools()
        return sum(
            pool.target_dedicated_nodes * self.config.slots_per_node
            for pool in pools
            if pool.kind == PoolKind.RENDERING and pool.state != PoolState.DELETING
        )

    async def is_approaching_capacity(self, total_connected_clients: int) -> bool:
        """True once connected clients exceed the configured fraction of capacity"""
        if total_connected_clients < 0:
            raise ValueError("total_connected_clients must be non-negative")

        capacity = await self.max_rendering_slot_capacity()
        approaching = total_connected_clients > capacity * self.config.capacity_threshold
        if approaching:
            logger.info(
                f"Approaching rendering capacity: {total_connected_clients} clients, "
                f"{capacity} slots, threshold {self.config.capacity_threshold:.0%}"
            )
        return approaching

    async def validate_configuration(self) -> str:
        """
        Check the deployment parameters

        Returns an empty string when valid, otherwise the description of the
        first violated constraint. Raises ConfigurationError only when a
        numeric setting is not a number at all.
        """
        for name in NUMERIC_FIELDS:
            value = getattr(self.config, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{name} must be a number, got {value!r}", data={"field": name})

        problems = self.config.find_violations()
        if problems:
            logger.warning(f"Invalid configuration: {problems[0]}")
            return problems[0]

        try:
            await self.backend.ping()
        except Exception as e:
            logger.warning(f"Batch backend unreachable: {e}")
            return f"Batch account {self.config.batch_account_name} is unreachable: {e}"

        return ""
