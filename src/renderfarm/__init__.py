"""Renderfarm - pool & job orchestration controller for cloud rendering farms"""

__version__ = "0.1.0"

from renderfarm.core.config import RenderFarmConfig
from renderfarm.core.models import ActionBatch, ActionBatchItem, PowerAction
from renderfarm.backend import ResourceClient, InMemoryResourceClient
from renderfarm.orchestration import (
    CapacityPlanner,
    PoolLifecycleManager,
    JobOrchestrator,
    RenderFarmController,
    ProvisioningResult,
)
from renderfarm.dispatch import ActionBatchDispatcher, RedisMessageChannel, build_batch

__all__ = [
    "RenderFarmConfig",
    "ActionBatch",
    "ActionBatchItem",
    "PowerAction",
    "ResourceClient",
    "InMemoryResourceClient",
    "CapacityPlanner",
    "PoolLifecycleManager",
    "JobOrchestrator",
    "RenderFarmController",
    "ProvisioningResult",
    "ActionBatchDispatcher",
    "RedisMessageChannel",
    "build_batch",
]
