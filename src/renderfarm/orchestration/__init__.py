"""
Pool and job orchestration
"""

from .capacity import CapacityPlanner
from .pools import PoolLifecycleManager
from .jobs import JobOrchestrator
from .controller import RenderFarmController, ProvisioningResult

__all__ = [
    "CapacityPlanner",
    "PoolLifecycleManager",
    "JobOrchestrator",
    "RenderFarmController",
    "ProvisioningResult",
]
