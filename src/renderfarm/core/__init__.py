"""
Core models, configuration, errors and polling primitives
"""

from .config import RenderFarmConfig, setup_logging
from .errors import (
    ErrorCode,
    RenderFarmError,
    ConfigurationError,
    BackendError,
    NotFoundError,
    PoolNotFoundError,
    NodeNotFoundError,
    JobNotFoundError,
    PoolCreationError,
    InvalidCapacityError,
    JobCreationError,
    TaskCreationError,
    DispatchError,
)
from .models import (
    PoolKind,
    AllocationState,
    PoolState,
    NodeState,
    TaskState,
    PoolPhase,
    JobPhase,
    PowerAction,
    PoolSpec,
    Pool,
    ComputeNode,
    Job,
    TaskSpec,
    RenderTask,
    ActionBatchItem,
    ActionBatch,
)
from .polling import wait_until, to_seconds

__all__ = [
    "RenderFarmConfig",
    "setup_logging",
    "ErrorCode",
    "RenderFarmError",
    "ConfigurationError",
    "BackendError",
    "NotFoundError",
    "PoolNotFoundError",
    "NodeNotFoundError",
    "JobNotFoundError",
    "PoolCreationError",
    "InvalidCapacityError",
    "JobCreationError",
    "TaskCreationError",
    "DispatchError",
    "PoolKind",
    "AllocationState",
    "PoolState",
    "NodeState",
    "TaskState",
    "PoolPhase",
    "JobPhase",
    "PowerAction",
    "PoolSpec",
    "Pool",
    "ComputeNode",
    "Job",
    "TaskSpec",
    "RenderTask",
    "ActionBatchItem",
    "ActionBatch",
    "wait_until",
    "to_seconds",
]
