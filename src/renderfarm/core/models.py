"""
Core resource models for the render farm controller

Snapshots of backend state (pools, nodes, jobs, tasks) and the action batch
payload sent to the TURN power-control channel.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field


class PoolKind(Enum):
    """Categories of compute pools"""
    TURN_RELAY = "turn_relay"
    RENDERING = "rendering"


class AllocationState(Enum):
    """Backend-observed convergence state of a pool"""
    STEADY = "steady"
    RESIZING = "resizing"
    STOPPING = "stopping"


class PoolState(Enum):
    """Backend-observed existence state of a pool"""
    ACTIVE = "active"
    DELETING = "deleting"


class NodeState(Enum):
    """Backend-observed lifecycle state of a compute node"""
    CREATING = "creating"
    STARTING = "starting"
    IDLE = "idle"
    RUNNING = "running"
    UNUSABLE = "unusable"
    LEAVING = "leaving"

    @property
    def is_usable(self) -> bool:
        """Whether the node has reached idle or beyond"""
        return self in (NodeState.IDLE, NodeState.RUNNING)


class TaskState(Enum):
    """Backend-observed task state"""
    ACTIVE = "active"
    RUNNING = "running"
    COMPLETED = "completed"


class PoolPhase(Enum):
    """Controller-side lifecycle phase of a pool"""
    REQUESTED = "requested"
    PROVISIONING = "provisioning"
    RESIZING = "resizing"
    STEADY = "steady"
    FAILED = "failed"


class JobPhase(Enum):
    """Controller-side lifecycle phase of a job"""
    CREATED = "created"
    TASKS_ADDED = "tasks_added"
    MONITORING = "monitoring"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class PowerAction(Enum):
    """Power action requested for the VMs backing a TURN server"""
    UP = "up"
    DOWN = "down"


class PoolSpec(BaseModel):
    """Creation request for a pool"""
    pool_id: str
    kind: PoolKind
    vm_size: str
    image: str
    target_dedicated_nodes: int = 0


class Pool(BaseModel):
    """Point-in-time snapshot of a pool"""
    id: str
    kind: PoolKind
    vm_size: Optional[str] = None
    allocation_state: AllocationState = AllocationState.RESIZING
    state: PoolState = PoolState.ACTIVE
    target_dedicated_nodes: int = 0
    current_dedicated_nodes: int = 0
    resize_error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_failed(self) -> bool:
        return self.state == PoolState.DELETING or self.resize_error is not None

    @property
    def is_steady(self) -> bool:
        return self.allocation_state == AllocationState.STEADY


class ComputeNode(BaseModel):
    """Point-in-time snapshot of a node; pool_id is a back-reference only"""
    id: str
    pool_id: str
    state: NodeState = NodeState.CREATING
    ip_address: Optional[str] = None

    @property
    def trusted_ip(self) -> Optional[str]:
        """The node IP, only once the node is idle or running"""
        return self.ip_address if self.state.is_usable else None


class Job(BaseModel):
    """A task container bound to one pool"""
    id: str
    pool_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    task_ids: List[str] = Field(default_factory=list)


class TaskSpec(BaseModel):
    """Creation request for a task pinned to one node"""
    task_id: str
    command_line: str
    node_id: Optional[str] = None


class RenderTask(BaseModel):
    """Point-in-time snapshot of a task"""
    id: str
    job_id: str
    command_line: str = ""
    node_id: Optional[str] = None
    state: TaskState = TaskState.ACTIVE
    exit_code: Optional[int] = None

    @property
    def is_completed(self) -> bool:
        return self.state == TaskState.COMPLETED

    @property
    def succeeded(self) -> bool:
        """Completed with exit code 0; anything else counts as failure"""
        return self.is_completed and self.exit_code == 0


class ActionBatchItem(BaseModel):
    """One TURN server power action"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    action: PowerAction
    turn_server_id: int = Field(alias="turnServerId")
    vm_ids: List[int] = Field(default_factory=list, alias="vmIds")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "turnServerId": self.turn_server_id,
            "vmIds": list(self.vm_ids),
        }


class ActionBatch(BaseModel):
    """Ordered action items delivered as one message"""
    model_config = ConfigDict(frozen=True)

    items: List[ActionBatchItem] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def to_payload(self) -> List[Dict[str, Any]]:
        return [item.to_payload() for item in self.items]

    def to_json(self) -> str:
        return json.dumps(self.to_payload())

    @classmethod
    def from_payload(cls, payload: Sequence[Union[Dict[str, Any], ActionBatchItem]]) -> "ActionBatch":
        """Create a batch from wire-format dictionaries or items"""
        items = [
            item if isinstance(item, ActionBatchItem) else ActionBatchItem.model_validate(item)
            for item in payload
        ]
        return cls(items=items)
