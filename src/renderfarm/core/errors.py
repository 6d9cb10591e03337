"""
Error taxonomy for the render farm controller

Every error carries a stable code, a context dictionary and the underlying
cause (if any). Nothing in here is retried; retry policy lives above the core.
"""

from enum import Enum
from datetime import datetime
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Stable error codes"""

    # Configuration / infrastructure (1000-1999)
    CONFIGURATION_INVALID = "RF1001"
    BACKEND_UNAVAILABLE = "RF1002"
    BACKEND_REQUEST_FAILED = "RF1003"

    # Pools (2000-2999)
    POOL_CREATION_FAILED = "RF2001"
    POOL_NOT_FOUND = "RF2002"
    INVALID_CAPACITY = "RF2003"
    NODE_NOT_FOUND = "RF2004"

    # Jobs and tasks (3000-3999)
    JOB_CREATION_FAILED = "RF3001"
    JOB_NOT_FOUND = "RF3002"
    TASK_CREATION_FAILED = "RF3003"

    # Action batches (4000-4999)
    DISPATCH_FAILED = "RF4001"


class RenderFarmError(Exception):
    """Base exception with structured error information"""

    default_code = ErrorCode.BACKEND_REQUEST_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        data: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        self.message = message
        self.code = code or self.default_code
        self.data = data or {}
        self.cause = cause
        self.timestamp = datetime.utcnow()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging and reporting"""
        return {
            "error_code": self.code.value,
            "error_type": type(self).__name__,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "cause": str(self.cause) if self.cause else None
        }

    def __str__(self) -> str:
        base_msg = f"[{self.code.value}] {self.message}"
        if self.data:
            context_str = ", ".join(f"{k}={v}" for k, v in self.data.items())
            base_msg += f" (context: {context_str})"
        return base_msg


class ConfigurationError(RenderFarmError):
    """Deployment parameters break the configuration contract"""
    default_code = ErrorCode.CONFIGURATION_INVALID


class BackendError(RenderFarmError):
    """The batch backend rejected or failed a request"""
    default_code = ErrorCode.BACKEND_REQUEST_FAILED


class NotFoundError(RenderFarmError):
    """A referenced resource does not exist"""


class PoolNotFoundError(NotFoundError):
    default_code = ErrorCode.POOL_NOT_FOUND

    def __init__(self, pool_id: str, cause: Optional[BaseException] = None):
        self.pool_id = pool_id
        super().__init__(f"Pool {pool_id} not found", data={"pool_id": pool_id}, cause=cause)


class NodeNotFoundError(NotFoundError):
    default_code = ErrorCode.NODE_NOT_FOUND

    def __init__(self, pool_id: str, node_id: str, cause: Optional[BaseException] = None):
        self.pool_id = pool_id
        self.node_id = node_id
        super().__init__(
            f"Node {node_id} not found in pool {pool_id}",
            data={"pool_id": pool_id, "node_id": node_id},
            cause=cause
        )


class JobNotFoundError(NotFoundError):
    default_code = ErrorCode.JOB_NOT_FOUND

    def __init__(self, job_id: str, cause: Optional[BaseException] = None):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found", data={"job_id": job_id}, cause=cause)


class PoolCreationError(RenderFarmError):
    default_code = ErrorCode.POOL_CREATION_FAILED


class InvalidCapacityError(RenderFarmError):
    default_code = ErrorCode.INVALID_CAPACITY


class JobCreationError(RenderFarmError):
    default_code = ErrorCode.JOB_CREATION_FAILED


class TaskCreationError(RenderFarmError):
    default_code = ErrorCode.TASK_CREATION_FAILED


class DispatchError(RenderFarmError):
    """The messaging channel could not take the batch"""
    default_code = ErrorCode.DISPATCH_FAILED
