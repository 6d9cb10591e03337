"""
Configuration management for the render farm controller

Defaults, optionally overlaid by a YAML deployment profile, then by
environment variables.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigurationError

NUMERIC_FIELDS = {
    "turn_pool_initial_nodes": int,
    "rendering_pool_initial_nodes": int,
    "min_pool_nodes": int,
    "max_pool_nodes": int,
    "slots_per_node": int,
    "capacity_threshold": float,
    "poll_interval": float,
    "pool_timeout": float,
    "task_timeout": float,
}


def _coerce(name: str, value: Any, kind: type) -> Any:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}", data={"field": name})
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{name} must be a number, got {value!r}",
            data={"field": name},
            cause=e
        ) from e


@dataclass
class RenderFarmConfig:
    """Deployment profile for pools, tasks and the action channel"""

    # Batch account credentials
    batch_account_url: Optional[str] = None
    batch_account_name: Optional[str] = None
    batch_account_key: Optional[str] = None

    # TURN relay pool profile
    turn_pool_vm_size: str = "Standard_F4s_v2"
    turn_pool_image: str = "turnserver-ubuntu-1804"
    turn_pool_initial_nodes: int = 1

    # Rendering pool profile
    rendering_pool_vm_size: str = "Standard_NV6"
    rendering_pool_image: str = "rendering-windows-2016"
    rendering_pool_initial_nodes: int = 1

    # Pool size bounds
    min_pool_nodes: int = 0
    max_pool_nodes: int = 20

    # Capacity planning
    slots_per_node: int = 1
    capacity_threshold: float = 0.8

    # Polling
    poll_interval: float = 5.0
    pool_timeout: float = 900.0
    task_timeout: float = 300.0

    # Node configuration task
    rendering_task_script: str = "OnStartBackend.ps1"
    rendering_task_command: str = (
        "powershell.exe -ExecutionPolicy Unrestricted -File {script} "
        "-turnServerIp {turn_server_ip} -signalingServerUrl {signaling_server_url}"
    )
    signaling_server_url: str = ""

    # Action batch channel
    redis_url: str = "redis://localhost:6379"
    action_queue: str = "renderfarm:turn-actions"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def __post_init__(self):
        """Load configuration from environment variables"""

        # Credentials
        self.batch_account_url = os.getenv('RENDERFARM_BATCH_ACCOUNT_URL', self.batch_account_url)
        self.batch_account_name = os.getenv('RENDERFARM_BATCH_ACCOUNT_NAME', self.batch_account_name)
        self.batch_account_key = os.getenv('RENDERFARM_BATCH_ACCOUNT_KEY', self.batch_account_key)

        # Pool profiles
        self.turn_pool_vm_size = os.getenv('RENDERFARM_TURN_VM_SIZE', self.turn_pool_vm_size)
        self.rendering_pool_vm_size = os.getenv('RENDERFARM_RENDERING_VM_SIZE', self.rendering_pool_vm_size)
        self.max_pool_nodes = os.getenv('RENDERFARM_MAX_POOL_NODES', self.max_pool_nodes)
        self.slots_per_node = os.getenv('RENDERFARM_SLOTS_PER_NODE', self.slots_per_node)
        self.capacity_threshold = os.getenv('RENDERFARM_CAPACITY_THRESHOLD', self.capacity_threshold)
        self.poll_interval = os.getenv('RENDERFARM_POLL_INTERVAL', self.poll_interval)

        # Tasks
        self.rendering_task_script = os.getenv('RENDERFARM_TASK_SCRIPT', self.rendering_task_script)
        self.signaling_server_url = os.getenv('RENDERFARM_SIGNALING_URL', self.signaling_server_url)

        # Channel
        self.redis_url = os.getenv('REDIS_URL', self.redis_url)
        self.action_queue = os.getenv('RENDERFARM_ACTION_QUEUE', self.action_queue)

        # Logging
        self.log_level = os.getenv('LOG_LEVEL', self.log_level)

        for name, kind in NUMERIC_FIELDS.items():
            setattr(self, name, _coerce(name, getattr(self, name), kind))

    def find_violations(self) -> List[str]:
        """Return every static problem, in check order"""
        problems = []

        if not self.batch_account_url:
            problems.append("batch_account_url is required")
        if not self.batch_account_name:
            problems.append("batch_account_name is required")
        if not self.batch_account_key:
            problems.append("batch_account_key is required")

        if self.max_pool_nodes <= 0:
            problems.append("max_pool_nodes must be positive")
        if self.min_pool_nodes < 0:
            problems.append("min_pool_nodes must be non-negative")
        if self.min_pool_nodes > self.max_pool_nodes:
            problems.append(
                f"min_pool_nodes ({self.min_pool_nodes}) exceeds max_pool_nodes ({self.max_pool_nodes})"
            )
        for name in ("turn_pool_initial_nodes", "rendering_pool_initial_nodes"):
            value = getattr(self, name)
            if not self.min_pool_nodes <= value <= self.max_pool_nodes:
                problems.append(
                    f"{name} ({value}) must be between {self.min_pool_nodes} and {self.max_pool_nodes}"
                )

        if self.slots_per_node <= 0:
            problems.append("slots_per_node must be positive")
        if not 0 < self.capacity_threshold <= 1:
            problems.append("capacity_threshold must be in (0, 1]")
        if self.poll_interval <= 0:
            problems.append("poll_interval must be positive")

        if not self.rendering_task_script:
            problems.append("rendering_task_script is required")
        if not self.rendering_task_command:
            problems.append("rendering_task_command is required")
        elif "{turn_server_ip}" not in self.rendering_task_command:
            problems.append("rendering_task_command must contain {turn_server_ip}")

        return problems

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary with the account key masked"""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if data["batch_account_key"]:
            data["batch_account_key"] = "***"
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderFarmConfig':
        """Create configuration from dictionary"""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(sorted(unknown))}",
                data={"keys": sorted(unknown)}
            )
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'RenderFarmConfig':
        """Load a deployment profile from a YAML file"""
        config_file = Path(path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}", data={"path": str(config_file)})

        with open(config_file, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_file}")

        return cls.from_dict(data)


def setup_logging(config: RenderFarmConfig):
    """Setup logging based on configuration"""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format
    )

    logging.getLogger('redis').setLevel(logging.WARNING)

    if config.log_level.upper() == 'DEBUG':
        logging.getLogger('renderfarm').setLevel(logging.DEBUG)
