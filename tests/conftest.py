"""
Global pytest configuration and fixtures for renderfarm tests
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Add the source tree to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from renderfarm.backend.memory import InMemoryResourceClient  # noqa: E402
from renderfarm.core.config import RenderFarmConfig  # noqa: E402
from renderfarm.dispatch.batch import MessageChannel  # noqa: E402

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Suppress noisy logs during testing
logging.getLogger('redis').setLevel(logging.WARNING)

CONFIG_ENV_VARS = [
    'RENDERFARM_BATCH_ACCOUNT_URL',
    'RENDERFARM_BATCH_ACCOUNT_NAME',
    'RENDERFARM_BATCH_ACCOUNT_KEY',
    'RENDERFARM_TURN_VM_SIZE',
    'RENDERFARM_RENDERING_VM_SIZE',
    'RENDERFARM_MAX_POOL_NODES',
    'RENDERFARM_SLOTS_PER_NODE',
    'RENDERFARM_CAPACITY_THRESHOLD',
    'RENDERFARM_POLL_INTERVAL',
    'RENDERFARM_TASK_SCRIPT',
    'RENDERFARM_SIGNALING_URL',
    'RENDERFARM_ACTION_QUEUE',
    'REDIS_URL',
    'LOG_LEVEL',
]


class RecordingChannel(MessageChannel):
    """Message channel that keeps every message it was handed"""

    def __init__(self, failure: Optional[Exception] = None):
        self.messages: List[str] = []
        self.failure = failure
        self.closed = False

    async def send(self, message: str) -> None:
        if self.failure is not None:
            raise self.failure
        self.messages.append(message)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the host environment out of configuration loading"""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    """Valid configuration with fast polling"""
    return RenderFarmConfig(
        batch_account_url="https://renderfarm.westeurope.batch.azure.com",
        batch_account_name="renderfarm",
        batch_account_key="c2VjcmV0",
        poll_interval=0.01,
        pool_timeout=2.0,
        task_timeout=2.0,
        signaling_server_url="https://signaling.example.com",
    )


@pytest.fixture
def backend():
    """Simulated batch backend that settles after one status read"""
    return InMemoryResourceClient()


@pytest.fixture
def channel():
    return RecordingChannel()
