"""
Action batch dispatch

Publishes TURN server power actions as one message to an external channel.
Dispatch is fire-and-forget and independent of pool and job state.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Sequence, Union

import redis.asyncio as redis

from ..core.config import RenderFarmConfig
from ..core.errors import DispatchError
from ..core.models import ActionBatch, ActionBatchItem

logger = logging.getLogger(__name__)


def build_batch(items: Sequence[Union[ActionBatchItem, Dict[str, Any]]]) -> ActionBatch:
    """Build a batch preserving input order; no I/O"""
    return ActionBatch.from_payload(items)


class MessageChannel(ABC):
    """One-way channel to the infrastructure agents"""

    @abstractmethod
    async def send(self, message: str) -> None:
        """Hand one message to the channel"""

    async def close(self) -> None:
        pass


class RedisMessageChannel(MessageChannel):
    """
    Redis list used as a work queue

    Each message is one RPUSH onto the queue key; consumers pop from the
    other end, so batch order is kept.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", queue: str = "renderfarm:turn-actions"):
        self.redis_url = redis_url
        self.queue = queue
        self.redis = redis.from_url(redis_url, decode_responses=True)

    @classmethod
    def from_config(cls, config: RenderFarmConfig) -> "RedisMessageChannel":
        return cls(redis_url=config.redis_url, queue=config.action_queue)

    async def send(self, message: str) -> None:
        await self.redis.rpush(self.queue, message)

    async def close(self) -> None:
        await self.redis.aclose()


class ActionBatchDispatcher:
    """Sends action batches; never waits for per-item execution"""

    def __init__(self, channel: MessageChannel):
        self.channel = channel
        self.batches_sent = 0

    def build_batch(self, items: Sequence[Union[ActionBatchItem, Dict[str, Any]]]) -> ActionBatch:
        return build_batch(items)

    async def dispatch(self, batch: ActionBatch) -> None:
        """Publish the whole batch as a single message, or raise DispatchError"""
        if not batch.items:
            logger.warning("Skipping empty action batch, nothing sent")
            return

        message = batch.to_json()
        try:
            await self.channel.send(message)
        except Exception as e:
            logger.error(f"Failed to dispatch action batch of {len(batch)} item(s): {e}")
            raise DispatchError(
                f"Messaging channel unreachable: {e}",
                data={"items": len(batch)},
                cause=e
            ) from e

        self.batches_sent += 1
        summary = ", ".join(f"{item.action.value}:{item.turn_server_id}" for item in batch.items)
        logger.info(f"Dispatched action batch with {len(batch)} item(s) [{summary}]")
