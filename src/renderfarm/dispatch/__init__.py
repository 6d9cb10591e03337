"""
TURN server action batch dispatch
"""

from .batch import ActionBatchDispatcher, MessageChannel, RedisMessageChannel, build_batch

__all__ = ["ActionBatchDispatcher", "MessageChannel", "RedisMessageChannel", "build_batch"]
