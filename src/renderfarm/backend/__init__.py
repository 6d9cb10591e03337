"""
Resource client contract and the in-memory simulation
"""

from .contracts import ResourceClient, backend_call
from .memory import InMemoryResourceClient

__all__ = ["ResourceClient", "InMemoryResourceClient", "backend_call"]
