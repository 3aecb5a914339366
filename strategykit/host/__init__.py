"""
Host platform adapters.

- HostAPI: contract of the primitives the host injects
- SimulatedHost: in-memory implementation for tests and offline runs
"""

from .base import HostAPI
from .simulated import SimulatedHost

__all__ = [
    "HostAPI",
    "SimulatedHost",
]
