"""Strategy script lifecycle."""

from .script import Script

__all__ = ["Script"]
