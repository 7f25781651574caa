"""Database and wire models."""

from anisync.models.db import Base

__all__ = ["Base"]
