"""Database models for the durable account store."""

from .base import Base
from .google import GoogleAccount

__all__ = [
    "Base",
    "GoogleAccount",
]
