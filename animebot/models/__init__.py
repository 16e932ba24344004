"""Database access layer for the subscription bot."""

from . import common
from . import subscriptions

__all__ = [
    "common",
    "subscriptions",
]
