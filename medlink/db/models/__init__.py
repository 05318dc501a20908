"""
SQLAlchemy database models.

- base: Base declarative class
- relationship: connection requests, follow edges and notifications

Import any model from this module:
    from medlink.db.models import Connection, Follow, ActorNotification
"""

# Base class (must be imported first)
from .base import Base

# Relationship models
from .relationship import Connection, Follow, ActorNotification

__all__ = [
    "Base",
    "Connection",
    "Follow",
    "ActorNotification",
]
