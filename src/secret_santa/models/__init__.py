# src/secret_santa/models/__init__.py
"""SQLAlchemy models for the Secret Santa application."""

from .chat_message import ChatMessage
from .exclusion import Exclusion
from .group import Group, Participant
from .user import User

__all__ = [
    "ChatMessage",
    "Exclusion",
    "Group", "Participant",
    "User",
]
