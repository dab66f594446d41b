# src/secret_santa/services/__init__.py
"""Business logic services for the Secret Santa application.

Only modules free of settings and database imports are re-exported here;
``core.settings`` itself depends on the crypto helpers.
"""

from .crypto import CryptoService, DecryptionError
from .matcher import MatchResult, draw_assignment
from .validation import MessageValidationError, validate_message

__all__ = [
    "CryptoService",
    "DecryptionError",
    "MatchResult",
    "draw_assignment",
    "MessageValidationError",
    "validate_message",
]
