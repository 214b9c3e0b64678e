"""
errors.py - Error taxonomy for engine operations.

Protocol code raises these; the action executor converts them into
value-returned outcomes carrying an ErrorKind. DisconnectedError comes
from the world link and is fatal for the session.
"""

from enum import Enum

from integration.world_client import DisconnectedError


class ErrorKind(Enum):
    """Failure classes reported in action outcomes."""
    CAPABILITY_MISSING = "capability_missing"
    UNREACHABLE = "unreachable"
    BLOCKED = "blocked"
    TIMEOUT = "timeout"
    BUSY = "busy"
    DISCONNECTED = "disconnected"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    FAILED = "failed"


class EngineError(Exception):
    """Base class for failures that map onto an ErrorKind."""
    kind = ErrorKind.FAILED


class CapabilityMissingError(EngineError):
    """Wrong or absent tool/material. Never attempted, never retried."""
    kind = ErrorKind.CAPABILITY_MISSING


class UnreachableError(EngineError):
    """Target outside operational range."""
    kind = ErrorKind.UNREACHABLE


class BlockedError(EngineError):
    """Obstructed; retried through alternate headings and recovery."""
    kind = ErrorKind.BLOCKED


class NotFoundError(EngineError):
    """No candidate target exists."""
    kind = ErrorKind.NOT_FOUND


class InvalidRequestError(EngineError):
    """Malformed request."""
    kind = ErrorKind.INVALID_REQUEST


__all__ = [
    'ErrorKind',
    'EngineError',
    'CapabilityMissingError',
    'UnreachableError',
    'BlockedError',
    'NotFoundError',
    'InvalidRequestError',
    'DisconnectedError',
]
