"""
Exception classes for host-sync.

None of these are fatal to the process: the controller always has a path
back to Idle.

Exception Hierarchy:
    HostSyncError (base)
        HandshakeFailure - cannot attach to the local player
        PublishFailure - outbound channel rejected or lost an update
        RefreshFailure - credential renewal failed
        ControllerStateError - lifecycle call made in the wrong state
        CredentialsExpired - access token rejected while hosting
"""
from typing import Optional


class HostSyncError(Exception):
    """
    Base exception for all host-sync errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (status code, track id, ...).
    """

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class HandshakeFailure(HostSyncError):
    """
    Raised when the controller cannot acquire or attach to the local player.

    Reported to the caller of ``start()``; the controller stays Idle.
    """
    pass


class PublishFailure(HostSyncError):
    """
    Raised by the outbound channel when an update could not be delivered.

    Transient. The controller logs it and relies on the next observation to
    re-emit if the listeners have drifted.
    """
    pass


class RefreshFailure(HostSyncError):
    """Raised when the credential store could not renew the session token."""
    pass


class ControllerStateError(HostSyncError):
    """Raised when a lifecycle operation is invalid for the current state."""
    pass


class CredentialsExpired(HostSyncError):
    """Raised by a collaborator whose access token was rejected mid-session."""
    pass
