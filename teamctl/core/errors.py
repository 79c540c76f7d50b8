"""
Error values raised across teamctl.

Every error carries a human readable message; the API layer returns that
message verbatim as ``{"error": "<message>"}``.
"""


class TeamCtlError(Exception):
    """Base class for all teamctl errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidNameError(TeamCtlError):
    """A team or agent name failed validation."""


class CapabilityError(TeamCtlError):
    """The teammate binary does not support agent teams."""


class MailboxLockTimeout(TeamCtlError):
    """Mailbox lock could not be acquired within the retry budget.

    Transient: the caller may retry the whole operation.
    """


class StorageError(TeamCtlError):
    """Reading or writing a team file failed."""


class SpawnError(TeamCtlError):
    """A teammate process could not be started."""


class NoActiveSession(TeamCtlError):
    """An operation needed a team session but none is initialized."""

    def __init__(self, message: str = "No active session. Call POST /session/init first."):
        super().__init__(message)
