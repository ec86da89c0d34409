"""Exception types raised by the remote client and the sync engine."""


class SyncError(Exception):
    """Base class for sync failures."""


class SyncInProgressError(SyncError):
    """Another run against the same remote is still in progress."""


class RemoteError(SyncError):
    """The hosting API answered with an error (or could not be reached)."""

    def __init__(self, message: str, status: int | None = None, path: str | None = None):
        super().__init__(message)
        self.status = status
        self.path = path


class AuthenticationError(RemoteError):
    """Token missing, invalid or expired (401)."""


class PermissionDeniedError(RemoteError):
    """Token lacks scope, or the branch is protected (403)."""


class RemoteNotFoundError(RemoteError):
    """A PUT/DELETE target (repo, branch or file) does not exist."""


class ExistsNeedsShaError(RemoteError):
    """A create hit an existing file; retry as an update with its current sha."""


class RemoteConflictError(RemoteError):
    """An update or delete named a sha that is no longer current."""


class IntegrityError(SyncError):
    """The remote did not confirm the content that was written."""
