"""Exceptions raised by the snapshot store and the FTP uploader.

Store errors and transfer errors propagate unchanged up to the backup
orchestrator, which is the only place they are caught.
"""


class SnapshipError(Exception):
    """Base exception for snapship errors."""

    pass


class StoreError(SnapshipError):
    """Base exception for SQLite store errors."""

    pass


class SchemaError(StoreError):
    """Raised when the engine rejects schema DDL."""

    pass


class WriteError(StoreError):
    """Raised when a batch insert fails and has been rolled back."""

    pass


class QueryError(StoreError):
    """Raised when a read query fails at the engine level."""

    pass


class BackupError(StoreError):
    """Raised when an online backup does not reach a clean completion state."""

    def __init__(self, destination, reason):
        self.destination = str(destination)
        self.reason = reason
        super().__init__(f"Backup to {self.destination} failed: {reason}")


class TransferError(SnapshipError):
    """Base exception for FTP transfer errors."""

    pass


class LocalFileMissing(TransferError):
    """Raised when the file to upload does not exist or cannot be opened."""

    def __init__(self, path, message=None):
        self.path = str(path)
        super().__init__(message or f"Local file does not exist: {self.path}")


class ConnectionInitFailed(TransferError):
    """Raised when an FTP connection object cannot be constructed."""

    pass


class AttemptFailed(TransferError):
    """A single upload attempt failed in a way worth retrying."""

    pass


class UploadFailed(TransferError):
    """Raised after the final upload attempt failed.

    Carries the error text of the most recent attempt only.
    """

    def __init__(self, detail, attempts=None):
        self.detail = detail
        self.attempts = attempts
        super().__init__(f"FTP upload failed: {detail}")
