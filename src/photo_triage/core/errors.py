"""Error kinds raised and reported by the triage engine."""

from typing import Optional


class PhotoTriageError(Exception):
    """Base class for all photo-triage errors."""


class IndexLoadError(PhotoTriageError):
    """The fingerprint index could not be used for detection."""


class IndexNotFound(IndexLoadError):
    """No fingerprint index has been saved yet."""

    def __init__(self, path):
        super().__init__(f"Fingerprint index not found: {path}")
        self.path = path


class IndexCorrupt(IndexLoadError):
    """The fingerprint index exists but cannot be read."""

    def __init__(self, path, reason: str):
        super().__init__(f"Fingerprint index is unreadable ({path}): {reason}")
        self.path = path
        self.reason = reason


class IndexVersionMismatch(IndexLoadError):
    """The fingerprint index was written by an incompatible scanner."""

    def __init__(self, found: int, expected: int):
        super().__init__(
            f"Fingerprint index format {found} does not match expected format {expected}"
        )
        self.found = found
        self.expected = expected


class AssetFetchFailed(PhotoTriageError):
    """An asset could not be looked up in the photo library."""

    def __init__(self, asset_id: str, reason: Optional[str] = None):
        message = f"Could not fetch asset {asset_id}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.asset_id = asset_id


class ImageRequestFailed(PhotoTriageError):
    """A rendered image could not be produced for an asset."""

    def __init__(self, asset_id: str, reason: Optional[str] = None):
        message = f"Image request failed for {asset_id}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.asset_id = asset_id


class DeletionFailed(PhotoTriageError):
    """The deletion collaborator refused or failed to delete assets."""


class ConcurrentOperationRejected(PhotoTriageError):
    """A scan or detection pass is already running."""

    def __init__(self, operation: str):
        super().__init__(f"A {operation} is already in progress")
        self.operation = operation


class AuthorizationInsufficient(PhotoTriageError):
    """Photo library access is not granted."""

    def __init__(self, state: str):
        super().__init__(f"Photo access not authorized ({state})")
        self.state = state
