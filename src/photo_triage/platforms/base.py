"""
Collaborator interfaces for photo library backends.

The triage engine talks to a photo library only through these interfaces, so
that scanning, estimation and deletion can be driven by any backend (or by a
fake in tests).
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple

from PIL import Image

from photo_triage.core.index import AssetId


class AuthorizationState(Enum):
    """Photo library access level."""

    UNDETERMINED = "undetermined"
    DENIED = "denied"
    RESTRICTED = "restricted"
    LIMITED = "limited"
    AUTHORIZED = "authorized"


class ImageStatus(Enum):
    """Outcome of one image delivery."""

    DELIVERED = "delivered"
    DEGRADED = "degraded"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ImageResult:
    """A single delivery from an image request."""

    status: ImageStatus
    image: Optional[Image.Image] = None
    error: Optional[str] = None

    @classmethod
    def delivered(cls, image: Image.Image) -> "ImageResult":
        return cls(ImageStatus.DELIVERED, image=image)

    @classmethod
    def degraded(cls, image: Image.Image) -> "ImageResult":
        return cls(ImageStatus.DEGRADED, image=image)

    @classmethod
    def cancelled(cls) -> "ImageResult":
        return cls(ImageStatus.CANCELLED)

    @classmethod
    def failed(cls, error: str) -> "ImageResult":
        return cls(ImageStatus.FAILED, error=error)


@dataclass(frozen=True)
class AssetRecord:
    """Library metadata for one image asset."""

    local_identifier: AssetId
    creation_time: Optional[float]
    width: int
    height: int


@dataclass(frozen=True)
class DeletionResult:
    """Outcome of an all-or-nothing deletion request."""

    success: bool
    reason: Optional[str] = None
    deleted: Tuple[AssetId, ...] = ()

    @classmethod
    def ok(cls, deleted: Iterable[AssetId] = ()) -> "DeletionResult":
        return cls(success=True, deleted=tuple(deleted))

    @classmethod
    def failure(cls, reason: str) -> "DeletionResult":
        return cls(success=False, reason=reason)


class AssetRepository(ABC):
    """Read access to the photo library."""

    @abstractmethod
    def enumerate_assets(self) -> List[AssetRecord]:
        """All image assets, ordered by creation date ascending."""

    @abstractmethod
    def fetch_assets(self, identifiers: Iterable[AssetId]) -> List[AssetRecord]:
        """Assets for the given identifiers; unknown identifiers are omitted."""

    @abstractmethod
    def request_image(
        self,
        identifier: AssetId,
        target_size: Tuple[int, int],
        allow_network: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[ImageResult]:
        """
        Render a small image for an asset.

        Yields zero or more DEGRADED previews followed by exactly one final
        DELIVERED, CANCELLED or FAILED result.
        """

    @abstractmethod
    def resource_size(self, identifier: AssetId) -> Optional[int]:
        """Total on-disk size of the asset in bytes, or None when unknown."""


class AssetDeleter(ABC):
    """Removes assets from the photo library."""

    @abstractmethod
    def delete_assets(self, identifiers: Iterable[AssetId]) -> DeletionResult:
        """Delete every asset or none of them. Empty input succeeds."""


class Authorizer(ABC):
    """Reports and requests photo library access."""

    @abstractmethod
    def current_state(self) -> AuthorizationState:
        """Current access level."""

    @abstractmethod
    def request_authorization(self, grant: bool = True) -> AuthorizationState:
        """Ask for access and return the resulting state."""


def fetch_final_image(
    repository: AssetRepository,
    identifier: AssetId,
    target_size: Tuple[int, int],
    allow_network: bool = False,
    cancel_event: Optional[threading.Event] = None,
) -> ImageResult:
    """
    Request an image and wait for its final delivery.

    Degraded previews are ignored. A stream that ends without a final result
    is reported as a failure.
    """
    for result in repository.request_image(
        identifier,
        target_size,
        allow_network=allow_network,
        cancel_event=cancel_event,
    ):
        if result.status is ImageStatus.DEGRADED:
            continue
        return result
    return ImageResult.failed("no final image delivered")
