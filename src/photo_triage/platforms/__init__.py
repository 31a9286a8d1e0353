"""Photo library backends."""

from photo_triage.platforms.base import (
    AssetDeleter,
    AssetRepository,
    AuthorizationState,
    Authorizer,
)
from photo_triage.platforms.local import LocalAuthorizer, LocalDeleter, LocalPhotoLibrary

__all__ = [
    "AssetDeleter",
    "AssetRepository",
    "AuthorizationState",
    "Authorizer",
    "LocalAuthorizer",
    "LocalDeleter",
    "LocalPhotoLibrary",
]
