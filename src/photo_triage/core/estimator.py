"""Storage savings estimation for duplicate groups."""

import dataclasses
import logging
from typing import Dict, Iterable, List, Optional

from photo_triage.core.detector import DuplicateGroup
from photo_triage.core.index import AssetId, Fingerprint
from photo_triage.platforms.base import AssetRepository

logger = logging.getLogger(__name__)

DEFAULT_JPEG_FACTOR = 0.25


class StorageEstimator:
    """Estimates how many bytes deleting each group's duplicates would free."""

    def __init__(self, jpeg_factor: float = DEFAULT_JPEG_FACTOR):
        """
        Initialize the estimator.

        Args:
            jpeg_factor: Bytes per pixel assumed when the real size is unknown
        """
        self.jpeg_factor = jpeg_factor

    def estimate_groups(
        self,
        groups: Iterable[DuplicateGroup],
        repository: Optional[AssetRepository] = None,
    ) -> List[DuplicateGroup]:
        """
        Annotate groups with per-duplicate and total byte estimates.

        The representative is never sized since it is kept.

        Args:
            groups: Groups from the duplicate detector
            repository: Library used to resolve real file sizes

        Returns:
            Enriched copies of the groups, in the same order

        Raises:
            TypeError: If an item is not a DuplicateGroup
        """
        enriched: List[DuplicateGroup] = []

        for group in groups:
            if not isinstance(group, DuplicateGroup):
                raise TypeError(f"Expected DuplicateGroup, got {type(group).__name__}")

            per_asset: Dict[AssetId, int] = {}
            for fingerprint in group.duplicates:
                per_asset[fingerprint.local_identifier] = self._resolve_size(
                    fingerprint, repository
                )

            enriched.append(
                dataclasses.replace(
                    group,
                    duplicates=list(group.duplicates),
                    estimated_bytes=sum(per_asset.values()),
                    per_asset_estimates=per_asset,
                )
            )

        return enriched

    def estimate_bytes_from_resolution(
        self, width: int, height: int, jpeg_factor: Optional[float] = None
    ) -> int:
        """Fallback size estimate from pixel dimensions."""
        factor = self.jpeg_factor if jpeg_factor is None else jpeg_factor
        pixels = max(width, 1) * max(height, 1)
        return int(pixels * factor)

    def _resolve_size(
        self, fingerprint: Fingerprint, repository: Optional[AssetRepository]
    ) -> int:
        if repository is not None:
            try:
                size = repository.resource_size(fingerprint.local_identifier)
            except Exception as e:
                logger.debug(
                    f"Size lookup failed for {fingerprint.local_identifier}: {e}"
                )
                size = None
            if size is not None:
                return size

        return self.estimate_bytes_from_resolution(fingerprint.width, fingerprint.height)


def total_estimated_bytes(groups: Iterable[DuplicateGroup]) -> int:
    """Sum of the groups' estimates, skipping groups not yet estimated."""
    return sum(g.estimated_bytes for g in groups if g.estimated_bytes is not None)
