"""Exact-duplicate clustering over fingerprint hashes."""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from photo_triage.core.index import AssetId, Fingerprint

logger = logging.getLogger(__name__)

DEFAULT_CREATION_WINDOW = 5 * 60.0


@dataclass
class DuplicateGroup:
    """A kept representative plus the duplicates that could be deleted."""

    representative: Fingerprint
    duplicates: List[Fingerprint]
    estimated_bytes: Optional[int] = None
    per_asset_estimates: Dict[AssetId, int] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        if not self.duplicates:
            raise ValueError("A duplicate group needs at least one duplicate")
        if any(
            dup.local_identifier == self.representative.local_identifier
            for dup in self.duplicates
        ):
            raise ValueError("Representative cannot also be listed as a duplicate")

    @property
    def members(self) -> List[Fingerprint]:
        return [self.representative] + list(self.duplicates)

    @property
    def duplicate_ids(self) -> List[AssetId]:
        return [dup.local_identifier for dup in self.duplicates]


def creation_order_key(fingerprint: Fingerprint) -> Tuple[bool, float, str]:
    """Creation time ascending, missing times last, then identifier."""
    missing = fingerprint.creation_time is None
    return (
        missing,
        0.0 if missing else fingerprint.creation_time,
        fingerprint.local_identifier,
    )


def keep_order_key(fingerprint: Fingerprint) -> Tuple[int, bool, float, str]:
    """Larger area first, then earlier creation time, then identifier."""
    return (-fingerprint.area,) + creation_order_key(fingerprint)


class DuplicateDetector:
    """Groups fingerprints that share a hash, dimensions and capture moment."""

    def __init__(self, creation_window: float = DEFAULT_CREATION_WINDOW):
        """
        Initialize the detector.

        Args:
            creation_window: Largest gap in seconds between consecutive
                creation times inside one cluster
        """
        if creation_window < 0:
            raise ValueError("creation_window must not be negative")
        self.creation_window = creation_window

    def group_exact_duplicates(
        self,
        fingerprints: Iterable[Fingerprint],
        require_same_dimensions: bool = True,
    ) -> List[DuplicateGroup]:
        """
        Group fingerprints into exact-duplicate sets.

        Args:
            fingerprints: Fingerprints from the index
            require_same_dimensions: Only group assets with equal width and height

        Returns:
            Duplicate groups, ordered by their representative
        """
        buckets: Dict[int, List[Fingerprint]] = defaultdict(list)
        for fingerprint in fingerprints:
            buckets[fingerprint.dhash64].append(fingerprint)

        if not buckets:
            return []

        groups: List[DuplicateGroup] = []
        for candidates in buckets.values():
            if len(candidates) < 2:
                continue

            for subset in self._split_by_dimensions(candidates, require_same_dimensions):
                for cluster in self._cluster_by_creation_time(subset):
                    ordered = sorted(cluster, key=keep_order_key)
                    groups.append(
                        DuplicateGroup(representative=ordered[0], duplicates=ordered[1:])
                    )

        groups.sort(key=lambda group: keep_order_key(group.representative))
        logger.debug(
            f"Grouped {sum(len(g.duplicates) for g in groups)} duplicates "
            f"into {len(groups)} groups"
        )
        return groups

    def _split_by_dimensions(
        self, candidates: List[Fingerprint], require_same_dimensions: bool
    ) -> List[List[Fingerprint]]:
        if not require_same_dimensions:
            return [candidates]

        by_dimension: Dict[Tuple[int, int], List[Fingerprint]] = defaultdict(list)
        for candidate in candidates:
            by_dimension[(candidate.width, candidate.height)].append(candidate)
        return [subset for subset in by_dimension.values() if len(subset) >= 2]

    def _cluster_by_creation_time(
        self, items: List[Fingerprint]
    ) -> List[List[Fingerprint]]:
        """Greedy temporal clustering; clusters smaller than two are dropped."""
        clusters: List[List[Fingerprint]] = []
        current: List[Fingerprint] = []

        for candidate in sorted(items, key=creation_order_key):
            if current and not self._creation_times_close(current[-1], candidate):
                if len(current) >= 2:
                    clusters.append(current)
                current = []
            current.append(candidate)

        if len(current) >= 2:
            clusters.append(current)

        return clusters

    def _creation_times_close(self, lhs: Fingerprint, rhs: Fingerprint) -> bool:
        if lhs.creation_time is None and rhs.creation_time is None:
            return True
        if lhs.creation_time is None or rhs.creation_time is None:
            return False
        return abs(rhs.creation_time - lhs.creation_time) <= self.creation_window
