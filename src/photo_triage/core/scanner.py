"""Scan pass that fingerprints every image in the library."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from photo_triage.core.errors import IndexLoadError
from photo_triage.core.hasher import dhash64
from photo_triage.core.index import AssetId, Fingerprint, FingerprintStore
from photo_triage.platforms.base import (
    AssetRecord,
    AssetRepository,
    ImageStatus,
    fetch_final_image,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

DEFAULT_TARGET_SIZE = (18, 18)


@dataclass(frozen=True)
class ScanResult:
    """Summary of one scan pass."""

    total: int
    indexed: int
    skipped: int
    reused: int
    saved_path: Path
    cancelled: bool = False
    carried: int = 0


class PhotoScanner:
    """Builds the fingerprint index from an asset repository."""

    def __init__(
        self,
        repository: AssetRepository,
        store: FingerprintStore,
        target_size: Tuple[int, int] = DEFAULT_TARGET_SIZE,
        allow_network: bool = False,
    ):
        """
        Initialize the scanner.

        Args:
            repository: Photo library to enumerate and render
            store: Destination of the fingerprint index
            target_size: Size of the rendered image that gets hashed
            allow_network: Let the library download assets that are not local
        """
        self.repository = repository
        self.store = store
        self.target_size = tuple(target_size)
        self.allow_network = allow_network

    @property
    def index_format_version(self) -> int:
        return self.store.format_version

    def build_index(
        self,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        resume: bool = False,
    ) -> ScanResult:
        """
        Fingerprint every asset and save the index.

        Args:
            progress: Called with (done, total) after each asset
            cancel_event: Stops the scan at the next asset when set
            resume: Reuse fingerprints from a compatible existing index

        Returns:
            Scan summary. A cancelled scan saves what it completed together
            with the earlier fingerprints of the assets it never reached.
        """
        assets = self.repository.enumerate_assets()
        total = len(assets)
        previous = self._previous_fingerprints() if resume else {}

        logger.info(f"Scanning {total} assets ({len(previous)} reusable fingerprints)")

        stored: List[Fingerprint] = []
        visited: Set[AssetId] = set()
        skipped = 0
        reused = 0

        for done, asset in enumerate(assets, start=1):
            if _is_set(cancel_event):
                break

            known = previous.get(asset.local_identifier)
            if known is not None and self._still_matches(known, asset):
                stored.append(known)
                reused += 1
            else:
                fingerprint = self._fingerprint(asset, cancel_event)
                if fingerprint is None and _is_set(cancel_event):
                    # Interrupted mid-request; the asset counts as not reached.
                    break
                if fingerprint is None:
                    skipped += 1
                else:
                    stored.append(fingerprint)

            visited.add(asset.local_identifier)
            if progress is not None:
                progress(done, total)

        cancelled = _is_set(cancel_event)
        carried = 0
        if cancelled:
            if not resume:
                previous = self._previous_fingerprints()
            stored, carried = self._carry_forward(assets, stored, visited, previous)

        saved_path = self.store.save(self.store.new_index(stored))

        if cancelled:
            logger.info(
                f"Scan cancelled after {len(visited)} of {total} assets; "
                f"kept {carried} earlier fingerprints"
            )
        else:
            logger.info(
                f"Indexed {len(stored)} / {total} assets "
                f"({skipped} skipped, {reused} reused)"
            )

        return ScanResult(
            total=total,
            indexed=len(stored),
            skipped=skipped,
            reused=reused,
            saved_path=saved_path,
            cancelled=cancelled,
            carried=carried,
        )

    def _carry_forward(
        self,
        assets: List[AssetRecord],
        stored: List[Fingerprint],
        visited: Set[AssetId],
        previous: Dict[AssetId, Fingerprint],
    ) -> Tuple[List[Fingerprint], int]:
        """Merge in previous fingerprints of unvisited assets that still match."""
        fresh = {fp.local_identifier: fp for fp in stored}
        merged: List[Fingerprint] = []
        carried = 0
        for asset in assets:
            identifier = asset.local_identifier
            if identifier in fresh:
                merged.append(fresh[identifier])
            elif identifier not in visited:
                known = previous.get(identifier)
                if known is not None and self._still_matches(known, asset):
                    merged.append(known)
                    carried += 1
        return merged, carried

    def _fingerprint(
        self, asset: AssetRecord, cancel_event: Optional[threading.Event]
    ) -> Optional[Fingerprint]:
        try:
            result = fetch_final_image(
                self.repository,
                asset.local_identifier,
                self.target_size,
                allow_network=self.allow_network,
                cancel_event=cancel_event,
            )
        except Exception as e:
            logger.warning(f"Skipping {asset.local_identifier}: {e}")
            return None

        if result.status is ImageStatus.CANCELLED:
            logger.debug(f"Image request cancelled for {asset.local_identifier}")
            return None
        if result.status is not ImageStatus.DELIVERED:
            logger.warning(f"Skipping {asset.local_identifier}: {result.error}")
            return None

        return Fingerprint(
            local_identifier=asset.local_identifier,
            creation_time=asset.creation_time,
            width=asset.width,
            height=asset.height,
            dhash64=dhash64(result.image),
        )

    def _previous_fingerprints(self) -> Dict[AssetId, Fingerprint]:
        try:
            index = self.store.load()
        except IndexLoadError as e:
            logger.info(f"Not resuming from existing index: {e}")
            return {}
        return {fp.local_identifier: fp for fp in index.fingerprints}

    @staticmethod
    def _still_matches(fingerprint: Fingerprint, asset: AssetRecord) -> bool:
        return (
            fingerprint.width == asset.width
            and fingerprint.height == asset.height
            and fingerprint.creation_time == asset.creation_time
        )


def _is_set(event: Optional[threading.Event]) -> bool:
    return event is not None and event.is_set()
