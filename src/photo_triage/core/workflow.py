"""
Orchestration of scan, detection, deletion and month triage.

Each controller returns explicit outcome objects instead of publishing
progress through shared fields, and rejects overlapping runs of the same
operation rather than queuing them.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional

from photo_triage.core.detector import DuplicateDetector, DuplicateGroup
from photo_triage.core.errors import (
    AuthorizationInsufficient,
    ConcurrentOperationRejected,
    IndexCorrupt,
    IndexNotFound,
    IndexVersionMismatch,
)
from photo_triage.core.estimator import StorageEstimator, total_estimated_bytes
from photo_triage.core.index import AssetId, FingerprintStore
from photo_triage.core.scanner import PhotoScanner, ProgressCallback, ScanResult
from photo_triage.core.triage import SwipeAsset, SwipeMonth, TriageSession, build_months
from photo_triage.platforms.base import (
    AssetDeleter,
    AssetRepository,
    AuthorizationState,
    DeletionResult,
)

logger = logging.getLogger(__name__)

SCAN_ALLOWED_STATES = {AuthorizationState.AUTHORIZED, AuthorizationState.LIMITED}


def can_scan(state: AuthorizationState) -> bool:
    """Only full or limited access allows a scan."""
    return state in SCAN_ALLOWED_STATES


def ensure_authorized(state: AuthorizationState) -> None:
    """
    Raises:
        AuthorizationInsufficient: If the state does not allow reading the library
    """
    if not can_scan(state):
        raise AuthorizationInsufficient(state.value)


class SingleFlight:
    """Non-blocking guard that lets one run of an operation through at a time."""

    def __init__(self, operation: str):
        self.operation = operation
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def claim(self) -> Iterator[None]:
        """
        Hold the guard for the duration of the block.

        Raises:
            ConcurrentOperationRejected: If another run holds the guard
        """
        if not self._lock.acquire(blocking=False):
            raise ConcurrentOperationRejected(self.operation)
        try:
            yield
        finally:
            self._lock.release()


# Shared by every controller in the process.
SCAN_FLIGHT = SingleFlight("scan")
DETECTION_FLIGHT = SingleFlight("detection")


class ScanStatus(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    UNAUTHORIZED = "unauthorized"
    BUSY = "busy"
    FAILED = "failed"


@dataclass
class ScanOutcome:
    status: ScanStatus
    message: str
    result: Optional[ScanResult] = None


class ScanController:
    """Starts scans, gated on authorization and limited to one per process."""

    def __init__(self, scanner: PhotoScanner, flight: Optional[SingleFlight] = None):
        self.scanner = scanner
        self._flight = flight or SCAN_FLIGHT

    @property
    def is_scanning(self) -> bool:
        return self._flight.busy

    def start_scan(
        self,
        authorization: AuthorizationState,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        resume: bool = False,
    ) -> ScanOutcome:
        if not can_scan(authorization):
            return ScanOutcome(ScanStatus.UNAUTHORIZED, "Photo access not authorized.")

        try:
            with self._flight.claim():
                result = self.scanner.build_index(
                    progress=progress, cancel_event=cancel_event, resume=resume
                )
        except ConcurrentOperationRejected:
            return ScanOutcome(ScanStatus.BUSY, "A scan is already running.")
        except OSError as e:
            logger.error(f"Scan failed: {e}")
            return ScanOutcome(ScanStatus.FAILED, f"Scan failed: {e}")

        if result.cancelled:
            return ScanOutcome(
                ScanStatus.CANCELLED,
                f"Scan cancelled. Indexed {result.indexed} / {result.total} assets",
                result,
            )
        return ScanOutcome(
            ScanStatus.COMPLETED,
            f"Indexed {result.indexed} / {result.total} assets",
            result,
        )


class DetectionStatus(Enum):
    OK = "ok"
    NO_INDEX = "no_index"
    STALE_INDEX = "stale_index"
    CORRUPT_INDEX = "corrupt_index"
    BUSY = "busy"


@dataclass
class DetectionReport:
    status: DetectionStatus
    message: str
    groups: List[DuplicateGroup] = field(default_factory=list)
    total_estimated_bytes: int = 0

    def estimated_bytes_for(self, identifier: AssetId) -> Optional[int]:
        for group in self.groups:
            if identifier in group.per_asset_estimates:
                return group.per_asset_estimates[identifier]
        return None


class DetectionController:
    """Loads the index, clusters duplicates and estimates savings."""

    def __init__(
        self,
        store: FingerprintStore,
        repository: Optional[AssetRepository] = None,
        detector: Optional[DuplicateDetector] = None,
        estimator: Optional[StorageEstimator] = None,
        deleter: Optional[AssetDeleter] = None,
        flight: Optional[SingleFlight] = None,
    ):
        self.store = store
        self.repository = repository
        self.detector = detector or DuplicateDetector()
        self.estimator = estimator or StorageEstimator()
        self.deleter = deleter
        self._flight = flight or DETECTION_FLIGHT

    @property
    def supported_index_version(self) -> int:
        return self.store.format_version

    def load_duplicates(self, require_same_dimensions: bool = True) -> DetectionReport:
        try:
            with self._flight.claim():
                return self._detect(require_same_dimensions)
        except ConcurrentOperationRejected:
            return DetectionReport(DetectionStatus.BUSY, "Detection is already running.")

    def _detect(self, require_same_dimensions: bool) -> DetectionReport:
        try:
            index = self.store.load()
        except IndexNotFound:
            return DetectionReport(
                DetectionStatus.NO_INDEX, "No fingerprint index found. Run a scan first."
            )
        except IndexVersionMismatch as e:
            logger.info(str(e))
            return DetectionReport(
                DetectionStatus.STALE_INDEX, "Fingerprint index is outdated. Run a new scan."
            )
        except IndexCorrupt as e:
            logger.warning(str(e))
            return DetectionReport(
                DetectionStatus.CORRUPT_INDEX,
                "Fingerprint index is unreadable. Run a new scan.",
            )

        groups = self.detector.group_exact_duplicates(
            index.fingerprints, require_same_dimensions=require_same_dimensions
        )
        enriched = self.estimator.estimate_groups(groups, self.repository)

        if enriched:
            message = f"Found {len(enriched)} duplicate groups."
        else:
            message = "No exact duplicates detected."
        logger.info(message)

        return DetectionReport(
            DetectionStatus.OK,
            message,
            groups=enriched,
            total_estimated_bytes=total_estimated_bytes(enriched),
        )

    def delete_assets(
        self, identifiers: Iterable[AssetId], require_same_dimensions: bool = True
    ) -> "DeletionOutcome":
        """
        Delete a selection of duplicates and refresh the detection results.

        Raises:
            ValueError: If the controller has no deleter
        """
        if self.deleter is None:
            raise ValueError("DetectionController was created without a deleter")

        ids = list(dict.fromkeys(identifiers))
        if not ids:
            return DeletionOutcome(DeletionResult.ok(), "No assets selected.")

        try:
            result = self.deleter.delete_assets(ids)
        except Exception as e:
            logger.error(f"Deleter raised while deleting {len(ids)} assets: {e}")
            result = DeletionResult.failure(str(e))
        if not result.success:
            return DeletionOutcome(result, f"Deletion failed: {result.reason}")

        deletion_message = f"Requested deletion for {len(ids)} assets."
        report = self.load_duplicates(require_same_dimensions)
        message = deletion_message
        if report.message:
            message = f"{deletion_message}\n{report.message}"
        return DeletionOutcome(result, message, report)


@dataclass
class DeletionOutcome:
    result: DeletionResult
    message: str
    report: Optional[DetectionReport] = None


@dataclass(frozen=True)
class MonthSummary:
    id: str
    title: str
    total_count: int
    pending_deletion_count: int


class TriageWorkspace:
    """Holds the months of one detection run and a review session per month."""

    def __init__(self, repository: AssetRepository):
        self.repository = repository
        self._months: Dict[str, SwipeMonth] = {}
        self._order: List[str] = []
        self._sessions: Dict[str, TriageSession] = {}

    def load_months(self) -> List[MonthSummary]:
        records = self.repository.enumerate_assets()
        months = build_months(SwipeAsset.from_record(r) for r in records)
        self._months = {m.id: m for m in months}
        self._order = [m.id for m in months]
        self._sessions = {}
        logger.info(f"Partitioned {len(records)} assets into {len(months)} months")
        return self.months()

    def months(self) -> List[MonthSummary]:
        summaries = []
        for month_id in self._order:
            month = self._months[month_id]
            session = self._sessions.get(month_id)
            summaries.append(
                MonthSummary(
                    id=month.id,
                    title=month.title,
                    total_count=len(month.assets),
                    pending_deletion_count=session.pending_deletion_count if session else 0,
                )
            )
        return summaries

    def month(self, month_id: str) -> Optional[SwipeMonth]:
        return self._months.get(month_id)

    def session(self, month_id: str) -> Optional[TriageSession]:
        """Review session for a month, started on first use."""
        if month_id not in self._months:
            return None
        session = self._sessions.get(month_id)
        if session is None:
            session = TriageSession(self._months[month_id])
            session.start()
            self._sessions[month_id] = session
        return session
