"""
Photo Triage - reclaim storage by finding and removing redundant photos.

Fingerprints a photo library with a difference hash, groups exact duplicates,
estimates how much space deleting them frees, and offers a month-by-month
keep/delete review with undo before anything is deleted.
"""

__version__ = "0.1.0"
__author__ = "Photo Triage Contributors"

from photo_triage.core.detector import DuplicateDetector, DuplicateGroup
from photo_triage.core.estimator import StorageEstimator
from photo_triage.core.index import Fingerprint, FingerprintIndex, FingerprintStore
from photo_triage.core.scanner import PhotoScanner
from photo_triage.core.triage import TriageSession

__all__ = [
    "DuplicateDetector",
    "DuplicateGroup",
    "Fingerprint",
    "FingerprintIndex",
    "FingerprintStore",
    "PhotoScanner",
    "StorageEstimator",
    "TriageSession",
    "__version__",
]
