"""Fingerprinting, duplicate detection, estimation and triage."""

from photo_triage.core.detector import DuplicateDetector, DuplicateGroup
from photo_triage.core.estimator import StorageEstimator
from photo_triage.core.hasher import dhash64, hamming_distance
from photo_triage.core.index import Fingerprint, FingerprintIndex, FingerprintStore
from photo_triage.core.scanner import PhotoScanner
from photo_triage.core.triage import Decision, TriageSession

__all__ = [
    "Decision",
    "DuplicateDetector",
    "DuplicateGroup",
    "Fingerprint",
    "FingerprintIndex",
    "FingerprintStore",
    "PhotoScanner",
    "StorageEstimator",
    "TriageSession",
    "dhash64",
    "hamming_distance",
]
