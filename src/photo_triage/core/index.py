"""Fingerprint types and the persisted fingerprint index."""

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NewType, Optional

from photo_triage.core.errors import IndexCorrupt, IndexNotFound, IndexVersionMismatch

logger = logging.getLogger(__name__)

AssetId = NewType("AssetId", str)

# Bump whenever the fingerprint schema or hashing parameters change.
INDEX_FORMAT_VERSION = 1

UINT64_MAX = (1 << 64) - 1


@dataclass(frozen=True)
class Fingerprint:
    """Identifier, metadata and 64-bit perceptual hash of one asset."""

    local_identifier: AssetId
    creation_time: Optional[float]
    width: int
    height: int
    dhash64: int

    @property
    def area(self) -> int:
        """Pixel area used to pick the asset worth keeping."""
        return self.width * self.height

    def to_dict(self) -> Dict[str, Any]:
        return {
            "localIdentifier": self.local_identifier,
            "creationTime": self.creation_time,
            "width": self.width,
            "height": self.height,
            "dHash64": self.dhash64,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fingerprint":
        """
        Build a fingerprint from its index record.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field has the wrong type or range
        """
        identifier = data["localIdentifier"]
        if not isinstance(identifier, str):
            raise ValueError(f"localIdentifier must be a string, got {identifier!r}")

        creation_time = data.get("creationTime")
        if creation_time is not None:
            if isinstance(creation_time, bool) or not isinstance(creation_time, (int, float)):
                raise ValueError(f"creationTime must be a number, got {creation_time!r}")
            creation_time = float(creation_time)

        width = _require_int(data["width"], "width")
        height = _require_int(data["height"], "height")
        value = _require_int(data["dHash64"], "dHash64")
        if not 0 <= value <= UINT64_MAX:
            raise ValueError(f"dHash64 out of range: {value}")

        return cls(
            local_identifier=AssetId(identifier),
            creation_time=creation_time,
            width=width,
            height=height,
            dhash64=value,
        )


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


@dataclass
class FingerprintIndex:
    """Versioned collection of fingerprints produced by one scan."""

    format_version: int
    generated_at: float
    fingerprints: List[Fingerprint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "formatVersion": self.format_version,
            "generatedAt": self.generated_at,
            "fingerprints": [fp.to_dict() for fp in self.fingerprints],
        }


class FingerprintStore:
    """Reads and atomically writes the fingerprint index file."""

    DEFAULT_FILENAME = "photo_fingerprints.json"

    def __init__(self, path: Path, format_version: int = INDEX_FORMAT_VERSION):
        """
        Initialize the store.

        Args:
            path: Location of the index file
            format_version: Version written by save() and required by load()
        """
        self.path = Path(path)
        self.format_version = format_version

    def exists(self) -> bool:
        return self.path.exists()

    def new_index(self, fingerprints: List[Fingerprint]) -> FingerprintIndex:
        """Wrap fingerprints in an index stamped with the current version and time."""
        return FingerprintIndex(
            format_version=self.format_version,
            generated_at=time.time(),
            fingerprints=list(fingerprints),
        )

    def save(self, index: FingerprintIndex) -> Path:
        """
        Persist the index atomically.

        The record is written to a temporary file next to the target and then
        renamed over it, so readers see either the old or the new index.

        Args:
            index: Index to persist

        Returns:
            Path of the written index
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(index.to_dict(), f, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

        logger.info(
            f"Saved {len(index.fingerprints)} fingerprints to {self.path} "
            f"(format {index.format_version})"
        )
        return self.path

    def load(self) -> FingerprintIndex:
        """
        Load the index from disk.

        Returns:
            Fully populated index

        Raises:
            IndexNotFound: If no index has been saved
            IndexCorrupt: If the file cannot be decoded
            IndexVersionMismatch: If the file was written with another format version
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise IndexNotFound(self.path) from None
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise IndexCorrupt(self.path, str(e)) from e

        if not isinstance(data, dict):
            raise IndexCorrupt(self.path, "top-level value is not an object")

        version = data.get("formatVersion")
        if isinstance(version, bool) or not isinstance(version, int):
            raise IndexCorrupt(self.path, f"invalid formatVersion {version!r}")
        if version != self.format_version:
            raise IndexVersionMismatch(found=version, expected=self.format_version)

        generated_at = data.get("generatedAt")
        if isinstance(generated_at, bool) or not isinstance(generated_at, (int, float)):
            raise IndexCorrupt(self.path, f"invalid generatedAt {generated_at!r}")

        records = data.get("fingerprints")
        if not isinstance(records, list):
            raise IndexCorrupt(self.path, "fingerprints is not a list")

        fingerprints: List[Fingerprint] = []
        for position, record in enumerate(records):
            if not isinstance(record, dict):
                raise IndexCorrupt(self.path, f"fingerprint #{position} is not an object")
            try:
                fingerprints.append(Fingerprint.from_dict(record))
            except (KeyError, ValueError) as e:
                raise IndexCorrupt(self.path, f"fingerprint #{position}: {e}") from e

        logger.debug(f"Loaded {len(fingerprints)} fingerprints from {self.path}")
        return FingerprintIndex(
            format_version=version,
            generated_at=float(generated_at),
            fingerprints=fingerprints,
        )
