"""Photo library backed by folders of image files on the local disk."""

import logging
import os
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from PIL import Image
from send2trash import send2trash

from photo_triage.core.errors import AssetFetchFailed, DeletionFailed, ImageRequestFailed
from photo_triage.core.index import AssetId
from photo_triage.platforms.base import (
    AssetDeleter,
    AssetRecord,
    AssetRepository,
    AuthorizationState,
    Authorizer,
    DeletionResult,
    ImageResult,
)
from photo_triage.utils.config import Config

logger = logging.getLogger(__name__)

# EXIF tags holding the capture time
EXIF_IFD_POINTER = 0x8769
EXIF_DATETIME_ORIGINAL = 36867
EXIF_DATETIME = 306
EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"


class LocalPhotoLibrary(AssetRepository):
    """Treats every image file below a set of root folders as an asset."""

    # Supported image extensions
    IMAGE_EXTENSIONS = {
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".bmp",
        ".webp",
        ".tiff",
        ".tif",
    }

    def __init__(
        self,
        roots: Sequence[Path],
        recursive: bool = True,
        skip_hidden: bool = True,
    ):
        """
        Initialize the library.

        Args:
            roots: Folders holding the photos
            recursive: Include subfolders
            skip_hidden: Ignore hidden files and folders
        """
        self.roots = [Path(root).expanduser() for root in roots]
        self.recursive = recursive
        self.skip_hidden = skip_hidden
        self._records: Dict[AssetId, AssetRecord] = {}

    def enumerate_assets(self) -> List[AssetRecord]:
        records: List[AssetRecord] = []
        for path in self.discover_images():
            try:
                records.append(self._read_record(path))
            except AssetFetchFailed as e:
                logger.warning(f"Skipping unreadable image: {e}")

        records.sort(
            key=lambda r: (
                r.creation_time is None,
                r.creation_time or 0.0,
                r.local_identifier,
            )
        )
        self._records = {r.local_identifier: r for r in records}
        logger.info(f"Found {len(records)} image assets in {len(self.roots)} folder(s)")
        return records

    def fetch_assets(self, identifiers: Iterable[AssetId]) -> List[AssetRecord]:
        records: List[AssetRecord] = []
        for identifier in identifiers:
            record = self._records.get(identifier)
            if record is None:
                try:
                    record = self._read_record(Path(identifier))
                except AssetFetchFailed as e:
                    logger.debug(str(e))
                    continue
            records.append(record)

        records.sort(key=lambda r: (r.creation_time is None, r.creation_time or 0.0))
        return records

    def request_image(
        self,
        identifier: AssetId,
        target_size: Tuple[int, int],
        allow_network: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[ImageResult]:
        # Every asset is local, so allow_network has nothing to enable here.
        if cancel_event is not None and cancel_event.is_set():
            yield ImageResult.cancelled()
            return

        try:
            rendered = self._render(identifier, target_size)
        except ImageRequestFailed as e:
            yield ImageResult.failed(str(e))
            return

        if cancel_event is not None and cancel_event.is_set():
            yield ImageResult.cancelled()
            return

        yield ImageResult.delivered(rendered)

    @staticmethod
    def _render(identifier: AssetId, target_size: Tuple[int, int]) -> Image.Image:
        try:
            with Image.open(identifier) as img:
                img.draft("RGB", target_size)
                img.thumbnail(target_size)
                return img.copy()
        except (OSError, ValueError) as e:
            raise ImageRequestFailed(identifier, str(e)) from e

    def resource_size(self, identifier: AssetId) -> Optional[int]:
        try:
            return Path(identifier).stat().st_size
        except OSError:
            return None

    def discover_images(self) -> List[Path]:
        """All image files under the roots, sorted by path."""
        images = set()
        for root in self.roots:
            if not root.is_dir():
                logger.warning(f"Library folder not found: {root}")
                continue
            for path in self._discover_files(root):
                if path.suffix.lower() in self.IMAGE_EXTENSIONS:
                    images.add(path.resolve())
        return sorted(images)

    def _discover_files(self, directory: Path) -> List[Path]:
        files: List[Path] = []

        try:
            if self.recursive:
                for root, dirs, filenames in os.walk(directory):
                    root_path = Path(root)

                    if self.skip_hidden:
                        dirs[:] = [d for d in dirs if not d.startswith(".")]

                    # Skip symlinks to avoid loops
                    dirs[:] = [d for d in dirs if not (root_path / d).is_symlink()]

                    for filename in filenames:
                        if self.skip_hidden and filename.startswith("."):
                            continue
                        file_path = root_path / filename
                        if not file_path.is_symlink():
                            files.append(file_path)
            else:
                for item in directory.iterdir():
                    if not item.is_file() or item.is_symlink():
                        continue
                    if self.skip_hidden and item.name.startswith("."):
                        continue
                    files.append(item)

        except PermissionError as e:
            logger.warning(f"Permission denied accessing directory: {e}")

        return files

    def _read_record(self, path: Path) -> AssetRecord:
        try:
            with Image.open(path) as img:
                width, height = img.size
                created = _exif_creation_time(img)
            if created is None:
                created = path.stat().st_mtime
        except (OSError, ValueError) as e:
            raise AssetFetchFailed(str(path), str(e)) from e

        return AssetRecord(
            local_identifier=AssetId(str(path)),
            creation_time=created,
            width=width,
            height=height,
        )


def _exif_creation_time(img: Image.Image) -> Optional[float]:
    """Capture time from EXIF as seconds since the epoch, if present."""
    try:
        exif = img.getexif()
    except Exception as e:
        logger.debug(f"Could not read EXIF: {e}")
        return None

    raw = exif.get_ifd(EXIF_IFD_POINTER).get(EXIF_DATETIME_ORIGINAL) or exif.get(
        EXIF_DATETIME
    )
    if not isinstance(raw, str):
        return None

    try:
        return datetime.strptime(raw.strip("\x00 "), EXIF_DATE_FORMAT).timestamp()
    except ValueError:
        return None


class LocalDeleter(AssetDeleter):
    """
    Deletes image files all-or-nothing.

    Files are first moved into a staging folder. If any move fails, every
    staged file is moved back and the deletion fails as a whole. Staged files
    are then sent to the recycle bin or removed permanently.
    """

    def __init__(
        self,
        staging_dir: Path,
        use_recycle_bin: bool = True,
        config: Optional[Config] = None,
    ):
        """
        Initialize the deleter.

        Args:
            staging_dir: Folder used to stage files during deletion
            use_recycle_bin: Move to recycle bin instead of deleting permanently
            config: Configuration providing protected folders
        """
        self.staging_dir = Path(staging_dir)
        self.use_recycle_bin = use_recycle_bin
        self.config = config

    def delete_assets(self, identifiers: Iterable[AssetId]) -> DeletionResult:
        paths = [Path(i) for i in dict.fromkeys(identifiers)]
        if not paths:
            return DeletionResult.ok()

        try:
            for path in paths:
                self._check_deletable(path)
            staged = self._stage(paths)
        except DeletionFailed as e:
            logger.warning(str(e))
            return DeletionResult.failure(str(e))

        for original, staged_path in staged:
            try:
                if self.use_recycle_bin:
                    send2trash(str(staged_path))
                else:
                    staged_path.unlink()
            except OSError as e:
                # The originals are already gone from the library at this point.
                logger.error(f"Failed to discard staged file {staged_path}: {e}")

        if staged:
            self._remove_operation_dir(staged[0][1].parent)

        logger.info(
            f"Deleted {len(staged)} files "
            f"({'recycle bin' if self.use_recycle_bin else 'permanent'})"
        )
        return DeletionResult.ok(AssetId(str(original)) for original, _ in staged)

    def _check_deletable(self, path: Path) -> None:
        if not path.is_file():
            raise DeletionFailed(f"File not found: {path}")
        if self.config is not None and self.config.is_path_protected(path):
            raise DeletionFailed(f"File is in a protected folder: {path}")

    def _stage(self, paths: List[Path]) -> List[Tuple[Path, Path]]:
        """
        Move every file into a fresh operation folder.

        Raises:
            DeletionFailed: If any file cannot be moved; already staged files
                are moved back first
        """
        operation_dir = self.staging_dir / datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        try:
            operation_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DeletionFailed(f"Cannot create staging folder: {e}") from e

        staged: List[Tuple[Path, Path]] = []
        for position, path in enumerate(paths):
            # Prefix keeps equal filenames from different folders apart.
            staged_path = operation_dir / f"{position:06d}_{path.name}"
            try:
                shutil.move(str(path), str(staged_path))
            except OSError as e:
                logger.error(f"Failed to stage {path}: {e}")
                self._rollback(staged)
                self._remove_operation_dir(operation_dir)
                raise DeletionFailed(f"Could not delete {path}: {e}") from e
            staged.append((path, staged_path))
            logger.debug(f"Staged: {path} -> {staged_path}")

        return staged

    def _rollback(self, staged: List[Tuple[Path, Path]]) -> None:
        for original, staged_path in reversed(staged):
            try:
                shutil.move(str(staged_path), str(original))
            except OSError as e:
                logger.error(f"Could not restore {original} from {staged_path}: {e}")

    @staticmethod
    def _remove_operation_dir(operation_dir: Path) -> None:
        try:
            if operation_dir.exists() and not any(operation_dir.iterdir()):
                operation_dir.rmdir()
        except OSError as e:
            logger.warning(f"Failed to clean {operation_dir}: {e}")


class LocalAuthorizer(Authorizer):
    """Access is the user's recorded consent plus folder permissions."""

    def __init__(self, config: Config):
        self.config = config

    def current_state(self) -> AuthorizationState:
        consent = self.config.get("library.consent")
        if consent is None:
            return AuthorizationState.UNDETERMINED
        if not consent:
            return AuthorizationState.DENIED

        roots = [Path(r).expanduser() for r in self.config.get("library.roots", [])]
        if not roots:
            return AuthorizationState.UNDETERMINED
        if any(not (root.is_dir() and os.access(root, os.R_OK | os.X_OK)) for root in roots):
            return AuthorizationState.RESTRICTED
        if any(not os.access(root, os.W_OK) for root in roots):
            return AuthorizationState.LIMITED
        return AuthorizationState.AUTHORIZED

    def request_authorization(self, grant: bool = True) -> AuthorizationState:
        self.config.set("library.consent", bool(grant))
        state = self.current_state()
        logger.info(f"Photo library authorization: {state.value}")
        return state
