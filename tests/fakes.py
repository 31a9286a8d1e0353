"""In-memory photo library, deleter and image helpers for tests."""

import threading
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from PIL import Image

from photo_triage.core.index import AssetId
from photo_triage.platforms.base import (
    AssetDeleter,
    AssetRecord,
    AssetRepository,
    DeletionResult,
    ImageResult,
)


def gradient_image(size=(64, 48), reverse=False) -> Image.Image:
    """Horizontal gradient; brightness falls left to right unless reversed."""
    width, height = size
    img = Image.new("L", size)
    for x in range(width):
        value = int(255 * x / (width - 1))
        if not reverse:
            value = 255 - value
        for y in range(height):
            img.putpixel((x, y), value)
    return img


class FakeRepository(AssetRepository):
    """In-memory library with scripted image outcomes."""

    def __init__(self, records: List[AssetRecord], images=None, sizes=None):
        self.records = list(records)
        self.images: Dict[str, List[ImageResult]] = images or {}
        self.sizes: Dict[str, Optional[int]] = sizes or {}
        self.requested: List[str] = []
        self.on_request = None

    def enumerate_assets(self) -> List[AssetRecord]:
        return list(self.records)

    def fetch_assets(self, identifiers: Iterable[AssetId]) -> List[AssetRecord]:
        wanted = set(identifiers)
        return [r for r in self.records if r.local_identifier in wanted]

    def request_image(
        self,
        identifier: AssetId,
        target_size: Tuple[int, int],
        allow_network: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[ImageResult]:
        self.requested.append(identifier)
        if self.on_request is not None:
            self.on_request(identifier)
        if cancel_event is not None and cancel_event.is_set():
            yield ImageResult.cancelled()
            return
        results = self.images.get(identifier)
        if results is None:
            yield ImageResult.delivered(gradient_image())
            return
        yield from results

    def resource_size(self, identifier: AssetId) -> Optional[int]:
        value = self.sizes.get(identifier)
        if isinstance(value, Exception):
            raise value
        return value


class FakeDeleter(AssetDeleter):
    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.calls: List[List[AssetId]] = []

    def delete_assets(self, identifiers: Iterable[AssetId]) -> DeletionResult:
        ids = list(identifiers)
        self.calls.append(ids)
        if self.fail_with:
            return DeletionResult.failure(self.fail_with)
        return DeletionResult.ok(ids)


def record(identifier: str, created: Optional[float] = 1000.0, width=100, height=100):
    return AssetRecord(
        local_identifier=AssetId(identifier),
        creation_time=created,
        width=width,
        height=height,
    )


