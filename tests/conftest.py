"""Shared fixtures."""

import pytest

from photo_triage.core.index import FingerprintStore
from photo_triage.utils.config import Config


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(tmp_path / "config" / "config.json")


@pytest.fixture
def store(tmp_path) -> FingerprintStore:
    return FingerprintStore(tmp_path / "index" / "photo_fingerprints.json")
