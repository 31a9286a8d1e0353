"""Configuration and logging helpers."""

from photo_triage.utils.config import Config
from photo_triage.utils.logger import setup_logger

__all__ = ["Config", "setup_logger"]
