"""Terminal rendering of detection results and triage sessions."""

from photo_triage.ui.review import ReviewUI, format_bytes

__all__ = ["ReviewUI", "format_bytes"]
