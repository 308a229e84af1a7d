"""Progress reporting for parse and import runs."""

from joconde_sync.pipeline.progress_tracker import (
    PARSING_STAGE,
    ProgressTracker,
    notify_progress,
)

__all__ = ["PARSING_STAGE", "ProgressTracker", "notify_progress"]
