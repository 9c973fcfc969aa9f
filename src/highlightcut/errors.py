"""Exception hierarchy and stable error codes.

Tool entry points convert these into ``ToolResult`` values; they never
escape the tool surface.
"""
from __future__ import annotations

EXECUTION_CANCELLED = "EXECUTION_CANCELLED"

NO_VIDEO_ASSET = "NO_VIDEO_ASSET"
VIDEO_ASSET_NOT_FOUND = "VIDEO_ASSET_NOT_FOUND"
NO_TRANSCRIPT = "NO_TRANSCRIPT"
NO_CHUNKS = "NO_CHUNKS"
NO_WORDS = "NO_WORDS"

SCORE_HIGHLIGHTS_FAILED = "SCORE_HIGHLIGHTS_FAILED"
VALIDATE_HIGHLIGHTS_VISUAL_FAILED = "VALIDATE_HIGHLIGHTS_VISUAL_FAILED"
GENERATE_HIGHLIGHT_PLAN_FAILED = "GENERATE_HIGHLIGHT_PLAN_FAILED"
APPLY_HIGHLIGHT_CUT_FAILED = "APPLY_HIGHLIGHT_CUT_FAILED"
TRANSCRIPT_CUT_APPLY_FAILED = "TRANSCRIPT_CUT_APPLY_FAILED"

HIGHLIGHT_CACHE_MISSING = "HIGHLIGHT_CACHE_MISSING"
HIGHLIGHT_CACHE_STALE = "HIGHLIGHT_CACHE_STALE"
HIGHLIGHT_PLAN_MISSING = "HIGHLIGHT_PLAN_MISSING"
HIGHLIGHT_PLAN_STALE = "HIGHLIGHT_PLAN_STALE"
EMPTY_PLAN = "EMPTY_PLAN"

TIMELINE_EDIT_NOOP = "TIMELINE_EDIT_NOOP"
TIMELINE_EDIT_EMPTY = "TIMELINE_EDIT_EMPTY"
TIMELINE_EDIT_DRIFT = "TIMELINE_EDIT_DRIFT"


class HighlightError(Exception):
    """Base exception for pipeline-level failures."""
    error_code = SCORE_HIGHLIGHTS_FAILED

    def __init__(self, message: str, *, error_code: str | None = None):
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class InputError(HighlightError):
    """Missing asset, missing transcript or similar; pipeline not entered."""
    pass


class StaleCacheError(HighlightError):
    """Cached artifact no longer matches the timeline fingerprint."""
    error_code = HIGHLIGHT_CACHE_STALE


class RangeEditError(HighlightError):
    """A timeline mutation failed its commit guard and was not applied."""
    error_code = TIMELINE_EDIT_NOOP


class ExecutionCancelled(HighlightError):
    """Raised at a cancellation checkpoint."""
    error_code = EXECUTION_CANCELLED

    def __init__(self, message: str = "Execution cancelled"):
        super().__init__(message)
