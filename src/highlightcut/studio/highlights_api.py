from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse

from .. import errors
from ..cancellation import CancellationToken
from ..highlight_tools import (
    ApplyCutRequest,
    HighlightTools,
    PlanRequest,
    ScoreHighlightsRequest,
    TrimWordsRequest,
    ValidateVisualRequest,
)
from ..models import ToolResult

log = logging.getLogger("highlightcut.studio")

_CONFLICT_CODES = {
    errors.HIGHLIGHT_CACHE_MISSING,
    errors.HIGHLIGHT_CACHE_STALE,
    errors.HIGHLIGHT_PLAN_MISSING,
    errors.HIGHLIGHT_PLAN_STALE,
}
_INPUT_CODES = {
    errors.NO_VIDEO_ASSET,
    errors.VIDEO_ASSET_NOT_FOUND,
    errors.NO_TRANSCRIPT,
    errors.NO_CHUNKS,
    errors.NO_WORDS,
    errors.EMPTY_PLAN,
    errors.TIMELINE_EDIT_NOOP,
    errors.TIMELINE_EDIT_EMPTY,
}
STATUS_CANCELLED = 499


def status_for(result: ToolResult) -> int:
    if result.success:
        return 200
    code = result.error_code or ""
    if code == errors.EXECUTION_CANCELLED:
        return STATUS_CANCELLED
    if code in _CONFLICT_CODES:
        return 409
    if code in _INPUT_CODES:
        return 422
    return 500


class _ActiveTokens:
    """Cancellation tokens of every request that is running or waiting for the tool lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: List[CancellationToken] = []

    def begin(self) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            self._tokens.append(token)
        return token

    def end(self, token: CancellationToken) -> None:
        with self._lock:
            if token in self._tokens:
                self._tokens.remove(token)

    def cancel(self) -> int:
        with self._lock:
            tokens = list(self._tokens)
        for token in tokens:
            token.cancel()
        if tokens:
            log.info(f"[studio] Cancelled {len(tokens)} running request(s)")
        return len(tokens)


def create_highlights_router(*, tools: HighlightTools) -> APIRouter:
    router = APIRouter(prefix="/api/highlights", tags=["highlights"])
    active = _ActiveTokens()

    def _respond(fn, body: Dict[str, Any]) -> JSONResponse:
        token = active.begin()
        try:
            result = fn(body, token)
        finally:
            active.end(token)
        return JSONResponse(result.to_dict(), status_code=status_for(result))

    @router.post("/score")
    def score(body: Dict[str, Any] = Body(default={})) -> JSONResponse:
        return _respond(lambda b, t: tools.score_highlights(ScoreHighlightsRequest.from_dict(b), t), body)

    @router.post("/validate_visual")
    def validate_visual(body: Dict[str, Any] = Body(default={})) -> JSONResponse:
        return _respond(lambda b, t: tools.validate_highlights_visual(ValidateVisualRequest.from_dict(b), t), body)

    @router.post("/plan")
    def plan(body: Dict[str, Any] = Body(default={})) -> JSONResponse:
        return _respond(lambda b, t: tools.generate_highlight_plan(PlanRequest.from_dict(b), t), body)

    @router.post("/apply")
    def apply(body: Dict[str, Any] = Body(default={})) -> JSONResponse:
        return _respond(lambda b, t: tools.apply_highlight_cut(ApplyCutRequest.from_dict(b), t), body)

    @router.post("/trim_words")
    def trim_words(body: Dict[str, Any] = Body(...)) -> JSONResponse:
        return _respond(lambda b, t: tools.trim_transcript_words(TrimWordsRequest.from_dict(b), t), body)

    @router.post("/cancel")
    def cancel() -> JSONResponse:
        count = active.cancel()
        return JSONResponse({"ok": True, "cancelled": count > 0, "count": count})

    @router.get("/cache")
    def cache_state() -> JSONResponse:
        state = tools.cache.get(tools.project_id)
        return JSONResponse({"projectId": tools.project_id, **state.to_dict()})

    return router
