from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from ..cache import HighlightCacheStore
from ..highlight_tools import HighlightTools
from ..profile import load_profile
from ..timeline import InMemoryTimeline, MediaAsset, tracks_from_dicts
from .highlights_api import create_highlights_router

log = logging.getLogger("highlightcut.studio")


class StudioContext:
    """Holds the timeline, cache and tools for one Studio session."""

    def __init__(
        self,
        *,
        profile_path: Optional[Path] = None,
        profile: Optional[Dict[str, Any]] = None,
        timeline: Optional[InMemoryTimeline] = None,
        tools: Optional[HighlightTools] = None,
    ):
        self.profile = profile if profile is not None else load_profile(profile_path)
        if tools is not None:
            self.tools = tools
            self.timeline = tools.timeline
            return
        self.timeline = timeline or InMemoryTimeline()
        cache_cfg = self.profile.get("highlights", {}).get("cache", {})
        db_path = cache_cfg.get("path") if cache_cfg.get("enabled", True) else None
        self.tools = HighlightTools(
            self.timeline,
            cache=HighlightCacheStore(Path(db_path) if db_path else None),
            profile=self.profile,
        )

    def close(self) -> None:
        """Flush queued cache writes and stop the writer thread."""
        self.tools.cache.close()
        log.info("[studio] Cache closed")


def create_app(
    *,
    profile_path: Optional[Path] = None,
    timeline: Optional[InMemoryTimeline] = None,
    tools: Optional[HighlightTools] = None,
) -> FastAPI:
    ctx = StudioContext(profile_path=profile_path, timeline=timeline, tools=tools)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        ctx.close()

    app = FastAPI(title="highlightcut Studio", lifespan=lifespan)
    app.include_router(create_highlights_router(tools=ctx.tools))

    @app.get("/api/health")
    def api_health() -> JSONResponse:
        return JSONResponse({"ok": True})

    @app.get("/api/timeline")
    def api_timeline() -> JSONResponse:
        return JSONResponse(ctx.timeline.snapshot())

    @app.put("/api/timeline")
    def api_timeline_put(body: Dict[str, Any] = Body(...)) -> JSONResponse:
        try:
            tracks = tracks_from_dicts(body.get("tracks", []) or [])
            assets = [MediaAsset.from_dict(a) for a in body.get("assets", []) or []]
        except (KeyError, TypeError, ValueError) as e:
            raise HTTPException(status_code=422, detail=f"invalid_timeline: {e}")
        ctx.timeline.replace_tracks(tracks)
        if "assets" in body:
            ctx.timeline.set_assets(assets)
        log.info(f"[studio] Timeline replaced ({len(tracks)} tracks)")
        return JSONResponse(ctx.timeline.snapshot())

    return app
