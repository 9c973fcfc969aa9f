"""Transcript context acquisition.

Prefers the transcription service's last result, then a fresh
transcription, then the timeline's caption elements.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .cancellation import CancellationToken, check_cancel
from .errors import ExecutionCancelled
from .models import TranscriptContext, TranscriptSegment, TranscriptWord
from .timeline import TimelineTrack, is_caption_element

log = logging.getLogger("highlightcut.transcript")

DEFAULT_TRANSCRIBE_TIMEOUT_S = 600.0


class TranscriptSource(Protocol):
    def last_result(self) -> Optional[Dict[str, Any]]:
        """Most recent result as ``{"segments": [...], "words": [...]}`` or None."""
        ...

    def transcribe(self, tracks: Sequence[TimelineTrack], cancel: Optional[CancellationToken] = None) -> Optional[Dict[str, Any]]:
        """Blocking transcription. Callers bound it with a timeout and call ``abort`` on expiry."""
        ...

    def abort(self) -> None:
        ...


def collect_caption_segments(tracks: Sequence[TimelineTrack]) -> List[TranscriptSegment]:
    segments = [
        TranscriptSegment(e.start_time, e.end_time, (e.content or "").strip())
        for t in tracks
        if t.type == "text"
        for e in t.elements
        if is_caption_element(e)
    ]
    return sorted((s for s in segments if s.text), key=lambda s: s.start_time)


def build_words_from_segments(segments: Sequence[TranscriptSegment]) -> List[TranscriptWord]:
    """Spread each segment's tokens evenly over its span."""
    words: List[TranscriptWord] = []
    for seg in segments:
        tokens = seg.text.split()
        if not tokens:
            continue
        if len(tokens) == 1:
            words.append(TranscriptWord(seg.start_time, seg.end_time, tokens[0]))
            continue
        duration = max(0.0, seg.end_time - seg.start_time)
        step = duration / len(tokens) if duration > 0 else 0.0
        for i, tok in enumerate(tokens):
            start = seg.start_time + step * i
            end = seg.end_time if i == len(tokens) - 1 else seg.start_time + step * (i + 1)
            words.append(TranscriptWord(start, max(start, end), tok))
    return words


def _from_result(result: Dict[str, Any]) -> TranscriptContext:
    def _items(key: str) -> List[TranscriptSegment]:
        out = []
        for raw in result.get(key, []) or []:
            text = str(raw.get("text", "")).strip()
            if not text:
                continue
            out.append(TranscriptSegment(
                float(raw.get("start", raw.get("startTime", 0.0))),
                float(raw.get("end", raw.get("endTime", 0.0))),
                text,
            ))
        return out

    return TranscriptContext(segments=_items("segments"), words=_items("words"), source="whisper")


def _transcribe_with_timeout(
    source: TranscriptSource,
    tracks: Sequence[TimelineTrack],
    cancel: Optional[CancellationToken],
    timeout_s: float,
) -> Optional[Dict[str, Any]]:
    box: Dict[str, Any] = {}

    def _work() -> None:
        try:
            box["result"] = source.transcribe(tracks, cancel)
        except BaseException as e:
            box["error"] = e

    worker = threading.Thread(target=_work, name="highlightcut-transcribe", daemon=True)
    worker.start()
    worker.join(timeout_s)
    if worker.is_alive():
        source.abort()
        raise TimeoutError(f"Transcription exceeded {timeout_s:.1f}s")
    if "error" in box:
        raise box["error"]
    return box.get("result")


def build_transcript_context(
    tracks: Sequence[TimelineTrack],
    source: Optional[TranscriptSource] = None,
    cancel: Optional[CancellationToken] = None,
    timeout_s: float = DEFAULT_TRANSCRIBE_TIMEOUT_S,
) -> TranscriptContext:
    check_cancel(cancel)
    captions = collect_caption_segments(tracks)
    caption_words = build_words_from_segments(captions)
    context = TranscriptContext(
        segments=captions,
        words=caption_words,
        source="captions" if captions else "none",
    )
    if source is None:
        return context

    last = source.last_result()
    if last and last.get("segments"):
        log.info("[transcript] Using last transcription result")
        return _from_result(last)

    try:
        if cancel is not None:
            with cancel.on_cancel(source.abort):
                result = _transcribe_with_timeout(source, tracks, cancel, timeout_s)
        else:
            result = _transcribe_with_timeout(source, tracks, cancel, timeout_s)
        check_cancel(cancel)
    except ExecutionCancelled:
        raise
    except Exception as e:
        check_cancel(cancel)
        log.warning(f"[transcript] Transcription failed: {e}")
        result = None

    if result:
        fresh = _from_result(result)
        if fresh.segments or fresh.words:
            log.info(f"[transcript] Transcribed {len(fresh.segments)} segments")
            return fresh
    if captions and caption_words:
        return TranscriptContext(segments=captions, words=caption_words, source="mixed")
    return context
