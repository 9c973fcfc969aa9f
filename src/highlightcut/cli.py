from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .ai.helpers import get_llm_client
from .ai.semantic_scorer import SemanticConfig, score_with_llm
from .analysis_chunks import normalize_range, segment_transcript
from .analysis_rules import compute_rule_scores
from .errors import HighlightError
from .logging_config import setup_logging
from .models import HighlightPlan, ScoredSegment, TimeRange, TranscriptContext, TranscriptSegment
from .profile import load_profile
from .range_edit import apply_keep_ranges
from .scoring import FusionWeights, compute_combined_score, fuse_segments
from .selection import SelectionConfig, normalize_target, normalize_tolerance, select_segments
from .timeline import InMemoryTimeline
from .utils import fmt_clock

log = logging.getLogger("highlightcut.cli")


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json(path: Optional[Path], payload: Dict[str, Any]) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if path is None:
        print(text)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    print(f"Wrote: {path}")


def load_transcript(path: Path) -> TranscriptContext:
    """Accept a serialized context or a bare list of segments."""
    data = _read_json(path)
    if isinstance(data, list):
        segments = [TranscriptSegment.from_dict(s) for s in data if isinstance(s, dict)]
        return TranscriptContext(segments=segments, words=[], source="captions" if segments else "none")
    if isinstance(data, dict):
        return TranscriptContext.from_dict(data)
    raise ValueError(f"Unsupported transcript format in {path}")


def cmd_plan(args: argparse.Namespace) -> int:
    profile = load_profile(args.profile)
    hl = profile.get("highlights", {})
    context = load_transcript(args.transcript)
    if not context.segments:
        print("No transcript segments found.", file=sys.stderr)
        return 2

    chunking = hl.get("chunking", {})
    bounds = normalize_range(
        args.min_seconds if args.min_seconds is not None else chunking.get("min_seconds"),
        args.max_seconds if args.max_seconds is not None else chunking.get("max_seconds"),
    )
    chunks = segment_transcript(context, bounds.min_seconds, bounds.max_seconds)
    log.info("[cli] %d chunks from %s (%s)", len(chunks), args.transcript, context.source)
    weights = FusionWeights.from_dict(hl.get("weights", {}))

    segments: List[ScoredSegment] = []
    for chunk in chunks:
        rule = compute_rule_scores(chunk, context.words)
        segments.append(ScoredSegment(
            chunk=chunk,
            rule_scores=rule,
            combined_score=compute_combined_score(rule, None, None, weights),
        ))

    semantic: Dict[int, Any] = {}
    if args.llm:
        client = get_llm_client(profile.get("ai", {}).get("llm", {}))
        if client is None:
            print("LLM unavailable; using rule scores only.", file=sys.stderr)
        else:
            semantic, diag = score_with_llm(chunks, client, cfg=SemanticConfig.from_dict(hl.get("semantic", {})))
            if diag.failed_blocks:
                print(f"LLM blocks failed: {diag.failed_blocks}/{diag.total_blocks}", file=sys.stderr)
    ranked = fuse_segments(segments, semantic=semantic, weights=weights)

    sel = SelectionConfig.from_dict(hl.get("selection", {}))
    plan = select_segments(
        ranked,
        normalize_target(args.target if args.target is not None else sel.target_seconds),
        normalize_tolerance(args.tolerance if args.tolerance is not None else sel.tolerance),
        include_hook=sel.include_hook and not args.no_hook,
    )

    print(f"{'Rank':>4}  {'Start':>6}  {'End':>6}  {'Score':>7}  Text")
    for s in ranked[: args.top]:
        text = s.chunk.text if len(s.chunk.text) <= 60 else s.chunk.text[:57] + "..."
        print(f"{s.rank:>4}  {fmt_clock(s.chunk.start_time):>6}  {fmt_clock(s.chunk.end_time):>6}  {s.combined_score:>7.2f}  {text}")
    print()
    print(f"Plan: {len(plan.segments)} segments, {plan.actual_duration:.2f}s (target {plan.target_duration:.1f}s)")

    _write_json(args.out, {"plan": plan.to_dict(), "segments": [s.to_dict() for s in ranked]})
    return 0


def cmd_cut(args: argparse.Namespace) -> int:
    payload = _read_json(args.plan)
    plan = HighlightPlan.from_dict(payload.get("plan", payload))
    if not plan.segments:
        print("Plan has no segments.", file=sys.stderr)
        return 2

    timeline = InMemoryTimeline.from_dict(_read_json(args.timeline))
    log.info("[cli] Applying %d keep ranges to %s", len(plan.segments), args.timeline)
    keep = [TimeRange(s.chunk.start_time, s.chunk.end_time) for s in plan.segments]
    try:
        result = apply_keep_ranges(timeline, keep)
    except HighlightError as e:
        print(f"Cut rejected ({e.error_code}): {e}", file=sys.stderr)
        return 1

    print(f"Cut: {result.diff.before_seconds:.2f}s -> {result.diff.after_seconds:.2f}s "
          f"({len(result.delete_ranges)} ranges removed)")
    _write_json(args.out, {**timeline.snapshot(), "diff": result.diff.to_dict()})
    return 0


def cmd_studio(args: argparse.Namespace) -> int:
    from .studio.app import create_app

    timeline = InMemoryTimeline.from_dict(_read_json(args.timeline)) if args.timeline else None
    app = create_app(profile_path=args.profile, timeline=timeline)

    import uvicorn

    uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="highlightcut", description="Transcript highlight planning and cutting")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("plan", help="Score a transcript and select highlight segments.")
    p.add_argument("transcript", type=Path, help="Transcript JSON (context object or list of segments)")
    p.add_argument("--out", type=Path, default=None)
    p.add_argument("--profile", type=Path, default=None, help="Path to a YAML profile")
    p.add_argument("--target", type=float, default=None, help="Target duration in seconds")
    p.add_argument("--tolerance", type=float, default=None)
    p.add_argument("--min-seconds", type=float, default=None)
    p.add_argument("--max-seconds", type=float, default=None)
    p.add_argument("--llm", action="store_true", help="Add semantic scores from the local LLM server")
    p.add_argument("--no-hook", action="store_true", help="Do not promote a hook segment")
    p.add_argument("--top", type=int, default=10, help="Rows to print")
    p.set_defaults(func=cmd_plan)

    c = sub.add_parser("cut", help="Apply a plan's keep ranges to a timeline JSON.")
    c.add_argument("plan", type=Path)
    c.add_argument("timeline", type=Path)
    c.add_argument("--out", type=Path, default=None)
    c.set_defaults(func=cmd_cut)

    s = sub.add_parser("studio", help="Serve the highlight HTTP API.")
    s.add_argument("--timeline", type=Path, default=None, help="Timeline JSON to load at startup")
    s.add_argument("--profile", type=Path, default=None)
    s.add_argument("--host", type=str, default="127.0.0.1")
    s.add_argument("--port", type=int, default=8765)
    s.set_defaults(func=cmd_studio)

    args = parser.parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    return int(args.func(args) or 0)


if __name__ == "__main__":
    sys.exit(main())
