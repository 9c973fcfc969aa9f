"""Lenient JSON recovery for model output.

Models wrap JSON in code fences or prose. ``decode_lenient`` tries, in
order: direct parse, the fenced block, the first ``[...]`` span, then the
first ``{...}`` span. The result is tagged rather than raised so callers
can record the failure reason into diagnostics.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_OBJECT_RE = re.compile(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}", re.DOTALL)


@dataclass(frozen=True)
class DecodeResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None


def _strip_fences(text: str) -> str:
    trimmed = text.strip()
    if not trimmed.startswith("```"):
        return trimmed
    trimmed = re.sub(r"^```(?:json)?", "", trimmed, flags=re.IGNORECASE)
    trimmed = re.sub(r"```$", "", trimmed)
    return trimmed.strip()


def decode_lenient(text: Optional[str]) -> DecodeResult:
    if not isinstance(text, str) or not text.strip():
        return DecodeResult(ok=False, error="empty response")

    cleaned = _strip_fences(text)
    try:
        return DecodeResult(ok=True, value=json.loads(cleaned))
    except json.JSONDecodeError:
        pass

    fenced = _FENCE_RE.search(text)
    if fenced:
        try:
            return DecodeResult(ok=True, value=json.loads(fenced.group(1).strip()))
        except json.JSONDecodeError:
            pass

    for pattern in (_ARRAY_RE, _OBJECT_RE):
        m = pattern.search(cleaned)
        if m:
            try:
                return DecodeResult(ok=True, value=json.loads(m.group(0)))
            except json.JSONDecodeError:
                pass

    return DecodeResult(ok=False, error=f"unparsable response: {cleaned[:120]}")
