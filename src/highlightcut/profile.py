from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def default_profile() -> Dict[str, Any]:
    return {
        "highlights": {
            "chunking": {
                "min_seconds": 8.0,
                "max_seconds": 30.0,
            },
            "semantic": {
                "enabled": True,
                "block_speech_seconds": 180.0,
                "block_span_seconds": 300.0,
                "temperature": 0.2,
                "max_chunk_chars": 320,
            },
            "visual": {
                "top_n": 15,
                "concurrency": 4,
            },
            "selection": {
                "target_seconds": 60.0,
                "tolerance": 0.15,
                "include_hook": True,
            },
            "weights": {
                "full": {"rule": 0.4, "semantic": 0.4, "visual": 0.2},
                "semantic_only": {"rule": 0.5, "semantic": 0.5, "visual": 0.0},
                "visual_only": {"rule": 0.7, "semantic": 0.0, "visual": 0.3},
                "rule_only": {"rule": 1.0, "semantic": 0.0, "visual": 0.0},
            },
            "transcript": {
                "timeout_s": 600.0,
            },
            "cache": {
                "enabled": True,
                "path": None,  # None keeps the cache in memory only
            },
        },
        "ai": {
            "llm": {
                "enabled": True,
                "endpoint": "http://127.0.0.1:11435",
                "model_name": "local-gguf",
                "timeout_s": 60,
                "max_tokens": 2048,
                "temperature": 0.2,
            },
        },
    }


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def _apply_env_overrides(profile: Dict[str, Any]) -> Dict[str, Any]:
    llm = profile.setdefault("ai", {}).setdefault("llm", {})
    endpoint = os.environ.get("HC_LLM_ENDPOINT")
    if endpoint:
        llm["endpoint"] = endpoint.rstrip("/")
    model = os.environ.get("HC_LLM_MODEL")
    if model:
        llm["model_name"] = model
    timeout = os.environ.get("HC_LLM_TIMEOUT_S")
    if timeout:
        try:
            llm["timeout_s"] = float(timeout)
        except ValueError:
            raise ValueError(f"HC_LLM_TIMEOUT_S must be a number, got {timeout!r}")
    return profile


def load_profile(profile_path: Optional[Path]) -> Dict[str, Any]:
    """Load a YAML profile merged over the defaults, then apply env overrides."""
    if profile_path is None:
        return _apply_env_overrides(default_profile())

    profile_path = Path(profile_path)
    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    data = yaml.safe_load(profile_path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Profile YAML must be a mapping")
    return _apply_env_overrides(_deep_merge(default_profile(), data))
