"""Helper functions for LLM client setup."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .llm_client import LLMClient, LLMClientConfig

log = logging.getLogger("highlightcut.ai")


def get_llm_client(ai_cfg: Dict[str, Any], *, probe: bool = True) -> Optional[LLMClient]:
    """Build a client from the ``ai.llm`` profile section.

    Returns None when AI is disabled or, with ``probe``, when the server does
    not answer. Callers treat None as "degrade to rule-only scoring".
    """
    if not ai_cfg.get("enabled", True):
        log.debug("[llm] AI disabled in config")
        return None

    client = LLMClient(LLMClientConfig.from_dict(ai_cfg))
    if not probe:
        return client
    if client.is_available():
        log.info(f"[llm] Client available at {client.cfg.endpoint}")
        return client
    log.warning(f"[llm] Client NOT available at {client.cfg.endpoint}")
    return None
