"""HTTP client for a local LLM/VLM server (llama.cpp server or LM Studio).

Speaks the OpenAI-compatible ``/v1/chat/completions`` API. Used by the
semantic scorer (text) and the visual scorer (image content parts).
"""
from __future__ import annotations

import json
import logging
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .lenient_json import decode_lenient

log = logging.getLogger("highlightcut.ai")


@dataclass(frozen=True)
class LLMClientConfig:
    """Configuration for LLM client."""
    endpoint: str = "http://127.0.0.1:11435"
    timeout_s: float = 60.0
    max_tokens: int = 2048
    temperature: float = 0.2
    model_name: str = "local-gguf"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LLMClientConfig":
        return cls(
            endpoint=str(d.get("endpoint", cls.endpoint)).rstrip("/"),
            timeout_s=float(d.get("timeout_s", cls.timeout_s)),
            max_tokens=int(d.get("max_tokens", cls.max_tokens)),
            temperature=float(d.get("temperature", cls.temperature)),
            model_name=str(d.get("model_name", cls.model_name)),
        )


class LLMClientError(Exception):
    """Base exception for LLM client errors."""
    pass


class LLMServerUnavailableError(LLMClientError):
    """Raised when the LLM server is not reachable or times out."""
    pass


class LLMResponseError(LLMClientError):
    """Raised when the LLM response is invalid."""
    pass


@dataclass
class ChatResponse:
    content: Optional[str]
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    finish_reason: str = "stop"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "toolCalls": list(self.tool_calls),
            "finishReason": self.finish_reason,
        }


class ChatProvider(Protocol):
    """What the scorers need from a model provider."""

    def chat(
        self,
        messages: List[Dict[str, Any]],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
    ) -> ChatResponse: ...

    def is_available(self) -> bool: ...


def text_message(role: str, text: str) -> Dict[str, Any]:
    return {"role": role, "content": text}


def image_message(text: str, image_url: str) -> Dict[str, Any]:
    """User message carrying a prompt and one image (data URL or http URL)."""
    return {
        "role": "user",
        "content": [
            {"type": "text", "text": text},
            {"type": "image_url", "image_url": {"url": image_url}},
        ],
    }


class LLMClient:
    """HTTP client for an OpenAI-compatible local server."""

    def __init__(self, cfg: LLMClientConfig):
        self.cfg = cfg

    def is_available(self) -> bool:
        """Check if the LLM server is available."""
        try:
            health_url = f"{self.cfg.endpoint}/health"
            req = urllib.request.Request(health_url, method="GET")
            with urllib.request.urlopen(req, timeout=5.0) as resp:
                return resp.status == 200
        except Exception:
            # LM Studio has no /health; fall back to the OpenAI models list
            try:
                models_url = f"{self.cfg.endpoint}/v1/models"
                req = urllib.request.Request(models_url, method="GET")
                with urllib.request.urlopen(req, timeout=5.0) as resp:
                    return resp.status == 200
            except Exception:
                return False

    def chat(
        self,
        messages: List[Dict[str, Any]],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """Send a chat completion request.

        Raises:
            LLMServerUnavailableError: If server is not reachable or times out
            LLMResponseError: If the response has no usable choice
        """
        body: Dict[str, Any] = {
            "model": self.cfg.model_name,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.cfg.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self.cfg.max_tokens,
            "stream": False,
        }
        if tools:
            body["tools"] = tools

        url = f"{self.cfg.endpoint}/v1/chat/completions"
        req = urllib.request.Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self.cfg.timeout_s) as resp:
                response_data = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            raise LLMResponseError(f"LLM server returned HTTP {e.code}") from e
        except urllib.error.URLError as e:
            raise LLMServerUnavailableError(f"LLM server unavailable: {e}") from e
        except (TimeoutError, socket.timeout) as e:
            raise LLMServerUnavailableError(f"LLM server timeout: {e}") from e
        except json.JSONDecodeError as e:
            raise LLMResponseError(f"LLM server returned non-JSON body: {e}") from e

        try:
            choice = response_data["choices"][0]
            message = choice["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Invalid response structure: {e}") from e

        content = message.get("content")
        raw_calls = message.get("tool_calls") or []
        tool_calls: List[Dict[str, Any]] = []
        for call in raw_calls:
            fn = call.get("function") or {}
            args = fn.get("arguments")
            if isinstance(args, str):
                decoded = decode_lenient(args)
                args = decoded.value if decoded.ok and isinstance(decoded.value, dict) else {}
            tool_calls.append({
                "id": str(call.get("id", "")),
                "name": str(fn.get("name", "")),
                "arguments": args or {},
            })

        finish = str(choice.get("finish_reason") or ("tool_calls" if tool_calls else "stop"))
        log.debug(f"[llm] finish={finish} content={str(content)[:200]!r}")
        return ChatResponse(
            content=content if isinstance(content, str) else None,
            tool_calls=tool_calls,
            finish_reason=finish,
        )


def create_llm_client(
    endpoint: str = "http://127.0.0.1:11435",
    **kwargs,
) -> LLMClient:
    """Create an LLM client with sensible defaults."""
    cfg = LLMClientConfig(endpoint=endpoint.rstrip("/"), **kwargs)
    return LLMClient(cfg)
