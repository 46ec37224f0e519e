"""Completion provider clients and tolerant parsers for model output."""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

from gift_finder.config import Settings
from gift_finder.transport import request_json


class CompletionClient(Protocol):
    def complete(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 512) -> str: ...


def format_mistral_prompt(system_message: str, user_message: str) -> str:
    if system_message and system_message.strip():
        return f"<s>[INST] {system_message.strip()}\n\n{user_message.strip()} [/INST]\n"
    return f"<s>[INST] {user_message.strip()} [/INST]\n"


class CohereCompletionClient:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str,
        timeout_seconds: float,
        max_retries: int,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = max(1.0, float(timeout_seconds))
        self.max_retries = max(0, int(max_retries))

    @staticmethod
    def _extract_chat_text(payload: dict[str, Any]) -> str:
        message = payload.get("message") if isinstance(payload, dict) else None
        if not isinstance(message, dict):
            return ""

        content = message.get("content")
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, list):
            parts: list[str] = []
            for chunk in content:
                if isinstance(chunk, dict):
                    text = chunk.get("text")
                    if isinstance(text, str):
                        parts.append(text)
            return "\n".join(parts).strip()
        return ""

    def complete(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 512) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        response = request_json(
            f"{self.base_url}/chat",
            method="POST",
            headers={"Authorization": f"Bearer {self.api_key}"},
            payload=payload,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
        )
        return self._extract_chat_text(response)


class LlamaCppCompletionClient:
    """Local model served by a llama.cpp HTTP server."""

    def __init__(self, *, base_url: str, timeout_seconds: float, max_retries: int) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = max(1.0, float(timeout_seconds))
        self.max_retries = max(0, int(max_retries))

    def complete(self, prompt: str, *, temperature: float = 0.7, max_tokens: int = 512) -> str:
        response = request_json(
            f"{self.base_url}/completion",
            method="POST",
            payload={
                "prompt": format_mistral_prompt("", prompt),
                "temperature": temperature,
                "n_predict": max_tokens,
            },
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
        )
        content = response.get("content") if isinstance(response, dict) else None
        return content.strip() if isinstance(content, str) else ""


def make_completion_client(settings: Settings, *, model: str | None = None) -> CompletionClient:
    provider = settings.completion_provider
    if provider == "llamacpp":
        return LlamaCppCompletionClient(
            base_url=settings.llamacpp_url,
            timeout_seconds=settings.provider_timeout_seconds,
            max_retries=settings.provider_max_retries,
        )
    if provider != "cohere":
        raise ValueError(f"Unknown completion provider: {provider}")
    if not settings.cohere_api_key:
        raise RuntimeError("COHERE_API_KEY is not set.")
    return CohereCompletionClient(
        api_key=settings.cohere_api_key,
        base_url=settings.cohere_base_url,
        model=model or settings.chat_model,
        timeout_seconds=settings.provider_timeout_seconds,
        max_retries=settings.provider_max_retries,
    )


def _strip_fences(text: str) -> str:
    raw = (text or "").strip()
    if raw.startswith("```"):
        first_newline = raw.find("\n")
        last_fence = raw.rfind("```")
        if first_newline != -1 and last_fence > first_newline:
            raw = raw[first_newline:last_fence].strip()
    return raw


def extract_json_object(text: str) -> dict[str, Any]:
    raw = _strip_fences(text)
    if not raw:
        raise ValueError("Model returned an empty response.")

    candidates = [raw]
    start = raw.find("{")
    if start != -1:
        try:
            parsed, _end = json.JSONDecoder().raw_decode(raw[start:])
        except Exception:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        end = raw.rfind("}")
        if end > start:
            candidates.append(raw[start : end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except Exception:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ValueError(f"Could not parse JSON object from model response: {text[:200]}")


_ID_ARRAY_RE = re.compile(r"\[[\d,\s]+\]")
_IDEA_ARRAY_RE = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")
_IDEA_OBJECT_RE = re.compile(r"\{[\s\S]*?\}")


def extract_id_array(text: str) -> list[int]:
    match = _ID_ARRAY_RE.search(text or "")
    if not match:
        raise ValueError(f"No id array in model response: {(text or '')[:200]}")
    parsed = json.loads(match.group(0))
    return [int(value) for value in parsed]


def extract_gift_ideas(text: str) -> list[dict[str, Any]]:
    """Pull gift idea objects out of free-form model output.

    An array-shaped match is tried first; when that is missing or broken,
    every object-shaped fragment that decodes cleanly is kept.
    """
    raw = _strip_fences(text)
    match = _IDEA_ARRAY_RE.search(raw)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except Exception:
            parsed = None
        if isinstance(parsed, list):
            ideas = [item for item in parsed if isinstance(item, dict)]
            if ideas:
                return ideas

    ideas = []
    for fragment in _IDEA_OBJECT_RE.findall(raw):
        try:
            parsed = json.loads(fragment)
        except Exception:
            continue
        if isinstance(parsed, dict):
            ideas.append(parsed)
    if not ideas:
        raise ValueError(f"Could not parse gift ideas from model response: {(text or '')[:200]}")
    return ideas
