from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field

import json_repair
import requests

logger = logging.getLogger(__name__)


class LlmOutputError(RuntimeError):
    """The model answered, but not in the shape the caller asked for."""


@dataclass
class OpenRouterClient:
    api_key: str
    model: str
    base_url: str = "https://openrouter.ai/api/v1"
    timeout_seconds: float = 30.0
    temperature: float = 0.0
    _session_local: threading.local = field(default_factory=threading.local, init=False, repr=False)

    def _client(self) -> requests.Session:
        session = getattr(self._session_local, "session", None)
        if session is None:
            session = requests.Session()
            self._session_local.session = session
        return session

    def with_model(self, model: str) -> "OpenRouterClient":
        return OpenRouterClient(
            api_key=self.api_key,
            model=model,
            base_url=self.base_url,
            timeout_seconds=self.timeout_seconds,
            temperature=self.temperature,
        )

    def chat_text(self, *, system: str, user: str) -> str:
        if not self.api_key:
            raise RuntimeError("OPENROUTER_API_KEY is required")

        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
        }
        try:
            resp = self._client().post(url, headers=headers, json=payload, timeout=self.timeout_seconds)
            resp.raise_for_status()
            data = resp.json() or {}
        except requests.RequestException as e:
            raise RuntimeError(f"OpenRouter request failed: {e}") from e
        except ValueError as e:
            raise LlmOutputError("OpenRouter returned a non-JSON response body") from e

        content = _extract_message_content(data)
        if not content:
            err = (data.get("error") or {}).get("message") if isinstance(data.get("error"), dict) else None
            if err:
                raise RuntimeError(f"OpenRouter error response: {err}")
            snippet = json.dumps(data, ensure_ascii=True)[:1000]
            raise LlmOutputError(f"OpenRouter response missing message content. First 1000 chars: {snippet}")
        return content

    def chat_json(self, *, system: str, user: str) -> dict:
        content = self.chat_text(system=system, user=user)
        try:
            return _load_json_payload(content)
        except json.JSONDecodeError as e:
            snippet = content[:500].replace("\n", "\\n")
            raise LlmOutputError(f"Model did not return valid JSON. First 500 chars: {snippet}") from e


def _text_from_parts(content: object) -> str | None:
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        text = content.get("text") or content.get("content")
        return text if isinstance(text, str) else None
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            text = _text_from_parts(part)
            if text:
                parts.append(text)
        return "\n".join(parts) if parts else None
    return None


def _extract_message_content(data: dict) -> str | None:
    choices = data.get("choices") or []
    if not choices:
        return None
    choice = choices[0] or {}
    message = choice.get("message")
    if isinstance(message, str):
        return message
    if isinstance(message, dict):
        text = _text_from_parts(message.get("content"))
        if text:
            return text
    text = choice.get("text")
    return text if isinstance(text, str) else None


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return text
    lines = stripped.splitlines()[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def _extract_json_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return text
    return text[start : end + 1]


def _load_json_payload(content: str) -> dict:
    try:
        repaired = json_repair.loads(content)
        if isinstance(repaired, dict):
            return repaired
    except Exception:
        logger.debug("json_repair could not parse model output", exc_info=True)

    cleaned = _extract_json_object(_strip_code_fence(content))
    parsed = json.loads(cleaned, strict=False)
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", cleaned, 0)
    return parsed
