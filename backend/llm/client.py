from __future__ import annotations

import logging
import os

import requests

from llm.schemas import NarrationRequest

logger = logging.getLogger(__name__)

MAX_FLAVOR_LENGTH = 600


class LLMClientError(RuntimeError):
    pass


class OllamaClient:
    """Flavor narrator backed by the Ollama chat API.

    Flavor is optional decoration on top of the engine's facts, so every
    transport or format failure yields ``None`` instead of an exception.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("OLLAMA_URL") or "http://localhost:11434").rstrip(
            "/"
        )
        self.model = model or os.getenv("OLLAMA_MODEL") or "llama3.1:8b"
        if timeout is None:
            timeout = int(os.getenv("OLLAMA_TIMEOUT", "30"))
        self.timeout = timeout

    def generate_flavor(self, request: NarrationRequest) -> str | None:
        if request.mode == "SHEET":
            return None
        try:
            content = self._chat(messages=_narration_messages(request), temperature=0.7)
        except (requests.RequestException, LLMClientError, ValueError) as exc:
            logger.warning("Narrator unavailable for %s: %s", request.mode, exc)
            return None
        flavor = " ".join(content.split())
        return flavor[:MAX_FLAVOR_LENGTH] or None

    def _chat(
        self,
        *,
        messages: list[dict[str, str]],
        temperature: float,
    ) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temperature},
        }
        response = requests.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise LLMClientError("Invalid response from Ollama.")
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMClientError("Invalid response from Ollama.")
        return content


def _narration_messages(request: NarrationRequest) -> list[dict[str, str]]:
    system = (
        "You add one or two sentences of atmosphere to a dungeon crawl turn. "
        "The facts are already decided; never contradict or repeat them, and never "
        "invent damage, items or new enemies. "
        "Use the mode, location and biome for tone. No questions to the player."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": request.model_dump_json(by_alias=True)},
    ]
