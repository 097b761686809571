import json

import requests

from llm import client as client_module
from llm.client import OllamaClient, _narration_messages
from llm.schemas import NarrationRequest


class FakeResponse:
    def __init__(self, payload, status_code: int = 200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def json(self):
        return self.payload


def _request(mode: str = "COMBAT_HIT") -> NarrationRequest:
    return NarrationRequest(
        mode=mode,
        location_key="the_iron_gate",
        biome_key="fortress",
        enemy_name="Giant Rat",
        facts=("You hit Giant Rat with Longsword for 4 damage (roll 15 vs AC 12).",),
        turn=1,
    )


def test_narration_prompt_carries_the_camel_case_request() -> None:
    messages = _narration_messages(_request())
    assert messages[0]["role"] == "system"
    assert "never contradict" in messages[0]["content"]

    payload = json.loads(messages[1]["content"])
    assert payload["mode"] == "COMBAT_HIT"
    assert payload["locationKey"] == "the_iron_gate"
    assert payload["enemyName"] == "Giant Rat"


def test_generate_flavor_posts_to_the_chat_api(monkeypatch) -> None:
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        return FakeResponse({"message": {"content": "  The rat squeals\n and reels.  "}})

    monkeypatch.setattr(client_module.requests, "post", fake_post)
    narrator = OllamaClient(base_url="http://ollama:11434/", model="tiny", timeout=5)

    assert narrator.generate_flavor(_request()) == "The rat squeals and reels."
    url, payload, timeout = calls[0]
    assert url == "http://ollama:11434/api/chat"
    assert payload["model"] == "tiny"
    assert payload["stream"] is False
    assert timeout == 5


def test_transport_failures_yield_no_flavor(monkeypatch) -> None:
    def broken_post(url, json=None, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client_module.requests, "post", broken_post)
    assert OllamaClient(timeout=1).generate_flavor(_request()) is None


def test_malformed_replies_yield_no_flavor(monkeypatch) -> None:
    monkeypatch.setattr(
        client_module.requests,
        "post",
        lambda url, json=None, timeout=None: FakeResponse({"message": {}}),
    )
    assert OllamaClient(timeout=1).generate_flavor(_request()) is None

    for payload in ({"message": "just a string"}, ["not", "a", "dict"]):
        monkeypatch.setattr(
            client_module.requests,
            "post",
            lambda url, json=None, timeout=None, payload=payload: FakeResponse(payload),
        )
        assert OllamaClient(timeout=1).generate_flavor(_request()) is None

    monkeypatch.setattr(
        client_module.requests,
        "post",
        lambda url, json=None, timeout=None: FakeResponse({}, status_code=500),
    )
    assert OllamaClient(timeout=1).generate_flavor(_request()) is None


def test_sheet_turns_skip_the_model(monkeypatch) -> None:
    def unexpected_post(*args, **kwargs):
        raise AssertionError("sheet turns must not call the model")

    monkeypatch.setattr(client_module.requests, "post", unexpected_post)
    assert OllamaClient(timeout=1).generate_flavor(_request("SHEET")) is None


def test_environment_configures_the_client(monkeypatch) -> None:
    monkeypatch.setenv("OLLAMA_URL", "http://gpu-box:11434")
    monkeypatch.setenv("OLLAMA_MODEL", "mistral")
    monkeypatch.setenv("OLLAMA_TIMEOUT", "12")
    narrator = OllamaClient()
    assert (narrator.base_url, narrator.model, narrator.timeout) == (
        "http://gpu-box:11434",
        "mistral",
        12,
    )
