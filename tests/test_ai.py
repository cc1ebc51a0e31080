import json

import pytest
import requests

from plantpal.ai import (
    AgentConfigurationError,
    AgentError,
    PlantAgentClient,
    build_parts,
    build_prompt,
    extract_json,
    format_agent_response,
)
from plantpal.care import HealthStatus


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def model_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture()
def posts(monkeypatch):
    """requests.post を差し替え、URL ごとの応答を返す"""
    calls = []
    replies = {}

    def fake_post(url, json=None, headers=None, params=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers, "params": params})
        for fragment, reply in replies.items():
            if fragment in url:
                if isinstance(reply, Exception):
                    raise reply
                return reply
        raise AssertionError(f"unexpected url: {url}")

    monkeypatch.setattr(requests, "post", fake_post)
    return calls, replies


def vertex_client(monkeypatch, **kwargs):
    client = PlantAgentClient(
        project_id="plantpal-dev",
        location="us-central1",
        gemini_api_key="test-key",
        timeout=5,
        **kwargs,
    )
    monkeypatch.setattr(client, "_access_token", lambda: "vertex-token")
    return client


def test_format_agent_response_clamps_and_validates():
    suggestion = format_agent_response(
        {
            "happiness": 140,
            "healthStatus": "healthy",
            "watering_interval_days": 0,
            "fertilizing_interval_days": 13.6,
            "recommendations": 42,
        }
    )
    assert suggestion.happiness == 100
    assert suggestion.health_status == HealthStatus.HEALTHY
    assert suggestion.watering_interval_days == 1
    assert suggestion.fertilizing_interval_days == 14
    assert suggestion.recommendations == "42"


def test_format_agent_response_ignores_badly_typed_values():
    suggestion = format_agent_response(
        {"happiness": "80", "watering_interval_days": True, "healthStatus": "thriving"}
    )
    assert suggestion.happiness is None
    assert suggestion.watering_interval_days is None
    assert suggestion.health_status is None


def test_format_agent_response_accepts_gemini_aliases():
    suggestion = format_agent_response({"new_happiness": 33, "health_status": "neglected"})
    assert suggestion.happiness == 33
    assert suggestion.health_status == HealthStatus.NEGLECTED


def test_format_agent_response_derives_status_when_invalid():
    suggestion = format_agent_response({"happiness": 55, "healthStatus": "meh"})
    assert suggestion.health_status == HealthStatus.NEEDS_ATTENTION


@pytest.mark.parametrize(
    "text",
    [
        '{"happiness": 70}',
        '```json\n{"happiness": 70}\n```',
        '```\n{"happiness": 70}\n```',
        'Here you go: {"happiness": 70} hope it helps',
    ],
)
def test_extract_json_variants(text):
    assert extract_json(text) == {"happiness": 70}


def test_extract_json_rejects_garbage():
    with pytest.raises(ValueError):
        extract_json("no json here")
    with pytest.raises(ValueError):
        extract_json("[1, 2]")


def test_build_prompt_mentions_species_and_intervals():
    prompt = build_prompt(
        "generate_schedule",
        {"species": "Ficus lyrata", "currentIntervals": {"watering": 7, "fertilizing": 14}},
    )
    assert "Ficus lyrata" in prompt
    assert "Current Watering Interval: 7 days" in prompt
    assert "watering_interval_days" in prompt


def test_build_prompt_unknown_action():
    with pytest.raises(ValueError):
        build_prompt("prune", {})


def test_build_parts_inlines_data_url_images():
    parts = build_parts("analyze_photo", {"imageUrl": "data:image/png;base64,iVBORw0KGgo="})
    assert parts[1] == {"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}}
    assert "Image: attached" in parts[0]["text"]

    parts = build_parts("analyze_photo", {"imageUrl": "https://example.com/p.jpg"})
    assert len(parts) == 1
    assert "https://example.com/p.jpg" in parts[0]["text"]


def test_vertex_is_used_when_configured(monkeypatch, posts):
    calls, replies = posts
    replies["aiplatform"] = FakeResponse(
        200, model_reply(json.dumps({"watering_interval_days": 9}))
    )
    client = vertex_client(monkeypatch)

    suggestion = client.run("generate_schedule", {"species": "Pilea"})

    assert suggestion.watering_interval_days == 9
    assert len(calls) == 1
    assert calls[0]["url"].startswith("https://us-central1-aiplatform.googleapis.com/")
    assert "projects/plantpal-dev" in calls[0]["url"]
    assert calls[0]["headers"] == {"Authorization": "Bearer vertex-token"}
    assert calls[0]["json"]["generationConfig"]["responseMimeType"] == "application/json"


def test_vertex_permission_error_falls_back_to_gemini(monkeypatch, posts):
    calls, replies = posts
    replies["aiplatform"] = FakeResponse(403, {"error": {"message": "Permission denied"}})
    replies["generativelanguage"] = FakeResponse(
        200, model_reply('```json\n{"new_happiness": 61, "recommendations": "ok"}\n```')
    )
    client = vertex_client(monkeypatch)

    suggestion = client.run("update_status", {"taskType": "watering", "completed": True})

    assert suggestion.happiness == 61
    assert suggestion.recommendations == "ok"
    assert [("aiplatform" in c["url"]) for c in calls] == [True, False]
    assert calls[1]["params"] == {"key": "test-key"}


def test_vertex_other_errors_propagate(monkeypatch, posts):
    calls, replies = posts
    replies["aiplatform"] = FakeResponse(500, {})
    client = vertex_client(monkeypatch)

    with pytest.raises(AgentError, match="500"):
        client.run("analyze_photo", {"imageUrl": "https://example.com/p.jpg"})
    assert len(calls) == 1


def test_gemini_used_directly_without_project(posts):
    calls, replies = posts
    replies["generativelanguage"] = FakeResponse(
        200, model_reply('{"happiness": 82, "health_status": "healthy"}')
    )
    client = PlantAgentClient(project_id="", gemini_api_key="test-key", gemini_model="gemini-test")

    suggestion = client.run("analyze_photo", {"imageUrl": "https://example.com/p.jpg"})

    assert suggestion.happiness == 82
    assert suggestion.health_status == HealthStatus.HEALTHY
    assert calls[0]["url"].endswith("/models/gemini-test:generateContent")


def test_no_backend_configured():
    client = PlantAgentClient(project_id="", gemini_api_key="")
    with pytest.raises(AgentConfigurationError):
        client.run("generate_schedule", {"species": "Pilea"})


def test_network_error_becomes_agent_error(posts):
    _, replies = posts
    replies["generativelanguage"] = requests.exceptions.ConnectionError("boom")
    client = PlantAgentClient(project_id="", gemini_api_key="test-key")

    with pytest.raises(AgentError, match="request failed"):
        client.run("generate_schedule", {"species": "Pilea"})


def test_unparsable_model_output(posts):
    _, replies = posts
    replies["generativelanguage"] = FakeResponse(200, model_reply("I cannot help with that."))
    client = PlantAgentClient(project_id="", gemini_api_key="test-key")

    with pytest.raises(AgentError, match="Invalid JSON"):
        client.run("generate_schedule", {"species": "Pilea"})


def test_empty_candidates_means_no_opinion(posts):
    _, replies = posts
    replies["generativelanguage"] = FakeResponse(200, {"candidates": []})
    client = PlantAgentClient(project_id="", gemini_api_key="test-key")

    suggestion = client.run("generate_schedule", {"species": "Pilea"})

    assert suggestion.watering_interval_days is None
    assert suggestion.fertilizing_interval_days is None
