"""Vertex AI / Gemini API への問い合わせ。

Vertex AI を先に試し、権限エラーの場合のみ Gemini API にフォールバックする。
それ以外の失敗はそのまま呼び出し元に伝える (リトライはしない)。
"""

import json
import re
from functools import lru_cache
from logging import getLogger
from typing import Optional

import google.auth
import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest

from plantpal import config
from plantpal.care import HealthStatus, classify_happiness, clamp_happiness
from plantpal.models import AgentSuggestion

logger = getLogger(__name__)

ACTIONS = ("generate_schedule", "update_status", "analyze_photo")

VERTEX_URL = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
    "/locations/{location}/publishers/google/models/{model}:generateContent"
)
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)
FENCED_JSON_PATTERN = re.compile(r"```json\s*([\s\S]*?)\s*```")
FENCED_PATTERN = re.compile(r"```\s*([\s\S]*?)\s*```")
OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


class AgentError(Exception):
    """AI への問い合わせが失敗した"""


class AgentPermissionError(AgentError):
    """Vertex AI の権限/認証エラー。Gemini API へのフォールバック対象"""


class AgentConfigurationError(AgentError):
    """使える AI バックエンドが設定されていない"""


def build_prompt(action: str, payload: dict) -> str:
    if action == "generate_schedule":
        intervals = payload.get("currentIntervals") or {}
        return f"""You are an autonomous plant care assistant. Generate an optimal care schedule for a plant.

Plant Species: {payload.get("species") or "Unknown"}
Current Watering Interval: {intervals.get("watering") or "Not set"} days
Current Fertilizing Interval: {intervals.get("fertilizing") or "Not set"} days

Base the intervals on the species. Consider the plant type (succulent, tropical, herb, etc.),
its typical care requirements and seasonal adjustments. Realistic examples:
- Succulents: 10-14 days watering, 30 days fertilizing
- Tropical plants: 5-7 days watering, 14 days fertilizing
- Herbs: 3-5 days watering, 7-14 days fertilizing

Return ONLY JSON with this exact format:
{{
  "watering_interval_days": number,
  "fertilizing_interval_days": number,
  "recommendations": "string with care advice"
}}"""

    if action == "update_status":
        return f"""You are an autonomous plant care assistant. Analyze the plant care status and update its happiness level.

Task Type: {payload.get("taskType")}
Completed: {json.dumps(bool(payload.get("completed")))}
Current Happiness: {payload.get("currentHappiness", 50)}
Care History: {json.dumps(payload.get("careHistory") or [], default=str)}

Calculate the new happiness level:
- +1 point for completing a watering task
- +3 points for completing a fertilizing task
- -1 point for missing a watering task
- -3 points for missing a fertilizing task

Health status by happiness:
- 75-100: "healthy"
- 50-74: "needs_attention"
- 25-49: "neglected"
- 0-24: "emergency"

Return ONLY JSON with this exact format:
{{
  "happiness": number (0-100),
  "healthStatus": "healthy" | "needs_attention" | "neglected" | "emergency",
  "recommendations": "string with care advice"
}}"""

    if action == "analyze_photo":
        image_url = payload.get("imageUrl") or ""
        if image_url.startswith("data:"):
            image_line = "Image: attached"
        else:
            image_line = f"Image URL: {image_url}"
        return f"""You are a professional botanist analyzing a plant photo for a health assessment.

{image_line}

Analyze the visual health indicators: leaf color and condition, overall appearance,
signs of stress or disease, and growth stage.

Set a happiness baseline (0-100) based on visual health:
- Healthy, vibrant plant: 75-85
- Good condition with minor issues: 60-75
- Some visible problems: 40-60
- Poor health: 20-40
- Critical condition: 0-20

Return ONLY JSON with this exact format:
{{
  "happiness": number (0-100),
  "healthStatus": "healthy" | "needs_attention" | "neglected" | "emergency",
  "recommendations": "string with care advice based on the visual analysis"
}}"""

    raise ValueError(f"Unknown action: {action}")


def build_parts(action: str, payload: dict) -> list[dict]:
    parts = [{"text": build_prompt(action, payload)}]
    if action == "analyze_photo":
        match = DATA_URL_PATTERN.match(payload.get("imageUrl") or "")
        if match:
            parts.append(
                {"inlineData": {"mimeType": match.group("mime"), "data": match.group("data")}}
            )
    return parts


def extract_json(text: str) -> dict:
    """モデルの出力から JSON オブジェクトを取り出す。コードフェンス付きにも対応"""
    for pattern in (FENCED_JSON_PATTERN, FENCED_PATTERN):
        match = pattern.search(text)
        if match:
            text = match.group(1)
            break
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = OBJECT_PATTERN.search(text)
        if match is None:
            raise
        parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def _as_number(value) -> Optional[float]:
    # bool は int のサブクラスなので明示的に除外する
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def format_agent_response(parsed: dict) -> AgentSuggestion:
    suggestion = AgentSuggestion()

    happiness = _as_number(parsed.get("happiness"))
    if happiness is None:
        happiness = _as_number(parsed.get("new_happiness"))
    if happiness is not None:
        suggestion.happiness = clamp_happiness(happiness)

    for key in ("watering_interval_days", "fertilizing_interval_days"):
        days = _as_number(parsed.get(key))
        if days is not None:
            setattr(suggestion, key, max(1, int(round(days))))

    status = parsed.get("healthStatus") or parsed.get("health_status")
    if status:
        try:
            suggestion.health_status = HealthStatus(status)
        except (TypeError, ValueError):
            logger.warning(f"不明な healthStatus を無視します: {status!r}")
            if suggestion.happiness is not None:
                suggestion.health_status = classify_happiness(suggestion.happiness)

    if parsed.get("recommendations"):
        suggestion.recommendations = str(parsed["recommendations"])

    return suggestion


def _response_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return "{}"
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts:
        return "{}"
    return parts[0].get("text") or "{}"


class PlantAgentClient:
    def __init__(
        self,
        project_id: str = config.GCP_PROJECT_ID,
        location: str = config.GCP_LOCATION,
        vertex_model: str = config.VERTEX_MODEL,
        gemini_api_key: str = config.GEMINI_API_KEY,
        gemini_model: str = config.GEMINI_MODEL,
        timeout: float = config.AI_REQUEST_TIMEOUT,
    ):
        self.project_id = project_id
        self.location = location
        self.vertex_model = vertex_model
        self.gemini_api_key = gemini_api_key
        self.gemini_model = gemini_model
        self.timeout = timeout
        self._credentials = None

    @property
    def vertex_enabled(self) -> bool:
        return bool(self.project_id)

    def run(self, action: str, payload: dict) -> AgentSuggestion:
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")

        if self.vertex_enabled:
            try:
                return self._run_vertex(action, payload)
            except AgentPermissionError as e:
                logger.warning(f"Vertex AI の権限エラーのため Gemini API を使用します: {e}")
                return self._run_gemini(action, payload)

        logger.info("Vertex AI が未設定のため Gemini API を使用します")
        return self._run_gemini(action, payload)

    def _access_token(self) -> str:
        try:
            if self._credentials is None:
                self._credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
            if not self._credentials.valid:
                self._credentials.refresh(GoogleAuthRequest())
        except GoogleAuthError as e:
            raise AgentPermissionError(f"Vertex AI credentials unavailable: {e}") from e
        return self._credentials.token

    def _run_vertex(self, action: str, payload: dict) -> AgentSuggestion:
        url = VERTEX_URL.format(
            location=self.location, project=self.project_id, model=self.vertex_model
        )
        body = {
            "contents": [{"role": "user", "parts": build_parts(action, payload)}],
            "generationConfig": {
                "temperature": 0.7,
                "maxOutputTokens": 1000,
                "responseMimeType": "application/json",
            },
        }
        headers = {"Authorization": f"Bearer {self._access_token()}"}
        data = self._post("Vertex AI", url, body, headers=headers)
        return self._parse("Vertex AI", data)

    def _run_gemini(self, action: str, payload: dict) -> AgentSuggestion:
        if not self.gemini_api_key:
            raise AgentConfigurationError("GEMINI_API_KEY not set")
        url = GEMINI_URL.format(model=self.gemini_model)
        body = {
            "contents": [{"parts": build_parts(action, payload)}],
            "generationConfig": {"temperature": 0.7, "maxOutputTokens": 500},
        }
        data = self._post("Gemini API", url, body, params={"key": self.gemini_api_key})
        return self._parse("Gemini API", data)

    def _post(self, backend: str, url: str, body: dict, headers=None, params=None) -> dict:
        try:
            response = requests.post(
                url, json=body, headers=headers, params=params, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise AgentError(f"{backend} request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AgentPermissionError(
                f"{backend} error: {response.status_code} Permission denied"
            )
        if not response.ok:
            raise AgentError(f"{backend} error: {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise AgentError(f"{backend} returned a non-JSON body") from e

    def _parse(self, backend: str, data: dict) -> AgentSuggestion:
        text = _response_text(data)
        try:
            parsed = extract_json(text)
        except ValueError as e:
            logger.error(f"{backend} の応答を解析できませんでした: {e}")
            logger.error(f"生の応答: {text}")
            raise AgentError(f"Invalid JSON response from {backend}") from e
        return format_agent_response(parsed)


@lru_cache
def get_agent_client() -> PlantAgentClient:
    return PlantAgentClient()
