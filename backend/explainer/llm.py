from __future__ import annotations

import json
import logging
from typing import Any, Optional

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from .config import Settings
from .errors import PlanGenerationError, ProviderNotConfiguredError
from .schemas import PlanResponse

logger = logging.getLogger(__name__)

PLANNING_PROMPT = """You are an expert explainer video planner. Your job is to create comprehensive plans for 3-minute explainer videos.

Given a topic, create:
1. Dialogue turns (8-12 turns, each 15-25 seconds)
2. Beat sheet (4-6 visual beats aligned with dialogue)
3. Style bible (visual style, colors, typography, mood)
4. Timeline skeleton (timing for each beat)

Topic: {topic}

Return valid JSON in this exact format:
{{
  "dialogueInputs": [
    {{"index": 0, "text": "Hook statement that grabs attention immediately", "estimatedDuration": 8}}
  ],
  "beats": [
    {{"index": 1, "summary": "Visual concept for this segment", "onScreenText": "Key text overlay", "plannedFrames": 3, "durationS": 30}}
  ],
  "styleBibleMin": {{
    "visualStyle": "Modern flat illustration with clean lines",
    "colorPalette": ["#2563eb", "#f59e0b", "#10b981", "#ffffff"],
    "typography": "Sans-serif, bold headings, readable body",
    "mood": "Professional yet approachable"
  }},
  "timelineSkeleton": {{
    "totalDuration": 180,
    "beatTimings": [{{"beatIndex": 1, "startTime": 0, "endTime": 30}}]
  }}
}}

Rules:
- Total duration should be ~180 seconds (3 minutes)
- Each dialogue turn should be 15-25 seconds
- Beat summaries should describe visual concepts clearly
- On-screen text should be concise and impactful
- Color palette should have 3-5 colors including white/background
- Timeline beats should not overlap and sum to total duration"""

SYSTEM_PREAMBLE = "You are an expert explainer video planner. Return only valid JSON responses."


def build_planning_prompt(topic: str) -> str:
    return f"{SYSTEM_PREAMBLE}\n\n{PLANNING_PROMPT.format(topic=topic)}"


def extract_response_text(response: Any) -> Optional[str]:
    """Pull the text out of a Responses API result.

    ``output_text`` is preferred; otherwise the first text part of the first
    ``message`` output item is used.
    """
    text = getattr(response, "output_text", None)
    if text:
        return text
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for part in getattr(item, "content", None) or []:
            part_text = getattr(part, "text", None)
            if part_text:
                return part_text
        break
    return None


def parse_plan(raw: str) -> PlanResponse:
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise PlanGenerationError(f"Invalid JSON response from LLM: {exc}") from exc
    if not isinstance(payload, dict):
        raise PlanGenerationError("LLM response is not a JSON object")
    try:
        return PlanResponse.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise PlanGenerationError(f"Invalid plan structure at {location or 'root'}: {first.get('msg', exc)}") from exc


class PlanGenerator:
    def __init__(self, api_key: str, model: str, timeout_sec: float = 120.0, client: Any = None) -> None:
        self.model = model
        self._api_key = api_key
        self._timeout_sec = timeout_sec
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlanGenerator":
        return cls(settings.openai_api_key, settings.openai_plan_model, settings.openai_timeout_sec)

    @property
    def configured(self) -> bool:
        return bool(self._api_key) or self._client is not None

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise ProviderNotConfiguredError("OpenAI API key not configured")
            self._client = OpenAI(api_key=self._api_key, timeout=self._timeout_sec)
        return self._client

    def generate(self, topic: str) -> PlanResponse:
        logger.info("Generating project plan for topic %r", topic)
        client = self.client
        try:
            response = client.responses.create(model=self.model, input=build_planning_prompt(topic))
        except OpenAIError as exc:
            raise PlanGenerationError(f"Failed to generate project plan: {exc}") from exc

        text = extract_response_text(response)
        if not text:
            raise PlanGenerationError("No valid text response content from OpenAI")

        plan = parse_plan(text)
        logger.info(
            "Generated plan with %d dialogue turns and %d beats",
            len(plan.dialogue_inputs),
            len(plan.beats),
        )
        return plan

    def check_connection(self) -> bool:
        if not self.configured:
            logger.warning("OpenAI API key not configured")
            return False
        try:
            self.client.models.list()
        except Exception as exc:
            logger.error("OpenAI connection test failed: %s", exc)
            return False
        return True

    def close(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            self._client.close()
