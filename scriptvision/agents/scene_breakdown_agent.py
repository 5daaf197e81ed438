"""
Scene Breakdown Agent - Splits a narration script into visual scenes with a text model.

The agent asks the text model for a fixed number of scenes and parses the
JSON reply into SceneDraft objects. Timings in the reply are advisory only;
the scene planner re-times every draft.

Pipeline: script → SceneBreakdownAgent → normalize_planned_scenes() → Scenes
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scriptvision.core.config import PlannerConfig
from scriptvision.core.exceptions import SceneBreakdownParseError
from scriptvision.core.logging_config import get_logger
from scriptvision.core.retry import RetryConfig, planner_retry_config, retry_async_call
from scriptvision.planning.scene_planner import SceneDraft

logger = get_logger("agents.scene_breakdown")


@dataclass
class SceneBreakdownResult:
    """Parsed text-model breakdown."""
    drafts: List[SceneDraft] = field(default_factory=list)
    model: str = ""


class SceneBreakdownAgent:
    """
    Agent that turns a script into scene drafts using a chat model.

    Usage:
        agent = SceneBreakdownAgent(client)
        result = await agent.breakdown(script, duration=90, scene_count=6)
    """

    SYSTEM_PROMPT = """You are a visual director preparing background imagery for a narrated short-form vertical video.

Split the narration into consecutive scenes. Each scene must illustrate the part of the
narration spoken while it is on screen, in narration order.

IMPORTANT:
- Describe what the camera sees: setting, characters, lighting, mood
- Keep image prompts photographic and free of on-screen text
- Avoid graphic, violent or explicit wording; describe emotion through expression and composition
- Scenes must cover the narration from start to finish with no gaps

Output ONLY valid JSON matching this schema:
{
    "scenes": [
        {
            "title": "Short scene title",
            "description": "What happens in this part of the narration",
            "imagePrompt": "Detailed image generation prompt for this scene",
            "duration": 10,
            "startTime": 0
        }
    ]
}"""

    def __init__(
        self,
        client: Any,
        config: Optional[PlannerConfig] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        """
        Initialize the SceneBreakdownAgent.

        Args:
            client: Text client exposing an async chat(prompt, system, model, temperature, max_tokens)
            config: Planner model settings
            retry_config: Retry policy for the chat call
        """
        self._client = client
        self._config = config or PlannerConfig()
        self._retry_config = retry_config or planner_retry_config(self._config)

    def _build_prompt(self, script: str, duration: float, scene_count: int) -> str:
        return (
            f"Narration duration: {duration:.0f} seconds\n"
            f"Number of scenes: {scene_count}\n"
            f"Target scene length: {duration / max(scene_count, 1):.1f} seconds\n\n"
            f"NARRATION:\n{script.strip()}"
        )

    async def breakdown(self, script: str, duration: float, scene_count: int) -> SceneBreakdownResult:
        """
        Ask the text model for a scene breakdown.

        Raises:
            SceneBreakdownParseError: if the reply is not the expected JSON shape
            APIError: if the provider call fails after retries
        """
        prompt = self._build_prompt(script, duration, scene_count)
        logger.info(f"Requesting {scene_count} scenes from {self._config.model} for {duration:.0f}s script")

        response = await retry_async_call(
            self._client.chat,
            prompt,
            config=self._retry_config,
            system=self.SYSTEM_PROMPT,
            model=self._config.model,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
            timeout=self._config.timeout,
        )

        drafts = self.parse_response(response.text)
        logger.info(f"Scene breakdown returned {len(drafts)} scenes")
        return SceneBreakdownResult(drafts=drafts, model=response.model)

    @staticmethod
    def _strip_fences(text: str) -> str:
        text = text.strip()
        if text.startswith("```json"):
            text = text[7:]
        if text.startswith("```"):
            text = text[3:]
        if text.endswith("```"):
            text = text[:-3]
        return text.strip()

    @classmethod
    def parse_response(cls, text: str) -> List[SceneDraft]:
        """Parse the model reply into SceneDrafts, tolerating markdown fences."""
        if not text or not text.strip():
            raise SceneBreakdownParseError("empty response", text or "")

        try:
            data = json.loads(cls._strip_fences(text))
        except json.JSONDecodeError as e:
            raise SceneBreakdownParseError(f"invalid JSON ({e.msg})", text)

        scenes = data.get("scenes") if isinstance(data, dict) else data
        if not isinstance(scenes, list):
            raise SceneBreakdownParseError("missing 'scenes' list", text)

        drafts = []
        for item in scenes:
            if not isinstance(item, dict):
                continue
            drafts.append(SceneDraft(
                title=str(item.get("title") or ""),
                description=str(item.get("description") or ""),
                image_prompt=str(item.get("imagePrompt") or item.get("image_prompt") or ""),
                duration=cls._as_float(item.get("duration")),
                start_time=cls._as_float(item.get("startTime", item.get("start_time"))),
            ))
        return drafts

    @staticmethod
    def _as_float(value: Any) -> Optional[float]:
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
