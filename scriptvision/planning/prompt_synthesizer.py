"""
ScriptVision Prompt Synthesizer

Turns a script chunk into an image-generation prompt.

Context detection and rendering are separate steps: detect_scene_context()
reads keyword cues out of the text into a SceneContext, and
render_scene_context() turns that structure into the "Scene: ..." sentence
embedded in the final prompt.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from scriptvision.core.logging_config import get_logger
from scriptvision.planning.content_policy import sanitize_prompt

logger = get_logger("planning.prompt_synthesizer")


# Chunks longer than this are cut before being quoted into the prompt
MAX_CHUNK_CHARS = 1000

FALLBACK_DESCRIPTION = "a quiet, atmospheric establishing shot that sets the tone of the story"

DEFAULT_LIGHTING = "natural lighting"
DEFAULT_MOOD = "neutral atmosphere"

PROMPT_BOILERPLATE = (
    "Style: High-quality, professional photography, dramatic lighting, rich colors.\n"
    "Format: Vertical 9:16 aspect ratio, mobile-optimized framing, no text overlays.\n"
    "Focus: Visual storytelling that directly illustrates the narrated content, "
    "cinematic composition suitable for video backgrounds."
)


# =============================================================================
# KEYWORD TABLES
# Each table is ordered; the first matching row wins.
# =============================================================================

SETTING_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("home", "house", "apartment", "room", "bedroom", "living room"), "cozy indoor residential setting"),
    (("office", "work", "workplace", "desk"), "professional office environment"),
    (("school", "classroom", "university", "college"), "educational institutional setting"),
    (("restaurant", "cafe", "diner", "kitchen"), "culinary dining environment"),
    (("hospital", "doctor", "medical", "clinic"), "clean medical facility"),
    (("car", "driving", "road", "traffic"), "automotive transportation scene"),
    (("park", "outside", "outdoor", "outdoors", "nature", "tree", "trees"), "natural outdoor environment"),
    (("store", "shop", "mall", "market"), "commercial retail space"),
]

LIGHTING_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("morning", "dawn", "sunrise"), "warm golden morning light"),
    (("afternoon", "day", "noon"), "bright natural daylight"),
    (("evening", "sunset", "dusk"), "warm amber evening light"),
    (("night", "dark", "midnight"), "dramatic night lighting"),
]

WEATHER_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("rain", "raining", "storm", "thunder", "wet"), "stormy dramatic atmosphere"),
    (("sunny", "bright", "clear"), "bright cheerful atmosphere"),
    (("cloudy", "overcast", "grey", "gray"), "soft overcast atmosphere"),
    (("snow", "winter", "cold", "ice"), "crisp winter atmosphere"),
]

EMOTION_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("happy", "joy", "excited", "celebrating", "smile", "smiling"), "joyful uplifting atmosphere"),
    (("sad", "crying", "tears", "depressed"), "melancholic emotional atmosphere"),
    (("angry", "mad", "furious", "rage"), "tense confrontational atmosphere"),
    (("scared", "afraid", "terrified", "worried"), "suspenseful anxious atmosphere"),
]

ACTION_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("running", "chase", "chasing", "hurry", "rush", "rushing"), "dynamic motion with urgency"),
    (("walking", "moving", "going"), "gentle movement and transition"),
    (("sitting", "relaxing", "resting"), "calm stationary composition"),
]

MALE_KEYWORDS = ("he", "him", "his", "man", "guy", "father", "dad", "husband")
FEMALE_KEYWORDS = ("she", "her", "woman", "girl", "mother", "mom", "wife")
GROUP_KEYWORDS = ("they", "people", "everyone", "crowd")
CHILD_KEYWORDS = ("child", "children", "kid", "kids", "baby", "son", "daughter")


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    """Whole-word, case-insensitive membership test."""
    pattern = r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")\b"
    return re.search(pattern, text, re.IGNORECASE) is not None


def _first_match(text: str, table: Sequence[Tuple[Tuple[str, ...], str]]) -> Optional[str]:
    for keywords, label in table:
        if _contains_any(text, keywords):
            return label
    return None


@dataclass
class SceneContext:
    """Visual cues detected in a script chunk."""
    setting: Optional[str] = None
    characters: Optional[str] = None
    lighting: str = DEFAULT_LIGHTING
    mood: str = DEFAULT_MOOD
    action: Optional[str] = None


def _detect_characters(text: str) -> Optional[str]:
    characters = None
    if _contains_any(text, MALE_KEYWORDS):
        characters = "featuring a male character"
    if _contains_any(text, FEMALE_KEYWORDS):
        characters = f"{characters} and a female character" if characters else "featuring a female character"
    if _contains_any(text, GROUP_KEYWORDS):
        characters = "featuring multiple people"
    if _contains_any(text, CHILD_KEYWORDS):
        characters = f"{characters} including children" if characters else "featuring children"
    return characters


def detect_scene_context(text: str) -> SceneContext:
    """
    Detect setting, characters, lighting, mood and action cues in text.

    Emotional tone takes precedence over weather when both set the mood.
    """
    text = text or ""
    mood = _first_match(text, EMOTION_KEYWORDS) or _first_match(text, WEATHER_KEYWORDS)
    return SceneContext(
        setting=_first_match(text, SETTING_KEYWORDS),
        characters=_detect_characters(text),
        lighting=_first_match(text, LIGHTING_KEYWORDS) or DEFAULT_LIGHTING,
        mood=mood or DEFAULT_MOOD,
        action=_first_match(text, ACTION_KEYWORDS),
    )


def render_scene_context(context: SceneContext) -> str:
    """Render a SceneContext as a single 'Scene: ...' sentence."""
    parts = [
        context.setting,
        context.characters,
        context.lighting,
        context.mood,
        context.action,
    ]
    return f"Scene: {', '.join(p for p in parts if p)}."


def style_intensity(duration: float) -> str:
    """Style qualifier for how long the image stays on screen."""
    if duration <= 10:
        return "clean, focused"
    if duration <= 20:
        return "detailed, cinematic"
    return "rich, immersive"


def synthesize_prompt(chunk: str, duration: float = 15.0) -> str:
    """
    Build the image prompt for one scene from its script chunk.

    Args:
        chunk: Script fragment covered by the scene
        duration: Seconds the image is shown

    Returns:
        Prompt text for the image provider. An empty chunk yields a
        generic establishing-shot prompt instead of an error.
    """
    clean_chunk = (chunk or "").strip()
    if not clean_chunk:
        logger.warning("Empty script chunk; using fallback description")
        clean_chunk = FALLBACK_DESCRIPTION
    elif len(clean_chunk) > MAX_CHUNK_CHARS:
        clean_chunk = clean_chunk[:MAX_CHUNK_CHARS].rsplit(" ", 1)[0] + "..."

    visual_context = render_scene_context(detect_scene_context(clean_chunk))
    prompt = (
        f'Create a {style_intensity(duration)} visual representation of: "{clean_chunk}". \n'
        f"{visual_context}\n"
        f"{PROMPT_BOILERPLATE}"
    )
    logger.debug(f"Generated prompt: {prompt[:150]}...")
    return prompt


def build_planner_prompt(image_prompt: str, duration: float = 15.0) -> str:
    """
    Finalize a prompt written by the text model.

    The prompt is passed through the content-policy table and given the
    same framing boilerplate as heuristic prompts.
    """
    description = sanitize_prompt((image_prompt or "").strip())
    if not description:
        return synthesize_prompt("", duration)
    return f"{description}\n{PROMPT_BOILERPLATE}"
