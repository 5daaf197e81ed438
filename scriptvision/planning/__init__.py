"""
ScriptVision Planning Module

Scene planning, prompt synthesis and content-policy sanitization.
"""

from .content_policy import CONTENT_POLICY_RULES, sanitize_prompt
from .prompt_synthesizer import (
    SceneContext,
    build_planner_prompt,
    detect_scene_context,
    render_scene_context,
    style_intensity,
    synthesize_prompt,
)
from .scene_planner import (
    GenerationEstimate,
    PlanValidation,
    Scene,
    SceneDraft,
    ScenePlan,
    count_words,
    effective_duration,
    estimate_generation,
    normalize_planned_scenes,
    plan_scenes,
    target_scene_count,
)

__all__ = [
    'CONTENT_POLICY_RULES',
    'sanitize_prompt',
    'SceneContext',
    'build_planner_prompt',
    'detect_scene_context',
    'render_scene_context',
    'style_intensity',
    'synthesize_prompt',
    'GenerationEstimate',
    'PlanValidation',
    'Scene',
    'SceneDraft',
    'ScenePlan',
    'count_words',
    'effective_duration',
    'estimate_generation',
    'normalize_planned_scenes',
    'plan_scenes',
    'target_scene_count',
]
