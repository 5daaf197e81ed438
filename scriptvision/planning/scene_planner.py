"""
ScriptVision Scene Planner

Converts a narration script and an effective duration into ordered,
evenly timed scene windows.

Two entry points:
- plan_scenes(): heuristic path, chunks the script's words across the
  target scene count.
- normalize_planned_scenes(): re-times scenes proposed by the text model
  with an even split of the total duration.

Both enforce the configured hard ceiling on images per run.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from scriptvision.core.config import GenerationConfig
from scriptvision.core.logging_config import get_logger
from scriptvision.planning.prompt_synthesizer import build_planner_prompt, synthesize_prompt

logger = get_logger("planning.scene_planner")


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like Math.round: halves go up, not to even."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def count_words(script: str) -> int:
    """Number of whitespace-separated words in a script."""
    return len((script or "").split())


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class Scene:
    """A timed window of the narration with its image prompt."""
    index: int  # 1-based
    start_time: float
    end_time: float
    duration: float
    source_text: str
    prompt: str
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "sourceText": self.source_text,
            "prompt": self.prompt,
            "title": self.title,
        }


@dataclass
class SceneDraft:
    """A scene as proposed by the text model, before re-timing."""
    title: str = ""
    description: str = ""
    image_prompt: str = ""
    duration: Optional[float] = None
    start_time: Optional[float] = None


@dataclass
class ScenePlan:
    """Result of heuristic planning."""
    scenes: List[Scene]
    word_count: int
    words_per_chunk: int
    target_count: int
    effective_duration: float

    @property
    def chunk_duration(self) -> float:
        if not self.scenes:
            return 0.0
        return round_half_up(self.effective_duration / len(self.scenes), 1)

    @property
    def words_per_second(self) -> float:
        if self.effective_duration <= 0:
            return 0.0
        return round_half_up(self.word_count / self.effective_duration, 2)


@dataclass
class PlanValidation:
    """Diagnostics from re-timing text-model scenes."""
    total_scenes_validated: int
    average_scene_duration: float
    total_calculated_duration: float
    within_requested_duration: bool
    discarded_scenes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalScenesValidated": self.total_scenes_validated,
            "averageSceneDuration": self.average_scene_duration,
            "totalCalculatedDuration": self.total_calculated_duration,
            "withinRequestedDuration": self.within_requested_duration,
            "discardedScenes": self.discarded_scenes,
        }


@dataclass
class GenerationEstimate:
    """Pre-run estimate of image count and processing time."""
    expected_images: int
    estimated_seconds: float
    word_count: int
    words_per_second: float
    chunk_duration: float
    words_per_chunk: int
    effective_duration: float

    def to_dict(self) -> Dict[str, Any]:
        seconds = self.estimated_seconds
        return {
            "expectedImages": self.expected_images,
            "estimatedProcessingTime": {
                "seconds": int(round_half_up(seconds)),
                "minutes": round_half_up(seconds / 60, 1),
                "formatted": f"{int(seconds // 60)}:{int(round_half_up(seconds % 60)):02d}",
            },
            "chunking": {
                "wordCount": self.word_count,
                "wordsPerSecond": self.words_per_second,
                "chunkDuration": self.chunk_duration,
                "wordsPerChunk": self.words_per_chunk,
            },
            "effectiveDuration": self.effective_duration,
        }


# =============================================================================
# ARITHMETIC
# =============================================================================

def effective_duration(nominal_duration: float, audio_duration: Optional[float] = None) -> float:
    """Audio duration is authoritative when supplied and positive."""
    if audio_duration is not None and audio_duration > 0:
        return min(audio_duration, nominal_duration)
    return nominal_duration


def target_scene_count(
    duration: float,
    max_images_per_minute: int,
    config: GenerationConfig = None,
) -> int:
    """
    Number of scenes to plan for a duration.

    - Up to the short threshold: between the short min and max.
    - Up to the medium threshold: one scene per interval.
    - Beyond: the larger of the rate-based and interval-based counts.

    The result never exceeds config.max_images_per_run.
    """
    config = config or GenerationConfig()
    interval = config.seconds_per_scene_interval
    by_interval = math.ceil(duration / interval)

    if duration <= config.short_video_threshold:
        target = max(config.short_video_min_images, min(config.short_video_max_images, by_interval))
    elif duration <= config.medium_video_threshold:
        target = by_interval
    else:
        by_rate = math.ceil(duration / 60 * max_images_per_minute)
        target = max(by_rate, by_interval)

    return max(1, min(target, config.max_images_per_run))


def _chunk_words(words: Sequence[str], count: int) -> Tuple[List[str], int]:
    """
    Split words into exactly `count` contiguous chunks.

    Chunks hold floor(len/count) words each. Remainder words that would
    otherwise spill into extra chunks are merged into the last one.
    """
    words_per_chunk = max(1, len(words) // count)
    chunks = []
    for i in range(count):
        start = i * words_per_chunk
        end = len(words) if i == count - 1 else start + words_per_chunk
        chunks.append(" ".join(words[start:end]))
    return chunks, words_per_chunk


# =============================================================================
# PLANNING
# =============================================================================

def plan_scenes(
    script: str,
    duration: float,
    max_images_per_minute: int,
    config: GenerationConfig = None,
) -> ScenePlan:
    """
    Plan evenly timed scenes for a script.

    A script with fewer words than the target scene count gets one scene
    per word, so no scene is planned without narration behind it.

    Args:
        script: Narration text
        duration: Effective duration in seconds
        max_images_per_minute: Requested density for long videos
        config: Generation policy; defaults to GenerationConfig()

    Returns:
        ScenePlan with scenes in start-time order
    """
    config = config or GenerationConfig()
    words = (script or "").split()
    target = target_scene_count(duration, max_images_per_minute, config)

    if duration <= 0:
        logger.warning(f"Non-positive duration {duration}; no scenes planned")
        return ScenePlan([], len(words), 0, target, duration)

    scene_count = max(1, min(target, len(words)))
    chunks, words_per_chunk = _chunk_words(words, scene_count)
    chunk_seconds = duration / scene_count

    scenes = []
    for i, chunk in enumerate(chunks):
        start = round_half_up(i * chunk_seconds, 1)
        if start >= duration:
            continue
        end = min(round_half_up((i + 1) * chunk_seconds, 1), duration)
        scenes.append(Scene(
            index=len(scenes) + 1,
            start_time=start,
            end_time=end,
            duration=round_half_up(end - start, 2),
            source_text=chunk,
            prompt=synthesize_prompt(chunk, chunk_seconds),
        ))

    logger.info(
        f"Planned {len(scenes)} scenes for {duration}s "
        f"({len(words)} words, {words_per_chunk} words/scene, {chunk_seconds:.1f}s each)"
    )
    return ScenePlan(
        scenes=scenes,
        word_count=len(words),
        words_per_chunk=words_per_chunk,
        target_count=target,
        effective_duration=duration,
    )


def normalize_planned_scenes(
    drafts: Sequence[SceneDraft],
    total_duration: float,
    config: GenerationConfig = None,
) -> Tuple[List[Scene], PlanValidation]:
    """
    Re-time scenes proposed by the text model.

    Proposed timings are ignored: each scene gets total_duration / count,
    and scenes shorter than the minimum duration are discarded. At most
    config.max_images_per_run drafts are considered.
    """
    config = config or GenerationConfig()
    considered = list(drafts)[:config.max_images_per_run]
    if len(drafts) > len(considered):
        logger.warning(f"Planner proposed {len(drafts)} scenes; keeping first {len(considered)}")

    if not considered or total_duration <= 0:
        return [], PlanValidation(0, 0.0, 0.0, True, len(drafts))

    per_scene = total_duration / len(considered)
    scenes = []
    discarded = len(drafts) - len(considered)
    for draft in considered:
        if per_scene < config.min_scene_duration:
            discarded += 1
            continue
        position = len(scenes)
        start = round_half_up(position * per_scene, 2)
        end = round_half_up((position + 1) * per_scene, 2)
        description = draft.description or draft.title
        scenes.append(Scene(
            index=position + 1,
            start_time=start,
            end_time=min(end, total_duration),
            duration=round_half_up(per_scene, 2),
            source_text=description,
            prompt=build_planner_prompt(draft.image_prompt or description, per_scene),
            title=draft.title or None,
        ))

    total_calculated = round_half_up(sum(s.duration for s in scenes), 2)
    validation = PlanValidation(
        total_scenes_validated=len(scenes),
        average_scene_duration=round_half_up(total_calculated / len(scenes), 2) if scenes else 0.0,
        total_calculated_duration=total_calculated,
        within_requested_duration=total_calculated <= total_duration + 0.01,
        discarded_scenes=discarded,
    )
    logger.info(
        f"Validated {validation.total_scenes_validated} planner scenes "
        f"(avg {validation.average_scene_duration}s, {discarded} discarded)"
    )
    return scenes, validation


def estimate_generation(
    script: str,
    duration: float,
    max_images_per_minute: int,
    audio_duration: Optional[float] = None,
    config: GenerationConfig = None,
) -> GenerationEstimate:
    """Estimate image count and processing time with the planning arithmetic."""
    config = config or GenerationConfig()
    effective = effective_duration(duration, audio_duration)
    word_count = count_words(script)
    expected = target_scene_count(effective, max_images_per_minute, config) if effective > 0 else 0

    return GenerationEstimate(
        expected_images=expected,
        estimated_seconds=expected * config.estimated_seconds_per_image,
        word_count=word_count,
        words_per_second=round_half_up(word_count / effective, 2) if effective > 0 else 0.0,
        chunk_duration=round_half_up(effective / expected, 1) if expected else 0.0,
        words_per_chunk=max(1, word_count // expected) if expected else 0,
        effective_duration=effective,
    )
