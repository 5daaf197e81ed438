"""
ScriptVision Script Images Service

Orchestrates one script-to-images run:

    validate → plan (heuristic or generative) → generate → filter → summarise

The service has no transport dependency. The HTTP router calls generate()
for the single-response variant, and the delivery channel calls
run_generation() with callbacks to stream progress as it happens.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from scriptvision.agents.scene_breakdown_agent import SceneBreakdownAgent
from scriptvision.core.config import ScriptVisionConfig, get_config
from scriptvision.core.constants import (
    DOWNLOAD_SPEEDS_MBPS,
    LONG_VIDEO_WARNING_SECONDS,
    MAX_DURATION_SECONDS,
    MAX_IMAGES_PER_MINUTE,
    MIN_DURATION_SECONDS,
    MIN_IMAGES_PER_MINUTE,
    MIN_SCRIPT_WORDS,
    PROJECT_ID_PATTERN,
    RECOMMENDED_LONG_VIDEO_RATE,
    PlannerMode,
)
from scriptvision.core.exceptions import InputValidationError, MissingConfigError, PlanningError
from scriptvision.core.logging_config import get_logger, project_logger
from scriptvision.llm.api_clients import APIError
from scriptvision.pipelines.duration_filter import filter_by_audio_duration
from scriptvision.pipelines.image_worker import (
    ErrorCallback,
    ImageCallback,
    ImageGenerationWorker,
    ProgressCallback,
)
from scriptvision.pipelines.models import (
    DurationFilterResult,
    GeneratedImage,
    GenerationRun,
    ScriptInput,
    ValidationResult,
)
from scriptvision.planning.scene_planner import (
    GenerationEstimate,
    PlanValidation,
    Scene,
    count_words,
    estimate_generation,
    normalize_planned_scenes,
    plan_scenes,
    round_half_up,
    target_scene_count,
)

logger = get_logger("pipelines.script_images")

FallbackCallback = Callable[[str], None]

_PROJECT_ID_RE = re.compile(PROJECT_ID_PATTERN)


def estimate_download_time(images: Sequence[GeneratedImage]) -> Dict[str, Any]:
    """Payload size in MB and rounded transfer seconds per bandwidth tier."""
    total_size = sum(img.size_bytes for img in images)
    total_mb = total_size / (1024 * 1024)
    return {
        "totalSizeMB": round_half_up(total_mb, 2),
        "estimatedSeconds": {
            tier: int(round_half_up(total_mb / speed))
            for tier, speed in DOWNLOAD_SPEEDS_MBPS.items()
        },
    }


@dataclass
class PlanOutcome:
    """Scenes chosen for a run and how they were produced."""
    scenes: List[Scene]
    planner: PlannerMode
    word_count: int
    words_per_chunk: int
    effective_duration: float
    validation: Optional[PlanValidation] = None
    fallback_reason: Optional[str] = None

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
class GenerationSummary:
    """Final report for a run."""
    request: ScriptInput
    plan: PlanOutcome
    run: GenerationRun
    filtered: DurationFilterResult
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def images(self) -> List[GeneratedImage]:
        return self.filtered.images

    def metadata(self) -> Dict[str, Any]:
        images = self.filtered.images
        total_size = sum(img.size_bytes for img in images)
        return {
            "totalSize": total_size,
            "averageImageSize": round(total_size / len(images)) if images else 0,
            "estimatedDownloadTime": estimate_download_time(images),
        }

    def to_dict(self, include_images: bool = False) -> Dict[str, Any]:
        data = {
            "projectId": self.request.project_id,
            "duration": self.request.duration,
            "audioDuration": self.request.audio_duration,
            "effectiveDuration": self.plan.effective_duration,
            "maxImagesPerMin": self.request.max_images_per_minute,
            "planner": self.plan.planner.value,
            "wordCount": self.plan.word_count,
            "wordsPerSecond": self.plan.words_per_second,
            "chunkDuration": self.plan.chunk_duration,
            "wordsPerChunk": self.plan.words_per_chunk,
            "totalImages": self.filtered.filtered_count,
            "originalImages": self.filtered.original_count,
            "removedByAudioDuration": self.filtered.removed_count,
            "failedImages": len(self.run.failed_scenes),
            "generatedAt": self.generated_at.isoformat(),
            "metadata": self.metadata(),
        }
        if self.plan.validation is not None:
            data["planValidation"] = self.plan.validation.to_dict()
        if include_images:
            data["script"] = self.request.script
            data["images"] = [img.to_dict() for img in self.filtered.images]
            data["failedAttempts"] = [f.to_dict() for f in self.run.failed_scenes]
        return data


class ScriptImagesService:
    """
    Script-to-images orchestration.

    Usage:
        service = ScriptImagesService(config, image_client=OpenAIClient())
        result = await service.generate(ScriptInput(script, 60, "proj_1"))
    """

    def __init__(
        self,
        config: Optional[ScriptVisionConfig] = None,
        image_client: Any = None,
        text_client: Any = None,
    ):
        """
        Initialize the service.

        Args:
            config: Application config; defaults to the global config
            image_client: Provider for generate_image(); required to run generations
            text_client: Provider for chat(); enables generative planning
        """
        self.config = config or get_config()
        self.image_client = image_client
        self.text_client = text_client

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_params(
        self,
        script: Any,
        duration: Any,
        max_images_per_minute: Any = None,
        project_id: Any = None,
        audio_duration: Any = None,
    ) -> ValidationResult:
        """Boundary validation. Soft advisories go to warnings, never errors."""
        if max_images_per_minute is None:
            max_images_per_minute = self.config.generation.default_max_images_per_minute
        errors = []
        warnings = []

        script_ok = isinstance(script, str) and script.strip()
        if not script_ok:
            errors.append("Script is required and must be a non-empty string")

        duration_ok = (
            isinstance(duration, (int, float)) and not isinstance(duration, bool)
            and MIN_DURATION_SECONDS <= duration <= MAX_DURATION_SECONDS
        )
        if not duration_ok:
            errors.append(
                f"Duration must be a number between {MIN_DURATION_SECONDS} and {MAX_DURATION_SECONDS} seconds"
            )

        rate_ok = (
            isinstance(max_images_per_minute, (int, float)) and not isinstance(max_images_per_minute, bool)
            and float(max_images_per_minute).is_integer()
            and MIN_IMAGES_PER_MINUTE <= max_images_per_minute <= MAX_IMAGES_PER_MINUTE
        )
        if not rate_ok:
            errors.append(
                f"Max images per minute must be an integer between {MIN_IMAGES_PER_MINUTE} and {MAX_IMAGES_PER_MINUTE}"
            )

        if not isinstance(project_id, str) or not project_id.strip():
            errors.append("Project ID is required and must be a non-empty string")
        elif not _PROJECT_ID_RE.match(project_id):
            errors.append("Project ID may only contain letters, numbers, hyphens and underscores (max 100)")

        if script_ok and count_words(script) < MIN_SCRIPT_WORDS:
            errors.append(f"Script should contain at least {MIN_SCRIPT_WORDS} words for meaningful image generation")

        if audio_duration is not None and (
            not isinstance(audio_duration, (int, float)) or isinstance(audio_duration, bool)
            or not math.isfinite(audio_duration) or audio_duration < 0
        ):
            errors.append("Audio duration must be a finite, non-negative number of seconds")

        if duration_ok and rate_ok and duration > LONG_VIDEO_WARNING_SECONDS \
                and max_images_per_minute > RECOMMENDED_LONG_VIDEO_RATE:
            warnings.append(
                f"For durations over {LONG_VIDEO_WARNING_SECONDS // 60} minutes, max "
                f"{RECOMMENDED_LONG_VIDEO_RATE} images per minute recommended for performance"
            )

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def validate_input(self, request: ScriptInput) -> ValidationResult:
        return self.validate_params(
            request.script,
            request.duration,
            request.max_images_per_minute,
            request.project_id,
            request.audio_duration,
        )

    def require_valid(self, request: ScriptInput) -> ValidationResult:
        """Validate or raise InputValidationError."""
        result = self.validate_input(request)
        for warning in result.warnings:
            project_logger(logger, request.project_id).warning(warning)
        if not result.is_valid:
            raise InputValidationError(result.errors, result.warnings)
        return result

    # ------------------------------------------------------------------
    # Estimation and planning
    # ------------------------------------------------------------------

    def estimate(self, request: ScriptInput) -> GenerationEstimate:
        return estimate_generation(
            request.script,
            request.duration,
            request.max_images_per_minute,
            audio_duration=request.audio_duration,
            config=self.config.generation,
        )

    def _plan_heuristic(self, request: ScriptInput, fallback_reason: Optional[str] = None) -> PlanOutcome:
        plan = plan_scenes(
            request.script,
            request.effective_duration,
            request.max_images_per_minute,
            self.config.generation,
        )
        return PlanOutcome(
            scenes=plan.scenes,
            planner=PlannerMode.HEURISTIC,
            word_count=plan.word_count,
            words_per_chunk=plan.words_per_chunk,
            effective_duration=plan.effective_duration,
            fallback_reason=fallback_reason,
        )

    async def plan(self, request: ScriptInput, on_fallback: Optional[FallbackCallback] = None) -> PlanOutcome:
        """
        Produce the scenes for a run.

        Generative planning falls back to the heuristic planner when the
        text model is unavailable or its reply cannot be parsed. A parsed
        reply with no usable scenes raises PlanningError.
        """
        outcome = None
        if request.planner == PlannerMode.GENERATIVE:
            outcome = await self._plan_generative(request, on_fallback)
        if outcome is None:
            outcome = self._plan_heuristic(request)

        if not outcome.scenes:
            raise PlanningError(
                "No scenes could be planned for this script",
                {"project_id": request.project_id, "planner": outcome.planner.value},
            )
        return outcome

    async def _plan_generative(
        self,
        request: ScriptInput,
        on_fallback: Optional[FallbackCallback],
    ) -> Optional[PlanOutcome]:
        duration = request.effective_duration
        target = target_scene_count(duration, request.max_images_per_minute, self.config.generation)

        if self.text_client is None:
            reason = "text model not configured"
        else:
            agent = SceneBreakdownAgent(self.text_client, self.config.planner)
            try:
                result = await agent.breakdown(request.script, duration, target)
            except (PlanningError, APIError) as e:
                reason = str(e)
            else:
                scenes, validation = normalize_planned_scenes(result.drafts, duration, self.config.generation)
                if not scenes:
                    raise PlanningError(
                        "Scene breakdown produced no scenes that pass timing validation",
                        {"project_id": request.project_id, "proposed": len(result.drafts)},
                    )
                project_logger(logger, request.project_id).info(
                    f"{result.model} proposed {len(result.drafts)} scenes; {len(scenes)} kept after re-timing"
                )
                word_count = count_words(request.script)
                return PlanOutcome(
                    scenes=scenes,
                    planner=PlannerMode.GENERATIVE,
                    word_count=word_count,
                    words_per_chunk=max(1, word_count // len(scenes)),
                    effective_duration=duration,
                    validation=validation,
                )

        project_logger(logger, request.project_id).warning(f"Generative planning unavailable ({reason}); using heuristic planner")
        if on_fallback:
            on_fallback(reason)
        return self._plan_heuristic(request, fallback_reason=reason)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def create_worker(self) -> ImageGenerationWorker:
        if self.image_client is None:
            raise MissingConfigError("No image client configured")
        return ImageGenerationWorker(
            self.image_client,
            provider_config=self.config.image_provider,
            generation_config=self.config.generation,
        )

    async def run_generation(
        self,
        request: ScriptInput,
        worker: Optional[ImageGenerationWorker] = None,
        plan: Optional[PlanOutcome] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_image: Optional[ImageCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_fallback: Optional[FallbackCallback] = None,
    ) -> GenerationSummary:
        """
        Plan (unless a plan is given), generate and filter one run.

        Raises:
            PlanningError: no scenes could be planned
        """
        worker = worker or self.create_worker()
        plan = plan or await self.plan(request, on_fallback=on_fallback)

        run = await worker.generate(
            request.project_id,
            plan.scenes,
            on_progress=on_progress,
            on_image=on_image,
            on_error=on_error,
        )
        filtered = filter_by_audio_duration(run.images, request.audio_duration)
        summary = GenerationSummary(request=request, plan=plan, run=run, filtered=filtered)

        project_logger(logger, request.project_id).info(
            f"Run complete: {filtered.filtered_count} delivered, "
            f"{filtered.removed_count} removed by audio duration, {len(run.failed_scenes)} failed "
            f"({round(summary.metadata()['totalSize'] / 1024)}KB)"
        )
        return summary

    async def generate(self, request: ScriptInput) -> Dict[str, Any]:
        """Single-response run: validate, generate everything, return the full payload."""
        validation = self.require_valid(request)
        estimate = self.estimate(request)
        summary = await self.run_generation(request)

        data = summary.to_dict(include_images=True)
        data["estimates"] = estimate.to_dict()
        data["warnings"] = validation.warnings
        return data
