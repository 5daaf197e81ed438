"""
ScriptVision Pipelines Module

Data model, image generation worker, audio-duration filter and the
script-to-images orchestration service.
"""

from .models import (
    DurationFilterResult,
    FailedScene,
    GeneratedImage,
    GenerationRun,
    ProgressUpdate,
    RunStatus,
    ScriptInput,
    ValidationResult,
)
from .duration_filter import filter_by_audio_duration
from .image_worker import ImageGenerationWorker
from .script_images import (
    GenerationSummary,
    PlanOutcome,
    ScriptImagesService,
    estimate_download_time,
)

__all__ = [
    'DurationFilterResult',
    'FailedScene',
    'GeneratedImage',
    'GenerationRun',
    'ProgressUpdate',
    'RunStatus',
    'ScriptInput',
    'ValidationResult',
    'filter_by_audio_duration',
    'ImageGenerationWorker',
    'GenerationSummary',
    'PlanOutcome',
    'ScriptImagesService',
    'estimate_download_time',
]
