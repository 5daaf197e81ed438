"""
Audio-duration filter for generated images.

Runs after generation: images whose timestamp falls at or beyond the real
narration length are dropped.
"""

import math
from typing import Optional, Sequence

from scriptvision.core.logging_config import get_logger
from scriptvision.pipelines.models import DurationFilterResult, GeneratedImage

logger = get_logger("pipelines.duration_filter")


def filter_by_audio_duration(
    images: Sequence[GeneratedImage],
    audio_duration: Optional[float],
) -> DurationFilterResult:
    """
    Keep images with timestamp < audio_duration.

    The filter is a no-op unless audio_duration is a positive, finite number.
    Applying it twice with the same duration gives the same result.
    """
    images = list(images)
    if audio_duration is None or not math.isfinite(audio_duration) or audio_duration <= 0:
        return DurationFilterResult(images=images, original_count=len(images))

    kept = [img for img in images if img.timestamp < audio_duration]
    result = DurationFilterResult(images=kept, original_count=len(images), audio_duration=audio_duration)

    if result.removed_count:
        logger.info(
            f"Audio duration {audio_duration}s removed {result.removed_count} image(s); "
            f"{result.filtered_count}/{result.original_count} kept"
        )
    return result
