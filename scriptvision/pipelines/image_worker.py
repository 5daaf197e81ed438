"""
ScriptVision Image Generation Worker

Generates one image per scene, strictly in order, with a fixed delay
between provider calls. A failed scene is recorded and the run moves on.
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Sequence

from scriptvision.core.config import GenerationConfig, ImageProviderConfig
from scriptvision.core.logging_config import get_logger, project_logger
from scriptvision.pipelines.models import (
    FailedScene,
    GeneratedImage,
    GenerationRun,
    ProgressUpdate,
    RunStatus,
)
from scriptvision.planning.scene_planner import Scene

logger = get_logger("pipelines.image_worker")

ProgressCallback = Callable[[ProgressUpdate], None]
ImageCallback = Callable[[GeneratedImage, Dict[str, int]], None]
ErrorCallback = Callable[[FailedScene], None]


class ImageGenerationWorker:
    """
    Sequential image generator for a planned run.

    Features:
    - One provider call at a time, in scene order
    - Fixed inter-request delay, none after the last scene
    - Per-scene failure isolation
    - Cooperative cancellation

    Usage:
        worker = ImageGenerationWorker(client)
        run = await worker.generate("project_1", scenes, on_image=handle_image)
    """

    def __init__(
        self,
        client: Any,
        provider_config: Optional[ImageProviderConfig] = None,
        generation_config: Optional[GenerationConfig] = None,
    ):
        """
        Initialize the worker.

        Args:
            client: Image client exposing async generate_image(prompt, model, size, quality)
            provider_config: Model, size and quality sent with every request
            generation_config: Supplies the inter-request delay
        """
        self._client = client
        self._provider = provider_config or ImageProviderConfig()
        self._generation = generation_config or GenerationConfig()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop before the next scene. An in-flight provider call is left to finish."""
        self._cancelled = True

    async def generate(
        self,
        project_id: str,
        scenes: Sequence[Scene],
        on_progress: Optional[ProgressCallback] = None,
        on_image: Optional[ImageCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> GenerationRun:
        """
        Generate images for every scene.

        Args:
            project_id: Owner of the generated images
            scenes: Scenes in start-time order
            on_progress: Called before each attempt
            on_image: Called after each success with the image and counters
            on_error: Called after each failed attempt

        Returns:
            GenerationRun with images and failures. Status is COMPLETED even
            when some scenes failed, CANCELLED if cancel() was called.
        """
        run = GenerationRun(project_id=project_id, scenes=list(scenes))
        run.mark_started()
        total = len(run.scenes)
        log = project_logger(logger, project_id)
        log.info(f"Generating {total} images")

        for i, scene in enumerate(run.scenes):
            if self._cancelled:
                break

            if on_progress:
                on_progress(ProgressUpdate(
                    current=i + 1,
                    total=total,
                    message=f"Generating image {i + 1}/{total}...",
                    timestamp=scene.start_time,
                ))

            try:
                payload = await self._client.generate_image(
                    scene.prompt,
                    model=self._provider.model,
                    size=self._provider.size,
                    quality=self._provider.quality,
                )
            except Exception as e:
                failure = FailedScene(scene=scene, error=str(e))
                run.failed_scenes.append(failure)
                log.warning(f"Scene {scene.index} at {scene.start_time}s failed: {e}")
                if on_error and not self._cancelled:
                    on_error(failure)
            else:
                image = GeneratedImage(
                    project_id=project_id,
                    scene_index=scene.index,
                    timestamp=scene.start_time,
                    b64_data=payload.b64_data,
                    prompt=scene.prompt,
                    description=scene.source_text,
                    mime_type=getattr(payload, "mime_type", None) or self._provider.mime_type,
                )
                run.images.append(image)
                log.info(f"Generated {image.filename} ({round(image.size_bytes / 1024)}KB)")
                if getattr(payload, "revised_prompt", None):
                    log.debug(f"Scene {scene.index} prompt revised by provider: {payload.revised_prompt[:100]}")
                if on_image and not self._cancelled:
                    on_image(image, {
                        "current": i + 1,
                        "total": total,
                        "completed": i + 1,
                        "remaining": total - (i + 1),
                    })

            if i < total - 1 and not self._cancelled:
                await asyncio.sleep(self._generation.inter_request_delay)

        if self._cancelled:
            run.mark_finished(RunStatus.CANCELLED)
            log.info(f"Generation cancelled after {run.attempted}/{total} scenes")
        else:
            run.mark_finished(RunStatus.COMPLETED)
            log.info(
                f"Generation finished: "
                f"{len(run.images)} images, {len(run.failed_scenes)} failed"
            )
        return run
