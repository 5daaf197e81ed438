"""
Tests for Image Generation Worker

Tests for scriptvision/pipelines/image_worker.py
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from scriptvision.core.config import GenerationConfig, ImageProviderConfig
from scriptvision.pipelines.image_worker import ImageGenerationWorker
from scriptvision.pipelines.models import RunStatus
from scriptvision.planning.scene_planner import Scene


def make_scenes(count: int, spacing: float = 10.0):
    return [
        Scene(index=i + 1, start_time=i * spacing, end_time=(i + 1) * spacing, duration=spacing,
              source_text=f"text {i + 1}", prompt=f"prompt {i + 1}")
        for i in range(count)
    ]


NO_DELAY = GenerationConfig(inter_request_delay=0.0)


class TestImageGenerationWorker:
    """Tests for sequential generation."""

    @pytest.mark.asyncio
    async def test_generates_in_order(self, image_client):
        """One call per scene, in scene order, with provider settings."""
        worker = ImageGenerationWorker(image_client, generation_config=NO_DELAY)
        run = await worker.generate("proj_1", make_scenes(3))

        assert [c["prompt"] for c in image_client.calls] == ["prompt 1", "prompt 2", "prompt 3"]
        assert image_client.calls[0]["size"] == "1024x1792"
        assert image_client.calls[0]["quality"] == "standard"
        assert [img.scene_index for img in run.images] == [1, 2, 3]
        assert run.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_partial_failure_is_success(self, make_image_client):
        """Scene 3 of 5 failing leaves 1, 2, 4, 5 and a completed run."""
        client = make_image_client(fail_on={3})
        worker = ImageGenerationWorker(client, generation_config=NO_DELAY)

        run = await worker.generate("proj_1", make_scenes(5))

        assert [img.scene_index for img in run.images] == [1, 2, 4, 5]
        assert len(run.failed_scenes) == 1
        assert run.failed_scenes[0].scene.index == 3
        assert "provider unavailable" in run.failed_scenes[0].error
        assert run.success is True

    @pytest.mark.asyncio
    async def test_callbacks(self, make_image_client):
        """Progress before each attempt, image after success, error after failure."""
        client = make_image_client(fail_on={2})
        worker = ImageGenerationWorker(client, generation_config=NO_DELAY)
        on_progress, on_image, on_error = MagicMock(), MagicMock(), MagicMock()

        await worker.generate("proj_1", make_scenes(3), on_progress=on_progress,
                              on_image=on_image, on_error=on_error)

        assert on_progress.call_count == 3
        first = on_progress.call_args_list[0].args[0]
        assert (first.current, first.total, first.timestamp) == (1, 3, 0.0)
        assert first.message == "Generating image 1/3..."
        assert on_image.call_count == 2
        image, progress = on_image.call_args_list[1].args
        assert image.scene_index == 3
        assert progress == {"current": 3, "total": 3, "completed": 3, "remaining": 0}
        assert on_error.call_count == 1

    @pytest.mark.asyncio
    async def test_delay_between_scenes_only(self, image_client):
        """N scenes sleep N-1 times."""
        worker = ImageGenerationWorker(image_client, generation_config=GenerationConfig(inter_request_delay=0.8))

        with patch("scriptvision.pipelines.image_worker.asyncio.sleep", new=AsyncMock()) as sleep:
            await worker.generate("proj_1", make_scenes(4))

        assert sleep.await_count == 3
        sleep.assert_awaited_with(0.8)

    @pytest.mark.asyncio
    async def test_image_fields(self, image_client):
        """Filename, id and size derive from the timestamp and payload."""
        worker = ImageGenerationWorker(image_client, generation_config=NO_DELAY)
        run = await worker.generate("proj_1", make_scenes(2, spacing=12.5))

        image = run.images[1]
        assert image.filename == "12.png"
        assert image.id == "proj_1_12.png"
        assert image.size_bytes == 3000
        assert image.description == "text 2"
        assert image.to_dict()["base64Data"] == image_client.b64_data

    @pytest.mark.asyncio
    async def test_cancel_stops_before_next_scene(self, image_client):
        """Cancelling from a callback prevents further provider calls."""
        worker = ImageGenerationWorker(image_client, generation_config=NO_DELAY)

        def cancel_after_first(image, progress):
            worker.cancel()

        run = await worker.generate("proj_1", make_scenes(4), on_image=cancel_after_first)

        assert len(image_client.calls) == 1
        assert run.status == RunStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_custom_provider_settings(self, image_client):
        provider = ImageProviderConfig(model="dall-e-2", size="1024x1024", quality="hd")
        worker = ImageGenerationWorker(image_client, provider_config=provider, generation_config=NO_DELAY)

        await worker.generate("proj_1", make_scenes(1))

        assert image_client.calls[0]["model"] == "dall-e-2"
        assert image_client.calls[0]["size"] == "1024x1024"
