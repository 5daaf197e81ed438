"""
Tests for Script Images Service

Tests for scriptvision/pipelines/script_images.py
"""

import json
from unittest.mock import MagicMock

import pytest

from scriptvision.core.constants import PlannerMode
from scriptvision.core.exceptions import InputValidationError, MissingConfigError, PlanningError
from scriptvision.llm.api_clients import APIError
from scriptvision.pipelines.models import GeneratedImage, ScriptInput
from scriptvision.pipelines.script_images import ScriptImagesService, estimate_download_time


def make_script(words: int) -> str:
    return " ".join(f"word{i}" for i in range(words))


def planner_reply(count: int) -> str:
    return json.dumps({"scenes": [
        {"title": f"Scene {i}", "description": f"description {i}", "imagePrompt": f"image prompt {i}",
         "duration": 10, "startTime": i * 10}
        for i in range(count)
    ]})


@pytest.fixture
def service(fast_config, image_client):
    return ScriptImagesService(fast_config, image_client=image_client)


class TestValidateParams:
    """Tests for boundary validation."""

    def test_valid_request(self, service, sample_script):
        result = service.validate_params(sample_script, 60, 4, "project_1")
        assert result.is_valid
        assert result.errors == []

    def test_collects_every_error(self, service):
        """All problems are reported together."""
        result = service.validate_params("", 5, 11, "")

        assert not result.is_valid
        assert "Script is required and must be a non-empty string" in result.errors
        assert "Duration must be a number between 10 and 3600 seconds" in result.errors
        assert "Max images per minute must be an integer between 1 and 10" in result.errors
        assert "Project ID is required and must be a non-empty string" in result.errors

    def test_short_script(self, service):
        result = service.validate_params("only a few words here", 60, 4, "p1")
        assert "Script should contain at least 10 words for meaningful image generation" in result.errors

    def test_project_id_characters(self, service, sample_script):
        assert not service.validate_params(sample_script, 60, 4, "bad id!").is_valid
        assert not service.validate_params(sample_script, 60, 4, "x" * 101).is_valid
        assert service.validate_params(sample_script, 60, 4, "good_id-2").is_valid

    def test_non_integer_rate(self, service, sample_script):
        assert not service.validate_params(sample_script, 60, 2.5, "p1").is_valid
        assert service.validate_params(sample_script, 60, 4.0, "p1").is_valid

    def test_booleans_rejected(self, service, sample_script):
        assert not service.validate_params(sample_script, True, 4, "p1").is_valid

    def test_long_video_warning_is_soft(self, service, sample_script):
        """Over 10 minutes at more than 4/min warns but stays valid."""
        result = service.validate_params(sample_script, 900, 6, "p1")

        assert result.is_valid
        assert result.errors == []
        assert len(result.warnings) == 1
        assert "4 images per minute recommended" in result.warnings[0]

    def test_negative_audio_duration(self, service, sample_script):
        assert not service.validate_params(sample_script, 60, 4, "p1", audio_duration=-1).is_valid

    @pytest.mark.parametrize("audio_duration", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_audio_duration(self, service, sample_script, audio_duration):
        result = service.validate_params(sample_script, 60, 4, "p1", audio_duration=audio_duration)

        assert not result.is_valid
        assert result.errors == ["Audio duration must be a finite, non-negative number of seconds"]

    def test_require_valid_raises(self, service):
        with pytest.raises(InputValidationError) as exc_info:
            service.require_valid(ScriptInput(script="", duration=60, project_id="p1"))
        assert exc_info.value.errors


class TestPlan:
    """Tests for heuristic and generative planning."""

    @pytest.mark.asyncio
    async def test_heuristic_uses_effective_duration(self, service):
        request = ScriptInput(script=make_script(150), duration=60, project_id="p1", audio_duration=50)
        outcome = await service.plan(request)

        assert outcome.planner == PlannerMode.HEURISTIC
        assert len(outcome.scenes) == 4
        assert outcome.effective_duration == 50
        assert all(s.start_time < 50 for s in outcome.scenes)

    @pytest.mark.asyncio
    async def test_generative_plan(self, fast_config, image_client, make_text_client):
        service = ScriptImagesService(fast_config, image_client=image_client,
                                      text_client=make_text_client(text=planner_reply(8)))
        request = ScriptInput(script=make_script(200), duration=90, project_id="p1",
                              planner=PlannerMode.GENERATIVE)

        outcome = await service.plan(request)

        assert outcome.planner == PlannerMode.GENERATIVE
        assert len(outcome.scenes) == 8
        assert outcome.validation.average_scene_duration == 11.25
        assert outcome.scenes[0].title == "Scene 0"

    @pytest.mark.asyncio
    async def test_generative_parse_failure_falls_back(self, fast_config, image_client, make_text_client):
        """An unparsable reply falls back to heuristic planning and reports it."""
        service = ScriptImagesService(fast_config, image_client=image_client,
                                      text_client=make_text_client(text="I cannot do that"))
        on_fallback = MagicMock()
        request = ScriptInput(script=make_script(150), duration=60, project_id="p1",
                              planner=PlannerMode.GENERATIVE)

        outcome = await service.plan(request, on_fallback=on_fallback)

        assert outcome.planner == PlannerMode.HEURISTIC
        assert outcome.fallback_reason
        on_fallback.assert_called_once()

    @pytest.mark.asyncio
    async def test_generative_provider_error_falls_back(self, fast_config, image_client, make_text_client):
        service = ScriptImagesService(fast_config, image_client=image_client,
                                      text_client=make_text_client(error=APIError("HTTP 500: down", 500)))
        request = ScriptInput(script=make_script(150), duration=60, project_id="p1",
                              planner=PlannerMode.GENERATIVE)

        outcome = await service.plan(request)

        assert outcome.planner == PlannerMode.HEURISTIC

    @pytest.mark.asyncio
    async def test_generative_without_text_client_falls_back(self, service):
        request = ScriptInput(script=make_script(150), duration=60, project_id="p1",
                              planner=PlannerMode.GENERATIVE)
        outcome = await service.plan(request)
        assert outcome.fallback_reason == "text model not configured"

    @pytest.mark.asyncio
    async def test_generative_zero_valid_scenes_is_fatal(self, fast_config, image_client, make_text_client):
        """Scenes that all fall under 5s abort the run."""
        service = ScriptImagesService(fast_config, image_client=image_client,
                                      text_client=make_text_client(text=planner_reply(10)))
        request = ScriptInput(script=make_script(150), duration=30, project_id="p1",
                              planner=PlannerMode.GENERATIVE)

        with pytest.raises(PlanningError):
            await service.plan(request)


class TestRunGeneration:
    """Tests for full runs."""

    @pytest.mark.asyncio
    async def test_summary(self, service):
        request = ScriptInput(script=make_script(150), duration=60, project_id="p1", audio_duration=50)
        summary = await service.run_generation(request)
        data = summary.to_dict()

        assert data["projectId"] == "p1"
        assert data["totalImages"] == 4
        assert data["originalImages"] == 4
        assert data["removedByAudioDuration"] == 0
        assert data["failedImages"] == 0
        assert data["wordCount"] == 150
        assert data["chunkDuration"] == 12.5
        assert data["metadata"]["totalSize"] == 4 * 3000
        assert data["metadata"]["averageImageSize"] == 3000
        assert "images" not in data

    @pytest.mark.asyncio
    async def test_failures_reported(self, fast_config, make_image_client):
        service = ScriptImagesService(fast_config, image_client=make_image_client(fail_on={2}))
        request = ScriptInput(script=make_script(150), duration=60, project_id="p1")

        data = (await service.run_generation(request)).to_dict(include_images=True)

        assert data["failedImages"] == 1
        assert data["failedAttempts"][0]["timestamp"] == 15.0
        assert len(data["images"]) == 3

    @pytest.mark.asyncio
    async def test_generate_legacy_payload(self, service):
        """The single-response payload inlines images and estimates."""
        data = await service.generate(ScriptInput(script=make_script(150), duration=60, project_id="p1"))

        assert data["totalImages"] == 4
        assert data["images"][0]["base64Data"]
        assert data["images"][0]["id"] == "p1_0.png"
        assert data["estimates"]["expectedImages"] == 4
        assert data["warnings"] == []

    @pytest.mark.asyncio
    async def test_generate_rejects_invalid_input(self, service, image_client):
        with pytest.raises(InputValidationError):
            await service.generate(ScriptInput(script="too short", duration=60, project_id="p1"))
        assert image_client.calls == []

    @pytest.mark.asyncio
    async def test_generate_rejects_nan_audio_duration(self, service, image_client, sample_script):
        request = ScriptInput(script=sample_script, duration=60, project_id="p1", audio_duration=float("nan"))

        with pytest.raises(InputValidationError):
            await service.generate(request)
        assert image_client.calls == []

    @pytest.mark.asyncio
    async def test_no_image_client(self, fast_config):
        service = ScriptImagesService(fast_config)
        with pytest.raises(MissingConfigError):
            await service.run_generation(ScriptInput(script=make_script(150), duration=60, project_id="p1"))


class TestEstimateDownloadTime:
    """Tests for payload size estimates."""

    def test_tiers(self):
        image = GeneratedImage(project_id="p", scene_index=1, timestamp=0, b64_data="A" * (4 * 1024 * 1024 * 4 // 3 + 4),
                               prompt="", description="")
        result = estimate_download_time([image, image, image])

        assert result["totalSizeMB"] == 12.0
        assert result["estimatedSeconds"] == {"fast": 1, "medium": 2, "slow": 12}

    def test_empty(self):
        assert estimate_download_time([]) == {
            "totalSizeMB": 0.0,
            "estimatedSeconds": {"fast": 0, "medium": 0, "slow": 0},
        }
