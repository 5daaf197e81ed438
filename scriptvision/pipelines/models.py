"""
ScriptVision Pipeline Data Model

Inputs, per-image results and run records shared by the worker, the
service and the delivery channel.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from scriptvision.core.constants import DEFAULT_MAX_IMAGES_PER_MINUTE, PlannerMode
from scriptvision.planning.scene_planner import Scene, effective_duration


class RunStatus(Enum):
    """Lifecycle of a generation run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ScriptInput:
    """A request to turn a script into timed images."""
    script: str
    duration: float
    project_id: str
    max_images_per_minute: int = DEFAULT_MAX_IMAGES_PER_MINUTE
    audio_duration: Optional[float] = None
    planner: PlannerMode = PlannerMode.HEURISTIC

    @property
    def effective_duration(self) -> float:
        return effective_duration(self.duration, self.audio_duration)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "script": self.script,
            "duration": self.duration,
            "projectId": self.project_id,
            "maxImagesPerMin": self.max_images_per_minute,
            "audioDuration": self.audio_duration,
            "planner": self.planner.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScriptInput":
        return cls(
            script=data["script"],
            duration=data["duration"],
            project_id=data["projectId"],
            max_images_per_minute=data.get("maxImagesPerMin", DEFAULT_MAX_IMAGES_PER_MINUTE),
            audio_duration=data.get("audioDuration"),
            planner=PlannerMode(data.get("planner", PlannerMode.HEURISTIC.value)),
        )


@dataclass(frozen=True)
class GeneratedImage:
    """One successfully generated scene image. Immutable once created."""
    project_id: str
    scene_index: int
    timestamp: float
    b64_data: str
    prompt: str
    description: str
    mime_type: str = "image/png"

    @property
    def filename(self) -> str:
        return f"{math.floor(self.timestamp)}.png"

    @property
    def id(self) -> str:
        return f"{self.project_id}_{self.filename}"

    @property
    def size_bytes(self) -> int:
        return round(len(self.b64_data) * 3 / 4)

    def to_dict(self, include_data: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "sceneIndex": self.scene_index,
            "timestamp": self.timestamp,
            "filename": self.filename,
            "prompt": self.prompt,
            "description": self.description,
            "size": self.size_bytes,
            "mimeType": self.mime_type,
        }
        if include_data:
            data["base64Data"] = self.b64_data
        return data


@dataclass
class FailedScene:
    """A scene whose image could not be generated."""
    scene: Scene
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sceneIndex": self.scene.index,
            "timestamp": self.scene.start_time,
            "error": self.error,
            "prompt": self.scene.prompt,
            "description": self.scene.source_text,
        }


@dataclass
class ProgressUpdate:
    """Emitted before each scene attempt."""
    current: int
    total: int
    message: str
    timestamp: float
    stage: str = "generating"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current,
            "total": self.total,
            "stage": self.stage,
            "message": self.message,
            "timestamp": self.timestamp,
        }


@dataclass
class GenerationRun:
    """State of one project's generation, mutated by the worker."""
    project_id: str
    scenes: List[Scene] = field(default_factory=list)
    images: List[GeneratedImage] = field(default_factory=list)
    failed_scenes: List[FailedScene] = field(default_factory=list)
    status: RunStatus = RunStatus.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def attempted(self) -> int:
        return len(self.images) + len(self.failed_scenes)

    @property
    def success(self) -> bool:
        # Partial success counts; only planning/fatal errors fail a run
        return self.status == RunStatus.COMPLETED

    def mark_started(self) -> None:
        self.status = RunStatus.RUNNING
        self.started_at = datetime.now(timezone.utc)

    def mark_finished(self, status: RunStatus) -> None:
        self.status = status
        self.finished_at = datetime.now(timezone.utc)


@dataclass
class ValidationResult:
    """Outcome of boundary validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"isValid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


@dataclass
class DurationFilterResult:
    """Images kept after the audio-duration filter, with counts."""
    images: List[GeneratedImage]
    original_count: int
    audio_duration: Optional[float] = None

    @property
    def filtered_count(self) -> int:
        return len(self.images)

    @property
    def removed_count(self) -> int:
        return self.original_count - self.filtered_count
