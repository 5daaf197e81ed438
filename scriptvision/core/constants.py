"""
ScriptVision Constants

Global constants used throughout the script-to-images system.
"""

from enum import Enum

# =============================================================================
# VERSION INFO
# =============================================================================
VERSION = "1.0.0"
PROJECT_NAME = "ScriptVision"

# =============================================================================
# SCENE PLANNING
# =============================================================================

# Hard ceiling on generated images per run. One value, configurable through
# GenerationConfig.max_images_per_run.
MAX_IMAGES_PER_RUN = 10

# Generative planner scenes shorter than this are discarded
MIN_SCENE_DURATION = 5.0

# Cadence policy
SECONDS_PER_SCENE_INTERVAL = 15.0
SHORT_VIDEO_THRESHOLD = 60
MEDIUM_VIDEO_THRESHOLD = 300
SHORT_VIDEO_MIN_IMAGES = 4
SHORT_VIDEO_MAX_IMAGES = 6

DEFAULT_MAX_IMAGES_PER_MINUTE = 4

# =============================================================================
# INPUT VALIDATION
# =============================================================================

MIN_SCRIPT_WORDS = 10
MIN_DURATION_SECONDS = 10
MAX_DURATION_SECONDS = 3600
MIN_IMAGES_PER_MINUTE = 1
MAX_IMAGES_PER_MINUTE = 10
LONG_VIDEO_WARNING_SECONDS = 600
RECOMMENDED_LONG_VIDEO_RATE = 4
PROJECT_ID_PATTERN = r'^[A-Za-z0-9_-]{1,100}$'

# =============================================================================
# IMAGE GENERATION
# =============================================================================

INTER_REQUEST_DELAY = 0.8  # seconds between image calls
ESTIMATED_SECONDS_PER_IMAGE = 4.5

# Bandwidth tiers used for download estimates (MB/s)
DOWNLOAD_SPEEDS_MBPS = {
    "fast": 10,
    "medium": 5,
    "slow": 1,
}

# =============================================================================
# STREAMING
# =============================================================================

HEARTBEAT_INTERVAL = 45
MAX_CONNECTION_SECONDS = 15 * 60
SESSION_TTL_SECONDS = 60 * 60
SESSION_CLEANUP_INTERVAL = 5 * 60


class PlannerMode(str, Enum):
    """How scenes are planned from a script."""
    HEURISTIC = "heuristic"
    GENERATIVE = "generative"


class StreamEventType(str, Enum):
    """Event vocabulary emitted over the image stream."""
    INIT = "init"
    ESTIMATES = "estimates"
    PROGRESS = "progress"
    IMAGE = "image"
    ERROR = "error"
    COMPLETE = "complete"
    HEARTBEAT = "heartbeat"


class StreamErrorCode(str, Enum):
    """Machine-readable codes carried by stream error events."""
    AUTH_FAILED = "AUTH_FAILED"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    GENERATION_IN_PROGRESS = "GENERATION_IN_PROGRESS"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    PLANNING_FAILED = "PLANNING_FAILED"
    PLANNER_FALLBACK = "PLANNER_FALLBACK"
    SCENE_FAILED = "SCENE_FAILED"
    STREAM_TIMEOUT = "STREAM_TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class StoreBackend(str, Enum):
    """Supported state store backends."""
    MEMORY = "memory"
    REDIS = "redis"
