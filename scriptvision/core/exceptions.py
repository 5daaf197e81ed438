"""
ScriptVision Custom Exceptions

Custom exception classes for error handling throughout the script-to-images system.
"""

from typing import List, Optional


class ScriptVisionError(Exception):
    """Base exception for all ScriptVision errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(ScriptVisionError):
    """Raised when there's an issue with configuration."""
    pass


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration is missing."""
    pass


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is invalid."""
    pass


# =============================================================================
# INPUT ERRORS
# =============================================================================

class InputValidationError(ScriptVisionError):
    """Raised when request parameters fail boundary validation."""

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        message = "Invalid parameters: " + ", ".join(errors)
        super().__init__(message, {"errors": errors, "warnings": warnings or []})
        self.errors = errors
        self.warnings = warnings or []


# =============================================================================
# PIPELINE ERRORS
# =============================================================================

class PlanningError(ScriptVisionError):
    """Raised when no usable scene plan can be produced for a run."""
    pass


class SceneBreakdownParseError(PlanningError):
    """Raised when the text model's scene breakdown cannot be parsed."""

    def __init__(self, reason: str, raw_response: str = ""):
        message = f"Scene breakdown could not be parsed: {reason}"
        super().__init__(message, {"reason": reason, "preview": raw_response[:200]})


# =============================================================================
# DELIVERY ERRORS
# =============================================================================

class GenerationConflictError(ScriptVisionError):
    """Raised when a generation is already running for a project."""

    def __init__(self, project_id: str):
        message = f"Image generation already in progress for project '{project_id}'"
        super().__init__(message, {"project_id": project_id})
        self.project_id = project_id


class AuthenticationError(ScriptVisionError):
    """Raised when a request cannot be authenticated."""
    pass


class StoreError(ScriptVisionError):
    """Raised when the session/lock state store fails."""
    pass
