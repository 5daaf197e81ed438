"""API routers for ScriptVision."""

from scriptvision.api.routers import script_images

__all__ = ["script_images"]
