"""
ScriptVision - Timed image generation for narrated scripts

Turns a narration script and its duration into evenly timed scene images,
delivered in one response or progressively over an event stream.

Version: 1.0.0
"""

__version__ = "1.0.0"
__project__ = "ScriptVision"

from pathlib import Path

# Load environment variables early - before any other imports that might need them
from scriptvision.core.env_loader import ensure_env_loaded
ensure_env_loaded()

# Package root directory
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent
