"""
AIPainter - type a prompt, get an image from a text-to-image API.
"""

from pathlib import Path

# Read version from VERSION file (single source of truth)
_version_file = Path(__file__).parent.parent / "VERSION"
if _version_file.exists():
    __version__ = _version_file.read_text().strip()
else:
    __version__ = "0.1.0"  # Fallback for installed packages

from aipainter.core.stable_diffusion import (
    StableDiffusionClient,
    GenerationRequest,
    GenerationSuccess,
    GenerationFailure,
    FailureKind,
)
from aipainter.session import GenerationSession
from aipainter.config import Config

__all__ = [
    "__version__",
    "StableDiffusionClient",
    "GenerationRequest",
    "GenerationSuccess",
    "GenerationFailure",
    "FailureKind",
    "GenerationSession",
    "Config",
]
