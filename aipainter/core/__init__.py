"""
Core API clients for AIPainter.
"""

from .stable_diffusion import (
    StableDiffusionClient,
    GenerationRequest,
    GenerationResult,
    GenerationSuccess,
    GenerationFailure,
    GenerationError,
    FailureKind,
)

__all__ = [
    "StableDiffusionClient",
    "GenerationRequest",
    "GenerationResult",
    "GenerationSuccess",
    "GenerationFailure",
    "GenerationError",
    "FailureKind",
]
