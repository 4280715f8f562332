"""
Data models for AIPainter.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from aipainter.core.stable_diffusion import GenerationRequest, GenerationResult


class SessionState(Enum):
    """Lifecycle of a generation session.

    idle -> submitting -> succeeded | failed. A failed session can be
    retried (back to submitting) or cancelled (back to idle).
    """

    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def accepts_submission(self) -> bool:
        return self is not SessionState.SUBMITTING


@dataclass
class GenerationOutcome:
    """Summary of one finished submission, for display and --json output."""

    prompt: str
    model_id: str
    ok: bool
    negative_prompt: Optional[str] = None
    image_urls: list[str] = field(default_factory=list)
    image_paths: list[str] = field(default_factory=list)
    failure_kind: Optional[str] = None
    reason: Optional[str] = None
    attempts: int = 1
    finished: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_result(
        cls,
        request: GenerationRequest,
        result: GenerationResult,
        attempts: int = 1,
    ) -> "GenerationOutcome":
        outcome = cls(
            prompt=request.prompt,
            model_id=request.model_id,
            ok=result.ok,
            negative_prompt=request.negative_prompt,
            attempts=attempts,
        )
        if result.ok:
            outcome.image_urls = list(result.image_urls)
        else:
            outcome.failure_kind = result.kind.value
            outcome.reason = result.reason
        return outcome

    def to_dict(self) -> dict:
        return {
            "prompt": self.prompt,
            "negative_prompt": self.negative_prompt,
            "model_id": self.model_id,
            "ok": self.ok,
            "image_urls": self.image_urls,
            "image_paths": self.image_paths,
            "failure_kind": self.failure_kind,
            "reason": self.reason,
            "attempts": self.attempts,
            "finished": self.finished.isoformat(),
        }
