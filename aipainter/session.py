"""
Generation session: the caller side of the generate() contract.

Tracks the idle -> submitting -> succeeded | failed lifecycle for one user,
validates prompts before anything is sent, remembers the last request so a
failure can be retried unchanged, and ignores results that were overtaken
by a newer submission or a cancel.

The client never retries on its own. A session can opt in to retrying
transport failures with tenacity (retries > 0); decode errors and
unsuccessful generations are always returned as-is.
"""

import logging
from typing import Optional

from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_result,
    before_sleep_log,
)

from aipainter.core.stable_diffusion import (
    DEFAULT_MODEL_ID,
    FailureKind,
    GenerationRequest,
    GenerationResult,
    StableDiffusionClient,
)
from aipainter.models import SessionState

logger = logging.getLogger(__name__)

PROMPT_PLACEHOLDER = "Enter your prompt"


class SessionError(Exception):
    """Base exception for session misuse."""
    pass


class InvalidPromptError(SessionError, ValueError):
    """Prompt is empty or still the placeholder."""
    pass


class SessionBusyError(SessionError):
    """A generation is already in flight."""
    pass


class InvalidTransitionError(SessionError):
    """The requested action is not allowed from the current state."""
    pass


def _is_transport_failure(result: GenerationResult) -> bool:
    return not result.ok and result.kind is FailureKind.TRANSPORT


def _last_result(retry_state):
    return retry_state.outcome.result()


class GenerationSession:
    """Drives a StableDiffusionClient on behalf of one user.

    Usage:
        async with StableDiffusionClient() as client:
            session = GenerationSession(client, api_key="...")
            result = await session.submit("a lighthouse at dusk")
            if not result.ok:
                result = await session.retry()  # same request again
    """

    def __init__(
        self,
        client: StableDiffusionClient,
        api_key: str,
        model_id: str = DEFAULT_MODEL_ID,
        retries: int = 0,
        retry_wait=None,
    ):
        """
        Initialize the session.

        Args:
            client: Client used to talk to the API
            api_key: API key put in every request
            model_id: Model to generate with
            retries: Extra attempts after a transport failure (0 disables)
            retry_wait: tenacity wait strategy between attempts
        """
        if retries < 0:
            raise ValueError("retries must be >= 0")

        self.client = client
        self.api_key = api_key
        self.model_id = model_id
        self.retries = retries
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

        self.state = SessionState.IDLE
        self.last_request: Optional[GenerationRequest] = None
        self.last_result: Optional[GenerationResult] = None
        self.last_attempts = 0
        self._sequence = 0

    @staticmethod
    def validate_prompt(text: Optional[str]) -> str:
        """Return the stripped prompt, or raise InvalidPromptError."""
        prompt = (text or "").strip()
        if not prompt:
            raise InvalidPromptError("Prompt is empty")
        if prompt == PROMPT_PLACEHOLDER:
            raise InvalidPromptError("Prompt is still the placeholder text")
        return prompt

    async def submit(self, prompt: str, negative_prompt: Optional[str] = None) -> GenerationResult:
        """
        Build a request from the prompt and run it.

        Raises:
            SessionBusyError: If a generation is already in flight
            InvalidPromptError: If the prompt is empty or the placeholder
        """
        if not self.state.accepts_submission:
            raise SessionBusyError("A generation is already in progress")

        request = GenerationRequest(
            api_key=self.api_key,
            prompt=self.validate_prompt(prompt),
            negative_prompt=(negative_prompt or "").strip() or None,
            model_id=self.model_id,
        )
        return await self._issue(request)

    async def retry(self) -> GenerationResult:
        """Re-issue the last request after a failure."""
        if self.state is not SessionState.FAILED or self.last_request is None:
            raise InvalidTransitionError(f"Cannot retry from state '{self.state.value}'")
        logger.info("Retrying %r", self.last_request)
        return await self._issue(self.last_request)

    def cancel(self) -> None:
        """Return to idle. A result still in flight will be ignored."""
        if self.state is SessionState.IDLE:
            return
        self._sequence += 1
        self.state = SessionState.IDLE
        self.last_result = None

    async def _issue(self, request: GenerationRequest) -> GenerationResult:
        self._sequence += 1
        sequence = self._sequence

        self.last_request = request
        self.last_result = None
        self.state = SessionState.SUBMITTING

        try:
            result, attempts = await self._call(request)
        except BaseException:
            if sequence == self._sequence:
                self.state = SessionState.IDLE
            raise

        if sequence != self._sequence:
            logger.debug("Ignoring stale result for %r", request)
            return result

        self.last_result = result
        self.last_attempts = attempts
        self.state = SessionState.SUCCEEDED if result.ok else SessionState.FAILED
        return result

    async def _call(self, request: GenerationRequest) -> tuple[GenerationResult, int]:
        attempts = 0

        async def attempt() -> GenerationResult:
            nonlocal attempts
            attempts += 1
            return await self.client.generate(request)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=self.retry_wait,
            retry=retry_if_result(_is_transport_failure),
            retry_error_callback=_last_result,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        result = await retrying(attempt)
        return result, attempts
