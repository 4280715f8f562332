"""
Stable Diffusion API client for AIPainter.

Sends a text prompt to the stablediffusionapi.com dreambooth endpoint and
classifies the reply into a GenerationSuccess or a GenerationFailure.
"""

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import httpx


logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://stablediffusionapi.com/api/v3/dreambooth"
DEFAULT_MODEL_ID = "midjourney"
DEFAULT_TIMEOUT = 120.0  # seconds, generation is slow on the free tier
SUCCESS_STATUS = "success"


class FailureKind(enum.Enum):
    """Why a generation call did not produce an image."""

    TRANSPORT = "transport"
    DECODE = "decode"
    UNSUCCESSFUL = "unsuccessful"


class GenerationError(Exception):
    """Base exception for generation failures."""

    kind: FailureKind


class TransportError(GenerationError):
    """No response reached the client."""

    kind = FailureKind.TRANSPORT


class DecodeError(GenerationError):
    """A response arrived but its body was not the expected JSON."""

    kind = FailureKind.DECODE


class UnsuccessfulGenerationError(GenerationError):
    """The service answered but did not produce an image."""

    kind = FailureKind.UNSUCCESSFUL

    def __init__(self, status: Optional[str], has_output: bool, message: Optional[str] = None):
        self.status = status
        self.has_output = has_output
        self.message = message

        text = f"Generation unsuccessful (status={status!r}"
        if status == SUCCESS_STATUS and not has_output:
            text += ", no output"
        text += ")"
        if message:
            text += f": {message}"
        super().__init__(text)


@dataclass(frozen=True)
class GenerationRequest:
    """One text-to-image request. Built per submission, never reused across prompts."""

    api_key: str
    prompt: str
    negative_prompt: Optional[str] = None
    model_id: str = DEFAULT_MODEL_ID
    guidance_scale: int = field(default=8, init=False)
    num_inference_steps: int = field(default=25, init=False)
    width: int = field(default=512, init=False)
    height: int = field(default=512, init=False)
    samples: int = field(default=1, init=False)

    def to_payload(self) -> dict:
        """Request body in the wire format expected by the API."""
        return {
            "key": self.api_key,
            "prompt": self.prompt,
            "negative_prompt": self.negative_prompt,
            "model_id": self.model_id,
            "guidance_scale": self.guidance_scale,
            "num_inference_steps": self.num_inference_steps,
            "width": self.width,
            "height": self.height,
            "samples": self.samples,
        }

    def __repr__(self) -> str:
        return (
            f"GenerationRequest(prompt={self.prompt!r}, "
            f"negative_prompt={self.negative_prompt!r}, model_id={self.model_id!r})"
        )


@dataclass(frozen=True)
class StableDiffusionResponse:
    """Decoded response body. Fields the service leaves out (or sends as null) are None."""

    status: Optional[str] = None
    output: Optional[tuple[str, ...]] = None

    @classmethod
    def from_dict(cls, data) -> "StableDiffusionResponse":
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

        status = data.get("status")
        if status is not None and not isinstance(status, str):
            raise ValueError(f"'status' must be a string, got {type(status).__name__}")

        output = data.get("output")
        if output is not None:
            if not isinstance(output, list) or not all(isinstance(url, str) for url in output):
                raise ValueError("'output' must be a list of strings")
            output = tuple(output)

        return cls(status=status, output=output)

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS_STATUS and bool(self.output)


@dataclass(frozen=True)
class GenerationSuccess:
    """The service produced at least one image."""

    image_urls: tuple[str, ...]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class GenerationFailure:
    """The call ended without an image. See error.kind for the reason."""

    error: GenerationError

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> FailureKind:
        return self.error.kind

    @property
    def reason(self) -> str:
        return str(self.error)


GenerationResult = Union[GenerationSuccess, GenerationFailure]


def _redacted(payload: dict) -> dict:
    return {**payload, "key": "***"} if payload.get("key") else payload


class StableDiffusionClient:
    """Async client for the stablediffusionapi.com text-to-image endpoint."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            api_url: Generation endpoint to POST requests to
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests to stub the network)
        """
        self.api_url = api_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Run one request/response cycle against the API.

        Never raises for network, decoding or service-side failures; those are
        returned as a GenerationFailure. Does not retry.

        Args:
            request: The generation parameters

        Returns:
            GenerationSuccess with the image URLs, or GenerationFailure
        """
        payload = request.to_payload()
        logger.debug("POST %s payload=%s", self.api_url, _redacted(payload))

        try:
            response = await self._client.post(
                self.api_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.DecodingError as e:
            # Response arrived but its Content-Encoding could not be undone
            logger.warning("Could not decode generation response: %s", e)
            return GenerationFailure(self._wrap(DecodeError(f"Malformed response: {e}"), e))
        except (httpx.RequestError, httpx.InvalidURL) as e:
            logger.warning("Generation request failed: %s", e)
            return GenerationFailure(self._wrap(TransportError(f"Request failed: {e}"), e))

        logger.debug("Server response %s: %s", response.status_code, response.text)

        try:
            decoded = StableDiffusionResponse.from_dict(response.json())
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            logger.warning("Could not decode generation response: %s", e)
            return GenerationFailure(self._wrap(DecodeError(f"Malformed response: {e}"), e))

        if not decoded.is_success:
            message = self._service_message(response)
            error = UnsuccessfulGenerationError(decoded.status, bool(decoded.output), message)
            logger.warning("%s", error)
            return GenerationFailure(error)

        logger.info("Generated %d image(s)", len(decoded.output))
        return GenerationSuccess(image_urls=decoded.output)

    async def download_image(self, url: str, output_path: Path) -> Path:
        """
        Download a generated image.

        Args:
            url: Image URL returned by generate()
            output_path: Local path to save

        Returns:
            Output path
        """
        response = await self._client.get(url, follow_redirects=True)
        response.raise_for_status()

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "wb") as f:
            f.write(response.content)

        logger.debug("Saved %s to %s", url, output_path)
        return output_path

    @staticmethod
    def _wrap(error: GenerationError, cause: BaseException) -> GenerationError:
        error.__cause__ = cause
        return error

    @staticmethod
    def _service_message(response: httpx.Response) -> Optional[str]:
        # The API explains most refusals in a "message" field (string or dict)
        message = response.json().get("message")
        if message is None:
            return None
        return message if isinstance(message, str) else json.dumps(message)

    async def aclose(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
