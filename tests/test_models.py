"""Tests for data models."""

import dataclasses
import json

import pytest

from aipainter.core.stable_diffusion import (
    GenerationFailure,
    GenerationRequest,
    GenerationSuccess,
    TransportError,
)
from aipainter.models import GenerationOutcome, SessionState


class TestGenerationRequest:
    def test_payload_has_exactly_the_wire_keys(self):
        payload = GenerationRequest(api_key="k", prompt="castle").to_payload()
        assert set(payload) == {
            "key",
            "prompt",
            "negative_prompt",
            "model_id",
            "guidance_scale",
            "num_inference_steps",
            "width",
            "height",
            "samples",
        }

    def test_fixed_parameters(self):
        payload = GenerationRequest(
            api_key="k",
            prompt="castle",
            negative_prompt="blurry",
            model_id="sdxl",
        ).to_payload()
        assert payload["guidance_scale"] == 8
        assert payload["num_inference_steps"] == 25
        assert payload["width"] == 512
        assert payload["height"] == 512
        assert payload["samples"] == 1
        assert payload["negative_prompt"] == "blurry"
        assert payload["model_id"] == "sdxl"

    def test_fixed_parameters_cannot_be_passed(self):
        with pytest.raises(TypeError):
            GenerationRequest(api_key="k", prompt="castle", width=1024)

    def test_defaults(self):
        request = GenerationRequest(api_key="k", prompt="castle")
        assert request.negative_prompt is None
        assert request.model_id == "midjourney"
        assert '"negative_prompt": null' in json.dumps(request.to_payload())

    def test_is_immutable(self):
        request = GenerationRequest(api_key="k", prompt="castle")
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.prompt = "moat"

    def test_equal_values_compare_equal(self):
        assert GenerationRequest(api_key="k", prompt="castle") == GenerationRequest(api_key="k", prompt="castle")

    def test_repr_hides_api_key(self):
        assert "super-secret" not in repr(GenerationRequest(api_key="super-secret", prompt="castle"))


class TestSessionState:
    def test_enum_values(self):
        assert SessionState.IDLE.value == "idle"
        assert SessionState.SUBMITTING.value == "submitting"
        assert SessionState.SUCCEEDED.value == "succeeded"
        assert SessionState.FAILED.value == "failed"

    def test_only_submitting_blocks_submission(self):
        assert not SessionState.SUBMITTING.accepts_submission
        assert SessionState.IDLE.accepts_submission
        assert SessionState.FAILED.accepts_submission


class TestGenerationOutcome:
    def test_from_success(self):
        request = GenerationRequest(api_key="k", prompt="castle")
        outcome = GenerationOutcome.from_result(request, GenerationSuccess(image_urls=("https://x/1.png",)))
        assert outcome.ok
        assert outcome.image_urls == ["https://x/1.png"]
        assert outcome.failure_kind is None

    def test_from_failure(self):
        request = GenerationRequest(api_key="k", prompt="castle")
        failure = GenerationFailure(TransportError("Request failed: refused"))
        outcome = GenerationOutcome.from_result(request, failure, attempts=3)
        assert not outcome.ok
        assert outcome.failure_kind == "transport"
        assert outcome.reason == "Request failed: refused"
        assert outcome.attempts == 3

    def test_to_dict_never_contains_api_key(self):
        request = GenerationRequest(api_key="super-secret", prompt="castle")
        outcome = GenerationOutcome.from_result(request, GenerationSuccess(image_urls=("https://x/1.png",)))
        assert "super-secret" not in json.dumps(outcome.to_dict())

    def test_to_dict_is_json_ready(self):
        request = GenerationRequest(api_key="k", prompt="castle", negative_prompt="fog")
        outcome = GenerationOutcome.from_result(request, GenerationSuccess(image_urls=("https://x/1.png",)))
        outcome.image_paths = ["generations/1.png"]

        data = json.loads(json.dumps(outcome.to_dict()))
        assert data["negative_prompt"] == "fog"
        assert data["image_paths"] == ["generations/1.png"]
        assert data["finished"] == outcome.finished.isoformat()
