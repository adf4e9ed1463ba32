"""Pydantic request and response models for the sdx HTTP API.

These models mirror the OpenAI Images and Models APIs closely enough for
OpenAI-compatible clients to talk to sdx.  FastAPI uses them for request
validation, serialisation and OpenAPI documentation.

Models
------
ImageGenerationRequest
    Payload for ``POST /v1/images/generations``.  Carries the OpenAI fields
    (``prompt``, ``model``, ``n``, ``size``) plus sd-cli specific extensions.
ImageGenerationResponse / ImageData
    Success body: creation timestamp and base64-encoded images.
ModelsResponse / ModelInfo
    Body for ``GET /v1/models``.
ErrorResponse / ErrorBody
    OpenAI-style error envelope.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from sdx.core.arguments import GenerationRequest

_SIZE_PATTERN = re.compile(r"([0-9]+)x([0-9]+)")


class ImageGenerationRequest(BaseModel):
    """Request body for ``POST /v1/images/generations``.

    Attributes:
        prompt: Text prompt.  Required and non-empty.
        model: Configured model name.  When omitted the server's default
            model is used, or the first configured model if there is none.
        n: Number of images; passed to sd-cli as the batch count.  Only one
            image is returned per response.
        size: ``"<width>x<height>"``.  Ignored unless both halves are whole
            numbers.
        negative_prompt: Text describing what to avoid.
        steps: Number of sampling steps.
        cfg_scale: Classifier-free guidance scale.
        guidance: Distilled guidance (Flux and similar models).
        seed: RNG seed; negative means random.
        sampler: sd-cli sampling method.
        scheduler: sd-cli scheduler.
    """

    prompt: str = Field(..., min_length=1, description="Text prompt.")
    model: str | None = Field(default=None, description="Configured model name.")
    n: int | None = Field(default=None, ge=0, description="Number of images (sd-cli batch count).")
    size: str | None = Field(default=None, description="Image size as 'WxH', e.g. '512x768'.")

    # Extensions beyond the OpenAI schema.
    negative_prompt: str | None = Field(default=None, description="Negative prompt.")
    steps: int | None = Field(default=None, ge=0, description="Sampling steps.")
    cfg_scale: float | None = Field(default=None, description="CFG scale.")
    guidance: float | None = Field(default=None, description="Distilled guidance.")
    seed: int | None = Field(default=None, description="RNG seed (negative for random).")
    sampler: str | None = Field(default=None, description="Sampling method.")
    scheduler: str | None = Field(default=None, description="Scheduler.")

    def parse_size(self) -> tuple[int, int] | None:
        """Return ``(width, height)`` from :attr:`size`, or ``None``."""
        if self.size is None:
            return None
        match = _SIZE_PATTERN.fullmatch(self.size)
        if match is None:
            return None
        return int(match.group(1)), int(match.group(2))

    def to_generation_request(self) -> GenerationRequest:
        """Translate into the protocol-agnostic :class:`GenerationRequest`."""
        width, height = self.parse_size() or (None, None)
        return GenerationRequest(
            prompt=self.prompt,
            negative_prompt=self.negative_prompt,
            width=width,
            height=height,
            steps=self.steps,
            cfg_scale=self.cfg_scale,
            guidance=self.guidance,
            seed=self.seed,
            sampler=self.sampler,
            scheduler=self.scheduler,
            batch_count=self.n,
            model=self.model,
        )


class ImageData(BaseModel):
    """One generated image."""

    b64_json: str


class ImageGenerationResponse(BaseModel):
    """Success body for ``POST /v1/images/generations``."""

    created: int = Field(..., description="Unix timestamp (seconds).")
    data: list[ImageData]


class ModelInfo(BaseModel):
    id: str
    object: str = "model"
    owned_by: str = "local"


class ModelsResponse(BaseModel):
    object: str = "list"
    data: list[ModelInfo]


class ErrorBody(BaseModel):
    message: str
    type: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """OpenAI-style error envelope: ``{"error": {message, type, code}}``."""

    error: ErrorBody

    @classmethod
    def invalid_request(cls, message: str) -> ErrorResponse:
        return cls(error=ErrorBody(message=message, type="invalid_request_error"))

    @classmethod
    def not_found(cls, message: str) -> ErrorResponse:
        return cls(error=ErrorBody(message=message, type="not_found_error", code="model_not_found"))

    @classmethod
    def server_error(cls, message: str) -> ErrorResponse:
        return cls(error=ErrorBody(message=message, type="server_error"))
