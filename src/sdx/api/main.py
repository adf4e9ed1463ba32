"""sdx — OpenAI-compatible FastAPI application.

This module defines the application factory, the REST routes, the mapping
from sdx errors to HTTP error envelopes, and :func:`run_server`, which
launches uvicorn for ``sdx serve``.

Architecture
------------
- **Configuration** is loaded once by the caller and passed to
  :func:`create_app`.  The model table is read-only for the lifetime of the
  server.
- **Image generation** is delegated to
  :class:`~sdx.core.pipeline.GenerationPipeline`, created on startup and
  stored on ``app.state`` together with its accelerator gate.
- **Errors** raised anywhere in a route are :class:`~sdx.core.errors.SdxError`
  subclasses and are turned into OpenAI-style envelopes by a single
  exception handler.

Endpoints
---------
========  ==========================  ==================================
Method    Path                        Purpose
========  ==========================  ==================================
GET       ``/v1/models``              List configured model names
POST      ``/v1/images/generations``  Generate one image (base64 JSON)
========  ==========================  ==================================

Status Codes
------------
=============================  ======  ===================================
Condition                      Status  ``error.type`` / ``error.code``
=============================  ======  ===================================
missing/invalid request field  422     FastAPI validation detail
no model resolvable            400     ``invalid_request_error``
unknown model                  404     ``not_found_error`` /
                                       ``model_not_found``
sd-cli missing/failed/killed,  500     ``server_error``
output unreadable
=============================  ======  ===================================
"""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sdx import __version__
from sdx.api.models import (
    ErrorResponse,
    ImageData,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ModelInfo,
    ModelsResponse,
)
from sdx.core.config import SdxConfig
from sdx.core.errors import (
    ConfigNotFoundError,
    ExecutableNotFoundError,
    InvalidConfigError,
    ModelNotFoundError,
    NoDefaultModelError,
    OutputReadFailedError,
    ProcessFailedError,
    ProcessKilledError,
    SdxError,
)
from sdx.core.pipeline import GenerationPipeline

logger = logging.getLogger(__name__)

# Every SdxError subclass and the HTTP status it maps to.
ERROR_STATUS: dict[type[SdxError], int] = {
    ModelNotFoundError: 404,
    NoDefaultModelError: 400,
    ConfigNotFoundError: 500,
    InvalidConfigError: 500,
    ExecutableNotFoundError: 500,
    ProcessFailedError: 500,
    ProcessKilledError: 500,
    OutputReadFailedError: 500,
}


def error_response(exc: SdxError) -> JSONResponse:
    """Build the JSON error envelope for *exc*."""
    status_code = ERROR_STATUS.get(type(exc), 500)

    if isinstance(exc, ModelNotFoundError):
        body = ErrorResponse.not_found(exc.public_message)
    elif status_code < 500:
        body = ErrorResponse.invalid_request(exc.public_message)
    else:
        body = ErrorResponse.server_error(exc.public_message)

    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_sdx_error(request: Request, exc: SdxError) -> JSONResponse:
    if ERROR_STATUS.get(type(exc), 500) >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return error_response(exc)


def create_app(config: SdxConfig, pipeline: GenerationPipeline | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Validated configuration.
        pipeline: Pre-built pipeline to serve requests with.  When omitted,
            one is created on startup with a fresh accelerator gate.

    Returns:
        The configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # --- Startup -------------------------------------------------------
        app.state.pipeline = pipeline if pipeline is not None else GenerationPipeline(config)
        logger.info(
            "sdx API ready with %d model(s): %s",
            len(app.state.pipeline.registry),
            ", ".join(app.state.pipeline.registry.names()) or "(none)",
        )

        yield  # Application runs here.

        # --- Shutdown ------------------------------------------------------
        logger.info("sdx API shutting down.")

    app = FastAPI(
        title="sdx",
        description="OpenAI-compatible image generation API backed by sd-cli.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(SdxError, _handle_sdx_error)

    @app.get("/v1/models")
    async def list_models(request: Request) -> ModelsResponse:
        """List every configured model.  Never waits on the accelerator gate."""
        registry = request.app.state.pipeline.registry
        return ModelsResponse(data=[ModelInfo(id=name) for name in registry])

    @app.post("/v1/images/generations")
    async def generate_image(request: Request, body: ImageGenerationRequest) -> ImageGenerationResponse:
        """Generate a single image and return it base64-encoded.

        The model defaults to the configured ``default_model``, then to the
        first configured model.  ``n`` is forwarded to sd-cli as the batch
        count, but only one image is returned.
        """
        pipeline: GenerationPipeline = request.app.state.pipeline
        image = await pipeline.generate_image(body.to_generation_request())

        return ImageGenerationResponse(
            created=int(time.time()),
            data=[ImageData(b64_json=base64.b64encode(image).decode("ascii"))],
        )

    return app


def run_server(config: SdxConfig, host: str | None = None, port: int | None = None) -> None:
    """Serve the API with uvicorn until interrupted.

    Args:
        config: Validated configuration.
        host: Bind address; defaults to ``config.server_host``.
        port: Port; defaults to ``config.server_port``.
    """
    import uvicorn

    host = host or config.server_host
    port = port or config.server_port
    logger.info("Listening on http://%s:%d", host, port)

    uvicorn.run(create_app(config), host=host, port=port, reload=False)
