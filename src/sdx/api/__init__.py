"""sdx — FastAPI REST API layer.

This package contains the OpenAI-compatible FastAPI application and its
Pydantic request/response models.

Modules
-------
main
    Application factory, route handlers, error envelope mapping and the
    ``run_server()`` launcher used by ``sdx serve``.
models
    Pydantic models for API request and response validation.
"""
