"""Core generation pipeline for sdx.

This package turns a generation request into an sd-cli invocation and the
resulting image.  It knows nothing about HTTP or argument parsing; both
front-ends (:mod:`sdx.cli` and :mod:`sdx.api`) sit on top of it.

Architecture Overview
---------------------
Leaf-first:

1. **errors.py**: the exception hierarchy every layer raises.
2. **config.py**: TOML + environment configuration (Pydantic Settings) and
   :class:`ModelDefinition`.
3. **registry.py**: read-only lookup of model definitions by name.
4. **arguments.py**: merges model defaults and request overrides into the
   ordered sd-cli argument list.
5. **gate.py**: the accelerator gate (one sd-cli run at a time).
6. **runner.py**: runs sd-cli and classifies the outcome.
7. **results.py**: reads back and removes output images.
8. **pipeline.py**: ties the above together for the CLI and the server.
"""

from sdx.core.arguments import GenerationRequest, ResolvedArguments, build_arguments
from sdx.core.config import ModelDefinition, SdxConfig, load_config, parse_config
from sdx.core.gate import ExecutionGate
from sdx.core.pipeline import GenerationPipeline
from sdx.core.registry import ModelRegistry

__all__ = [
    "ExecutionGate",
    "GenerationPipeline",
    "GenerationRequest",
    "ModelDefinition",
    "ModelRegistry",
    "ResolvedArguments",
    "SdxConfig",
    "build_arguments",
    "load_config",
    "parse_config",
]
