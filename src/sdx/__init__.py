"""sdx - Friendly wrapper and OpenAI-compatible API for sd-cli."""

__version__ = "0.1.0"

from sdx.core.arguments import GenerationRequest, ResolvedArguments, build_arguments
from sdx.core.config import ModelDefinition, SdxConfig, load_config, parse_config
from sdx.core.errors import SdxError
from sdx.core.pipeline import GenerationPipeline

__all__ = [
    "GenerationPipeline",
    "GenerationRequest",
    "ModelDefinition",
    "ResolvedArguments",
    "SdxConfig",
    "SdxError",
    "build_arguments",
    "load_config",
    "parse_config",
]
