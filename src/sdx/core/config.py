"""Configuration management for sdx.

This module provides centralized configuration management using Pydantic
Settings.  The bulk of the configuration (the model table) lives in a TOML
file; scalar settings can additionally be supplied through environment
variables with the ``SDX_`` prefix.

Value Resolution
----------------
Configuration values are resolved in the following priority order:

1. Values from the TOML configuration file
2. Environment variables (``SDX_*`` prefix)
3. ``.env`` file in the working directory
4. Default values defined in :class:`SdxConfig`

Example config.toml::

    sd_cli_path = "/usr/local/bin/sd-cli"
    default_model = "sd15"

    [models.sd15]
    model = "/models/sd15.safetensors"
    steps = 20
    cfg_scale = 7.0

    [models.flux]
    diffusion_model = "/models/flux-dev-q8_0.gguf"
    clip_l = "/models/clip_l.safetensors"
    t5xxl = "/models/t5xxl_fp16.safetensors"
    vae = "/models/ae.safetensors"
    guidance = 3.5

Model Definitions
-----------------
Every entry under ``[models.<name>]`` becomes a :class:`ModelDefinition`.
A definition must point at weights either through a single consolidated
file (``model``) or through component files (``diffusion_model`` plus the
optional text encoders and autoencoder).  Definitions that have neither are
rejected when the file is loaded, so a broken entry can never reach the
generation pipeline.

Usage Example
-------------
    from sdx.core.config import default_config_path, load_config

    config = load_config(default_config_path())
    print(list(config.models))

See Also
--------
- :mod:`sdx.core.registry`: name lookup on top of ``config.models``
- :mod:`sdx.core.arguments`: how definition defaults feed sd-cli flags
"""

from __future__ import annotations

import logging
import os
import shutil
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sdx.core.errors import ConfigNotFoundError, ExecutableNotFoundError, InvalidConfigError

logger = logging.getLogger(__name__)

#: Executable name looked up on ``PATH`` when ``sd_cli_path`` is not set.
SD_CLI_NAME = "sd-cli"

#: Split-weights keys, in sd-cli flag order.
COMPONENT_KEYS = ("clip_l", "clip_g", "t5xxl", "diffusion_model", "vae")


class ModelDefinition(BaseModel):
    """Weights and default generation parameters for one named model.

    Attributes:
        model: Consolidated single-file weights.
        clip_l: CLIP-L text encoder (component models).
        clip_g: CLIP-G text encoder (component models).
        t5xxl: T5-XXL text encoder (component models).
        diffusion_model: Diffusion backbone (component models).
        vae: Autoencoder (component models).
        width, height, steps, cfg_scale, guidance, sampling_method,
        scheduler, seed, batch_count, negative_prompt:
            Per-model defaults.  ``None`` means "use the built-in fallback"
            (see :mod:`sdx.core.arguments`).
    """

    model_config = ConfigDict(frozen=True)

    # Single-file model
    model: Path | None = None

    # Component model paths (Flux, SD3, etc.)
    clip_l: Path | None = None
    clip_g: Path | None = None
    t5xxl: Path | None = None
    diffusion_model: Path | None = None
    vae: Path | None = None

    # Default generation parameters
    width: int | None = Field(default=None, ge=0)
    height: int | None = Field(default=None, ge=0)
    steps: int | None = Field(default=None, ge=0)
    cfg_scale: float | None = None
    guidance: float | None = None
    sampling_method: str | None = None
    scheduler: str | None = None
    seed: int | None = None
    batch_count: int | None = Field(default=None, ge=0)
    negative_prompt: str | None = None

    @field_validator("model", "clip_l", "clip_g", "t5xxl", "diffusion_model", "vae")
    @classmethod
    def _expand_user(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None

    def has_component_paths(self) -> bool:
        """Whether this definition uses split component weights."""
        return self.diffusion_model is not None

    def ignored_component_paths(self) -> list[str]:
        """Component keys that are set but unused because ``model`` is set."""
        if self.model is None:
            return []
        return [key for key in COMPONENT_KEYS if getattr(self, key) is not None]

    def model_paths(self) -> list[tuple[str, Path]]:
        """Return ``(label, path)`` pairs for every weights path that is set."""
        labels = ("model", *COMPONENT_KEYS)
        return [(label, getattr(self, label)) for label in labels if getattr(self, label) is not None]


class SdxConfig(BaseSettings):
    """Main configuration for sdx.

    Attributes
    ----------
    sd_cli_path : Path | None
        Path to the sd-cli executable.  When unset, ``sd-cli`` is looked up
        on ``PATH``.
    default_model : str | None
        Model used by ``sdx generate`` when ``--model`` is omitted.
    models : dict[str, ModelDefinition]
        Model table, in file order.
    output_dir : Path | None
        Directory for the temporary images written by the HTTP server.
        Defaults to the system temp directory.  Created if missing.
    server_host : str
        Bind address for ``sdx serve``.
    server_port : int
        Port for ``sdx serve`` (1-65535).

    Notes
    -----
    - Configuration is treated as immutable after initialisation.
    - Validation errors surface as :class:`pydantic.ValidationError` when
      constructing directly, and as :class:`InvalidConfigError` through
      :func:`load_config` / :func:`parse_config`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SDX_",
        case_sensitive=False,
        extra="ignore",
    )

    sd_cli_path: Path | None = Field(
        default=None,
        description="Path to the sd-cli executable (looked up on PATH if unset)",
    )
    default_model: str | None = Field(
        default=None,
        description="Model used by the CLI when --model is omitted",
    )
    models: dict[str, ModelDefinition] = Field(
        default_factory=dict,
        description="Named model definitions",
    )
    output_dir: Path | None = Field(
        default=None,
        description="Directory for temporary output images (system temp dir if unset)",
    )

    # Server settings
    server_host: str = Field(
        default="127.0.0.1",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8080,
        description="Server port",
        ge=1,
        le=65535,
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)

        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)

    @field_validator("sd_cli_path", "output_dir")
    @classmethod
    def _expand_user(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None

    @model_validator(mode="after")
    def _validate_models(self) -> SdxConfig:
        for name, definition in self.models.items():
            if definition.model is None and definition.diffusion_model is None:
                raise ValueError(f"model '{name}' must have either 'model' or 'diffusion_model' path")
            ignored = definition.ignored_component_paths()
            if ignored:
                logger.warning(
                    "Model '%s' sets 'model', so %s will be ignored.",
                    name,
                    ", ".join(f"'{key}'" for key in ignored),
                )
        return self

    def resolve_sd_cli_path(self) -> Path:
        """Return the configured sd-cli path, or find ``sd-cli`` on ``PATH``.

        Raises:
            ExecutableNotFoundError: If no path is configured and ``sd-cli``
                is not on ``PATH``.
        """
        if self.sd_cli_path is not None:
            return self.sd_cli_path

        found = shutil.which(SD_CLI_NAME)
        if found is None:
            raise ExecutableNotFoundError(SD_CLI_NAME, "not configured and not on PATH")
        return Path(found)


def default_config_path() -> Path:
    """Return ``$XDG_CONFIG_HOME/sdx/config.toml`` (or ``~/.config/...``)."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        base = Path(xdg)
    elif os.environ.get("HOME"):
        base = Path(os.environ["HOME"]) / ".config"
    else:
        base = Path(".config")
    return base / "sdx" / "config.toml"


def load_config(path: Path) -> SdxConfig:
    """Load and validate a TOML configuration file.

    Args:
        path: Path to the TOML file.

    Returns:
        Validated configuration.

    Raises:
        ConfigNotFoundError: If *path* does not exist.
        InvalidConfigError: If the file is not valid TOML or fails
            validation.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigNotFoundError(path)

    logger.debug("Loading configuration from %s", path)
    return parse_config(path.read_text(encoding="utf-8"))


def parse_config(text: str) -> SdxConfig:
    """Parse and validate configuration from a TOML string.

    Raises:
        InvalidConfigError: If *text* is not valid TOML or fails validation.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise InvalidConfigError(str(e)) from e

    try:
        return SdxConfig(**data)
    except ValidationError as e:
        raise InvalidConfigError(_describe_validation_error(e)) from e


def _describe_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into a single readable line."""
    parts = []
    for item in error.errors():
        message = item["msg"].removeprefix("Value error, ")
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)
