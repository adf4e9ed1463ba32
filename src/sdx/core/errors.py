"""Exception hierarchy for sdx.

Every failure the generation pipeline can surface is one of the classes
below.  Both front-ends match on them: the CLI turns them into an exit code
and an ``error: ...`` line, the HTTP layer turns them into an OpenAI-style
error envelope (see :mod:`sdx.api.main`).

``str(exc)`` is the full diagnostic, including filesystem paths.
``exc.public_message`` is the variant safe to send to HTTP clients.
"""

from __future__ import annotations

from pathlib import Path


class SdxError(Exception):
    """Base class for all sdx errors."""

    @property
    def public_message(self) -> str:
        """Message suitable for remote clients (no internal paths)."""
        return str(self)


class ConfigNotFoundError(SdxError):
    """The configuration file does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(f"config file not found: {self.path}")


class InvalidConfigError(SdxError):
    """The configuration file could not be parsed or failed validation."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"failed to parse config: {reason}")

    @property
    def public_message(self) -> str:
        return "server configuration is invalid"


class ModelNotFoundError(SdxError):
    """No model with the requested name is configured."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"model not found: {name}")

    @property
    def public_message(self) -> str:
        return f"model '{self.name}' not found in config"


class NoDefaultModelError(SdxError):
    """No model name was given and none could be chosen."""

    def __init__(self) -> None:
        super().__init__("no --model specified and no default_model in config")

    @property
    def public_message(self) -> str:
        return "no model specified and no models configured"


class ExecutableNotFoundError(SdxError):
    """The sd-cli executable is missing or cannot be launched."""

    def __init__(self, path: Path | str, reason: str | None = None) -> None:
        self.path = Path(path)
        self.reason = reason
        message = f"sd-cli binary not found: {self.path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)

    @property
    def public_message(self) -> str:
        return "sd-cli binary not found"


class ProcessFailedError(SdxError):
    """sd-cli exited with a non-zero status."""

    def __init__(self, exit_code: int, stderr: str) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"sd-cli failed (exit code {exit_code}): {stderr}")


class ProcessKilledError(SdxError):
    """sd-cli was terminated by a signal and produced no exit code."""

    def __init__(self, signal: int | None = None) -> None:
        self.signal = signal
        super().__init__("sd-cli was killed by signal")


class OutputReadFailedError(SdxError):
    """The output image could not be read back."""

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__(f"failed to read output: {cause}")

    @property
    def public_message(self) -> str:
        return "failed to read generated image"
