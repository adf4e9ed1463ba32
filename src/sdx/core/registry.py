"""Name lookup for configured models.

:class:`ModelRegistry` is a read-only view over the validated model table of
an :class:`~sdx.core.config.SdxConfig`.  It is built once at startup and
shared by every request without locking.

Two name-selection policies exist for the "no model given" case:

- the CLI uses the configured ``default_model`` and fails otherwise
  (:meth:`ModelRegistry.resolve_default_name`);
- the HTTP API additionally falls back to the first configured model
  (:meth:`ModelRegistry.resolve_name` with ``fallback_to_first=True``).

Both go through :meth:`ModelRegistry.resolve_name` so the difference is a
single, explicit switch.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType

from sdx.core.config import ModelDefinition, SdxConfig
from sdx.core.errors import ModelNotFoundError, NoDefaultModelError

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Read-only registry of named :class:`ModelDefinition` objects.

    Iteration order is the order in which models appear in the
    configuration file.
    """

    def __init__(
        self,
        models: Mapping[str, ModelDefinition],
        default_model: str | None = None,
    ) -> None:
        self._models = MappingProxyType(dict(models))
        self._default_model = default_model

    @classmethod
    def from_config(cls, config: SdxConfig) -> ModelRegistry:
        """Build a registry from a validated configuration."""
        return cls(config.models, config.default_model)

    def resolve(self, name: str) -> ModelDefinition:
        """Return the definition registered under exactly *name*.

        Raises:
            ModelNotFoundError: If no model has that name.
        """
        try:
            return self._models[name]
        except KeyError:
            raise ModelNotFoundError(name) from None

    def resolve_default_name(self, explicit_name: str | None) -> str:
        """Return *explicit_name*, else the configured default model name.

        Raises:
            NoDefaultModelError: If neither is available.
        """
        return self.resolve_name(explicit_name, fallback_to_first=False)

    def resolve_name(self, explicit_name: str | None, *, fallback_to_first: bool) -> str:
        """Pick a model name for a request.

        Args:
            explicit_name: Name supplied by the caller, if any.
            fallback_to_first: When ``True`` and neither an explicit name
                nor a configured default exists, use the first registered
                model.

        Returns:
            The chosen model name.  It is not checked against the registry;
            call :meth:`resolve` for that.

        Raises:
            NoDefaultModelError: If no name could be chosen.
        """
        if explicit_name is not None:
            return explicit_name
        if self._default_model is not None:
            return self._default_model
        if fallback_to_first:
            first = next(iter(self._models), None)
            if first is not None:
                logger.debug("No model requested; falling back to first configured model '%s'.", first)
                return first
        raise NoDefaultModelError()

    def names(self) -> list[str]:
        return list(self._models)

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, name: object) -> bool:
        return name in self._models
