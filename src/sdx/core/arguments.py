"""sd-cli argument construction.

This module turns a :class:`~sdx.core.config.ModelDefinition` plus a
:class:`GenerationRequest` into the exact argument list passed to sd-cli.

Parameter Resolution
--------------------
Every generation parameter is resolved in three tiers:

1. The value on the request, if it is not ``None``
2. The model definition's default, if it is not ``None``
3. The built-in fallback in :data:`FALLBACKS`

``negative_prompt`` and ``guidance`` have no built-in fallback: when neither
the request nor the model sets them, their flags are left out entirely.
Omitting ``--guidance`` changes sd-cli's behaviour, so no number is ever
synthesised for it.

Flag Order
----------
The order below is stable and matches what sd-cli expects::

    -m <model>                      consolidated weights, OR
    --clip_l/--clip_g/--t5xxl/
    --diffusion-model/--vae         component weights (only those set)
    -p <prompt>
    -n <negative prompt>            only if non-empty
    -W <width> -H <height>
    --steps <n> --cfg-scale <x>
    --guidance <x>                  only if set
    -s <seed>
    --sampling-method <name> --scheduler <name>
    -b <n>                          only if > 1
    -o <output path>                always last
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from sdx.core.config import ModelDefinition

#: Built-in values used when neither the request nor the model sets a field.
FALLBACKS: dict[str, int | float | str] = {
    "width": 512,
    "height": 512,
    "steps": 20,
    "cfg_scale": 7.0,
    "seed": -1,
    "sampler": "euler_a",
    "scheduler": "discrete",
    "batch_count": 1,
}

# (definition attribute, sd-cli flag) for component weights, in emission order.
_COMPONENT_FLAGS = (
    ("clip_l", "--clip_l"),
    ("clip_g", "--clip_g"),
    ("t5xxl", "--t5xxl"),
    ("diffusion_model", "--diffusion-model"),
    ("vae", "--vae"),
)


@dataclass
class GenerationRequest:
    """Protocol-agnostic generation request.

    Only ``prompt`` is required.  ``None`` on any other field means "not
    specified"; the model default or built-in fallback is used instead.
    A negative ``seed`` asks sd-cli for a random seed and is passed through
    unchanged.
    """

    prompt: str
    negative_prompt: str | None = None
    width: int | None = None
    height: int | None = None
    steps: int | None = None
    cfg_scale: float | None = None
    guidance: float | None = None
    seed: int | None = None
    sampler: str | None = None
    scheduler: str | None = None
    batch_count: int | None = None
    model: str | None = None


@dataclass(frozen=True)
class ResolvedArguments:
    """Complete, ordered sd-cli argument list for one invocation."""

    args: tuple[str, ...]
    output_path: Path

    def __iter__(self):
        return iter(self.args)

    def __len__(self) -> int:
        return len(self.args)

    def value_of(self, flag: str) -> str | None:
        """Return the value following *flag*, or ``None`` if absent."""
        try:
            index = self.args.index(flag)
        except ValueError:
            return None
        return self.args[index + 1]


def format_number(value: int | float) -> str:
    """Render a number the way sd-cli's parser expects it.

    Integral floats lose their fractional part (``7.0`` -> ``"7"``); other
    floats use the shortest representation that round-trips (``3.5``).
    """
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def _pick(requested, default, fallback=None):
    if requested is not None:
        return requested
    if default is not None:
        return default
    return fallback


def build_arguments(
    definition: ModelDefinition,
    request: GenerationRequest,
    output_path: Path,
) -> ResolvedArguments:
    """Merge model defaults with request overrides into sd-cli arguments.

    Args:
        definition: The resolved model definition.
        request: Caller-supplied overrides.
        output_path: Where sd-cli should write the image (``-o``).

    Returns:
        The resolved argument list.
    """
    args: list[str] = []

    # Model paths: consolidated weights win; never mix with component flags.
    if definition.model is not None:
        args += ["-m", str(definition.model)]
    else:
        for attribute, flag in _COMPONENT_FLAGS:
            path = getattr(definition, attribute)
            if path is not None:
                args += [flag, str(path)]

    args += ["-p", request.prompt]

    negative_prompt = _pick(request.negative_prompt, definition.negative_prompt)
    if negative_prompt:
        args += ["-n", negative_prompt]

    width = _pick(request.width, definition.width, FALLBACKS["width"])
    height = _pick(request.height, definition.height, FALLBACKS["height"])
    steps = _pick(request.steps, definition.steps, FALLBACKS["steps"])
    cfg_scale = _pick(request.cfg_scale, definition.cfg_scale, FALLBACKS["cfg_scale"])
    args += ["-W", format_number(width), "-H", format_number(height)]
    args += ["--steps", format_number(steps), "--cfg-scale", format_number(cfg_scale)]

    guidance = _pick(request.guidance, definition.guidance)
    if guidance is not None:
        args += ["--guidance", format_number(guidance)]

    seed = _pick(request.seed, definition.seed, FALLBACKS["seed"])
    sampler = _pick(request.sampler, definition.sampling_method, FALLBACKS["sampler"])
    scheduler = _pick(request.scheduler, definition.scheduler, FALLBACKS["scheduler"])
    args += ["-s", format_number(seed)]
    args += ["--sampling-method", sampler, "--scheduler", scheduler]

    batch_count = _pick(request.batch_count, definition.batch_count, FALLBACKS["batch_count"])
    if batch_count > 1:
        args += ["-b", format_number(batch_count)]

    output_path = Path(output_path)
    args += ["-o", str(output_path)]

    return ResolvedArguments(args=tuple(args), output_path=output_path)
