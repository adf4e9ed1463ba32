"""Command-line entry point for sdx.

Commands
--------
``sdx generate``
    Generate one image from a prompt and print the output path.
``sdx models``
    List configured models, their weight files and defaults.
``sdx serve``
    Start the OpenAI-compatible HTTP API.

Exit Codes
----------
- ``0`` success
- ``1`` sd-cli could not run, failed, was killed, or produced no image
- ``2`` configuration or model-selection problem (also argparse usage errors)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from sdx import __version__
from sdx.core.arguments import GenerationRequest
from sdx.core.config import SdxConfig, default_config_path, load_config
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

# Every SdxError subclass and the process exit code it maps to.
EXIT_CODES: dict[type[SdxError], int] = {
    ConfigNotFoundError: 2,
    InvalidConfigError: 2,
    ModelNotFoundError: 2,
    NoDefaultModelError: 2,
    ExecutableNotFoundError: 1,
    ProcessFailedError: 1,
    ProcessKilledError: 1,
    OutputReadFailedError: 1,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the ``sdx`` argument parser."""
    parser = argparse.ArgumentParser(prog="sdx", description="Friendly wrapper for sd-cli")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="Path to config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate an image from a text prompt")
    generate.add_argument("--model", help="Model name from config (uses default_model if omitted)")
    generate.add_argument("-p", "--prompt", required=True, help="Text prompt")
    generate.add_argument("-n", "--negative-prompt", help="Negative prompt")
    generate.add_argument("-W", "--width", type=int, help="Image width in pixels")
    generate.add_argument("-H", "--height", type=int, help="Image height in pixels")
    generate.add_argument("--steps", type=int, help="Number of sampling steps")
    generate.add_argument("--cfg-scale", type=float, help="CFG scale")
    generate.add_argument("--guidance", type=float, help="Distilled guidance (Flux/SD3)")
    generate.add_argument("-s", "--seed", type=int, help="RNG seed (negative for random)")
    generate.add_argument("--sampler", help="Sampling method")
    generate.add_argument("--scheduler", help="Scheduler")
    generate.add_argument("-o", "--output", type=Path, default=Path("output.png"), help="Output file path")
    generate.add_argument("-b", "--batch-count", type=int, help="Number of images to generate")

    subparsers.add_parser("models", help="List configured models")

    serve = subparsers.add_parser("serve", help="Start an OpenAI-compatible HTTP API server")
    serve.add_argument("--host", help="Host address to bind (default: config server_host)")
    serve.add_argument("--port", type=int, help="Port to listen on (default: config server_port)")

    return parser


def request_from_args(args: argparse.Namespace) -> GenerationRequest:
    """Translate parsed ``generate`` arguments into a GenerationRequest."""
    return GenerationRequest(
        prompt=args.prompt,
        negative_prompt=args.negative_prompt,
        width=args.width,
        height=args.height,
        steps=args.steps,
        cfg_scale=args.cfg_scale,
        guidance=args.guidance,
        seed=args.seed,
        sampler=args.sampler,
        scheduler=args.scheduler,
        batch_count=args.batch_count,
        model=args.model,
    )


def cmd_generate(config: SdxConfig, args: argparse.Namespace) -> int:
    pipeline = GenerationPipeline(config)
    output_path = pipeline.generate_file(request_from_args(args), args.output)
    print(output_path)
    return 0


def cmd_models(config: SdxConfig, args: argparse.Namespace) -> int:
    if not config.models:
        print("no models configured")
        return 0

    for name, definition in config.models.items():
        print(f"{name}:")
        for label, path in definition.model_paths():
            status = "ok" if path.exists() else "MISSING"
            print(f"  {label}: {path} [{status}]")

        defaults = []
        if definition.width is not None:
            height = definition.height if definition.height is not None else definition.width
            defaults.append(f"{definition.width}x{height}")
        if definition.steps is not None:
            defaults.append(f"{definition.steps} steps")
        if definition.sampling_method is not None:
            defaults.append(definition.sampling_method)
        if defaults:
            print(f"  defaults: {', '.join(defaults)}")
        print()
    return 0


def cmd_serve(config: SdxConfig, args: argparse.Namespace) -> int:
    from sdx.api.main import run_server

    run_server(config, host=args.host, port=args.port)
    return 0


COMMANDS = {
    "generate": cmd_generate,
    "models": cmd_models,
    "serve": cmd_serve,
}


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the selected command and return its exit code."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = load_config(args.config or default_config_path())
        return COMMANDS[args.command](config, args)
    except SdxError as e:
        logger.debug("Command '%s' failed.", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CODES.get(type(e), 1)


if __name__ == "__main__":
    sys.exit(main())
