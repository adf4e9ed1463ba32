"""Generation orchestration for both sdx front-ends.

:class:`GenerationPipeline` is the single point of control between a
:class:`~sdx.core.arguments.GenerationRequest` and sd-cli.  It owns nothing
mutable except the :class:`~sdx.core.gate.ExecutionGate`, which is injected
so that every request served by one process shares the same gate.

Flow
----
1. Pick a model name and resolve its definition (:mod:`sdx.core.registry`).
2. Build the sd-cli arguments (:mod:`sdx.core.arguments`).
3. Check that the executable exists, *before* waiting on the gate.
4. Hold the gate while sd-cli runs and its output is read back.
5. Release the gate and return the bytes (HTTP) or the path (CLI).

Key Guarantees
--------------
- At most one sd-cli process runs at a time for a given gate.
- The gate is released on every exit path, including errors.
- Temporary images never survive the request, whatever the outcome.
- No retries and no substitute model on failure: errors propagate as-is.
- A caller that goes away mid-request does not stop sd-cli; the gate stays
  held until the process finishes and the result is thrown away.

Usage
-----
::

    from sdx.core.arguments import GenerationRequest
    from sdx.core.config import load_config
    from sdx.core.pipeline import GenerationPipeline

    pipeline = GenerationPipeline(load_config(path))

    # CLI: write to a chosen file.
    pipeline.generate_file(GenerationRequest(prompt="a cat"), Path("cat.png"))

    # Server: get the bytes back, temp file removed.
    image = await pipeline.generate_image(GenerationRequest(prompt="a cat"))
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from collections.abc import Callable
from pathlib import Path

from sdx.core.arguments import GenerationRequest, ResolvedArguments, build_arguments
from sdx.core.config import SdxConfig
from sdx.core.errors import OutputReadFailedError
from sdx.core.gate import ExecutionGate
from sdx.core.registry import ModelRegistry
from sdx.core.results import allocate_output_path, discard_output, extract_output
from sdx.core.runner import ExecutionOutcome, Failure, check_executable, run_executable

logger = logging.getLogger(__name__)

Runner = Callable[[Path, ResolvedArguments], ExecutionOutcome]


class GenerationPipeline:
    """Resolve, build, gate, run and collect a single image generation.

    Attributes:
        registry (ModelRegistry):
            Read-only model lookup built from the configuration.
        gate (ExecutionGate):
            The accelerator gate shared by all requests on this pipeline.
    """

    def __init__(
        self,
        config: SdxConfig,
        gate: ExecutionGate | None = None,
        runner: Runner = run_executable,
    ) -> None:
        """Initialise the pipeline.

        Args:
            config: Validated application configuration.
            gate: Gate to serialise sd-cli runs.  A new one is created when
                omitted.
            runner: Callable that executes sd-cli.  Tests substitute a fake.
        """
        self._config = config
        self._runner = runner
        self.registry = ModelRegistry.from_config(config)
        self.gate = gate if gate is not None else ExecutionGate()

        # Strong references to gated runs whose caller has gone away.
        self._inflight: set[asyncio.Task] = set()

    @property
    def output_dir(self) -> Path:
        """Directory for temporary images (configured or system temp)."""
        if self._config.output_dir is not None:
            return self._config.output_dir
        return Path(tempfile.gettempdir())

    def prepare(
        self,
        request: GenerationRequest,
        output_path: Path,
        *,
        fallback_to_first: bool,
    ) -> ResolvedArguments:
        """Resolve the model for *request* and build its sd-cli arguments.

        Raises:
            NoDefaultModelError: If no model name can be chosen.
            ModelNotFoundError: If the chosen name is not configured.
        """
        name = self.registry.resolve_name(request.model, fallback_to_first=fallback_to_first)
        definition = self.registry.resolve(name)
        arguments = build_arguments(definition, request, output_path)
        logger.info("Prepared generation with model '%s' -> %s.", name, output_path)
        return arguments

    # -- CLI ----------------------------------------------------------------

    def generate_file(self, request: GenerationRequest, output_path: Path) -> Path:
        """Run one generation synchronously, writing to *output_path*.

        The model is chosen with the configured-default policy (no fallback
        to the first model).  The gate is not used: a CLI invocation is the
        only user of the accelerator in its process.

        Returns:
            The path of the written image.

        Raises:
            SdxError: Any error from resolution, the executable check, the
                run itself, or a missing output file.
        """
        arguments = self.prepare(request, Path(output_path), fallback_to_first=False)
        executable = self._config.resolve_sd_cli_path()
        check_executable(executable)

        outcome = self._runner(executable, arguments)
        if isinstance(outcome, Failure):
            outcome.raise_error()

        if not outcome.output_path.exists():
            raise OutputReadFailedError(f"sd-cli reported success but {outcome.output_path} does not exist")
        return outcome.output_path

    # -- Server -------------------------------------------------------------

    async def generate_image(self, request: GenerationRequest) -> bytes:
        """Run one generation under the gate and return the image bytes.

        The model is chosen with the HTTP policy: explicit name, then the
        configured default, then the first configured model.  The sd-cli
        run and the read-back happen on a worker thread so the event loop
        keeps serving other requests.

        Raises:
            SdxError: Any error from resolution, the executable check, the
                run itself, or reading the output.
        """
        output_path = allocate_output_path(self.output_dir)
        arguments = self.prepare(request, output_path, fallback_to_first=True)
        executable = self._config.resolve_sd_cli_path()
        check_executable(executable)

        task = asyncio.ensure_future(self._run_gated(executable, arguments))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.info("Caller went away; sd-cli keeps the gate until it finishes.")
            task.add_done_callback(_log_abandoned)
            raise

    async def _run_gated(self, executable: Path, arguments: ResolvedArguments) -> bytes:
        async with self.gate.hold():
            return await asyncio.to_thread(self._execute, executable, arguments)

    def _execute(self, executable: Path, arguments: ResolvedArguments) -> bytes:
        try:
            outcome = self._runner(executable, arguments)
            if isinstance(outcome, Failure):
                outcome.raise_error()
            return extract_output(outcome.output_path)
        finally:
            discard_output(arguments.output_path)


def _log_abandoned(task: asyncio.Task) -> None:
    """Report the outcome of a run nobody is waiting for any more."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("Abandoned generation failed: %s", error)
    else:
        logger.info("Abandoned generation finished; result discarded.")
