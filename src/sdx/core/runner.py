"""sd-cli process execution.

sd-cli is treated as an opaque black box: its stdout is discarded and only
the exit status decides the outcome.  The output path is fixed before the
process starts (it is the ``-o`` value in :class:`ResolvedArguments`), so a
successful run simply hands that path back.

Outcome Mapping
---------------
=========================  =============================================
Process result             Outcome
=========================  =============================================
exit code 0                ``Success(output_path)``
exit code != 0             ``Failure(ProcessFailedError(code, stderr))``
terminated by a signal     ``Failure(ProcessKilledError(signal))``
=========================  =============================================

Launch problems (missing file, not executable) are raised as
:class:`~sdx.core.errors.ExecutableNotFoundError` instead of being returned,
because no process ever ran.
"""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from sdx.core.arguments import ResolvedArguments
from sdx.core.errors import ExecutableNotFoundError, ProcessFailedError, ProcessKilledError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    """sd-cli exited cleanly; the image should be at ``output_path``."""

    output_path: Path


@dataclass(frozen=True)
class Failure:
    """sd-cli ran but did not produce a usable result."""

    error: ProcessFailedError | ProcessKilledError

    def raise_error(self) -> NoReturn:
        raise self.error


ExecutionOutcome = Success | Failure


def check_executable(path: Path) -> None:
    """Fail fast if *path* is not an existing file.

    Called before the accelerator gate is acquired so that a misconfigured
    path never makes other callers wait.

    Raises:
        ExecutableNotFoundError: If *path* does not point at a file.
    """
    if not Path(path).is_file():
        raise ExecutableNotFoundError(path)


def run_executable(executable: Path, arguments: ResolvedArguments) -> ExecutionOutcome:
    """Run sd-cli to completion and classify the result.

    This call blocks for as long as sd-cli runs; there is no timeout.

    Args:
        executable: Path to the sd-cli binary.
        arguments: Resolved argument list for this invocation.

    Returns:
        :class:`Success` or :class:`Failure`.

    Raises:
        ExecutableNotFoundError: If the process could not be started.
    """
    command = [str(executable), *arguments.args]
    logger.info("Running %s (%d arguments).", executable, len(arguments))
    logger.debug("Command line: %s", command)

    started = time.monotonic()
    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            check=False,
        )
    except OSError as e:
        raise ExecutableNotFoundError(executable, e.strerror or str(e)) from e
    elapsed = time.monotonic() - started

    returncode = completed.returncode
    if returncode == 0:
        logger.info("sd-cli finished in %.1fs.", elapsed)
        return Success(arguments.output_path)

    if returncode < 0:
        logger.error("sd-cli was killed by signal %d after %.1fs.", -returncode, elapsed)
        return Failure(ProcessKilledError(-returncode))

    stderr = completed.stderr.decode("utf-8", errors="replace").strip()
    logger.error("sd-cli exited with code %d after %.1fs.", returncode, elapsed)
    return Failure(ProcessFailedError(returncode, stderr))
