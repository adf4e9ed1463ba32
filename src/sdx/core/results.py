"""Reading back and cleaning up sd-cli output images.

Temporary images written for HTTP requests must never outlive the request,
whatever the outcome.  :func:`extract_output` reads and removes in one step;
:func:`discard_output` is the removal half on its own, for failure paths.

When sd-cli runs with ``-b N`` it writes the extra images next to the
requested path as ``<stem>_<i><suffix>``.  Only the requested image is
returned, but all of them are removed.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from sdx.core.errors import OutputReadFailedError

logger = logging.getLogger(__name__)


def allocate_output_path(directory: Path) -> Path:
    """Return a fresh, collision-free ``.png`` path inside *directory*."""
    return Path(directory) / f"sd-{uuid.uuid4().hex}.png"


def extract_output(path: Path) -> bytes:
    """Read the image at *path*, then remove it and any batch siblings.

    Removal happens whether or not the read succeeds.

    Raises:
        OutputReadFailedError: If the file cannot be read.
    """
    path = Path(path)
    try:
        return path.read_bytes()
    except OSError as e:
        raise OutputReadFailedError(e.strerror or str(e)) from e
    finally:
        discard_output(path)


def discard_output(path: Path) -> None:
    """Remove *path* and its ``<stem>_*<suffix>`` siblings if they exist."""
    path = Path(path)
    candidates = [path, *path.parent.glob(f"{path.stem}_*{path.suffix}")]
    for candidate in candidates:
        try:
            candidate.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove temporary output %s.", candidate, exc_info=True)
