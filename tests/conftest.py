"""Shared pytest fixtures for sdx tests."""

import io
import json
import shutil
import stat
import sys
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from sdx.core.config import SdxConfig, parse_config

SAMPLE_CONFIG = """
sd_cli_path = "/usr/bin/sd-cli"

[models.sd15]
model = "/models/sd15.safetensors"
width = 512
height = 512
steps = 20
cfg_scale = 7.0
sampling_method = "euler_a"
scheduler = "discrete"

[models.flux]
diffusion_model = "/models/flux-dev-q8_0.gguf"
clip_l = "/models/clip_l.safetensors"
t5xxl = "/models/t5xxl_fp16.safetensors"
vae = "/models/ae.safetensors"
width = 1024
height = 1024
steps = 20
guidance = 3.5
sampling_method = "euler"
scheduler = "simple"
"""

# Stand-in for sd-cli.  Records its arguments, then behaves as configured:
# writes the image given by IMAGE to the -o path (plus a batch sibling when
# -b is passed), exits with EXIT_CODE, or kills itself.
_FAKE_SD_CLI = """#!{python}
import json, os, signal, sys, time

args = sys.argv[1:]
with open({calls!r}, "a", encoding="utf-8") as handle:
    handle.write(json.dumps({{"args": args, "start": time.time()}}) + "\\n")

time.sleep({sleep!r})

if {kill!r}:
    os.kill(os.getpid(), signal.SIGKILL)

if {exit_code!r}:
    sys.stderr.write({stderr!r})
    sys.exit({exit_code!r})

if {write_output!r}:
    output = args[args.index("-o") + 1]
    with open({image!r}, "rb") as source:
        data = source.read()
    with open(output, "wb") as target:
        target.write(data)
    if "-b" in args:
        stem, suffix = os.path.splitext(output)
        with open(stem + "_2" + suffix, "wb") as target:
            target.write(data)
"""


class FakeSdCli:
    """Handle on a generated fake sd-cli script."""

    def __init__(self, path: Path, calls_path: Path) -> None:
        self.path = path
        self.calls_path = calls_path

    def calls(self) -> list[list[str]]:
        """Argument lists of every invocation so far."""
        if not self.calls_path.exists():
            return []
        lines = self.calls_path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line)["args"] for line in lines]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def png_bytes() -> bytes:
    """A small, valid PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(255, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def make_fake_sd_cli(temp_dir: Path, png_bytes: bytes) -> Callable[..., FakeSdCli]:
    """Factory for executable fake sd-cli scripts.

    Returns:
        Function accepting ``exit_code``, ``stderr``, ``write_output``,
        ``kill`` and ``sleep`` keyword arguments.
    """
    image = temp_dir / "fake-image.png"
    image.write_bytes(png_bytes)
    counter = {"n": 0}

    def factory(
        exit_code: int = 0,
        stderr: str = "",
        write_output: bool = True,
        kill: bool = False,
        sleep: float = 0.0,
    ) -> FakeSdCli:
        counter["n"] += 1
        script = temp_dir / f"sd-cli-{counter['n']}"
        calls = temp_dir / f"sd-cli-{counter['n']}.calls"
        script.write_text(
            _FAKE_SD_CLI.format(
                python=sys.executable,
                calls=str(calls),
                sleep=sleep,
                kill=kill,
                exit_code=exit_code,
                stderr=stderr,
                write_output=write_output,
                image=str(image),
            ),
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return FakeSdCli(script, calls)

    return factory


@pytest.fixture
def sample_config() -> SdxConfig:
    """Parsed SAMPLE_CONFIG (sd15 single-file, flux component model)."""
    return parse_config(SAMPLE_CONFIG)


@pytest.fixture
def fake_sd_cli(make_fake_sd_cli) -> FakeSdCli:
    """A fake sd-cli that succeeds and writes a PNG."""
    return make_fake_sd_cli()


@pytest.fixture
def test_config(temp_dir: Path, fake_sd_cli: FakeSdCli) -> SdxConfig:
    """Configuration pointing at a working fake sd-cli.

    Temporary outputs go to ``temp_dir / "outputs"``.
    """
    return SdxConfig(
        _env_file=None,
        sd_cli_path=str(fake_sd_cli.path),
        output_dir=str(temp_dir / "outputs"),
        models={
            "sd15": {"model": "/models/sd15.safetensors", "steps": 20},
            "flux": {
                "diffusion_model": "/models/flux.gguf",
                "clip_l": "/models/clip_l.safetensors",
                "t5xxl": "/models/t5xxl.safetensors",
                "vae": "/models/ae.safetensors",
                "guidance": 3.5,
            },
        },
    )


@pytest.fixture
def config_file(temp_dir: Path) -> Callable[[str], Path]:
    """Factory that writes TOML text to a config file and returns its path."""

    def factory(text: str) -> Path:
        path = temp_dir / "config.toml"
        path.write_text(text, encoding="utf-8")
        return path

    return factory


@pytest.fixture
def test_client(test_config: SdxConfig) -> Generator[TestClient, None, None]:
    """FastAPI TestClient for an app backed by the fake sd-cli.

    Used as a context manager so the application lifespan runs.
    """
    from sdx.api.main import create_app

    with TestClient(create_app(test_config)) as client:
        yield client
