"""Integration tests for sdx.api.main — OpenAI-compatible REST endpoints.

Requests go through the FastAPI TestClient to a real GenerationPipeline
that runs a fake sd-cli script, so argument construction, process handling
and temp-file cleanup are exercised end to end:

- ``GET /v1/models`` — Model listing.
- ``POST /v1/images/generations`` — Image generation and error envelopes.
"""

from __future__ import annotations

import base64
import time

from fastapi.testclient import TestClient

from sdx.api.main import create_app
from sdx.core.config import SdxConfig

# ---------------------------------------------------------------------------
# Model listing.
# ---------------------------------------------------------------------------


class TestListModels:
    """Test GET /v1/models."""

    def test_lists_configured_models(self, test_client):
        resp = test_client.get("/v1/models")
        assert resp.status_code == 200
        assert resp.json() == {
            "object": "list",
            "data": [
                {"id": "sd15", "object": "model", "owned_by": "local"},
                {"id": "flux", "object": "model", "owned_by": "local"},
            ],
        }

    def test_empty_model_list(self, temp_dir):
        config = SdxConfig(_env_file=None, output_dir=str(temp_dir / "outputs"))
        with TestClient(create_app(config)) as client:
            resp = client.get("/v1/models")
        assert resp.json() == {"object": "list", "data": []}

    def test_cors_headers(self, test_client):
        resp = test_client.get("/v1/models", headers={"Origin": "http://example.com"})
        assert resp.headers["access-control-allow-origin"] == "*"


# ---------------------------------------------------------------------------
# Image generation.
# ---------------------------------------------------------------------------


class TestGenerateImage:
    """Test POST /v1/images/generations."""

    def test_returns_base64_png(self, test_client, test_config, png_bytes):
        before = int(time.time())
        resp = test_client.post("/v1/images/generations", json={"prompt": "a cat", "model": "sd15"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["created"] >= before
        assert len(body["data"]) == 1
        assert base64.b64decode(body["data"][0]["b64_json"]) == png_bytes
        assert list(test_config.output_dir.iterdir()) == []

    def test_size_and_n_forwarded(self, test_client, fake_sd_cli):
        resp = test_client.post(
            "/v1/images/generations",
            json={"prompt": "a cat", "model": "sd15", "size": "768x512", "n": 2},
        )
        assert resp.status_code == 200
        args = fake_sd_cli.calls()[0]
        assert args[args.index("-W") + 1] == "768"
        assert args[args.index("-H") + 1] == "512"
        assert args[args.index("-b") + 1] == "2"
        # Only one image is returned even when sd-cli made several.
        assert len(resp.json()["data"]) == 1

    def test_malformed_size_uses_model_defaults(self, test_client, fake_sd_cli):
        resp = test_client.post("/v1/images/generations", json={"prompt": "x", "model": "sd15", "size": "huge"})
        assert resp.status_code == 200
        args = fake_sd_cli.calls()[0]
        assert args[args.index("-W") + 1] == "512"

    def test_extensions_forwarded(self, test_client, fake_sd_cli):
        resp = test_client.post(
            "/v1/images/generations",
            json={
                "prompt": "a cat",
                "model": "flux",
                "negative_prompt": "blurry",
                "steps": 4,
                "seed": 7,
                "sampler": "euler",
                "scheduler": "simple",
            },
        )
        assert resp.status_code == 200
        args = fake_sd_cli.calls()[0]
        assert "-m" not in args
        assert args[args.index("--diffusion-model") + 1] == "/models/flux.gguf"
        assert args[args.index("-n") + 1] == "blurry"
        assert args[args.index("--steps") + 1] == "4"
        assert args[args.index("--guidance") + 1] == "3.5"
        assert args[args.index("-s") + 1] == "7"

    def test_first_model_used_without_default(self, test_client, fake_sd_cli):
        resp = test_client.post("/v1/images/generations", json={"prompt": "a cat"})
        assert resp.status_code == 200
        args = fake_sd_cli.calls()[0]
        assert args[args.index("-m") + 1] == "/models/sd15.safetensors"

    def test_missing_prompt(self, test_client, fake_sd_cli):
        resp = test_client.post("/v1/images/generations", json={"model": "sd15"})
        assert resp.status_code == 422
        assert fake_sd_cli.calls() == []

    def test_empty_prompt(self, test_client, fake_sd_cli):
        resp = test_client.post("/v1/images/generations", json={"prompt": "", "model": "sd15"})
        assert resp.status_code == 422
        assert fake_sd_cli.calls() == []

    def test_unknown_model(self, test_client, fake_sd_cli):
        resp = test_client.post("/v1/images/generations", json={"prompt": "x", "model": "nope"})
        assert resp.status_code == 404
        assert resp.json() == {
            "error": {
                "message": "model 'nope' not found in config",
                "type": "not_found_error",
                "code": "model_not_found",
            }
        }
        assert fake_sd_cli.calls() == []

    def test_no_models_configured(self, temp_dir, fake_sd_cli):
        config = SdxConfig(_env_file=None, sd_cli_path=str(fake_sd_cli.path), output_dir=str(temp_dir / "out"))
        with TestClient(create_app(config)) as client:
            resp = client.post("/v1/images/generations", json={"prompt": "x"})
        assert resp.status_code == 400
        assert resp.json()["error"]["type"] == "invalid_request_error"

    def test_sd_cli_failure(self, make_fake_sd_cli, test_config):
        fake = make_fake_sd_cli(exit_code=1, stderr="ggml: out of memory")
        config = test_config.model_copy(update={"sd_cli_path": fake.path})
        with TestClient(create_app(config)) as client:
            resp = client.post("/v1/images/generations", json={"prompt": "x"})
        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["type"] == "server_error"
        assert "ggml: out of memory" in error["message"]
        assert list(test_config.output_dir.iterdir()) == []

    def test_sd_cli_killed(self, make_fake_sd_cli, test_config):
        fake = make_fake_sd_cli(kill=True)
        config = test_config.model_copy(update={"sd_cli_path": fake.path})
        with TestClient(create_app(config)) as client:
            resp = client.post("/v1/images/generations", json={"prompt": "x"})
        assert resp.status_code == 500
        assert "killed" in resp.json()["error"]["message"]

    def test_no_output_written(self, make_fake_sd_cli, test_config):
        fake = make_fake_sd_cli(write_output=False)
        config = test_config.model_copy(update={"sd_cli_path": fake.path})
        with TestClient(create_app(config)) as client:
            resp = client.post("/v1/images/generations", json={"prompt": "x"})
        assert resp.status_code == 500
        assert resp.json()["error"]["message"] == "failed to read generated image"

    def test_missing_executable_hides_path(self, test_config, temp_dir):
        config = test_config.model_copy(update={"sd_cli_path": temp_dir / "secret" / "sd-cli"})
        with TestClient(create_app(config)) as client:
            resp = client.post("/v1/images/generations", json={"prompt": "x"})
        assert resp.status_code == 500
        assert "secret" not in resp.json()["error"]["message"]

    def test_sequential_requests_share_gate(self, test_client, fake_sd_cli):
        for _ in range(3):
            assert test_client.post("/v1/images/generations", json={"prompt": "x"}).status_code == 200
        assert len(fake_sd_cli.calls()) == 3
        assert not test_client.app.state.pipeline.gate.locked
