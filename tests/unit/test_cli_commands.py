"""Unit tests for the CLI — command registration and the admin commands.

Admin commands run against an in-process app: ``make_client`` is swapped
for an ``AdminClient`` that sends through a FastAPI ``TestClient``.
"""

from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from airlock.cli.app import app
from airlock.cli.client import AdminClient
from airlock.cli.commands import admin as admin_commands
from airlock.cli.commands.admin import asset_hash
from airlock.config import AirlockSettings

runner = CliRunner()

_TARGET = ["--runtime-version", "1.0.0", "--platform", "ios"]


@pytest.fixture
def cli_client(make_client, monkeypatch: pytest.MonkeyPatch):
    """Point the admin commands at an in-process server with token ``tok``."""
    http = make_client(settings=AirlockSettings(_env_file=None, admin_token="tok"))

    def _make(server: str, token: str) -> AdminClient:
        return AdminClient(server, token, http=http)

    monkeypatch.setattr(admin_commands, "make_client", _make)
    monkeypatch.setenv("AIRLOCK_SERVER", "http://testserver")
    monkeypatch.setenv("AIRLOCK_TOKEN", "tok")
    return http


@pytest.fixture
def manifest_file(tmp_path: Path, make_manifest) -> Path:
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps(make_manifest("update-1").to_wire()))
    return path


# ---------------------------------------------------------------------------
# Test: CLI help and registration
# ---------------------------------------------------------------------------


class TestCliApp:
    """The CLI must register every command and show help."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code in (0, 2)
        assert "usage" in result.output.lower()

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("serve", "publish", "promote", "rollout", "rollback", "list", "status"):
            assert name in result.output

    @pytest.mark.parametrize(
        "command", ["serve", "publish", "promote", "rollout", "rollback", "list", "status"]
    )
    def test_command_help(self, command: str):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


# ---------------------------------------------------------------------------
# Test: admin commands against an in-process server
# ---------------------------------------------------------------------------


class TestPublishCommand:
    def test_publishes(self, cli_client, manifest_file: Path):
        result = runner.invoke(
            app, ["publish", "--manifest", str(manifest_file), *_TARGET, "--rollout", "30"]
        )
        assert result.exit_code == 0, result.output
        assert "update-1" in result.output

        history = cli_client.get(
            "/admin/updates",
            params={"runtimeVersion": "1.0.0", "platform": "ios"},
            headers={"Authorization": "Bearer tok"},
        ).json()["updates"]
        assert history[0]["rolloutPercentage"] == 30

    def test_uploads_assets(self, cli_client, manifest_file: Path, tmp_path: Path):
        bundle = tmp_path / "bundle.js"
        bundle.write_bytes(b"console.log('hi')")
        result = runner.invoke(
            app,
            ["publish", "-m", str(manifest_file), *_TARGET, "--asset", str(bundle)],
        )
        assert result.exit_code == 0, result.output

        blob = cli_client.get(f"/blobs/{asset_hash(bundle.read_bytes())}")
        assert blob.status_code == 200
        assert blob.content == b"console.log('hi')"

    def test_invalid_json(self, cli_client, tmp_path: Path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["publish", "-m", str(path), *_TARGET])
        assert result.exit_code == 1
        assert "not valid JSON" in result.output

    def test_wrong_token(self, cli_client, manifest_file: Path):
        result = runner.invoke(
            app, ["publish", "-m", str(manifest_file), *_TARGET, "--token", "nope"]
        )
        assert result.exit_code == 1
        assert "401" in result.output


class TestLifecycleCommands:
    def _publish(self, tmp_path: Path, make_manifest, update_id: str):
        path = tmp_path / f"{update_id}.json"
        path.write_text(json.dumps(make_manifest(update_id).to_wire()))
        result = runner.invoke(app, ["publish", "-m", str(path), *_TARGET])
        assert result.exit_code == 0, result.output

    def test_rollout_and_list(self, cli_client, tmp_path, make_manifest):
        self._publish(tmp_path, make_manifest, "update-1")
        result = runner.invoke(app, ["rollout", "update-1", "15", *_TARGET])
        assert result.exit_code == 0, result.output

        listing = runner.invoke(app, ["list", *_TARGET])
        assert listing.exit_code == 0
        assert "update-1" in listing.output
        assert "15%" in listing.output

    def test_rollout_out_of_range(self, cli_client):
        result = runner.invoke(app, ["rollout", "update-1", "150", *_TARGET])
        assert result.exit_code == 1
        assert "400" in result.output

    def test_rollback(self, cli_client, tmp_path, make_manifest):
        self._publish(tmp_path, make_manifest, "update-1")
        self._publish(tmp_path, make_manifest, "update-2")
        result = runner.invoke(app, ["rollback", *_TARGET])
        assert result.exit_code == 0, result.output
        assert "update-1" in result.output

    def test_rollback_without_previous(self, cli_client):
        result = runner.invoke(app, ["rollback", *_TARGET])
        assert result.exit_code == 1
        assert "404" in result.output

    def test_promote_and_status(self, cli_client, tmp_path, make_manifest):
        self._publish(tmp_path, make_manifest, "update-1")
        result = runner.invoke(
            app, ["promote", "--from", "default", "--to", "production", *_TARGET]
        )
        assert result.exit_code == 0, result.output

        status = runner.invoke(app, ["status"])
        assert status.exit_code == 0
        assert "production" in status.output
        assert "default" in status.output

    def test_empty_list_and_status(self, cli_client):
        assert "No updates published" in runner.invoke(app, ["list", *_TARGET]).output
        assert "No channels" in runner.invoke(app, ["status"]).output


class TestServeCommand:
    def test_refuses_unsafe_production(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("AIRLOCK_ENVIRONMENT", "production")
        monkeypatch.delenv("AIRLOCK_ADMIN_TOKEN", raising=False)
        result = runner.invoke(app, ["serve", "--storage", "memory"])
        assert result.exit_code == 1
        assert "Refusing to start" in result.output


class TestPublishFromDist:
    @pytest.fixture
    def dist_dir(self, tmp_path: Path) -> Path:
        dist = tmp_path / "dist"
        bundle = dist / "_expo" / "static" / "js" / "ios" / "index-abc.hbc"
        bundle.parent.mkdir(parents=True)
        bundle.write_bytes(b"__d(function(){})")
        icon = dist / "assets" / "4f1cb2"
        icon.parent.mkdir(parents=True)
        icon.write_bytes(b"\x89PNG fake image")
        metadata = {
            "version": 0,
            "bundler": "metro",
            "fileMetadata": {
                "ios": {
                    "bundle": "_expo/static/js/ios/index-abc.hbc",
                    "assets": [
                        {"path": "assets/4f1cb2", "ext": "png"},
                        {"path": "assets/missing", "ext": "ttf"},
                    ],
                }
            },
        }
        (dist / "metadata.json").write_text(json.dumps(metadata))
        return dist

    def test_builds_manifest_with_matching_hashes(self, cli_client, dist_dir: Path):
        result = runner.invoke(app, ["publish", "--dist", str(dist_dir), *_TARGET])
        assert result.exit_code == 0, result.output
        assert "asset not found" in result.output

        [update] = cli_client.get(
            "/admin/updates",
            params={"runtimeVersion": "1.0.0", "platform": "ios"},
            headers={"Authorization": "Bearer tok"},
        ).json()["updates"]
        manifest = update["manifest"]
        assert manifest["runtimeVersion"] == "1.0.0"

        bundle_hash = asset_hash(b"__d(function(){})")
        launch = manifest["launchAsset"]
        assert launch["hash"] == bundle_hash
        assert launch["contentType"] == "application/javascript"
        assert launch["url"] == f"http://testserver/assets/{bundle_hash}"

        [icon] = manifest["assets"]
        assert icon["hash"] == asset_hash(b"\x89PNG fake image")
        assert icon["contentType"] == "image/png"
        assert icon["fileExtension"] == ".png"
        assert icon["key"] == "4f1cb2"

        assert cli_client.get(f"/blobs/{bundle_hash}").content == b"__d(function(){})"
        assert cli_client.get(f"/blobs/{icon['hash']}").content == b"\x89PNG fake image"
        redirect = cli_client.get(f"/assets/{bundle_hash}", follow_redirects=False)
        assert redirect.status_code == 302

    def test_missing_platform_metadata(self, cli_client, dist_dir: Path):
        result = runner.invoke(
            app,
            [
                "publish",
                "--dist",
                str(dist_dir),
                "--runtime-version",
                "1.0.0",
                "--platform",
                "android",
            ],
        )
        assert result.exit_code == 1
        assert "No android metadata" in result.output

    def test_missing_metadata_file(self, cli_client, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(app, ["publish", "--dist", str(empty), *_TARGET])
        assert result.exit_code == 1
        assert "metadata.json not found" in result.output

    def test_requires_exactly_one_source(self, cli_client, dist_dir: Path, manifest_file: Path):
        neither = runner.invoke(app, ["publish", *_TARGET])
        both = runner.invoke(
            app, ["publish", "-m", str(manifest_file), "--dist", str(dist_dir), *_TARGET]
        )
        for result in (neither, both):
            assert result.exit_code == 1
            assert "exactly one" in result.output


class TestUnreachableServer:
    def test_connection_error_is_reported(self, monkeypatch: pytest.MonkeyPatch):
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        def _make(server: str, token: str) -> AdminClient:
            http = httpx.Client(base_url=server, transport=httpx.MockTransport(_refuse))
            return AdminClient(server, token, http=http)

        monkeypatch.setattr(admin_commands, "make_client", _make)
        result = runner.invoke(app, ["status", "--server", "http://updates.invalid"])
        assert result.exit_code == 1
        assert "cannot reach" in result.output
        assert "connection refused" in result.output


def test_asset_hash_format():
    expected = (
        base64.urlsafe_b64encode(hashlib.sha256(b"x").digest()).decode().rstrip("=")
    )
    assert asset_hash(b"x") == expected
    assert "=" not in asset_hash(b"x")
