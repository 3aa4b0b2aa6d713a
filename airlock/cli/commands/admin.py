"""Admin commands — talk to a running server over ``/admin/*``.

``publish``, ``promote``, ``rollout``, ``rollback``, ``list`` and
``status``.  The server URL and token come from ``--server`` / ``--token``
or ``AIRLOCK_SERVER`` / ``AIRLOCK_TOKEN``.
"""

from __future__ import annotations

import base64
import hashlib
import json
import mimetypes
import uuid
from pathlib import Path
from typing import Any, Optional

import httpx
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from airlock.cli.client import AdminClient, AdminClientError
from airlock.models.updates import utc_now_iso

console = Console()

_SERVER = typer.Option(..., "--server", envvar="AIRLOCK_SERVER", help="Airlock server URL.")
_TOKEN = typer.Option("", "--token", envvar="AIRLOCK_TOKEN", help="Admin bearer token.")
_RUNTIME = typer.Option(..., "--runtime-version", "-r", help="Runtime version.")
_PLATFORM = typer.Option(..., "--platform", "-p", help="ios or android.")
_CHANNEL = typer.Option("default", "--channel", "-c", help="Channel name.")


_CONTENT_TYPES = {
    ".js": "application/javascript",
    ".hbc": "application/javascript",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".json": "application/json",
}


def make_client(server: str, token: str) -> AdminClient:
    """Build the admin client; tests replace this to target an in-process app."""
    return AdminClient(server, token)


def _call(server: str, token: str, method: str, *args: Any, **kwargs: Any) -> Any:
    client = make_client(server, token)
    try:
        return getattr(client, method)(*args, **kwargs)
    except AdminClientError as exc:
        console.print(f"[bold red]error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    except httpx.HTTPError as exc:
        console.print(
            f"[bold red]error:[/bold red] cannot reach {escape(server)}: {escape(str(exc))}"
        )
        raise typer.Exit(code=1)
    finally:
        client.close()


def asset_hash(data: bytes) -> str:
    """Base64url SHA-256 without padding, the hash format manifests use."""
    return base64.urlsafe_b64encode(hashlib.sha256(data).digest()).decode("ascii").rstrip("=")


def _content_type(extension: str) -> str:
    extension = extension.lower()
    return (
        _CONTENT_TYPES.get(extension)
        or mimetypes.guess_type(f"file{extension}")[0]
        or "application/octet-stream"
    )


def _inline_asset(data: bytes, content_type: str) -> dict[str, str]:
    return {
        "hash": asset_hash(data),
        "base64": base64.b64encode(data).decode("ascii"),
        "contentType": content_type,
    }


def build_from_dist(
    dist: Path, platform: str, runtime_version: str, server: str
) -> tuple[dict[str, Any], list[dict[str, str]]]:
    """Build a manifest and its inline uploads from ``expo export`` output.

    Reads ``metadata.json`` for *platform*, hashes the bundle and every
    listed asset, and points each manifest URL at the server's
    ``/assets/{hash}`` route.  Listed assets missing on disk are skipped
    with a warning.

    Raises
    ------
    ValueError
        ``metadata.json``, the platform entry, or the bundle is missing.
    """
    metadata_path = dist / "metadata.json"
    if not metadata_path.is_file():
        raise ValueError(f"metadata.json not found in {dist}")
    try:
        metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"metadata.json is not valid JSON: {exc}") from exc

    platform_metadata = metadata.get("fileMetadata", {}).get(platform)
    if not platform_metadata:
        raise ValueError(f"No {platform} metadata found in metadata.json")

    bundle_path = dist / platform_metadata["bundle"]
    if not bundle_path.is_file():
        raise ValueError(f"Bundle not found: {bundle_path}")
    bundle = bundle_path.read_bytes()
    bundle_hash = asset_hash(bundle)
    base_url = server.rstrip("/")

    uploads = [_inline_asset(bundle, "application/javascript")]
    manifest_assets = []
    for entry in platform_metadata.get("assets", []):
        path = dist / entry["path"]
        if not path.is_file():
            console.print(f"[yellow]Warning:[/yellow] asset not found: {escape(str(path))}")
            continue
        extension = f".{entry['ext']}" if entry.get("ext") else path.suffix
        data = path.read_bytes()
        upload = _inline_asset(data, _content_type(extension))
        uploads.append(upload)
        manifest_assets.append(
            {
                "hash": upload["hash"],
                "key": path.stem,
                "contentType": upload["contentType"],
                "fileExtension": extension,
                "url": f"{base_url}/assets/{upload['hash']}",
            }
        )

    manifest = {
        "id": str(uuid.uuid4()),
        "createdAt": utc_now_iso(),
        "runtimeVersion": runtime_version,
        "launchAsset": {
            "hash": bundle_hash,
            "key": "bundle",
            "contentType": "application/javascript",
            "fileExtension": ".js",
            "url": f"{base_url}/assets/{bundle_hash}",
        },
        "assets": manifest_assets,
        "metadata": {},
        "extra": {},
    }
    return manifest, uploads


def _load_manifest(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        console.print(f"[bold red]Manifest is not valid JSON:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)


def publish_cmd(
    manifest: Optional[Path] = typer.Option(
        None, "--manifest", "-m", exists=True, dir_okay=False, help="Manifest JSON file."
    ),
    dist: Optional[Path] = typer.Option(
        None,
        "--dist",
        "-d",
        exists=True,
        file_okay=False,
        help="expo export output directory; builds the manifest from metadata.json.",
    ),
    runtime_version: str = _RUNTIME,
    platform: str = _PLATFORM,
    channel: str = _CHANNEL,
    rollout: int = typer.Option(100, "--rollout", min=0, max=100, help="Rollout percentage."),
    message: Optional[str] = typer.Option(None, "--message", help="Release note."),
    critical: bool = typer.Option(False, "--critical", help="Flag as a critical update."),
    asset: list[Path] = typer.Option(
        [], "--asset", "-a", exists=True, dir_okay=False, help="Asset file to upload (repeatable)."
    ),
    server: str = _SERVER,
    token: str = _TOKEN,
) -> None:
    """Publish an update as the new current update of a channel.

    Either pass a ready ``--manifest`` (plus any ``--asset`` files it
    references) or point ``--dist`` at ``expo export`` output.
    """
    if (manifest is None) == (dist is None):
        console.print("[bold red]error:[/bold red] pass exactly one of --manifest or --dist")
        raise typer.Exit(code=1)

    if dist is not None:
        try:
            manifest_body, inline_assets = build_from_dist(
                dist, platform.lower(), runtime_version, server
            )
        except ValueError as exc:
            console.print(f"[bold red]error:[/bold red] {escape(str(exc))}")
            raise typer.Exit(code=1)
        console.print(
            f"Publishing {platform} update for runtime {runtime_version}: "
            f"bundle {manifest_body['launchAsset']['hash'][:12]}..., "
            f"{len(inline_assets)} assets"
        )
    else:
        manifest_body = _load_manifest(manifest)
        inline_assets = []

    for path in asset:
        inline_assets.append(_inline_asset(path.read_bytes(), _content_type(path.suffix)))

    body: dict[str, Any] = {
        "manifest": manifest_body,
        "runtimeVersion": runtime_version,
        "platform": platform,
        "channel": channel,
        "rolloutPercentage": rollout,
        "critical": critical or None,
        "assets": inline_assets,
    }
    if message:
        body["message"] = message

    result = _call(server, token, "publish", body)
    console.print(
        f"[bold green]Published[/bold green] {result['updateId']} "
        f"to {channel}/{runtime_version}/{platform} at {rollout}%"
    )


def promote_cmd(
    from_channel: str = typer.Option(..., "--from", help="Source channel."),
    to_channel: str = typer.Option(..., "--to", help="Target channel."),
    runtime_version: str = _RUNTIME,
    platform: str = _PLATFORM,
    server: str = _SERVER,
    token: str = _TOKEN,
) -> None:
    """Copy a channel's current update into another channel at 100%."""
    result = _call(
        server,
        token,
        "promote",
        {
            "fromChannel": from_channel,
            "toChannel": to_channel,
            "runtimeVersion": runtime_version,
            "platform": platform,
        },
    )
    console.print(
        f"[bold green]Promoted[/bold green] {result['updateId']} "
        f"from {from_channel} to {to_channel}"
    )


def rollout_cmd(
    update_id: str = typer.Argument(..., help="Update id (must be the current update)."),
    percentage: int = typer.Argument(..., help="Rollout percentage, 0-100."),
    runtime_version: str = _RUNTIME,
    platform: str = _PLATFORM,
    channel: str = _CHANNEL,
    server: str = _SERVER,
    token: str = _TOKEN,
) -> None:
    """Change the rollout percentage of the current update."""
    _call(
        server,
        token,
        "rollout",
        {
            "updateId": update_id,
            "percentage": percentage,
            "runtimeVersion": runtime_version,
            "platform": platform,
            "channel": channel,
        },
    )
    console.print(f"[bold green]Rollout[/bold green] {update_id} -> {percentage}%")


def rollback_cmd(
    runtime_version: str = _RUNTIME,
    platform: str = _PLATFORM,
    channel: str = _CHANNEL,
    server: str = _SERVER,
    token: str = _TOKEN,
) -> None:
    """Drop the current update; the previous one becomes active."""
    result = _call(
        server,
        token,
        "rollback",
        {"runtimeVersion": runtime_version, "platform": platform, "channel": channel},
    )
    console.print(f"[bold green]Rolled back.[/bold green] Active: {result['activeUpdateId']}")


def list_cmd(
    runtime_version: str = _RUNTIME,
    platform: str = _PLATFORM,
    channel: str = _CHANNEL,
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum entries."),
    server: str = _SERVER,
    token: str = _TOKEN,
) -> None:
    """Show the update history of one channel, newest first."""
    updates = _call(
        server,
        token,
        "updates",
        runtime_version=runtime_version,
        platform=platform,
        channel=channel,
        limit=limit,
    )
    if not updates:
        console.print("[dim]No updates published.[/dim]")
        return

    table = Table(title=f"{channel} / {runtime_version} / {platform}")
    table.add_column("Update ID", style="cyan")
    table.add_column("Rollout", justify="right")
    table.add_column("Critical", justify="center")
    table.add_column("Created")
    table.add_column("Message")
    for index, update in enumerate(updates):
        marker = " [green](current)[/green]" if index == 0 else ""
        table.add_row(
            update["manifest"]["id"] + marker,
            f"{update['rolloutPercentage']}%",
            "[red]Yes[/red]" if update.get("critical") else "",
            update.get("createdAt", ""),
            update.get("message") or "",
        )
    console.print(table)


def status_cmd(
    server: str = _SERVER,
    token: str = _TOKEN,
) -> None:
    """Show the current update of every channel."""
    channels = _call(server, token, "channels")
    if not channels:
        console.print("[dim]No channels have published updates.[/dim]")
        return

    table = Table(title="Channels")
    table.add_column("Channel", style="cyan")
    table.add_column("Runtime")
    table.add_column("Platform")
    table.add_column("Current update")
    table.add_column("Rollout", justify="right")
    for entry in channels:
        update = entry["update"]
        table.add_row(
            entry["channel"],
            entry["runtimeVersion"],
            entry["platform"],
            update["manifest"]["id"],
            f"{update['rolloutPercentage']}%",
        )
    console.print(table)
