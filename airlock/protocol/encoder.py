"""Wire encoding for manifest, no-update, and directive responses.

Clients scan the multipart body for this exact structure, so part order,
header names, and the closing delimiter (including its trailing CRLF)
are fixed.  A manifest response looks like::

    --airlock-boundary\\r\\n
    Content-Disposition: inline; name="manifest"\\r\\n
    Content-Type: application/json\\r\\n
    expo-signature: sig="...", keyid="main"\\r\\n      (only when signed)
    \\r\\n
    {"assets":[],...}\\r\\n
    --airlock-boundary\\r\\n
    Content-Disposition: inline; name="extensions"\\r\\n
    Content-Type: application/json\\r\\n
    \\r\\n
    {}\\r\\n
    --airlock-boundary--\\r\\n

A ``certificate_chain`` part follows ``extensions`` when configured.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from airlock.core.hasher import canonical_json_bytes
from airlock.models.updates import Manifest, utc_now_iso

BOUNDARY = "airlock-boundary"
CRLF = b"\r\n"

PROTOCOL_HEADERS: dict[str, str] = {
    "expo-protocol-version": "1",
    "expo-sfv-version": "0",
    "cache-control": "private, max-age=0",
}

MULTIPART_CONTENT_TYPE = f"multipart/mixed; boundary={BOUNDARY}"
SIGNATURE_HEADER = "expo-signature"


class EncodedResponse(BaseModel):
    """Framework-neutral response: status, headers, and body bytes."""

    model_config = ConfigDict(frozen=True)

    status: int
    headers: dict[str, str]
    body: bytes = b""


class NoUpdateAvailableDirective(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["noUpdateAvailable"] = "noUpdateAvailable"

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type}


class RollBackToEmbeddedDirective(BaseModel):
    """Tell clients to discard downloaded updates and run their bundled build."""

    model_config = ConfigDict(frozen=True)

    type: Literal["rollBackToEmbedded"] = "rollBackToEmbedded"
    commit_time: str = Field(default_factory=utc_now_iso)

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "parameters": {"commitTime": self.commit_time}}


Directive = Union[NoUpdateAvailableDirective, RollBackToEmbeddedDirective]


class Part(BaseModel):
    """One multipart section."""

    model_config = ConfigDict(frozen=True)

    name: str
    content_type: str
    body: bytes
    extra_headers: dict[str, str] = {}


def manifest_bytes(manifest: Manifest) -> bytes:
    """The exact bytes served in the ``manifest`` part (and signed)."""
    return canonical_json_bytes(manifest.to_wire())


def directive_bytes(directive: Directive) -> bytes:
    """The exact bytes served in the ``directive`` part (and signed)."""
    return canonical_json_bytes(directive.to_wire())


def encode_multipart(parts: list[Part]) -> bytes:
    """Join *parts* with CRLF line endings and close the body."""
    delimiter = f"--{BOUNDARY}".encode("ascii")
    lines: list[bytes] = []
    for part in parts:
        lines.append(delimiter)
        lines.append(f'Content-Disposition: inline; name="{part.name}"'.encode("ascii"))
        lines.append(f"Content-Type: {part.content_type}".encode("ascii"))
        for header, value in part.extra_headers.items():
            lines.append(f"{header}: {value}".encode("ascii"))
        lines.append(b"")
        lines.append(part.body)
    lines.append(f"--{BOUNDARY}--".encode("ascii"))
    return CRLF.join(lines) + CRLF


def _multipart_response(parts: list[Part]) -> EncodedResponse:
    return EncodedResponse(
        status=200,
        headers={**PROTOCOL_HEADERS, "content-type": MULTIPART_CONTENT_TYPE},
        body=encode_multipart(parts),
    )


def encode_no_update() -> EncodedResponse:
    """204 with protocol headers and no body."""
    return EncodedResponse(status=204, headers=dict(PROTOCOL_HEADERS))


def encode_manifest(
    manifest: Manifest,
    *,
    signature: str | None = None,
    certificate_chain: str | None = None,
) -> EncodedResponse:
    """200 multipart response carrying *manifest*.

    Parameters
    ----------
    signature:
        Full ``expo-signature`` header value for the manifest part.
    certificate_chain:
        PEM text appended as a ``certificate_chain`` part.
    """
    parts = [
        Part(
            name="manifest",
            content_type="application/json",
            body=manifest_bytes(manifest),
            extra_headers={SIGNATURE_HEADER: signature} if signature else {},
        ),
        Part(name="extensions", content_type="application/json", body=b"{}"),
    ]
    if certificate_chain:
        parts.append(
            Part(
                name="certificate_chain",
                content_type="application/x-pem-file",
                body=certificate_chain.encode("utf-8"),
            )
        )
    return _multipart_response(parts)


def encode_directive(
    directive: Directive, *, signature: str | None = None
) -> EncodedResponse:
    """200 multipart response with a single ``directive`` part."""
    return _multipart_response(
        [
            Part(
                name="directive",
                content_type="application/json",
                body=directive_bytes(directive),
                extra_headers={SIGNATURE_HEADER: signature} if signature else {},
            )
        ]
    )
