"""Update protocol wire encoding."""

from airlock.protocol.encoder import (
    BOUNDARY,
    MULTIPART_CONTENT_TYPE,
    PROTOCOL_HEADERS,
    SIGNATURE_HEADER,
    Directive,
    EncodedResponse,
    NoUpdateAvailableDirective,
    RollBackToEmbeddedDirective,
    directive_bytes,
    encode_directive,
    encode_manifest,
    encode_multipart,
    encode_no_update,
    manifest_bytes,
)

__all__ = [
    "BOUNDARY",
    "MULTIPART_CONTENT_TYPE",
    "PROTOCOL_HEADERS",
    "SIGNATURE_HEADER",
    "Directive",
    "EncodedResponse",
    "NoUpdateAvailableDirective",
    "RollBackToEmbeddedDirective",
    "directive_bytes",
    "encode_directive",
    "encode_manifest",
    "encode_multipart",
    "encode_no_update",
    "manifest_bytes",
]
