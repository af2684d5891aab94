"""
Self-describing envelope for posted payloads.

The remote host only accepts text, so arbitrary binary payloads can't be posted as-is.
When enabled, payloads are wrapped in an envelope that consists of a JSON header with
the content type, size and digest of the payload, followed by a separator and the
base64-encoded payload.

The payload is compressed with LZ4 if that makes it smaller. Base64 grows data by a
third, so compression often earns back the overhead for text, which in turn reduces
the number of posts needed for a write.
"""

from __future__ import annotations

import base64
import binascii
import dataclasses
from dataclasses import dataclass
import json
from typing import Tuple

import lz4.frame

from xfiles.content.common import digest, verify
from xfiles.errors import HashMismatch, InvalidEncoding

SEPARATOR = b"\n---\n"

ENVELOPE_VERSION = 1


@dataclass
class ContentHeader:
    """Metadata that precedes the payload in an envelope."""

    mime: str
    size: int
    hash: str
    compressed: bool = False
    version: int = ENVELOPE_VERSION


def encode(content: bytes, mime: str) -> bytes:
    """Wrap a payload in an envelope."""
    compressed_content = lz4.frame.compress(content)
    compressed = len(compressed_content) < len(content)

    header = ContentHeader(
        mime=mime, size=len(content), hash=digest(content), compressed=compressed,
    )

    body = base64.b64encode(compressed_content if compressed else content)

    return json.dumps(dataclasses.asdict(header)).encode() + SEPARATOR + body


def decode(encoded: bytes) -> Tuple[ContentHeader, bytes]:
    """
    Unwrap a payload from an envelope.

    The payload is checked against the size and digest in the header.
    """
    raw_header, separator, body = encoded.partition(SEPARATOR)

    if not separator:
        raise InvalidEncoding("missing header separator")

    try:
        header = ContentHeader(**json.loads(raw_header))
    except (ValueError, TypeError) as e:
        raise InvalidEncoding(f"invalid header: {e}") from e

    if header.version != ENVELOPE_VERSION:
        raise InvalidEncoding(f"unsupported envelope version {header.version}")

    try:
        content = base64.b64decode(body, validate=True)

        if header.compressed:
            content = lz4.frame.decompress(content)
    except (binascii.Error, RuntimeError) as e:
        raise InvalidEncoding(f"invalid body: {e}") from e

    if len(content) != header.size or not verify(content, header.hash):
        raise HashMismatch(header.hash, digest(content))

    return header, content
