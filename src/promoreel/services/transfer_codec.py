# src/promoreel/services/transfer_codec.py

"""
Base64 transport encoding for video payloads.

JSON APIs on both sides of the pipeline carry binary media as standard
base64 text. Encoding and decoding walk the payload in bounded chunks so
no single primitive call sees a multi-megabyte argument.
"""

from __future__ import annotations

import base64
import binascii

# Multiples of 3 bytes / 4 chars so chunk boundaries never need padding
ENCODE_CHUNK_BYTES = 8190
DECODE_CHUNK_CHARS = 8192


def encode(data: bytes) -> str:
    """Encode raw bytes to base64 text."""
    if not data:
        return ""

    view = memoryview(data)
    parts = []
    for offset in range(0, len(view), ENCODE_CHUNK_BYTES):
        parts.append(base64.b64encode(view[offset:offset + ENCODE_CHUNK_BYTES]))
    return b"".join(parts).decode("ascii")


def decode(text: str) -> bytes:
    """
    Decode base64 text back to raw bytes.

    Whitespace (line-wrapped payloads) is ignored. Raises ValueError when the
    text is not valid base64.
    """
    if not text:
        return b""

    compact = "".join(text.split())
    if len(compact) % 4:
        raise ValueError(f"Invalid base64 payload length {len(compact)}")

    out = bytearray()
    try:
        for offset in range(0, len(compact), DECODE_CHUNK_CHARS):
            out += base64.b64decode(compact[offset:offset + DECODE_CHUNK_CHARS], validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
    return bytes(out)
