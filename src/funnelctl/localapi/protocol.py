"""Line-delimited JSON framing for LocalAPI streams and funnelctl output.

The watch-ipn-bus endpoint streams one JSON object per line for as long as
the connection stays open. funnelctl's own --json output uses the same
framing.

Protocol format:
- Messages are JSON values encoded in compact form (no spaces)
- Each message is terminated by a newline character
- Encoding: UTF-8
- Blank lines carry no message and are skipped

Example watch-ipn-bus line:
    {"Version":"1.76.1","SessionID":"a1b2c3","State":6}\\n
"""

from __future__ import annotations

__all__ = [
    "decode_ndjson",
    "encode_ndjson",
    "extract_session_id",
    "iter_lines",
]

import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from funnelctl.constants import MAX_WATCH_LINE_BYTES, SESSION_ID_KEYS
from funnelctl.localapi.errors import LineTooLongError, MalformedResponseError


def encode_ndjson(msg: dict[str, Any]) -> bytes:
    """Encode a message for NDJSON transmission.

    Args:
        msg: Dictionary to encode.

    Returns:
        UTF-8 encoded bytes with trailing newline.

    Example:
        >>> encode_ndjson({"event": "stopped", "version": 1})
        b'{"event":"stopped","version":1}\\n'
    """
    return (json.dumps(msg, separators=(",", ":")) + "\n").encode("utf-8")


def decode_ndjson(line: bytes) -> Any | None:
    """Decode one NDJSON line.

    Args:
        line: UTF-8 encoded bytes (with or without trailing newline).

    Returns:
        The decoded value, or None for a blank line.

    Raises:
        MalformedResponseError: Line is not valid UTF-8 JSON.
    """
    if not line.strip():
        return None
    try:
        return json.loads(line.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedResponseError(f"invalid JSON line from LocalAPI: {e}") from e


async def iter_lines(
    chunks: AsyncIterable[bytes],
    max_line: int = MAX_WATCH_LINE_BYTES,
) -> AsyncIterator[bytes]:
    """Split a byte stream into lines without the terminator.

    A trailing CR is dropped with the LF. The final unterminated fragment,
    if any, is yielded when the stream ends.

    Args:
        chunks: Raw body chunks (e.g. httpx.Response.aiter_bytes()).
        max_line: Largest line accepted, in bytes.

    Yields:
        One line at a time.

    Raises:
        LineTooLongError: A line grew beyond max_line.
    """
    buffer = bytearray()
    async for chunk in chunks:
        buffer.extend(chunk)
        while True:
            newline = buffer.find(b"\n")
            if newline < 0:
                break
            line = bytes(buffer[:newline])
            del buffer[: newline + 1]
            if len(line) > max_line:
                raise LineTooLongError(max_line)
            yield line.rstrip(b"\r")
        if len(buffer) > max_line:
            raise LineTooLongError(max_line)
    if buffer:
        yield bytes(buffer).rstrip(b"\r")


def extract_session_id(event: Any) -> str | None:
    """Pull the session id out of a watch-ipn-bus event.

    tailscaled has spelled the field differently across releases; every
    known spelling is accepted. Empty or non-string values are ignored.

    Args:
        event: Decoded JSON value of one stream line.

    Returns:
        The session id, or None if this event carries none.
    """
    if not isinstance(event, dict):
        return None
    for key in SESSION_ID_KEYS:
        value = event.get(key)
        if isinstance(value, str) and value:
            return value
    return None
