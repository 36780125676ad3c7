"""Decoding of the streamed completion body.

Created: 2026-10-19

The body arrives as raw byte chunks of ``data: <json>`` lines. Chunk
boundaries can fall anywhere, including inside a multi-byte character or
in the middle of a line, so both the UTF-8 decoder and the partial line
are carried over from one chunk to the next.

Each complete line is classified into one of three frames:
    ValidFrame(text)        a non-empty content delta
    SkippableFrame(reason)  malformed or uninteresting payload, ignored
    DoneFrame()             the ``[DONE]`` terminator
Lines without the ``data:`` prefix are not frames at all.
"""

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from chatdeck.errors import DecodeError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class ValidFrame:
    text: str


@dataclass(frozen=True)
class SkippableFrame:
    reason: str


@dataclass(frozen=True)
class DoneFrame:
    pass


Frame = ValidFrame | SkippableFrame | DoneFrame


class _Delta(BaseModel):
    content: str | None = None


class _Choice(BaseModel):
    delta: _Delta


class _Chunk(BaseModel):
    # Only choices[0] is read, so later entries are left unvalidated
    choices: list[Any]


class LineDecoder:
    """Incremental bytes -> lines decoder.

    Both ``\\n`` and ``\\r\\n`` terminate a line. Whatever follows the last
    terminator is buffered until the next ``feed()`` or ``flush()``.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return the residual partial line once the transport is exhausted."""
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        rest = rest.rstrip("\r")
        return [rest] if rest else []


def decode_payload(payload: str) -> str:
    """Extract ``choices[0].delta.content`` from one JSON frame.

    Raises DecodeError if the payload is not JSON or has an unexpected shape.
    Returns "" when the delta carries no content.
    """
    try:
        chunk = _Chunk.model_validate(json.loads(payload))
        if not chunk.choices:
            raise DecodeError("frame has no choices")
        choice = _Choice.model_validate(chunk.choices[0])
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise DecodeError(f"malformed frame: {e}") from e
    return choice.delta.content or ""


def classify_line(line: str) -> Frame | None:
    """Classify one decoded line. Returns None for non-``data:`` lines."""
    stripped = line.strip()
    if not stripped.startswith(DATA_PREFIX):
        return None

    payload = stripped[len(DATA_PREFIX) :].strip()
    if payload == DONE_SENTINEL:
        return DoneFrame()

    try:
        text = decode_payload(payload)
    except DecodeError as e:
        logger.debug(f"Skipping frame: {e}")
        return SkippableFrame(str(e))

    if not text:
        return SkippableFrame("empty delta")
    return ValidFrame(text)
