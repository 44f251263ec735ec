"""Structured side-channel messages embedded in runner output.

A cooperating reporter can write results between markers instead of
relying on stdout parsing::

    @@JTR_START::<session>::<type>::<byte-length>::<json>@@JTR_END::<session>::<type>

The session id ties a message to one run, so stale output from an earlier
run in the same terminal is ignored.  The byte length is the UTF-8 length
of the JSON payload.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from tally.models.result import RunSummary
from tally.normalizers.json_output import is_result_document

logger = logging.getLogger(__name__)

START = "@@JTR_START::"
END = "@@JTR_END::"

_START_BYTES = START.encode("utf-8")
_HEADER_RE = re.compile(rb"([^:\s]+)::([^:\s]+)::(\d{1,12})::")
# What a header cut off by the end of the buffer can look like.
_PARTIAL_HEADER_RE = re.compile(rb"[^:\s]*(?:::[^:\s]*(?:::\d{0,12}:?)?)?")

RESULTS_MESSAGE = "results"


@dataclass(frozen=True)
class StructuredMessage:
    """One decoded side-channel message."""

    session_id: str
    type: str
    payload: Any
    start: int
    """Byte offset of the start marker in the UTF-8 encoded buffer."""
    end: int
    """Byte offset just past the end marker."""


def build_marker(session_id: str, message_type: str, payload: object) -> str:
    """Serialize *payload* as a marker-delimited message."""
    body = json.dumps(payload, ensure_ascii=False)
    length = len(body.encode("utf-8"))
    return f"{START}{session_id}::{message_type}::{length}::{body}{END}{session_id}::{message_type}"


def extract_structured_messages(
    buffer: str,
    session_id: str | None = None,
) -> tuple[list[StructuredMessage], str]:
    """Decode every complete message in *buffer*.

    Args:
        buffer: Runner output, possibly still growing.
        session_id: Only accept messages for this session when given.

    Returns:
        The decoded messages and the remainder of *buffer* after the last
        consumed message.  A message cut off at the end of the buffer stays
        in the remainder so the caller can retry once more output arrives.
    """
    data = buffer.encode("utf-8")
    messages: list[StructuredMessage] = []
    cursor = 0

    while True:
        start = data.find(_START_BYTES, cursor)
        if start == -1:
            break

        header_start = start + len(_START_BYTES)
        header = _HEADER_RE.match(data, header_start)
        if header is None:
            if _PARTIAL_HEADER_RE.fullmatch(data, header_start):
                break
            cursor = start + 1
            continue

        session, message_type, length = (
            header.group(1).decode("utf-8", errors="replace"),
            header.group(2).decode("utf-8", errors="replace"),
            int(header.group(3)),
        )
        payload_start = header.end()
        payload_end = payload_start + length
        end_marker = f"{END}{session}::{message_type}".encode()
        if payload_end + len(end_marker) > len(data):
            break
        if not data.startswith(end_marker, payload_end):
            cursor = start + 1
            continue
        if session_id is not None and session != session_id:
            cursor = payload_end + len(end_marker)
            continue

        try:
            payload = json.loads(data[payload_start:payload_end].decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            logger.debug("Skipping structured %r message with bad payload: %s", message_type, exc)
            cursor = start + 1
            continue

        end = payload_end + len(end_marker)
        messages.append(
            StructuredMessage(
                session_id=session,
                type=message_type,
                payload=payload,
                start=start,
                end=end,
            )
        )
        cursor = end

    return messages, data[cursor:].decode("utf-8", errors="replace")


def parse_structured_results(output: str, session_id: str | None = None) -> RunSummary | None:
    """Return the run summary carried by the first valid ``results`` message."""
    messages, _ = extract_structured_messages(output, session_id)
    for message in messages:
        if message.type != RESULTS_MESSAGE:
            continue
        if is_result_document(message.payload):
            return RunSummary.from_dict(message.payload)
        logger.debug("Structured results message has no testResults array")
    return None
