"""Server-Sent Events block grammar.

A block is zero or more ``event:`` lines and one or more ``data:`` lines,
terminated by a blank line.  :func:`parse_block` reads one block (without
its terminator); :func:`format_event` writes one.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

DEFAULT_EVENT = "message"
DONE_SENTINEL = "[DONE]"
BLOCK_SEPARATOR = "\n\n"


@dataclass
class SSEBlock:
    """One decoded event block."""

    event: str = DEFAULT_EVENT
    data: str = ""


def parse_block(block: str) -> SSEBlock:
    """Parse a single event block into its event name and joined data."""
    event = DEFAULT_EVENT
    data_parts: list[str] = []
    for line in block.split("\n"):
        if line.startswith("event:"):
            name = line[6:].strip()
            if name:
                event = name
            continue
        if line.startswith("data:"):
            data_parts.append(line[5:].lstrip())
    return SSEBlock(event=event, data="\n".join(data_parts).strip())


def format_event(data: Any, event: str | None = None) -> str:
    """Encode *data* as an SSE block.

    Strings are written verbatim (e.g. ``[DONE]``); anything else is
    serialised as JSON.
    """
    payload = data if isinstance(data, str) else json.dumps(data)
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.extend(f"data: {part}" for part in payload.split("\n"))
    return "\n".join(lines) + BLOCK_SEPARATOR
