"""Progress payloads carried by ``event: progress`` blocks.

The progress channel is advisory: payloads that fail validation are
dropped by :func:`parse_progress` rather than raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class _ProgressBase(BaseModel):
    timestamp: float
    agent: str | None = None
    specialist_name: str | None = None
    domain_key: str | None = None
    domain_display_name: str | None = None


class AgentStageProgress(_ProgressBase):
    type: Literal["agent_stage"]
    stage: Literal["started", "terminal"]
    action: str | None = None


class ToolStartProgress(_ProgressBase):
    type: Literal["tool_start"]
    tool_name: str


class ToolEndProgress(_ProgressBase):
    type: Literal["tool_end"]
    tool_name: str
    status: Literal["done"] = "done"


ProgressPayload = Annotated[
    Union[AgentStageProgress, ToolStartProgress, ToolEndProgress],
    Field(discriminator="type"),
]

_progress_adapter: TypeAdapter[ProgressPayload] = TypeAdapter(ProgressPayload)


def parse_progress(data: Any) -> ProgressPayload | None:
    """Validate decoded JSON as a progress payload, or return ``None``."""
    try:
        return _progress_adapter.validate_python(data)
    except ValidationError as e:
        logger.debug(f"Rejected progress payload: {e.error_count()} error(s)")
        return None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class AgentMetadata:
    """Advisory labels attached to a progress event.

    Blank strings are normalised to ``None`` so they never overwrite a
    label that was supplied earlier.
    """

    specialist_name: str | None = None
    domain_key: str | None = None
    domain_display_name: str | None = None

    @classmethod
    def from_payload(cls, payload: _ProgressBase) -> AgentMetadata:
        return cls(
            specialist_name=_clean(payload.specialist_name),
            domain_key=_clean(payload.domain_key),
            domain_display_name=_clean(payload.domain_display_name),
        )
