"""Reconstructs per-turn agent and tool history from progress events.

The functions in this module are pure reducers: each takes an
:class:`~chatcore.state.AssistantProgressState` and returns a new one,
leaving its input untouched.  :class:`ProgressCorrelator` keeps one state
per assistant turn and routes payloads to the reducers.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Literal, Union

from chatcore.progress import (
    AgentMetadata,
    AgentStageProgress,
    ProgressPayload,
    ToolEndProgress,
    ToolStartProgress,
)
from chatcore.state import (
    FALLBACK_AGENT_LABEL,
    FALLBACK_AGENT_NAME,
    AgentSection,
    AssistantProgressState,
    ToolCallRecord,
)

logger = logging.getLogger(__name__)

_NO_METADATA = AgentMetadata()


@dataclass(frozen=True)
class TokenAppended:
    """A content token arrived for the turn."""

    text: str = ""


@dataclass(frozen=True)
class TurnFinalized:
    """The turn ended (completion, error or cancellation)."""

    timestamp: float


Action = Union[AgentStageProgress, ToolStartProgress, ToolEndProgress, TokenAppended, TurnFinalized]


def empty_state(is_agent_loading: bool = False) -> AssistantProgressState:
    return AssistantProgressState(
        agent_label=FALLBACK_AGENT_LABEL,
        is_agent_loading=is_agent_loading,
    )


def _agent_name(agent: str | None) -> str:
    name = (agent or "").strip()
    return name or FALLBACK_AGENT_NAME


def _apply_labels(section: AgentSection, metadata: AgentMetadata) -> None:
    if metadata.specialist_name is not None:
        section.specialist_name = metadata.specialist_name
    if metadata.domain_key is not None:
        section.domain_key = metadata.domain_key
    if metadata.domain_display_name is not None:
        section.domain_display_name = metadata.domain_display_name


def on_agent_stage(
    state: AssistantProgressState,
    agent: str | None,
    timestamp: float,
    stage: Literal["started", "terminal"],
    metadata: AgentMetadata = _NO_METADATA,
) -> AssistantProgressState:
    """Apply an ``agent_stage`` event.

    ``started`` for the agent that already owns the last section only
    refreshes labels; for any other agent it closes the open section and
    opens a new one.  ``terminal`` never closes a section.
    """
    name = _agent_name(agent)
    new = state.model_copy(deep=True)
    new.agent_label = metadata.specialist_name or name
    last = new.history[-1] if new.history else None

    if stage == "terminal":
        if last is not None and last.agent_name == name:
            _apply_labels(last, metadata)
        new.is_agent_loading = False
        return new

    new.is_agent_loading = True
    if last is not None and last.agent_name == name:
        _apply_labels(last, metadata)
        return new

    if last is not None and last.ended_at is None:
        last.ended_at = timestamp
    new.history.append(AgentSection(
        agent_name=name,
        specialist_name=metadata.specialist_name,
        domain_key=metadata.domain_key,
        domain_display_name=metadata.domain_display_name,
        started_at=timestamp,
    ))
    return new


def on_tool_event(
    state: AssistantProgressState,
    tool_name: str,
    status: Literal["running", "done"],
    timestamp: float,
    metadata: AgentMetadata = _NO_METADATA,
) -> AssistantProgressState:
    """Apply a ``tool_start`` (``running``) or ``tool_end`` (``done``) event."""
    new = state.model_copy(deep=True)

    if not new.history:
        # Tool events can race ahead of the first agent_stage.
        new.history.append(AgentSection(
            agent_name=_agent_name(new.agent_label),
            specialist_name=metadata.specialist_name,
            domain_key=metadata.domain_key,
            domain_display_name=metadata.domain_display_name,
            started_at=timestamp,
        ))

    if status == "running":
        section = new.history[-1]
        already_running = any(
            tool.tool_name == tool_name and tool.status == "running"
            for tool in section.tools
        )
        if not already_running:
            section.tools.append(ToolCallRecord(
                tool_name=tool_name, status="running", started_at=timestamp,
            ))
    else:
        record = _latest_running(new, tool_name)
        if record is None:
            logger.debug(f"tool_end for {tool_name} has no running start")
        else:
            record.status = "done"
            record.finished_at = timestamp

    new.is_tools_loading = new.has_running_tools()
    return new


def _latest_running(state: AssistantProgressState, tool_name: str) -> ToolCallRecord | None:
    for section in reversed(state.history):
        for tool in reversed(section.tools):
            if tool.tool_name == tool_name and tool.status == "running":
                return tool
    return None


def finalize(state: AssistantProgressState, timestamp: float) -> AssistantProgressState:
    """Close every open section and running tool at *timestamp*."""
    new = state.model_copy(deep=True)
    for section in new.history:
        if section.ended_at is None:
            section.ended_at = timestamp
        for tool in section.tools:
            if tool.status == "running":
                tool.status = "done"
                tool.finished_at = timestamp
    new.is_agent_loading = False
    new.is_tools_loading = False
    return new


def reduce(state: AssistantProgressState, action: Action) -> AssistantProgressState:
    """Single entry point: ``(state, action) -> state``."""
    if isinstance(action, AgentStageProgress):
        return on_agent_stage(
            state, action.agent, action.timestamp, action.stage,
            AgentMetadata.from_payload(action),
        )
    if isinstance(action, ToolStartProgress):
        return on_tool_event(
            state, action.tool_name, "running", action.timestamp,
            AgentMetadata.from_payload(action),
        )
    if isinstance(action, ToolEndProgress):
        return on_tool_event(
            state, action.tool_name, "done", action.timestamp,
            AgentMetadata.from_payload(action),
        )
    if isinstance(action, TurnFinalized):
        return finalize(state, action.timestamp)
    # Content never changes the progress history.
    return state


class ProgressCorrelator:
    """Holds the progress state of every assistant turn in a session.

    Only the current turn accepts progress payloads; events addressed to
    an older turn are discarded.  Each turn is finalized at most once.
    """

    def __init__(self) -> None:
        self._states: dict[str, AssistantProgressState] = {}
        self._finalized: set[str] = set()
        self.current_turn_id: str | None = None

    def begin_turn(self, turn_id: str) -> AssistantProgressState:
        state = empty_state(is_agent_loading=True)
        self._states[turn_id] = state
        self._finalized.discard(turn_id)
        self.current_turn_id = turn_id
        return state

    def get(self, turn_id: str) -> AssistantProgressState | None:
        return self._states.get(turn_id)

    @property
    def states(self) -> dict[str, AssistantProgressState]:
        return dict(self._states)

    def apply(self, turn_id: str, action: ProgressPayload | TokenAppended) -> bool:
        """Reduce *action* into the state of *turn_id*.

        Returns ``False`` when the turn is not the current one (or was
        already finalized) and the action was discarded.
        """
        if turn_id != self.current_turn_id or turn_id in self._finalized:
            logger.debug(f"Discarding progress for stale turn {turn_id}")
            return False
        state = self._states.get(turn_id) or empty_state(is_agent_loading=True)
        self._states[turn_id] = reduce(state, action)
        return True

    def finalize(self, turn_id: str, timestamp: float | None = None) -> AssistantProgressState | None:
        """Freeze the state of *turn_id*. Later calls are no-ops."""
        state = self._states.get(turn_id)
        if state is None or turn_id in self._finalized:
            return state
        if timestamp is None:
            timestamp = int(time.time())
        state = reduce(state, TurnFinalized(timestamp=timestamp))
        self._states[turn_id] = state
        self._finalized.add(turn_id)
        if self.current_turn_id == turn_id:
            self.current_turn_id = None
        return state

    def clear(self) -> None:
        self._states.clear()
        self._finalized.clear()
        self.current_turn_id = None
