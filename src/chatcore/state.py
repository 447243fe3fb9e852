from typing import Literal

from pydantic import BaseModel, Field

FALLBACK_AGENT_LABEL = "Thinking"
FALLBACK_AGENT_NAME = "Orchestrator"


class ToolCallRecord(BaseModel):
    tool_name: str
    status: Literal["running", "done"] = "running"
    started_at: float
    finished_at: float | None = None


class AgentSection(BaseModel):
    """A contiguous run of one agent within a single assistant turn."""

    agent_name: str
    specialist_name: str | None = None
    domain_key: str | None = None
    domain_display_name: str | None = None
    started_at: float
    ended_at: float | None = None
    tools: list[ToolCallRecord] = Field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class AssistantProgressState(BaseModel):
    """Progress of one assistant turn.

    ``history`` holds one :class:`AgentSection` per contiguous agent run,
    in the order the agents started.  ``is_tools_loading`` is kept equal
    to "some tool anywhere in history is running".
    """

    agent_label: str | None = FALLBACK_AGENT_LABEL
    is_agent_loading: bool = False
    is_tools_loading: bool = False
    history: list[AgentSection] = Field(default_factory=list)

    @property
    def current_section(self) -> AgentSection | None:
        if self.history and self.history[-1].is_open:
            return self.history[-1]
        return None

    def has_running_tools(self) -> bool:
        return any(
            tool.status == "running"
            for section in self.history
            for tool in section.tools
        )
