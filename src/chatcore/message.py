import random
import string
import time
from enum import Enum

from pydantic import BaseModel, Field, field_serializer


class MessageRole(Enum):
    ASSISTANT = "assistant"
    USER = "user"


class MessageStatus(Enum):
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"


def _now_ms() -> int:
    return int(time.time() * 1000)


def create_message_id(prefix: str) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"{prefix}-{_now_ms()}-{suffix}"


class Message(BaseModel):
    """A request message as sent to the chat completions endpoint."""

    role: MessageRole
    content: str

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class ChatMessage(Message):
    """A transcript entry. Assistant content grows while the turn streams."""

    id: str = ""
    created_at: int = Field(default_factory=_now_ms)
    status: MessageStatus = MessageStatus.DONE

    def model_post_init(self, __context) -> None:
        if not self.id:
            self.id = create_message_id(self.role.value)

    @field_serializer('status')
    def serialize_status(self, status: MessageStatus, _info) -> str:
        return status.value

    def to_request(self) -> Message:
        return Message(role=self.role, content=self.content)
