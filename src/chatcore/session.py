from pydantic import BaseModel, Field

from chatcore.message import ChatMessage, Message


class Session(BaseModel):
    session_id: str
    transcript: list[ChatMessage] = Field(default_factory=list)

    def find(self, message_id: str) -> ChatMessage | None:
        for message in self.transcript:
            if message.id == message_id:
                return message
        return None

    def remove(self, message_id: str) -> None:
        self.transcript = [m for m in self.transcript if m.id != message_id]

    def request_messages(self) -> list[Message]:
        """The transcript as sent upstream; blank messages are skipped."""
        return [
            m.to_request()
            for m in self.transcript
            if m.content.strip()
        ]
