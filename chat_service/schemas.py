from datetime import datetime

from pydantic import BaseModel

from shared.schemas import CamelModel


class SendMessageIn(BaseModel):
    # length is checked against MAX_MESSAGE_CHARS by the orchestrator (400)
    content: str


class ConversationCreatedOut(CamelModel):
    conversation_id: int


class ConversationSummaryOut(CamelModel):
    conversation_id: int
    created_at: datetime


class MessageOut(CamelModel):
    seq: int
    role: str
    content: str | None
    status: str
    error: str | None = None
    created_at: datetime

    @classmethod
    def from_row(cls, m) -> "MessageOut":
        return cls(
            seq=m.seq,
            role=m.role,
            content=m.content,
            status=m.status,
            error=m.error_kind,
            created_at=m.created_at,
        )


class TurnOut(CamelModel):
    user_message: MessageOut
    assistant_message: MessageOut


class TurnFailedOut(TurnOut):
    detail: str
    kind: str
