from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.errors import Conflict, Forbidden, NotFound
from .models import ChatMessage, Conversation, STATUS_COMMITTED


def create_conversation(db: Session, user_id: int) -> Conversation:
    c = Conversation(user_id=user_id)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


def list_conversations(db: Session, user_id: int) -> list[Conversation]:
    return (
        db.query(Conversation)
        .filter(Conversation.user_id == user_id)
        .order_by(Conversation.created_at.desc(), Conversation.id.desc())
        .all()
    )


def get_conversation(db: Session, user_id: int, conversation_id: int) -> Conversation:
    c = db.get(Conversation, conversation_id)
    if c is None:
        raise NotFound("Conversation not found")
    if c.user_id != user_id:
        raise Forbidden("Conversation belongs to another user")
    return c


def get_messages(db: Session, user_id: int, conversation_id: int) -> list[ChatMessage]:
    get_conversation(db, user_id, conversation_id)
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_id == conversation_id)
        .order_by(ChatMessage.seq.asc())
        .all()
    )


def recent_history(db: Session, conversation_id: int, limit: int = 20) -> list[ChatMessage]:
    """Last ``limit`` messages of a conversation, oldest first."""
    rows = (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_id == conversation_id)
        .order_by(ChatMessage.seq.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def append_message(
    db: Session,
    conversation_id: int,
    role: str,
    content: str | None,
    status: str = STATUS_COMMITTED,
    error_kind: str | None = None,
) -> ChatMessage:
    """
    Append a message at the next sequence number and commit it.

    The number is read and written in one transaction. If another writer
    committed the same number first, the unique constraint rejects this row
    and ``Conflict`` is raised; nothing is written in that case.
    """
    last = db.scalar(
        select(func.coalesce(func.max(ChatMessage.seq), 0)).where(ChatMessage.conversation_id == conversation_id)
    )
    m = ChatMessage(
        conversation_id=conversation_id,
        seq=int(last or 0) + 1,
        role=role,
        content=content,
        status=status,
        error_kind=error_kind,
    )
    db.add(m)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Another message was appended to this conversation concurrently")
    db.refresh(m)
    return m
