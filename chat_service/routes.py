from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session, sessionmaker

from shared.database import db_dependency
from .crud import create_conversation, get_messages, list_conversations
from .orchestrator import ConversationOrchestrator
from .schemas import ConversationCreatedOut, ConversationSummaryOut, MessageOut, SendMessageIn, TurnOut


def build_router(SessionLocal: sessionmaker, orchestrator: ConversationOrchestrator) -> APIRouter:
    router = APIRouter()
    get_db = db_dependency(SessionLocal)

    def current_user_id(request: Request) -> int:
        # set by the auth middleware
        user = getattr(request.state, "user", None)
        return int(user["sub"]) if user and "sub" in user else 0

    @router.get("/conversations", response_model=list[ConversationSummaryOut])
    def conversations(request: Request, db: Session = Depends(get_db)):
        uid = current_user_id(request)
        return [
            ConversationSummaryOut(conversation_id=c.id, created_at=c.created_at)
            for c in list_conversations(db, uid)
        ]

    @router.post("/create", response_model=ConversationCreatedOut, status_code=status.HTTP_201_CREATED)
    def create(request: Request, db: Session = Depends(get_db)):
        c = create_conversation(db, current_user_id(request))
        return ConversationCreatedOut(conversation_id=c.id)

    @router.get("/conversations/{conversation_id}", response_model=list[MessageOut])
    def messages(conversation_id: int, request: Request, db: Session = Depends(get_db)):
        msgs = get_messages(db, current_user_id(request), conversation_id)
        return [MessageOut.from_row(m) for m in msgs]

    @router.post("/conversations/{conversation_id}", response_model=TurnOut)
    async def send_message(conversation_id: int, payload: SendMessageIn, request: Request):
        turn = await orchestrator.send_message(current_user_id(request), conversation_id, payload.content)
        return TurnOut(
            user_message=MessageOut.from_row(turn.user_message),
            assistant_message=MessageOut.from_row(turn.assistant_message),
        )

    return router
