"""
Turn state machine for a single send-message request.

    Received -> UserAppended -> AwaitingCompletion -> Completed | Failed

Validation and ownership failures happen in Received, before anything is
written. From UserAppended on, the user's message is durable and the turn
always ends with exactly one assistant row, committed or failed, so sequence
numbers stay gap-free.

Turns on the same conversation are serialized by ``TurnLocks``. Turns on
different conversations never share a lock.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from sqlalchemy.orm import sessionmaker
from starlette.concurrency import run_in_threadpool

from shared.errors import BadRequest, Conflict, GatewayError, GatewayErrorKind
from .crud import append_message, get_conversation, recent_history
from .gateway import CompletionGateway
from .models import ROLE_ASSISTANT, ROLE_USER, STATUS_COMMITTED, STATUS_FAILED, ChatMessage

logger = logging.getLogger("chat-service")


@dataclass(frozen=True)
class TurnResult:
    user_message: ChatMessage
    assistant_message: ChatMessage


class TurnFailed(GatewayError):
    """A turn that reached Failed. Both rows are already stored."""

    def __init__(self, error: GatewayError, user_message: ChatMessage, assistant_message: ChatMessage):
        super().__init__(error.gateway_kind, error.detail)
        self.user_message = user_message
        self.assistant_message = assistant_message


class TurnLocks:
    """One ``asyncio.Lock`` per conversation id, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, conversation_id: int) -> bool:
        lock = self._locks.get(conversation_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, conversation_id: int, wait: float | None = None) -> AsyncIterator[None]:
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._users[conversation_id] = self._users.get(conversation_id, 0) + 1
        try:
            if wait:
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=wait)
                except asyncio.TimeoutError:
                    raise Conflict("Another message is still being answered in this conversation")
            else:
                await lock.acquire()
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[conversation_id] -= 1
            if self._users[conversation_id] == 0:
                del self._users[conversation_id]
                del self._locks[conversation_id]


class ConversationOrchestrator:
    def __init__(
        self,
        SessionLocal: sessionmaker,
        gateway: CompletionGateway,
        history_window: int = 20,
        max_message_chars: int = 4000,
        turn_wait_seconds: float = 0.0,
        locks: TurnLocks | None = None,
    ):
        self._SessionLocal = SessionLocal
        self._gateway = gateway
        self._history_window = max(1, history_window)
        self._max_message_chars = max_message_chars
        self._turn_wait = turn_wait_seconds
        self.locks = locks or TurnLocks()
        self._running: set[asyncio.Task] = set()

    async def send_message(self, user_id: int, conversation_id: int, content: str) -> TurnResult:
        """
        Run one turn and return both stored messages.

        Raises ``BadRequest``, ``NotFound`` or ``Forbidden`` before any write,
        ``Conflict`` if the conversation stays busy past ``turn_wait_seconds``,
        and ``TurnFailed`` when the provider fails after the user message was stored.

        The turn runs in its own task. Cancelling the caller (client went away)
        does not stop it; the conversation still reaches a terminal state.
        """
        text = (content or "").strip()
        if not text:
            raise BadRequest("Message content must not be empty")
        if len(text) > self._max_message_chars:
            raise BadRequest(f"Message content exceeds {self._max_message_chars} characters")

        await run_in_threadpool(self._check_owner, user_id, conversation_id)

        task = asyncio.create_task(self._run_turn(conversation_id, text))
        self._running.add(task)
        task.add_done_callback(self._turn_done)
        return await asyncio.shield(task)

    def _turn_done(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if not task.cancelled():
            # marks the outcome as retrieved when the caller is gone
            task.exception()

    async def drain(self) -> None:
        """Wait for turns whose callers have gone away."""
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    # Blocking store access, always called through run_in_threadpool.

    def _check_owner(self, user_id: int, conversation_id: int) -> None:
        with self._SessionLocal() as db:
            get_conversation(db, user_id, conversation_id)

    def _append_user(self, conversation_id: int, text: str) -> tuple[ChatMessage, list[ChatMessage]]:
        with self._SessionLocal() as db:
            user_msg = append_message(db, conversation_id, ROLE_USER, text)
            history = recent_history(db, conversation_id, limit=self._history_window)
        return user_msg, history

    def _append_assistant(
        self, conversation_id: int, content: str | None, status: str, error_kind: str | None = None
    ) -> ChatMessage:
        with self._SessionLocal() as db:
            return append_message(db, conversation_id, ROLE_ASSISTANT, content, status, error_kind=error_kind)

    async def _run_turn(self, conversation_id: int, text: str) -> TurnResult:
        async with self.locks.hold(conversation_id, wait=self._turn_wait):
            user_msg, history = await run_in_threadpool(self._append_user, conversation_id, text)
            logger.info("Turn started conversation=%s seq=%s history=%s", conversation_id, user_msg.seq, len(history))

            try:
                reply = await self._gateway.complete(history)
            except GatewayError as e:
                error = e
            except Exception:
                logger.exception("Completion gateway raised unexpectedly conversation=%s", conversation_id)
                error = GatewayError(GatewayErrorKind.UNAVAILABLE, "Completion provider failed unexpectedly")
            else:
                try:
                    assistant_msg = await run_in_threadpool(
                        self._append_assistant, conversation_id, reply, STATUS_COMMITTED
                    )
                except Exception:
                    logger.exception("Could not store reply conversation=%s", conversation_id)
                    await self._record_failed_reply(conversation_id, GatewayErrorKind.UNAVAILABLE.value)
                    raise
                logger.info("Turn completed conversation=%s seq=%s", conversation_id, assistant_msg.seq)
                return TurnResult(user_msg, assistant_msg)

            failed_msg = await run_in_threadpool(
                self._append_assistant, conversation_id, None, STATUS_FAILED, error.kind
            )
            logger.warning(
                "Turn failed conversation=%s seq=%s kind=%s", conversation_id, failed_msg.seq, error.kind
            )
            raise TurnFailed(error, user_msg, failed_msg)

    async def _record_failed_reply(self, conversation_id: int, error_kind: str) -> None:
        """One attempt at closing the turn with a failed row after the reply could not be stored."""
        try:
            await run_in_threadpool(self._append_assistant, conversation_id, None, STATUS_FAILED, error_kind)
        except Exception:
            logger.exception("Could not record failed turn conversation=%s", conversation_id)
