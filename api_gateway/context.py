from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from auth_service.credentials import CredentialStore
from chat_service.gateway import CompletionGateway, OpenAIGateway, get_or_client
from chat_service.orchestrator import ConversationOrchestrator
from shared.config import Settings
from shared.database import make_engine, make_session_factory


@dataclass(frozen=True)
class AppContext:
    """Everything the routers need, built once and handed to them explicitly."""

    settings: Settings
    engine: Engine
    SessionLocal: sessionmaker
    gateway: CompletionGateway
    credentials: CredentialStore
    orchestrator: ConversationOrchestrator

    @classmethod
    def from_settings(cls, settings: Settings, gateway: CompletionGateway | None = None) -> "AppContext":
        engine = make_engine(settings.database_url)
        SessionLocal = make_session_factory(engine)

        if gateway is None:
            client = get_or_client(
                settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.completion_timeout_seconds,
            )
            gateway = OpenAIGateway(
                client,
                model=settings.openai_model,
                timeout=settings.completion_timeout_seconds,
                system_prompt=settings.system_prompt,
            )

        credentials = CredentialStore(
            SessionLocal,
            secret=settings.secret_key,
            algorithm=settings.jwt_algorithm,
            expires_minutes=settings.access_token_expire_minutes,
        )
        orchestrator = ConversationOrchestrator(
            SessionLocal,
            gateway,
            history_window=settings.history_window,
            max_message_chars=settings.max_message_chars,
            turn_wait_seconds=settings.turn_wait_seconds,
        )
        return cls(
            settings=settings,
            engine=engine,
            SessionLocal=SessionLocal,
            gateway=gateway,
            credentials=credentials,
            orchestrator=orchestrator,
        )
