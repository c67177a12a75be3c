from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from auth_service.routes import build_router as build_auth_router
from chat_service.orchestrator import TurnFailed
from chat_service.routes import build_router as build_chat_router
from chat_service.schemas import MessageOut, TurnFailedOut
from shared.config import Settings
from shared.database import init_db
from shared.errors import ServiceError
from .context import AppContext
from .middleware import build_auth_middleware

logger = logging.getLogger("api-gateway")

SERVICE_NAME = "chat-backend"


async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "kind": exc.kind})


async def turn_failed_handler(request: Request, exc: TurnFailed):
    body = TurnFailedOut(
        detail=exc.detail,
        kind=exc.kind,
        user_message=MessageOut.from_row(exc.user_message),
        assistant_message=MessageOut.from_row(exc.assistant_message),
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json", by_alias=True))


def create_app(ctx: Optional[AppContext] = None) -> FastAPI:
    ctx = ctx or AppContext.from_settings(Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(ctx.engine)
        logger.info("Database ready at %s", ctx.engine.url.render_as_string(hide_password=True))
        yield
        await ctx.orchestrator.drain()
        ctx.engine.dispose()

    app = FastAPI(title="Chat Backend", version="1.0.0", lifespan=lifespan)
    app.state.ctx = ctx

    # added first so CORS (added last) is the outermost layer and also decorates 401s
    app.middleware("http")(build_auth_middleware(ctx.credentials))

    origins = list(ctx.settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject "*" with credentials
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Accept", "Content-Type"],
    )
    app.add_exception_handler(TurnFailed, turn_failed_handler)
    app.add_exception_handler(ServiceError, service_error_handler)

    @app.get("/api/health", operation_id="health_check", tags=["Health"])
    async def health_check():
        return {"status": "healthy", "service": SERVICE_NAME}

    app.include_router(build_auth_router(ctx.credentials), prefix="/api/auth", tags=["Authentication"])
    app.include_router(build_chat_router(ctx.SessionLocal, ctx.orchestrator), prefix="/api/chat", tags=["Chat"])
    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="[%(asctime)s] %(levelname)s %(name)s - %(message)s")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(create_app(AppContext.from_settings(settings)), host=os.getenv("HOST", "127.0.0.1"), port=port)
