import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from auth_service.credentials import CredentialStore
from shared.errors import Unauthorized

logger = logging.getLogger("api-gateway")

# Public paths that don't require auth
PUBLIC_PATHS = {
    "/api/health",
    "/docs",
    "/openapi.json",
}

# Public prefixes (auth endpoints)
PUBLIC_PREFIXES = (
    "/api/auth/register",
    "/api/auth/login",
)


def _is_public_path(path: str) -> bool:
    if path in PUBLIC_PATHS:
        return True
    return any(path.startswith(p) for p in PUBLIC_PREFIXES)


def build_auth_middleware(credentials: CredentialStore):
    async def auth_middleware(request: Request, call_next):
        # Let CORS preflight pass through (no auth here)
        if request.method == "OPTIONS" or _is_public_path(request.url.path):
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.lower().startswith("bearer "):
            return JSONResponse(
                status_code=401,
                content={"detail": "Missing or invalid authorization header", "kind": Unauthorized.kind},
            )

        token = auth_header.split(" ", 1)[1].strip()
        try:
            uid = await run_in_threadpool(credentials.authenticate, token)
        except Unauthorized as e:
            logger.info("Rejected token on %s %s: %s", request.method, request.url.path, e.detail)
            return JSONResponse(status_code=e.status_code, content={"detail": e.detail, "kind": e.kind})

        request.state.user = {"sub": str(uid)}
        return await call_next(request)

    return auth_middleware
