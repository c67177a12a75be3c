from fastapi import APIRouter, status

from .credentials import CredentialStore
from .schemas import LoginIn, RegisterIn, RegisterOut, TokenOut


def build_router(credentials: CredentialStore) -> APIRouter:
    router = APIRouter()

    @router.post("/register", response_model=RegisterOut, status_code=status.HTTP_201_CREATED)
    def register(payload: RegisterIn):
        uid = credentials.register(payload.handle, payload.password)
        return RegisterOut(user_id=uid)

    @router.post("/login", response_model=TokenOut)
    def login(payload: LoginIn):
        return TokenOut(token=credentials.login(payload.handle, payload.password))

    return router
