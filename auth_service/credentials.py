import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from shared.errors import Conflict, Unauthorized
from .crud import create_user, get_user, get_user_by_handle
from .security import JWTError, create_token, decode_token, hash_password, verify_password

logger = logging.getLogger("auth-service")

INVALID_CREDENTIALS = "Invalid handle or password"
INVALID_TOKEN = "Invalid or expired token"


class CredentialStore:
    """
    Registers users, checks passwords and issues/validates bearer tokens.

    Login failures use one message for unknown handles and wrong passwords,
    and both paths run a bcrypt check so response time does not tell them apart.
    """

    def __init__(self, SessionLocal: sessionmaker, secret: str, algorithm: str = "HS256", expires_minutes: int = 480):
        self._SessionLocal = SessionLocal
        self._secret = secret
        self._algorithm = algorithm
        self._expires_minutes = expires_minutes

    def register(self, handle: str, password: str) -> int:
        with self._SessionLocal() as db:
            if get_user_by_handle(db, handle):
                raise Conflict("Handle already taken")
            try:
                user = create_user(db, handle, hash_password(password))
            except IntegrityError:
                # lost a race with another registration for the same handle
                db.rollback()
                raise Conflict("Handle already taken")
        logger.info("Registered user id=%s", user.id)
        return user.id

    def login(self, handle: str, password: str) -> str:
        with self._SessionLocal() as db:
            user = get_user_by_handle(db, handle)
        ok = verify_password(password, user.password_hash if user else None)
        if not ok or user is None:
            raise Unauthorized(INVALID_CREDENTIALS)
        return create_token(user.id, self._secret, self._algorithm, self._expires_minutes)

    def authenticate(self, token: str | None) -> int:
        if not token:
            raise Unauthorized("Missing token")
        try:
            claims = decode_token(token, self._secret, self._algorithm)
            user_id = int(claims["sub"])
        except (JWTError, KeyError, TypeError, ValueError):
            raise Unauthorized(INVALID_TOKEN)

        with self._SessionLocal() as db:
            if get_user(db, user_id) is None:
                raise Unauthorized(INVALID_TOKEN)
        return user_id
