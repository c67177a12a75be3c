from pydantic import BaseModel, Field, field_validator

from shared.schemas import CamelModel

MAX_BCRYPT_BYTES = 72


class RegisterIn(BaseModel):
    handle: str = Field(min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(min_length=1, max_length=128)

    @field_validator("password")
    @classmethod
    def bcrypt_max_bytes(cls, v: str) -> str:
        if len(v.encode("utf-8")) > MAX_BCRYPT_BYTES:
            raise ValueError("Password too long (max 72 bytes for bcrypt).")
        return v


# A malformed handle on login is just another failed login (401), not a 422.
class LoginIn(BaseModel):
    handle: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=1, max_length=128)


class RegisterOut(CamelModel):
    user_id: int


class TokenOut(CamelModel):
    token: str
    token_type: str = "bearer"
