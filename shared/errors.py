"""
Error taxonomy shared by every service.

Each error carries the HTTP status it maps to and a short machine-readable
``kind`` that ends up in the response body next to ``detail``.
"""
from enum import Enum


class ServiceError(Exception):
    status_code = 500
    kind = "internal"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class BadRequest(ServiceError):
    status_code = 400
    kind = "bad_request"


class Unauthorized(ServiceError):
    status_code = 401
    kind = "unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    kind = "forbidden"


class NotFound(ServiceError):
    status_code = 404
    kind = "not_found"


class Conflict(ServiceError):
    status_code = 409
    kind = "conflict"


class GatewayErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    INVALID = "invalid"
    UNAVAILABLE = "unavailable"


_GATEWAY_STATUS = {
    GatewayErrorKind.RATE_LIMITED: 429,
    GatewayErrorKind.TIMEOUT: 504,
    GatewayErrorKind.INVALID: 502,
    GatewayErrorKind.UNAVAILABLE: 503,
}


class GatewayError(ServiceError):
    """Completion provider failure. Never retried by the gateway itself."""

    def __init__(self, kind: GatewayErrorKind, detail: str = ""):
        super().__init__(detail or f"Completion provider error: {kind.value}")
        self.gateway_kind = kind
        self.kind = kind.value
        self.status_code = _GATEWAY_STATUS[kind]
