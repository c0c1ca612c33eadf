"""Application error type shared by HTTP routes and the signaling relay."""

from enum import Enum, IntEnum
from uuid import uuid4

from app.shared.api.utils import caller_info


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_PARAMS = "E_INVALID_PARAMS"

    # Signaling relay
    E_MALFORMED_MESSAGE = "E_MALFORMED_MESSAGE"
    E_ROLE_MISMATCH = "E_ROLE_MISMATCH"
    E_ROLE_ALREADY_ASSIGNED = "E_ROLE_ALREADY_ASSIGNED"

    def __str__(self) -> str:
        return self.value


class HttpStatusCode(IntEnum):
    BAD_REQUEST = 400
    CONFLICT = 409
    INTERNAL_SERVER_ERROR = 500


class AppError(Exception):
    """Error carrying an API error code, a message and the raising call site.

    Raised by domain code; converted to an `ApiFailure` envelope by the HTTP
    exception handler or to an `error` frame by the signaling endpoint.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.BAD_REQUEST,
    ):
        super().__init__(errmesg)
        self.errcode = str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]
        self.caller_info = caller_info()

    def __repr__(self) -> str:
        return f"AppError(errcode={self.errcode!r}, errmesg={self.errmesg!r})"
