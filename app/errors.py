"""Domain exceptions and their FastAPI error handlers."""

from fastapi import FastAPI, Request, status
from starlette.responses import JSONResponse

from app.logging import get_logger

logger = get_logger(__name__)


class ApplicationError(Exception):
    """Base error carrying a machine-readable code and optional details."""

    code: str | None = None

    def __init__(self, message: str, code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}


class WebflowAPIError(ApplicationError):
    code = "WEBFLOW_API_ERROR"

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code
        self.response_body = response_body


class FreshbooksError(ApplicationError):
    code = "FRESHBOOKS_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict | str | None = None,
    ):
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code
        self.response_body = response_body


class FreshbooksTokenExpiredError(FreshbooksError):
    """Refresh token rejected; an operator has to re-authorize the app."""

    code = "FRESHBOOKS_TOKEN_EXPIRED"

    def __init__(self, message: str = "FreshBooks authorization expired", reauth_url: str | None = None):
        super().__init__(message, status_code=401)
        self.reauth_url = reauth_url
        self.details["reauth_url"] = reauth_url


class InvoiceActionError(ApplicationError):
    code = "INVOICE_ACTION_ERROR"


class WorkSessionError(ApplicationError):
    code = "WORK_SESSION_ERROR"


class FreshbooksCallbackError(ApplicationError):
    code = "FRESHBOOKS_CALLBACK_ERROR"


class WebflowPublishError(ApplicationError):
    code = "WEBFLOW_PUBLISH_ERROR"


_STATUS_BY_ERROR: list[tuple[type[ApplicationError], int]] = [
    (InvoiceActionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (WorkSessionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (FreshbooksCallbackError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (WebflowPublishError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (FreshbooksError, status.HTTP_502_BAD_GATEWAY),
    (WebflowAPIError, status.HTTP_502_BAD_GATEWAY),
]


def _status_for(exc: ApplicationError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def _application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.warning(
            "upstream_error path=%s code=%s error=%s",
            request.url.path,
            exc.code,
            exc.message,
        )
    content = {"detail": exc.message, "code": exc.code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApplicationError, _application_error_handler)
