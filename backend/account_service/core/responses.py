"""Response envelope models.

Consistent response format for all endpoints: successes use a
``{"data": ...}`` envelope, errors use ``{"error": {...}}``.
"""

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for single resources.

    Usage:
        @router.post("/registro")
        async def register(...) -> DataResponse[FlashMessage]:
            ...
            return DataResponse(data=FlashMessage(...))
    """

    data: T


class FlashMessage(BaseModel):
    """User-facing outcome of a form action.

    Attributes:
        level: Severity used by the client to style the message.
        message: Human-readable message.
        redirect_to: Path the client should navigate to next.
    """

    level: Literal["success", "warning", "danger"]
    message: str
    redirect_to: str


class FormPage(BaseModel):
    """Data a client needs to render one of the account forms.

    Attributes:
        form: CSRF context of the form (e.g., "forgot_password").
        csrf_token: Token to echo back in the ``_csrf_token`` field.
        token: Account token carried in the URL (reset form only).
    """

    form: str
    csrf_token: str
    token: str | None = None


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        details: Optional list of field-level errors or a redirect hint.
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(code=exc.code, message=exc.message)
            ).model_dump(),
        )
    """

    error: ErrorDetail
