from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppError):
    def __init__(self, message: str = "Validation failed", details: dict[str, Any] | None = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found", code: str = "NOT_FOUND"):
        super().__init__(message, code=code, status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(message, code="CONFLICT", status_code=status.HTTP_409_CONFLICT, details=details)


# Billing


class InsufficientTokensError(AppError):
    def __init__(self):
        super().__init__(
            "Insufficient tokens, purchase more to continue",
            code="INSUFFICIENT_TOKENS",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
        )


class InvalidPackError(AppError):
    def __init__(self, pack_id: str):
        super().__init__(f"Invalid token pack: {pack_id}", code="INVALID_PACK", status_code=status.HTTP_400_BAD_REQUEST)


class WebhookVerificationError(AppError):
    def __init__(self):
        super().__init__(
            "Webhook verification failed",
            code="WEBHOOK_VERIFICATION_FAILED",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


# Chat


class ConversationNotFoundError(NotFoundError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}", code="CONVERSATION_NOT_FOUND")


class StreamError(AppError):
    def __init__(self, message: str):
        super().__init__(message, code="STREAM_ERROR")


# Storyboard


class SceneNotFoundError(NotFoundError):
    def __init__(self, scene_id: str):
        super().__init__(f"Scene not found: {scene_id}", code="SCENE_NOT_FOUND")


class ImageGenerationError(AppError):
    def __init__(self, message: str):
        super().__init__(message, code="IMAGE_GENERATION_FAILED")


# Upstream APIs


class UpstreamGatewayError(AppError):
    def __init__(self, message: str, code: str = "UPSTREAM_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, status_code=status.HTTP_502_BAD_GATEWAY, details=details)


class GatewayConnectionError(UpstreamGatewayError):
    def __init__(self, message: str):
        super().__init__(f"Failed to connect to completion API: {message}", code="OPENROUTER_ERROR")


class GatewayApiError(UpstreamGatewayError):
    def __init__(self, upstream_status: int, body: str):
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(
            f"Completion API error ({upstream_status}): {body}",
            code="OPENROUTER_ERROR",
            details={"upstream_status": upstream_status},
        )


class ChargebeeError(UpstreamGatewayError):
    def __init__(self, message: str):
        super().__init__(message, code="CHARGEBEE_ERROR")


class LeonardoApiError(UpstreamGatewayError):
    def __init__(self, message: str):
        super().__init__(f"Leonardo API error: {message}", code="LEONARDO_API_ERROR")


def error_body(message: str, code: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message, "code": code}
    if details:
        body["details"] = details
    return body


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = error_body(exc.message, exc.code, exc.details)
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    from app.core.logging import get_logger
    log = get_logger(__name__)
    if exc.status_code >= 500:
        log.error("api.error", error=exc.message, code=exc.code)
    else:
        log.warning("api.error", error=exc.message, code=exc.code)
    return error_response(request, exc)


def _format_validation_errors(exc: RequestValidationError) -> dict[str, Any]:
    fields: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        fields.setdefault(".".join(loc) or "root", []).append(err.get("msg", "Invalid value"))
    return {"fields": fields}


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    return error_response(request, ValidationError(details=_format_validation_errors(exc)))


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from app.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = error_body("Internal server error", "INTERNAL_ERROR")
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
