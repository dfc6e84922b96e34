"""Custom exceptions and exception handlers."""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from embed_index.core.logging import get_logger

logger = get_logger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class TransientRemoteError(AppException):
    """Network, timeout or quota failure of a remote collaborator. Retryable."""

    def __init__(self, message: str = "Remote service unavailable"):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class AuthError(TransientRemoteError):
    """Authentication or credential failure reported by a remote provider."""

    def __init__(self, message: str = "Remote service rejected credentials"):
        super().__init__(message)
        self.status_code = status.HTTP_401_UNAUTHORIZED


class ProviderChainError(TransientRemoteError):
    """Every provider of a fallback chain failed.

    ``failures`` keeps one ``(provider_name, error)`` pair per attempted provider,
    in the order they were tried.
    """

    def __init__(self, failures: list[tuple[str, Exception]]):
        self.failures = failures
        detail = "; ".join(f"{name}: {exc}" for name, exc in failures)
        super().__init__(f"All embedding providers failed ({detail})")
        if failures and all(isinstance(exc, AuthError) for _, exc in failures):
            self.status_code = status.HTTP_401_UNAUTHORIZED


class DataIntegrityError(AppException):
    """Dimension mismatch, malformed record or corrupt persisted state. Never retried."""

    def __init__(self, message: str = "Data integrity violation"):
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class ConfigurationError(AppException):
    """Missing credentials or required settings. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration"):
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle custom application exceptions.

    Args:
        request: The incoming request.
        exc: The exception that was raised.

    Returns:
        JSONResponse: Error response.
    """
    logger.error(f"Application error: {exc.message}", exc_info=True)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": exc.__class__.__name__},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions.

    Args:
        request: The incoming request.
        exc: The HTTP exception that was raised.

    Returns:
        JSONResponse: Error response.
    """
    logger.warning(f"HTTP error {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse: Error response.
    """
    logger.error(f"Unhandled error: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
