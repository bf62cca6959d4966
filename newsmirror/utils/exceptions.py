"""
NewsMirror Custom Exceptions
============================

Error hierarchy for the crawler. Each error carries a code, a context dict
for structured logs, an operator-facing message and a ``recoverable`` flag.

The flag is the run policy: a recoverable error is absorbed where it was
raised (one image failing to mirror), anything else aborts the ingestion
pass and leaves the watermark untouched. ``is_fatal_to_run`` is the one
place that policy is read.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"

    # Database errors (D001-D099)
    DATABASE_CONSTRAINT = "D003"
    DATABASE_TRANSACTION = "D004"
    DATABASE_ERROR = "D006"

    # Feed errors (F001-F099)
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_NOT_FOUND = "F006"

    # Article scraping errors (P001-P099)
    CONTENT_EXTRACTION_FAILED = "P003"
    ARTICLE_FETCH_FAILED = "P005"

    # Asset mirroring errors (M001-M099)
    ASSET_DOWNLOAD_FAILED = "M001"
    ASSET_UPLOAD_FAILED = "M002"
    ASSET_TOO_LARGE = "M003"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"

    # System errors (S001-S099)
    SYSTEM_PERMISSION_DENIED = "S002"


class NewsMirrorError(Exception):
    """Base exception for all NewsMirror errors.

    Subclasses set class-level defaults; keyword arguments other than the
    named ones (``feed_url=...``, ``article_id=...``) are added to
    ``context`` when not None.
    """

    default_code: Optional[ErrorCode] = None
    default_user_message = "{message}"
    default_recoverable = False

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: Optional[bool] = None,
        **context_fields: Any,
    ):
        """
        Args:
            message: Technical message for logs
            error_code: Error code, the class default when omitted
            context: Extra context for structured logs
            user_message: Operator-facing message
            recoverable: Whether the run may continue past this error
            **context_fields: Named context values (None values are dropped)
        """
        super().__init__(message)
        self.error_code = error_code or self.default_code
        self.context = dict(context or {})
        self.context.update({k: v for k, v in context_fields.items() if v is not None})
        self.user_message = user_message or self.format_user_message(message)
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def format_user_message(self, message: str) -> str:
        return self.default_user_message.format(message=message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for log ``extra``."""
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        message = super().__str__()
        return f"[{self.error_code.value}] {message}" if self.error_code else message


class ConfigurationError(NewsMirrorError):
    """Settings are missing or invalid; raised before any crawl starts."""

    default_code = ErrorCode.CONFIG_INVALID
    default_user_message = "Configuration error: {message}"


class DatabaseError(NewsMirrorError):
    """Database-related errors.

    A failed store-write is fatal to the ingestion pass: the run stops, and
    the next tick retries from the same watermark.
    """

    default_code = ErrorCode.DATABASE_ERROR
    default_user_message = "Database operation failed"


class FeedError(NewsMirrorError):
    """Feed ingestion and parsing errors."""

    default_code = ErrorCode.FEED_NETWORK_ERROR
    default_user_message = "Feed processing failed: {message}"


class FeedFetchError(FeedError):
    """Feed could not be fetched or parsed. Aborts the pass before any item."""


class ArticleScrapeError(NewsMirrorError):
    """Article page could not be fetched or parsed.

    Fatal to the pass: a partial scrape is never accepted.
    """

    default_code = ErrorCode.ARTICLE_FETCH_FAILED
    default_user_message = "Article scraping failed"


class AssetMirrorError(NewsMirrorError):
    """One image failed to download or upload. Never aborts the item."""

    default_code = ErrorCode.ASSET_DOWNLOAD_FAILED
    default_user_message = "Image mirroring failed"
    default_recoverable = True

    def __init__(self, message: str, **kwargs: Any):
        kwargs["recoverable"] = True
        super().__init__(message, **kwargs)


class ValidationError(NewsMirrorError):
    """A single value failed validation."""

    default_code = ErrorCode.VALIDATION_INVALID_FORMAT

    def format_user_message(self, message: str) -> str:
        return f"Invalid {self.context.get('field_name', 'input')}: {message}"


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> NewsMirrorError:
    """Log ``exception`` and return it as a NewsMirrorError.

    Foreign exceptions are wrapped with a code matching their kind; the
    original stays available as ``__cause__``.

    Args:
        exception: Exception being handled
        logger: Logger (or adapter) receiving the error line
        operation: What was being done, e.g. ``scheduler startup``
        context: Extra context for the log line

    Returns:
        The NewsMirrorError that was logged
    """
    if isinstance(exception, NewsMirrorError):
        error = exception
    else:
        context = {
            **(context or {}),
            "operation": operation,
            "original_exception_type": type(exception).__name__,
        }
        if isinstance(exception, PermissionError):
            code, user_message = ErrorCode.SYSTEM_PERMISSION_DENIED, "Access denied"
        elif isinstance(exception, (ConnectionError, TimeoutError)):
            code, user_message = ErrorCode.FEED_NETWORK_ERROR, "Network connection failed"
        else:
            code, user_message = None, "An unexpected error occurred"

        error = NewsMirrorError(
            f"{type(exception).__name__} during {operation}: {exception}",
            error_code=code,
            context=context,
            user_message=user_message,
        )
        error.__cause__ = exception

    logger.error(f"Operation '{operation}' failed: {error}", extra=error.to_dict())
    return error


def is_fatal_to_run(exception: BaseException) -> bool:
    """Check whether an error must abort the current ingestion pass.

    Only errors explicitly marked recoverable are absorbed; anything else,
    including exceptions foreign to this package, stops the pass.
    """
    if isinstance(exception, NewsMirrorError):
        return not exception.recoverable
    return True
