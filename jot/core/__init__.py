"""
核心功能包
"""

from .exceptions import (
    JotException,
    NotFoundException,
    ExtractionFailed,
    TranscriptionException,
    TranscriptionFailureReason,
    PersistFailed,
    AIServiceException,
    ValidationException,
    AuthenticationException,
    RateLimitException,
)

from .logging import (
    setup_logging,
    get_logger,
    api_logger,
    service_logger,
    pipeline_logger,
    ai_logger,
    db_logger,
    audio_logger
)

from .middleware import (
    RequestLoggingMiddleware,
    ExceptionHandlingMiddleware,
)

__all__ = [
    # Exceptions
    "JotException",
    "NotFoundException",
    "ExtractionFailed",
    "TranscriptionException",
    "TranscriptionFailureReason",
    "PersistFailed",
    "AIServiceException",
    "ValidationException",
    "AuthenticationException",
    "RateLimitException",

    # Logging
    "setup_logging",
    "get_logger",
    "api_logger",
    "service_logger",
    "pipeline_logger",
    "ai_logger",
    "db_logger",
    "audio_logger",

    # Middleware
    "RequestLoggingMiddleware",
    "ExceptionHandlingMiddleware",
]
