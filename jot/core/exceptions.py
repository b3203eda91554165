"""
自定义异常类
"""

from enum import Enum
from typing import Optional

from fastapi import HTTPException, status


class JotException(Exception):
    """Jot应用基础异常"""

    def __init__(self, message: str, code: str = "GENERAL_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class NotFoundException(JotException):
    """资源未找到异常（笔记或输入不存在，或不属于当前用户）"""

    def __init__(self, resource: str = "Resource"):
        message = f"{resource} not found"
        super().__init__(message, "RESOURCE_NOT_FOUND")


class ExtractionFailed(JotException):
    """内容提取失败：下载失败、音频过大或转录失败"""

    def __init__(self, message: str = "内容提取失败"):
        super().__init__(message, "EXTRACTION_FAILED")


class TranscriptionFailureReason(Enum):
    """转录失败分类"""
    TOO_LARGE = "too_large"
    INVALID_FORMAT = "invalid_format"
    UPSTREAM_AUTH = "upstream_auth"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UNKNOWN = "unknown"


class TranscriptionException(ExtractionFailed):
    """转录失败，携带失败分类用于日志"""

    def __init__(
        self,
        message: str = "Failed to transcribe audio",
        reason: TranscriptionFailureReason = TranscriptionFailureReason.UNKNOWN
    ):
        self.reason = reason
        super().__init__(message)


class PersistFailed(JotException):
    """笔记写入失败"""

    def __init__(self, message: str = "Failed to persist note"):
        super().__init__(message, "PERSIST_FAILED")


class AIServiceException(JotException):
    """AI服务异常"""

    def __init__(self, message: str = "AI服务调用失败"):
        super().__init__(message, "AI_SERVICE_ERROR")


class ValidationException(JotException):
    """数据验证异常"""

    def __init__(self, message: str = "数据验证失败"):
        super().__init__(message, "VALIDATION_ERROR")


class AuthenticationException(JotException):
    """身份验证失败"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "UNAUTHORIZED")


class RateLimitException(JotException):
    """速率限制异常"""

    def __init__(
        self,
        message: str = "请求过于频繁，请稍后重试",
        retry_after: Optional[int] = None
    ):
        self.retry_after = retry_after
        super().__init__(message, "RATE_LIMIT_EXCEEDED")


# HTTP异常映射
STATUS_CODE_MAPPING = {
    "RESOURCE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "UNAUTHORIZED": status.HTTP_401_UNAUTHORIZED,
    "RATE_LIMIT_EXCEEDED": status.HTTP_429_TOO_MANY_REQUESTS,
    "EXTRACTION_FAILED": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "PERSIST_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "AI_SERVICE_ERROR": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def jot_exception_to_http_exception(exc: JotException) -> HTTPException:
    """将Jot异常转换为HTTP异常"""

    status_code = STATUS_CODE_MAPPING.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    detail = {
        "error": True,
        "code": exc.code,
        "message": exc.message,
        "type": type(exc).__name__
    }

    headers = None
    if isinstance(exc, RateLimitException) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    if isinstance(exc, TranscriptionException):
        detail["reason"] = exc.reason.value

    return HTTPException(status_code=status_code, detail=detail, headers=headers)
