"""
中间件配置
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from jot.core.exceptions import JotException, jot_exception_to_http_exception
from jot.core.logging import api_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """请求日志中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 生成请求ID
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        start_time = time.time()
        api_logger.info(
            f"Request started - {request.method} {request.url.path} [{request_id}]"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            api_logger.error(
                f"Request failed - {request.method} {request.url.path} [{request_id}] "
                f"after {process_time:.4f}s: {e}"
            )
            raise

        process_time = time.time() - start_time
        api_logger.info(
            f"Request completed - {request.method} {request.url.path} [{request_id}] "
            f"status={response.status_code} time={process_time:.4f}s"
        )

        # 添加响应头
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time, 4))

        return response


class ExceptionHandlingMiddleware(BaseHTTPMiddleware):
    """异常处理中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except JotException as exc:
            return jot_exception_response(request, exc)
        except HTTPException as exc:
            api_logger.warning(
                f"HTTP exception on {request.url.path}: {exc.detail} "
                f"[{getattr(request.state, 'request_id', 'unknown')}]"
            )
            raise
        except Exception as exc:
            api_logger.opt(exception=exc).error(
                f"Unhandled exception on {request.url.path}: {exc} "
                f"[{getattr(request.state, 'request_id', 'unknown')}]"
            )
            return JSONResponse(
                status_code=HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": True,
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "request_id": getattr(request.state, "request_id", "unknown")
                }
            )


def jot_exception_response(request: Request, exc: JotException) -> JSONResponse:
    """把Jot异常渲染为JSON响应"""
    http_exc = jot_exception_to_http_exception(exc)
    api_logger.error(
        f"Jot exception: {exc.message} code={exc.code} type={type(exc).__name__} "
        f"path={request.url.path} [{getattr(request.state, 'request_id', 'unknown')}]"
    )
    return JSONResponse(
        status_code=http_exc.status_code,
        content=http_exc.detail,
        headers=http_exc.headers
    )
