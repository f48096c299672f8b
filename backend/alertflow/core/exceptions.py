"""
全局异常处理模块 (Global Exception Handling Module)

定义业务异常类、引擎异常分类和 FastAPI 全局异常处理器，提供统一的错误响应格式。

Defines business exceptions, the engine error taxonomy and the FastAPI global
exception handlers, giving a unified error response format.

引擎异常分类 (Engine error taxonomy):
- ConfigurationError: 阈值/升级链定义不合法，评估降级为未违规
- ResolutionFailure: 某一级别找不到处理人，按 skip_if_unavailable 处理
- DispatchFailure: 通知或工单协作方调用失败，记录后继续
- StateConflict: 对已终结的升级执行发起状态转换，忽略并记录 debug 日志
"""
import logging
import traceback
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400
    error: str = "business_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class NotFoundError(BusinessError):
    """资源不存在 (Resource Not Found)"""
    status_code = 404
    error = "not_found"


class ValidationError(BusinessError):
    """数据校验失败 (Validation Error)"""
    status_code = 422
    error = "validation_error"


class ConflictError(BusinessError):
    """资源冲突 (Resource Conflict)"""
    status_code = 409
    error = "conflict"


# ============================================================
# 引擎异常类 (Engine Exception Classes)
# ============================================================

class EngineError(Exception):
    """引擎异常基类 (Base Engine Exception)"""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(EngineError):
    """阈值或升级链定义不合法 (Malformed threshold or chain definition)"""


class ResolutionFailure(EngineError):
    """级别无可用处理人 (No assignee found for a level)"""


class DispatchFailure(EngineError):
    """协作方调用失败 (Notification or ticket collaborator failed)"""

    def __init__(self, channel: str, message: str, details: Optional[dict] = None):
        self.channel = channel
        super().__init__(f"{channel}: {message}", details)


class StateConflict(EngineError):
    """对已终结执行的状态转换 (Transition attempted on a terminal execution)"""


# ============================================================
# 全局异常处理器注册 (Global Exception Handler Registration)
# ============================================================

def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器到 FastAPI 应用 (Register global exception handlers to FastAPI app)

    处理优先级：
    1. BusinessError 子类 → 对应 HTTP 状态码 + 结构化响应
    2. HTTPException → 保持原样，包装为统一格式
    3. Exception → 500 + 完整 traceback 日志
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error,
                "message": exc.message,
                "detail": exc.detail,
                "status_code": exc.status_code,
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "http_error",
                "message": str(exc.detail),
                "detail": None,
                "status_code": exc.status_code,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(exc),
            traceback.format_exc(),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "Internal server error, please try again later",
                "detail": None,
                "status_code": 500,
            },
        )
