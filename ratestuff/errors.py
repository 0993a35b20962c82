"""
业务异常

每个异常自带 HTTP 状态码和机器可读的错误码，
由 main.py 中的异常处理器统一转换为 JSON 响应。
"""
from typing import Optional


class AppError(Exception):
    """业务异常基类"""
    status_code: int = 500
    error: str = "internal_error"
    message: str = "Internal Server Error"

    def __init__(self, error: Optional[str] = None, message: Optional[str] = None):
        if error:
            self.error = error
        if message:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "ok": False,
            "status": "error",
            "error": self.error,
            "message": self.message,
            "code": self.status_code,
        }


class Unauthorized(AppError):
    """会话缺失或无权限（不区分具体原因）"""
    status_code = 401
    error = "unauthorized"
    message = "Unauthorized"


class ValidationError(AppError):
    status_code = 400
    error = "invalid_request"
    message = "Invalid request"


class InvalidOrExpiredCode(AppError):
    """验证码错误、过期、不存在、已锁定统一使用此异常"""
    status_code = 401
    error = "invalid_code"
    message = "Invalid or expired code"


class TransientDependencyFailure(AppError):
    """存储或邮件等外部依赖暂时不可用，调用方可重试"""
    status_code = 503
    error = "dependency_unavailable"
    message = "Service temporarily unavailable, please retry"


class NotFound(AppError):
    status_code = 404
    error = "not_found"
    message = "Not found"


class Conflict(AppError):
    status_code = 409
    error = "conflict"
    message = "Conflict"
