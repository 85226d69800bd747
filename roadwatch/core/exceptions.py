from fastapi import HTTPException
from typing import Optional, Any


class AppException(HTTPException):
    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(status_code=status_code, detail={
            "error_code": error_code,
            "message": message,
            "details": details,
        }, headers=headers)
        self.error_code = error_code
        self.message = message
        self.details = details


# ============================================================================
# 路径获取错误分类
# ============================================================================

class RoutingError(AppException):
    """路径服务错误基类"""
    status_code_default = 500
    code = "ROUTING_ERROR"
    retryable = False

    def __init__(self, message: Optional[str] = None, details: Optional[Any] = None,
                 headers: Optional[dict[str, str]] = None):
        super().__init__(
            status_code=self.status_code_default,
            error_code=self.code,
            message=message or describe_error(self.code)["message"],
            details=details,
            headers=headers,
        )


class RateLimitedError(RoutingError):
    """路径服务限流（HTTP 429），通过退避等待恢复"""
    status_code_default = 429
    code = "RATE_LIMITED"

    def __init__(self, retry_after_seconds: Optional[int] = None, message: Optional[str] = None,
                 details: Optional[Any] = None):
        self.retry_after_seconds = retry_after_seconds
        headers = {"Retry-After": str(retry_after_seconds)} if retry_after_seconds else None
        if message is None and retry_after_seconds:
            message = f"请稍候... ({retry_after_seconds}s)"
        super().__init__(message=message, details=details, headers=headers)


class NoRouteFoundError(RoutingError):
    status_code_default = 404
    code = "NO_ROUTE_FOUND"


class ProviderParseError(RoutingError):
    status_code_default = 502
    code = "PARSE_ERROR"


class ProviderTimeoutError(RoutingError):
    status_code_default = 504
    code = "TIMEOUT"
    retryable = True


class InvalidInputError(RoutingError):
    status_code_default = 400
    code = "INVALID_INPUT"


class ProviderConfigError(InvalidInputError):
    """缺少路径服务密钥等配置"""


class ProviderNetworkError(RoutingError):
    status_code_default = 502
    code = "NETWORK_ERROR"
    retryable = True


_ERROR_DESCRIPTIONS: dict[str, tuple[str, str]] = {
    "RATE_LIMITED": ("请求过于频繁", "请求次数过多，请稍候再试。"),
    "NO_ROUTE_FOUND": ("未找到路线", "两地之间未能找到可用路线，请选择其他目的地。"),
    "PARSE_ERROR": ("响应无法解析", "路径服务返回的数据无法读取。"),
    "TIMEOUT": ("请求超时", "路径服务响应超时，请重试。"),
    "INVALID_INPUT": ("输入无效", "起点或终点坐标缺失或超出范围。"),
    "NETWORK_ERROR": ("网络错误", "无法连接到路径服务，请检查网络后重试。"),
}


def describe_error(code: Optional[str]) -> dict[str, str]:
    """错误码转换为界面展示用的标题和说明"""
    title, message = _ERROR_DESCRIPTIONS.get(code or "", ("出现错误", "请稍后再试。"))
    return {
        "code": code or "UNKNOWN_ERROR",
        "title": title,
        "message": message,
    }
