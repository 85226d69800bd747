"""
外部服务HTTP调用公共部分

统一把 httpx 异常与响应状态映射为路径服务错误：
- 429 → RateLimitedError
- 超时 → ProviderTimeoutError
- 其他HTTP错误/非2xx → ProviderNetworkError
- 非法JSON → ProviderParseError
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from roadwatch.core.exceptions import (
    ProviderNetworkError,
    ProviderParseError,
    ProviderTimeoutError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)

# 错误详情截断长度
MAX_ERROR_DETAIL = 2000


def _retry_after(response: httpx.Response) -> Optional[int]:
    raw = response.headers.get("Retry-After")
    if raw and raw.isdigit():
        return int(raw)
    return None


async def request_json(
    method: str,
    url: str,
    *,
    provider: str,
    timeout: float,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """
    发送请求并返回解析后的JSON

    Args:
        method: GET/POST
        url: 完整地址
        provider: 服务名，仅用于日志与错误详情
        timeout: 超时秒数
        client: 外部注入的客户端（复用连接池/测试替身），为空时临时创建

    Raises:
        RateLimitedError / ProviderTimeoutError / ProviderNetworkError / ProviderParseError
    """
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await own_client.request(
                    method, url, params=params, json=json_body, headers=headers,
                )
        else:
            response = await client.request(
                method, url, params=params, json=json_body, headers=headers, timeout=timeout,
            )
    except httpx.TimeoutException as e:
        logger.warning(f"{provider} 请求超时", extra={"url": url, "timeout": timeout})
        raise ProviderTimeoutError(details=f"{provider} timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        logger.error(f"{provider} 请求失败", extra={"error": str(e)})
        raise ProviderNetworkError(details=str(e)) from e

    if response.status_code == 429:
        logger.warning(f"{provider} 返回429限流")
        raise RateLimitedError(
            retry_after_seconds=_retry_after(response),
            details=f"{provider} rate limited",
        )

    if response.is_error:
        logger.error(
            f"{provider} 返回错误",
            extra={"status": response.status_code, "body": response.text[:MAX_ERROR_DETAIL]},
        )
        raise ProviderNetworkError(
            details={
                "provider": provider,
                "status": response.status_code,
                "body": response.text[:MAX_ERROR_DETAIL],
            },
        )

    try:
        return response.json()
    except ValueError as e:
        logger.error(f"{provider} 响应不是合法JSON")
        raise ProviderParseError(details=f"{provider} response is not valid JSON") from e
