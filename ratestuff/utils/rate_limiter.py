"""
API 速率限制器

按客户端 IP + 路径做固定窗口计数（Redis）。
Redis 不可用时放行并记录告警，不阻断登录流程。
"""
import logging
from typing import Optional

from fastapi import HTTPException, status, Request

from ratestuff.config import get_settings
from ratestuff.utils.redis_client import rate_limit_key, redis_client

settings = get_settings()
logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    获取客户端 IP

    X-Forwarded-For 可能包含多个 IP，取第一个；
    否则回退到连接对端地址。
    """
    forwarded: Optional[str] = None
    if settings.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if ip:
            return ip[:45]
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimiter:
    def __init__(self, times: int = 5, seconds: int = 60, scope: str = ""):
        """
        Args:
            times: 时间窗口内允许的请求次数
            seconds: 时间窗口（秒）
            scope: 计数键前缀，默认使用请求路径
        """
        self.times = times
        self.seconds = seconds
        self.scope = scope

    async def __call__(self, request: Request):
        key = rate_limit_key(self.scope or request.url.path, get_client_ip(request))

        try:
            current = await redis_client.get(key)
            if current and int(current) >= self.times:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Too many requests, please try again later",
                )

            async with redis_client.pipeline() as pipe:
                await pipe.incr(key)
                if not current:
                    await pipe.expire(key, self.seconds)
                await pipe.execute()
        except HTTPException:
            raise
        except Exception as exc:
            logger.warning("Rate limiter unavailable, allowing request: %s", exc)
