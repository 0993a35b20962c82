"""
Redis 客户端

只用于限流计数和 JWT 注销黑名单，两者都按 best-effort 处理：
Redis 不可用时调用方记录告警后继续。
"""
import redis.asyncio as redis
from ratestuff.config import get_settings

settings = get_settings()

KEY_PREFIX = "ratestuff"

# from_url 不会立即建立连接
redis_client = redis.from_url(
    settings.redis_url,
    encoding="utf-8",
    decode_responses=True,
    max_connections=20,
    socket_timeout=2,
    socket_connect_timeout=2,
    health_check_interval=30,
)


def make_key(*parts: object) -> str:
    """ratestuff:<part>:<part>..."""
    return ":".join([KEY_PREFIX, *(str(part) for part in parts)])


def rate_limit_key(scope: str, client_ip: str) -> str:
    return make_key("rate_limit", scope, "ip", client_ip)


def revoked_token_key(jti: str) -> str:
    return make_key("jwt", "revoked", jti)
