"""
安全相关工具：JWT 会话、管理员守卫、品牌会话
"""
from datetime import timedelta
from functools import lru_cache
from typing import Optional
import logging
import secrets
import time
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import (
    HTTPBearer,
    HTTPAuthorizationCredentials,
    HTTPBasic,
    HTTPBasicCredentials,
)

from ratestuff.config import get_settings
from ratestuff.errors import Unauthorized
from ratestuff.schemas.session import Session, SessionUser
from ratestuff.utils.admin_guard import AdminAllowList, AdminGuard
from ratestuff.utils.redis_client import redis_client, revoked_token_key
from ratestuff.utils.timezone import utc_now_naive

settings = get_settings()
security = HTTPBearer(auto_error=False)
metrics_security = HTTPBasic(auto_error=False)
logger = logging.getLogger(__name__)

SESSION_KIND_USER = "user"
SESSION_KIND_BRAND = "brand"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """创建 JWT Token"""
    to_encode = data.copy()
    if "jti" not in to_encode:
        to_encode["jti"] = secrets.token_urlsafe(16)
    expire = utc_now_naive() + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )


def create_session_token(
    subject: str,
    email: str,
    kind: str = SESSION_KIND_USER,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """签发会话令牌（sub / email / kind）"""
    return create_access_token(
        {"sub": subject, "email": email.lower(), "kind": kind},
        expires_delta=expires_delta,
    )


def decode_token(token: str) -> dict:
    """解码 JWT Token"""
    try:
        return jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        raise Unauthorized()


def get_token_from_request(
    credentials: Optional[HTTPAuthorizationCredentials],
    request: Optional[Request],
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    if request:
        cookie_token = request.cookies.get(settings.auth_cookie_name)
        if cookie_token:
            return cookie_token
    return None


async def _ensure_token_not_revoked(payload: dict) -> None:
    if not settings.jwt_blacklist_enabled:
        return

    jti = payload.get("jti")
    if not jti:
        return

    try:
        if await redis_client.get(revoked_token_key(jti)):
            raise Unauthorized()
    except Unauthorized:
        raise
    except Exception as exc:
        logger.warning("JWT denylist check failed: %s", exc)
        if settings.jwt_blacklist_fail_closed:
            raise Unauthorized()


async def revoke_token(token: str) -> None:
    """注销令牌（写入 Redis 黑名单直到过期）"""
    if not settings.jwt_blacklist_enabled:
        return
    try:
        payload = decode_token(token)
    except Unauthorized:
        return
    jti = payload.get("jti")
    exp = payload.get("exp")
    if not jti or not exp:
        return
    ttl = int(exp - time.time())
    if ttl <= 0:
        return
    try:
        await redis_client.set(revoked_token_key(jti), "1", ex=ttl)
    except Exception as exc:
        logger.warning("JWT revoke failed: %s", exc)


def session_from_payload(payload: dict) -> Session:
    return Session(
        user=SessionUser(
            id=payload.get("sub"),
            email=payload.get("email"),
            kind=payload.get("kind") or SESSION_KIND_USER,
        ),
        token_id=payload.get("jti"),
        expires_at=payload.get("exp"),
    )


async def get_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    request: Request = None,
) -> Optional[Session]:
    """获取当前会话（可选），无效令牌视为未登录"""
    token = get_token_from_request(credentials, request)
    if not token:
        return None
    try:
        payload = decode_token(token)
        await _ensure_token_not_revoked(payload)
    except Unauthorized:
        return None
    return session_from_payload(payload)


@lru_cache()
def get_admin_guard() -> AdminGuard:
    """进程级管理员守卫（白名单只构建一次）"""
    allow_list = AdminAllowList.from_settings(settings)
    if not len(allow_list):
        logger.warning("Admin allow-list is empty; all admin routes will reject")
    return AdminGuard(allow_list)


async def get_user_session(
    session: Optional[Session] = Depends(get_session),
) -> Optional[Session]:
    """只保留普通用户会话，品牌会话不参与管理员判断"""
    if session is None or session.user is None:
        return None
    if session.user.kind != SESSION_KIND_USER:
        return None
    return session


async def get_admin_session(
    session: Optional[Session] = Depends(get_user_session),
    guard: AdminGuard = Depends(get_admin_guard),
) -> Session:
    """要求管理员会话"""
    return guard.require_admin(session)


async def get_brand_session(
    session: Optional[Session] = Depends(get_session),
) -> Session:
    """要求品牌会话"""
    if (
        session is None
        or session.user is None
        or session.user.kind != SESSION_KIND_BRAND
        or not session.user.id
    ):
        raise Unauthorized()
    return session


def verify_metrics_basic_auth(
    credentials: Optional[HTTPBasicCredentials] = Depends(metrics_security),
) -> None:
    """/metrics 的 Basic Auth（未配置时不校验）"""
    if not settings.metrics_basic_auth_user:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
    user_ok = secrets.compare_digest(
        credentials.username.encode(), settings.metrics_basic_auth_user.encode()
    )
    password_ok = secrets.compare_digest(
        credentials.password.encode(), settings.metrics_basic_auth_password.encode()
    )
    if not (user_ok and password_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )
