"""
会话 Schemas
"""
from pydantic import BaseModel
from typing import Optional


class SessionUser(BaseModel):
    """会话中的用户信息"""
    id: Optional[str] = None
    email: Optional[str] = None
    kind: str = "user"  # user 或 brand


class Session(BaseModel):
    """当前请求的会话（由 JWT 解码得到）"""
    user: Optional[SessionUser] = None
    token_id: Optional[str] = None
    expires_at: Optional[int] = None
