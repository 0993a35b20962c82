"""
管理后台路由 - 主入口

模块结构:
    - brands: 品牌账号管理、验证码清理
所有接口都要求管理员会话（静态邮箱白名单）。
"""
from typing import Optional

from fastapi import APIRouter, Depends

from ratestuff.schemas.session import Session
from ratestuff.utils.admin_guard import AdminGuard
from ratestuff.utils.security import get_admin_guard, get_user_session

from .brands import router as brands_router

router = APIRouter()

router.include_router(brands_router, tags=["Admin - brands"])


@router.get("/status")
async def admin_status(
    session: Optional[Session] = Depends(get_user_session),
    guard: AdminGuard = Depends(get_admin_guard),
):
    """当前会话是否为管理员（从不返回 401）"""
    return {"is_admin": guard.is_admin(session)}
