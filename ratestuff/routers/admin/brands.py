"""
品牌账号管理路由
"""
import logging
import re
import secrets

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ratestuff.database import get_db
from ratestuff.errors import Conflict, NotFound
from ratestuff.models.brand_account import BrandAccount
from ratestuff.schemas.brand import (
    BrandAccountCreate,
    BrandAccountResponse,
    BrandAccountUpdate,
)
from ratestuff.schemas.session import Session
from ratestuff.services import brand_otp_service
from ratestuff.utils.security import get_admin_session

logger = logging.getLogger(__name__)

router = APIRouter()


def _slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:80] or "brand"


async def _slug_taken(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(BrandAccount.id).where(BrandAccount.slug == slug))
    return result.scalar_one_or_none() is not None


@router.get("/brands", response_model=list[BrandAccountResponse])
async def list_brands(
    admin: Session = Depends(get_admin_session),
    db: AsyncSession = Depends(get_db),
):
    """品牌账号列表（按创建时间倒序）"""
    result = await db.execute(
        select(BrandAccount).order_by(BrandAccount.created_at.desc())
    )
    return [BrandAccountResponse.model_validate(b) for b in result.scalars().all()]


@router.post(
    "/brands",
    response_model=BrandAccountResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_brand(
    data: BrandAccountCreate,
    admin: Session = Depends(get_admin_session),
    db: AsyncSession = Depends(get_db),
):
    """
    创建品牌账号

    未指定 slug 时由显示名或邮箱前缀生成，冲突时追加随机后缀。
    """
    conditions = [BrandAccount.email == data.email]
    if data.slug:
        conditions.append(BrandAccount.slug == data.slug)
    existing = await db.execute(select(BrandAccount.id).where(or_(*conditions)))
    if existing.first() is not None:
        raise Conflict("brand_exists", "Brand account already exists")

    slug = data.slug
    if not slug:
        slug = _slugify(data.display_name or data.email.split("@")[0])
        if await _slug_taken(db, slug):
            slug = f"{slug}-{secrets.token_hex(2)}"

    brand = BrandAccount(
        email=data.email,
        slug=slug,
        display_name=data.display_name,
        active=True,
    )
    db.add(brand)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("brand_exists", "Brand account already exists")
    await db.refresh(brand)

    logger.info("Admin %s created brand %s", admin.user.email, brand.id)
    return BrandAccountResponse.model_validate(brand)


@router.patch("/brands/{brand_id}", response_model=BrandAccountResponse)
async def update_brand(
    brand_id: str,
    data: BrandAccountUpdate,
    admin: Session = Depends(get_admin_session),
    db: AsyncSession = Depends(get_db),
):
    """启用 / 停用品牌账号"""
    result = await db.execute(select(BrandAccount).where(BrandAccount.id == brand_id))
    brand = result.scalar_one_or_none()
    if brand is None:
        raise NotFound()

    brand.active = data.active
    await db.commit()
    await db.refresh(brand)

    logger.info(
        "Admin %s set brand %s active=%s", admin.user.email, brand.id, brand.active
    )
    return BrandAccountResponse.model_validate(brand)


@router.post("/brand-otps/purge")
async def purge_brand_otps(
    admin: Session = Depends(get_admin_session),
    db: AsyncSession = Depends(get_db),
):
    """立即清理过期验证码与登录 nonce"""
    otps = await brand_otp_service.purge_expired_otps(db)
    nonces = await brand_otp_service.purge_expired_login_nonces(db)
    return {"ok": True, "deleted_otps": otps, "deleted_nonces": nonces}
