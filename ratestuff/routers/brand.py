"""
品牌登录路由：请求验证码、校验验证码、nonce 换会话
"""
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ratestuff.config import get_settings
from ratestuff.database import get_db
from ratestuff.errors import Unauthorized, ValidationError
from ratestuff.models.brand_account import BrandAccount
from ratestuff.schemas.brand import (
    CARD_COLOR_PATTERN,
    BrandAccountResponse,
    BrandProfileUpdate,
    BrandSessionResponse,
    CardColorUpdate,
    RequestCodeRequest,
    SessionExchangeRequest,
    VerifyCodeRequest,
)
from ratestuff.schemas.session import Session
from ratestuff.services import brand_otp_service
from ratestuff.services.email_service import EmailSender, get_email_sender
from ratestuff.utils.rate_limiter import RateLimiter, get_client_ip
from ratestuff.utils.security import (
    SESSION_KIND_BRAND,
    create_session_token,
    get_brand_session,
    get_token_from_request,
    revoke_token,
    security,
)

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)

request_code_limiter = RateLimiter(
    times=settings.brand_code_rate_limit_times,
    seconds=settings.brand_code_rate_limit_seconds,
    scope="brand:request-code",
)
verify_code_limiter = RateLimiter(
    times=settings.brand_verify_rate_limit_times,
    seconds=settings.brand_verify_rate_limit_seconds,
    scope="brand:verify",
)


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.jwt_access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
        path=settings.auth_cookie_path,
    )


@router.post("/request-code", dependencies=[Depends(request_code_limiter)])
async def request_code(
    data: RequestCodeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """请求品牌登录验证码（不区分邮箱是否为有效品牌）"""
    await brand_otp_service.request_code(
        db,
        data.email,
        get_client_ip(request),
        sender,
    )
    return {"ok": True}


@router.post("/verify", dependencies=[Depends(verify_code_limiter)])
async def verify_code(
    data: VerifyCodeRequest,
    db: AsyncSession = Depends(get_db),
):
    """校验验证码，成功返回一次性 nonce"""
    nonce = await brand_otp_service.verify_code(db, data.email, data.code)
    return {"ok": True, "nonce": nonce}


@router.post("/session", response_model=BrandSessionResponse)
async def create_brand_session(
    data: SessionExchangeRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """使用 nonce 换取品牌会话令牌"""
    brand = await brand_otp_service.consume_login_nonce(db, data.nonce)
    token = create_session_token(
        brand.id,
        brand.email,
        kind=SESSION_KIND_BRAND,
        expires_delta=timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )
    _set_auth_cookie(response, token)
    logger.info("Brand session created for brand %s", brand.id)
    return BrandSessionResponse(
        access_token=token,
        brand=BrandAccountResponse.model_validate(brand),
    )


async def _current_brand(session: Session, db: AsyncSession) -> BrandAccount:
    """会话对应的品牌账号，已删除或停用视为未登录"""
    result = await db.execute(
        select(BrandAccount).where(BrandAccount.id == session.user.id)
    )
    brand = result.scalar_one_or_none()
    if brand is None or not brand.active:
        raise Unauthorized()
    return brand


@router.get("/me", response_model=BrandAccountResponse)
async def get_brand_me(
    session: Session = Depends(get_brand_session),
    db: AsyncSession = Depends(get_db),
):
    """获取当前品牌账号"""
    brand = await _current_brand(session, db)
    return BrandAccountResponse.model_validate(brand)


@router.patch("/profile")
async def update_brand_profile(
    data: BrandProfileUpdate,
    session: Session = Depends(get_brand_session),
    db: AsyncSession = Depends(get_db),
):
    """更新简介 / 封面图，未出现在请求中的字段保持不变"""
    fields = data.model_fields_set & {"bio", "cover_image_url"}
    if not fields:
        raise ValidationError("invalid_request", "No updatable fields provided")

    brand = await _current_brand(session, db)
    for field in fields:
        setattr(brand, field, getattr(data, field))
    await db.commit()
    await db.refresh(brand)

    logger.info("Brand %s updated profile fields %s", brand.id, sorted(fields))
    return {"ok": True, "brand": BrandAccountResponse.model_validate(brand)}


@router.get("/color")
async def get_card_color(
    session: Session = Depends(get_brand_session),
    db: AsyncSession = Depends(get_db),
):
    brand = await _current_brand(session, db)
    return {"ok": True, "color": brand.card_color}


@router.post("/color")
async def set_card_color(
    data: CardColorUpdate,
    session: Session = Depends(get_brand_session),
    db: AsyncSession = Depends(get_db),
):
    """设置卡片颜色（#RRGGBB，统一大写），null / 空字符串恢复默认"""
    raw = (data.color or "").strip()
    if raw and not CARD_COLOR_PATTERN.match(raw):
        raise ValidationError("invalid_color", "Color must be #RRGGBB")

    brand = await _current_brand(session, db)
    brand.card_color = raw.upper() or None
    await db.commit()
    return {"ok": True, "color": brand.card_color}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials = Depends(security),
):
    """退出登录（令牌加入黑名单并清除 cookie）"""
    token = get_token_from_request(credentials, request)
    if token:
        await revoke_token(token)
    response.delete_cookie(
        key=settings.auth_cookie_name,
        domain=settings.auth_cookie_domain or None,
        path=settings.auth_cookie_path,
    )
    return {"ok": True}
