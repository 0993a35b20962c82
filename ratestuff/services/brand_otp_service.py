"""
品牌验证码登录服务

流程：
1. request_code: 清理过期验证码 -> 校验品牌白名单 -> 生成 6 位验证码
   -> 只落库哈希 -> 发送邮件（明文只出现在邮件中）
2. verify_code: 常量时间比较哈希，通过后原子删除记录并签发一次性 nonce
3. consume_login_nonce: nonce 换取品牌会话

所有失败对外统一为 InvalidOrExpiredCode，不暴露邮箱是否存在。
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ratestuff.config import get_settings, normalize_email
from ratestuff.errors import InvalidOrExpiredCode, TransientDependencyFailure
from ratestuff.models.brand_account import BrandAccount
from ratestuff.models.brand_login_nonce import BrandLoginNonce
from ratestuff.models.brand_otp import BrandOtp
from ratestuff.services.email_service import (
    EmailDeliveryError,
    EmailSender,
    _sanitize_log_input,
    send_brand_code_email,
)
from ratestuff.utils.metrics import (
    BRAND_OTP_ISSUED,
    BRAND_OTP_PURGED,
    BRAND_OTP_VERIFICATIONS,
)
from ratestuff.utils.timezone import minutes_after, resolve_now
from ratestuff.utils.token_security import (
    DUMMY_OTP_HASH,
    constant_time_equal,
    generate_login_nonce,
    generate_otp_code,
    hash_nonce,
    hash_otp,
)

settings = get_settings()
logger = logging.getLogger(__name__)


async def _store(awaitable):
    """存储调用统一加超时，超时或驱动错误转换为可重试异常"""
    try:
        return await asyncio.wait_for(awaitable, settings.store_timeout_seconds)
    except asyncio.TimeoutError as exc:
        logger.error("Store call timed out after %ss", settings.store_timeout_seconds)
        raise TransientDependencyFailure("store_timeout") from exc
    except SQLAlchemyError as exc:
        logger.error("Store call failed: %s", type(exc).__name__)
        raise TransientDependencyFailure("store_unavailable") from exc


# ============================================================================
# 清理
# ============================================================================

async def purge_expired_otps(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """删除所有 expires_at <= now 的验证码，返回删除条数（幂等）"""
    now = resolve_now(now)
    result = await _store(
        db.execute(
            delete(BrandOtp)
            .where(BrandOtp.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
    )
    await _store(db.commit())
    deleted = max(result.rowcount or 0, 0)
    if deleted:
        BRAND_OTP_PURGED.inc(deleted)
        logger.info("Purged %d expired brand OTP rows", deleted)
    return deleted


async def purge_expired_login_nonces(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """删除过期的登录 nonce"""
    now = resolve_now(now)
    result = await _store(
        db.execute(
            delete(BrandLoginNonce)
            .where(BrandLoginNonce.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
    )
    await _store(db.commit())
    return max(result.rowcount or 0, 0)


async def _purge_quietly(db: AsyncSession, now: datetime) -> None:
    # 清理失败不影响签发/校验
    try:
        await purge_expired_otps(db, now)
    except TransientDependencyFailure as exc:
        logger.warning("Expired OTP purge skipped: %s", exc.error)
        await db.rollback()


# ============================================================================
# 签发
# ============================================================================

async def get_brand_by_email(db: AsyncSession, email: str) -> Optional[BrandAccount]:
    result = await _store(
        db.execute(select(BrandAccount).where(BrandAccount.email == email))
    )
    return result.scalar_one_or_none()


async def request_code(
    db: AsyncSession,
    email: str,
    origin_ip: str,
    sender: EmailSender,
    now: Optional[datetime] = None,
) -> bool:
    """
    为品牌邮箱签发登录验证码

    Returns:
        是否实际签发（路由层无论结果都返回 {"ok": true}）
    Raises:
        TransientDependencyFailure: 存储或邮件发送失败
    """
    now = resolve_now(now)
    email = normalize_email(email)

    await _purge_quietly(db, now)

    brand = await get_brand_by_email(db, email)
    if brand is None or not brand.active:
        logger.debug("Brand code requested for a non-active address")
        return False

    code = generate_otp_code()
    record = BrandOtp(
        email=email,
        code_hash=hash_otp(code),
        ip=(origin_ip or "")[:45],
        attempts=0,
        expires_at=minutes_after(now, settings.brand_otp_expire_minutes),
        created_at=now,
    )

    # 新验证码使该邮箱之前未使用的验证码全部失效
    await _store(
        db.execute(
            delete(BrandOtp)
            .where(BrandOtp.email == email)
            .execution_options(synchronize_session=False)
        )
    )
    db.add(record)
    await _store(db.commit())

    try:
        await asyncio.wait_for(
            send_brand_code_email(sender, email, code, settings.brand_otp_expire_minutes),
            settings.email_timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        logger.error("Brand code email to %s timed out", _sanitize_log_input(email))
        raise TransientDependencyFailure("email_dispatch_failed") from exc
    except EmailDeliveryError as exc:
        logger.error("Brand code email to %s failed", _sanitize_log_input(email))
        raise TransientDependencyFailure("email_dispatch_failed") from exc

    BRAND_OTP_ISSUED.inc()
    logger.info("Brand login code issued for %s", _sanitize_log_input(email))
    return True


# ============================================================================
# 校验
# ============================================================================

# 失败路径用于占位的记录 ID，不会命中任何行
_NO_ROW_ID = ""


def _reject(reason: str) -> None:
    BRAND_OTP_VERIFICATIONS.labels(reason).inc()
    logger.debug("Brand code verification rejected: %s", reason)
    raise InvalidOrExpiredCode()


async def _record_failed_attempt(db: AsyncSession, otp_id: str) -> None:
    """失败次数 +1；无记录或已锁定时以占位 ID 执行同样的 update + commit"""
    await _store(
        db.execute(
            update(BrandOtp)
            .where(BrandOtp.id == otp_id)
            .values(attempts=BrandOtp.attempts + 1)
            .execution_options(synchronize_session=False)
        )
    )
    await _store(db.commit())


async def _delete_otp_if_unexpired(db: AsyncSession, otp_id: str, now: datetime) -> int:
    """以 id + 未过期为条件删除，返回删除行数（并发校验只有一个能得到 1）"""
    result = await _store(
        db.execute(
            delete(BrandOtp)
            .where(BrandOtp.id == otp_id, BrandOtp.expires_at > now)
            .execution_options(synchronize_session=False)
        )
    )
    return result.rowcount or 0


async def _delete_nonce_if_unexpired(db: AsyncSession, nonce_id: str, now: datetime) -> int:
    result = await _store(
        db.execute(
            delete(BrandLoginNonce)
            .where(BrandLoginNonce.id == nonce_id, BrandLoginNonce.expires_at > now)
            .execution_options(synchronize_session=False)
        )
    )
    return result.rowcount or 0


async def verify_code(
    db: AsyncSession,
    email: str,
    code: str,
    now: Optional[datetime] = None,
) -> str:
    """
    校验验证码，成功返回一次性登录 nonce（明文，只返回一次）

    无记录、已锁定、验证码错误三种失败的存储调用次数相同，
    不能从耗时判断邮箱是否有未使用的验证码。

    Raises:
        InvalidOrExpiredCode: 验证码错误、过期、不存在或已锁定
    """
    now = resolve_now(now)
    email = normalize_email(email)

    await _purge_quietly(db, now)

    result = await _store(
        db.execute(
            select(BrandOtp)
            .where(BrandOtp.email == email, BrandOtp.expires_at > now)
            .order_by(BrandOtp.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
    )
    entry = result.scalar_one_or_none()

    # 无记录时也做一次同样的哈希比较
    matched = constant_time_equal(
        hash_otp(code), entry.code_hash if entry is not None else DUMMY_OTP_HASH
    )

    if entry is None:
        reason = "no_record"
    elif entry.attempts >= settings.brand_otp_max_attempts:
        reason = "locked"
    elif not matched:
        reason = "mismatch"
    else:
        reason = None

    if reason is not None:
        await _record_failed_attempt(db, entry.id if reason == "mismatch" else _NO_ROW_ID)
        _reject(reason)

    if not await _delete_otp_if_unexpired(db, entry.id, now):
        # 并发校验或清理任务先删除了该记录
        await db.rollback()
        _reject("consumed")

    await _store(
        db.execute(
            delete(BrandOtp)
            .where(BrandOtp.email == email)
            .execution_options(synchronize_session=False)
        )
    )

    nonce = generate_login_nonce()
    db.add(
        BrandLoginNonce(
            email=email,
            nonce_hash=hash_nonce(nonce),
            expires_at=minutes_after(now, settings.brand_login_nonce_expire_minutes),
            created_at=now,
        )
    )
    await _store(db.commit())

    BRAND_OTP_VERIFICATIONS.labels("success").inc()
    logger.info("Brand login code verified for %s", _sanitize_log_input(email))
    return nonce


async def consume_login_nonce(
    db: AsyncSession,
    nonce: str,
    now: Optional[datetime] = None,
) -> BrandAccount:
    """
    使用一次性 nonce 换取品牌账号（nonce 用后即删）

    Raises:
        InvalidOrExpiredCode: nonce 无效、过期、已使用，或品牌已停用
    """
    now = resolve_now(now)
    nonce_hash = hash_nonce(nonce)

    result = await _store(
        db.execute(
            select(BrandLoginNonce)
            .where(
                BrandLoginNonce.nonce_hash == nonce_hash,
                BrandLoginNonce.expires_at > now,
            )
            .execution_options(populate_existing=True)
        )
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise InvalidOrExpiredCode()

    if not await _delete_nonce_if_unexpired(db, entry.id, now):
        await db.rollback()
        raise InvalidOrExpiredCode()

    brand = await get_brand_by_email(db, entry.email)
    await _store(db.commit())

    if brand is None or not brand.active:
        logger.info("Login nonce used for inactive brand %s", _sanitize_log_input(entry.email))
        raise InvalidOrExpiredCode()

    return brand
