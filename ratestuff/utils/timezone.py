"""
时间工具

库里所有时间列都是 naive UTC；验证码签发、校验、清理共用这一时钟。
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now_naive() -> datetime:
    """当前 UTC 时间，去掉 tzinfo"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(dt: datetime) -> datetime:
    """带时区的时间转成 naive UTC；naive 输入视为已是 UTC"""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    """测试可注入固定时间，默认取当前时间"""
    return to_utc(now) if now is not None else utc_now_naive()


def minutes_after(start: datetime, minutes: int) -> datetime:
    return start + timedelta(minutes=minutes)
