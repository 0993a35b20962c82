"""
验证码 / nonce 的生成与哈希
"""
import hmac
import secrets
from hashlib import sha256

OTP_SPACE = 1_000_000
OTP_LENGTH = 6


def sha256_hex(value: str) -> str:
    return sha256(value.encode("utf-8")).hexdigest()


def hash_otp(code: str) -> str:
    """验证码哈希（只落库哈希，不落明文）"""
    return sha256_hex(code)


def hash_nonce(nonce: str) -> str:
    return sha256_hex(nonce)


def generate_otp_code() -> str:
    """[0, 1_000_000) 均匀随机，补零到 6 位"""
    return str(secrets.randbelow(OTP_SPACE)).zfill(OTP_LENGTH)


def generate_login_nonce() -> str:
    return secrets.token_urlsafe(32)


def constant_time_equal(a: str, b: str) -> bool:
    """
    常量时间比较

    长度不同直接返回 False；长度相同时比较耗时与首个差异位置无关。
    """
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# 无记录时用于比较的占位哈希，保证两条路径工作量一致
DUMMY_OTP_HASH = hash_otp("not-a-valid-code")
