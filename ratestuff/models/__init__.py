"""
数据库模型
"""
from ratestuff.models.brand_account import BrandAccount
from ratestuff.models.brand_otp import BrandOtp
from ratestuff.models.brand_login_nonce import BrandLoginNonce

__all__ = [
    "BrandAccount",
    "BrandOtp",
    "BrandLoginNonce",
]
