"""
品牌账号与品牌登录 Schemas
"""
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from ratestuff.config import normalize_email

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
CARD_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


class RequestCodeRequest(BaseModel):
    """请求登录验证码"""
    email: EmailStr

    @field_validator("email")
    @classmethod
    def clean_email(cls, value: str) -> str:
        return normalize_email(value)


class VerifyCodeRequest(BaseModel):
    """校验登录验证码"""
    email: EmailStr
    code: str = Field(pattern=r"^\d{6}$")

    @field_validator("email")
    @classmethod
    def clean_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("code", mode="before")
    @classmethod
    def strip_code(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class SessionExchangeRequest(BaseModel):
    """使用 nonce 换取品牌会话"""
    nonce: str = Field(min_length=16, max_length=128)


class BrandAccountResponse(BaseModel):
    """品牌账号响应"""
    id: str
    email: str
    slug: str
    display_name: Optional[str]
    active: bool
    bio: Optional[str] = None
    cover_image_url: Optional[str] = None
    card_color: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class BrandAccountCreate(BaseModel):
    """管理员创建品牌账号"""
    email: EmailStr
    display_name: Optional[str] = Field(default=None, max_length=100)
    slug: Optional[str] = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def clean_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("display_name")
    @classmethod
    def clean_display_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        cleaned = value.strip()
        return cleaned or None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        cleaned = value.strip().lower()
        if not cleaned:
            return None
        if not SLUG_PATTERN.match(cleaned):
            raise ValueError("slug must be lowercase letters, digits and dashes")
        return cleaned


class BrandAccountUpdate(BaseModel):
    """管理员启用/停用品牌账号"""
    active: bool


class BrandProfileUpdate(BaseModel):
    """品牌主更新资料（只更新请求中出现的字段，空字符串视为清空）"""
    bio: Optional[str] = Field(default=None, max_length=2000)
    cover_image_url: Optional[str] = Field(default=None, max_length=500)

    @field_validator("bio", "cover_image_url")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        cleaned = value.strip()
        return cleaned or None


class CardColorUpdate(BaseModel):
    """卡片颜色，null 或空字符串表示恢复默认"""
    color: Optional[str] = None


class BrandSessionResponse(BaseModel):
    """品牌登录令牌响应"""
    ok: bool = True
    access_token: str
    token_type: str = "bearer"
    brand: BrandAccountResponse
