"""
品牌登录 nonce 模型
"""
import uuid
from datetime import datetime
from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from ratestuff.database import Base
from ratestuff.utils.timezone import utc_now_naive


class BrandLoginNonce(Base):
    """验证码通过后签发的一次性登录凭据"""
    __tablename__ = "brand_login_nonces"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), index=True)
    nonce_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive
    )
