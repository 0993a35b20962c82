#!/usr/bin/env python3
"""
为指定邮箱签发会话令牌（管理员访问、冒烟测试用）

运行方式:
  python scripts/issue_session_token.py --email admin@example.com
  python scripts/issue_session_token.py --email brand@example.com --kind brand
"""

import argparse
import asyncio
import os
import sys
import uuid
from datetime import timedelta

# 添加项目根目录到 Python 路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from ratestuff.database import get_db_session
from ratestuff.models.brand_account import BrandAccount
from ratestuff.utils.security import (
    SESSION_KIND_BRAND,
    SESSION_KIND_USER,
    create_session_token,
)


async def resolve_subject(email: str, kind: str) -> str:
    """品牌会话使用品牌账号 ID，普通会话随机生成"""
    if kind != SESSION_KIND_BRAND:
        return str(uuid.uuid4())

    async with get_db_session() as session:
        result = await session.execute(
            select(BrandAccount).where(BrandAccount.email == email)
        )
        brand = result.scalar_one_or_none()

    if brand is None:
        raise SystemExit(f"错误: 品牌账号 {email} 不存在")
    if not brand.active:
        raise SystemExit(f"错误: 品牌账号 {email} 已停用")
    return brand.id


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a session token")
    parser.add_argument("--email", required=True, help="Session e-mail")
    parser.add_argument(
        "--kind",
        choices=[SESSION_KIND_USER, SESSION_KIND_BRAND],
        default=SESSION_KIND_USER,
        help="Session kind",
    )
    parser.add_argument(
        "--minutes", type=int, default=60, help="Token lifetime in minutes"
    )
    args = parser.parse_args()

    email = args.email.strip().lower()
    if not email:
        print("错误: 邮箱不能为空")
        sys.exit(1)

    subject = asyncio.run(resolve_subject(email, args.kind))
    token = create_session_token(
        subject,
        email,
        kind=args.kind,
        expires_delta=timedelta(minutes=args.minutes),
    )
    print(token)


if __name__ == "__main__":
    main()
