"""
管理员鉴权

管理员白名单在进程启动时由配置构建一次，之后只读；
鉴权只做集合成员判断，不访问数据库。
"""
import logging
from collections.abc import Mapping
from typing import Any, Iterable, Optional

from ratestuff.config import Settings, normalize_email
from ratestuff.errors import Unauthorized

logger = logging.getLogger(__name__)


class AdminAllowList:
    """不可变的管理员邮箱集合（小写）"""

    __slots__ = ("_emails",)

    def __init__(self, emails: Iterable[str] = ()):
        self._emails = frozenset(
            normalize_email(email) for email in emails if email and email.strip()
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdminAllowList":
        """ADMIN_EMAILS 优先，回退 ADMIN_EMAIL"""
        return cls(settings.admin_email_set)

    def __contains__(self, email: object) -> bool:
        if not isinstance(email, str):
            return False
        return normalize_email(email) in self._emails

    def __len__(self) -> int:
        return len(self._emails)

    def __repr__(self) -> str:
        return f"AdminAllowList(size={len(self._emails)})"


def _session_email(session: Any) -> Optional[str]:
    """兼容 Session 模型与 {"user": {"email": ...}} 字典两种形态"""
    if session is None:
        return None
    if isinstance(session, Mapping):
        user = session.get("user")
    else:
        user = getattr(session, "user", None)
    if user is None:
        return None
    if isinstance(user, Mapping):
        email = user.get("email")
    else:
        email = getattr(user, "email", None)
    if not isinstance(email, str) or not email:
        return None
    return email


class AdminGuard:
    """管理员守卫：require_admin 严格校验，is_admin 返回布尔值"""

    def __init__(self, allow_list: AdminAllowList):
        self.allow_list = allow_list

    def authorize(self, session: Any) -> Optional[Any]:
        """通过返回会话本身，否则返回 None"""
        email = _session_email(session)
        if email is None or email.lower() not in self.allow_list:
            return None
        return session

    def require_admin(self, session: Any) -> Any:
        authorized = self.authorize(session)
        if authorized is None:
            logger.debug("Admin check rejected")
            raise Unauthorized()
        return authorized

    def is_admin(self, session: Any) -> bool:
        try:
            return self.authorize(session) is not None
        except Exception:
            logger.debug("Admin check failed on malformed session", exc_info=True)
            return False
