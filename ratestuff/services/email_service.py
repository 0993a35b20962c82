"""
邮件发送服务 - SMTP

发送失败抛出 EmailDeliveryError，由调用方决定如何向上返回。
"""
import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from ratestuff.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """邮件投递失败"""


def _sanitize_log_input(email: str) -> str:
    """清理邮箱地址用于日志记录，防止日志注入"""
    if not email:
        return "(empty)"
    # 移除潜在的换行符和其他控制字符
    return ''.join(char for char in email if char.isprintable())[:100]


# ============================================================================
# 发送器
# ============================================================================

class EmailSender:
    """邮件发送器基类"""

    async def send(self, to_email: str, subject: str, html_content: str) -> Dict[str, Any]:
        """发送邮件，失败时抛出 EmailDeliveryError"""
        raise NotImplementedError


class SmtpSender(EmailSender):
    """SMTP 邮件发送器（阻塞调用放到线程池执行）"""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_name: str = "RateStuff",
        reply_to: str = "",
        timeout: float = 20,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_name = from_name
        self.reply_to = reply_to
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user and self.password)

    async def send(self, to_email: str, subject: str, html_content: str) -> Dict[str, Any]:
        if not self.configured:
            if settings.is_development():
                logger.warning(
                    "Email service not configured, skipping send to %s",
                    _sanitize_log_input(to_email),
                )
                return {"success": False, "skipped": True}
            raise EmailDeliveryError("email service not configured")
        return await asyncio.to_thread(self._send_sync, to_email, subject, html_content)

    def _send_sync(self, to_email: str, subject: str, html_content: str) -> Dict[str, Any]:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{self.from_name} <{self.user}>"
        msg['To'] = to_email
        msg['Message-ID'] = make_msgid(domain=self.user.split("@")[-1] or None)
        if self.reply_to:
            msg['Reply-To'] = self.reply_to
        msg.attach(MIMEText(html_content, 'html', 'utf-8'))

        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
                server.ehlo()
                server.starttls()
                server.ehlo()

            with server:
                server.login(self.user, self.password)
                server.sendmail(self.user, [to_email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            # 不记录完整的异常信息，避免泄露敏感配置（如密码）
            logger.error(
                "Failed to send email to %s: %s",
                _sanitize_log_input(to_email), type(e).__name__,
            )
            raise EmailDeliveryError(type(e).__name__) from e

        logger.info("Email sent successfully to %s", _sanitize_log_input(to_email))
        return {"success": True, "message_id": msg['Message-ID']}


@lru_cache()
def get_email_sender() -> EmailSender:
    """邮件发送器依赖（进程内单例）"""
    return SmtpSender(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        from_name=settings.email_from_name,
        reply_to=settings.email_reply_to,
    )


# ============================================================================
# 邮件模板（内联样式，兼容各种邮件客户端）
# ============================================================================

def _email_wrapper(content: str) -> str:
    """邮件外层包装"""
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta http-equiv="Content-Type" content="text/html; charset=UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0"/>
</head>
<body style="margin: 0; padding: 0; background-color: #f1f5f9;">
{content}
</body>
</html>
"""


def _container(content: str, width: int = 480) -> str:
    """邮件容器"""
    return f"""
<table width="100%" cellpadding="0" cellspacing="0" role="presentation" style="background-color: #f1f5f9;">
    <tr>
        <td align="center" style="padding: 24px 12px;">
            <table width="{width}" cellpadding="0" cellspacing="0" role="presentation" style="background-color: #ffffff; border-radius: 12px;">
                <tr><td style="padding: 28px 24px; font-family: system-ui, -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; color: #0f172a; line-height: 1.6;">
                {content}
                </td></tr>
            </table>
        </td>
    </tr>
</table>
"""


def _code_box(code: str) -> str:
    """验证码展示框"""
    return f"""
<p style="margin: 8px 0 16px; font-family: 'Courier New', Courier, monospace; font-size: 28px; font-weight: 700; letter-spacing: 6px;">{code}</p>
"""


def build_brand_code_email(code: str, expire_minutes: int, login_url: str) -> Tuple[str, str]:
    """品牌登录验证码邮件，返回 (subject, html)"""
    subject = "RateStuff • Your sign-in code"
    safe_url = html.escape(login_url, quote=True)
    body = f"""
<h2 style="margin: 0 0 12px;">RateStuff • Your sign-in code</h2>
<p style="margin: 0 0 16px;">Use the code below within <strong>{expire_minutes} minutes</strong>:</p>
{_code_box(code)}
<p style="margin: 0 0 6px;">Sign in at <a href="{safe_url}">{safe_url}</a></p>
<p style="font-size: 12px; color: #475569; margin-top: 18px;">This is a one-time code. If you did not request it you can ignore this e-mail.</p>
"""
    return subject, _email_wrapper(_container(body))


async def send_brand_code_email(
    sender: EmailSender,
    to_email: str,
    code: str,
    expire_minutes: Optional[int] = None,
) -> Dict[str, Any]:
    """发送品牌登录验证码"""
    subject, html_content = build_brand_code_email(
        code,
        expire_minutes or settings.brand_otp_expire_minutes,
        settings.brand_login_url,
    )
    return await sender.send(to_email, subject, html_content)
