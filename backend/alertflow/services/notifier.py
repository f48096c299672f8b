"""
通知分发模块 (Notification Dispatch Module)

实现 NotificationDispatcher 接口的两个渠道：
- email: 通过 aiosmtplib 发送 SMTP 邮件
- teams / webhook: 通过 httpx 向 Incoming Webhook 推送消息

发送失败只返回 False 并记录日志，不重试，不向引擎抛出异常。

Implements the NotificationDispatcher interface for two channel families:
email over SMTP (aiosmtplib) and chat incoming webhooks (httpx). Failures are
logged and reported as False; never retried, never raised into the engine.
"""
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

import aiosmtplib
import httpx

from alertflow.core.config import settings
from alertflow.services.interfaces import NotificationDispatcher

logger = logging.getLogger(__name__)

# Teams MessageCard 主题色，按严重程度区分
SEVERITY_COLORS = {
    "critical": "FF0000",
    "error": "FF4500",
    "high": "FF8C00",
    "warning": "FFA500",
    "medium": "FFD700",
    "low": "1E90FF",
    "info": "0078D7",
}


class EmailDispatcher(NotificationDispatcher):
    """SMTP 邮件分发器 (SMTP email dispatcher)"""

    def __init__(
        self,
        hostname: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: Optional[bool] = None,
        sender: Optional[str] = None,
    ) -> None:
        self.hostname = hostname if hostname is not None else settings.smtp_host
        self.port = port if port is not None else settings.smtp_port
        self.username = username if username is not None else settings.smtp_user
        self.password = password if password is not None else settings.smtp_password
        self.use_ssl = use_ssl if use_ssl is not None else settings.smtp_ssl
        self.sender = sender or settings.smtp_from or self.username

    def build_message(self, recipients: List[str], subject: str, body: str, severity: Optional[str]) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = f"[{severity.upper()}] {subject}" if severity else subject
        msg.attach(MIMEText(body, "plain", "utf-8"))
        return msg

    async def notify(self, channel, recipients, subject, body, severity=None) -> bool:
        if not self.hostname:
            logger.warning("Email channel not configured (smtp_host is empty)")
            return False
        if not recipients:
            logger.warning("Email notification without recipients: %s", subject)
            return False

        kwargs = {
            "hostname": self.hostname,
            "port": self.port,
            "username": self.username or None,
            "password": self.password or None,
            "timeout": settings.notification_timeout_seconds,
        }
        if self.use_ssl:
            kwargs["use_tls"] = True
        else:
            kwargs["start_tls"] = True

        try:
            await aiosmtplib.send(self.build_message(recipients, subject, body, severity), **kwargs)
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Email to %s failed: %s", ", ".join(recipients), e)
            return False
        logger.info("Email '%s' sent to %d recipient(s)", subject, len(recipients))
        return True


class ChatWebhookDispatcher(NotificationDispatcher):
    """
    聊天 Webhook 分发器 (Chat webhook dispatcher)

    teams 渠道发送 MessageCard 格式；其他渠道发送通用 JSON。
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.url = url if url is not None else settings.chat_webhook_url
        self.timeout = timeout if timeout is not None else settings.notification_timeout_seconds

    @staticmethod
    def build_payload(channel: str, recipients: List[str], subject: str, body: str, severity: Optional[str]) -> dict:
        if channel == "teams":
            return {
                "@type": "MessageCard",
                "@context": "https://schema.org/extensions",
                "themeColor": SEVERITY_COLORS.get((severity or "info").lower(), SEVERITY_COLORS["info"]),
                "summary": subject,
                "title": subject,
                "text": body.replace("\n", "<br>"),
            }
        return {
            "title": subject,
            "text": body,
            "severity": severity,
            "recipients": recipients,
        }

    async def notify(self, channel, recipients, subject, body, severity=None) -> bool:
        if not self.url:
            logger.warning("Chat webhook for channel '%s' not configured", channel)
            return False
        payload = self.build_payload(channel, recipients, subject, body, severity)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Chat webhook (%s) request failed: %s", channel, e)
            return False
        if resp.status_code >= 400:
            logger.error("Chat webhook (%s) returned HTTP %d: %s", channel, resp.status_code, resp.text[:200])
            return False
        return True


def build_dispatchers() -> dict:
    """按配置构建渠道 → 分发器映射 (Build the channel → dispatcher mapping)."""
    chat = ChatWebhookDispatcher()
    return {
        "email": EmailDispatcher(),
        "teams": chat,
        "webhook": chat,
    }
