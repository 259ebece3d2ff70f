"""メール通知プロバイダ（SMTP）"""

import asyncio
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from loguru import logger

from src.config.settings import Settings, get_settings
from src.monitoring.metrics import notifications_total
from src.notifications.base import BaseNotificationProvider, DeliveryResult, NotificationMessage


class EmailNotificationProvider(BaseNotificationProvider):
    """SMTP経由のメール送信

    smtplib はブロッキングのためワーカースレッドで実行する。
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    @property
    def provider_name(self) -> str:
        return "email"

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.smtp_host)

    def _build(self, message: NotificationMessage, recipient: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.title
        msg["From"] = formataddr((self._settings.smtp_from_name, self._settings.smtp_from_email))
        msg["To"] = recipient
        msg.attach(MIMEText(message.body, "plain", "utf-8"))
        if message.html_body:
            msg.attach(MIMEText(message.html_body, "html", "utf-8"))
        return msg

    def _send_sync(self, msg: MIMEMultipart, recipient: str) -> None:
        s = self._settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout) as server:
            if s.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if s.smtp_username and s.smtp_password:
                server.login(s.smtp_username, s.smtp_password)
            server.sendmail(s.smtp_from_email, [recipient], msg.as_string())

    async def deliver(self, message: NotificationMessage, recipient: str) -> DeliveryResult:
        if not self.is_configured:
            notifications_total.labels(provider="email", kind=message.kind, status="skipped").inc()
            logger.warning("SMTP未設定のためメール送信をスキップ", kind=message.kind)
            return DeliveryResult(sent=False, error="メール送信が設定されていません")
        if not recipient:
            notifications_total.labels(provider="email", kind=message.kind, status="failure").inc()
            return DeliveryResult(sent=False, error="送信先メールアドレスがありません")

        try:
            await asyncio.to_thread(self._send_sync, self._build(message, recipient), recipient)
        except (smtplib.SMTPException, OSError) as e:
            notifications_total.labels(provider="email", kind=message.kind, status="failure").inc()
            logger.error("メール送信失敗", kind=message.kind, error=str(e))
            return DeliveryResult(sent=False, error="メール送信に失敗しました")

        notifications_total.labels(provider="email", kind=message.kind, status="success").inc()
        logger.info("メール送信完了", kind=message.kind, organization_id=message.organization_id)
        return DeliveryResult(sent=True)

    async def health_check(self) -> bool:
        if not self.is_configured:
            return False
        s = self._settings

        def _noop() -> bool:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout) as server:
                return server.noop()[0] == 250

        try:
            return await asyncio.to_thread(_noop)
        except (smtplib.SMTPException, OSError):
            return False
