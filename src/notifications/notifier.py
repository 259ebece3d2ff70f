"""監査課題の通知文面 — コメント依頼・フォローアップ依頼・ログイン情報"""

from datetime import date
from html import escape

from src.config.settings import get_settings
from src.db.models.audit import Audit, Auditee
from src.db.models.issue import AuditIssue
from src.notifications.base import (
    BaseNotificationProvider,
    DeliveryResult,
    NotificationMessage,
    NotificationPriority,
)


def _html(heading: str, lines: list[str], link: str | None) -> str:
    body = "".join(f"<p>{escape(line)}</p>" for line in lines)
    button = f'<p><a href="{escape(link)}">ポータルを開く</a></p>' if link else ""
    return f"<div><h2>{escape(heading)}</h2>{body}{button}</div>"


class IssueNotifier:
    """被監査部門への通知を組み立てて送信する"""

    def __init__(self, provider: BaseNotificationProvider, base_url: str | None = None) -> None:
        self._provider = provider
        self._base_url = (base_url or get_settings().app_base_url).rstrip("/")

    @property
    def portal_url(self) -> str:
        return f"{self._base_url}/auditee/inbox"

    async def _send(self, auditee: Auditee, kind: str, title: str, lines: list[str], link: str | None) -> DeliveryResult:
        message = NotificationMessage(
            title=title,
            body="\n".join([*lines, link or ""]).strip(),
            html_body=_html(title, lines, link),
            priority=NotificationPriority.MEDIUM,
            organization_id=auditee.organization_id,
            kind=kind,
            metadata={"auditee_id": auditee.id},
            action_url=link,
        )
        return await self._provider.deliver(message, auditee.official_email)

    async def comment_requested(self, auditee: Auditee, audit: Audit, issue: AuditIssue, due_date: date) -> DeliveryResult:
        lines = [
            f"{auditee.name} 御中",
            f"監査「{audit.name}」の指摘事項について経営者コメントをお願いします。",
            f"指摘事項: {issue.title}",
            f"回答期限: {due_date.isoformat()}",
        ]
        return await self._send(auditee, "comment_request", "【内部監査】経営者コメントのご依頼", lines, self.portal_url)

    async def followup_requested(self, auditee: Auditee, audit: Audit, issue: AuditIssue, due_date: date) -> DeliveryResult:
        lines = [
            f"{auditee.name} 御中",
            f"監査「{audit.name}」の指摘事項について是正状況のご報告をお願いします。",
            f"指摘事項: {issue.title}",
            f"回答期限: {due_date.isoformat()}",
        ]
        return await self._send(auditee, "followup_request", "【内部監査】フォローアップのご依頼", lines, self.portal_url)

    async def credentials(self, auditee: Auditee, password: str) -> DeliveryResult:
        lines = [
            f"{auditee.name} 様",
            "内部監査ポータルのアカウントを作成しました。",
            f"ログインID: {auditee.official_email}",
            f"パスワード: {password}",
            "初回ログイン後にパスワードを変更してください。",
        ]
        return await self._send(
            auditee, "credentials", "【内部監査】ポータルのログイン情報", lines, f"{self._base_url}/auth/login"
        )
