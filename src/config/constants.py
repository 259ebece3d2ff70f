"""アプリケーション定数定義"""

from enum import StrEnum


# ── ユーザーロール ────────────────────────────────────
class UserRole(StrEnum):
    SYSTEM_ADMIN = "system_admin"
    HEAD_OF_AUDIT = "head_of_audit"
    MANAGER = "manager"
    AUDITOR = "auditor"
    AUDITEE = "auditee"


# 監査部門ロール（調書作成・課題起票が可能）
AUDIT_STAFF_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.HEAD_OF_AUDIT, UserRole.MANAGER, UserRole.AUDITOR}
)
# 査閲ロール（承認・差戻し・削除が可能）
REVIEWER_ROLES: frozenset[UserRole] = frozenset({UserRole.HEAD_OF_AUDIT, UserRole.MANAGER})


# ── リスクバンド ──────────────────────────────────────
class RiskBand(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# ── 監査ステータス ────────────────────────────────────
class AuditStatus(StrEnum):
    PLANNED = "planned"
    FIELDWORK = "fieldwork"
    REPORTING = "reporting"
    CLOSED = "closed"


# ── 監査課題ステータス ────────────────────────────────
class IssueStatus(StrEnum):
    DRAFT = "draft"
    SENT_FOR_VERIFY = "sent_for_verify"
    APPROVED = "approved"
    SENT_FOR_AMENDMENT = "sent_for_amendment"
    REMOVED = "removed"


# 手続ごとに同時に1件のみ許される状態
NON_TERMINAL_ISSUE_STATUSES: frozenset[IssueStatus] = frozenset(
    {IssueStatus.DRAFT, IssueStatus.SENT_FOR_VERIFY, IssueStatus.SENT_FOR_AMENDMENT}
)


# ── 監査手続結果 ──────────────────────────────────────
class ProcedureResult(StrEnum):
    PASS = "pass"
    FAIL = "fail"


# ── 調書カラム種別 ────────────────────────────────────
class ColumnType(StrEnum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    MULTISELECT = "multiselect"
    FILE = "file"
    URL = "url"
    FORMULA = "formula"


# ── フォローアップ追跡ステータス ──────────────────────
class FollowupState(StrEnum):
    PENDING = "pending"
    OVERDUE = "overdue"
    RESPONDED = "responded"
    RESOLVED = "resolved"


# ── ストレージ区分 ────────────────────────────────────
class StorageCategory(StrEnum):
    EVIDENCE = "evidence"
    COMMENT_ATTACHMENT = "comment_attachments"
    FOLLOWUP_EVIDENCE = "followup_evidence"
    WORKING_PAPER_FILE = "working_paper_files"


# ── 定数値 ────────────────────────────────────────────
LIKELIHOOD_RANGE = (1, 5)
IMPACT_RANGE = (1, 5)
BAND_LOW_MAX = 6
BAND_MEDIUM_MAX = 14
GENERATED_PASSWORD_LENGTH = 12
API_VERSION = "v1"
