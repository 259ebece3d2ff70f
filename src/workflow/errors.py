"""ワークフロー例外 — 種別ごとに型とコードを持つ

APIレイヤがHTTPステータスへ変換する。いずれもリクエスト単位の失敗であり、
プロセスを停止させるものはない。
"""


class WorkflowError(Exception):
    """ワークフロー操作エラーの基底"""

    code = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(WorkflowError):
    """対象が存在しない、または呼び出し元の組織に属さない"""

    code = "not_found"


class InvalidTransitionError(WorkflowError):
    """現在の状態では許可されない操作"""

    code = "invalid_transition"


class ExpiredWindowError(WorkflowError):
    """回答期限切れ — 監査人へ再送付を依頼する"""

    code = "expired_window"


class ValidationError(WorkflowError):
    """必須項目不足・値不正（書き込み前に拒否）"""

    code = "validation_error"


class PermissionDeniedError(WorkflowError):
    """ロールが操作を許可されていない"""

    code = "permission_denied"


class TransactionFailure(WorkflowError):
    """複数文書き込み中のストレージエラー（全体ロールバック済み）"""

    code = "transaction_failure"
