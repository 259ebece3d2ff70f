"""Prometheus メトリクス定義"""

from prometheus_client import Counter, Histogram, Info

# ── アプリケーション情報 ──────────────────────────────
app_info = Info("audit_workflow", "アプリケーション情報")

# ── ワークフロー メトリクス ───────────────────────────
issue_transitions_total = Counter(
    "issue_transitions_total",
    "監査課題の状態遷移数",
    ["action", "to_status"],
)

workflow_errors_total = Counter(
    "workflow_errors_total",
    "ワークフロー操作エラー数",
    ["kind"],  # not_found / invalid_transition / expired_window / validation / transaction
)

risk_assessment_saves_total = Counter(
    "risk_assessment_saves_total",
    "リスク評価一括保存回数",
    ["outcome"],
)

auditee_responses_total = Counter(
    "auditee_responses_total",
    "被監査部門からの回答数",
    ["channel"],  # management_comment / followup
)

# ── 通知 メトリクス ───────────────────────────────────
notifications_total = Counter(
    "notifications_total",
    "通知送信数",
    ["provider", "kind", "status"],
)

# ── LLM メトリクス ────────────────────────────────────
llm_requests_total = Counter(
    "llm_requests_total",
    "LLM APIリクエスト数",
    ["provider", "model", "status"],
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "LLMトークン使用量",
    ["provider", "model", "direction"],  # direction: input/output
)

llm_request_duration_seconds = Histogram(
    "llm_request_duration_seconds",
    "LLM API応答時間",
    ["provider", "model"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

# ── レポート メトリクス ───────────────────────────────
report_exports_total = Counter(
    "report_exports_total",
    "監査報告書出力数",
    ["format"],
)
