"""audit-workflow — 内部監査ワークフローサービス"""

__version__ = "0.1.0"
