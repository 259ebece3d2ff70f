"""構造化ログ設定 — loguru + JSON形式"""

import sys
from contextvars import ContextVar
from typing import Any

from loguru import logger

# リクエストスコープの相関ID・組織ID・ユーザーIDを保持
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
organization_id_var: ContextVar[str] = ContextVar("organization_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

_CONTEXT_KEYS = ("correlation_id", "organization_id", "user_id")


def _json_formatter(record: dict[str, Any]) -> str:
    """JSON構造化ログフォーマッタ

    loguru は戻り値をテンプレートとして扱うため、JSON本体は extra に格納して参照させる。
    """
    import orjson

    log_entry = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
        "correlation_id": correlation_id_var.get(""),
        "organization_id": organization_id_var.get(""),
        "user_id": user_id_var.get(""),
    }

    # extra フィールドを追加（状態遷移のissue_id等）
    if record.get("extra"):
        for key, value in record["extra"].items():
            if key not in _CONTEXT_KEYS and key != "_json":
                log_entry[key] = value

    if record["exception"]:
        log_entry["exception"] = {
            "type": record["exception"].type.__name__ if record["exception"].type else None,
            "value": str(record["exception"].value) if record["exception"].value else None,
        }

    record["extra"]["_json"] = orjson.dumps(log_entry, default=str).decode()
    return "{extra[_json]}\n"


def bind_request_context(organization_id: str | int | None, user_id: str | int | None) -> None:
    """認証済みプリンシパルをログコンテキストに設定"""
    if organization_id is not None:
        organization_id_var.set(str(organization_id))
    if user_id is not None:
        user_id_var.set(str(user_id))


def setup_logging(level: str = "INFO", json_output: bool = True, log_dir: str | None = "logs") -> None:
    """ログ設定を初期化

    Args:
        level: ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON形式で出力するか（本番=True, 開発=False）
        log_dir: ファイル出力先。Noneならファイル出力しない
    """
    logger.remove()

    if json_output:
        logger.add(sys.stdout, format=_json_formatter, level=level, serialize=False)
    else:
        # 開発用: 読みやすいカラー出力
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{module}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message} | {extra}"
            ),
            level=level,
            colorize=True,
        )

    if log_dir:
        logger.add(
            f"{log_dir}/audit-workflow_{{time:YYYY-MM-DD}}.log",
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            format=_json_formatter if json_output else "{time} | {level} | {module}:{function}:{line} | {message}",
            level=level,
        )

    logger.info("ログ設定初期化完了", level=level, json_output=json_output)
