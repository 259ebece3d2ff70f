"""トランザクション境界 — 成功時コミット、失敗時は全体ロールバック"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.monitoring.metrics import workflow_errors_total
from src.workflow.errors import TransactionFailure, WorkflowError


@asynccontextmanager
async def atomic(session: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """複数文の書き込みを1トランザクションで実行する

    Raises:
        TransactionFailure: ストレージエラー（詳細はサーバーログのみに記録）
    """
    try:
        yield session
        await session.flush()
        await session.commit()
    except WorkflowError:
        await session.rollback()
        raise
    except SQLAlchemyError as e:
        await session.rollback()
        workflow_errors_total.labels(kind="transaction").inc()
        logger.error("トランザクション失敗、ロールバック", operation=operation, error=str(e))
        raise TransactionFailure("処理に失敗しました。時間をおいて再度お試しください") from e
