"""ワークフロー例外 → HTTPレスポンス変換"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from src.llm_gateway.assistant import AssistantError
from src.storage import StorageError
from src.workflow.errors import (
    ExpiredWindowError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    TransactionFailure,
    ValidationError,
    WorkflowError,
)

STATUS_BY_ERROR: dict[type[WorkflowError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ExpiredWindowError: status.HTTP_410_GONE,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    TransactionFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_body(message: str, code: str) -> dict[str, object]:
    return {"success": False, "error": message, "code": code}


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    status_code = STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error("ワークフローエラー", path=request.url.path, code=exc.code)
    else:
        logger.info("ワークフロー操作拒否", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=status_code, content=error_body(exc.message, exc.code))


async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=error_body(str(exc), AssistantError.code),
    )


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("ファイルの保存に失敗しました", "storage_error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(AssistantError, assistant_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StorageError, storage_error_handler)  # type: ignore[arg-type]
