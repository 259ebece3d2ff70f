"""調書テンプレート — カラム型定義・行バリデーション・計算式"""

import ast
import math
import operator
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from urllib.parse import urlparse

from loguru import logger
from sqlalchemy import delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import ColumnType
from src.db.models.fieldwork import AuditProcedure
from src.db.models.working_paper import (
    TestingProcedureAttachment,
    WorkingPaperColumn,
    WorkingPaperTemplate,
)
from src.db.repositories.base import BaseRepository
from src.workflow.context import RequestContext
from src.workflow.errors import InvalidTransitionError, ValidationError
from src.workflow.scope import get_owned_template
from src.workflow.transaction import atomic

# ── 計算式 ────────────────────────────────────────────
# 他カラムを1始まりの位置で参照する: 例 "C2 * C3" / "(C1 + C2) / 2"

_REFERENCE = re.compile(r"^C([1-9][0-9]*)$")
_BINARY_OPS: dict[type, Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
_UNARY_OPS: dict[type, Any] = {ast.UAdd: operator.pos, ast.USub: operator.neg}


def _parse_formula(expression: str) -> ast.Expression:
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ValidationError(f"計算式の構文が不正です: {expression}") from e

    for node in ast.walk(tree):
        if isinstance(node, (ast.Expression, ast.BinOp, ast.UnaryOp, ast.Load)):
            continue
        if type(node) in _BINARY_OPS or type(node) in _UNARY_OPS:
            continue
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            continue
        if isinstance(node, ast.Name) and _REFERENCE.match(node.id):
            continue
        raise ValidationError(f"計算式に使用できない要素が含まれています: {expression}")
    return tree


def formula_references(expression: str) -> set[int]:
    """計算式が参照するカラム位置（1始まり）"""
    tree = _parse_formula(expression)
    refs: set[int] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name):
            match = _REFERENCE.match(node.id)
            if match:
                refs.add(int(match.group(1)))
    return refs


def evaluate_formula(expression: str, values_by_position: dict[int, Any]) -> float | None:
    """計算式を評価。参照先が数値でない・ゼロ除算の場合はNone"""
    tree = _parse_formula(expression)

    def _eval(node: ast.AST) -> float:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant):
            return float(node.value)
        if isinstance(node, ast.Name):
            match = _REFERENCE.match(node.id)
            value = values_by_position.get(int(match.group(1))) if match else None
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(node.id)
            return float(value)
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](_eval(node.operand))  # type: ignore[no-any-return]
        if isinstance(node, ast.BinOp):
            return _BINARY_OPS[type(node.op)](_eval(node.left), _eval(node.right))  # type: ignore[no-any-return]
        raise TypeError(type(node).__name__)

    try:
        return _eval(tree)
    except (TypeError, ZeroDivisionError):
        return None


# ── カラム定義 ────────────────────────────────────────


@dataclass
class ColumnSpec:
    """テンプレート保存時のカラム入力"""

    name: str
    column_type: ColumnType
    options: list[str] | str | None = None
    formula: str | None = None


@dataclass
class TemplateDetail:
    template: WorkingPaperTemplate
    columns: list[WorkingPaperColumn] = field(default_factory=list)


def normalize_options(options: list[str] | str | None) -> list[str]:
    """改行区切り文字列またはリストを選択肢リストへ"""
    if options is None:
        return []
    raw = options.splitlines() if isinstance(options, str) else options
    return list(dict.fromkeys(o.strip() for o in raw if o and o.strip()))


def validate_columns(specs: list[ColumnSpec]) -> list[dict[str, Any]]:
    """カラム定義を検証し、0始まりの連番で並べた保存用辞書を返す"""
    if not specs:
        raise ValidationError("カラムを1つ以上定義してください")

    names = [s.name.strip() if s.name else "" for s in specs]
    if any(not n for n in names):
        raise ValidationError("カラム名は必須です")
    if len(set(names)) != len(names):
        raise ValidationError("カラム名が重複しています")

    prepared: list[dict[str, Any]] = []
    for position, (spec, name) in enumerate(zip(specs, names, strict=True), start=1):
        try:
            column_type = ColumnType(spec.column_type)
        except ValueError as e:
            raise ValidationError(f"未対応のカラム型です: {spec.column_type}") from e

        options: list[str] | None = None
        formula: str | None = None
        if column_type in (ColumnType.SELECT, ColumnType.MULTISELECT):
            options = normalize_options(spec.options)
            if not options:
                raise ValidationError(f"選択肢が未定義です: {name}")
        elif column_type == ColumnType.FORMULA:
            if not spec.formula or not spec.formula.strip():
                raise ValidationError(f"計算式が未定義です: {name}")
            formula = spec.formula.strip()
            for ref in formula_references(formula):
                if ref == position or ref > len(specs):
                    raise ValidationError(f"計算式の参照が不正です: {name} → C{ref}")
                if ColumnType(specs[ref - 1].column_type) == ColumnType.FORMULA:
                    raise ValidationError(f"計算式カラムは他の計算式カラムを参照できません: {name} → C{ref}")

        prepared.append(
            {
                "name": name,
                "column_type": column_type.value,
                "column_order": position - 1,
                "options": options,
                "formula": formula,
            }
        )
    return prepared


# ── 行バリデーション ──────────────────────────────────


def _coerce_value(column: WorkingPaperColumn, value: Any) -> Any:
    if value is None or value == "" or value == []:
        return None

    column_type = ColumnType(column.column_type)
    if column_type == ColumnType.TEXT:
        return str(value)
    if column_type == ColumnType.NUMBER:
        if isinstance(value, bool):
            raise ValidationError(f"数値を入力してください: {column.name}")
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"数値を入力してください: {column.name}") from e
        if not math.isfinite(number):
            raise ValidationError(f"有限の数値を入力してください: {column.name}")
        return number
    if column_type == ColumnType.DATE:
        if isinstance(value, date):
            return value.isoformat()
        try:
            return date.fromisoformat(str(value)).isoformat()
        except ValueError as e:
            raise ValidationError(f"日付はYYYY-MM-DD形式で入力してください: {column.name}") from e
    if column_type == ColumnType.SELECT:
        if str(value) not in (column.options or []):
            raise ValidationError(f"選択肢にない値です: {column.name}")
        return str(value)
    if column_type == ColumnType.MULTISELECT:
        chosen = value if isinstance(value, list) else [value]
        invalid = [v for v in chosen if str(v) not in (column.options or [])]
        if invalid:
            raise ValidationError(f"選択肢にない値です: {column.name}")
        return [str(v) for v in chosen]
    if column_type == ColumnType.URL:
        parsed = urlparse(str(value))
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"URLはhttp(s)形式で入力してください: {column.name}")
        return str(value)
    if column_type == ColumnType.FILE:
        return str(value)
    raise ValidationError(f"入力値を持たないカラムです: {column.name}")


def validate_row(columns: list[WorkingPaperColumn], values: dict[str, Any]) -> dict[str, Any]:
    """1行をテンプレートのカラム定義で検証・正規化

    計算式カラムの値は読み出し時に再計算するため、入力に含まれていても破棄する。
    """
    by_name = {c.name: c for c in columns}
    unknown = [key for key in values if key not in by_name]
    if unknown:
        raise ValidationError(f"テンプレートにないカラムです: {', '.join(unknown)}")

    normalized: dict[str, Any] = {}
    for column in sorted(columns, key=lambda c: c.column_order):
        if column.column_type == ColumnType.FORMULA.value:
            continue
        normalized[column.name] = _coerce_value(column, values.get(column.name))
    return normalized


def compute_row(columns: list[WorkingPaperColumn], stored: dict[str, Any]) -> dict[str, Any]:
    """保存値に計算式カラムの結果を加えた表示用の行"""
    ordered = sorted(columns, key=lambda c: c.column_order)
    by_position = {c.column_order + 1: stored.get(c.name) for c in ordered}
    computed = dict(stored)
    for column in ordered:
        if column.column_type == ColumnType.FORMULA.value and column.formula:
            computed[column.name] = evaluate_formula(column.formula, by_position)
    return computed


# ── テンプレートCRUD ──────────────────────────────────


class WorkingPaperService:
    """調書テンプレートの作成・更新・削除"""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def columns_for(self, template_id: int) -> list[WorkingPaperColumn]:
        query = (
            select(WorkingPaperColumn)
            .where(WorkingPaperColumn.working_paper_id == template_id)
            .order_by(WorkingPaperColumn.column_order)
        )
        return list((await self._session.execute(query)).scalars().all())

    async def create_template(
        self,
        ctx: RequestContext,
        name: str,
        columns: list[ColumnSpec],
        allow_row_insert: bool = True,
        description: str | None = None,
    ) -> TemplateDetail:
        ctx.require_audit_staff("調書テンプレートの作成")
        if not name or not name.strip():
            raise ValidationError("テンプレート名は必須です")
        prepared = validate_columns(columns)

        async with atomic(self._session, "create_template"):
            template = WorkingPaperTemplate(
                organization_id=ctx.organization_id,
                name=name.strip(),
                description=description,
                allow_row_insert=allow_row_insert,
                created_by=ctx.user_id,
            )
            self._session.add(template)
            await self._session.flush()
            created = [WorkingPaperColumn(working_paper_id=template.id, **values) for values in prepared]
            self._session.add_all(created)

        logger.info("調書テンプレート作成", template_id=template.id, columns=len(created))
        return TemplateDetail(template=template, columns=created)

    async def update_template(
        self,
        ctx: RequestContext,
        template_id: int,
        name: str,
        columns: list[ColumnSpec],
        allow_row_insert: bool = True,
        description: str | None = None,
    ) -> TemplateDetail:
        """カラムは全置換（並び順は0からの連番に振り直す）"""
        ctx.require_audit_staff("調書テンプレートの更新")
        template = await get_owned_template(self._session, ctx, template_id)
        if not name or not name.strip():
            raise ValidationError("テンプレート名は必須です")
        prepared = validate_columns(columns)

        async with atomic(self._session, "update_template"):
            template.name = name.strip()
            template.description = description
            template.allow_row_insert = allow_row_insert
            await self._session.execute(
                delete(WorkingPaperColumn).where(WorkingPaperColumn.working_paper_id == template.id)
            )
            created = [WorkingPaperColumn(working_paper_id=template.id, **values) for values in prepared]
            self._session.add_all(created)

        logger.info("調書テンプレート更新", template_id=template.id, columns=len(created))
        return TemplateDetail(template=template, columns=created)

    async def delete_template(self, ctx: RequestContext, template_id: int) -> None:
        """フォルダに添付済み・手続から参照中のテンプレートは削除不可"""
        ctx.require_audit_staff("調書テンプレートの削除")
        template = await get_owned_template(self._session, ctx, template_id)

        in_use = await self._session.execute(
            select(
                or_(
                    exists().where(TestingProcedureAttachment.working_paper_id == template.id),
                    exists().where(AuditProcedure.working_paper_id == template.id),
                )
            )
        )
        if in_use.scalar():
            raise InvalidTransitionError("使用中の調書テンプレートは削除できません")

        async with atomic(self._session, "delete_template"):
            await self._session.delete(template)
        logger.info("調書テンプレート削除", template_id=template_id)

    async def get_template(self, ctx: RequestContext, template_id: int) -> TemplateDetail:
        template = await get_owned_template(self._session, ctx, template_id)
        return TemplateDetail(template=template, columns=await self.columns_for(template.id))

    async def list_templates(self, ctx: RequestContext) -> list[WorkingPaperTemplate]:
        return await BaseRepository(WorkingPaperTemplate, self._session).list(
            ctx.organization_id, limit=1000, order_by="name"
        )
