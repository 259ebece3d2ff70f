"""ヘルスチェック — 依存サービスの状態確認"""

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger
from sqlalchemy import text


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus
    details: dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0.0


@dataclass
class SystemHealth:
    status: HealthStatus
    components: list[ComponentHealth]
    version: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "version": self.version,
            "components": [
                {
                    "name": c.name,
                    "status": c.status,
                    "latency_ms": round(c.latency_ms, 2),
                    "details": c.details,
                }
                for c in self.components
            ],
        }


class HealthChecker:
    """依存サービスのヘルスチェックを実行"""

    async def check_database(self, engine: Any) -> ComponentHealth:
        """DB接続チェック"""
        start = time.monotonic()
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            latency = (time.monotonic() - start) * 1000
            return ComponentHealth(
                name="database",
                status=HealthStatus.HEALTHY,
                latency_ms=latency,
                details={"dialect": engine.dialect.name},
            )
        except Exception as e:
            latency = (time.monotonic() - start) * 1000
            logger.error("DB ヘルスチェック失敗", error=str(e))
            return ComponentHealth(
                name="database",
                status=HealthStatus.UNHEALTHY,
                latency_ms=latency,
                details={"error": str(e)},
            )

    def check_smtp_configured(self, smtp_host: str) -> ComponentHealth:
        """SMTP設定チェック — 未設定ならメール通知は縮退動作"""
        if smtp_host:
            return ComponentHealth(name="smtp", status=HealthStatus.HEALTHY, details={"host": smtp_host})
        return ComponentHealth(
            name="smtp",
            status=HealthStatus.DEGRADED,
            details={"reason": "SMTP_HOST未設定"},
        )

    async def check_all(
        self,
        engine: Any | None = None,
        smtp_host: str | None = None,
    ) -> SystemHealth:
        """全依存サービスのヘルスチェック"""
        from src import __version__

        components: list[ComponentHealth] = []

        if engine is not None:
            components.append(await self.check_database(engine))
        if smtp_host is not None:
            components.append(self.check_smtp_configured(smtp_host))

        if any(c.status == HealthStatus.UNHEALTHY for c in components):
            overall = HealthStatus.UNHEALTHY
        elif any(c.status == HealthStatus.DEGRADED for c in components):
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        return SystemHealth(status=overall, components=components, version=__version__)
