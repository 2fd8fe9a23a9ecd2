# src/notifications/app.py
"""
FastAPI приложение для сервиса уведомлений.
SSE поток, push-подписки, хуки событий бронирования и фоновые задачи
(очередь повторов писем, heartbeat соединений, воркер RabbitMQ).
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from src.config import settings
from src.common.logger import setup_logging, log_info, log_warning
from src.common.constants import TypeMsg
from src.notifications.dependencies import NotificationContainer, build_container, get_container
from src.notifications.routes import router
from src.shared.models.common import HealthStatus, StatsResponse


# Время ожидания незавершённых веток рассылки при остановке
SHUTDOWN_DRAIN_TIMEOUT = 10.0


# =============================================================================
# LIFESPAN
# =============================================================================

async def _startup(app: FastAPI, preset: Optional[NotificationContainer]) -> None:
    """Поднимает инфраструктуру и фоновые задачи."""
    if settings.storage.STORAGE_BACKEND == "redis":
        from src.infra.redis_client import init_redis
        await init_redis()

    container = preset or build_container()
    app.state.container = container
    app.state.started_at = time.monotonic()
    app.state.worker = None

    if settings.rabbitmq.USE_EVENT_BUS:
        from src.infra.event_bus import init_event_bus
        from src.worker.notifications import BookingNotificationWorker

        await init_event_bus()
        worker = BookingNotificationWorker(container.orchestrator)
        await worker.start()
        app.state.worker = worker

    container.processor.start()
    container.registry.start_heartbeat(settings.stream.STREAM_KEEPALIVE_INTERVAL)

    if not container.push_client.is_configured:
        await log_warning("Ключи VAPID не заданы: push-уведомления отключены")
    if not container.mail_client.is_configured:
        await log_warning("SMTP_HOST не задан: письма будут пропускаться")


async def _shutdown(app: FastAPI) -> None:
    """Останавливает всё в обратном порядке."""
    worker = getattr(app.state, "worker", None)
    if worker is not None:
        await worker.stop()
        from src.infra.event_bus import close_event_bus
        await close_event_bus()

    container: Optional[NotificationContainer] = getattr(app.state, "container", None)
    if container is not None:
        await container.processor.stop()
        await container.registry.stop_heartbeat()
        await container.orchestrator.drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)
        await container.registry.close_all()

    if settings.storage.STORAGE_BACKEND == "redis":
        from src.infra.redis_client import close_redis
        await close_redis()


def create_app(container: Optional[NotificationContainer] = None) -> FastAPI:
    """
    Создаёт приложение сервиса уведомлений.

    Args:
        container: Готовый набор компонентов (в тестах); по умолчанию
            собирается из настроек при старте.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Жизненный цикл приложения."""
        setup_logging()
        await log_info("Notifications сервис запускается...", type_msg=TypeMsg.INFO)

        await _startup(app, container)
        await log_info("Notifications сервис запущен", type_msg=TypeMsg.INFO)

        yield

        await _shutdown(app)
        await log_info("Notifications сервис остановлен", type_msg=TypeMsg.INFO)

    application = FastAPI(
        title="Ride Notify",
        description="Рассылка событий бронирования: SSE, Web Push и email с очередью повторов",
        version=settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    @application.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса."""
        deps: dict[str, str] = {}

        if settings.storage.STORAGE_BACKEND == "redis":
            from src.infra.redis_client import get_redis
            deps["redis"] = "healthy" if await get_redis().health_check() else "unhealthy"

        if settings.rabbitmq.USE_EVENT_BUS:
            from src.infra.event_bus import get_event_bus
            deps["rabbitmq"] = "healthy" if await get_event_bus().health_check() else "unhealthy"

        current: Optional[NotificationContainer] = getattr(application.state, "container", None)
        if current is not None:
            deps["web_push"] = "configured" if current.push_client.is_configured else "disabled"
            deps["smtp"] = "configured" if current.mail_client.is_configured else "disabled"

        overall = "unhealthy" if "unhealthy" in deps.values() else "healthy"
        started_at = getattr(application.state, "started_at", None)

        return HealthStatus(
            service="notifications",
            status=overall,
            version=settings.system.VERSION,
            uptime_seconds=round(time.monotonic() - started_at, 1) if started_at else None,
            dependencies=deps,
        )

    @application.get("/stats", response_model=StatsResponse, tags=["Health"])
    async def stats(current: NotificationContainer = Depends(get_container)) -> StatsResponse:
        """Счётчики реестра, push-рассылки и очереди повторов."""
        return StatsResponse(
            stream=current.registry.get_stats(),
            push={
                **current.dispatcher.get_stats(),
                "subscriptions": await current.subscriptions.count(),
            },
            retry_queue={
                **await current.retry_queue.get_stats(),
                "processor": current.processor.get_stats(),
            },
            fan_out=current.orchestrator.get_stats(),
        )

    application.include_router(router)
    return application


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

app = create_app()


# =============================================================================
# ЗАПУСК
# =============================================================================

async def run_notifications(
    host: str = "0.0.0.0",
    port: int = 8083,
    reload: bool = False,
) -> None:
    """
    Запускает сервис уведомлений.

    Args:
        host: Хост для привязки
        port: Порт
        reload: Авто-перезагрузка при изменениях
    """
    import uvicorn

    config = uvicorn.Config(
        "src.notifications.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    await server.serve()
