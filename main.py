#!/usr/bin/env python3
# main.py
"""
Главная точка входа сервиса уведомлений о бронированиях.
Запускает HTTP сервис или генерирует ключи VAPID в зависимости от аргументов.
"""

from __future__ import annotations

import asyncio
import base64
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg


VALID_MODES = ("notifications", "vapid-keys")


async def run_notifications() -> None:
    """Запускает сервис уведомлений (uvicorn + lifespan приложения)."""
    from src.notifications.app import run_notifications as start_notifications

    await log_info(
        f"Запуск Notifications сервиса на {settings.deployment.NOTIFICATIONS_HOST}:"
        f"{settings.deployment.NOTIFICATIONS_PORT}...",
        type_msg=TypeMsg.INFO,
    )
    try:
        await start_notifications(
            host=settings.deployment.NOTIFICATIONS_HOST,
            port=settings.deployment.NOTIFICATIONS_PORT,
        )
    except asyncio.CancelledError:
        await log_info("Notifications: graceful shutdown", type_msg=TypeMsg.DEBUG)


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_vapid_keys() -> dict[str, str]:
    """
    Генерирует пару ключей VAPID.

    Returns:
        Словарь с publicKey (несжатая точка P-256) и privateKey (скаляр),
        оба в base64url без выравнивания.
    """
    from cryptography.hazmat.primitives import serialization
    from py_vapid import Vapid01

    vapid = Vapid01()
    vapid.generate_keys()

    public_raw = vapid.public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    private_raw = vapid.private_key.private_numbers().private_value.to_bytes(32, "big")
    return {"publicKey": _b64url(public_raw), "privateKey": _b64url(private_raw)}


def print_vapid_keys() -> None:
    """Печатает ключи в виде готовых строк для .env."""
    keys = generate_vapid_keys()
    print(f"VAPID_PUBLIC_KEY={keys['publicKey']}")
    print(f"VAPID_PRIVATE_KEY={keys['privateKey']}")


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска. Если None, берётся из COMPONENT_MODE.
    """
    setup_logging()

    if mode is None:
        mode = settings.system.COMPONENT_MODE or "notifications"

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION} — запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        if mode == "notifications":
            await run_notifications()
        else:
            await log_error(f"Неизвестный режим: {mode}")
    except KeyboardInterrupt:
        await log_info("Получен сигнал остановки (Ctrl+C)", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        await log_info("Приложение остановлено", type_msg=TypeMsg.INFO)


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Ride Notify — рассылка событий бронирования (SSE, Web Push, email)

Использование:
    python main.py [mode]

Режимы:
    notifications          — HTTP сервис уведомлений (по умолчанию)
    vapid-keys             — сгенерировать пару ключей VAPID для config/.env

Примеры:
    python main.py
    python main.py notifications
    python main.py vapid-keys > vapid.env
    """)


if __name__ == "__main__":
    mode = None

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in VALID_MODES:
            mode = arg
        else:
            print(f"Неизвестный режим: {arg}")
            print_usage()
            sys.exit(1)

    if mode == "vapid-keys":
        print_vapid_keys()
        sys.exit(0)

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
