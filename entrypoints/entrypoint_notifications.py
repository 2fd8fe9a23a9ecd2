#!/usr/bin/env python3
# entrypoint_notifications.py
"""
Точка входа для запуска сервиса уведомлений о бронированиях в Docker контейнере.
SSE поток, Web Push и email с очередью повторов.
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from main import main


if __name__ == "__main__":
    # Несколько экземпляров за балансировщиком различаются только номером;
    # SSE-реестр у каждого свой
    instance_id = os.getenv("NOTIFICATIONS_INSTANCE_ID", "0")
    print(f"Запуск Ride Notify instance #{instance_id}")

    try:
        asyncio.run(main(mode="notifications"))
    except KeyboardInterrupt:
        pass
