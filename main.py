#!/usr/bin/env python3
# main.py
"""
Главная точка входа бэкенда совместных поездок.
Запускает Rides Service, Payments Service или применяет схему БД.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, setup_logging
from src.config import settings


MODES = ("rides_service", "payments_service", "all", "migrate")

# Глобальные задачи для graceful shutdown
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики SIGINT и SIGTERM."""

    def signal_handler(sig: int) -> None:
        print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
        for task in _running_tasks:
            if not task.done():
                task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def run_migrations() -> None:
    """Применяет migrations/init.sql и закрывает пул."""
    from src.infra.database import close_db, init_db

    await init_db(apply_schema=True)
    await close_db()


async def serve(app_path: str, port: int, name: str) -> None:
    """Запускает FastAPI приложение через uvicorn.Server."""
    import uvicorn

    await log_info(f"Запуск {name} на порту {port}...", type_msg=TypeMsg.INFO)

    config = uvicorn.Config(
        app_path,
        host="0.0.0.0",
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info(f"{name}: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_rides_service() -> None:
    await serve("src.services.rides.app:app", settings.deployment.RIDES_SERVICE_PORT, "Rides Service")


async def run_payments_service() -> None:
    await serve("src.services.payments.app:app", settings.deployment.PAYMENTS_SERVICE_PORT, "Payments Service")


async def main(mode: str) -> None:
    """
    Главная функция запуска.

    Args:
        mode: rides_service, payments_service, all или migrate
    """
    setup_logging()
    setup_signal_handlers()

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}: режим '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    if mode == "migrate":
        await run_migrations()
        return

    runners = {
        "rides_service": [run_rides_service],
        "payments_service": [run_payments_service],
        "all": [run_rides_service, run_payments_service],
    }[mode]

    _running_tasks.extend(asyncio.create_task(runner()) for runner in runners)
    results = await asyncio.gather(*_running_tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            await log_error(f"Сервис завершился с ошибкой: {result}")


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Использование:
    python main.py [mode]

Режимы:
    rides_service          Rides Service (:8085)
    payments_service       Payments Service (:8087)
    all                    оба сервиса в одном процессе
    migrate                применить migrations/init.sql

Без аргумента режим берётся из COMPONENT_MODE (по умолчанию all).
    """)


if __name__ == "__main__":
    mode = os.getenv("COMPONENT_MODE", "all")

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        mode = arg

    if mode not in MODES:
        print(f"Неизвестный режим: {mode}")
        print_usage()
        sys.exit(1)

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
