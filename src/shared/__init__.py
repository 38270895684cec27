# src/shared/__init__.py
"""
Общий код HTTP-сервисов: модели ответов и ошибок.
"""

__all__: list[str] = []
