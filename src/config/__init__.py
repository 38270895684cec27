# src/config/__init__.py
"""
Модуль конфигурации.
Экспортирует синглтон настроек и функции загрузки.
"""

from src.config.loader import Settings, get_project_root, get_settings, settings

__all__ = ["Settings", "get_project_root", "get_settings", "settings"]
