# src/core/conversations/__init__.py
"""
Диалоги между участниками поездки.
Ядро только открывает диалоги; сообщения хранятся вне ядра.
"""

from src.core.conversations.repository import Conversation, ConversationRepository

__all__ = [
    "Conversation",
    "ConversationRepository",
]
