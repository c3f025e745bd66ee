"""
models/__init__.py - imports all ORM models so Base.metadata.create_all()
sees every table.
"""
from dotfeedback.models.session import SessionORM
from dotfeedback.models.structured_response import StructuredResponseORM
from dotfeedback.models.chat_message import ChatMessageORM
from dotfeedback.models.conversation_state import ConversationStateORM

__all__ = ["SessionORM", "StructuredResponseORM", "ChatMessageORM", "ConversationStateORM"]
