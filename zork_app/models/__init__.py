from sqlalchemy.orm import declarative_base

Base = declarative_base()

from .conversation import Conversation, ConversationRecord  # noqa: E402

__all__ = ["Base", "Conversation", "ConversationRecord"]
