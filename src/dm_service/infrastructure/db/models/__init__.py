"""Import all models so metadata.create_all / migrations can discover them via Base.metadata."""
from dm_service.infrastructure.db.models.conversation import ConversationModel
from dm_service.infrastructure.db.models.message import MessageModel

__all__ = [
    "ConversationModel",
    "MessageModel",
]
