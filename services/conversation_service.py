"""
Conversation Persistence Adapter

Conversations live in one MongoDB collection, one document per
conversation with an embedded, append-only message list. Every query is
scoped by (conversationId, userId): a conversation owned by someone else is
indistinguishable from one that does not exist.
"""
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from models.conversation_models import (
    DEFAULT_CONVERSATION_TITLE,
    Conversation,
    ConversationSummary,
    Message,
    MessageRole,
    derive_title,
    new_id,
    utcnow,
)
from services.exceptions import ConversationNotFoundError
from services.logger_singleton import LoggerSingleton

logger = LoggerSingleton.get_logger(__name__)

CONVERSATIONS_COLLECTION = "conversations"
LIST_LIMIT = 50
PREVIEW_CHARS = 100


def _scope(conversation_id: str, user_id: str) -> Dict[str, Any]:
    return {"conversationId": conversation_id, "userId": user_id}


def _to_conversation(document: Dict[str, Any]) -> Conversation:
    document = {k: v for k, v in document.items() if k != "_id"}
    return Conversation.model_validate(document)


def summarize_conversation(document: Dict[str, Any]) -> ConversationSummary:
    messages = document.get("messages") or []
    preview = messages[0].get("content", "")[:PREVIEW_CHARS] if messages else ""
    return ConversationSummary(
        id=document["conversationId"],
        title=document.get("title") or DEFAULT_CONVERSATION_TITLE,
        updatedAt=document["updatedAt"],
        messageCount=len(messages),
        preview=preview,
    )


class ConversationStore:
    def __init__(self, collection):
        """
        Args:
            collection: pymongo AsyncCollection (or anything with the same async API)
        """
        self.collection = collection

    async def ensure_indexes(self):
        await self.collection.create_index([("conversationId", ASCENDING)], unique=True)
        await self.collection.create_index([("userId", ASCENDING), ("updatedAt", DESCENDING)])
        logger.info("Conversation indexes ensured")

    async def create(self, user_id: str, title: Optional[str] = None) -> Conversation:
        """An explicit title is final; otherwise the first user message names the conversation"""
        now = utcnow()
        conversation = Conversation(
            conversationId=new_id(),
            userId=user_id,
            title=title or DEFAULT_CONVERSATION_TITLE,
            titleDerived=bool(title),
            createdAt=now,
            updatedAt=now,
        )
        await self.collection.insert_one(conversation.model_dump())
        logger.info(f"Created conversation {conversation.conversationId} for user {user_id}")
        return conversation

    async def list_conversations(self, user_id: str, limit: int = LIST_LIMIT) -> List[ConversationSummary]:
        cursor = (
            self.collection
            .find({"userId": user_id}, {"conversationId": 1, "title": 1, "updatedAt": 1, "messages": 1})
            .sort("updatedAt", DESCENDING)
            .limit(limit)
        )
        documents = await cursor.to_list(length=limit)
        return [summarize_conversation(document) for document in documents]

    async def get(self, conversation_id: str, user_id: str) -> Conversation:
        document = await self.collection.find_one(_scope(conversation_id, user_id))
        if document is None:
            raise ConversationNotFoundError(conversation_id)
        return _to_conversation(document)

    async def delete(self, conversation_id: str, user_id: str) -> None:
        result = await self.collection.delete_one(_scope(conversation_id, user_id))
        if result.deleted_count == 0:
            raise ConversationNotFoundError(conversation_id)
        logger.info(f"Deleted conversation {conversation_id}")

    async def append_message(self, conversation_id: str, user_id: str, message: Message) -> Conversation:
        """
        Push one message and bump updatedAt in a single atomic update.

        The first user message also sets the title, exactly once: the
        titleDerived filter makes later attempts no-ops.
        """
        document = await self.collection.find_one_and_update(
            _scope(conversation_id, user_id),
            {
                "$push": {"messages": message.to_document()},
                "$set": {"updatedAt": utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            raise ConversationNotFoundError(conversation_id)

        if message.role == MessageRole.USER and not document.get("titleDerived"):
            title = derive_title(message.content)
            result = await self.collection.update_one(
                {**_scope(conversation_id, user_id), "titleDerived": {"$ne": True}},
                {"$set": {"title": title, "titleDerived": True}},
            )
            if result.modified_count:
                document["title"] = title
                document["titleDerived"] = True

        return _to_conversation(document)
