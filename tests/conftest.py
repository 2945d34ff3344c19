"""
Shared fakes for the chat pipeline tests.

The fakes stand in for Neo4j, the LLM SDKs and the async Mongo collection so the
suite runs without any external service.
"""
import copy
import os
from datetime import timedelta
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

# Keep a developer's .env out of the test run
os.environ.setdefault("USE_DOTENV", "false")

from config import get_settings, reset_settings
from models.user_models import AuthUser
from services.auth_utils import SessionVerifier
from services.cache_utils import ContextCache, TTLCache
from services.llm_providers import LLMProvider

TEST_JWT_SECRET = "test-secret-for-session-tokens-0123456789"


# ==========================================
# Graph store
# ==========================================

def node(node_id: str, label: str, **properties) -> Dict[str, Any]:
    return {"id": node_id, "labels": [label], "properties": {"id": node_id, **properties}}


def rel(start: str, end: str, rel_type: str, **properties) -> Dict[str, Any]:
    return {"startNodeId": start, "endNodeId": end, "type": rel_type, "properties": properties}


def graph_result(nodes: List[Dict[str, Any]], relationships: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """Rows shaped like the traversal query's single `result` row"""
    return [{"result": {"nodes": nodes, "relationships": relationships or []}}]


class FakeGraphStore:
    def __init__(self, records: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.records = records if records is not None else []
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def execute_query(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        self.calls.append({"query": query, "params": params})
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.records)


def sample_records() -> List[Dict[str, Any]]:
    """A user with two interest topics, a document, a project and a concept"""
    return graph_result(
        nodes=[
            node("u1", "User", name="Ada", email="ada@example.com"),
            node("t1", "Topic", name="Graph Databases", description="Property graphs and Cypher"),
            node("t2", "Topic", name="LLMs", description="Large language models"),
            node("d1", "Document", title="Neo4j notes", doc_type="note", content="Indexes speed up lookups."),
            node("p1", "Project", name="Context Chat", status="active", description="Grounded chat", role="owner"),
            node("c1", "Concept", name="Traversal", definition="Walking edges from a start node"),
            # Duplicate reached through a second path
            node("t1", "Topic", name="Graph Databases (dup)", description="should be dropped"),
        ],
        relationships=[
            rel("d1", "t1", "TAGGED_WITH"),
            rel("p1", "c1", "USES"),
        ],
    )


# ==========================================
# Text generation
# ==========================================

class FakeProvider(LLMProvider):
    def __init__(self, fragments: Optional[List[str]] = None, enrichment: str = "{}",
                 generate_error: Optional[Exception] = None, stream_error: Optional[Exception] = None,
                 fail_after: Optional[int] = None):
        self.fragments = fragments if fragments is not None else ["Hello", ", ", "world"]
        self.enrichment = enrichment
        self.generate_error = generate_error
        self.stream_error = stream_error
        self.fail_after = fail_after
        self.generate_calls: List[Dict[str, Any]] = []
        self.stream_calls: List[Dict[str, Any]] = []
        self.stream_closed = False

    async def generate(self, user_message, system_prompt=None, max_tokens=4096):
        self.generate_calls.append({"user_message": user_message, "system_prompt": system_prompt, "max_tokens": max_tokens})
        if self.generate_error is not None:
            raise self.generate_error
        return self.enrichment

    async def stream_generate(self, system_prompt, user_message, max_tokens=4096):
        self.stream_calls.append({"system_prompt": system_prompt, "user_message": user_message, "max_tokens": max_tokens})
        try:
            for index, fragment in enumerate(self.fragments):
                if self.fail_after is not None and index == self.fail_after:
                    raise self.stream_error
                yield fragment
            if self.stream_error is not None and self.fail_after is None:
                raise self.stream_error
        finally:
            self.stream_closed = True


# ==========================================
# Conversation collection (AsyncCollection-like)
# ==========================================

def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, expected in query.items():
        actual = document.get(key)
        if isinstance(expected, dict) and "$ne" in expected:
            if actual == expected["$ne"]:
                return False
        elif actual != expected:
            return False
    return True


def _apply_update(document: Dict[str, Any], update: Dict[str, Any]):
    for key, value in update.get("$set", {}).items():
        document[key] = copy.deepcopy(value)
    for key, value in update.get("$push", {}).items():
        document.setdefault(key, []).append(copy.deepcopy(value))


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self.documents = documents

    def sort(self, key, direction=1):
        self.documents.sort(key=lambda d: d.get(key), reverse=direction == -1)
        return self

    def limit(self, count: int):
        self.documents = self.documents[:count]
        return self

    async def to_list(self, length=None):
        return copy.deepcopy(self.documents[:length] if length else self.documents)


class FakeCollection:
    def __init__(self):
        self.documents: List[Dict[str, Any]] = []
        self.indexes: List[Any] = []

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return "index"

    async def insert_one(self, document):
        self.documents.append(copy.deepcopy(document))
        return SimpleNamespace(inserted_id=document.get("conversationId"))

    async def find_one(self, query):
        for document in self.documents:
            if _matches(document, query):
                return copy.deepcopy(document)
        return None

    def find(self, query, projection=None):
        return FakeCursor([copy.deepcopy(d) for d in self.documents if _matches(d, query)])

    async def find_one_and_update(self, query, update, return_document=None):
        for document in self.documents:
            if _matches(document, query):
                _apply_update(document, update)
                return copy.deepcopy(document)
        return None

    async def update_one(self, query, update):
        for document in self.documents:
            if _matches(document, query):
                _apply_update(document, update)
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def delete_one(self, query):
        for index, document in enumerate(self.documents):
            if _matches(document, query):
                del self.documents[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


# ==========================================
# Fixtures
# ==========================================

@pytest.fixture
def memory_cache():
    return ContextCache(local_cache=TTLCache(maxsize=100, ttl_seconds=300))


@pytest.fixture
def graph_store():
    return FakeGraphStore(sample_records())


@pytest.fixture
def conversation_collection():
    return FakeCollection()


@pytest.fixture
def settings(monkeypatch):
    monkeypatch.setenv("USE_DOTENV", "false")
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    for name in ("MONGO_URI", "MONGO_DB_NAME", "REDIS_URL", "LLM_PROVIDER"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield get_settings()
    reset_settings()


@pytest.fixture
def session_verifier():
    return SessionVerifier(TEST_JWT_SECRET)


def make_token(user_id: str = "u1", expires_in: timedelta = timedelta(hours=1)) -> str:
    return SessionVerifier(TEST_JWT_SECRET).create_token(
        AuthUser(userId=user_id, email=f"{user_id}@example.com", name=user_id.upper()),
        expires_in=expires_in,
    )


def auth_headers(user_id: str = "u1") -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}
