import sys
import os
import threading

import pytest

# Add the project root directory to the python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastapi.testclient import TestClient

from alicebot.api.http import create_app
from alicebot.config import AppConfig
from alicebot.core.engine import ChatbotEngine
from alicebot.core.errors import UpstreamError
from alicebot.core.session_manager import InMemorySessionManager
from alicebot.domain.knowledge import KnowledgeStore

ALLOWED = ("test/model-a", "test/model-b")
CHUNKS = ["Fever is common", "Headache tips", "Fever and chills can come together"]


class FakeLanguageModelClient:
    """Upstream stub: records every call and replies with a fixed text (or raises)."""

    def __init__(self, reply="Hi", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, model, messages, request_id=None):
        self.calls.append({"model": model, "messages": [dict(m) for m in messages]})
        if self.error is not None:
            raise self.error
        return self.reply


class BlockingLanguageModelClient(FakeLanguageModelClient):
    """Upstream stub that holds the call whose last message is `block_on` until `release` is set."""

    def __init__(self, block_on, reply="Hi"):
        super().__init__(reply=reply)
        self.block_on = block_on
        self.entered = threading.Event()
        self.release = threading.Event()
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def complete(self, model, messages, request_id=None):
        with self._lock:
            self.calls.append({"model": model, "messages": [dict(m) for m in messages]})
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if messages[-1]["content"] == self.block_on:
                self.entered.set()
                self.release.wait(timeout=5)
            return self.reply
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def config():
    return AppConfig(
        upstream_api_key="test-key",
        allowed_models=ALLOWED,
        knowledge_path="does-not-exist.json",
        rate_limit_requests=0,
    )


@pytest.fixture
def upstream():
    return FakeLanguageModelClient()


@pytest.fixture
def engine(config, upstream):
    return ChatbotEngine(
        config=config,
        knowledge=KnowledgeStore(CHUNKS),
        sessions=InMemorySessionManager(),
        lm_client=upstream,
    )


@pytest.fixture
def client(config, engine):
    return TestClient(create_app(config, engine))


@pytest.fixture
def failing_upstream():
    return FakeLanguageModelClient(error=UpstreamError("Rate limit exceeded upstream", status=429))
