"""Pytest configuration and fixtures."""

import os
from contextlib import ExitStack
from unittest.mock import patch

import pytest

# Settings are read at import time by module-level loggers
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")

from strategist_memory.core.config import get_settings  # noqa: E402
from tests.fakes.fake_gateway import DIM, FakeGateway  # noqa: E402
from tests.fakes.fake_supabase import FakeSupabase  # noqa: E402

SUPABASE_USERS = [
    "strategist_memory.db.projects.get_supabase",
    "strategist_memory.db.documents.get_supabase",
    "strategist_memory.db.document_chunks.get_supabase",
    "strategist_memory.db.step_embeddings.get_supabase",
    "strategist_memory.db.project_memory.get_supabase",
    "strategist_memory.db.project_profiles.get_supabase",
    "strategist_memory.core.llm_usage.get_supabase",
    "strategist_memory.core.auth.get_supabase",
]


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["MEMORY_ENGINE_ENV"] = "test"
    get_settings.cache_clear()


@pytest.fixture
def fake_supabase():
    """In-memory Supabase client patched into every adapter."""
    fake = FakeSupabase()
    with ExitStack() as stack:
        for target in SUPABASE_USERS:
            stack.enter_context(patch(target, return_value=fake))
        yield fake


@pytest.fixture
def settings():
    """Settings sized for the fake gateway's vectors."""
    return get_settings().model_copy(update={"EMBEDDING_DIM": DIM})


@pytest.fixture
def gateway():
    return FakeGateway()
