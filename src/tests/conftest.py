"""
Shared test fixtures and utilities for PromptPilot tests.

This module provides:
- Dependency checking (tiktoken encodings)
- Shared fixtures for config, store, and dependencies
- A scripted fake LLM that records requests and replays canned replies
- Temporary directory fixtures
"""

import inspect
import os
import shutil
import sys
import tempfile

import pytest

# Add src to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# =============================================================================
# Dependency Checking
# =============================================================================

def check_tiktoken_available():
    """Check if tiktoken can load its encoding (it may need a download)."""
    try:
        import tiktoken
        tiktoken.get_encoding("cl100k_base")
        return True
    except Exception:
        return False


TIKTOKEN_AVAILABLE = check_tiktoken_available()

requires_tiktoken = pytest.mark.skipif(
    not TIKTOKEN_AVAILABLE,
    reason="tiktoken encoding not available"
)


# =============================================================================
# Fake LLM
# =============================================================================

class ScriptedLLM:
    """
    Stand-in for LLMClient.

    Replies come from a list (consumed in order) or from a handler called with
    each ChatRequest. A reply that is an exception instance is raised; a
    handler may be async.
    """

    def __init__(self, replies=None, handler=None):
        self.replies = list(replies or [])
        self.handler = handler
        self.requests = []

    async def chat(self, request):
        self.requests.append(request)
        if self.handler is not None:
            reply = self.handler(request)
            if inspect.isawaitable(reply):
                reply = await reply
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            reply = ""
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def aclose(self):
        pass

    @property
    def modes(self):
        return [r.mode for r in self.requests]


def fenced(code, lang="python"):
    """Model-style reply wrapping code in a fenced block."""
    return f"Here you go:\n\n```{lang}\n{code}\n```\n\nLet me know if you need more."


# =============================================================================
# Fixtures: Temporary Files and Directories
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory that's cleaned up after the test."""
    tmpdir = tempfile.mkdtemp(prefix="promptpilot_test_")
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture(autouse=True)
def fake_token_counter(monkeypatch):
    """Keep tests offline: token estimates without loading an encoding."""
    import llm
    monkeypatch.setattr(llm, "estimate_tokens", lambda text: len(text) // 4)


# =============================================================================
# Fixtures: Config
# =============================================================================

@pytest.fixture
def path_config(temp_dir):
    from config import PathConfig
    return PathConfig.from_defaults(temp_dir)


@pytest.fixture
def llm_config():
    """A configured OpenAI-compatible provider with no retry delay."""
    from config import LLMConfig
    return LLMConfig(
        provider="openai",
        api_key="sk-test-123456",
        model="gpt-test",
        model_name="GPT Test",
        retry_base_delay_s=0.0,
    )


@pytest.fixture
def app_config(llm_config, path_config):
    """Simple-mode config (chat module only)."""
    from config import AppConfig, ModuleSelection, WorkflowConfig
    return AppConfig(
        llm=llm_config,
        modules=ModuleSelection.of("chat"),
        workflow=WorkflowConfig(automation_delay_s=0.0),
        paths=path_config,
    )


@pytest.fixture
def structured_config(app_config):
    """Config with chat, think, code and debug all enabled."""
    return app_config.with_modules("chat", "think", "code", "debug")


# =============================================================================
# Fixtures: Dependencies
# =============================================================================

@pytest.fixture
def memory_store():
    from storage import KeyValueStore
    return KeyValueStore.in_memory()


@pytest.fixture
def make_deps(app_config, memory_store):
    """Factory: Dependencies around a ScriptedLLM."""
    from steps import Dependencies

    def _make(llm=None, config=None, vector_search=None):
        return Dependencies(
            config=config or app_config,
            llm=llm or ScriptedLLM(),
            vector_search=vector_search,
            store=memory_store,
        )

    return _make
