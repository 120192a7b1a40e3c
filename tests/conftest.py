"""Shared test fixtures for the context engine."""

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from context.repository import ContextRepository  # noqa: E402
from insights.extractor import InsightExtractor  # noqa: E402
from insights.models import Turn  # noqa: E402
from insights.pending import PendingInsightStore  # noqa: E402
from insights.workflow import ConfirmationWorkflow  # noqa: E402
from observability import metrics  # noqa: E402
from profiles.store import ProfileStore  # noqa: E402
from signals.sink import SignalSink  # noqa: E402
from signals.store import LearningSignalStore  # noqa: E402


def llm_json(*insights: tuple[str, str, float]) -> str:
    """Extraction response body for (content, category, confidence) triples."""
    return json.dumps(
        {"insights": [{"content": c, "category": cat, "confidence": conf} for c, cat, conf in insights]}
    )


def make_turns(n_exchanges: int = 5, user_text: str | None = None) -> list[Turn]:
    turns = []
    for i in range(n_exchanges):
        turns.append(Turn("user", user_text or f"I've been thinking about my week, part {i}."))
        turns.append(Turn("assistant", f"Tell me more about that, part {i}."))
    return turns


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "context.db"


@pytest.fixture
def provider():
    """Mock LLM provider; set provider.generate.return_value per test."""
    p = MagicMock()
    p.generate.return_value = json.dumps({"insights": []})
    return p


@pytest.fixture
def profile_store(db_path):
    return ProfileStore(db_path)


@pytest.fixture
def pending_store(db_path):
    return PendingInsightStore(db_path)


@pytest.fixture
def signal_store(db_path):
    return LearningSignalStore(db_path)


@pytest.fixture
def sink(signal_store):
    return SignalSink(signal_store, maxsize=16)


@pytest.fixture
def workflow(pending_store, sink):
    return ConfirmationWorkflow(pending_store, sink)


@pytest.fixture
def extractor(provider):
    return InsightExtractor(provider=provider)


@pytest.fixture
def repository(profile_store, workflow, sink):
    return ContextRepository(profile_store, workflow, sink)
