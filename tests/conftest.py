"""
Pytest configuration and shared fixtures for the Call Scoring Engine tests.

No test talks to a real provider: every engine is built with ``FakeLLM``
clients from ``tests.factories``.
"""

from typing import List

import pytest

from call_engine.engine import CallAnalysisEngine
from call_engine.models.events import PipelineEvent
from call_engine.models.pipeline_config import create_default_pipeline_config

from tests.factories import FakeLLM, sales_llm


@pytest.fixture
def llm() -> FakeLLM:
    """Fake client answering every stage as a valid Brian sales call"""
    return sales_llm()


@pytest.fixture
def events() -> List[PipelineEvent]:
    return []


@pytest.fixture
def emit(events):
    """Event sink appending to the ``events`` fixture"""
    return events.append


@pytest.fixture
def make_engine():
    """Build an engine whose triage, extraction and scoring share one fake client"""
    def _make(fake: FakeLLM, **config_overrides) -> CallAnalysisEngine:
        config = create_default_pipeline_config(**config_overrides)
        return CallAnalysisEngine(
            provider="claude",
            config=config,
            extraction_llm=fake,
            analysis_llm=fake,
        )
    return _make
