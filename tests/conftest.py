"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
a file-backed SQLite database, test settings, and a scripted oracle that
replays queued responses instead of calling the AI gateway.
"""
import json
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from studyflow.db import database  # noqa: E402
from studyflow.errors import OracleUnavailable  # noqa: E402
from studyflow.pipeline import StudyPipeline  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ========================================
# Oracle double
# ========================================


class ScriptedOracle:
    """
    Deterministic stand-in for the generation oracle.

    Queued items are returned in order: strings as-is, dicts/lists as
    JSON, exceptions are raised. Once the script runs out, ``default`` is
    returned if set, otherwise OracleUnavailable is raised.
    """

    def __init__(self, *responses, default=None):
        self.responses = list(responses)
        self.default = default
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def complete(self, messages, *, temperature=None, response_schema=None):
        self.calls.append(
            {"messages": list(messages), "temperature": temperature, "response_schema": response_schema}
        )
        if self.responses:
            item = self.responses.pop(0)
        elif self.default is not None:
            item = self.default
        else:
            raise OracleUnavailable("scripted oracle has no response left")
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, (dict, list)):
            return json.dumps(item)
        return item

    async def close(self):
        pass

    @property
    def call_count(self):
        return len(self.calls)


# ========================================
# Settings & database
# ========================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def test_settings():
    """Settings for tests: in-memory database, no log file."""
    return Settings(
        database_url="sqlite://",
        ai_api_key="test-key",
        log_file=None,
        generation_max_retries=2,
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh file-backed SQLite database with all tables."""
    engine = database.build_engine(f"sqlite:///{tmp_path / 'studyflow.db'}")
    await database.init_db(engine)
    database.configure(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    """Async session bound to the test database."""
    async with database.get_session_factory()() as session:
        yield session


@pytest.fixture
def oracle():
    """Empty scripted oracle; tests queue the responses they need."""
    return ScriptedOracle()


@pytest.fixture
def make_oracle():
    """Factory for scripted oracles."""
    return ScriptedOracle


@pytest.fixture
def pipeline(session, oracle, test_settings):
    """Request-scoped pipeline over the test session and scripted oracle."""
    return StudyPipeline(session, oracle, test_settings)


# ========================================
# Sample data
# ========================================


@pytest.fixture
def sample_documents():
    """Two short documents about networking."""
    return [
        {
            "file_name": "osi.txt",
            "text": (
                "The OSI model is a seven layer reference model for network communication. "
                "The network layer handles routing between subnets. "
                "The transport layer provides reliable delivery with TCP."
            ),
        },
        {
            "file_name": "subnetting.txt",
            "text": (
                "A subnet mask splits an IP address into network and host parts. "
                "Subnetting lets administrators divide large networks into smaller segments."
            ),
        },
    ]


@pytest.fixture
def plan_payload():
    """Plan output with a messy roadmap and a usable diagnostic."""
    return {
        "topics": [
            {
                "id": "topic_1",
                "title": "OSI model",
                "description": "Layers of network communication",
                "key_terms": ["layer", "routing"],
                "difficulty": "beginner",
                "estimated_minutes": 20,
            },
            {
                "id": "topic_2",
                "title": "Subnetting",
                "key_terms": ["subnet mask"],
                "difficulty": "expert",
            },
        ],
        "roadmap": [
            {"id": "step_1", "title": "OSI basics", "artifact_type": "course", "status": "locked", "next_step_id": "x"},
            {"id": "step_2", "title": "Subnet masks", "artifact_type": "flashcards", "status": "available"},
            {"id": "step_3", "title": "Check yourself", "artifact_type": "quiz", "status": "available", "next_step_id": "step_1"},
        ],
        "diagnostic": {
            "enabled": True,
            "quiz": {
                "questions": [
                    {
                        "id": "q1",
                        "text": "Which layer routes packets?",
                        "type": "single_choice",
                        "options": [{"id": "a", "text": "Network"}, {"id": "b", "text": "Physical"}],
                        "correct_option_ids": ["a"],
                    },
                    {
                        "id": "q2",
                        "text": "Which are transport protocols?",
                        "type": "multiple_choice",
                        "options": [
                            {"id": "a", "text": "IP"},
                            {"id": "b", "text": "TCP"},
                            {"id": "c", "text": "UDP"},
                        ],
                    },
                ]
            },
            "answer_key": [
                {"question_id": "q1", "correct_option_ids": ["a"], "points": 1},
                {"question_id": "q2", "correct_option_ids": ["b", "c"], "points": 2},
            ],
        },
    }


@pytest.fixture
def method_pack_response():
    """Act output shaped as a method pack (what note actions often return)."""
    return {
        "public_payload": {
            "kind": "method_pack",
            "blocks": [
                {"id": "e1", "type": "explanation", "title": "Explanation: subnet mask", "content": "It splits an address.", "order": 0},
                {"id": "e2", "type": "example", "title": "Example", "content": "255.255.255.0 keeps 24 bits.", "order": 1},
            ],
        },
        "private_payload": None,
        "source_refs": ["chunk-1"],
        "ui_hints": {"display_mode": "full", "next_actions": ["give_example"], "score": None},
    }


@pytest.fixture
def quiz_response():
    """Act output for generate_quiz with a matching answer key."""
    return {
        "public_payload": {
            "kind": "quiz",
            "questions": [
                {
                    "id": "q1",
                    "text": "What does a subnet mask do?",
                    "type": "single_choice",
                    "options": [{"id": "a", "text": "Splits network and host"}, {"id": "b", "text": "Encrypts traffic"}],
                }
            ],
            "shuffle": False,
        },
        "private_payload": {
            "kind": "quiz",
            "answer_key": [{"question_id": "q1", "correct_option_ids": ["a"], "points": 1}],
            "passing_score": 60,
        },
        "source_refs": [],
        "ui_hints": {"display_mode": "full", "next_actions": []},
    }
