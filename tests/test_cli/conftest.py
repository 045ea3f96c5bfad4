"""Fixtures for CLI tests."""

import pytest
from click.testing import CliRunner

from memograph.config import MemoryConfig
from memograph.context import MemoryEngine
from memograph.testing import make_conversation_memory


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def seeded_engine_config(data_dir) -> MemoryConfig:
    """Config matching what the CLI builds for ``--data-dir data_dir``."""
    return MemoryConfig.model_validate(
        {
            "data_dir": data_dir,
            "graph": {"auto_save": False},
            "vectors": {"auto_save": False},
        }
    )


@pytest.fixture
def seed_memories(seeded_engine_config):
    """Store a short conversation where the CLI will find it."""
    with MemoryEngine(seeded_engine_config) as engine:
        engine.memory.add_memories(
            [
                make_conversation_memory(content="retry the flaky call"),
                make_conversation_memory(content="done", role="assistant", agent_name="coder"),
            ]
        )
