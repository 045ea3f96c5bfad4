"""Tests for the memory CLI commands."""

import pytest

from memograph.cli.main import cli


@pytest.fixture
def invoke(runner, data_dir):
    def _invoke(*args, **kwargs):
        return runner.invoke(cli, ["--data-dir", str(data_dir), "memory", *args], **kwargs)

    return _invoke


class TestStats:
    def test_empty(self, invoke):
        result = invoke("stats")
        assert result.exit_code == 0, result.output
        assert "Memories: 0" in result.output
        assert "Simple Hash" in result.output

    def test_counts(self, invoke, seed_memories):
        result = invoke("stats")
        assert result.exit_code == 0, result.output
        assert "Memories: 2 in 1 conversations, 1 agents" in result.output


class TestSearch:
    def test_finds_match(self, invoke, seed_memories):
        result = invoke("search", "retry the flaky call")
        assert result.exit_code == 0, result.output
        assert "retry the flaky call" in result.output
        assert "1.000" in result.output

    def test_role_filter_excludes(self, invoke, seed_memories):
        result = invoke("search", "retry the flaky call", "--role", "assistant")
        assert "No similar memories found." in result.output

    def test_no_match(self, invoke, seed_memories):
        result = invoke("search", "zzzz", "--threshold", "0.99")
        assert "No similar memories found." in result.output


class TestHistory:
    def test_history(self, invoke, seed_memories):
        result = invoke("history", "conv-1")
        assert result.exit_code == 0, result.output
        assert "retry the flaky call" in result.output
        assert "coder" in result.output

    def test_unknown_conversation(self, invoke, seed_memories):
        result = invoke("history", "nope")
        assert "No memories for conversation nope." in result.output


class TestForget:
    def test_forget_persists(self, invoke, seed_memories):
        result = invoke("forget", "conv-1", "--yes")
        assert result.exit_code == 0, result.output
        assert "Forgot 2 memories of conv-1" in result.output

        assert "No memories for conversation conv-1." in invoke("history", "conv-1").output

    def test_forget_aborted(self, invoke, seed_memories):
        result = invoke("forget", "conv-1", input="n\n")
        assert result.exit_code == 1
        assert "retry the flaky call" in invoke("history", "conv-1").output
