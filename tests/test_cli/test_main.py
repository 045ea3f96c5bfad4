"""Tests for the CLI entry point."""

from memograph import __version__
from memograph.cli.main import cli


class TestCli:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_groups(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "graph" in result.output
        assert "memory" in result.output

    def test_missing_config_file(self, runner, tmp_path):
        result = runner.invoke(
            cli, ["--config", str(tmp_path / "nope.yaml"), "graph", "projects"]
        )
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_invalid_config_file(self, runner, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("vectors:\n  max_vectors: -1\n")
        result = runner.invoke(cli, ["--config", str(bad), "graph", "projects"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_data_dir_is_used(self, runner, data_dir):
        result = runner.invoke(cli, ["--data-dir", str(data_dir), "graph", "projects"])
        assert result.exit_code == 0, result.output
        assert "Total: 0 projects" in result.output
        assert (data_dir / "graphs").is_dir()
