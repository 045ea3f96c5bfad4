"""CLI entry point."""

import os
from pathlib import Path

import click
from rich.console import Console

from memograph import __version__
from memograph.cli.commands.graph import graph_group
from memograph.cli.commands.memory import memory_group
from memograph.cli.output import fail, setup_logging
from memograph.config import load_config
from memograph.errors import MemographError

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="memograph")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Storage root (default: ~/.memograph or $MEMOGRAPH_DATA_DIR).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file (default: <data-dir>/config.yaml).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(
    ctx: click.Context, data_dir: Path | None, config_path: Path | None, verbose: bool
) -> None:
    """Memograph semantic memory and relationship engine.

    Inspects project relationship graphs, change impact and conversation memory.
    """
    setup_logging(verbose)

    env = dict(os.environ)
    if data_dir is not None:
        env["MEMOGRAPH_DATA_DIR"] = str(data_dir)
    try:
        config = load_config(config_path, env=env)
    except MemographError as e:
        fail(console, str(e))

    # One-shot commands flush on exit; background savers would only add noise.
    config = config.model_copy(
        update={
            "graph": config.graph.model_copy(update={"auto_save": False}),
            "vectors": config.vectors.model_copy(update={"auto_save": False}),
        }
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["console"] = console


cli.add_command(graph_group, "graph")
cli.add_command(memory_group, "memory")
