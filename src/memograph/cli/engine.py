"""Lazily created MemoryEngine shared by CLI commands."""

import click

from memograph.cli.output import fail
from memograph.config import MemoryConfig
from memograph.context import MemoryEngine
from memograph.errors import MemographError


def get_engine(ctx: click.Context) -> MemoryEngine:
    """Return the command's MemoryEngine, creating it on first use.

    The engine is closed, and its state flushed, when the CLI exits.
    """
    root = ctx.find_root()
    engine = root.obj.get("engine")
    if engine is None:
        config: MemoryConfig = root.obj["config"]
        try:
            engine = MemoryEngine(config)
        except MemographError as e:
            fail(root.obj["console"], str(e))
        root.obj["engine"] = engine
        root.call_on_close(engine.close)
    return engine
